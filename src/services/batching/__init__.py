"""
Batching module - Request merging, batch execution and coalescing.
"""

from .batcher import BatchProcessor, merge_compatible_requests, split_merged_translation
from .collector import RequestCollector

__all__ = [
    "BatchProcessor",
    "RequestCollector",
    "merge_compatible_requests",
    "split_merged_translation",
]
