"""
Request merging and batch execution.

``merge_compatible_requests`` greedily groups requests that share a
language pair and whose priorities are within one step; each group is sent
upstream as one call with segments joined by ``SEGMENT_SEPARATOR`` and the
response is split back by original index. ``BatchProcessor`` runs a batch
under a strategy and keeps batch statistics. Its batch size and concurrency
limits are set by the degradation controller.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from time import perf_counter

from src.core.config import get_settings
from src.core.exceptions import MergeSplitError
from src.core.models import (
    BatchProcessingStats,
    BatchStrategy,
    MergedRequest,
    RequestPriority,
    TranslationRequest,
)
from src.services.translation.base import SEGMENT_MARKER, SEGMENT_SEPARATOR

logger = logging.getLogger(__name__)

# invoke(text, source_language, target_language, priority) -> translated text
InvokeFn = Callable[[str, str, str, RequestPriority], Awaitable[str]]

_SPLIT_PATTERN = re.compile(rf"\s*{re.escape(SEGMENT_MARKER)}\s*")


def _mergeable(request: TranslationRequest) -> bool:
    # A marker inside the text would make the split ambiguous
    return SEGMENT_MARKER not in request.text


def _compatible(a: TranslationRequest, b: TranslationRequest) -> bool:
    return a.language_pair == b.language_pair and abs(a.priority - b.priority) <= 1


def _build_group(requests: list[TranslationRequest], indices: list[int]) -> MergedRequest:
    return MergedRequest(
        requests=requests,
        indices=indices,
        merged_text=SEGMENT_SEPARATOR.join(r.text for r in requests),
        priority=max(r.priority for r in requests),
    )


def merge_compatible_requests(
    requests: list[TranslationRequest],
    max_group_size: int | None = None,
) -> list[MergedRequest]:
    """Group compatible requests for merged upstream calls.

    Single greedy pass: each unprocessed request collects every later
    unprocessed request with the same language pair and a priority at most
    one step away from its own. O(n^2), fine for batch sizes in the tens.
    Requests whose text contains the segment marker always get a group of
    their own.

    Args:
        requests: Requests in caller order.
        max_group_size: Optional cap; larger groups are split in order.

    Returns:
        Groups in order of their first member.
    """
    groups: list[MergedRequest] = []
    processed: set[int] = set()

    for index, request in enumerate(requests):
        if index in processed:
            continue

        members = [request]
        member_indices = [index]
        if _mergeable(request):
            for other_index in range(index + 1, len(requests)):
                if other_index in processed:
                    continue
                other = requests[other_index]
                if _mergeable(other) and _compatible(request, other):
                    members.append(other)
                    member_indices.append(other_index)
        processed.update(member_indices)

        step = max_group_size or len(members)
        for start in range(0, len(members), step):
            groups.append(
                _build_group(members[start : start + step], member_indices[start : start + step])
            )

    return groups


def split_merged_translation(text: str, expected: int) -> list[str]:
    """Split a merged translation back into its segments.

    Raises:
        MergeSplitError: If the segment count does not match.
    """
    parts = [p.strip() for p in _SPLIT_PATTERN.split(text.strip())]
    if len(parts) != expected:
        raise MergeSplitError(expected=expected, received=len(parts))
    return parts


class BatchProcessor:
    """Executes batches of translation requests.

    Args:
        max_batch_size: Largest merged group / batch unit.
        max_concurrency: Upstream calls allowed in flight per batch.
    """

    def __init__(
        self,
        max_batch_size: int | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        settings = get_settings()
        self._max_batch_size = max(1, max_batch_size or settings.batch_size)
        self._max_concurrency = max(1, max_concurrency or settings.max_concurrent_requests)

        self._total_batches = 0
        self._successful_batches = 0
        self._failed_batches = 0
        self._merged_groups = 0
        self._total_requests = 0
        self._total_time = 0.0

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def set_max_batch_size(self, size: int) -> None:
        self._max_batch_size = max(1, size)

    def set_max_concurrency(self, concurrency: int) -> None:
        self._max_concurrency = max(1, concurrency)

    def merge_compatible_requests(self, requests: list[TranslationRequest]) -> list[MergedRequest]:
        """Group requests, capping each group at the current batch size."""
        return merge_compatible_requests(requests, max_group_size=self._max_batch_size)

    async def process_batch(
        self,
        requests: list[TranslationRequest],
        strategy: BatchStrategy,
        priority: RequestPriority,
        invoke: InvokeFn,
    ) -> list[str]:
        """Translate a batch and return results in the order of ``requests``.

        ``adaptive`` merges when every request shares one language pair and
        runs sequentially otherwise.

        Raises:
            Exception: The first upstream failure; the batch counts as failed.
        """
        if not requests:
            return []

        if strategy == BatchStrategy.adaptive:
            homogeneous = len({r.language_pair for r in requests}) == 1
            strategy = BatchStrategy.merged if homogeneous else BatchStrategy.sequential

        start = perf_counter()
        try:
            if strategy == BatchStrategy.sequential:
                results = [
                    await invoke(r.text, r.source_language, r.target_language, max(r.priority, priority))
                    for r in requests
                ]
            elif strategy == BatchStrategy.parallel:
                groups = [_build_group([r], [i]) for i, r in enumerate(requests)]
                results = await self._run_groups(groups, len(requests), priority, invoke)
            else:
                groups = self.merge_compatible_requests(requests)
                self._merged_groups += sum(1 for g in groups if len(g) > 1)
                results = await self._run_groups(groups, len(requests), priority, invoke)
        except Exception:
            self._record(len(requests), perf_counter() - start, success=False)
            raise

        self._record(len(requests), perf_counter() - start, success=True)
        logger.debug(
            "Processed batch of %d (%s) in %.3fs",
            len(requests),
            strategy,
            perf_counter() - start,
        )
        return results

    def get_statistics(self) -> BatchProcessingStats:
        return BatchProcessingStats(
            total_batches=self._total_batches,
            successful_batches=self._successful_batches,
            failed_batches=self._failed_batches,
            merged_groups=self._merged_groups,
            average_batch_size=(
                self._total_requests / self._total_batches if self._total_batches else 0.0
            ),
            average_processing_time=(
                self._total_time / self._total_batches if self._total_batches else 0.0
            ),
        )

    async def _run_groups(
        self,
        groups: list[MergedRequest],
        size: int,
        priority: RequestPriority,
        invoke: InvokeFn,
    ) -> list[str]:
        results: list[str | None] = [None] * size
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(group: MergedRequest) -> None:
            async with semaphore:
                translations = await self._invoke_group(group, priority, invoke)
            for index, translation in zip(group.indices, translations, strict=True):
                results[index] = translation

        outcomes = await asyncio.gather(*(run(g) for g in groups), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return results  # type: ignore[return-value]

    async def _invoke_group(
        self,
        group: MergedRequest,
        priority: RequestPriority,
        invoke: InvokeFn,
    ) -> list[str]:
        call_priority = max(group.priority, priority)
        if len(group) == 1:
            return [
                await invoke(
                    group.merged_text, group.source_language, group.target_language, call_priority
                )
            ]

        merged = await invoke(
            group.merged_text, group.source_language, group.target_language, call_priority
        )
        try:
            return split_merged_translation(merged, len(group))
        except MergeSplitError as exc:
            logger.warning("%s; translating group members one by one", exc.detail)
            return [
                await invoke(r.text, r.source_language, r.target_language, call_priority)
                for r in group.requests
            ]

    def _record(self, size: int, elapsed: float, success: bool) -> None:
        self._total_batches += 1
        self._total_requests += size
        self._total_time += elapsed
        if success:
            self._successful_batches += 1
        else:
            self._failed_batches += 1
