"""Unit tests for request merging and batch execution."""

import asyncio

import pytest

from src.core.exceptions import MergeSplitError, NetworkError
from src.core.models import BatchStrategy, RequestPriority
from src.services.batching import (
    BatchProcessor,
    merge_compatible_requests,
    split_merged_translation,
)
from src.services.translation.base import SEGMENT_MARKER, SEGMENT_SEPARATOR

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingInvoker:
    """Invoke function that translates per segment and records each call."""

    def __init__(self, fail_on: str | None = None, drop_segments: bool = False) -> None:
        self.calls: list[tuple[str, str, str, RequestPriority]] = []
        self._fail_on = fail_on
        self._drop_segments = drop_segments

    async def __call__(self, text, source_language, target_language, priority):
        self.calls.append((text, source_language, target_language, priority))
        if self._fail_on is not None and self._fail_on in text:
            raise NetworkError("unreachable")
        segments = text.split(SEGMENT_SEPARATOR)
        if self._drop_segments and len(segments) > 1:
            return "one blob without markers"
        return SEGMENT_SEPARATOR.join(f"{s}@{target_language}" for s in segments)


# ---------------------------------------------------------------------------
# merge_compatible_requests
# ---------------------------------------------------------------------------


class TestMerge:
    def test_same_pair_and_close_priority_grouped(self, make_request):
        r1 = make_request("Hello", priority=RequestPriority.normal)
        r2 = make_request("World", priority=RequestPriority.high)
        r3 = make_request("Bonjour", source="fr", target="zh")

        groups = merge_compatible_requests([r1, r2, r3])

        assert len(groups) == 2
        assert groups[0].requests == [r1, r2]
        assert groups[0].indices == [0, 1]
        assert groups[0].merged_text == f"Hello{SEGMENT_SEPARATOR}World"
        assert groups[0].priority == RequestPriority.high
        assert groups[1].requests == [r3]
        assert groups[1].indices == [2]

    def test_priority_two_steps_apart_not_merged(self, make_request):
        low = make_request("a", priority=RequestPriority.low)
        high = make_request("b", priority=RequestPriority.high)

        groups = merge_compatible_requests([low, high])

        assert [len(g) for g in groups] == [1, 1]

    def test_every_request_in_exactly_one_group(self, make_request):
        requests = [
            make_request(f"t{i}", target="zh" if i % 2 else "ja", priority=RequestPriority(i % 4 + 1))
            for i in range(12)
        ]

        groups = merge_compatible_requests(requests)
        indices = sorted(i for g in groups for i in g.indices)

        assert indices == list(range(12))
        for group in groups:
            assert len({r.language_pair for r in group.requests}) == 1

    def test_group_size_cap(self, make_request):
        requests = [make_request(f"t{i}") for i in range(5)]

        groups = merge_compatible_requests(requests, max_group_size=2)

        assert [g.indices for g in groups] == [[0, 1], [2, 3], [4]]

    def test_text_containing_marker_sent_alone(self, make_request):
        requests = [
            make_request("a"),
            make_request(f"left {SEGMENT_MARKER} right"),
            make_request("b"),
        ]

        groups = merge_compatible_requests(requests)

        assert [g.indices for g in groups] == [[0, 2], [1]]
        assert groups[1].merged_text == f"left {SEGMENT_MARKER} right"

    def test_empty(self):
        assert merge_compatible_requests([]) == []


class TestSplit:
    def test_split_back_into_segments(self):
        text = f"你好{SEGMENT_SEPARATOR}世界"
        assert split_merged_translation(text, 2) == ["你好", "世界"]

    def test_marker_with_irregular_whitespace(self):
        assert split_merged_translation("你好\n|||\n世界", 2) == ["你好", "世界"]

    def test_count_mismatch_raises(self):
        with pytest.raises(MergeSplitError) as exc_info:
            split_merged_translation("你好世界", 2)
        assert exc_info.value.expected == 2
        assert exc_info.value.received == 1


# ---------------------------------------------------------------------------
# BatchProcessor
# ---------------------------------------------------------------------------


class TestProcessBatch:
    @pytest.mark.asyncio
    async def test_merged_preserves_order_across_pairs(self, make_request):
        requests = [
            make_request("a", target="zh"),
            make_request("b", target="ja"),
            make_request("c", target="zh"),
            make_request("d", target="ja"),
            make_request("e", target="fr"),
        ]
        invoke = RecordingInvoker()
        processor = BatchProcessor(max_batch_size=5, max_concurrency=3)

        results = await processor.process_batch(
            requests, BatchStrategy.merged, RequestPriority.normal, invoke
        )

        assert results == ["a@zh", "b@ja", "c@zh", "d@ja", "e@fr"]
        assert len(invoke.calls) == 3

    @pytest.mark.asyncio
    async def test_adaptive_merges_homogeneous_batch(self, make_request):
        requests = [make_request(t) for t in ("a", "b", "c")]
        invoke = RecordingInvoker()
        processor = BatchProcessor(max_batch_size=5, max_concurrency=3)

        results = await processor.process_batch(
            requests, BatchStrategy.adaptive, RequestPriority.normal, invoke
        )

        assert results == ["a@zh", "b@zh", "c@zh"]
        assert len(invoke.calls) == 1

    @pytest.mark.asyncio
    async def test_adaptive_mixed_pairs_runs_sequentially(self, make_request):
        requests = [make_request("a", target="zh"), make_request("b", target="ja")]
        invoke = RecordingInvoker()
        processor = BatchProcessor(max_batch_size=5, max_concurrency=3)

        results = await processor.process_batch(
            requests, BatchStrategy.adaptive, RequestPriority.normal, invoke
        )

        assert results == ["a@zh", "b@ja"]
        assert [c[0] for c in invoke.calls] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_parallel_one_call_per_request(self, make_request):
        requests = [make_request(t) for t in ("a", "b", "c")]
        invoke = RecordingInvoker()
        processor = BatchProcessor(max_batch_size=5, max_concurrency=2)

        results = await processor.process_batch(
            requests, BatchStrategy.parallel, RequestPriority.normal, invoke
        )

        assert results == ["a@zh", "b@zh", "c@zh"]
        assert len(invoke.calls) == 3

    @pytest.mark.asyncio
    async def test_concurrency_limit_respected(self, make_request):
        in_flight = 0
        peak = 0

        async def invoke(text, source_language, target_language, priority):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return text

        processor = BatchProcessor(max_batch_size=5, max_concurrency=2)
        await processor.process_batch(
            [make_request(f"t{i}") for i in range(6)],
            BatchStrategy.parallel,
            RequestPriority.normal,
            invoke,
        )

        assert peak == 2

    @pytest.mark.asyncio
    async def test_split_failure_falls_back_to_member_calls(self, make_request):
        requests = [make_request("a"), make_request("b")]
        invoke = RecordingInvoker(drop_segments=True)
        processor = BatchProcessor(max_batch_size=5, max_concurrency=1)

        results = await processor.process_batch(
            requests, BatchStrategy.merged, RequestPriority.normal, invoke
        )

        assert results == ["a@zh", "b@zh"]
        assert len(invoke.calls) == 3

    @pytest.mark.asyncio
    async def test_call_priority_is_max_of_batch_and_request(self, make_request):
        invoke = RecordingInvoker()
        processor = BatchProcessor(max_batch_size=5, max_concurrency=1)

        await processor.process_batch(
            [make_request("a", priority=RequestPriority.low)],
            BatchStrategy.sequential,
            RequestPriority.critical,
            invoke,
        )

        assert invoke.calls[0][3] == RequestPriority.critical

    @pytest.mark.asyncio
    async def test_failure_propagates_and_is_counted(self, make_request):
        invoke = RecordingInvoker(fail_on="b")
        processor = BatchProcessor(max_batch_size=1, max_concurrency=1)

        with pytest.raises(NetworkError):
            await processor.process_batch(
                [make_request("a"), make_request("b")],
                BatchStrategy.merged,
                RequestPriority.normal,
                invoke,
            )

        stats = processor.get_statistics()
        assert stats.total_batches == 1
        assert stats.failed_batches == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        processor = BatchProcessor(max_batch_size=5, max_concurrency=1)
        assert await processor.process_batch(
            [], BatchStrategy.merged, RequestPriority.normal, RecordingInvoker()
        ) == []

    @pytest.mark.asyncio
    async def test_statistics(self, make_request):
        processor = BatchProcessor(max_batch_size=5, max_concurrency=1)
        await processor.process_batch(
            [make_request("a"), make_request("b")],
            BatchStrategy.merged,
            RequestPriority.normal,
            RecordingInvoker(),
        )

        stats = processor.get_statistics()
        assert stats.total_batches == 1
        assert stats.successful_batches == 1
        assert stats.merged_groups == 1
        assert stats.average_batch_size == pytest.approx(2.0)

    def test_limits_never_below_one(self):
        processor = BatchProcessor(max_batch_size=5, max_concurrency=3)
        processor.set_max_batch_size(0)
        processor.set_max_concurrency(-1)
        assert processor.max_batch_size == 1
        assert processor.max_concurrency == 1
