"""
Time-windowed sample buffer.

A buffer holds samples of one kind ordered by timestamp (``ts``), with at
most one sample per timestamp, and drops samples that fall behind the
retention cutoff.
"""

import logging
from bisect import bisect_left
from typing import Iterable, Iterator, List, Optional

from .constants import NEVER_UPDATED
from .exceptions import InvalidSampleError
from .models import Sample

logger = logging.getLogger(__name__)


def _ts(sample: Sample) -> int:
    return sample.ts


class SampleBuffer:
    """
    Ordered, timestamp-unique collection of samples.

    Invariants after every mutating call:
    - samples are sorted ascending by ``ts``
    - no two samples share a ``ts`` (the most recent write wins)
    - no sample is older than the cutoff passed to that call
    """

    def __init__(self, samples: Optional[Iterable[Sample]] = None):
        self._samples: List[Sample] = []
        if samples:
            self.merge_batch(samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __getitem__(self, index: int) -> Sample:
        return self._samples[index]

    def __repr__(self) -> str:
        return f"SampleBuffer({self._samples!r})"

    @property
    def samples(self) -> List[Sample]:
        """Copy of the buffered samples, oldest first."""
        return list(self._samples)

    def first_timestamp(self) -> int:
        return self._samples[0].ts if self._samples else NEVER_UPDATED

    def last_timestamp(self) -> int:
        return self._samples[-1].ts if self._samples else NEVER_UPDATED

    def clear(self) -> None:
        self._samples.clear()

    # =========================================================================
    # Mutation
    # =========================================================================

    def insert_sorted(
        self,
        sample: Sample,
        cutoff: Optional[int] = None,
        only_if_changed: bool = False,
        change_key: Optional[str] = None,
    ) -> bool:
        """
        Insert one sample, keeping the buffer ordered and timestamp-unique.

        A sample with the same ``ts`` as a buffered one replaces it. With
        ``only_if_changed``, a new sample whose ``change_key`` field equals
        that of its predecessor is not stored (e.g. an unchanged basal rate).
        Afterwards every sample with ``ts < cutoff`` is evicted; ``cutoff=None``
        skips eviction.

        Args:
            sample: Sample to insert
            cutoff: Eviction cutoff in epoch ms, or None
            only_if_changed: Suppress samples that repeat the predecessor's value
            change_key: Field compared when ``only_if_changed`` is set

        Returns:
            True if the sample was stored (appended, inserted or overwritten)

        Raises:
            InvalidSampleError: If the sample has no timestamp
        """
        if getattr(sample, "ts", None) is None:
            raise InvalidSampleError(details=f"Sample without timestamp: {sample!r}")

        stored = self._insert(sample, only_if_changed, change_key)
        if cutoff is not None:
            self.evict(cutoff)
        self._check_sorted()
        return stored

    def _insert(
        self,
        sample: Sample,
        only_if_changed: bool,
        change_key: Optional[str],
    ) -> bool:
        if not self._samples:
            self._samples.append(sample)
            return True

        # Fast path: the common case is a sample at or after the newest one
        last = self._samples[-1]
        if sample.ts >= last.ts:
            if sample.ts == last.ts:
                self._samples[-1] = sample
                return True
            if only_if_changed and self._same_value(last, sample, change_key):
                return False
            self._samples.append(sample)
            return True

        index = bisect_left(self._samples, sample.ts, key=_ts)
        if self._samples[index].ts == sample.ts:
            self._samples[index] = sample
            return True

        if only_if_changed and index > 0 and self._same_value(self._samples[index - 1], sample, change_key):
            return False

        self._samples.insert(index, sample)
        return True

    @staticmethod
    def _same_value(previous: Sample, sample: Sample, change_key: Optional[str]) -> bool:
        if change_key is None:
            return False
        return getattr(previous, change_key, None) == getattr(sample, change_key, None)

    def merge_batch(self, samples: Iterable[Sample], cutoff: Optional[int] = None) -> int:
        """
        Merge an unordered batch into the buffer.

        Existing samples are overlaid by timestamp with the batch (the batch
        wins on collisions, and within the batch the later entry wins),
        samples older than ``cutoff`` are dropped and the result is sorted.

        Args:
            samples: Batch of samples in any order
            cutoff: Eviction cutoff in epoch ms, or None

        Returns:
            Number of samples in the buffer after the merge
        """
        by_ts = {sample.ts: sample for sample in self._samples}
        for sample in samples:
            if getattr(sample, "ts", None) is None:
                raise InvalidSampleError(details=f"Sample without timestamp: {sample!r}")
            by_ts[sample.ts] = sample

        if cutoff is not None:
            by_ts = {ts: sample for ts, sample in by_ts.items() if ts >= cutoff}

        self._samples = [by_ts[ts] for ts in sorted(by_ts)]
        self._check_sorted()
        return len(self._samples)

    def evict(self, cutoff: int) -> int:
        """
        Drop every sample with ``ts`` strictly below ``cutoff``.

        Returns:
            Number of samples removed
        """
        count = bisect_left(self._samples, cutoff, key=_ts)
        if count:
            del self._samples[:count]
            logger.debug("Evicted samples", extra={"count": count, "cutoff": cutoff})
        return count

    def _check_sorted(self) -> None:
        assert all(
            a.ts < b.ts for a, b in zip(self._samples, self._samples[1:])
        ), "sample buffer lost its ordering"
