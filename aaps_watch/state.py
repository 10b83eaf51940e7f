"""
Watch face state: history buffers, update watermarks and the status snapshot.

A single ``WatchFaceState`` is constructed at startup, mutated only by
``update_snapshot``, ``merge_history`` and the staleness reset, and read by
the display formatter and the HTTP endpoints.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from pydantic import ValidationError

from .buffer import SampleBuffer
from .constants import (
    GLUCOSE_INSERT_INTERVAL_MS,
    NEVER_UPDATED,
    RETENTION_WINDOW_MS,
)
from .exceptions import InvalidSampleError, UnknownSampleKindError
from .models import BasalSample, GlucoseSample, Sample, SampleKind, StatusSnapshot

logger = logging.getLogger(__name__)

# Kinds whose history only records value changes (a new basal bar per rate change)
CHANGE_ONLY_KINDS = frozenset({SampleKind.BASALS})


def parse_samples(
    kind: SampleKind,
    records: Iterable[Any],
) -> Tuple[List[Sample], int]:
    """
    Validate raw history records into samples of ``kind``.

    Records that are not mappings or that fail validation (missing ``ts``,
    non-numeric values) are logged and skipped.

    Returns:
        Tuple of (valid samples in input order, number of rejected records)
    """
    samples: List[Sample] = []
    rejected = 0
    for record in records:
        try:
            samples.append(_parse_sample(kind, record))
        except InvalidSampleError as e:
            rejected += 1
            logger.warning(
                "Skipping malformed sample",
                extra={"kind": kind.value, "error": e.full_message},
            )
    return samples, rejected


def _parse_sample(kind: SampleKind, record: Any) -> Sample:
    if not isinstance(record, Mapping):
        raise InvalidSampleError(details=f"Expected an object, got {type(record).__name__}")
    try:
        return kind.model.model_validate(record)
    except ValidationError as e:
        raise InvalidSampleError(details=str(record), original_error=e)


def coerce_kind(kind: Union[SampleKind, str]) -> SampleKind:
    try:
        return SampleKind(kind)
    except ValueError:
        raise UnknownSampleKindError(str(kind))


class WatchFaceState:
    """
    Mutable state owned by the watch face process.

    Attributes:
        snapshot: Latest current-status record
        stale: True when history must be rebuilt from the next batch
        watermarks: Newest timestamp merged per kind (-1 means never)
    """

    def __init__(self, retention_window_ms: int = RETENTION_WINDOW_MS):
        self.retention_window_ms = retention_window_ms
        self.buffers: Dict[SampleKind, SampleBuffer] = {kind: SampleBuffer() for kind in SampleKind}
        self.watermarks: Dict[SampleKind, int] = {kind: NEVER_UPDATED for kind in SampleKind}
        self.snapshot = StatusSnapshot()
        # Nothing has been received yet, so the first batch starts from scratch
        self.stale = True

    def buffer(self, kind: Union[SampleKind, str]) -> SampleBuffer:
        return self.buffers[coerce_kind(kind)]

    def cutoff(self, now_ms: int) -> int:
        """Oldest timestamp retained at ``now_ms``."""
        return now_ms - self.retention_window_ms

    # =========================================================================
    # Staleness
    # =========================================================================

    def mark_stale(self) -> None:
        """Flag history for a full rebuild when the next batch arrives."""
        logger.info("History marked stale")
        self.stale = True

    def reset(self) -> None:
        """Clear every buffer and watermark."""
        for kind in SampleKind:
            self.buffers[kind].clear()
            self.watermarks[kind] = NEVER_UPDATED
        self.stale = False
        logger.info("History reset")

    # =========================================================================
    # Updates
    # =========================================================================

    def update_snapshot(self, record: Mapping[str, Any], now_ms: int) -> bool:
        """
        Replace the status snapshot if ``record`` is newer.

        When the snapshot is replaced, its glucose value is appended to the
        glucose buffer if the newest buffered glucose sample is more than
        4.5 minutes older, and its basal rate is appended to the basal buffer
        if it differs from the previous snapshot's.

        Returns:
            True if the snapshot was replaced
        """
        try:
            new = StatusSnapshot.model_validate(record)
        except ValidationError as e:
            logger.warning("Ignoring malformed status snapshot", extra={"error": str(e)})
            return False

        old = self.snapshot
        if new.ts <= old.ts:
            return False

        self.snapshot = new
        cutoff = self.cutoff(now_ms)

        glucose = self.buffers[SampleKind.GLUCOSE]
        if new.sgv is not None and new.ts - glucose.last_timestamp() > GLUCOSE_INSERT_INTERVAL_MS:
            glucose.insert_sorted(GlucoseSample(ts=new.ts, sgv=new.sgv), cutoff, False, "sgv")

        if new.basal is not None and new.basal != old.basal:
            logger.debug("Basal changed", extra={"old": old.basal, "new": new.basal})
            self.buffers[SampleKind.BASALS].insert_sorted(
                BasalSample(ts=new.ts, rate=new.basal), cutoff, True, "rate"
            )

        return True

    def merge_history(
        self,
        kind: Union[SampleKind, str],
        records: Iterable[Any],
        now_ms: int,
    ) -> int:
        """
        Merge a history batch for one kind.

        A pending staleness reset is applied first. Records at or below the
        kind's watermark have already been merged and are skipped. Basal
        records are inserted one by one and a record repeating the previous
        rate is not stored.

        Returns:
            Number of samples merged
        """
        kind = coerce_kind(kind)
        if self.stale:
            self.reset()

        samples, rejected = parse_samples(kind, records)
        watermark = self.watermarks[kind]
        fresh = [sample for sample in samples if sample.ts > watermark]

        buffer = self.buffers[kind]
        cutoff = self.cutoff(now_ms)
        if kind in CHANGE_ONLY_KINDS:
            # Applied oldest first so each sample is checked against its predecessor
            for sample in sorted(fresh, key=lambda s: s.ts):
                buffer.insert_sorted(sample, cutoff, True, kind.change_key)
        else:
            buffer.merge_batch(fresh, cutoff)
        if samples:
            self.watermarks[kind] = max(watermark, max(sample.ts for sample in samples))

        logger.debug(
            "Merged history batch",
            extra={
                "kind": kind.value,
                "merged": len(fresh),
                "rejected": rejected,
                "buffered": len(self.buffers[kind]),
            },
        )
        return len(fresh)

    def evict(self, now_ms: int) -> None:
        """Drop samples that have aged out of the retention window."""
        cutoff = self.cutoff(now_ms)
        for buffer in self.buffers.values():
            buffer.evict(cutoff)

    # =========================================================================
    # Render Input
    # =========================================================================

    def history(self, kind: Union[SampleKind, str]) -> List[Dict[str, Any]]:
        return [sample.model_dump(exclude_none=True) for sample in self.buffer(kind)]

    def buffer_lengths(self) -> str:
        return " ".join(str(len(self.buffers[kind])) for kind in SampleKind)
