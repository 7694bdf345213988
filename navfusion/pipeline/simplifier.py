"""
Simplification stage: anchors plus linearly projected intermediate samples.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple

from .source import Source, PipelineContext
from ..sensors.types import Validity
from ..math.utils import planar_distance, calculate_bearing, normalize_angle
from ..math.constants import SEARCH_RADIUS_M, BEARING_TIE_RAD
from ..logging_config import get_logger

logger = get_logger(__name__)

def promote_scalars(source: Source, context: PipelineContext) -> bool:
    """
    Final stage of scalar sources: aligned samples are ready for queries.

    Returns:
        True if processed_count advanced
    """
    log = source.log
    start = source.processed_count

    for index in range(source.processed_count, source.aligned_count):
        if log.get(index, "validity") == Validity.ASSEMBLED:
            log.update(index, validity=int(Validity.SIMPLIFIED))

    source.preprocessed_count = source.aligned_count
    source.processed_count = source.aligned_count
    return source.processed_count > start

class TrackSimplifier(ABC):
    """
    Shared anchor bookkeeping of the simplifiers.

    An anchor is a kept sample; samples between two anchors are moved onto
    the straight line joining them by linear time interpolation. Anchors
    and projected samples are both tagged SIMPLIFIED. A USER_FIXED sample
    met during a scan becomes the next anchor without moving. An INVALID
    sample closes the segment at the sample before it and stays INVALID;
    the next valid sample opens a new segment.

    While an anchor is set, processed_count == anchor + 1.
    """

    def __init__(self, threshold: float):
        """
        Args:
            threshold: Minimum anchor spacing in meters
        """
        self.threshold = threshold

    def run(self, source: Source, context: PipelineContext) -> bool:
        """
        Simplify as far as the smoothed samples allow.

        Returns:
            True if processed_count advanced
        """
        start = source.processed_count
        closed = source.raw_finished and source.preprocessed_count == source.assembled_count

        while self._step(source, closed):
            pass

        processed = source.processed_count - start
        if processed:
            logger.debug("samples_simplified", source=source.source_id, count=processed,
                         anchors=source.statistics['anchors'])
        return processed > 0

    def _step(self, source: Source, closed: bool) -> bool:
        if source.anchor is not None:
            return self._advance_anchor(source, source.preprocessed_count, closed)

        index = source.processed_count
        if index >= source.preprocessed_count:
            return False

        if source.log.get(index, "validity") == Validity.INVALID:
            source.processed_count = index + 1
            return True

        source.log.update(index, validity=int(Validity.SIMPLIFIED))
        source.anchor = index
        source.prev_anchor = None
        source.scan = index + 1
        source.processed_count = index + 1
        source.statistics['anchors'] += 1
        return True

    @abstractmethod
    def _advance_anchor(self, source: Source, end: int, closed: bool) -> bool:
        """Move past the current anchor using samples before end; True if anything changed."""

    def _position(self, source: Source, index: int) -> Tuple[float, float]:
        return (float(source.log.get(index, "latitude")), float(source.log.get(index, "longitude")))

    def _distance(self, source: Source, first: int, second: int) -> float:
        return planar_distance(*self._position(source, first), *self._position(source, second))

    def _finish_segment(self, source: Source, last: int):
        """Project the samples between the anchor and last; last becomes the anchor."""
        log = source.log
        anchor = source.anchor

        lat1, lon1 = self._position(source, anchor)
        lat2, lon2 = self._position(source, last)
        time1 = int(log.get(anchor, "corrected_time"))
        span = int(log.get(last, "corrected_time")) - time1

        for index in range(anchor + 1, last):
            fraction = 0.0
            if span > 0:
                fraction = (int(log.get(index, "corrected_time")) - time1) / span
            log.update(index,
                       latitude=lat1 + (lat2 - lat1) * fraction,
                       longitude=lon1 + (lon2 - lon1) * fraction,
                       validity=int(Validity.SIMPLIFIED))

        log.update(last, validity=int(Validity.SIMPLIFIED))
        source.prev_anchor = anchor
        source.anchor = last
        source.scan = last + 1
        source.processed_count = last + 1
        source.statistics['anchors'] += 1

    def _end_at_invalid(self, source: Source, invalid: int):
        """Close the segment before an INVALID sample and skip it."""
        if invalid - 1 > source.anchor:
            self._finish_segment(source, invalid - 1)
        source.anchor = None
        source.prev_anchor = None
        source.scan = invalid + 1
        source.processed_count = invalid + 1

class DistanceSimplifier(TrackSimplifier):
    """
    Anchors at the first sample farther than the threshold from the last anchor.

    Used for raw position sources; the threshold is 10 - 9 * quality meters
    by default.
    """

    def _advance_anchor(self, source: Source, end: int, closed: bool) -> bool:
        log = source.log
        index = max(source.scan, source.anchor + 1)

        while index < end:
            validity = log.get(index, "validity")
            if validity == Validity.INVALID:
                self._end_at_invalid(source, index)
                return True
            if validity == Validity.USER_FIXED or self._distance(source, source.anchor, index) > self.threshold:
                self._finish_segment(source, index)
                return True
            index += 1

        source.scan = index
        if closed and end - 1 > source.anchor:
            self._finish_segment(source, end - 1)
            return True
        return False

class HeadingSimplifier(TrackSimplifier):
    """
    Anchors at the candidate that bends the track least.

    Candidates are the samples within the search radius of the last anchor.
    The one with the smallest bearing change from the previous leg wins,
    the farther one on ties; on the first leg of a segment the farthest
    candidate wins. Candidates closer than the threshold only count when
    nothing else is in range. A decision waits for a sample beyond the
    radius unless the source is finalized.

    Used for computed track and speed sources.
    """

    def __init__(self, threshold: float, search_radius: float = SEARCH_RADIUS_M):
        super().__init__(threshold)
        self.search_radius = search_radius

    def _advance_anchor(self, source: Source, end: int, closed: bool) -> bool:
        log = source.log
        candidates: List[Tuple[int, float]] = []
        index = source.anchor + 1

        while index < end:
            validity = log.get(index, "validity")
            if validity == Validity.INVALID:
                self._end_at_invalid(source, index)
                return True
            if validity == Validity.USER_FIXED:
                self._finish_segment(source, index)
                return True

            distance = self._distance(source, source.anchor, index)
            if distance > self.search_radius:
                break
            candidates.append((index, distance))
            index += 1
        else:
            if not closed:
                return False

        if not candidates:
            if index < end:
                self._finish_segment(source, index)
                return True
            return False

        self._finish_segment(source, self._pick(source, candidates))
        return True

    def _pick(self, source: Source, candidates: List[Tuple[int, float]]) -> int:
        eligible = [c for c in candidates if c[1] > self.threshold] or candidates

        if source.prev_anchor is None:
            return max(eligible, key=lambda c: c[1])[0]

        anchor = self._position(source, source.anchor)
        leg = calculate_bearing(*self._position(source, source.prev_anchor), *anchor)

        best_index, best_change, best_distance = None, None, None
        for index, distance in eligible:
            change = abs(normalize_angle(calculate_bearing(*anchor, *self._position(source, index)) - leg))
            if (best_change is None or change < best_change - BEARING_TIE_RAD
                    or (abs(change - best_change) <= BEARING_TIE_RAD and distance > best_distance)):
                best_index, best_change, best_distance = index, change, distance

        return best_index
