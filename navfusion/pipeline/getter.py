"""
Point-in-time queries over the processed prefix of a source.
"""

import numpy as np
from typing import Optional, Tuple, List

from .source import Source, SourceSnapshot
from ..edits import BulkRemove
from ..sensors.types import (Parameter, SourceKind, SampleKind, Validity, QueryStatus,
                             QueryResult, Sample, Sample2D, TimeCorrectionEntry)
from ..sensors.record_log import row_to_sample
from ..math.utils import hermite_bezier, circular_mean_degrees, track_and_speed
from ..math.constants import US_PER_DAY, VALIDITY_WINDOW_US

def find_bracket(times: np.ndarray, time: int) -> Optional[Tuple[int, int]]:
    """
    Binary search of a sorted time column.

    Args:
        times: Non-decreasing times
        time: Query time

    Returns:
        (i, i) on an exact hit, (left, left + 1) with
        times[left] < time < times[left + 1] otherwise, None outside the column
    """
    if len(times) == 0 or time < times[0] or time > times[-1]:
        return None

    right = int(np.searchsorted(times, time, side='left'))
    if times[right] == time:
        return (right, right)
    return (right - 1, right)

def external_estimate(snapshot: SourceSnapshot,
                      db_time: int) -> Tuple[QueryStatus, Optional[TimeCorrectionEntry]]:
    """
    Estimate of the external date/time at a store time.

    Before the first entry the first entry is used. Past the last entry the
    last one is used once the date/time source is finalized; until then the
    estimate is not yet available. Between two entries the midpoint of their
    absolute times is combined with the smaller drift shift.

    Args:
        snapshot: Published state of a date/time source
        db_time: Store time of the sample being aligned

    Returns:
        (status, entry); status is OUT_OF_RANGE when the finalized source holds no entry
    """
    count = snapshot.processed_count
    if count == 0:
        status = QueryStatus.OUT_OF_RANGE if snapshot.finalized else QueryStatus.NOT_YET_AVAILABLE
        return (status, None)

    rows = snapshot.rows
    db_times = rows['db_time'][:count]

    if db_time <= db_times[0]:
        return (QueryStatus.OK, row_to_sample(SampleKind.DATETIME, rows[0]))
    if db_time >= db_times[-1]:
        if db_time > db_times[-1] and not snapshot.finalized:
            return (QueryStatus.NOT_YET_AVAILABLE, None)
        return (QueryStatus.OK, row_to_sample(SampleKind.DATETIME, rows[count - 1]))

    left, right = find_bracket(db_times, db_time)
    if left == right:
        return (QueryStatus.OK, row_to_sample(SampleKind.DATETIME, rows[left]))

    lentry = row_to_sample(SampleKind.DATETIME, rows[left])
    rentry = row_to_sample(SampleKind.DATETIME, rows[right])
    middle = (lentry.absolute_time + rentry.absolute_time) // 2
    date = middle // US_PER_DAY * US_PER_DAY

    return (QueryStatus.OK, TimeCorrectionEntry(
        db_time=db_time,
        external_date=date,
        external_time_of_day=middle - date,
        drift_shift=min(lentry.drift_shift, rentry.drift_shift),
        validity=min(lentry.validity, rentry.validity)
    ))

class Getter:
    """
    Answers "value of a source at time T".

    Results are computed from published snapshots only, so queries may run
    while the writer advances the pipeline. Data conditions are reported
    through QueryResult.status, never raised.
    """

    def __init__(self, validity_window_us: int = VALIDITY_WINDOW_US):
        self.validity_window_us = validity_window_us

    def query(self, source: Source, time: int, directives: Optional[List] = None) -> QueryResult:
        """
        Value of a source at a corrected time.

        Args:
            source: Source to read
            time: Query time, microseconds
            directives: Current edit directives

        Returns:
            QueryResult
        """
        if directives and any(isinstance(d, BulkRemove) and d.covers(time) for d in directives):
            return QueryResult.failure(QueryStatus.INVALID, time)

        snapshot = source.snapshot()
        descriptor = source.descriptor

        if source.kind is SampleKind.DATETIME:
            return self._query_datetime(snapshot, time)

        status, bracket = self._locate(snapshot, time)
        if status is not QueryStatus.OK:
            return QueryResult.failure(status, time)

        if descriptor.source_kind is SourceKind.COMPUTED:
            return self._query_computed(descriptor.parameter, snapshot, bracket, time)
        if source.kind is SampleKind.POSITION:
            return self._query_position(snapshot, bracket, time)
        return self._query_scalar(descriptor.parameter, snapshot, bracket, time)

    def _locate(self, snapshot: SourceSnapshot, time: int):
        count = snapshot.processed_count
        if count == 0:
            if snapshot.assembled_count > 0:
                return (QueryStatus.NOT_YET_AVAILABLE, None)
            return (QueryStatus.OUT_OF_RANGE, None)

        times = snapshot.rows['corrected_time'][:count]
        if time < times[0]:
            return (QueryStatus.OUT_OF_RANGE, None)
        if time > times[-1]:
            if count < snapshot.assembled_count:
                return (QueryStatus.NOT_YET_AVAILABLE, None)
            return (QueryStatus.OUT_OF_RANGE, None)

        return (QueryStatus.OK, find_bracket(times, time))

    def _nearest_hit(self, snapshot: SourceSnapshot, bracket, time: int) -> Optional[int]:
        """Index of the bracket sample within the validity window, if any."""
        left, right = bracket
        times = snapshot.rows['corrected_time']
        nearest = left if time - times[left] <= times[right] - time else right
        if abs(int(times[nearest]) - time) <= self.validity_window_us:
            return nearest
        return None

    def _is_invalid(self, snapshot: SourceSnapshot, index: int) -> bool:
        return snapshot.rows['validity'][index] == Validity.INVALID

    def _query_scalar(self, parameter: Parameter, snapshot: SourceSnapshot,
                      bracket, time: int) -> QueryResult:
        rows = snapshot.rows
        left, right = bracket

        hit = self._nearest_hit(snapshot, bracket, time)
        if hit is not None:
            if self._is_invalid(snapshot, hit):
                return QueryResult.failure(QueryStatus.INVALID, time)
            return QueryResult.ok(row_to_sample(SampleKind.SCALAR, rows[hit]), time)

        if self._is_invalid(snapshot, left) or self._is_invalid(snapshot, right):
            return QueryResult.failure(QueryStatus.INVALID, time)

        # Bracket pair plus the closer valid outer neighbour
        indices = [left, right]
        times = rows['corrected_time']
        outer_left = left - 1 if left > 0 and not self._is_invalid(snapshot, left - 1) else None
        outer_right = right + 1
        if outer_right >= snapshot.processed_count or self._is_invalid(snapshot, outer_right):
            outer_right = None

        if outer_left is not None and outer_right is not None:
            if time - times[outer_left] <= times[outer_right] - time:
                indices.append(outer_left)
            else:
                indices.append(outer_right)
        elif outer_left is not None:
            indices.append(outer_left)
        elif outer_right is not None:
            indices.append(outer_right)

        values = rows['value'][indices]
        if parameter.is_angular:
            value = circular_mean_degrees(values)
        else:
            value = float(np.mean(values))

        validity = Validity(int(min(rows['validity'][left], rows['validity'][right])))
        return QueryResult.ok(Sample(db_time=time, corrected_time=time, value=value,
                                     validity=validity), time)

    def _tangent(self, snapshot: SourceSnapshot, first: int, last: int) -> np.ndarray:
        rows = snapshot.rows
        span = float(rows['corrected_time'][last] - rows['corrected_time'][first])
        if span <= 0:
            return np.zeros(2)
        delta = np.array([rows['latitude'][last] - rows['latitude'][first],
                          rows['longitude'][last] - rows['longitude'][first]])
        return delta / span

    def _query_position(self, snapshot: SourceSnapshot, bracket, time: int) -> QueryResult:
        rows = snapshot.rows
        left, right = bracket

        hit = self._nearest_hit(snapshot, bracket, time)
        if hit is not None:
            if self._is_invalid(snapshot, hit):
                return QueryResult.failure(QueryStatus.INVALID, time)
            return QueryResult.ok(row_to_sample(SampleKind.POSITION, rows[hit]), time)

        if self._is_invalid(snapshot, left) or self._is_invalid(snapshot, right):
            return QueryResult.failure(QueryStatus.INVALID, time)

        # Finite-difference tangents from the neighbouring cached samples
        before = left - 1 if left > 0 and not self._is_invalid(snapshot, left - 1) else left
        after = right + 1
        if after >= snapshot.processed_count or self._is_invalid(snapshot, after):
            after = right

        p1 = np.array([rows['latitude'][left], rows['longitude'][left]])
        p2 = np.array([rows['latitude'][right], rows['longitude'][right]])
        span = float(rows['corrected_time'][right] - rows['corrected_time'][left])
        fraction = (time - int(rows['corrected_time'][left])) / span

        point = hermite_bezier(p1, p2,
                               self._tangent(snapshot, before, right),
                               self._tangent(snapshot, left, after),
                               span, fraction)

        validity = Validity(int(min(rows['validity'][left], rows['validity'][right])))
        return QueryResult.ok(Sample2D(db_time=time, corrected_time=time,
                                       latitude=float(point[0]), longitude=float(point[1]),
                                       validity=validity), time)

    def _query_computed(self, parameter: Parameter, snapshot: SourceSnapshot,
                        bracket, time: int) -> QueryResult:
        rows = snapshot.rows
        left, right = bracket

        hit = self._nearest_hit(snapshot, bracket, time)
        if hit is not None:
            # Leg ending at the hit sample, or starting there for the first one
            if hit > 0:
                left, right = hit - 1, hit
            elif hit + 1 < snapshot.processed_count:
                left, right = hit, hit + 1
            elif snapshot.processed_count < snapshot.assembled_count:
                return QueryResult.failure(QueryStatus.NOT_YET_AVAILABLE, time)
            else:
                return QueryResult.failure(QueryStatus.OUT_OF_RANGE, time)

        if self._is_invalid(snapshot, left) or self._is_invalid(snapshot, right):
            return QueryResult.failure(QueryStatus.INVALID, time)

        track, speed = track_and_speed(rows['latitude'][left], rows['longitude'][left],
                                       int(rows['corrected_time'][left]),
                                       rows['latitude'][right], rows['longitude'][right],
                                       int(rows['corrected_time'][right]))
        value = track if parameter is Parameter.TRACK else speed
        if value is None:
            return QueryResult.failure(QueryStatus.INVALID, time)

        validity = Validity(int(min(rows['validity'][left], rows['validity'][right])))
        return QueryResult.ok(Sample(db_time=time, corrected_time=time, value=float(value),
                                     validity=validity), time)

    def _query_datetime(self, snapshot: SourceSnapshot, time: int) -> QueryResult:
        count = snapshot.processed_count
        if count and time < snapshot.rows['db_time'][0]:
            return QueryResult.failure(QueryStatus.OUT_OF_RANGE, time)

        status, entry = external_estimate(snapshot, time)
        if status is not QueryStatus.OK:
            return QueryResult.failure(status, time)
        if entry.validity == Validity.INVALID:
            return QueryResult.failure(QueryStatus.INVALID, time)
        return QueryResult.ok(entry, time)
