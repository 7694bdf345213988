"""
Time alignment stage: absolute corrected timestamps.
"""

from .source import Source, PipelineContext
from .getter import external_estimate
from ..sensors.types import SampleKind, Validity, QueryStatus, TimeCorrectionEntry
from ..sensors.record_log import NO_TIME
from ..math.constants import US_PER_DAY, NOON_US, LATE_EVENING_US
from ..logging_config import get_logger

logger = get_logger(__name__)

def corrected_time(data_time: int, entry: TimeCorrectionEntry,
                   noon_us: int = NOON_US, late_us: int = LATE_EVENING_US) -> int:
    """
    Store-clock time of a sample from its embedded time of day.

    A time of day before noon paired with an external time after late
    evening belongs to the next day; a time of day after late evening
    paired with an external time before noon belongs to the previous one.

    Args:
        data_time: Embedded time of day, microseconds
        entry: External date/time estimate at the sample's store time
        noon_us: Noon threshold, microseconds since midnight
        late_us: Late-evening threshold, microseconds since midnight

    Returns:
        Corrected time, microseconds since the epoch
    """
    corrected = data_time + entry.external_date + entry.drift_shift
    if data_time < noon_us and entry.external_time_of_day > late_us:
        corrected += US_PER_DAY
    elif data_time > late_us and entry.external_time_of_day < noon_us:
        corrected -= US_PER_DAY
    return corrected

class TimeAligner:
    """
    Assigns corrected_time to assembled samples.

    Date/time sources compute their own drift shift: the minimum of
    db_time - (date + time of day) over a trailing window of entries, the
    smallest observed transport delay. Every other source converts its
    embedded time of day through the active date/time source; samples
    without one, or all samples when no date/time source is attached,
    keep db_time.
    """

    def run(self, source: Source, context: PipelineContext) -> bool:
        """
        Align as many samples as possible.

        Returns:
            True if aligned_count advanced
        """
        start = source.aligned_count

        if source.kind is SampleKind.DATETIME:
            self._align_datetime(source, context.config.drift_window)
        else:
            self._align_samples(source, context)

        aligned = source.aligned_count - start
        if aligned:
            logger.debug("samples_aligned", source=source.source_id, count=aligned)
        return aligned > 0

    def _align_datetime(self, source: Source, window: int):
        log = source.log
        while source.aligned_count < source.assembled_count:
            index = source.aligned_count
            low = max(0, index - window + 1)
            shifts = (log.column("db_time", low, index + 1)
                      - log.column("date", low, index + 1)
                      - log.column("time_of_day", low, index + 1))

            log.update(index, drift_shift=int(shifts.min()), validity=int(Validity.SIMPLIFIED))
            source.aligned_count = index + 1

        # Entries need no further processing once their shift is known
        source.preprocessed_count = source.aligned_count
        source.processed_count = source.aligned_count

    def _align_samples(self, source: Source, context: PipelineContext):
        log = source.log
        reference = context.time_reference
        snapshot = reference.snapshot() if reference is not None else None
        noon_us = context.config.noon_us
        late_us = context.config.late_us

        while source.aligned_count < source.assembled_count:
            index = source.aligned_count
            db_time = int(log.get(index, "db_time"))
            data_time = int(log.get(index, "data_time"))

            if snapshot is None or data_time == NO_TIME:
                corrected = db_time
            else:
                status, entry = external_estimate(snapshot, db_time)
                if status is QueryStatus.NOT_YET_AVAILABLE:
                    break
                if status is QueryStatus.OK:
                    corrected = corrected_time(data_time, entry, noon_us, late_us)
                else:
                    corrected = db_time

            log.update(index, corrected_time=corrected)
            source.aligned_count = index + 1
