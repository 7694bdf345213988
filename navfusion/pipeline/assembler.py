"""
Assembly stage: raw channel records to normalized samples.
"""

from typing import Optional

from .source import Source, PipelineContext
from .getter import Getter
from ..edits import PointOverride, BulkRemove
from ..sensors.types import (SampleKind, SourceKind, Validity, QueryStatus, ParsedRecord,
                             Sample, Sample2D, TimeCorrectionEntry, AnySample)
from ..logging_config import get_logger

logger = get_logger(__name__)

class Assembler:
    """
    Reads every unread record of a source's channel, converts it through
    the parser and appends the result to the source's record log.

    The raw cursor advances past malformed records, which are counted and
    never retried. Computed sources with a base source take their
    positions from the base source at each record's time instead.
    """

    def __init__(self, getter: Getter):
        self.getter = getter

    def run(self, source: Source, context: PipelineContext) -> bool:
        """
        Assemble as many records as available.

        Returns:
            True if any index or state changed
        """
        store = context.store
        channel = source.descriptor.channel

        # Writability first: once closed, the range read after it is final
        writable = store.is_writable(channel)
        data_range = store.get_data_range(channel)

        start_cursor = source.raw_cursor
        start_count = source.assembled_count
        was_finished = source.raw_finished

        if data_range is not None:
            first, last = data_range
            if source.raw_cursor < first:
                source.statistics['skipped_records'] += first - source.raw_cursor
                source.raw_cursor = first
            self._read(source, context, last)
            source.raw_finished = not writable and source.raw_cursor > last
        else:
            source.raw_finished = not writable

        appended = source.assembled_count - start_count
        if appended:
            logger.debug("samples_assembled", source=source.source_id, count=appended,
                         raw_cursor=source.raw_cursor)

        return (source.raw_cursor != start_cursor or appended > 0
                or source.raw_finished != was_finished)

    def _read(self, source: Source, context: PipelineContext, last: int):
        base = context.base_of(source)

        while source.raw_cursor <= last:
            record = context.store.get_record(source.descriptor.channel, source.raw_cursor)
            if record is None:
                source.statistics['skipped_records'] += 1
                source.raw_cursor += 1
                continue

            db_time, raw = record
            if base is not None:
                result = self.getter.query(base, db_time)
                if result.status is QueryStatus.NOT_YET_AVAILABLE:
                    break
                if result.status is QueryStatus.OUT_OF_RANGE and self._base_may_grow(base, db_time):
                    break
                sample = None
                if result.is_valid:
                    sample = Sample2D(db_time=db_time, corrected_time=db_time,
                                      latitude=result.sample.latitude,
                                      longitude=result.sample.longitude,
                                      validity=Validity.ASSEMBLED)
                else:
                    source.statistics['skipped_records'] += 1
            else:
                parsed = context.parser.parse(source.descriptor.parameter,
                                              source.descriptor.source_kind, raw)
                sample = self._build(source.kind, db_time, parsed)
                if sample is None:
                    source.statistics['malformed_records'] += 1

            source.raw_cursor += 1
            if sample is None:
                continue

            if source.kind is not SampleKind.DATETIME:
                self._apply_directives(source, sample, context.directives)
            source.log.append(sample)

    def _base_may_grow(self, base: Source, db_time: int) -> bool:
        """True if the base source may still cover db_time later."""
        snapshot = base.snapshot()
        if snapshot.finalized:
            return False
        count = snapshot.processed_count
        return count == 0 or db_time > snapshot.rows['corrected_time'][count - 1]

    def _build(self, kind: SampleKind, db_time: int,
               parsed: Optional[ParsedRecord]) -> Optional[AnySample]:
        if parsed is None:
            return None

        if kind is SampleKind.DATETIME:
            if parsed.date is None or parsed.data_time is None:
                return None
            return TimeCorrectionEntry(db_time=db_time, external_date=parsed.date,
                                       external_time_of_day=parsed.data_time,
                                       drift_shift=0, validity=Validity.ASSEMBLED)

        if kind is SampleKind.POSITION:
            if parsed.latitude is None or parsed.longitude is None:
                return None
            return Sample2D(db_time=db_time, corrected_time=db_time,
                            latitude=parsed.latitude, longitude=parsed.longitude,
                            validity=Validity.ASSEMBLED, data_time=parsed.data_time)

        if parsed.value is None:
            return None
        return Sample(db_time=db_time, corrected_time=db_time, value=parsed.value,
                      validity=Validity.ASSEMBLED, data_time=parsed.data_time)

    def _apply_directives(self, source: Source, sample: AnySample, directives):
        for directive in directives:
            if isinstance(directive, BulkRemove) and directive.covers(sample.db_time):
                sample.validity = Validity.INVALID
                source.statistics['invalid_samples'] += 1
                return

        if source.kind is not SampleKind.POSITION or source.descriptor.source_kind is SourceKind.COMPUTED:
            return

        for directive in directives:
            if isinstance(directive, PointOverride) and directive.covers(sample.db_time):
                sample.latitude = directive.latitude
                sample.longitude = directive.longitude
                sample.validity = Validity.USER_FIXED
                source.statistics['user_fixed_samples'] += 1
                return
