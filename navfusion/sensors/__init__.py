"""
Sensor record types, parsing and per-source storage.
"""

from .types import (Parameter, SourceKind, SampleKind, Validity, QueryStatus, SourceDescriptor,
                    Sample, Sample2D, TimeCorrectionEntry, ParsedRecord, QueryResult)
from .record_log import RecordLog
from .nmea import NMEAParser

__all__ = [
    "Parameter", "SourceKind", "SampleKind", "Validity", "QueryStatus", "SourceDescriptor",
    "Sample", "Sample2D", "TimeCorrectionEntry", "ParsedRecord", "QueryResult",
    "RecordLog", "NMEAParser"
]
