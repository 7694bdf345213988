"""
Navigation sensor fusion for survey logs.

This package provides:
- Incremental assembly of navigation channels (GNSS, heading, attitude, depth)
- Clock-drift time alignment against a date/time source
- Bezier smoothing and track simplification of positions
- Point-in-time interpolated queries while the log is still growing
"""

__version__ = "1.0.0"
__author__ = "NavFusion Team"

from .engine import FusionEngine, Location, shift_location
from .config import FusionConfig
from .errors import NavFusionError, FusionConfigError, SourceError, PipelineError
from .store import MemoryChannelStore
from .edits import MemoryEditStore, PointOverride, BulkRemove
from .sensors import (Parameter, SourceKind, Validity, QueryStatus, SourceDescriptor,
                      QueryResult, NMEAParser)
from .logging_config import configure_logging

__all__ = [
    "FusionEngine",
    "Location",
    "shift_location",
    "FusionConfig",
    "NavFusionError",
    "FusionConfigError",
    "SourceError",
    "PipelineError",
    "MemoryChannelStore",
    "MemoryEditStore",
    "PointOverride",
    "BulkRemove",
    "Parameter",
    "SourceKind",
    "Validity",
    "QueryStatus",
    "SourceDescriptor",
    "QueryResult",
    "NMEAParser",
    "configure_logging"
]
