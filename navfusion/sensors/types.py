"""
Navigation parameter, source and sample types.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Union

from ..errors import SourceError

class Parameter(Enum):
    """Navigation parameters the engine can answer queries for."""

    LATLONG = "latlong"
    ALTITUDE = "altitude"
    TRACK = "track"
    ROLL = "roll"
    PITCH = "pitch"
    SPEED = "speed"
    DEPTH = "depth"
    DATETIME = "datetime"

    @property
    def is_angular(self) -> bool:
        """True for parameters measured in degrees on a circle."""
        return self is Parameter.TRACK

class SourceKind(Enum):
    """How a source obtains its values."""

    RAW = "raw"              # value read directly from the record
    COMPUTED = "computed"    # value derived from positions (track, speed)

class SampleKind(Enum):
    """Storage layout of a source's record log. Closed set."""

    SCALAR = "scalar"
    POSITION = "position"
    DATETIME = "datetime"

class Validity(IntEnum):
    """Pipeline stage reached by a sample."""

    INVALID = 0
    ASSEMBLED = 1
    SMOOTHED = 2
    SIMPLIFIED = 3
    USER_FIXED = 4

class QueryStatus(Enum):
    """Outcome of a point-in-time query."""

    OK = "ok"
    NOT_YET_AVAILABLE = "not_yet_available"   # retry after advancing the engine
    OUT_OF_RANGE = "out_of_range"             # outside the known data
    INVALID = "invalid"                       # removed, unknown or disabled

def sample_kind(parameter: Parameter, source_kind: SourceKind) -> SampleKind:
    """
    Storage layout for a parameter produced by a source kind.

    Args:
        parameter: Navigation parameter
        source_kind: Raw or computed

    Returns:
        SampleKind of the record log
    """
    if parameter is Parameter.DATETIME:
        return SampleKind.DATETIME
    if parameter is Parameter.LATLONG or source_kind is SourceKind.COMPUTED:
        return SampleKind.POSITION
    return SampleKind.SCALAR

@dataclass(frozen=True)
class SourceDescriptor:
    """
    Immutable description of one navigation source.

    Attributes:
        source_id: Unique name of the source
        parameter: Parameter this source provides
        channel: Channel Store channel the raw records come from
        source_kind: RAW or COMPUTED
        nominal_rate: Expected record rate in Hz, informational
        base_source: Source a computed source takes its positions from;
            None to parse positions from the source's own channel
    """

    source_id: str
    parameter: Parameter
    channel: str
    source_kind: SourceKind = SourceKind.RAW
    nominal_rate: Optional[float] = None
    base_source: Optional[str] = None

    def __post_init__(self):
        if self.source_kind is SourceKind.COMPUTED and self.parameter not in (Parameter.TRACK, Parameter.SPEED):
            raise SourceError(f"{self.source_id}: only track and speed can be computed, "
                              f"got {self.parameter.value}")
        if self.base_source is not None:
            if self.source_kind is not SourceKind.COMPUTED:
                raise SourceError(f"{self.source_id}: only computed sources may declare a base source")
            if self.base_source == self.source_id:
                raise SourceError(f"{self.source_id}: a source cannot be its own base")

    @property
    def sample_kind(self) -> SampleKind:
        return sample_kind(self.parameter, self.source_kind)

@dataclass
class Sample:
    """Scalar sample (altitude, heading, attitude, speed, depth)."""

    db_time: int
    corrected_time: int
    value: float
    validity: Validity
    data_time: Optional[int] = None    # embedded time of day, microseconds

@dataclass
class Sample2D:
    """Position sample, decimal degrees."""

    db_time: int
    corrected_time: int
    latitude: float
    longitude: float
    validity: Validity
    data_time: Optional[int] = None

    @property
    def position(self):
        return (self.latitude, self.longitude)

@dataclass
class TimeCorrectionEntry:
    """External date/time report and the drift shift derived from it."""

    db_time: int
    external_date: int
    external_time_of_day: int
    drift_shift: int
    validity: Validity

    @property
    def absolute_time(self) -> int:
        """External time in microseconds since the epoch."""
        return self.external_date + self.external_time_of_day

AnySample = Union[Sample, Sample2D, TimeCorrectionEntry]

@dataclass(frozen=True)
class ParsedRecord:
    """
    Normalized content of one raw record, as returned by a parser.

    Only the fields relevant to the requested parameter are set.
    """

    data_time: Optional[int] = None     # time of day, microseconds
    value: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    date: Optional[int] = None          # UTC midnight, microseconds since epoch

@dataclass
class QueryResult:
    """Result of a Getter query."""

    status: QueryStatus
    time: int
    sample: Optional[AnySample] = None

    @property
    def is_valid(self) -> bool:
        return self.status is QueryStatus.OK and self.sample is not None

    @property
    def value(self) -> Optional[float]:
        """Scalar value, None for positions and failures."""
        if self.is_valid and isinstance(self.sample, Sample):
            return self.sample.value
        return None

    @property
    def position(self):
        """(latitude, longitude), None for scalars and failures."""
        if self.is_valid and isinstance(self.sample, Sample2D):
            return self.sample.position
        return None

    @classmethod
    def failure(cls, status: QueryStatus, time: int) -> 'QueryResult':
        return cls(status=status, time=time)

    @classmethod
    def ok(cls, sample: AnySample, time: int) -> 'QueryResult':
        return cls(status=QueryStatus.OK, time=time, sample=sample)
