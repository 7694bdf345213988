"""
Navigation fusion engine: source registry, pipeline driver and queries.
"""

import graphlib
import threading
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Iterable, Tuple

import numpy as np

from .config import FusionConfig
from .errors import SourceError, FusionConfigError
from .pipeline import Source, PipelineContext, Getter, Overseer
from .sensors.types import (Parameter, SourceKind, SampleKind, QueryStatus, QueryResult,
                            SourceDescriptor)
from .sensors.nmea import NMEAParser
from .math.utils import body_to_ned_matrix, meters_to_degrees
from .logging_config import get_logger

logger = get_logger(__name__)

# Visiting rank: date/time sources first, computed sources after their bases
_RANK = {SampleKind.DATETIME: 0}

@dataclass
class Location:
    """Vessel state assembled from the active source of each parameter."""

    time: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    track: Optional[float] = None       # degrees, 0 = north
    roll: Optional[float] = None        # degrees
    pitch: Optional[float] = None       # degrees
    speed: Optional[float] = None       # m/s
    depth: Optional[float] = None       # meters
    status: Dict[Parameter, QueryStatus] = field(default_factory=dict)

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def validity(self, parameter: Parameter) -> QueryStatus:
        return self.status.get(parameter, QueryStatus.INVALID)

def shift_location(location: Location, offset: Tuple[float, float, float]) -> Location:
    """
    Move a location by a body-frame lever arm.

    The offset (x to the bow, y to starboard, z down, meters) is rotated by
    track, pitch and roll into North-East-Down; unknown angles count as zero.

    Args:
        location: Location with a position
        offset: Body-frame offset in meters

    Returns:
        The same location object, shifted
    """
    if not location.has_position:
        return location

    track = np.radians(location.track or 0.0)
    roll = np.radians(location.roll or 0.0)
    pitch = np.radians(location.pitch or 0.0)

    north, east, down = body_to_ned_matrix(track, roll, pitch) @ np.asarray(offset, dtype=float)
    dlat, dlon = meters_to_degrees(north, east, location.latitude)

    location.latitude += dlat
    location.longitude += dlon
    if location.altitude is not None:
        location.altitude -= down
    return location

class FusionEngine:
    """
    Fuses navigation channels into queryable per-parameter estimates.

    One writer calls advance(); any number of readers may call query() and
    locate() concurrently. Every source publishes its processed samples
    under its own lock, readers only see published state.
    """

    def __init__(self, store, parser=None, edits=None, config: Optional[FusionConfig] = None):
        """
        Initialize the engine.

        Args:
            store: Channel store to read raw records from
            parser: Record parser, NMEAParser by default
            edits: Optional object store of edit directives
            config: Engine configuration, defaults when omitted
        """
        self.config = config if config is not None else FusionConfig()
        self.store = store
        self.parser = parser if parser is not None else NMEAParser()
        self.edits = edits

        self.getter = Getter(self.config.validity_window_us)
        self.overseer = Overseer(self.getter)

        self._sources: Dict[str, Source] = {}
        self._order: List[Source] = []
        self._active: Dict[Parameter, Optional[str]] = {}

        self._writer_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._mod_count = 0
        self._pending_quality: Optional[float] = None

        self._edits_mod_count = edits.mod_count() if edits is not None else 0
        self._directives = edits.directives() if edits is not None else []

    # Source registry

    def attach_source(self, descriptor: SourceDescriptor) -> Source:
        """
        Register a source.

        The first source attached for a parameter becomes its active source.

        Raises:
            SourceError: Duplicate id, unknown or unsuitable base source, or a cycle
        """
        with self._writer_lock:
            if descriptor.source_id in self._sources:
                raise SourceError(f"source {descriptor.source_id!r} is already attached")

            if descriptor.base_source is not None:
                base = self._sources.get(descriptor.base_source)
                if base is None:
                    raise SourceError(f"{descriptor.source_id}: unknown base source "
                                      f"{descriptor.base_source!r}")
                if base.descriptor.parameter is not Parameter.LATLONG:
                    raise SourceError(f"{descriptor.source_id}: base source "
                                      f"{descriptor.base_source!r} does not provide positions")

            source = Source(descriptor, self.config.block_size)
            source.base_offset = source.raw_cursor = self._first_index(descriptor.channel)

            sources = dict(self._sources)
            sources[descriptor.source_id] = source
            self._order = self._dependency_order(sources)
            self._sources = sources

            with self._state_lock:
                if self._active.get(descriptor.parameter) is None:
                    self._active[descriptor.parameter] = descriptor.source_id
                self._mod_count += 1

        logger.info("source_attached", source=descriptor.source_id,
                    parameter=descriptor.parameter.value, channel=descriptor.channel,
                    source_kind=descriptor.source_kind.value)
        return source

    def _dependency_order(self, sources: Dict[str, Source]) -> List[Source]:
        graph = {}
        for source_id, source in sources.items():
            base = source.descriptor.base_source
            graph[source_id] = {base} if base is not None else set()

        try:
            order = list(graphlib.TopologicalSorter(graph).static_order())
        except graphlib.CycleError as e:
            raise SourceError(f"source dependencies form a cycle: {e.args[1]}") from e

        def rank(source_id):
            source = sources[source_id]
            if source.descriptor.source_kind is SourceKind.COMPUTED:
                return 2
            return _RANK.get(source.kind, 1)

        # sorted() is stable, the topological order survives within a rank
        return [sources[source_id] for source_id in sorted(order, key=rank)]

    def _first_index(self, channel: str) -> int:
        data_range = self.store.get_data_range(channel)
        return data_range[0] if data_range is not None else 0

    def sources(self, parameter: Optional[Parameter] = None) -> List[SourceDescriptor]:
        """Descriptors of the attached sources, optionally for one parameter."""
        return [source.descriptor for source in self._sources.values()
                if parameter is None or source.descriptor.parameter is parameter]

    def source(self, source_id: str) -> Source:
        try:
            return self._sources[source_id]
        except KeyError:
            raise SourceError(f"unknown source {source_id!r}") from None

    def active_source(self, parameter: Parameter) -> Optional[str]:
        with self._state_lock:
            return self._active.get(parameter)

    def set_active_source(self, parameter: Parameter, source_id: Optional[str]):
        """
        Choose the source answering queries for a parameter.

        Args:
            parameter: Navigation parameter
            source_id: Attached source of that parameter, None to disable the parameter
        """
        if source_id is not None and self.source(source_id).descriptor.parameter is not parameter:
            raise SourceError(f"source {source_id!r} does not provide {parameter.value}")

        with self._state_lock:
            self._active[parameter] = source_id
            self._mod_count += 1
        logger.info("active_source_changed", parameter=parameter.value, source=source_id)

    # Pipeline driving

    def _context(self) -> PipelineContext:
        reference_id = self.active_source(Parameter.DATETIME)
        return PipelineContext(
            store=self.store,
            parser=self.parser,
            config=self.config,
            sources=self._sources,
            directives=self._directives,
            time_reference=self._sources.get(reference_id) if reference_id is not None else None
        )

    def advance(self) -> bool:
        """
        Advance every stage of every source as far as the data permits.

        Never blocks on missing data. Calls are serialized.

        Returns:
            True if anything observable changed
        """
        with self._writer_lock:
            changed = self._apply_pending_quality()
            changed = self._apply_edits() or changed
            progressed = self.overseer.advance(self._order, self._context())

            if changed or progressed:
                with self._state_lock:
                    self._mod_count += 1
            return changed or progressed

    def _apply_pending_quality(self) -> bool:
        with self._state_lock:
            quality = self._pending_quality
            self._pending_quality = None

        if quality is None or quality == self.config.quality:
            return False

        self.config.set("quality", quality)
        positions = [s.source_id for s in self._order if s.kind is SampleKind.POSITION]
        self._reset(positions)
        logger.info("quality_changed", quality=quality, reset_sources=positions)
        return True

    def _apply_edits(self) -> bool:
        if self.edits is None:
            return False

        mod_count = self.edits.mod_count()
        if mod_count == self._edits_mod_count:
            return False

        directives = self.edits.directives()
        changed = set(self._directives) ^ set(directives)
        self._directives = directives
        self._edits_mod_count = mod_count

        affected = [s.source_id for s in self._order
                    if s.kind is not SampleKind.DATETIME and self._touches_history(s, changed)]
        if affected:
            self._reset(affected)
        logger.info("edits_changed", directives=len(directives), reset_sources=affected)
        return True

    def _touches_history(self, source: Source, directives: Iterable) -> bool:
        """True if a directive overlaps the source's assembled time range."""
        count = source.assembled_count
        if count == 0:
            return False
        first = int(source.log.get(0, "db_time"))
        last = int(source.log.get(count - 1, "db_time"))
        return any(d.ltime <= last and d.rtime >= first for d in directives)

    def _with_dependents(self, source_ids: Iterable[str]) -> List[str]:
        selected = set(source_ids)
        for source in self._order:
            if source.descriptor.base_source in selected:
                selected.add(source.source_id)
        return [s.source_id for s in self._order if s.source_id in selected]

    def _reset(self, source_ids: Iterable[str]):
        for source_id in self._with_dependents(source_ids):
            source = self._sources[source_id]
            source.reset(self._first_index(source.descriptor.channel))
            logger.info("source_reset", source=source_id, base_offset=source.base_offset)

    def reset(self, source_ids: Optional[Iterable[str]] = None):
        """
        Discard the processed state of sources and start over.

        Computed sources follow their base sources.

        Args:
            source_ids: Sources to reset, all when None
        """
        with self._writer_lock:
            if source_ids is None:
                source_ids = list(self._sources)
            for source_id in source_ids:
                self.source(source_id)
            self._reset(source_ids)
            with self._state_lock:
                self._mod_count += 1

    def change_track(self, store):
        """Switch to another channel store and reset every source."""
        with self._writer_lock:
            self.store = store
            self._reset(list(self._sources))
            with self._state_lock:
                self._mod_count += 1
        logger.info("track_changed", sources=len(self._sources))

    @property
    def quality(self) -> float:
        return self.config.quality

    def set_quality(self, quality: float):
        """
        Request a new smoothing quality, applied by the next advance().

        Raises:
            FusionConfigError: If quality is outside [0, 1]
        """
        if not 0.0 <= quality <= 1.0:
            raise FusionConfigError(f"quality must be within [0, 1], got {quality!r}")
        with self._state_lock:
            self._pending_quality = quality

    # Queries

    def query(self, parameter: Parameter, time: int, quality: Optional[float] = None) -> QueryResult:
        """
        Value of a parameter at a time, from its active source.

        Asking for a quality other than the current one schedules a
        reprocessing and reports NOT_YET_AVAILABLE until it is done.
        A quality outside [0, 1] is reported as INVALID.

        Args:
            parameter: Navigation parameter
            time: Query time, microseconds
            quality: Smoothing quality the caller wants, current when None

        Returns:
            QueryResult
        """
        if quality is not None and quality != self.config.quality:
            try:
                self.set_quality(quality)
            except FusionConfigError:
                logger.debug("query_quality_rejected", quality=quality)
                return QueryResult.failure(QueryStatus.INVALID, time)
            return QueryResult.failure(QueryStatus.NOT_YET_AVAILABLE, time)

        source_id = self.active_source(parameter)
        if source_id is None:
            return QueryResult.failure(QueryStatus.INVALID, time)

        return self.getter.query(self._sources[source_id], time, self._directives)

    def locate(self, time: int, parameters: Optional[Iterable[Parameter]] = None,
               offset: Optional[Tuple[float, float, float]] = None) -> Location:
        """
        Composite vessel state at a time.

        Args:
            time: Query time, microseconds
            parameters: Parameters to fill, all but date/time when None
            offset: Optional body-frame lever arm (x, y, z) in meters

        Returns:
            Location; unavailable parameters stay None with their status recorded
        """
        if parameters is None:
            parameters = [p for p in Parameter if p is not Parameter.DATETIME]

        location = Location(time=time)
        for parameter in parameters:
            result = self.query(parameter, time)
            location.status[parameter] = result.status
            if not result.is_valid:
                continue
            if parameter is Parameter.LATLONG:
                location.latitude, location.longitude = result.position
            elif parameter is not Parameter.DATETIME:
                setattr(location, parameter.value, result.value)

        if offset is not None:
            # Attitude for the lever arm even when not requested
            for parameter in (Parameter.TRACK, Parameter.ROLL, Parameter.PITCH):
                if parameter not in location.status:
                    result = self.query(parameter, time)
                    if result.is_valid:
                        setattr(location, parameter.value, result.value)
            shift_location(location, offset)

        return location

    def mod_count(self) -> int:
        """Counter that changes whenever query results could change."""
        with self._state_lock:
            return self._mod_count

    def progress(self) -> float:
        """Percentage of assembled samples already processed, over active sources."""
        assembled = processed = 0
        for parameter in Parameter:
            source_id = self.active_source(parameter)
            if source_id is None:
                continue
            snapshot = self._sources[source_id].snapshot()
            assembled += snapshot.assembled_count
            processed += snapshot.processed_count

        if assembled == 0:
            return 0.0
        return 100.0 * processed / assembled

    def get_statistics(self) -> Dict[str, Any]:
        """Get engine statistics."""
        stats = {
            'mod_count': self.mod_count(),
            'progress': self.progress(),
            'quality': self.quality,
            'directives': len(self._directives),
            'sources': {source_id: source.get_statistics()
                        for source_id, source in self._sources.items()}
        }
        if hasattr(self.parser, 'get_statistics'):
            stats['parser'] = self.parser.get_statistics()
        return stats
