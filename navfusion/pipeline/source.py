"""
Per-source pipeline state.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, NamedTuple

import numpy as np

from ..sensors.types import SourceDescriptor, SampleKind
from ..sensors.record_log import RecordLog
from ..config import FusionConfig

class SourceSnapshot(NamedTuple):
    """Published view of a source, safe to read without the writer."""

    rows: np.ndarray
    processed_count: int
    assembled_count: int
    finalized: bool

class Source:
    """
    One attached navigation source: descriptor, record log and progress indices.

    Progress indices only grow between resets and always satisfy
    processed <= preprocessed <= assembled <= raw_cursor - base_offset.
    aligned_count sits between preprocessed_count and assembled_count.
    """

    def __init__(self, descriptor: SourceDescriptor, block_size: int):
        self.descriptor = descriptor
        self.kind: SampleKind = descriptor.sample_kind
        self.log = RecordLog(self.kind, block_size)

        self.base_offset = 0
        self.raw_cursor = 0
        self.aligned_count = 0
        self.preprocessed_count = 0
        self.processed_count = 0

        # Simplifier state
        self.anchor: Optional[int] = None
        self.prev_anchor: Optional[int] = None
        self.scan = 0

        # Set once the channel is closed and every record has been read
        self.raw_finished = False

        self.statistics = {
            'malformed_records': 0,
            'skipped_records': 0,
            'invalid_samples': 0,
            'user_fixed_samples': 0,
            'anchors': 0,
            'resets': 0
        }

        self._lock = threading.Lock()
        self._published = SourceSnapshot(self.log.snapshot()[0], 0, 0, False)

    @property
    def source_id(self) -> str:
        return self.descriptor.source_id

    @property
    def assembled_count(self) -> int:
        return len(self.log)

    @property
    def finalized(self) -> bool:
        """No more samples will arrive and every stage has caught up."""
        return self.raw_finished and self.processed_count == self.assembled_count

    def reset(self, base_offset: int):
        """
        Rewind all indices and drop the log.

        Args:
            base_offset: Global index of the first record to read next
        """
        self.log.clear()
        self.base_offset = base_offset
        self.raw_cursor = base_offset
        self.aligned_count = 0
        self.preprocessed_count = 0
        self.processed_count = 0
        self.anchor = None
        self.prev_anchor = None
        self.scan = 0
        self.raw_finished = False
        self.statistics['resets'] += 1
        self.publish()

    def publish(self):
        """Make the current processed prefix visible to readers."""
        rows, _ = self.log.snapshot()
        with self._lock:
            self._published = SourceSnapshot(rows, self.processed_count,
                                             self.assembled_count, self.finalized)

    def snapshot(self) -> SourceSnapshot:
        with self._lock:
            return self._published

    def check_invariant(self) -> bool:
        return (0 <= self.processed_count <= self.preprocessed_count
                <= self.aligned_count <= self.assembled_count
                <= self.raw_cursor - self.base_offset)

    def progress_indices(self) -> Dict[str, int]:
        return {
            'raw_cursor': self.raw_cursor,
            'base_offset': self.base_offset,
            'assembled': self.assembled_count,
            'aligned': self.aligned_count,
            'preprocessed': self.preprocessed_count,
            'processed': self.processed_count
        }

    def get_statistics(self) -> Dict[str, Any]:
        stats = dict(self.statistics)
        stats.update(self.progress_indices())
        stats['parameter'] = self.descriptor.parameter.value
        stats['source_kind'] = self.descriptor.source_kind.value
        return stats

@dataclass
class PipelineContext:
    """Everything a stage needs besides the source it works on."""

    store: Any
    parser: Any
    config: FusionConfig
    sources: Dict[str, Source]
    directives: List[Any] = field(default_factory=list)
    time_reference: Optional[Source] = None

    def base_of(self, source: Source) -> Optional[Source]:
        base_id = source.descriptor.base_source
        return None if base_id is None else self.sources[base_id]
