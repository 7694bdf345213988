"""
Growable per-source sample storage backed by numpy structured arrays.
"""

import numpy as np
from typing import Tuple

from .types import SampleKind, Sample, Sample2D, TimeCorrectionEntry, Validity, AnySample
from ..math.constants import RECORD_LOG_BLOCK_SIZE

# Marker for "no embedded time of day" in the data_time column
NO_TIME = -1

SCALAR_DTYPE = np.dtype([
    ("db_time", "i8"),
    ("data_time", "i8"),
    ("corrected_time", "i8"),
    ("value", "f8"),
    ("validity", "i1"),
])

POSITION_DTYPE = np.dtype([
    ("db_time", "i8"),
    ("data_time", "i8"),
    ("corrected_time", "i8"),
    ("latitude", "f8"),
    ("longitude", "f8"),
    ("validity", "i1"),
])

DATETIME_DTYPE = np.dtype([
    ("db_time", "i8"),
    ("date", "i8"),
    ("time_of_day", "i8"),
    ("drift_shift", "i8"),
    ("validity", "i1"),
])

DTYPES = {
    SampleKind.SCALAR: SCALAR_DTYPE,
    SampleKind.POSITION: POSITION_DTYPE,
    SampleKind.DATETIME: DATETIME_DTYPE,
}

def row_to_sample(kind: SampleKind, row) -> AnySample:
    """
    Convert one structured-array row to its sample dataclass.

    Args:
        kind: Layout of the row
        row: numpy structured scalar

    Returns:
        Sample, Sample2D or TimeCorrectionEntry
    """
    if kind is SampleKind.DATETIME:
        return TimeCorrectionEntry(
            db_time=int(row["db_time"]),
            external_date=int(row["date"]),
            external_time_of_day=int(row["time_of_day"]),
            drift_shift=int(row["drift_shift"]),
            validity=Validity(int(row["validity"]))
        )

    data_time = int(row["data_time"])
    if data_time == NO_TIME:
        data_time = None

    if kind is SampleKind.POSITION:
        return Sample2D(
            db_time=int(row["db_time"]),
            corrected_time=int(row["corrected_time"]),
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            validity=Validity(int(row["validity"])),
            data_time=data_time
        )

    return Sample(
        db_time=int(row["db_time"]),
        corrected_time=int(row["corrected_time"]),
        value=float(row["value"]),
        validity=Validity(int(row["validity"])),
        data_time=data_time
    )

def sample_to_row(kind: SampleKind, sample: AnySample) -> tuple:
    """Inverse of row_to_sample, as a tuple matching the kind's dtype."""
    if kind is SampleKind.DATETIME:
        return (sample.db_time, sample.external_date, sample.external_time_of_day,
                sample.drift_shift, int(sample.validity))

    data_time = NO_TIME if sample.data_time is None else sample.data_time
    if kind is SampleKind.POSITION:
        return (sample.db_time, data_time, sample.corrected_time,
                sample.latitude, sample.longitude, int(sample.validity))
    return (sample.db_time, data_time, sample.corrected_time,
            sample.value, int(sample.validity))

class RecordLog:
    """
    Append-only sample sequence for one source.

    Rows are addressed by logical index only. Storage grows in whole blocks;
    growth copies into a new array so that a reader holding a snapshot of
    the previous array keeps seeing consistent rows.
    """

    def __init__(self, kind: SampleKind, block_size: int = RECORD_LOG_BLOCK_SIZE):
        """
        Initialize an empty log.

        Args:
            kind: Sample layout
            block_size: Growth step in rows
        """
        self.kind = kind
        self.dtype = DTYPES[kind]
        self.block_size = block_size
        self._rows = np.zeros(0, dtype=self.dtype)
        self._length = 0

    def __len__(self) -> int:
        return self._length

    @property
    def capacity(self) -> int:
        return len(self._rows)

    def _reserve(self, size: int):
        """Grow storage to hold at least size rows."""
        if size <= self.capacity:
            return
        blocks = -(-size // self.block_size)
        rows = np.zeros(blocks * self.block_size, dtype=self.dtype)
        rows[:self._length] = self._rows[:self._length]
        self._rows = rows

    def append(self, sample: AnySample) -> int:
        """
        Append a sample.

        Returns:
            Logical index of the new row
        """
        index = self._length
        self._reserve(index + 1)
        self._rows[index] = sample_to_row(self.kind, sample)
        self._length += 1
        return index

    def _check_index(self, index: int):
        if not 0 <= index < self._length:
            raise IndexError(f"record log index {index} out of range [0, {self._length})")

    def __getitem__(self, index: int) -> AnySample:
        self._check_index(index)
        return row_to_sample(self.kind, self._rows[index])

    def __iter__(self):
        for index in range(self._length):
            yield row_to_sample(self.kind, self._rows[index])

    def get(self, index: int, field: str):
        """Single field of one row."""
        self._check_index(index)
        return self._rows[field][index]

    def update(self, index: int, **fields):
        """Overwrite fields of an existing row in place."""
        self._check_index(index)
        for name, value in fields.items():
            self._rows[name][index] = value

    def column(self, name: str, start: int = 0, stop: int = None) -> np.ndarray:
        """
        View of one column over [start, stop).

        Args:
            name: Field name
            start: First logical index
            stop: End logical index, defaults to the log length
        """
        if stop is None or stop > self._length:
            stop = self._length
        return self._rows[name][start:stop]

    def snapshot(self) -> Tuple[np.ndarray, int]:
        """Current backing array and length, for lock-protected readers."""
        return (self._rows, self._length)

    def clear(self):
        """Drop all rows. A fresh array is allocated, old snapshots stay intact."""
        self._rows = np.zeros(0, dtype=self.dtype)
        self._length = 0

    def to_array(self) -> np.ndarray:
        """Copy of the filled rows."""
        return self._rows[:self._length].copy()
