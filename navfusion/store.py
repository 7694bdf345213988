"""
Channel Store interface and an in-memory implementation.

The engine only reads from a channel store. Records are addressed by a
global index that starts at the channel's first available index, which
may be above zero when the head of a channel has been dropped.
"""

import bisect
import threading
from typing import Optional, Tuple, List, Dict, Union, Protocol

from .errors import SourceError

class ChannelStore(Protocol):
    """Read side of an append-only, time-indexed record store."""

    def get_data_range(self, channel: str) -> Optional[Tuple[int, int]]:
        """(first, last) global record indices, None if the channel is empty or unknown."""

    def get_record(self, channel: str, index: int) -> Optional[Tuple[int, bytes]]:
        """(db_time, raw_bytes) of one record, None if it is not available."""

    def is_writable(self, channel: str) -> bool:
        """True while records may still be appended to the channel."""

    def find_by_time(self, channel: str, time: int) -> Optional[Tuple[int, int]]:
        """Indices bracketing time, None outside the channel's time range."""

class _Channel:
    def __init__(self, first_index: int):
        self.first_index = first_index
        self.times: List[int] = []
        self.records: List[bytes] = []
        self.writable = True

class MemoryChannelStore:
    """
    Channel store kept in memory, for tests and log replay.

    Thread-safe: a writer may append while the engine reads.
    """

    def __init__(self):
        self._channels: Dict[str, _Channel] = {}
        self._lock = threading.Lock()

    def create_channel(self, channel: str, first_index: int = 0):
        """
        Create an empty writable channel.

        Args:
            channel: Channel name
            first_index: Global index of the first record
        """
        with self._lock:
            if channel in self._channels:
                raise SourceError(f"channel {channel!r} already exists")
            self._channels[channel] = _Channel(first_index)

    def _get(self, channel: str) -> _Channel:
        if channel not in self._channels:
            self._channels[channel] = _Channel(0)
        return self._channels[channel]

    def append(self, channel: str, time: int, raw: Union[bytes, str]) -> int:
        """
        Append one record, creating the channel on first use.

        Args:
            channel: Channel name
            time: Record time in microseconds, not below the previous record
            raw: Record payload

        Returns:
            Global index of the record
        """
        if isinstance(raw, str):
            raw = raw.encode('ascii')

        with self._lock:
            data = self._get(channel)
            if not data.writable:
                raise SourceError(f"channel {channel!r} is closed")
            if data.times and time < data.times[-1]:
                raise ValueError(f"record time {time} precedes the previous record")
            data.times.append(time)
            data.records.append(raw)
            return data.first_index + len(data.records) - 1

    def extend(self, channel: str, records) -> int:
        """Append (time, raw) pairs. Returns the number appended."""
        count = 0
        for time, raw in records:
            self.append(channel, time, raw)
            count += 1
        return count

    def close(self, channel: str):
        """Mark the channel read-only."""
        with self._lock:
            self._get(channel).writable = False

    def channels(self) -> List[str]:
        with self._lock:
            return list(self._channels)

    def get_data_range(self, channel: str) -> Optional[Tuple[int, int]]:
        with self._lock:
            data = self._channels.get(channel)
            if data is None or not data.records:
                return None
            return (data.first_index, data.first_index + len(data.records) - 1)

    def get_record(self, channel: str, index: int) -> Optional[Tuple[int, bytes]]:
        with self._lock:
            data = self._channels.get(channel)
            if data is None:
                return None
            local = index - data.first_index
            if not 0 <= local < len(data.records):
                return None
            return (data.times[local], data.records[local])

    def is_writable(self, channel: str) -> bool:
        with self._lock:
            data = self._channels.get(channel)
            return data is None or data.writable

    def find_by_time(self, channel: str, time: int) -> Optional[Tuple[int, int]]:
        """
        Binary search of a record time.

        Returns:
            (index, index) on an exact hit, (left, right) around time
            otherwise, None if time is outside the channel
        """
        with self._lock:
            data = self._channels.get(channel)
            if data is None or not data.times:
                return None
            if time < data.times[0] or time > data.times[-1]:
                return None

            right = bisect.bisect_left(data.times, time)
            if data.times[right] == time:
                return (data.first_index + right, data.first_index + right)
            return (data.first_index + right - 1, data.first_index + right)
