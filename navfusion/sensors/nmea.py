"""
NMEA sentence parsing for navigation records.
"""

import calendar
import datetime
from typing import Optional, Dict, Any, List, Union

from .types import Parameter, SourceKind, ParsedRecord
from ..math.constants import KNOTS_TO_MS, US_PER_SECOND
from ..logging_config import get_logger

logger = get_logger(__name__)

# Sentences that can provide each parameter, in order of preference
PARAMETER_SENTENCES = {
    Parameter.LATLONG: ("GGA", "RMC"),
    Parameter.ALTITUDE: ("GGA",),
    Parameter.TRACK: ("HDT", "RMC", "VTG"),
    Parameter.ROLL: ("SHR",),
    Parameter.PITCH: ("SHR",),
    Parameter.SPEED: ("RMC", "VTG"),
    Parameter.DEPTH: ("DPT", "DBT"),
    Parameter.DATETIME: ("RMC", "ZDA"),
}

class NMEAParser:
    """
    Parser for NMEA 0183 sentences recorded in navigation channels.

    Supports:
    - GGA: position, altitude, time of day
    - RMC: position, course, speed, date and time
    - HDT: true heading
    - VTG: course and speed over ground
    - DPT / DBT: water depth
    - ZDA: date and time
    - PASHR: attitude (heading, roll, pitch)

    Computed sources (track and speed derived from positions) are parsed
    as positions.
    """

    def __init__(self):
        self.sentence_count = 0
        self.parse_errors = 0

    def calculate_checksum(self, sentence: str) -> str:
        """Calculate NMEA checksum."""
        checksum = 0
        for char in sentence:
            checksum ^= ord(char)
        return f"{checksum:02X}"

    def validate_checksum(self, sentence: str) -> bool:
        """Validate NMEA sentence checksum."""
        if '*' not in sentence:
            return False

        data, checksum = sentence.split('*', 1)
        data = data[1:]  # Remove '$' prefix

        calculated = self.calculate_checksum(data)
        return calculated == checksum.strip().upper()

    def parse_coordinate(self, coord_str: str, direction: str) -> Optional[float]:
        """
        Parse NMEA coordinate format.

        Args:
            coord_str: Coordinate string (e.g., "4916.45")
            direction: Direction (N/S for latitude, E/W for longitude)

        Returns:
            Coordinate in decimal degrees
        """
        if not coord_str or not direction:
            return None

        try:
            # Parse DDMM.MMMM format
            if len(coord_str) < 4:
                return None

            dot_pos = coord_str.find('.')
            if dot_pos == -1:
                dot_pos = len(coord_str)

            degrees_len = dot_pos - 2
            if degrees_len < 1:
                return None

            degrees = float(coord_str[:degrees_len])
            minutes = float(coord_str[degrees_len:])

            decimal_degrees = degrees + minutes / 60.0

            if direction in ['S', 'W']:
                decimal_degrees = -decimal_degrees

            return decimal_degrees

        except (ValueError, IndexError):
            return None

    def parse_time_of_day(self, time_str: str) -> Optional[int]:
        """
        Parse hhmmss[.sss] into microseconds since midnight.

        Returns:
            Microseconds, or None if the field is malformed
        """
        if len(time_str) < 6 or not time_str[:6].isdigit():
            return None

        hours = int(time_str[0:2])
        minutes = int(time_str[2:4])
        seconds = int(time_str[4:6])
        if hours > 23 or minutes > 59 or seconds > 60:
            return None

        fraction = 0
        if len(time_str) > 6:
            if time_str[6] != '.' or not time_str[7:].isdigit():
                return None
            fraction = round(float("0" + time_str[6:]) * US_PER_SECOND)

        return ((hours * 60 + minutes) * 60 + seconds) * US_PER_SECOND + fraction

    def parse_date(self, day: int, month: int, year: int) -> Optional[int]:
        """UTC midnight of the given date in microseconds since the epoch."""
        try:
            date = datetime.date(year, month, day)
        except ValueError:
            return None
        return calendar.timegm(date.timetuple()) * US_PER_SECOND

    def split_sentence(self, sentence: str) -> Optional[List[str]]:
        """
        Validate a sentence and split it into fields.

        Returns:
            Field list with the talker+type in fields[0], None if invalid
        """
        sentence = sentence.strip()

        if not sentence.startswith('$') or '*' not in sentence:
            return None

        if not self.validate_checksum(sentence):
            return None

        data_part = sentence.split('*')[0]
        fields = data_part.split(',')
        if len(fields[0]) < 4:
            return None
        return fields

    def _float(self, field: str) -> Optional[float]:
        try:
            return float(field)
        except ValueError:
            return None

    def parse_gga(self, parameter: Parameter, fields: list) -> Optional[ParsedRecord]:
        """
        Parse GGA sentence: Global Positioning System Fix Data.

        Format: $GPGGA,time,lat,lat_dir,lon,lon_dir,quality,satellites,hdop,alt,alt_unit,geoid,geoid_unit,dgps_time,dgps_id*checksum
        """
        if len(fields) < 10:
            return None

        data_time = self.parse_time_of_day(fields[1])
        if not fields[6] or not fields[6].isdigit() or int(fields[6]) == 0:
            return None

        if parameter is Parameter.ALTITUDE:
            altitude = self._float(fields[9])
            if altitude is None:
                return None
            return ParsedRecord(data_time=data_time, value=altitude)

        lat = self.parse_coordinate(fields[2], fields[3])
        lon = self.parse_coordinate(fields[4], fields[5])
        if lat is None or lon is None:
            return None
        return ParsedRecord(data_time=data_time, latitude=lat, longitude=lon)

    def parse_rmc(self, parameter: Parameter, fields: list) -> Optional[ParsedRecord]:
        """
        Parse RMC sentence: Recommended Minimum Navigation Information.

        Format: $GPRMC,time,status,lat,lat_dir,lon,lon_dir,speed,course,date,mag_var,mag_var_dir*checksum
        """
        if len(fields) < 10:
            return None

        data_time = self.parse_time_of_day(fields[1])

        if parameter is Parameter.DATETIME:
            date_str = fields[9]
            if data_time is None or len(date_str) != 6 or not date_str.isdigit():
                return None
            date = self.parse_date(int(date_str[0:2]), int(date_str[2:4]), 2000 + int(date_str[4:6]))
            if date is None:
                return None
            return ParsedRecord(data_time=data_time, date=date)

        # Status (A=active, V=void)
        if fields[2] != 'A':
            return None

        if parameter is Parameter.SPEED:
            speed = self._float(fields[7])
            if speed is None:
                return None
            return ParsedRecord(data_time=data_time, value=speed * KNOTS_TO_MS)

        if parameter is Parameter.TRACK:
            course = self._float(fields[8])
            if course is None:
                return None
            return ParsedRecord(data_time=data_time, value=course % 360.0)

        lat = self.parse_coordinate(fields[3], fields[4])
        lon = self.parse_coordinate(fields[5], fields[6])
        if lat is None or lon is None:
            return None
        return ParsedRecord(data_time=data_time, latitude=lat, longitude=lon)

    def parse_hdt(self, fields: list) -> Optional[ParsedRecord]:
        """Parse HDT sentence: $HEHDT,heading,T*checksum"""
        if len(fields) < 2:
            return None
        heading = self._float(fields[1])
        if heading is None:
            return None
        return ParsedRecord(value=heading % 360.0)

    def parse_vtg(self, parameter: Parameter, fields: list) -> Optional[ParsedRecord]:
        """Parse VTG sentence: $GPVTG,course_t,T,course_m,M,speed_kn,N,speed_kmh,K*checksum"""
        if len(fields) < 6:
            return None
        if parameter is Parameter.TRACK:
            course = self._float(fields[1])
            return None if course is None else ParsedRecord(value=course % 360.0)
        speed = self._float(fields[5])
        return None if speed is None else ParsedRecord(value=speed * KNOTS_TO_MS)

    def parse_dpt(self, fields: list) -> Optional[ParsedRecord]:
        """Parse DPT sentence: $SDDPT,depth,offset*checksum"""
        if len(fields) < 2:
            return None
        depth = self._float(fields[1])
        if depth is None:
            return None
        if len(fields) > 2 and fields[2]:
            offset = self._float(fields[2])
            if offset is not None:
                depth += offset
        return ParsedRecord(value=depth)

    def parse_dbt(self, fields: list) -> Optional[ParsedRecord]:
        """Parse DBT sentence: $SDDBT,feet,f,meters,M,fathoms,F*checksum"""
        if len(fields) < 4:
            return None
        depth = self._float(fields[3])
        return None if depth is None else ParsedRecord(value=depth)

    def parse_zda(self, fields: list) -> Optional[ParsedRecord]:
        """Parse ZDA sentence: $GPZDA,time,day,month,year,zone_h,zone_m*checksum"""
        if len(fields) < 5:
            return None
        data_time = self.parse_time_of_day(fields[1])
        if data_time is None or not all(f.isdigit() for f in fields[2:5]):
            return None
        date = self.parse_date(int(fields[2]), int(fields[3]), int(fields[4]))
        if date is None:
            return None
        return ParsedRecord(data_time=data_time, date=date)

    def parse_shr(self, parameter: Parameter, fields: list) -> Optional[ParsedRecord]:
        """Parse PASHR sentence: $PASHR,time,heading,T,roll,pitch,heave,...*checksum"""
        if len(fields) < 6:
            return None
        data_time = self.parse_time_of_day(fields[1])
        value = self._float(fields[4] if parameter is Parameter.ROLL else fields[5])
        if value is None:
            return None
        return ParsedRecord(data_time=data_time, value=value)

    def parse_sentence(self, parameter: Parameter, source_kind: SourceKind,
                       sentence: str) -> Optional[ParsedRecord]:
        """
        Parse a single NMEA sentence for one parameter.

        Args:
            parameter: Parameter to extract
            source_kind: Computed sources take positions instead of values
            sentence: NMEA sentence string

        Returns:
            ParsedRecord, or None if the sentence does not provide the parameter
        """
        fields = self.split_sentence(sentence)
        if fields is None:
            return None

        wanted = Parameter.LATLONG if source_kind is SourceKind.COMPUTED else parameter
        sentence_type = fields[0][-3:]
        if sentence_type not in PARAMETER_SENTENCES[wanted]:
            return None

        if sentence_type == "GGA":
            return self.parse_gga(wanted, fields)
        if sentence_type == "RMC":
            return self.parse_rmc(wanted, fields)
        if sentence_type == "HDT":
            return self.parse_hdt(fields)
        if sentence_type == "VTG":
            return self.parse_vtg(wanted, fields)
        if sentence_type == "DPT":
            return self.parse_dpt(fields)
        if sentence_type == "DBT":
            return self.parse_dbt(fields)
        if sentence_type == "ZDA":
            return self.parse_zda(fields)
        return self.parse_shr(wanted, fields)

    def parse(self, parameter: Parameter, source_kind: SourceKind,
              raw: Union[bytes, str]) -> Optional[ParsedRecord]:
        """
        Parse one raw record, which may hold several sentences.

        The first sentence providing the parameter wins.

        Args:
            parameter: Parameter to extract
            source_kind: Raw or computed
            raw: Record payload

        Returns:
            ParsedRecord, or None if the record is malformed or irrelevant
        """
        self.sentence_count += 1

        if isinstance(raw, bytes):
            raw = raw.decode('ascii', errors='replace')

        for line in raw.splitlines():
            record = self.parse_sentence(parameter, source_kind, line)
            if record is not None:
                return record

        self.parse_errors += 1
        logger.debug("record_not_parsed", parameter=parameter.value, size=len(raw))
        return None

    def get_statistics(self) -> Dict[str, Any]:
        """Get parser statistics."""
        return {
            'records_processed': self.sentence_count,
            'parse_errors': self.parse_errors,
            'error_rate': self.parse_errors / max(1, self.sentence_count)
        }
