"""
Row-to-sample parsing for one source binding of a data file

A SampleParser is configured once from the header's ColumnMapping as an ordered
list of (parse step, column indices) pairs. Each row starts from the entity's
static transform and every step overwrites only its own field(s).
"""
import logging
import math
import re
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from config.settings import (
    TICKS_PER_HOUR, TICKS_PER_MILLISECOND, TICKS_PER_MINUTE, TICKS_PER_SECOND
)
from core.column_mapping import ColumnMapping
from core.coordinate_frame import CoordinateFrame, RotationFormat, rotation_from_components
from core.tracking_data import Sample

logger = logging.getLogger(__name__)


class TimeFormat(Enum):
    """Encoding of the timestamp column"""
    LONG = "long"  # integer ticks
    FLOAT = "float"  # seconds
    STRING = "string"  # [date ]HH:MM:SS.mmm

    @classmethod
    def from_token(cls, token: Optional[str]) -> 'TimeFormat':
        """Parse a descriptor token, defaulting to FLOAT"""
        if token:
            try:
                return cls(token.strip().lower())
            except ValueError:
                logger.warning(f"Unknown time format '{token}', using float")
        return cls.FLOAT


def _parse_int(text: str) -> Optional[int]:
    """ASCII integer with optional sign and surrounding blanks, no digit separators"""
    if '_' in text or not text.isascii():
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def parse_long_ticks(text: str) -> Optional[int]:
    return _parse_int(text)


def parse_float_ticks(text: str) -> Optional[int]:
    """Seconds as float -> ticks"""
    if '_' in text or not text.isascii():
        return None
    try:
        seconds = float(text.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds):
        return None
    return int(round(seconds * TICKS_PER_SECOND))


def parse_time_of_day_ticks(text: str) -> Optional[int]:
    """
    `[date ]HH:MM:SS.mmm` -> ticks

    Anything before the last space is ignored. The part after the dot is an
    integer count of milliseconds, so `01.5` is 1 s + 5 ms.
    """
    text = text.strip()
    if ' ' in text:
        text = text.split(' ')[-1]

    parts = re.split(r'[:.]', text)
    if len(parts) != 4:
        return None
    values = [_parse_int(p) for p in parts]
    if any(v is None for v in values):
        return None

    hours, minutes, seconds, milliseconds = values
    return (hours * TICKS_PER_HOUR + minutes * TICKS_PER_MINUTE
            + seconds * TICKS_PER_SECOND + milliseconds * TICKS_PER_MILLISECOND)


_TIMESTAMP_PARSERS = {
    TimeFormat.LONG: parse_long_ticks,
    TimeFormat.FLOAT: parse_float_ticks,
    TimeFormat.STRING: parse_time_of_day_ticks,
}


class TimestampParser:
    """
    Adaptive timestamp parsing

    The format that last worked is tried first, then the others in the order
    LONG, FLOAT, STRING. A fallback that succeeds becomes the new current
    format.
    """

    def __init__(self, time_format: TimeFormat = TimeFormat.FLOAT, label: str = ""):
        self.time_format = time_format
        self.label = label
        self.failures = 0

    def parse(self, text: str) -> int:
        candidates = [self.time_format] + [f for f in TimeFormat if f != self.time_format]
        for time_format in candidates:
            ticks = _TIMESTAMP_PARSERS[time_format](text)
            if ticks is not None:
                if time_format != self.time_format:
                    logger.info(f"{self.label}: timestamp format switched from "
                                f"{self.time_format.value} to {time_format.value}")
                    self.time_format = time_format
                return ticks

        self.failures += 1
        if self.failures == 1:
            logger.error(f"{self.label}: no valid timestamp in '{text}', using 0")
        return 0


ParseStep = Tuple[Callable[[Sequence[str], List[int], Sample], None], List[int]]


class SampleParser:
    """Turns rows of one data file into samples of one entity"""

    def __init__(
        self,
        mapping: ColumnMapping,
        snapshot,
        frame: CoordinateFrame,
        condition_filter: Optional[str] = None,
        session_filter: Optional[str] = None,
        label: str = ""
    ):
        """
        Args:
            mapping: Resolved columns of this binding
            snapshot: EntitySnapshot of the target entity
            frame: Study coordinate frame
            condition_filter: Required value of the condition filter column
            session_filter: Required value of the session filter column
            label: Name used in log messages (file and entity)
        """
        self.mapping = mapping
        self.snapshot = snapshot
        self.frame = frame
        self.condition_filter = condition_filter or ""
        self.session_filter = session_filter or ""
        self.label = label

        self.timestamp_parser = TimestampParser(snapshot.time_format, label)
        self.error_count = 0
        self._warned_fields = set()
        self._warned_quaternion_xyz = False

        self.steps: List[ParseStep] = self._build_steps(mapping)

    def _build_steps(self, mapping: ColumnMapping) -> List[ParseStep]:
        steps: List[ParseStep] = []
        if mapping.timestamp is not None:
            steps.append((self.parse_timestamp, [mapping.timestamp]))
        if mapping.state is not None:
            steps.append((self.parse_state, [mapping.state]))
        if mapping.position is not None:
            steps.append((self.parse_position, mapping.position))
        if mapping.scale is not None:
            steps.append((self.parse_scale, mapping.scale))
        rotation = mapping.rotation
        if rotation is not None:
            if len(rotation) == 4:
                steps.append((self.parse_rotation_wxyz, rotation))
            else:
                steps.append((self.parse_rotation_xyz, rotation))
        return steps

    @property
    def has_state_data(self) -> bool:
        return self.mapping.state is not None

    def accepts(self, row: Sequence[str]) -> bool:
        """False if a resolved filter column does not hold the filter value"""
        if self.mapping.condition_filter is not None:
            if _cell(row, self.mapping.condition_filter) != self.condition_filter:
                return False
        if self.mapping.session_filter is not None:
            if _cell(row, self.mapping.session_filter) != self.session_filter:
                return False
        return True

    def parse_row(self, row: Sequence[str]) -> Optional[Sample]:
        """Sample for `row`, None if the row is filtered out"""
        if not self.accepts(row):
            return None

        local = self.snapshot.local_transform
        sample = Sample(position=local.position, rotation=local.rotation, scale=local.scale)
        for step, indices in self.steps:
            step(row, indices, sample)
        return sample

    def parse_timestamp(self, row: Sequence[str], indices: List[int], sample: Sample):
        sample.timestamp = self.timestamp_parser.parse(_cell(row, indices[0]))

    def parse_state(self, row: Sequence[str], indices: List[int], sample: Sample):
        sample.state = _cell(row, indices[0])

    def parse_position(self, row: Sequence[str], indices: List[int], sample: Sample):
        raw = self._floats(row, indices, ("position_x", "position_y", "position_z"))
        sample.position = self.frame.normalize_position(raw, self.snapshot.unit_factor)

    def parse_scale(self, row: Sequence[str], indices: List[int], sample: Sample):
        sample.scale = self._floats(row, indices, ("scale_x", "scale_y", "scale_z"))

    def parse_rotation_wxyz(self, row: Sequence[str], indices: List[int], sample: Sample):
        raw = self._floats(row, indices, ("rotation_w", "rotation_x", "rotation_y", "rotation_z"))
        sample.rotation = self.frame.normalize_rotation(raw)

    def parse_rotation_xyz(self, row: Sequence[str], indices: List[int], sample: Sample):
        components = self._floats(row, indices, ("rotation_x", "rotation_y", "rotation_z"))
        rotation_format = self.snapshot.rotation_format
        if rotation_format == RotationFormat.QUATERNION and not self._warned_quaternion_xyz:
            logger.warning(f"{self.label}: three rotation columns with quaternion format, using identity")
            self._warned_quaternion_xyz = True
        raw = rotation_from_components(components, rotation_format)
        sample.rotation = self.frame.normalize_rotation(raw)

    def _floats(self, row: Sequence[str], indices: List[int], names: Sequence[str]) -> np.ndarray:
        values = np.zeros(len(indices))
        for k, (index, name) in enumerate(zip(indices, names)):
            text = _cell(row, index)
            try:
                values[k] = float(text)
            except ValueError:
                self.error_count += 1
                if name not in self._warned_fields:
                    self._warned_fields.add(name)
                    logger.warning(f"{self.label}: could not parse {name} value '{text}', using 0.0")
        return values

    def log_summary(self):
        """Report parse problems accumulated over the whole file"""
        if self.error_count:
            logger.warning(f"{self.label}: {self.error_count} numeric field(s) replaced by 0.0")
        if self.timestamp_parser.failures:
            logger.error(f"{self.label}: {self.timestamp_parser.failures} row(s) without valid timestamp")


def _cell(row: Sequence[str], index: int) -> str:
    """Field of a row, empty string past the row's end"""
    if index < len(row):
        value = row[index]
        return "" if value is None else value
    return ""
