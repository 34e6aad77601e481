"""
Per-entity temporal index

Holds one sorted SampleSeries per (session, condition) cell together with the
cell's maximum speed, and answers the "which sample is current at time T"
query that playback runs every frame for every visible entity.
"""
import logging
from typing import Callable, Iterator, List, Optional

import numpy as np

from config.settings import app_settings
from core.tracking_data import Sample, SampleSeries

logger = logging.getLogger(__name__)


class TimeSeriesIndex:
    """Grid of sample series, fixed at session_count x condition_count"""

    def __init__(self, session_count: int, condition_count: int, is_static: bool = False):
        if session_count < 0 or condition_count < 0:
            raise ValueError("Session and condition counts must not be negative")
        self.session_count = session_count
        self.condition_count = condition_count
        self.is_static = is_static

        self._cells: List[List[SampleSeries]] = [
            [SampleSeries.empty() for _ in range(condition_count)]
            for _ in range(session_count)
        ]
        self._max_speeds = np.zeros((session_count, condition_count))

    def in_range(self, session: int, condition: int) -> bool:
        return 0 <= session < self.session_count and 0 <= condition < self.condition_count

    def _cell(self, session: int, condition: int) -> SampleSeries:
        if not self.in_range(session, condition):
            raise IndexError(
                f"Cell ({session}, {condition}) outside of "
                f"{self.session_count}x{self.condition_count} grid")
        return self._cells[session][condition]

    def set_cell(self, session: int, condition: int, series: SampleSeries, max_speed: float) -> bool:
        """
        Install the samples of one cell

        The cell's max speed becomes the larger of the stored and the new one.

        Args:
            session: Session id
            condition: Condition id
            series: Samples sorted by timestamp
            max_speed: Maximum speed within `series` (m/s)

        Returns:
            True if samples already present in the cell were replaced
        """
        replaced = self.has_data(session, condition)
        if not series.is_sorted():
            raise ValueError(f"Samples for cell ({session}, {condition}) are not sorted by timestamp")
        _freeze(series)
        self._cells[session][condition] = series
        self._max_speeds[session, condition] = max(max_speed, self._max_speeds[session, condition])
        return replaced

    def shift_timestamps(self, session: int, condition: int, offset: int):
        """Subtract `offset` ticks from every timestamp in a cell"""
        series = self._cell(session, condition)
        if len(series) == 0:
            return
        timestamps = series.timestamps - np.int64(offset)
        timestamps.setflags(write=False)
        series.timestamps = timestamps

    def has_data(self, session: int, condition: int) -> bool:
        return self.in_range(session, condition) and len(self._cells[session][condition]) > 0

    def get_samples(self, session: int, condition: int) -> SampleSeries:
        """All samples of a cell (empty series if it holds no data)"""
        return self._cell(session, condition)

    def get_sample_count(self, session: int, condition: int) -> int:
        return len(self._cell(session, condition))

    def first_timestamp(self, session: int, condition: int) -> Optional[int]:
        """Timestamp of a cell's first sample, None if it holds no data"""
        if not self.has_data(session, condition):
            return None
        return int(self._cells[session][condition].timestamps[0])

    def get_min_timestamp(self, session: int, condition: int) -> int:
        """First timestamp of a cell, 0 if out of range or empty"""
        if not self.has_data(session, condition):
            return 0
        return int(self._cells[session][condition].timestamps[0])

    def get_max_timestamp(self, session: int, condition: int) -> int:
        """Last timestamp of a cell, 0 if out of range or empty"""
        if not self.has_data(session, condition):
            return 0
        return int(self._cells[session][condition].timestamps[-1])

    def get_max_speed(self, session: int, condition: int) -> float:
        if not self.in_range(session, condition):
            return 0.0
        return float(self._max_speeds[session, condition])

    def get_index_from_timestamp(
        self,
        timestamp: int,
        session: int,
        condition: int,
        start_index: int = 0,
        iteration_limit: Optional[int] = None
    ) -> int:
        """
        Index of the sample at or directly before `timestamp`

        Bounded bisection between `start_index` and the last sample. The search
        settles on the lower bound once the interval has closed in, and returns
        0 if it has not converged after `iteration_limit` steps. Static
        entities always answer 0.

        Args:
            timestamp: Query time in ticks
            session: Session id
            condition: Condition id
            start_index: Lower bound for the search, use when the result is
                         known to be at least this large
            iteration_limit: Maximum bisection steps (defaults to settings)

        Returns:
            Sample index
        """
        if self.is_static:
            return 0

        if iteration_limit is None:
            iteration_limit = app_settings.index.search_iteration_limit

        timestamps = self._cell(session, condition).timestamps
        count = len(timestamps)
        if count == 0:
            return 0
        if start_index >= count:
            return count - 1

        first = start_index
        last = count - 1
        current = first + (last - first) // 2
        for _ in range(iteration_limit):
            if current == first or current == last:
                return first

            current_timestamp = timestamps[current]
            if current_timestamp == timestamp:
                return current
            elif current_timestamp < timestamp:
                first = current
            else:
                last = current
            current = first + (last - first) // 2

        logger.debug(f"Index search for {timestamp} did not converge in {iteration_limit} steps")
        return 0

    def get_filtered_samples(
        self,
        session: int,
        condition: int,
        first_index: int,
        last_index: int,
        predicate: Callable[[Sample, Sample], bool]
    ) -> Iterator[Sample]:
        """
        Lazily yield the samples of an index range accepted by `predicate`

        The first sample of the range is always yielded. `predicate` receives
        the candidate sample and the last sample that was yielded.
        """
        series = self._cell(session, condition)
        previous = series[first_index]
        yield previous
        if first_index == last_index:
            return
        for i in range(first_index + 1, last_index + 1):
            current = series[i]
            if predicate(current, previous):
                previous = current
                yield current

    def iter_cells(self):
        """Yield (session, condition, series) for every cell holding data"""
        for session in range(self.session_count):
            for condition in range(self.condition_count):
                series = self._cells[session][condition]
                if len(series) > 0:
                    yield session, condition, series


def _freeze(series: SampleSeries):
    for array in (series.timestamps, series.positions, series.rotations, series.scales, series.speeds):
        array.setflags(write=False)
