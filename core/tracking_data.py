"""
Tracking data structures and containers
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np


@dataclass(eq=False)
class Sample:
    """Single tracked observation"""
    position: np.ndarray  # [x, y, z] in meters, canonical frame
    rotation: np.ndarray  # [w, x, y, z] unit quaternion, canonical frame
    scale: np.ndarray  # [sx, sy, sz]
    timestamp: int = 0  # ticks
    state: Optional[str] = None
    speed: float = 0.0  # m/s

    def __post_init__(self):
        """Validate data shapes"""
        assert self.position.shape == (3,), "Position must be (3,)"
        assert self.rotation.shape == (4,), "Rotation must be (4,)"
        assert self.scale.shape == (3,), "Scale must be (3,)"


@dataclass(eq=False)
class SampleSeries(Sequence):
    """Time series of samples for one entity in one session and condition

    Stored column-wise; indexing hands out `Sample` views built on access.
    """
    timestamps: np.ndarray  # (N,) int64 ticks
    positions: np.ndarray  # (N, 3)
    rotations: np.ndarray  # (N, 4) [w, x, y, z]
    scales: np.ndarray  # (N, 3)
    states: List[Optional[str]] = field(default_factory=list)
    speeds: Optional[np.ndarray] = None  # (N,)

    def __post_init__(self):
        """Validate data consistency"""
        n_samples = len(self.timestamps)
        if not self.states:
            self.states = [None] * n_samples
        if self.speeds is None:
            self.speeds = np.zeros(n_samples)
        assert self.positions.shape == (n_samples, 3)
        assert self.rotations.shape == (n_samples, 4)
        assert self.scales.shape == (n_samples, 3)
        assert self.speeds.shape == (n_samples,)
        assert len(self.states) == n_samples

    @classmethod
    def empty(cls) -> 'SampleSeries':
        return cls(
            timestamps=np.zeros(0, dtype=np.int64),
            positions=np.zeros((0, 3)),
            rotations=np.zeros((0, 4)),
            scales=np.zeros((0, 3)),
        )

    @classmethod
    def from_samples(cls, samples: Sequence[Sample]) -> 'SampleSeries':
        """Stack a list of samples into columns"""
        if len(samples) == 0:
            return cls.empty()
        return cls(
            timestamps=np.array([s.timestamp for s in samples], dtype=np.int64),
            positions=np.array([s.position for s in samples], dtype=float),
            rotations=np.array([s.rotation for s in samples], dtype=float),
            scales=np.array([s.scale for s in samples], dtype=float),
            states=[s.state for s in samples],
            speeds=np.array([s.speed for s in samples], dtype=float),
        )

    def get_sample(self, index: int) -> Sample:
        """Get a single sample at index"""
        return Sample(
            position=self.positions[index],
            rotation=self.rotations[index],
            scale=self.scales[index],
            timestamp=int(self.timestamps[index]),
            state=self.states[index],
            speed=float(self.speeds[index]),
        )

    def __getitem__(self, index: Union[int, slice]):
        if isinstance(index, slice):
            return [self.get_sample(i) for i in range(*index.indices(len(self)))]
        if index < 0:
            index += len(self)
        if not 0 <= index < len(self):
            raise IndexError("sample index out of range")
        return self.get_sample(index)

    def __len__(self) -> int:
        return len(self.timestamps)

    def is_sorted(self) -> bool:
        """True if timestamps are non-decreasing"""
        return bool(np.all(np.diff(self.timestamps) >= 0))

    def sorted_by_timestamp(self) -> 'SampleSeries':
        """Stable sort by timestamp"""
        order = np.argsort(self.timestamps, kind='stable')
        return SampleSeries(
            timestamps=self.timestamps[order],
            positions=self.positions[order],
            rotations=self.rotations[order],
            scales=self.scales[order],
            states=[self.states[i] for i in order],
            speeds=self.speeds[order],
        )

    @property
    def duration(self) -> int:
        """Total duration in ticks"""
        return int(self.timestamps[-1] - self.timestamps[0]) if len(self.timestamps) > 0 else 0

    @property
    def n_samples(self) -> int:
        """Number of samples"""
        return len(self.timestamps)


@dataclass
class ImportBlock:
    """Samples parsed from one file for one entity, session and condition"""
    entity_id: int
    session_id: int
    condition_id: int
    samples: List[Sample] = field(default_factory=list)
    max_speed: float = 0.0
    has_state_data: bool = False
    series: Optional[SampleSeries] = None  # set once the file is fully read

    def append(self, sample: Sample):
        self.samples.append(sample)

    def finalize(self) -> SampleSeries:
        """Stack the accumulated samples into a series and release the list"""
        self.series = SampleSeries.from_samples(self.samples)
        self.samples = []
        return self.series
