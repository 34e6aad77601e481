"""
Tracked entities of a study
"""
import colorsys
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from core.coordinate_frame import CoordinateFrame, RotationFormat, unit_scale_factor
from core.sample_parser import TimeFormat
from core.static_transform import StaticTransform
from core.time_series_index import TimeSeriesIndex
from file_io.study_descriptor import ObjectDescription, StudyDescriptor

logger = logging.getLogger(__name__)


class EntityType(Enum):
    USER = "user"
    DEVICE = "device"
    TRACKABLE = "trackable"
    TOUCH = "touch"
    OBJECT = "object"
    STATIC = "static"
    UNKNOWN = "unknown"

    @classmethod
    def from_token(cls, token: Optional[str]) -> 'EntityType':
        """Case-insensitive lookup, UNKNOWN for anything unrecognized"""
        try:
            return cls((token or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True, eq=False)
class EntitySnapshot:
    """Read-only view of the entity settings an import task needs"""
    entity_id: int
    unit_factor: float
    rotation_format: RotationFormat
    time_format: TimeFormat
    local_transform: StaticTransform


@dataclass(eq=False)
class Entity:
    """A tracked entity (person, device, touch, prop) and its samples"""
    id: int
    title: str
    entity_type: EntityType
    index: TimeSeriesIndex
    parent_id: int = -1
    data_source: str = ""
    is_static: bool = False
    rotation_format: RotationFormat = RotationFormat.QUATERNION
    time_format: TimeFormat = TimeFormat.FLOAT
    unit_factor: float = 1.0
    color: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    model_file: Optional[str] = None
    conditions: List[str] = field(default_factory=list)
    has_state_data: bool = False
    local_transform: StaticTransform = field(default_factory=StaticTransform)

    # Aggregate bounds, set by recompute_bounds
    min_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    max_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    average_position: np.ndarray = field(default_factory=lambda: np.zeros(3))

    @classmethod
    def from_description(cls, obj: ObjectDescription, study: StudyDescriptor,
                         frame: CoordinateFrame) -> 'Entity':
        """Build an entity (without samples) from its object description"""
        rotation_format = RotationFormat.from_token(obj.rotation_format)
        time_format = TimeFormat.from_token(obj.time_format)
        unit_factor = unit_scale_factor(obj.units)
        local_transform = StaticTransform.from_sources(obj.transform, rotation_format, unit_factor, frame)

        return cls(
            id=obj.id,
            title=obj.name,
            entity_type=EntityType.from_token(obj.object_type),
            index=TimeSeriesIndex(study.session_count, study.condition_count, is_static=obj.is_static),
            parent_id=obj.parent_id,
            data_source=obj.data_source,
            is_static=obj.is_static,
            rotation_format=rotation_format,
            time_format=time_format,
            unit_factor=unit_factor,
            color=colorsys.hsv_to_rgb(obj.hue, obj.saturation, obj.value),
            model_file=obj.model_file or None,
            conditions=list(study.conditions),
            local_transform=local_transform,
        )

    def snapshot(self) -> EntitySnapshot:
        return EntitySnapshot(
            entity_id=self.id,
            unit_factor=self.unit_factor,
            rotation_format=self.rotation_format,
            time_format=self.time_format,
            local_transform=self.local_transform,
        )

    @property
    def local_position(self) -> np.ndarray:
        return self.local_transform.position

    @property
    def local_rotation(self) -> np.ndarray:
        return self.local_transform.rotation

    @property
    def local_scale(self) -> np.ndarray:
        return self.local_transform.scale

    @property
    def use_static_position(self) -> bool:
        return self.local_transform.use_static_position

    @property
    def condition_ids(self) -> Dict[str, int]:
        return {name: i for i, name in enumerate(self.conditions)}

    def condition_to_id(self, condition: str) -> int:
        """Id of a condition name, -1 if the study has no such condition"""
        return self.condition_ids.get(condition, -1)

    def id_to_condition(self, condition_id: int) -> Optional[str]:
        if 0 <= condition_id < len(self.conditions):
            return self.conditions[condition_id]
        return None

    def recompute_bounds(self):
        """
        Per-axis min/max and average position over all samples

        Entities with a fixed position (static, or not reading position from
        data) and dynamic entities without any samples use their local
        position.
        """
        if self.is_static or self.use_static_position:
            self._set_bounds_to_local()
            return

        positions = [series.positions for _, _, series in self.index.iter_cells()]
        if not positions:
            self._set_bounds_to_local()
            return

        stacked = np.vstack(positions)
        self.min_position = stacked.min(axis=0)
        self.max_position = stacked.max(axis=0)
        self.average_position = stacked.mean(axis=0)

    def _set_bounds_to_local(self):
        self.min_position = self.local_position.copy()
        self.max_position = self.local_position.copy()
        self.average_position = self.local_position.copy()

    @property
    def sample_count(self) -> int:
        """Total number of samples over all cells"""
        return sum(len(series) for _, _, series in self.index.iter_cells())
