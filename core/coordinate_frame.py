"""
Coordinate normalization from a study's authored frame into the canonical frame

Canonical frame: x = right, y = up, z = forward.

A study declares, for each of its data axes, which canonical direction it points
to. The three directions become the columns of a 4x4 transform F, so a data
vector v maps to F @ v and a data rotation R maps to F @ R @ F^-1.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from core.quaternion_utils import (
    euler_to_quaternion, look_rotation, quaternion_normalize,
    quaternion_to_rotation_matrix, rotation_matrix_to_quaternion
)

logger = logging.getLogger(__name__)


AXIS_DIRECTIONS = {
    "forward": np.array([0.0, 0.0, 1.0]),
    "back": np.array([0.0, 0.0, -1.0]),
    "up": np.array([0.0, 1.0, 0.0]),
    "down": np.array([0.0, -1.0, 0.0]),
    "left": np.array([-1.0, 0.0, 0.0]),
    "right": np.array([1.0, 0.0, 0.0]),
}

DEFAULT_AXES = ("right", "up", "forward")

# Conversion factors from the data's unit of length to meters
UNIT_FACTORS = {
    "mm": 0.001,
    "cm": 0.01,
    "m": 1.0,
}


class RotationFormat(Enum):
    """How rotation columns of a data file are to be read"""
    EULER_RAD = "euler_rad"
    EULER_DEG = "euler_deg"
    QUATERNION = "quaternion"
    DIRECTION_VECTOR = "direction_vector"

    @classmethod
    def from_token(cls, token: Optional[str]) -> "RotationFormat":
        """Parse a descriptor token, defaulting to QUATERNION"""
        if token:
            try:
                return cls(token.strip().lower())
            except ValueError:
                logger.warning(f"Unknown rotation format '{token}', using quaternion")
        return cls.QUATERNION


def unit_scale_factor(units: Optional[str]) -> float:
    """Factor converting `units` to meters (1.0 for unknown units)"""
    if not units:
        return 1.0
    factor = UNIT_FACTORS.get(units.strip().lower())
    if factor is None:
        logger.warning(f"Unknown unit '{units}', assuming meters")
        return 1.0
    return factor


def rotation_from_components(components, rotation_format: RotationFormat) -> np.ndarray:
    """
    Convert a three-component rotation into a quaternion [w, x, y, z].

    Args:
        components: (x, y, z) as read from the data
        rotation_format: EULER_DEG, EULER_RAD or DIRECTION_VECTOR

    Returns:
        Quaternion in the data's own frame. QUATERNION has no three-component
        reading and yields the identity.
    """
    x, y, z = (float(c) for c in components)
    if rotation_format == RotationFormat.EULER_DEG:
        return euler_to_quaternion(np.array([x, y, z]))
    elif rotation_format == RotationFormat.EULER_RAD:
        return euler_to_quaternion(np.degrees([x, y, z]))
    elif rotation_format == RotationFormat.DIRECTION_VECTOR:
        return look_rotation(np.array([x, y, z]))
    return np.array([1.0, 0.0, 0.0, 0.0])


@dataclass(frozen=True)
class CoordinateFrame:
    """Mapping from a study's data axes into the canonical frame"""
    axis_tokens: Tuple[str, str, str] = DEFAULT_AXES
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4), compare=False)
    inverse_matrix: np.ndarray = field(default_factory=lambda: np.eye(4), compare=False)

    @classmethod
    def identity(cls) -> "CoordinateFrame":
        return cls.from_axis_tokens(*DEFAULT_AXES)

    @classmethod
    def from_axis_tokens(cls, x: Optional[str], y: Optional[str], z: Optional[str]) -> "CoordinateFrame":
        """
        Build the frame from the descriptor's axis direction tokens.

        An unknown token, or a combination that does not form a basis, makes
        the whole frame fall back to the identity mapping.
        """
        tokens = tuple((t or "").strip().lower() for t in (x, y, z))
        unknown = [t for t in tokens if t not in AXIS_DIRECTIONS]
        if unknown:
            logger.warning(f"Unknown axis direction(s) {unknown}, using identity axis mapping")
            tokens = DEFAULT_AXES

        matrix = np.eye(4)
        matrix[:3, :3] = np.column_stack([AXIS_DIRECTIONS[t] for t in tokens])

        if abs(np.linalg.det(matrix[:3, :3])) < 1e-9:
            logger.warning(f"Axis directions {tokens} do not form a basis, using identity axis mapping")
            tokens = DEFAULT_AXES
            matrix = np.eye(4)

        matrix.setflags(write=False)
        inverse = np.linalg.inv(matrix)
        inverse.setflags(write=False)
        return cls(axis_tokens=tokens, matrix=matrix, inverse_matrix=inverse)

    @property
    def is_identity(self) -> bool:
        return self.axis_tokens == DEFAULT_AXES

    def transform_vector(self, v: np.ndarray) -> np.ndarray:
        """Data frame -> canonical frame"""
        return self.matrix[:3, :3] @ np.asarray(v, dtype=float)

    def inverse_transform_vector(self, v: np.ndarray) -> np.ndarray:
        """Canonical frame -> data frame"""
        return self.inverse_matrix[:3, :3] @ np.asarray(v, dtype=float)

    def transform_rotation(self, q: np.ndarray) -> np.ndarray:
        """Re-express a data-frame rotation as the same rotation in canonical frame"""
        R = quaternion_to_rotation_matrix(q)
        F = self.matrix[:3, :3]
        return rotation_matrix_to_quaternion(F @ R @ self.inverse_matrix[:3, :3])

    def inverse_transform_rotation(self, q: np.ndarray) -> np.ndarray:
        R = quaternion_to_rotation_matrix(q)
        F_inv = self.inverse_matrix[:3, :3]
        return rotation_matrix_to_quaternion(F_inv @ R @ self.matrix[:3, :3])

    def normalize_position(self, raw: np.ndarray, unit_factor: float) -> np.ndarray:
        """Scale a raw position to meters and map it into canonical frame"""
        return self.transform_vector(unit_factor * np.asarray(raw, dtype=float))

    def normalize_rotation(self, raw_quaternion: np.ndarray) -> np.ndarray:
        """Normalize a raw [w, x, y, z] rotation and map it into canonical frame"""
        return self.transform_rotation(quaternion_normalize(raw_quaternion))
