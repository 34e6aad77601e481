"""
Static transforms of entities and anchors

Descriptor transform sources are either column names or `{value}` literals.
Literals (and empty sources) fix a component for the whole study; the result is
the entity's local position/rotation/scale that every parsed sample starts from.
"""
import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from core.coordinate_frame import (
    CoordinateFrame, RotationFormat, rotation_from_components, unit_scale_factor
)
from core.quaternion_utils import IDENTITY_QUATERNION
from file_io.study_descriptor import AnchorDescription, TransformSources

logger = logging.getLogger(__name__)


def is_literal(token) -> bool:
    """True for `{value}` tokens (at least one character between the braces)"""
    if token is None or len(token) < 3:
        return False
    return token[0] == '{' and token[-1] == '}'


def literal_value(token: str) -> str:
    """Text between the braces of a literal token"""
    return token[1:-1]


def parse_float(text: str) -> float:
    """Parse a number the way data cells are parsed; failures give 0.0"""
    try:
        return float(text.strip())
    except (AttributeError, ValueError):
        logger.warning(f"Could not parse number '{text}', using 0.0")
        return 0.0


def _literal_vector(tokens: Sequence[str]) -> np.ndarray:
    return np.array([parse_float(literal_value(t)) for t in tokens])


def _all_literal(tokens: Sequence[str]) -> bool:
    return all(is_literal(t) for t in tokens)


def static_position(tokens: Sequence[str], unit_factor: float, frame: CoordinateFrame) -> np.ndarray:
    """Literal position in meters, canonical frame"""
    return frame.normalize_position(_literal_vector(tokens), unit_factor)


def static_scale(tokens: Sequence[str]) -> np.ndarray:
    """Literal scale (unitless, not remapped)"""
    return _literal_vector(tokens)


def static_rotation(tokens: Sequence[str], rotation_format: RotationFormat,
                    frame: CoordinateFrame) -> np.ndarray:
    """
    Literal rotation in canonical frame

    Args:
        tokens: (w, x, y, z) literals, or (x, y, z) read by `rotation_format`
        rotation_format: Reading of three-component rotations
        frame: Study coordinate frame
    """
    values = _literal_vector(tokens)
    if len(values) == 3:
        raw = rotation_from_components(values, rotation_format)
    else:
        raw = values
    return frame.normalize_rotation(raw)


@dataclass(eq=False)
class StaticTransform:
    """Local transform of an entity and which components are fixed"""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    use_static_position: bool = False
    use_static_rotation: bool = False
    use_static_scale: bool = False

    @classmethod
    def from_sources(cls, sources: TransformSources, rotation_format: RotationFormat,
                     unit_factor: float, frame: CoordinateFrame) -> 'StaticTransform':
        """
        Resolve the static components of an object description.

        A component with any empty source keeps its default and is static; a
        component whose sources are all literals takes the literal value and is
        static; anything else is read from the data.
        """
        result = cls()

        position = (sources.position_x, sources.position_y, sources.position_z)
        if not all(position):
            result.use_static_position = True
        elif _all_literal(position):
            result.position = static_position(position, unit_factor, frame)
            result.use_static_position = True

        scale = (sources.scale_x, sources.scale_y, sources.scale_z)
        if not all(scale):
            result.use_static_scale = True
        elif _all_literal(scale):
            result.scale = static_scale(scale)
            result.use_static_scale = True

        rotation_xyz = (sources.rotation_x, sources.rotation_y, sources.rotation_z)
        if not all(rotation_xyz):
            result.use_static_rotation = True
        elif not sources.rotation_w:
            if _all_literal(rotation_xyz):
                result.rotation = static_rotation(rotation_xyz, rotation_format, frame)
                result.use_static_rotation = True
        else:
            rotation_wxyz = (sources.rotation_w,) + rotation_xyz
            if _all_literal(rotation_wxyz):
                result.rotation = static_rotation(rotation_wxyz, rotation_format, frame)
                result.use_static_rotation = True

        return result


@dataclass(eq=False)
class AnchorTransform:
    """Static placement of a visualization anchor, canonical frame"""
    id: int
    parent_id: int = -1
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))

    @classmethod
    def from_description(cls, anchor: AnchorDescription, frame: CoordinateFrame) -> 'AnchorTransform':
        """Only all-literal components are taken; the rest keep their defaults"""
        result = cls(id=anchor.id, parent_id=anchor.parent_id)
        sources = anchor.transform
        unit_factor = unit_scale_factor(anchor.units)
        rotation_format = RotationFormat.from_token(anchor.rotation_format)

        position = (sources.position_x, sources.position_y, sources.position_z)
        if _all_literal(position):
            result.position = static_position(position, unit_factor, frame)

        scale = (sources.scale_x, sources.scale_y, sources.scale_z)
        if _all_literal(scale):
            result.scale = static_scale(scale)

        rotation_xyz = (sources.rotation_x, sources.rotation_y, sources.rotation_z)
        if not sources.rotation_w:
            if _all_literal(rotation_xyz):
                result.rotation = static_rotation(rotation_xyz, rotation_format, frame)
        elif _all_literal((sources.rotation_w,) + rotation_xyz):
            result.rotation = static_rotation((sources.rotation_w,) + rotation_xyz, rotation_format, frame)

        return result
