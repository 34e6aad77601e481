"""
Header column resolution for one source binding of a data file
"""
from dataclasses import dataclass, fields
from typing import List, Optional, Sequence

from core.static_transform import is_literal
from file_io.study_descriptor import ObjectDescription, SourceBinding


@dataclass
class ColumnMapping:
    """Column index of every semantic field, None where unresolved"""
    timestamp: Optional[int] = None
    position_x: Optional[int] = None
    position_y: Optional[int] = None
    position_z: Optional[int] = None
    rotation_w: Optional[int] = None
    rotation_x: Optional[int] = None
    rotation_y: Optional[int] = None
    rotation_z: Optional[int] = None
    scale_x: Optional[int] = None
    scale_y: Optional[int] = None
    scale_z: Optional[int] = None
    state: Optional[int] = None
    condition_filter: Optional[int] = None
    session_filter: Optional[int] = None

    @property
    def position(self) -> Optional[List[int]]:
        return _complete(self.position_x, self.position_y, self.position_z)

    @property
    def scale(self) -> Optional[List[int]]:
        return _complete(self.scale_x, self.scale_y, self.scale_z)

    @property
    def rotation(self) -> Optional[List[int]]:
        """[w, x, y, z] or [x, y, z] indices, None unless x, y and z are all mapped"""
        xyz = _complete(self.rotation_x, self.rotation_y, self.rotation_z)
        if xyz is None:
            return None
        if self.rotation_w is not None:
            return [self.rotation_w] + xyz
        return xyz

    def resolved_roles(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


def _complete(*indices: Optional[int]) -> Optional[List[int]]:
    if any(i is None for i in indices):
        return None
    return list(indices)


def _source_roles(obj: ObjectDescription, binding: SourceBinding) -> List[tuple]:
    """(role, source name) pairs in matching priority"""
    t = obj.transform
    return [
        ("timestamp", obj.timestamp_source),
        ("position_x", t.position_x),
        ("position_y", t.position_y),
        ("position_z", t.position_z),
        ("rotation_w", t.rotation_w),
        ("rotation_x", t.rotation_x),
        ("rotation_y", t.rotation_y),
        ("rotation_z", t.rotation_z),
        ("scale_x", t.scale_x),
        ("scale_y", t.scale_y),
        ("scale_z", t.scale_z),
        ("state", obj.state_source),
        ("condition_filter", binding.condition_filter_column),
        ("session_filter", binding.session_filter_column),
    ]


def map_columns(header: Sequence[str], obj: ObjectDescription, binding: SourceBinding) -> ColumnMapping:
    """
    Resolve which header column feeds which field of `obj`'s samples

    Each column is claimed by the first role whose source name equals the
    column name. When several columns match the same role, the last one wins.
    Literal `{value}` sources and empty names never match a column.

    Args:
        header: Column names of the data file, in order
        obj: Object description with the source names
        binding: Source binding with the optional filter column names

    Returns:
        ColumnMapping for this binding
    """
    roles = [
        (role, name) for role, name in _source_roles(obj, binding)
        if name and not is_literal(name)
    ]

    mapping = ColumnMapping()
    for column, column_name in enumerate(header):
        for role, name in roles:
            if column_name == name:
                setattr(mapping, role, column)
                break
    return mapping
