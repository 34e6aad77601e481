"""
Study descriptor model

A study descriptor names the conditions and sessions of an experiment, the
tracked objects with the column names (or `{literal}` constants) their
transforms come from, and the object sources binding each object, session and
condition to a data file.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no", ""):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _as_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid integer value: {value!r}")


def _as_float(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid number: {value!r}")


def _as_text(value: Any, default: Optional[str]) -> Optional[str]:
    """Missing keeps the default, present-but-empty stays empty"""
    if value is None:
        return default
    return str(value).strip()


@dataclass
class TransformSources:
    """Column names or `{literal}` values for position, rotation and scale"""
    position_x: str = "{0.0}"
    position_y: str = "{0.0}"
    position_z: str = "{0.0}"
    rotation_w: str = "{1.0}"
    rotation_x: str = "{0.0}"
    rotation_y: str = "{0.0}"
    rotation_z: str = "{0.0}"
    scale_x: str = "{1.0}"
    scale_y: str = "{1.0}"
    scale_z: str = "{1.0}"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'TransformSources':
        defaults = cls()
        return cls(**{
            name: _as_text(d.get(f"transform_{name}"), getattr(defaults, name))
            for name in (
                "position_x", "position_y", "position_z",
                "rotation_w", "rotation_x", "rotation_y", "rotation_z",
                "scale_x", "scale_y", "scale_z",
            )
        })


@dataclass
class SessionDescription:
    id: int
    name: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'SessionDescription':
        return cls(id=_as_int(d.get("id"), -1), name=_as_text(d.get("name"), "") or "")


@dataclass
class ObjectDescription:
    """One tracked object (entity) of the study"""
    id: int
    name: str = ""
    object_type: str = ""
    parent_id: int = -1
    is_static: bool = False
    data_source: str = ""
    rotation_format: str = ""
    time_format: str = ""
    units: str = ""
    hue: float = 0.0
    saturation: float = 0.0
    value: float = 1.0
    model_file: str = ""
    timestamp_source: str = ""
    state_source: str = ""
    transform: TransformSources = field(default_factory=TransformSources)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ObjectDescription':
        if d.get("id") is None:
            raise ValueError("Object description without id")
        return cls(
            id=_as_int(d.get("id"), -1),
            name=_as_text(d.get("name"), "") or "",
            object_type=_as_text(d.get("type"), "") or "",
            parent_id=_as_int(d.get("parent"), -1),
            is_static=_as_bool(d.get("static")),
            data_source=_as_text(d.get("data_source"), "") or "",
            rotation_format=_as_text(d.get("rotation_format"), "") or "",
            time_format=_as_text(d.get("time_format"), "") or "",
            units=_as_text(d.get("units"), "") or "",
            hue=_as_float(d.get("hue"), 0.0),
            saturation=_as_float(d.get("saturation"), 0.0),
            value=_as_float(d.get("value"), 1.0),
            model_file=_as_text(d.get("model"), "") or "",
            timestamp_source=_as_text(d.get("timestamp"), "") or "",
            state_source=_as_text(d.get("state"), "") or "",
            transform=TransformSources.from_dict(d),
        )


@dataclass
class SourceBinding:
    """Binds an object, session and condition to the file its samples come from"""
    object_id: int
    file: str
    session_id: int = 0
    condition_id: int = 0
    session_filter_column: Optional[str] = None
    session_filter: Optional[str] = None
    condition_filter_column: Optional[str] = None
    condition_filter: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'SourceBinding':
        file = _as_text(d.get("file"), None)
        if not file:
            raise ValueError(f"Object source without file: {d}")
        return cls(
            object_id=_as_int(d.get("object_id"), -1),
            file=file,
            session_id=_as_int(d.get("session_id"), 0),
            condition_id=_as_int(d.get("condition_id"), 0),
            session_filter_column=_as_text(d.get("session_filter_column"), None) or None,
            session_filter=_as_text(d.get("session_filter"), None),
            condition_filter_column=_as_text(d.get("condition_filter_column"), None) or None,
            condition_filter=_as_text(d.get("condition_filter"), None),
        )


@dataclass
class AnchorDescription:
    """A static placement for visualizations, given in the study's data frame"""
    id: int
    parent_id: int = -1
    rotation_format: str = ""
    units: str = ""
    transform: TransformSources = field(default_factory=TransformSources)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'AnchorDescription':
        return cls(
            id=_as_int(d.get("id"), -1),
            parent_id=_as_int(d.get("parent"), -1),
            rotation_format=_as_text(d.get("rotation_format"), "") or "",
            units=_as_text(d.get("units"), "") or "",
            transform=TransformSources.from_dict(d),
        )


@dataclass
class StudyDescriptor:
    """Complete description of one study"""
    name: str = ""
    axis_direction_x: str = "right"
    axis_direction_y: str = "up"
    axis_direction_z: str = "forward"
    conditions: List[str] = field(default_factory=list)
    sessions: List[SessionDescription] = field(default_factory=list)
    objects: List[ObjectDescription] = field(default_factory=list)
    object_sources: List[SourceBinding] = field(default_factory=list)
    anchors: List[AnchorDescription] = field(default_factory=list)

    # Directory data file paths are relative to
    base_directory: Optional[Path] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any], base_directory: Optional[Path] = None) -> 'StudyDescriptor':
        if not isinstance(d, dict):
            raise ValueError("Study descriptor must be a mapping")
        return cls(
            name=_as_text(d.get("name"), "") or "",
            axis_direction_x=_as_text(d.get("axis_direction_x"), "right"),
            axis_direction_y=_as_text(d.get("axis_direction_y"), "up"),
            axis_direction_z=_as_text(d.get("axis_direction_z"), "forward"),
            conditions=[str(c).strip() for c in d.get("conditions") or []],
            sessions=[SessionDescription.from_dict(s) for s in d.get("sessions") or []],
            objects=[ObjectDescription.from_dict(o) for o in d.get("objects") or []],
            object_sources=[SourceBinding.from_dict(s) for s in d.get("objectsources") or []],
            anchors=[AnchorDescription.from_dict(a) for a in d.get("anchors") or []],
            base_directory=base_directory,
        )

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    @property
    def condition_count(self) -> int:
        return len(self.conditions)

    def get_object(self, object_id: int) -> Optional[ObjectDescription]:
        for obj in self.objects:
            if obj.id == object_id:
                return obj
        return None

    def file_list(self) -> List[str]:
        """Unique data files of all object sources, in first-seen order"""
        files: List[str] = []
        for source in self.object_sources:
            if source.file not in files:
                files.append(source.file)
        return files

    def resolve_path(self, file: str) -> Path:
        path = Path(file)
        if path.is_absolute() or self.base_directory is None:
            return path
        return Path(self.base_directory) / path

    def validate(self):
        """Raise ValueError if the descriptor cannot be imported"""
        if not self.sessions:
            raise ValueError(f"Study '{self.name}' defines no sessions")
        if not self.conditions:
            raise ValueError(f"Study '{self.name}' defines no conditions")

        ids = [obj.id for obj in self.objects]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate object ids: {duplicates}")

        for source in self.object_sources:
            if source.object_id not in ids:
                raise ValueError(f"Object source for unknown object id {source.object_id} ({source.file})")
            if not 0 <= source.session_id < self.session_count:
                raise ValueError(
                    f"Object source {source.file}: session id {source.session_id} out of range")
            if not 0 <= source.condition_id < self.condition_count:
                raise ValueError(
                    f"Object source {source.file}: condition id {source.condition_id} out of range")
