"""
Study import pipeline
Builds the entities of a study, imports all data files concurrently and merges
the results into the entities' temporal indices.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from config.settings import ImportConfig, app_settings
from core.coordinate_frame import CoordinateFrame
from core.entity import Entity
from core.import_task import import_file
from core.static_transform import AnchorTransform
from core.tracking_data import ImportBlock
from file_io.study_descriptor import StudyDescriptor

logger = logging.getLogger(__name__)


class ImportCoordinator:
    """Runs the import of one study descriptor"""

    def __init__(self, study: StudyDescriptor, config: Optional[ImportConfig] = None):
        self.study = study
        self.config = config or app_settings.importing
        self.frame = CoordinateFrame.from_axis_tokens(
            study.axis_direction_x, study.axis_direction_y, study.axis_direction_z)
        self.entities: Dict[int, Entity] = {}
        self.anchors: List[AnchorTransform] = []

    def build_entities(self) -> Dict[int, Entity]:
        """Create every entity of the study, without samples"""
        entities = {}
        for obj in self.study.objects:
            entities[obj.id] = Entity.from_description(obj, self.study, self.frame)
        return entities

    def run(self) -> Dict[int, Entity]:
        """
        Import the whole study

        Returns:
            Entities by id with populated indices

        Raises:
            ValueError: Invalid descriptor or malformed data file
            FileNotFoundError: Missing data file
        """
        self.study.validate()
        self.entities = self.build_entities()
        self.anchors = [AnchorTransform.from_description(a, self.frame) for a in self.study.anchors]

        files = self.study.file_list()
        paths = {file: self.study.resolve_path(file) for file in files}
        missing = [str(p) for p in paths.values() if not p.is_file()]
        if missing:
            raise FileNotFoundError(f"Data file(s) not found: {', '.join(missing)}")

        objects = {obj.id: obj for obj in self.study.objects}
        snapshots = {entity_id: entity.snapshot() for entity_id, entity in self.entities.items()}

        logger.info(f"Importing study '{self.study.name}': {len(files)} file(s), "
                    f"{len(self.entities)} entities")

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = [
                executor.submit(
                    import_file,
                    paths[file],
                    [b for b in self.study.object_sources if b.file == file],
                    objects,
                    snapshots,
                    self.frame,
                    self.config,
                )
                for file in files
            ]
            # Results in file order; the first failure propagates
            results = [future.result() for future in futures]

        for blocks in results:
            self.merge(blocks)

        for entity in self.entities.values():
            entity.recompute_bounds()
        self.normalize_timestamps()

        logger.info(f"Study '{self.study.name}' imported")
        return self.entities

    def merge(self, blocks: List[ImportBlock]):
        """Install the blocks of one file into their entities' cells"""
        for block in blocks:
            entity = self.entities[block.entity_id]
            replaced = entity.index.set_cell(
                block.session_id, block.condition_id, block.series, block.max_speed)
            if replaced:
                logger.warning(
                    f"Entity {entity.id} ({entity.title}): samples for session {block.session_id}, "
                    f"condition {block.condition_id} replaced by a later source")
            entity.has_state_data = entity.has_state_data or block.has_state_data

    def normalize_timestamps(self):
        """
        Shift every (session, condition) so that its earliest dynamic sample is at 0

        The offset is the smallest first timestamp over all non-static entities
        holding data in that cell. Static entities are left untouched.
        """
        dynamic = [e for e in self.entities.values() if not e.is_static]
        for session in range(self.study.session_count):
            for condition in range(self.study.condition_count):
                firsts = [e.index.first_timestamp(session, condition) for e in dynamic]
                firsts = [t for t in firsts if t is not None]
                if not firsts:
                    continue
                offset = min(firsts)
                for entity in dynamic:
                    entity.index.shift_timestamps(session, condition, offset)
