"""
Study data provider
Loads studies and serves the read-only queries used by playback and
visualizations.
"""
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Union

from config.settings import app_settings
from core.coordinate_frame import CoordinateFrame
from core.entity import Entity
from core.import_coordinator import ImportCoordinator
from core.static_transform import AnchorTransform
from core.tracking_data import Sample, SampleSeries
from file_io.study_descriptor import StudyDescriptor
from file_io.study_file_handler import StudyFileHandler

logger = logging.getLogger(__name__)


class StudyDataProvider:
    """Owns the currently loaded study and answers queries against it"""

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0

        self._entities: Dict[int, Entity] = {}
        self._anchors: List[AnchorTransform] = []
        self._frame = CoordinateFrame.identity()
        self._study: Optional[StudyDescriptor] = None

    def load_study(self, descriptor: Union[StudyDescriptor, str, Path]) -> Dict[int, Entity]:
        """
        Load a study and install its entities

        Args:
            descriptor: StudyDescriptor or path to a descriptor file

        Returns:
            Entities by id. If another load started meanwhile, the returned
            entities are not installed.

        Raises:
            FileNotFoundError, ValueError: The previously loaded study stays
            installed
        """
        with self._lock:
            self._generation += 1
            generation = self._generation

        if isinstance(descriptor, StudyDescriptor):
            study = descriptor
        else:
            study = StudyFileHandler.load_descriptor(str(descriptor), app_settings.data_directory)
            app_settings.add_recent_study(str(descriptor))

        coordinator = ImportCoordinator(study, app_settings.importing)
        entities = coordinator.run()

        with self._lock:
            if generation != self._generation:
                logger.info(f"Discarding import of '{study.name}', a newer load was started")
                return entities
            self._entities = entities
            self._anchors = coordinator.anchors
            self._frame = coordinator.frame
            self._study = study

        logger.info(f"Study '{study.name}' loaded with {len(entities)} entities")
        return entities

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_study_loaded(self) -> bool:
        return self._study is not None

    @property
    def current_study(self) -> Optional[StudyDescriptor]:
        return self._study

    @property
    def entities(self) -> Dict[int, Entity]:
        return self._entities

    @property
    def anchors(self) -> List[AnchorTransform]:
        return self._anchors

    @property
    def coordinate_frame(self) -> CoordinateFrame:
        return self._frame

    def get_entity(self, entity_id: int) -> Entity:
        try:
            return self._entities[entity_id]
        except KeyError:
            raise KeyError(f"No entity with id {entity_id}")

    def get_samples(self, entity_id: int, session: int, condition: int) -> SampleSeries:
        return self.get_entity(entity_id).index.get_samples(session, condition)

    def get_filtered_samples(
        self,
        entity_id: int,
        session: int,
        condition: int,
        first_index: int,
        last_index: int,
        predicate: Callable[[Sample, Sample], bool]
    ) -> Iterator[Sample]:
        return self.get_entity(entity_id).index.get_filtered_samples(
            session, condition, first_index, last_index, predicate)

    def get_index_from_timestamp(self, entity_id: int, timestamp: int, session: int,
                                 condition: int, start_index: int = 0) -> int:
        return self.get_entity(entity_id).index.get_index_from_timestamp(
            timestamp, session, condition, start_index)

    def get_min_timestamp(self, entity_id: int, session: int, condition: int) -> int:
        return self.get_entity(entity_id).index.get_min_timestamp(session, condition)

    def get_max_timestamp(self, entity_id: int, session: int, condition: int) -> int:
        return self.get_entity(entity_id).index.get_max_timestamp(session, condition)

    def get_max_speed(self, entity_id: int, session: int, condition: int) -> float:
        return self.get_entity(entity_id).index.get_max_speed(session, condition)
