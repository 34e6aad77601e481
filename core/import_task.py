"""
Import of a single data file

A FileImportTask reads one delimited file and parses it for every source binding
that refers to it. It only touches its own ImportBlocks and the read-only
entity snapshots and coordinate frame it is given, so tasks for different files
can run on separate threads.
"""
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from config.settings import ImportConfig, TICKS_PER_SECOND
from core.column_mapping import map_columns
from core.coordinate_frame import CoordinateFrame
from core.sample_parser import SampleParser
from core.tracking_data import ImportBlock, SampleSeries
from file_io.study_descriptor import ObjectDescription, SourceBinding

logger = logging.getLogger(__name__)


def compute_speeds(series: SampleSeries) -> float:
    """
    Fill `series.speeds` and return the maximum speed

    speed[0] is 0; speed[i] is the distance to the previous sample over the
    elapsed seconds. Non-finite speeds (no time elapsed, bad positions) take the
    previous sample's speed.

    Returns:
        Largest speed in m/s, 0.0 for fewer than two samples
    """
    n_samples = len(series)
    if n_samples < 2:
        series.speeds = np.zeros(n_samples)
        return 0.0

    distances = np.linalg.norm(np.diff(series.positions, axis=0), axis=1)
    elapsed = np.diff(series.timestamps).astype(float) / TICKS_PER_SECOND
    with np.errstate(divide='ignore', invalid='ignore'):
        speeds = np.concatenate([[0.0], distances / elapsed])

    speeds = pd.Series(speeds).replace([np.inf, -np.inf], np.nan).ffill()
    series.speeds = speeds.to_numpy()
    return max(0.0, float(np.max(series.speeds)))


class FileImportTask:
    """Parses one data file into per-(entity, session, condition) blocks"""

    def __init__(
        self,
        path: Path,
        bindings: Sequence[SourceBinding],
        objects: Dict[int, ObjectDescription],
        snapshots: Dict,
        frame: CoordinateFrame,
        config: Optional[ImportConfig] = None
    ):
        """
        Args:
            path: Resolved path of the data file
            bindings: Source bindings that refer to this file
            objects: Object descriptions by id (source column names)
            snapshots: EntitySnapshot by entity id
            frame: Study coordinate frame
            config: Import settings (defaults if None)
        """
        self.path = Path(path)
        self.bindings = list(bindings)
        self.objects = objects
        self.snapshots = snapshots
        self.frame = frame
        self.config = config or ImportConfig()
        self.header_width = 0
        self.n_truncated = 0

    def _label(self, binding: SourceBinding) -> str:
        return f"{self.path.name}[object {binding.object_id}]"

    def _build_parsers(self, header: Sequence[str]) -> List[SampleParser]:
        parsers = []
        for binding in self.bindings:
            mapping = map_columns(header, self.objects[binding.object_id], binding)
            logger.debug(f"{self._label(binding)} resolved: {mapping.resolved_roles()}")
            parsers.append(SampleParser(
                mapping,
                self.snapshots[binding.object_id],
                self.frame,
                condition_filter=binding.condition_filter,
                session_filter=binding.session_filter,
                label=self._label(binding),
            ))
        return parsers

    def _read_header_width(self) -> int:
        header = pd.read_csv(
            self.path,
            sep=self.config.delimiter,
            header=None,
            nrows=1,
            dtype=str,
            keep_default_na=False,
            encoding=self.config.encoding,
            engine="python",
        )
        return header.shape[1]

    def _truncate_row(self, fields: List[str]) -> List[str]:
        """Rows with more fields than the header keep the first header-width fields"""
        self.n_truncated += 1
        return fields[:self.header_width]

    def run(self) -> List[ImportBlock]:
        """
        Read the whole file

        Returns:
            One ImportBlock per binding, in binding order, each with a sorted
            SampleSeries and its max speed

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is empty or not a valid delimited file
        """
        if not self.path.is_file():
            raise FileNotFoundError(f"Data file not found: {self.path}")

        logger.info(f"Importing {self.path.name} for {len(self.bindings)} source(s)")

        blocks = [
            ImportBlock(entity_id=b.object_id, session_id=b.session_id, condition_id=b.condition_id)
            for b in self.bindings
        ]
        parsers: Optional[List[SampleParser]] = None
        n_rows = 0
        self.n_truncated = 0

        try:
            self.header_width = self._read_header_width()
            with pd.read_csv(
                self.path,
                sep=self.config.delimiter,
                header=None,
                dtype=str,
                keep_default_na=False,
                encoding=self.config.encoding,
                chunksize=self.config.chunk_size,
                engine="python",
                on_bad_lines=self._truncate_row,
            ) as reader:
                for chunk in reader:
                    rows = chunk.fillna("").itertuples(index=False, name=None)
                    if parsers is None:
                        header = next(rows, None)
                        if header is None:
                            continue
                        parsers = self._build_parsers([str(c).strip() for c in header])

                    for row in rows:
                        n_rows += 1
                        for parser, block in zip(parsers, blocks):
                            sample = parser.parse_row(row)
                            if sample is not None:
                                block.append(sample)
        except pd.errors.EmptyDataError:
            raise ValueError(f"Data file is empty: {self.path}")
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise ValueError(f"Malformed data file {self.path}: {e}")

        if parsers is None:
            raise ValueError(f"Data file has no header: {self.path}")
        if self.n_truncated:
            logger.warning(f"{self.path.name}: {self.n_truncated} row(s) longer than the header, "
                           f"extra fields dropped")

        for parser, block in zip(parsers, blocks):
            parser.log_summary()
            block.has_state_data = parser.has_state_data
            self._finalize_block(block, parser.label)

        logger.info(f"Finished {self.path.name}: {n_rows} rows")
        return blocks

    @staticmethod
    def _finalize_block(block: ImportBlock, label: str):
        series = block.finalize()
        if not series.is_sorted():
            logger.warning(f"{label}: samples not in timestamp order, sorting")
            series = series.sorted_by_timestamp()
        block.max_speed = compute_speeds(series)
        block.series = series


def import_file(path, bindings, objects, snapshots, frame, config=None) -> List[ImportBlock]:
    """Run a FileImportTask, the unit of work handed to the thread pool"""
    return FileImportTask(path, bindings, objects, snapshots, frame, config).run()
