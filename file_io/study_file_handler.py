"""
File I/O handler for study descriptors
Supports loading XML and JSON study descriptions and scanning data directories
"""
import json
import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import ImportConfig
from file_io.study_descriptor import StudyDescriptor

logger = logging.getLogger(__name__)


class StudyFileHandler:
    """Handles file operations for study descriptors"""

    # Supported file extensions
    DESCRIPTOR_EXTENSIONS = ImportConfig.DESCRIPTOR_EXTENSIONS
    DATA_EXTENSIONS = ['.csv', '.txt', '.tsv']

    # XML list containers and their item tags
    _XML_LISTS = {
        'conditions': 'condition',
        'sessions': 'session',
        'objects': 'object',
        'objectsources': 'objectsource',
        'anchors': 'anchor',
    }

    @staticmethod
    def load_descriptor(filepath: str, data_directory: Optional[str] = None) -> StudyDescriptor:
        """
        Load a study descriptor from file

        Args:
            filepath: Path to descriptor file (.xml or .json)
            data_directory: Directory data files are relative to
                            (defaults to the descriptor's directory)

        Returns:
            Validated StudyDescriptor
        """
        path = Path(filepath)
        if not path.is_file():
            raise FileNotFoundError(f"Study descriptor not found: {filepath}")

        file_ext = path.suffix.lower()
        if file_ext == '.xml':
            raw = StudyFileHandler._read_xml(path)
        elif file_ext == '.json':
            raw = StudyFileHandler._read_json(path)
        else:
            raise ValueError(f"Unsupported descriptor format: {file_ext}")

        base_directory = Path(data_directory) if data_directory else path.parent
        descriptor = StudyDescriptor.from_dict(raw, base_directory=base_directory)
        descriptor.validate()

        logger.info(
            f"Loaded study '{descriptor.name}' from {filepath}: "
            f"{len(descriptor.objects)} objects, {descriptor.session_count} sessions, "
            f"{descriptor.condition_count} conditions")
        return descriptor

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed study descriptor {path}: {e}")

    @staticmethod
    def _read_xml(path: Path) -> Dict[str, Any]:
        """
        Read an `AnalysisXml` document into the same dictionary layout as JSON.

        Attributes and child element texts of each item both become keys.
        """
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as e:
            raise ValueError(f"Malformed study descriptor {path}: {e}")

        if root.tag != 'AnalysisXml':
            raise ValueError(f"Unexpected root element <{root.tag}> in {path}")

        result: Dict[str, Any] = dict(root.attrib)
        for list_tag, item_tag in StudyFileHandler._XML_LISTS.items():
            container = root.find(list_tag)
            if container is None:
                continue
            items = container.findall(item_tag)
            if list_tag == 'conditions':
                result[list_tag] = [(item.text or '').strip() for item in items]
            else:
                result[list_tag] = [StudyFileHandler._element_to_dict(item) for item in items]
        return result

    @staticmethod
    def _element_to_dict(element: ET.Element) -> Dict[str, Any]:
        item: Dict[str, Any] = dict(element.attrib)
        for child in element:
            item[child.tag] = child.text or ''
        return item

    @staticmethod
    def scan_directory(directory: str) -> Dict[str, List[str]]:
        """
        Scan directory for study descriptors and data files

        Args:
            directory: Path to directory to scan

        Returns:
            Dictionary with 'descriptors' and 'data' file lists
        """
        files = {
            'descriptors': [],
            'data': []
        }

        if not os.path.exists(directory):
            return files

        for filename in sorted(os.listdir(directory)):
            filepath = os.path.join(directory, filename)
            if os.path.isfile(filepath):
                ext = Path(filename).suffix.lower()

                if ext in StudyFileHandler.DESCRIPTOR_EXTENSIONS:
                    files['descriptors'].append(filepath)
                elif ext in StudyFileHandler.DATA_EXTENSIONS:
                    files['data'].append(filepath)

        return files

    @staticmethod
    def is_descriptor_file(filepath: str) -> bool:
        """Check if file has a descriptor extension"""
        return Path(filepath).suffix.lower() in StudyFileHandler.DESCRIPTOR_EXTENSIONS
