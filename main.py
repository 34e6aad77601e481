"""
Study Playback Index - Main Entry Point

Loads a study descriptor with its motion-capture data files and prints a
summary of every tracked entity.

Features:
- XML or JSON study descriptors
- Concurrent import of multi-file CSV data
- Coordinate, unit and rotation normalization into one canonical frame
- Per-entity temporal index for timestamp lookups
"""

import argparse
import logging
import sys

from config.logging_config import setup_logging
from config.settings import TICKS_PER_SECOND, app_settings
from core.data_provider import StudyDataProvider

logger = logging.getLogger("core")


def print_summary(provider: StudyDataProvider):
    """Print one block per entity with its per-cell sample statistics"""
    study = provider.current_study
    print(f"\n=== Study: {study.name} ===")
    print(f"Axes: {provider.coordinate_frame.axis_tokens}")
    print(f"Sessions: {study.session_count}, Conditions: {study.conditions}")

    for entity_id, entity in sorted(provider.entities.items()):
        kind = "static" if entity.is_static else "dynamic"
        print(f"\n[{entity_id}] {entity.title} ({entity.entity_type.value}, {kind})")
        print(f"  Bounds: {entity.min_position.round(3)} .. {entity.max_position.round(3)}")
        for session, condition, series in entity.index.iter_cells():
            t_min = entity.index.get_min_timestamp(session, condition) / TICKS_PER_SECOND
            t_max = entity.index.get_max_timestamp(session, condition) / TICKS_PER_SECOND
            max_speed = entity.index.get_max_speed(session, condition)
            print(f"  Session {session} / {entity.id_to_condition(condition)}: "
                  f"{len(series)} samples, {t_min:.3f}-{t_max:.3f} s, max speed {max_speed:.2f} m/s")

    if provider.anchors:
        print(f"\nAnchors: {[anchor.id for anchor in provider.anchors]}")


def main(argv=None):
    """Main application entry point"""
    parser = argparse.ArgumentParser(description="Load a motion-capture study and summarize it")
    parser.add_argument("descriptor", help="Study descriptor (.xml or .json)")
    parser.add_argument("--data-dir", help="Directory of the data files (default: descriptor directory)")
    parser.add_argument("--workers", type=int, help="Number of import threads")
    parser.add_argument("--log-file", help="Also write the log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    app_settings.logging.level = logging.DEBUG if args.verbose else logging.INFO
    app_settings.logging.log_file = args.log_file
    setup_logging(app_settings.logging.level, app_settings.logging.log_file)

    if args.data_dir:
        app_settings.data_directory = args.data_dir
    if args.workers:
        app_settings.importing.max_workers = args.workers

    provider = StudyDataProvider()
    try:
        provider.load_study(args.descriptor)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not load study: {e}")
        return 1

    print_summary(provider)
    return 0


if __name__ == "__main__":
    sys.exit(main())
