"""
Test the full import: descriptor -> concurrent file import -> merge -> queries
"""
import json
import logging

import numpy as np
import pytest

from core.data_provider import StudyDataProvider
from core.entity import EntityType
from core.import_coordinator import ImportCoordinator
from core.import_task import FileImportTask, compute_speeds
from core.tracking_data import SampleSeries
from file_io.study_descriptor import StudyDescriptor

POSITION = {
    "timestamp": "time",
    "transform_position_x": "x",
    "transform_position_y": "y",
    "transform_position_z": "z",
}


def write_study(tmp_path, study, files):
    for name, content in files.items():
        (tmp_path / name).write_text(content, encoding="utf-8")
    path = tmp_path / "study.json"
    path.write_text(json.dumps(study), encoding="utf-8")
    return path


def basic_study(**overrides):
    study = {
        "name": "walk",
        "axis_direction_x": "right",
        "axis_direction_y": "up",
        "axis_direction_z": "forward",
        "conditions": ["A"],
        "sessions": [{"id": 0, "name": "S0"}],
        "objects": [
            {"id": 0, "name": "table", "type": "static", "static": True, "units": "cm"},
            dict(id=1, name="walker", type="user", units="cm", time_format="float", **POSITION),
        ],
        "objectsources": [{"object_id": 1, "file": "walk.csv", "session_id": 0, "condition_id": 0}],
    }
    study.update(overrides)
    return study


WALK_CSV = "time,x,y,z\n0,0,0,0\n1,1,0,0\n2,1,1,0\n"


def test_end_to_end_scenario(tmp_path):
    path = write_study(tmp_path, basic_study(), {"walk.csv": WALK_CSV})

    provider = StudyDataProvider()
    entities = provider.load_study(path)

    assert provider.is_study_loaded
    assert provider.current_study.name == "walk"
    assert set(entities) == {0, 1}
    assert entities[1].entity_type == EntityType.USER
    assert entities[0].entity_type == EntityType.STATIC

    assert provider.get_min_timestamp(1, 0, 0) == 0
    assert provider.get_max_timestamp(1, 0, 0) == 20_000_000
    samples = provider.get_samples(1, 0, 0)
    assert len(samples) == 3
    assert np.allclose(samples[1].position, [0.01, 0, 0])
    assert provider.get_index_from_timestamp(1, 15_000_000, 0, 0) == 1

    # static entity
    assert provider.get_index_from_timestamp(0, 15_000_000, 0, 0) == 0
    assert provider.get_min_timestamp(0, 0, 0) == 0
    assert np.allclose(entities[0].min_position, [0, 0, 0])

    # speeds and bounds
    assert np.allclose(samples.speeds, [0.0, 0.01, 0.01])
    assert provider.get_max_speed(1, 0, 0) == pytest.approx(0.01)
    assert np.allclose(entities[1].min_position, [0, 0, 0])
    assert np.allclose(entities[1].max_position, [0.01, 0.01, 0])
    assert np.allclose(entities[1].average_position, [0.02 / 3, 0.01 / 3, 0])

    assert provider.get_min_timestamp(1, 5, 0) == 0
    assert provider.get_max_timestamp(1, 0, 5) == 0


def test_timestamps_normalized_per_cell(tmp_path):
    study = basic_study(objects=[
        dict(id=1, name="a", type="user", **POSITION),
        dict(id=2, name="b", type="device", **POSITION),
        dict(id=3, name="anchor", type="static", static=True, **POSITION),
    ], objectsources=[
        {"object_id": 1, "file": "a.csv", "session_id": 0, "condition_id": 0},
        {"object_id": 2, "file": "b.csv", "session_id": 0, "condition_id": 0},
        {"object_id": 3, "file": "c.csv", "session_id": 0, "condition_id": 0},
    ])
    files = {
        "a.csv": "time,x,y,z\n5,0,0,0\n6,0,0,0\n",
        "b.csv": "time,x,y,z\n3,0,0,0\n4,0,0,0\n",
        "c.csv": "time,x,y,z\n1,0,0,0\n",
    }
    entities = StudyDataProvider().load_study(write_study(tmp_path, study, files))

    assert entities[2].index.get_min_timestamp(0, 0) == 0
    assert entities[1].index.get_min_timestamp(0, 0) == 20_000_000
    assert min(e.index.get_min_timestamp(0, 0) for e in entities.values() if not e.is_static) == 0
    # static entities keep their timestamps
    assert entities[3].index.get_min_timestamp(0, 0) == 10_000_000


def test_row_filters_split_one_file(tmp_path):
    study = basic_study(
        conditions=["A", "B"],
        objects=[dict(id=1, name="walker", units="m", **POSITION)],
        objectsources=[
            {"object_id": 1, "file": "walk.csv", "session_id": 0, "condition_id": 0,
             "condition_filter_column": "cond", "condition_filter": "A"},
            {"object_id": 1, "file": "walk.csv", "session_id": 0, "condition_id": 1,
             "condition_filter_column": "cond", "condition_filter": "B"},
        ])
    csv = "time,cond,x,y,z\n0,A,0,0,0\n1,B,5,0,0\n2,A,1,0,0\n3,B,6,0,0\n4,B,7,0,0\n"
    provider = StudyDataProvider()
    provider.load_study(write_study(tmp_path, study, {"walk.csv": csv}))

    a = provider.get_samples(1, 0, 0)
    b = provider.get_samples(1, 0, 1)
    assert [s.position[0] for s in a] == [0.0, 1.0]
    assert [s.position[0] for s in b] == [5.0, 6.0, 7.0]
    assert list(b.timestamps) == [0, 20_000_000, 30_000_000]


def test_unsorted_file_is_sorted_with_warning(tmp_path, caplog):
    csv = "time,x,y,z\n2,2,0,0\n0,0,0,0\n1,1,0,0\n"
    path = write_study(tmp_path, basic_study(), {"walk.csv": csv})

    with caplog.at_level(logging.WARNING, logger="core"):
        entities = StudyDataProvider().load_study(path)

    series = entities[1].index.get_samples(0, 0)
    assert list(series.timestamps) == [0, 10_000_000, 20_000_000]
    assert np.allclose(series.positions[:, 0], [0, 0.01, 0.02])
    assert "not in timestamp order" in caplog.text


def test_bad_values_do_not_abort_import(tmp_path):
    csv = "time,x,y,z\n0,0,0,0\n1,oops,0,0\nnever,1,0,0\n"
    entities = StudyDataProvider().load_study(write_study(tmp_path, basic_study(), {"walk.csv": csv}))
    series = entities[1].index.get_samples(0, 0)
    assert len(series) == 3
    # the unparsable timestamp becomes 0 and sorts first
    assert list(series.timestamps) == [0, 0, 10_000_000]


def test_rows_longer_than_header_are_truncated(tmp_path, caplog):
    csv = "time,x,y,z\n0,0,0,0\n1,100,0,0,\n2,200,0,0,7,8\n"
    path = write_study(tmp_path, basic_study(), {"walk.csv": csv})

    with caplog.at_level(logging.WARNING, logger="core"):
        entities = StudyDataProvider().load_study(path)

    series = entities[1].index.get_samples(0, 0)
    assert list(series.timestamps) == [0, 10_000_000, 20_000_000]
    assert np.allclose(series.positions[:, 0], [0, 1, 2])
    assert "2 row(s) longer than the header" in caplog.text


def test_state_column(tmp_path):
    objects = [dict(id=1, name="walker", state="phase", **POSITION)]
    csv = "time,x,y,z,phase\n0,0,0,0,stand\n1,1,0,0,walk\n"
    entities = StudyDataProvider().load_study(
        write_study(tmp_path, basic_study(objects=objects), {"walk.csv": csv}))
    assert entities[1].has_state_data
    assert entities[1].index.get_samples(0, 0).states == ["stand", "walk"]


def test_later_source_replaces_cell(tmp_path):
    study = basic_study(objects=[dict(id=1, name="walker", units="m", **POSITION)], objectsources=[
        {"object_id": 1, "file": "first.csv", "session_id": 0, "condition_id": 0},
        {"object_id": 1, "file": "second.csv", "session_id": 0, "condition_id": 0},
    ])
    files = {
        "first.csv": "time,x,y,z\n0,0,0,0\n1,5,0,0\n",
        "second.csv": "time,x,y,z\n0,0,0,0\n1,3,0,0\n2,3,0,0\n",
    }
    provider = StudyDataProvider()
    provider.load_study(write_study(tmp_path, study, files))
    assert len(provider.get_samples(1, 0, 0)) == 3
    # max speed keeps the larger of both sources
    assert provider.get_max_speed(1, 0, 0) == pytest.approx(5.0)


def test_compute_speeds_repeats_previous_for_zero_interval():
    series = SampleSeries(
        timestamps=np.array([0, 10_000_000, 10_000_000, 20_000_000], dtype=np.int64),
        positions=np.array([[0, 0, 0], [2, 0, 0], [3, 0, 0], [3, 0, 0]], dtype=float),
        rotations=np.tile([1.0, 0, 0, 0], (4, 1)),
        scales=np.ones((4, 3)),
    )
    max_speed = compute_speeds(series)
    assert np.allclose(series.speeds, [0.0, 2.0, 2.0, 0.0])
    assert max_speed == 2.0

    single = SampleSeries.from_samples([series[0]])
    assert compute_speeds(single) == 0.0


def test_missing_data_file_keeps_previous_study(tmp_path):
    provider = StudyDataProvider()
    provider.load_study(write_study(tmp_path, basic_study(), {"walk.csv": WALK_CSV}))

    broken = basic_study(name="broken", objectsources=[
        {"object_id": 1, "file": "gone.csv", "session_id": 0, "condition_id": 0}])
    broken_path = tmp_path / "broken.json"
    broken_path.write_text(json.dumps(broken), encoding="utf-8")

    with pytest.raises(FileNotFoundError):
        provider.load_study(broken_path)
    assert provider.current_study.name == "walk"
    assert len(provider.get_samples(1, 0, 0)) == 3


def test_empty_data_file_is_an_error(tmp_path):
    path = write_study(tmp_path, basic_study(), {"walk.csv": ""})
    with pytest.raises(ValueError):
        StudyDataProvider().load_study(path)


def test_invalid_descriptor_object_is_an_error():
    study = StudyDescriptor.from_dict(basic_study(sessions=[]))
    with pytest.raises(ValueError):
        StudyDataProvider().load_study(study)


def test_superseded_load_is_discarded(tmp_path, monkeypatch):
    provider = StudyDataProvider()
    provider.load_study(write_study(tmp_path, basic_study(), {"walk.csv": WALK_CSV}))

    original_run = ImportCoordinator.run

    def run_while_another_load_starts(self):
        result = original_run(self)
        provider._generation += 1
        return result

    monkeypatch.setattr(ImportCoordinator, "run", run_while_another_load_starts)
    study = StudyDescriptor.from_dict(basic_study(name="stale"), base_directory=tmp_path)
    entities = provider.load_study(study)

    assert set(entities) == {0, 1}
    assert provider.current_study.name == "walk"


def test_file_import_task_blocks(tmp_path):
    study = StudyDescriptor.from_dict(basic_study(), base_directory=tmp_path)
    (tmp_path / "walk.csv").write_text(WALK_CSV, encoding="utf-8")
    coordinator = ImportCoordinator(study)
    entities = coordinator.build_entities()

    task = FileImportTask(
        study.resolve_path("walk.csv"),
        study.object_sources,
        {obj.id: obj for obj in study.objects},
        {i: e.snapshot() for i, e in entities.items()},
        coordinator.frame,
    )
    blocks = task.run()
    assert len(blocks) == 1
    assert (blocks[0].entity_id, blocks[0].session_id, blocks[0].condition_id) == (1, 0, 0)
    assert len(blocks[0].series) == 3
    assert blocks[0].samples == []


def test_anchors_and_axis_mapping(tmp_path):
    study = basic_study(
        axis_direction_x="forward", axis_direction_y="left", axis_direction_z="up",
        anchors=[{"id": 9, "units": "cm", "transform_position_x": "{100}",
                  "transform_position_y": "{0}", "transform_position_z": "{0}"}],
    )
    provider = StudyDataProvider()
    provider.load_study(write_study(tmp_path, study, {"walk.csv": WALK_CSV}))

    assert provider.coordinate_frame.axis_tokens == ("forward", "left", "up")
    assert np.allclose(provider.anchors[0].position, [0, 0, 1.0])
    # data x is canonical forward
    assert np.allclose(provider.get_samples(1, 0, 0)[1].position, [0, 0, 0.01])


if __name__ == '__main__':
    pytest.main([__file__])
