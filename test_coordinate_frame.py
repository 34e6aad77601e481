"""
Test coordinate, unit and rotation normalization
"""
import numpy as np

from core.coordinate_frame import (
    CoordinateFrame, RotationFormat, rotation_from_components, unit_scale_factor
)
from core.quaternion_utils import (
    euler_to_quaternion, look_rotation, quaternion_normalize, quaternion_to_rotation_matrix
)

# Every token appears at least once, each triple is a basis
AXIS_COMBINATIONS = [
    ("right", "up", "forward"),
    ("left", "down", "back"),
    ("forward", "right", "up"),
    ("back", "left", "down"),
    ("up", "forward", "left"),
    ("down", "back", "right"),
]


def same_rotation(q1, q2):
    return np.allclose(quaternion_to_rotation_matrix(q1), quaternion_to_rotation_matrix(q2), atol=1e-9)


def test_vector_round_trip():
    v = np.array([0.3, -1.2, 2.5])
    for tokens in AXIS_COMBINATIONS:
        frame = CoordinateFrame.from_axis_tokens(*tokens)
        back = frame.inverse_transform_vector(frame.transform_vector(v))
        assert np.allclose(back, v), f"round trip failed for {tokens}"


def test_rotation_round_trip():
    q = quaternion_normalize(np.array([0.9, 0.1, -0.3, 0.2]))
    for tokens in AXIS_COMBINATIONS:
        frame = CoordinateFrame.from_axis_tokens(*tokens)
        back = frame.inverse_transform_rotation(frame.transform_rotation(q))
        assert same_rotation(back, q), f"rotation round trip failed for {tokens}"


def test_axis_tokens_become_matrix_columns():
    frame = CoordinateFrame.from_axis_tokens("forward", "right", "up")
    assert np.allclose(frame.transform_vector([1, 0, 0]), [0, 0, 1])
    assert np.allclose(frame.transform_vector([0, 1, 0]), [1, 0, 0])
    assert np.allclose(frame.transform_vector([0, 0, 1]), [0, 1, 0])


def test_rotation_is_conjugated():
    # 90 deg about the data's z axis, which points up in canonical frame
    frame = CoordinateFrame.from_axis_tokens("forward", "right", "up")
    q_data = euler_to_quaternion(np.array([0.0, 0.0, 90.0]))
    q_canonical = frame.transform_rotation(q_data)

    data_x = np.array([1.0, 0.0, 0.0])
    rotated_in_data = quaternion_to_rotation_matrix(q_data) @ data_x
    expected = frame.transform_vector(rotated_in_data)
    actual = quaternion_to_rotation_matrix(q_canonical) @ frame.transform_vector(data_x)
    assert np.allclose(actual, expected)


def test_unknown_token_falls_back_to_identity():
    frame = CoordinateFrame.from_axis_tokens("right", "sideways", "forward")
    assert frame.is_identity
    assert np.allclose(frame.matrix, np.eye(4))


def test_degenerate_axes_fall_back_to_identity():
    frame = CoordinateFrame.from_axis_tokens("up", "up", "forward")
    assert frame.is_identity
    assert np.allclose(frame.inverse_matrix, np.eye(4))


def test_unit_factors():
    assert unit_scale_factor("mm") == 0.001
    assert unit_scale_factor("cm") == 0.01
    assert unit_scale_factor("m") == 1.0
    assert unit_scale_factor("") == 1.0
    assert unit_scale_factor("furlong") == 1.0


def test_normalize_position_scales_then_maps():
    frame = CoordinateFrame.from_axis_tokens("left", "up", "forward")
    position = frame.normalize_position(np.array([100.0, 50.0, 0.0]), 0.01)
    assert np.allclose(position, [-1.0, 0.5, 0.0])


def test_zero_quaternion_becomes_identity():
    frame = CoordinateFrame.identity()
    assert np.allclose(frame.normalize_rotation(np.zeros(4)), [1, 0, 0, 0])


def test_rotation_format_tokens():
    assert RotationFormat.from_token("euler_deg") == RotationFormat.EULER_DEG
    assert RotationFormat.from_token("Direction_Vector") == RotationFormat.DIRECTION_VECTOR
    assert RotationFormat.from_token("matrix") == RotationFormat.QUATERNION
    assert RotationFormat.from_token(None) == RotationFormat.QUATERNION


def test_euler_order_z_then_x_then_y():
    # x first turns +y onto +z, then y turns +z onto +x
    q = euler_to_quaternion(np.array([90.0, 90.0, 0.0]))
    assert np.allclose(quaternion_to_rotation_matrix(q) @ [0, 1, 0], [1, 0, 0], atol=1e-9)

    # z first turns +x onto +y, then x turns +y onto +z
    q = euler_to_quaternion(np.array([90.0, 0.0, 90.0]))
    assert np.allclose(quaternion_to_rotation_matrix(q) @ [1, 0, 0], [0, 0, 1], atol=1e-9)


def test_euler_radians_match_degrees():
    deg = rotation_from_components([30.0, 45.0, 60.0], RotationFormat.EULER_DEG)
    rad = rotation_from_components(np.radians([30.0, 45.0, 60.0]), RotationFormat.EULER_RAD)
    assert same_rotation(deg, rad)


def test_look_rotation():
    q = look_rotation(np.array([2.0, 0.0, 0.0]))
    R = quaternion_to_rotation_matrix(q)
    assert np.allclose(R @ [0, 0, 1], [1, 0, 0], atol=1e-9)
    assert np.allclose(R @ [0, 1, 0], [0, 1, 0], atol=1e-9)

    assert np.allclose(look_rotation(np.zeros(3)), [1, 0, 0, 0])
    assert np.allclose(rotation_from_components([0, 0, 0], RotationFormat.DIRECTION_VECTOR), [1, 0, 0, 0])


def test_three_components_as_quaternion_is_identity():
    q = rotation_from_components([0.3, 0.2, 0.1], RotationFormat.QUATERNION)
    assert np.allclose(q, [1, 0, 0, 0])


if __name__ == '__main__':
    test_vector_round_trip()
    test_rotation_round_trip()
    test_axis_tokens_become_matrix_columns()
    test_rotation_is_conjugated()
    test_unknown_token_falls_back_to_identity()
    test_degenerate_axes_fall_back_to_identity()
    test_unit_factors()
    test_normalize_position_scales_then_maps()
    test_zero_quaternion_becomes_identity()
    test_rotation_format_tokens()
    test_euler_order_z_then_x_then_y()
    test_euler_radians_match_degrees()
    test_look_rotation()
    test_three_components_as_quaternion_is_identity()
    print('OK')
