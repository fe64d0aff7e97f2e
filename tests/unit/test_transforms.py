import numpy as np

from pinst.core.instancer import PointInstancer, SampledAttribute
from pinst.core.transforms import (
    PointInstancerTransformComputer,
    axis_angle_quaternions,
    quaternions_to_rows,
    slerp,
)


def make_instancer(**kwargs) -> PointInstancer:
    def attr(value, width, dtype=np.float64):
        return SampledAttribute.from_value(value, width, dtype)

    return PointInstancer(
        path="/World/inst",
        prototypes=kwargs.pop("prototypes", ["/World/protos/cube"]),
        proto_indices=attr(kwargs.pop("proto_indices", None), 1, np.int64),
        positions=attr(kwargs.pop("positions", None), 3),
        orientations=attr(kwargs.pop("orientations", None), 4),
        scales=attr(kwargs.pop("scales", None), 3),
        velocities=attr(kwargs.pop("velocities", None), 3),
        angular_velocities=attr(kwargs.pop("angular_velocities", None), 3),
        time_codes_per_second=kwargs.pop("time_codes_per_second", 24.0),
    )


def test_static_instancer_collapses_to_one_sample() -> None:
    inst = make_instancer(proto_indices=[0, 0], positions=[[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    mats, produced = PointInstancerTransformComputer().compute(inst, [0.75, 1.25], 1.0)
    assert produced == 1
    assert len(mats) == 1
    assert mats[0].shape == (2, 4, 4)
    np.testing.assert_allclose(mats[0][1, 3, :3], [4.0, 5.0, 6.0])
    np.testing.assert_allclose(mats[0][0, :3, :3], np.eye(3))


def test_scale_then_rotate_then_translate() -> None:
    half = np.sqrt(0.5)
    inst = make_instancer(
        proto_indices=[0],
        positions=[[10.0, 0.0, 0.0]],
        orientations=[[half, 0.0, 0.0, half]],  # 90 degrees about +z
        scales=[[2.0, 2.0, 2.0]],
    )
    mats, produced = PointInstancerTransformComputer().compute(inst, [1.0], 1.0)
    assert produced == 1
    point = np.array([1.0, 0.0, 0.0, 1.0]) @ mats[0][0]
    np.testing.assert_allclose(point, [10.0, 2.0, 0.0, 1.0], atol=1e-9)


def test_time_sampled_positions_interpolate() -> None:
    inst = make_instancer(
        proto_indices=[0],
        positions={1.0: [[0.0, 0.0, 0.0]], 2.0: [[2.0, 0.0, 0.0]]},
    )
    mats, produced = PointInstancerTransformComputer().compute(inst, [1.0, 1.5], 1.0)
    assert produced == 2
    assert mats[0][0, 3, 0] == 0.0
    assert np.isclose(mats[1][0, 3, 0], 1.0)


def test_velocities_extrapolate_from_lower_sample() -> None:
    inst = make_instancer(
        proto_indices=[0],
        positions={1.0: [[0.0, 0.0, 0.0]]},
        velocities={1.0: [[24.0, 0.0, 0.0]]},
        time_codes_per_second=24.0,
    )
    mats, produced = PointInstancerTransformComputer().compute(inst, [1.0, 1.5], 1.0)
    assert produced == 2
    assert np.isclose(mats[0][0, 3, 0], 0.0)
    assert np.isclose(mats[1][0, 3, 0], 0.5)


def test_angular_velocity_rotates_orientation() -> None:
    inst = make_instancer(
        proto_indices=[0],
        positions={1.0: [[0.0, 0.0, 0.0]]},
        orientations={1.0: [[1.0, 0.0, 0.0, 0.0]]},
        angular_velocities={1.0: [[0.0, 0.0, 90.0]]},  # degrees per second
        time_codes_per_second=24.0,
    )
    mats, produced = PointInstancerTransformComputer().compute(inst, [1.0, 25.0], 1.0)
    assert produced == 2
    np.testing.assert_allclose(mats[0][0, :3, :3], np.eye(3), atol=1e-9)
    np.testing.assert_allclose(mats[1][0, 0, :3], [0.0, 1.0, 0.0], atol=1e-9)


def test_topology_change_across_samples_yields_zero() -> None:
    inst = make_instancer(
        proto_indices={1.0: [0, 0], 2.0: [0, 0, 0]},
        positions={1.0: np.zeros((2, 3)), 2.0: np.zeros((3, 3))},
    )
    mats, produced = PointInstancerTransformComputer().compute(inst, [1.0, 2.0], 1.0)
    assert produced == 0
    assert mats == []


def test_empty_instancer_yields_zero() -> None:
    inst = make_instancer(proto_indices=[], positions=[])
    _, produced = PointInstancerTransformComputer().compute(inst, [1.0], 1.0)
    assert produced == 0


def test_missing_positions_yield_zero() -> None:
    inst = make_instancer(proto_indices=[0, 0])
    _, produced = PointInstancerTransformComputer().compute(inst, [1.0], 1.0)
    assert produced == 0


def test_attribute_size_mismatch_yields_zero() -> None:
    inst = make_instancer(proto_indices=[0, 0], positions=np.zeros((3, 3)))
    _, produced = PointInstancerTransformComputer().compute(inst, [1.0], 1.0)
    assert produced == 0


def test_rotation_rows_for_identity_and_axis_angle() -> None:
    np.testing.assert_allclose(quaternions_to_rows(np.array([[1.0, 0.0, 0.0, 0.0]]))[0], np.eye(3))
    q = axis_angle_quaternions(np.array([[0.0, 0.0, 180.0]]))
    np.testing.assert_allclose(q[0], [0.0, 0.0, 0.0, 1.0], atol=1e-12)


def test_slerp_halfway() -> None:
    q0 = np.array([[1.0, 0.0, 0.0, 0.0]])
    q1 = axis_angle_quaternions(np.array([[0.0, 0.0, 90.0]]))
    mid = slerp(q0, q1, 0.5)
    np.testing.assert_allclose(mid, axis_angle_quaternions(np.array([[0.0, 0.0, 45.0]])), atol=1e-9)
