import numpy as np
import pytest

from pinst.core.attrmap import AttributeMap, AttributeMapBuilder, TimeSampledValue


def _matrix(i: int) -> np.ndarray:
    return np.arange(16, dtype=np.float64).reshape(4, 4) + 100.0 * i


def test_untouched_builder_builds_invalid_map() -> None:
    built = AttributeMapBuilder().build()
    assert not built.is_valid
    assert len(built) == 0


def test_invalidated_builder_builds_invalid_map() -> None:
    builder = AttributeMapBuilder().set("type", "group")
    builder.invalidate()
    assert not builder.build().is_valid


def test_empty_group_is_valid_and_distinct_from_invalid() -> None:
    built = AttributeMapBuilder().set("c", {}).build()
    assert built.is_valid
    children = built["c"]
    assert isinstance(children, AttributeMap)
    assert children.is_valid
    assert len(children) == 0


def test_set_dotted_names_create_nested_groups() -> None:
    builder = AttributeMapBuilder()
    builder.set("c.proto.a.type", "instance source")
    builder.set("c.proto.a.info.prototypePath", "/World/proto")
    built = builder.build()
    assert built.get_child("c.proto.a.type") == "instance source"
    assert built.get_child("c.proto.a.info.prototypePath") == "/World/proto"
    assert built.get_child("c.missing") is None
    assert list(dict(built["c"].groups())) == ["proto"]


def test_set_overwrites_existing_value() -> None:
    built = AttributeMapBuilder().set("type", "group").set("type", "error").build()
    assert built["type"] == "error"


def test_list_values_become_read_only_arrays() -> None:
    built = AttributeMapBuilder().set("ids", [1, 2, 3]).build()
    ids = built["ids"]
    assert isinstance(ids, np.ndarray)
    with pytest.raises(ValueError):
        ids[0] = 7


def test_time_keyed_buffer_layout_is_row_major_per_instance() -> None:
    n = 3
    builder = AttributeMapBuilder()
    for i in range(n):
        builder.append_time_keyed_sample("instanceMatrix", 0.0, i, _matrix(i), instance_count=n)
    value = builder.build()["instanceMatrix"]
    assert isinstance(value, TimeSampledValue)
    buf = value[0.0]
    assert buf.shape == (16 * n,)
    for i in range(n):
        np.testing.assert_array_equal(buf[16 * i:16 * i + 16], _matrix(i).reshape(-1))
    # row-major: second component is row 0, column 1
    assert buf[1] == 1.0 and buf[4] == 4.0


def test_time_keys_keep_insertion_order() -> None:
    builder = AttributeMapBuilder()
    for key in (0.5, -0.5):
        builder.append_time_keyed_sample("instanceMatrix", key, 0, np.eye(4), instance_count=1)
    value = builder.build()["instanceMatrix"]
    assert list(value) == [0.5, -0.5]
    assert value.labels() == ["0.5", "-0.5"]
    assert value.num_samples == 2


def test_out_of_order_append_is_rejected() -> None:
    builder = AttributeMapBuilder()
    builder.append_time_keyed_sample("instanceMatrix", 0.0, 0, np.eye(4), instance_count=2)
    with pytest.raises(ValueError):
        builder.append_time_keyed_sample("instanceMatrix", 0.0, 2, np.eye(4))


def test_append_rejects_non_4x4_values() -> None:
    builder = AttributeMapBuilder()
    with pytest.raises(ValueError):
        builder.append_time_keyed_sample("instanceMatrix", 0.0, 0, np.eye(3))


def test_append_grows_past_reserved_capacity() -> None:
    builder = AttributeMapBuilder()
    builder.reserve("instanceMatrix", 0.0, 1)
    for i in range(5):
        builder.append_time_keyed_sample("instanceMatrix", 0.0, i, _matrix(i))
    buf = builder.build()["instanceMatrix"][0.0]
    assert buf.shape == (80,)
    np.testing.assert_array_equal(buf[64:], _matrix(4).reshape(-1))


def test_extend_matches_per_instance_appends() -> None:
    mats = np.stack([_matrix(i) for i in range(4)])
    bulk = AttributeMapBuilder()
    bulk.extend_time_keyed_samples("m", -0.25, mats)
    single = AttributeMapBuilder()
    for i, mat in enumerate(mats):
        single.append_time_keyed_sample("m", -0.25, i, mat, instance_count=4)
    np.testing.assert_array_equal(bulk.build()["m"][-0.25], single.build()["m"][-0.25])


def test_built_buffers_are_immutable_snapshots() -> None:
    builder = AttributeMapBuilder()
    builder.append_time_keyed_sample("m", 0.0, 0, _matrix(0), instance_count=2)
    first = builder.build()
    builder.append_time_keyed_sample("m", 0.0, 1, _matrix(1))
    second = builder.build()
    assert first["m"][0.0].shape == (16,)
    assert second["m"][0.0].shape == (32,)
    with pytest.raises(ValueError):
        first["m"][0.0][0] = 1.0


def test_update_merges_other_map_entries() -> None:
    args = AttributeMapBuilder().set("system.timeSlice", 1.0).set("rootLocation", "/root").build()
    merged = AttributeMapBuilder().update(args).set("staticScene", {"a": {"type": "x"}}).build()
    assert merged["rootLocation"] == "/root"
    assert merged.get_child("system.timeSlice") == 1.0
    assert merged.get_child("staticScene.a.type") == "x"


def test_update_with_empty_map_still_yields_valid_map() -> None:
    merged = AttributeMapBuilder().update(AttributeMap()).build()
    assert merged.is_valid


def test_to_dict_converts_nested_values() -> None:
    builder = AttributeMapBuilder().set("a.type", "instance array")
    builder.append_time_keyed_sample("a.geometry.instanceMatrix", 0.0, 0, np.eye(4), instance_count=1)
    plain = builder.build().to_dict()
    assert plain["a"]["type"] == "instance array"
    assert plain["a"]["geometry"]["instanceMatrix"]["0"] == np.eye(4).reshape(-1).tolist()


def test_invalid_name_is_rejected() -> None:
    with pytest.raises(ValueError):
        AttributeMapBuilder().set("a..b", 1)
