from pathlib import Path

import numpy as np
import yaml

from pinst.core.exporter import NpzWriter, YamlWriter, flatten_attrs
from pinst.core.host import InvocationContext
from pinst.core.instancer import PointInstancer, SampledAttribute
from pinst.core.scenegraph import SceneGraphHost, SceneNode, static_scene_create
from pinst.core.attrmap import AttributeMapBuilder


def make_instancer() -> PointInstancer:
    return PointInstancer(
        path="/World/inst",
        prototypes=["/World/protos/cube", "/World/protos/sphere"],
        proto_indices=SampledAttribute.from_value([0, 1, 1], 1, np.int64),
        positions=SampledAttribute.from_value(
            {1.0: [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]],
             2.0: [[0.0, 1.0, 0.0], [1.0, 1.0, 0.0], [2.0, 1.0, 0.0]]},
            3,
        ),
    )


CONTEXT = InvocationContext(
    current_time=1.0,
    motion_sample_times=(0.0, 0.5),
    output_location_path="/root/world/inst",
)


def test_static_scene_create_builds_nested_locations() -> None:
    tree = (
        AttributeMapBuilder()
        .set("a.type", "group")
        .set("c.child.a.type", "locator")
        .set("c.child.c.leaf.a.value", 3)
        .build()
    )
    root = SceneNode(path="/root")
    static_scene_create(root, tree)
    assert root.attrs["type"] == "group"
    assert root.find("/root/child").attrs["type"] == "locator"
    assert root.find("/root/child/leaf").attrs["value"] == 3


def test_scene_graph_host_realises_children() -> None:
    root, result = SceneGraphHost().cook(make_instancer(), CONTEXT)
    assert result.ok
    assert root.attrs["type"] == "point instancer"
    assert "__skipAllChildren" not in root.attrs
    assert list(root.children) == ["cube", "sphere", "instances"]
    assert root.children["cube"].name == "cube"
    assert root.children["cube"].attrs["type"] == "instance source"
    instances = root.children["instances"]
    assert instances.attrs["type"] == "instance array"
    matrices = instances.attrs["geometry"]["instanceMatrix"]
    assert matrices.labels() == ["0", "0.5"]
    np.testing.assert_allclose(matrices[0.5][16 * 2 + 12:16 * 2 + 15], [2.0, 0.5, 0.0])


def test_scene_graph_host_keeps_error_on_root() -> None:
    broken = make_instancer()
    broken.positions = SampledAttribute.from_value(np.zeros((2, 3)), 3)
    root, result = SceneGraphHost().cook(broken, CONTEXT)
    assert not result.ok
    assert root.attrs["type"] == "error"
    assert root.children == {}


def test_yaml_writer_round_trips_tree(tmp_path: Path) -> None:
    root, _ = SceneGraphHost().cook(make_instancer(), CONTEXT)
    out = tmp_path / "scene.yaml"
    writer = YamlWriter(str(out))
    writer.write_tree(root)
    assert not out.exists()
    writer.close()
    doc = yaml.safe_load(out.read_text(encoding="utf-8"))
    locations = doc["locations"]
    assert list(locations) == [
        "/root/world/inst",
        "/root/world/inst/cube",
        "/root/world/inst/sphere",
        "/root/world/inst/instances",
    ]
    geometry = locations["/root/world/inst/instances"]["geometry"]
    assert list(geometry["instanceMatrix"]) == ["0", "0.5"]
    assert len(geometry["instanceMatrix"]["0"]) == 48
    assert geometry["instanceIndex"] == [0, 1, 1]


def test_npz_writer_flattens_time_samples(tmp_path: Path) -> None:
    root, _ = SceneGraphHost().cook(make_instancer(), CONTEXT)
    out = tmp_path / "scene.npz"
    writer = NpzWriter(str(out))
    writer.write_tree(root)
    writer.close()
    data = np.load(out)
    key = "root/world/inst/instances:geometry.instanceMatrix@0.5"
    assert key in data.files
    assert data[key].shape == (48,)
    assert str(data["root/world/inst:type"]) == "point instancer"


def test_flatten_attrs_names() -> None:
    attrs = AttributeMapBuilder().set("geometry.instanceIndex", [0, 1]).build()
    names = [name for name, _ in flatten_attrs(dict(attrs.items()))]
    assert names == ["geometry.instanceIndex"]


def test_writers_keep_time_keys_that_differ_past_six_digits(tmp_path: Path) -> None:
    context = InvocationContext(
        current_time=1.0,
        motion_sample_times=(0.1234567, 0.1234568),
        output_location_path="/root/world/inst",
    )
    root, result = SceneGraphHost().cook(make_instancer(), context)
    assert result.produced_samples == 2

    yaml_out = tmp_path / "scene.yaml"
    writer = YamlWriter(str(yaml_out))
    writer.write_tree(root)
    writer.close()
    doc = yaml.safe_load(yaml_out.read_text(encoding="utf-8"))
    matrices = doc["locations"]["/root/world/inst/instances"]["geometry"]["instanceMatrix"]
    assert list(matrices) == ["0.1234567", "0.1234568"]

    npz_out = tmp_path / "scene.npz"
    writer = NpzWriter(str(npz_out))
    writer.write_tree(root)
    writer.close()
    data = np.load(npz_out)
    prefix = "root/world/inst/instances:geometry.instanceMatrix"
    assert f"{prefix}@0.1234567" in data.files
    assert f"{prefix}@0.1234568" in data.files


def test_writer_close_without_tree_writes_nothing(tmp_path: Path) -> None:
    out = tmp_path / "empty.yaml"
    YamlWriter(str(out)).close()
    assert not out.exists()
