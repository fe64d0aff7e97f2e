from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from .assembler import CookResult, OutputAssembler
from .attrmap import AttributeMap
from .host import ChildKind, InvocationContext, RecordingInterface
from .instancer import PointInstancer
from .utils import get_logger

_log = get_logger()


@dataclass
class SceneNode:
    """A location in the cooked scene tree."""
    path: str
    attrs: Dict[str, Any] = field(default_factory=dict)
    children: Dict[str, "SceneNode"] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]

    def child(self, name: str) -> "SceneNode":
        node = self.children.get(name)
        if node is None:
            node = SceneNode(path=f"{self.path.rstrip('/')}/{name}")
            self.children[name] = node
        return node

    def walk(self) -> Iterator["SceneNode"]:
        yield self
        for child in self.children.values():
            yield from child.walk()

    def find(self, path: str) -> Optional["SceneNode"]:
        for node in self.walk():
            if node.path == path:
                return node
        return None


def static_scene_create(node: SceneNode, tree: AttributeMap) -> None:
    """Realise a static scene description below ``node``.

    ``a`` holds the location's attributes and ``c`` its children, each child
    being another ``{a, c}`` tree.
    """
    attrs = tree.get("a")
    if isinstance(attrs, AttributeMap):
        for name, value in attrs.items():
            node.attrs[name] = value
    children = tree.get("c")
    if isinstance(children, AttributeMap):
        for name, subtree in children.groups():
            static_scene_create(node.child(name), subtree)


class SceneGraphHost:
    """Cooks point instancers into an in-memory scene tree.

    Intermediate children continue from the ``staticScene`` argument the op
    handed them; final builds are realised directly with static-scene
    semantics. Attributes whose names start with ``__`` are host directives
    and are not copied onto locations.
    """

    def __init__(self, assembler: Optional[OutputAssembler] = None) -> None:
        self.assembler = assembler or OutputAssembler()

    def cook(self, instancer: PointInstancer, context: InvocationContext) -> Tuple[SceneNode, CookResult]:
        root = SceneNode(path=context.output_location_path)
        interface = RecordingInterface(location=context.output_location_path)
        result = self.assembler.cook(instancer, context, interface)
        self._realise(root, interface)
        _log.info(
            "Cooked %s → %s (%s, %d locations)",
            instancer.path, root.path, result.state.value, sum(1 for _ in root.walk()),
        )
        return root, result

    def _realise(self, node: SceneNode, interface: RecordingInterface) -> None:
        for name, value in interface.attrs.items():
            if not name.startswith("__"):
                node.attrs[name] = value
        for desc in interface.children:
            if desc.kind is ChildKind.INTERMEDIATE:
                child = node.child(desc.name)
                static = desc.attrs.get("staticScene")
                if isinstance(static, AttributeMap):
                    static_scene_create(child, static)
            else:
                static_scene_create(node, desc.attrs)
