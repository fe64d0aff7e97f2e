from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .attrmap import AttributeMap

SKIP_ALL_CHILDREN = "__skipAllChildren"


class ChildKind(str, Enum):
    """How the host realises a child location."""

    INTERMEDIATE = "intermediate"  # keeps building recursively from its subtree
    FINAL = "final"                # realises a flattened static subtree as-is


@dataclass(frozen=True)
class InvocationContext:
    """Per-invocation evaluation state handed to collaborators and children."""

    current_time: float = 1.0
    motion_sample_times: Tuple[float, ...] = (0.0,)
    motion_backward: bool = False
    output_location_path: str = "/root"
    parent: Optional["InvocationContext"] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "motion_sample_times", tuple(float(t) for t in self.motion_sample_times))

    def child(self, name: str) -> "InvocationContext":
        return replace(
            self,
            output_location_path=f"{self.output_location_path.rstrip('/')}/{name}",
            parent=self,
        )

    @property
    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth + 1


@dataclass(frozen=True)
class ChildDescriptor:
    name: str
    kind: ChildKind
    attrs: AttributeMap
    context: Optional[InvocationContext] = None


class HostInterface:
    """Operations the op performs against the location it is cooking."""

    @property
    def output_location_path(self) -> str:  # pragma: no cover - abstract
        raise NotImplementedError

    @property
    def op_args(self) -> AttributeMap:  # pragma: no cover - abstract
        raise NotImplementedError

    def set_attr(self, name: str, value: Any) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    def get_output_attr(self, name: str) -> Any:  # pragma: no cover - abstract
        raise NotImplementedError

    def create_child(
        self,
        name: str,
        kind: ChildKind,
        args: AttributeMap,
        context: Optional[InvocationContext] = None,
    ) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    def execute_final_build(self, attrs: AttributeMap) -> None:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass
class RecordingInterface(HostInterface):
    """Host that records every side effect; used by tests and the scene tree."""

    location: str = "/root"
    args: AttributeMap = field(default_factory=AttributeMap)
    attrs: Dict[str, Any] = field(default_factory=dict)
    children: List[ChildDescriptor] = field(default_factory=list)
    final_builds: List[AttributeMap] = field(default_factory=list)

    @property
    def output_location_path(self) -> str:
        return self.location

    @property
    def op_args(self) -> AttributeMap:
        return self.args

    def set_attr(self, name: str, value: Any) -> None:
        self.attrs[name] = value

    def get_output_attr(self, name: str) -> Any:
        return self.attrs.get(name)

    def create_child(
        self,
        name: str,
        kind: ChildKind,
        args: AttributeMap,
        context: Optional[InvocationContext] = None,
    ) -> None:
        self.children.append(ChildDescriptor(name=name, kind=kind, attrs=args, context=context))

    def execute_final_build(self, attrs: AttributeMap) -> None:
        self.final_builds.append(attrs)
        self.children.append(ChildDescriptor(name="", kind=ChildKind.FINAL, attrs=attrs))

    @property
    def skips_default_children(self) -> bool:
        return self.attrs.get(SKIP_ALL_CHILDREN) == 1

    @property
    def is_error(self) -> bool:
        return self.attrs.get("type") == "error"
