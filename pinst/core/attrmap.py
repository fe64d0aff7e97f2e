from __future__ import annotations
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
import numpy as np

from .timing import format_time_key
from .utils import readonly

MATRIX_SIZE = 16


class TimeSampledValue(Mapping):
    """One attribute holding several arrays, each tagged by a relative time key.

    Keys keep the order in which they were first written.
    """

    __slots__ = ("_samples",)

    def __init__(self, samples: Iterable[Tuple[float, np.ndarray]]) -> None:
        self._samples: Dict[float, np.ndarray] = {}
        for key, arr in samples:
            self._samples[float(key)] = readonly(np.asarray(arr))

    def __getitem__(self, key: float) -> np.ndarray:
        return self._samples[float(key)]

    def __iter__(self) -> Iterator[float]:
        return iter(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def num_samples(self) -> int:
        return len(self._samples)

    def labels(self) -> List[str]:
        return [format_time_key(k) for k in self._samples]

    def to_dict(self) -> Dict[str, List[Any]]:
        return {format_time_key(k): v.tolist() for k, v in self._samples.items()}

    def __repr__(self) -> str:
        shapes = ", ".join(f"{format_time_key(k)}: {v.shape}" for k, v in self._samples.items())
        return f"TimeSampledValue({{{shapes}}})"


class AttributeMap(Mapping):
    """Immutable name -> value tree produced by :class:`AttributeMapBuilder`.

    Values are scalars, strings, read-only numpy arrays, ``TimeSampledValue``
    or nested ``AttributeMap`` groups. A map is either valid or invalid; an
    invalid map is empty and signals that nothing usable was produced, which
    is not the same thing as a valid map with no entries.
    """

    __slots__ = ("_items", "_valid")

    def __init__(self, items: Optional[Mapping[str, Any]] = None, valid: bool = True) -> None:
        self._items: Dict[str, Any] = dict(items or {})
        self._valid = bool(valid)

    @classmethod
    def invalid(cls) -> "AttributeMap":
        return cls(valid=False)

    @property
    def is_valid(self) -> bool:
        return self._valid

    def __getitem__(self, name: str) -> Any:
        return self._items[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get_child(self, path: str) -> Any:
        """Look up a dotted path (``"a.geometry.instanceIndex"``); ``None`` if absent."""
        node: Any = self
        for part in path.split("."):
            if not isinstance(node, AttributeMap) or part not in node._items:
                return None
            node = node._items[part]
        return node

    def groups(self) -> Iterator[Tuple[str, "AttributeMap"]]:
        for name, value in self._items.items():
            if isinstance(value, AttributeMap):
                yield name, value

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name, value in self._items.items():
            if isinstance(value, (AttributeMap, TimeSampledValue)):
                out[name] = value.to_dict()
            elif isinstance(value, np.ndarray):
                out[name] = value.tolist()
            else:
                out[name] = value
        return out

    def __repr__(self) -> str:
        if not self._valid:
            return "AttributeMap(<invalid>)"
        return f"AttributeMap({list(self._items)})"


class _MatrixBuffer:
    """Growable float64 buffer of row-major 4x4 matrices, one per instance."""

    def __init__(self, instance_count: int = 0) -> None:
        self.data = np.empty(MATRIX_SIZE * max(int(instance_count), 0), dtype=np.float64)
        self.count = 0

    def reserve(self, instance_count: int) -> None:
        needed = MATRIX_SIZE * int(instance_count)
        if needed > len(self.data):
            grown = np.empty(needed, dtype=np.float64)
            grown[: MATRIX_SIZE * self.count] = self.data[: MATRIX_SIZE * self.count]
            self.data = grown

    def append(self, instance_index: int, matrix: Any) -> None:
        if instance_index != self.count:
            raise ValueError(
                f"Matrices must be appended in instance order: expected index {self.count}, got {instance_index}"
            )
        flat = np.asarray(matrix, dtype=np.float64).reshape(-1)
        if flat.size != MATRIX_SIZE:
            raise ValueError(f"Expected a 4x4 matrix, got {flat.size} components")
        if MATRIX_SIZE * (self.count + 1) > len(self.data):
            self.reserve(max(2 * self.count, self.count + 1))
        start = MATRIX_SIZE * self.count
        self.data[start : start + MATRIX_SIZE] = flat
        self.count += 1

    def extend(self, matrices: Any) -> None:
        flat = np.asarray(matrices, dtype=np.float64).reshape(-1, MATRIX_SIZE)
        self.reserve(self.count + len(flat))
        start = MATRIX_SIZE * self.count
        self.data[start : start + flat.size] = flat.reshape(-1)
        self.count += len(flat)

    def freeze(self) -> np.ndarray:
        return readonly(self.data[: MATRIX_SIZE * self.count])


class _TimeKeyedSlot:
    # Placeholder kept in the tree so a time-keyed attribute keeps its position.
    def __init__(self) -> None:
        self.buffers: Dict[float, _MatrixBuffer] = {}


class AttributeMapBuilder:
    """Accumulates attributes and produces one immutable :class:`AttributeMap`.

    Dotted names address nested groups: ``set("c.proto.a.type", "x")`` creates
    the ``c``, ``proto`` and ``a`` groups as needed. Time-keyed matrix buffers
    are kept per ``(name, time_key)`` until :meth:`build`.
    """

    def __init__(self) -> None:
        self._root: Dict[str, Any] = {}
        self._slots: Dict[str, _TimeKeyedSlot] = {}
        self._touched = False
        self._invalid = False

    # -- plain values --
    def set(self, name: str, value: Any) -> "AttributeMapBuilder":
        self._set_path(name.split("."), value)
        return self

    def update(self, other: Mapping[str, Any]) -> "AttributeMapBuilder":
        for name, value in other.items():
            self._set_path([name], value)
        self._touched = True
        return self

    def invalidate(self) -> None:
        self._invalid = True

    @property
    def is_empty(self) -> bool:
        return not self._touched

    # -- time-keyed matrices --
    def reserve(self, name: str, time_key: float, instance_count: int) -> None:
        self._buffer(name, time_key, instance_count)

    def append_time_keyed_sample(
        self,
        name: str,
        time_key: float,
        instance_index: int,
        matrix: Any,
        instance_count: int = 0,
    ) -> None:
        self._buffer(name, time_key, instance_count).append(instance_index, matrix)

    def extend_time_keyed_samples(self, name: str, time_key: float, matrices: Any) -> None:
        arr = np.asarray(matrices, dtype=np.float64)
        n = arr.size // MATRIX_SIZE
        self._buffer(name, time_key, n).extend(arr)

    # -- snapshot --
    def build(self) -> AttributeMap:
        if self._invalid or not self._touched:
            return AttributeMap.invalid()
        return self._freeze(self._root)

    # -- internals --
    def _buffer(self, name: str, time_key: float, instance_count: int) -> _MatrixBuffer:
        slot = self._slots.get(name)
        if slot is None or self._lookup(name.split(".")) is not slot:
            slot = _TimeKeyedSlot()
            self._slots[name] = slot
            self._set_path(name.split("."), slot)
        key = float(time_key)
        buf = slot.buffers.get(key)
        if buf is None:
            buf = _MatrixBuffer(instance_count)
            slot.buffers[key] = buf
        elif instance_count:
            buf.reserve(instance_count)
        return buf

    def _lookup(self, parts: List[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _set_path(self, parts: List[str], value: Any) -> None:
        if not parts or any(not p for p in parts):
            raise ValueError(f"Invalid attribute name '{'.'.join(parts)}'")
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = self._thaw(value)
        self._touched = True

    def _thaw(self, value: Any) -> Any:
        if isinstance(value, (_TimeKeyedSlot, TimeSampledValue)):
            return value
        if isinstance(value, AttributeMap):
            return {k: self._thaw(v) for k, v in value.items()}
        if isinstance(value, Mapping):
            return {str(k): self._thaw(v) for k, v in value.items()}
        if isinstance(value, np.ndarray):
            return readonly(value)
        if isinstance(value, (list, tuple)):
            return readonly(np.asarray(value))
        return value

    def _freeze(self, node: Dict[str, Any]) -> AttributeMap:
        items: Dict[str, Any] = {}
        for name, value in node.items():
            if isinstance(value, dict):
                items[name] = self._freeze(value)
            elif isinstance(value, _TimeKeyedSlot):
                items[name] = TimeSampledValue((k, b.freeze()) for k, b in value.buffers.items())
            else:
                items[name] = value
        return AttributeMap(items)
