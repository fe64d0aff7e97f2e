from __future__ import annotations
from typing import Any, Dict, Iterator, Tuple
import pathlib

import numpy as np
import yaml

from .attrmap import AttributeMap, TimeSampledValue
from .scenegraph import SceneNode
from .timing import format_time_key
from .utils import get_logger

_log = get_logger()


def to_plain(value: Any) -> Any:
    """Convert attribute values into YAML/JSON friendly Python objects."""
    if isinstance(value, TimeSampledValue):
        return {format_time_key(k): v.tolist() for k, v in value.items()}
    if isinstance(value, AttributeMap):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


def flatten_attrs(attrs: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    """Yield ``(dotted_name, value)`` leaves; time samples become ``name@key``."""
    for name, value in attrs.items():
        full = f"{prefix}{name}"
        if isinstance(value, AttributeMap):
            yield from flatten_attrs(dict(value.items()), prefix=f"{full}.")
        elif isinstance(value, TimeSampledValue):
            for key, arr in value.items():
                yield f"{full}@{format_time_key(key)}", arr
        else:
            yield full, value


class YamlWriter:
    """Writes a cooked scene tree as one YAML mapping of location -> attributes.

    Trees are buffered by :meth:`write_tree` and written once on :meth:`close`.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._locations: Dict[str, Dict[str, Any]] = {}

    def write_tree(self, root: SceneNode) -> None:
        for node in root.walk():
            self._locations[node.path] = {name: to_plain(value) for name, value in node.attrs.items()}

    def close(self) -> None:
        if not self._locations:
            return
        out = pathlib.Path(self.path)
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, "w", encoding="utf-8") as f:
            yaml.safe_dump({"locations": self._locations}, f, sort_keys=False)
        _log.info("Wrote %d locations to %s", len(self._locations), out)
        self._locations = {}


class NpzWriter:
    """Writes every attribute leaf as an array keyed ``location:attr[@timekey]``."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._arrays: Dict[str, np.ndarray] = {}

    def write_tree(self, root: SceneNode) -> None:
        for node in root.walk():
            for name, value in flatten_attrs(node.attrs):
                key = f"{node.path.lstrip('/')}:{name}"
                if key in self._arrays:
                    raise ValueError(f"Duplicate array key '{key}'")
                self._arrays[key] = np.asarray(value)

    def close(self) -> None:
        if not self._arrays:
            return
        out = pathlib.Path(self.path)
        out.parent.mkdir(parents=True, exist_ok=True)
        np.savez(out, **self._arrays)
        _log.info("Wrote %d arrays to %s", len(self._arrays), out)
        self._arrays = {}
