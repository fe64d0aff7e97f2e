from __future__ import annotations
import re
from typing import List, Tuple
import numpy as np

from .attrmap import MATRIX_SIZE, AttributeMap, AttributeMapBuilder, TimeSampledValue
from .host import InvocationContext
from .instancer import PointInstancer
from .utils import get_logger

_log = get_logger()

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_]")

INSTANCE_ARRAY_NAME = "instances"

ReaderOutput = Tuple[AttributeMapBuilder, AttributeMapBuilder, AttributeMapBuilder]


class InstancerReader:
    """Turns an instancer plus a prepared input map into three attribute builders.

    The builders describe the instancer location itself, its "instance source"
    children and its "instance array" child. Failures are reported by setting
    ``type = "error"`` and ``errorMessage`` on the instancer builder.
    """

    def read(
        self,
        instancer: PointInstancer,
        context: InvocationContext,
        input_map: AttributeMap,
    ) -> ReaderOutput:  # pragma: no cover - abstract
        raise NotImplementedError


def set_error(builder: AttributeMapBuilder, message: str) -> None:
    builder.set("type", "error")
    builder.set("errorMessage", message)


def source_names(prototypes: List[str]) -> List[str]:
    """Unique child names for prototype paths, derived from their leaf names."""
    used = {INSTANCE_ARRAY_NAME}
    names: List[str] = []
    for path in prototypes:
        base = _SAFE_NAME_RE.sub("_", path.rstrip("/").rsplit("/", 1)[-1]) or "prototype"
        name = base
        suffix = 1
        while name in used:
            name = f"{base}_{suffix}"
            suffix += 1
        used.add(name)
        names.append(name)
    return names


class PointInstancerReader(InstancerReader):
    def read(
        self,
        instancer: PointInstancer,
        context: InvocationContext,
        input_map: AttributeMap,
    ) -> ReaderOutput:
        instancer_attrs = AttributeMapBuilder()
        sources_attrs = AttributeMapBuilder()
        instances_attrs = AttributeMapBuilder()

        instancer_attrs.set("type", "point instancer")
        instancer_attrs.set("info.pointInstancer.prim", instancer.path)
        instancer_attrs.set("info.pointInstancer.prototypeCount", len(instancer.prototypes))

        matrices = input_map.get("instanceMatrix")
        if not isinstance(matrices, TimeSampledValue) or matrices.num_samples == 0:
            set_error(instancer_attrs, "Missing instanceMatrix input")
            return instancer_attrs, sources_attrs, instances_attrs

        if not instancer.prototypes:
            _log.debug("%s: no prototypes; nothing to instantiate", instancer.path)
            return instancer_attrs, sources_attrs, instances_attrs

        indices = instancer.proto_indices_at(context.current_time)
        if len(indices) and (indices.min() < 0 or indices.max() >= len(instancer.prototypes)):
            set_error(
                instancer_attrs,
                f"protoIndices out of range for {len(instancer.prototypes)} prototypes",
            )
            return instancer_attrs, sources_attrs, instances_attrs

        expected = MATRIX_SIZE * len(indices)
        for key, buf in matrices.items():
            if len(buf) != expected:
                set_error(
                    instancer_attrs,
                    f"instanceMatrix sample {key:g} holds {len(buf)} values, expected {expected}",
                )
                return instancer_attrs, sources_attrs, instances_attrs

        location = str(input_map.get("outputLocationPath") or context.output_location_path).rstrip("/")
        names = source_names(instancer.prototypes)
        for name, proto_path in zip(names, instancer.prototypes):
            sources_attrs.set(f"c.{name}.a.type", "instance source")
            sources_attrs.set(f"c.{name}.a.info.prototypePath", proto_path)

        prefix = f"c.{INSTANCE_ARRAY_NAME}.a"
        instances_attrs.set(f"{prefix}.type", "instance array")
        instances_attrs.set(
            f"{prefix}.geometry.instanceSource",
            np.array([f"{location}/{name}" for name in names]),
        )
        instances_attrs.set(f"{prefix}.geometry.instanceIndex", indices.astype(np.int64))
        instances_attrs.set(f"{prefix}.geometry.instanceMatrix", matrices)

        if instancer.invisible_ids is not None and len(instancer.invisible_ids):
            ids = instancer.invisible_ids
            skip = np.unique(ids[(ids >= 0) & (ids < len(indices))])
            instances_attrs.set(f"{prefix}.geometry.instanceSkipIndex", skip.astype(np.int64))

        return instancer_attrs, sources_attrs, instances_attrs
