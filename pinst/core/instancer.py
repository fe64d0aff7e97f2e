from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
import numpy as np
import yaml

from ..config.schema import InstancerFileModel

from .utils import get_logger

_log = get_logger()


@dataclass
class SampledAttribute:
    """A per-instance array with an optional default and optional time samples.

    Time samples win over the default whenever any are authored.
    """
    width: int
    default: Optional[np.ndarray] = None
    samples: Dict[float, np.ndarray] = field(default_factory=dict)
    dtype: Any = np.float64

    def __post_init__(self) -> None:
        if self.default is not None:
            self.default = self._coerce(self.default)
        self.samples = {float(t): self._coerce(v) for t, v in sorted(self.samples.items())}

    def _coerce(self, value: Any) -> np.ndarray:
        arr = np.asarray(value, dtype=self.dtype)
        if self.width > 1:
            arr = arr.reshape((-1, self.width))
        else:
            arr = arr.reshape(-1)
        return arr

    @classmethod
    def from_value(cls, value: Any, width: int, dtype: Any = np.float64) -> Optional["SampledAttribute"]:
        if value is None:
            return None
        if isinstance(value, Mapping):
            return cls(width=width, samples={float(t): v for t, v in value.items()}, dtype=dtype)
        return cls(width=width, default=value, dtype=dtype)

    def time_samples(self) -> List[float]:
        return list(self.samples)

    @property
    def is_varying(self) -> bool:
        return len(self.samples) > 1

    def bracket(self, time: float) -> Tuple[Optional[float], Optional[float]]:
        """Return the authored sample times at or around ``time``.

        Both are ``None`` when only a default is authored; outside the
        authored range both ends clamp to the nearest sample.
        """
        times = self.time_samples()
        if not times:
            return None, None
        if time <= times[0]:
            return times[0], times[0]
        if time >= times[-1]:
            return times[-1], times[-1]
        idx = int(np.searchsorted(times, time, side="right")) - 1
        lo = times[idx]
        if lo == time:
            return lo, lo
        return lo, times[idx + 1]

    def value_at(self, time: Optional[float]) -> Optional[np.ndarray]:
        """Held (lower bracketing) value at ``time``."""
        if not self.samples:
            return self.default
        if time is None:
            return self.samples[self.time_samples()[0]]
        lo, _ = self.bracket(time)
        return self.samples[lo]


@dataclass
class PointInstancer:
    """In-memory point instancer primitive.

    Orientations are quaternions stored real part first (w, x, y, z); angular
    velocities are in degrees per second, linear velocities in scene units
    per second.
    """
    path: str
    prototypes: List[str] = field(default_factory=list)
    proto_indices: Optional[SampledAttribute] = None
    positions: Optional[SampledAttribute] = None
    orientations: Optional[SampledAttribute] = None
    scales: Optional[SampledAttribute] = None
    velocities: Optional[SampledAttribute] = None
    angular_velocities: Optional[SampledAttribute] = None
    invisible_ids: Optional[np.ndarray] = None
    time_codes_per_second: float = 24.0

    def __post_init__(self) -> None:
        if self.time_codes_per_second <= 0.0:
            raise ValueError("time_codes_per_second must be positive.")
        if self.invisible_ids is not None:
            self.invisible_ids = np.asarray(self.invisible_ids, dtype=np.int64).reshape(-1)

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1] or "instancer"

    def proto_indices_at(self, time: Optional[float]) -> np.ndarray:
        if self.proto_indices is None:
            return np.zeros((0,), dtype=np.int64)
        value = self.proto_indices.value_at(time)
        if value is None:
            return np.zeros((0,), dtype=np.int64)
        return value.astype(np.int64, copy=False)

    def num_instances(self, time: Optional[float]) -> int:
        return int(len(self.proto_indices_at(time)))

    def sampled_attributes(self) -> Dict[str, SampledAttribute]:
        attrs = {
            "protoIndices": self.proto_indices,
            "positions": self.positions,
            "orientations": self.orientations,
            "scales": self.scales,
            "velocities": self.velocities,
            "angularVelocities": self.angular_velocities,
        }
        return {k: v for k, v in attrs.items() if v is not None}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PointInstancer":
        model = InstancerFileModel.model_validate(dict(data))
        return cls(
            path=model.path,
            prototypes=list(model.prototypes),
            proto_indices=SampledAttribute.from_value(model.protoIndices, 1, np.int64),
            positions=SampledAttribute.from_value(model.positions, 3),
            orientations=SampledAttribute.from_value(model.orientations, 4),
            scales=SampledAttribute.from_value(model.scales, 3),
            velocities=SampledAttribute.from_value(model.velocities, 3),
            angular_velocities=SampledAttribute.from_value(model.angularVelocities, 3),
            invisible_ids=None if model.invisibleIds is None else np.asarray(model.invisibleIds, dtype=np.int64),
            time_codes_per_second=model.timeCodesPerSecond,
        )


def load_instancer(path: str | Path) -> PointInstancer:
    """Read a point instancer description from a YAML file."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Instancer file '{path}' must contain a mapping.")
    instancer = PointInstancer.from_mapping(data)
    _log.debug("Loaded instancer %s (%d prototypes) from %s", instancer.path, len(instancer.prototypes), path)
    return instancer
