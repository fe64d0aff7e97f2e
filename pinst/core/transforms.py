from __future__ import annotations
from typing import List, Optional, Sequence, Tuple
import numpy as np

from .instancer import PointInstancer, SampledAttribute
from .utils import get_logger, normalize_quaternions

_log = get_logger()

# (N, 4, 4) float64 matrices, one per instance, for a single sample time.
InstanceTransformSet = np.ndarray


class TransformBatchComputer:
    """Computes per-instance matrices for a batch of absolute sample times.

    Returns the matrices per produced sample and the produced count. The count
    may be lower than ``len(sample_times)`` when the result does not vary
    across samples; zero means the instancer cannot be evaluated consistently.
    """

    def compute(
        self,
        instancer: PointInstancer,
        sample_times: Sequence[float],
        default_time: float,
    ) -> Tuple[List[InstanceTransformSet], int]:  # pragma: no cover - abstract
        raise NotImplementedError


def quaternions_to_rows(q: np.ndarray) -> np.ndarray:
    """Rotation matrices for (w, x, y, z) quaternions, row-vector convention."""
    q = normalize_quaternions(np.asarray(q, dtype=np.float64).reshape(-1, 4))
    w, x, y, z = q[:, 0], q[:, 1], q[:, 2], q[:, 3]
    R = np.empty((len(q), 3, 3), dtype=np.float64)
    R[:, 0, 0] = 1.0 - 2.0 * (y * y + z * z)
    R[:, 0, 1] = 2.0 * (x * y + w * z)
    R[:, 0, 2] = 2.0 * (x * z - w * y)
    R[:, 1, 0] = 2.0 * (x * y - w * z)
    R[:, 1, 1] = 1.0 - 2.0 * (x * x + z * z)
    R[:, 1, 2] = 2.0 * (y * z + w * x)
    R[:, 2, 0] = 2.0 * (x * z + w * y)
    R[:, 2, 1] = 2.0 * (y * z - w * x)
    R[:, 2, 2] = 1.0 - 2.0 * (x * x + y * y)
    return R


def axis_angle_quaternions(vectors: np.ndarray) -> np.ndarray:
    """Quaternions rotating about each vector by its length in degrees."""
    v = np.asarray(vectors, dtype=np.float64).reshape(-1, 3)
    angle = np.radians(np.linalg.norm(v, axis=1))
    q = np.zeros((len(v), 4), dtype=np.float64)
    q[:, 0] = 1.0
    moving = angle > 1e-12
    if np.any(moving):
        axis = v[moving] / np.linalg.norm(v[moving], axis=1, keepdims=True)
        half = 0.5 * angle[moving]
        q[moving, 0] = np.cos(half)
        q[moving, 1:] = axis * np.sin(half)[:, None]
    return q


def slerp(q0: np.ndarray, q1: np.ndarray, alpha: float) -> np.ndarray:
    q0 = normalize_quaternions(np.asarray(q0, dtype=np.float64))
    q1 = normalize_quaternions(np.asarray(q1, dtype=np.float64))
    dot = np.einsum("ij,ij->i", q0, q1)
    # shortest arc
    q1 = np.where(dot[:, None] < 0.0, -q1, q1)
    dot = np.abs(dot)
    out = np.empty_like(q0)
    near = dot > 0.9995
    if np.any(near):
        out[near] = (1.0 - alpha) * q0[near] + alpha * q1[near]
    far = ~near
    if np.any(far):
        theta = np.arccos(np.clip(dot[far], -1.0, 1.0))
        sin_t = np.sin(theta)
        w0 = np.sin((1.0 - alpha) * theta) / sin_t
        w1 = np.sin(alpha * theta) / sin_t
        out[far] = w0[:, None] * q0[far] + w1[:, None] * q1[far]
    return normalize_quaternions(out)


def compose_instance_matrices(
    positions: np.ndarray,
    rotations: np.ndarray,
    scales: np.ndarray,
) -> np.ndarray:
    """Scale, then rotate, then translate; translation in the last row."""
    n = len(positions)
    M = np.zeros((n, 4, 4), dtype=np.float64)
    M[:, :3, :3] = scales[:, :, None] * rotations
    M[:, 3, :3] = positions
    M[:, 3, 3] = 1.0
    return M


class PointInstancerTransformComputer(TransformBatchComputer):
    """Reference instance-transform evaluation for :class:`PointInstancer`."""

    def compute(
        self,
        instancer: PointInstancer,
        sample_times: Sequence[float],
        default_time: float,
    ) -> Tuple[List[InstanceTransformSet], int]:
        n = instancer.num_instances(default_time)
        if n == 0:
            _log.debug("%s: no instances at time %s", instancer.path, default_time)
            return [], 0
        if instancer.positions is None:
            _log.debug("%s: positions are not authored", instancer.path)
            return [], 0
        times = list(sample_times) or [float(default_time)]
        if not self._is_motion_varying(instancer):
            times = times[:1]

        result: List[InstanceTransformSet] = []
        for t in times:
            if instancer.num_instances(t) != n:
                _log.debug("%s: instance count changes at time %s", instancer.path, t)
                return [], 0
            mats = self._compute_at(instancer, float(t), n)
            if mats is None:
                return [], 0
            result.append(mats)
        return result, len(result)

    @staticmethod
    def _is_motion_varying(instancer: PointInstancer) -> bool:
        if instancer.velocities is not None or instancer.angular_velocities is not None:
            return True
        return any(attr.is_varying for attr in instancer.sampled_attributes().values())

    def _compute_at(self, instancer: PointInstancer, t: float, n: int) -> Optional[np.ndarray]:
        tcps = instancer.time_codes_per_second

        positions = self._positions_at(instancer, t, tcps)
        if positions is None or len(positions) != n:
            _log.debug("%s: positions size mismatch at time %s", instancer.path, t)
            return None

        if instancer.orientations is None:
            rotations = np.tile(np.eye(3), (n, 1, 1))
        else:
            quats = self._orientations_at(instancer, t, tcps)
            if quats is None or len(quats) != n:
                _log.debug("%s: orientations size mismatch at time %s", instancer.path, t)
                return None
            rotations = quaternions_to_rows(quats)

        if instancer.scales is None:
            scales = np.ones((n, 3), dtype=np.float64)
        else:
            scales = self._interpolated(instancer.scales, t)
            if scales is None or len(scales) != n:
                _log.debug("%s: scales size mismatch at time %s", instancer.path, t)
                return None

        return compose_instance_matrices(positions, rotations, scales)

    @staticmethod
    def _interpolated(attr: SampledAttribute, t: float) -> Optional[np.ndarray]:
        lo, hi = attr.bracket(t)
        if lo is None:
            return attr.default
        v0 = attr.samples[lo]
        if hi == lo:
            return v0
        v1 = attr.samples[hi]
        if v0.shape != v1.shape:
            return v0
        alpha = (t - lo) / (hi - lo)
        return (1.0 - alpha) * v0 + alpha * v1

    def _positions_at(self, instancer: PointInstancer, t: float, tcps: float) -> Optional[np.ndarray]:
        attr = instancer.positions
        lo, _ = attr.bracket(t)
        velocities = self._sample_matching(instancer.velocities, lo)
        if lo is not None and velocities is not None:
            base = attr.samples[lo]
            if velocities.shape == base.shape:
                return base + velocities * ((t - lo) / tcps)
        return self._interpolated(attr, t)

    def _orientations_at(self, instancer: PointInstancer, t: float, tcps: float) -> Optional[np.ndarray]:
        attr = instancer.orientations
        lo, hi = attr.bracket(t)
        angular = self._sample_matching(instancer.angular_velocities, lo)
        if lo is not None and angular is not None:
            base = attr.samples[lo]
            if len(angular) == len(base):
                delta = axis_angle_quaternions(angular * ((t - lo) / tcps))
                return self._quat_multiply(base, delta)
        if lo is None:
            return attr.default
        if hi == lo or attr.samples[lo].shape != attr.samples[hi].shape:
            return attr.samples[lo]
        return slerp(attr.samples[lo], attr.samples[hi], (t - lo) / (hi - lo))

    @staticmethod
    def _sample_matching(attr: Optional[SampledAttribute], time: Optional[float]) -> Optional[np.ndarray]:
        # Velocities only apply when authored at the same time as the base sample.
        if attr is None or time is None:
            return None
        if not attr.samples:
            return attr.default
        return attr.samples.get(time)

    @staticmethod
    def _quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        # Rotation ``a`` followed by ``b``.
        a = normalize_quaternions(np.asarray(a, dtype=np.float64))
        w1, x1, y1, z1 = a[:, 0], a[:, 1], a[:, 2], a[:, 3]
        w2, x2, y2, z2 = b[:, 0], b[:, 1], b[:, 2], b[:, 3]
        return np.column_stack([
            w2 * w1 - x2 * x1 - y2 * y1 - z2 * z1,
            w2 * x1 + x2 * w1 + y2 * z1 - z2 * y1,
            w2 * y1 - x2 * z1 + y2 * w1 + z2 * x1,
            w2 * z1 + x2 * y1 - y2 * x1 + z2 * w1,
        ])
