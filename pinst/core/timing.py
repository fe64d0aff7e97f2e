from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Sequence

TimeReversal = Callable[[float], float]


def reverse_time_sample(sample: float) -> float:
    """Mirror a frame-relative sample time about the current frame.

    Zero is returned untouched so a reversed block never carries ``-0.0``.
    Applying the function twice yields the input.
    """
    return sample if sample == 0.0 else -sample


def format_time_key(key: float) -> str:
    """Shortest text that reads back as ``key``; integral keys drop ``.0``."""
    text = repr(float(key) + 0.0)
    return text[:-2] if text.endswith(".0") else text


@dataclass(frozen=True)
class MotionSample:
    """One motion-blur sample.

    ``offset`` is frame-relative, ``time`` the absolute time code the
    transforms are evaluated at, and ``key`` the time key results are stored
    under (the offset, reversed when motion is backward).
    """

    offset: float
    time: float
    key: float


def resolve_motion_samples(
    current_time: float,
    offsets: Sequence[float],
    motion_backward: bool = False,
    reverse: TimeReversal = reverse_time_sample,
) -> List[MotionSample]:
    """Turn frame-relative offsets into absolute sample times and storage keys.

    An empty offset list behaves as a single sample at the current time.
    Reversal only touches the storage key; the absolute time always comes from
    the unreversed offset.
    """
    # -0.0 collapses to 0.0 so a zero offset always shares the "0" key
    rel = [float(o) + 0.0 for o in offsets] or [0.0]
    samples: List[MotionSample] = []
    for offset in rel:
        key = reverse(offset) if motion_backward else offset
        samples.append(MotionSample(offset=offset, time=float(current_time) + offset, key=key))
    return samples


def absolute_times(samples: Sequence[MotionSample]) -> List[float]:
    return [s.time for s in samples]
