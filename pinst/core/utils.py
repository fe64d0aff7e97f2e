from __future__ import annotations
import numpy as np
import logging

def get_logger(name: str = "pinst") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger

def readonly(arr: np.ndarray) -> np.ndarray:
    """Return a read-only version of ``arr``, copying unless it is already a frozen owner."""
    if not arr.flags.writeable and arr.base is None:
        return arr
    out = np.array(arr, copy=True)
    out.flags.writeable = False
    return out

def normalize_quaternions(q: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    norms = np.linalg.norm(q, axis=1, keepdims=True)
    norms = np.clip(norms, eps, None)
    return q / norms

