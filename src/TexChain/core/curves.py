"""Continuous response curves and their compilation into lookup tables."""

import logging
from typing import Iterable, Sequence, Tuple

import numpy as np
from scipy.interpolate import PchipInterpolator

logger = logging.getLogger("texchain.curves")

CURVE_RESOLUTION = 256
_VALID_INTERPOLATIONS = ("pchip", "linear")


class ResponseCurve:
    """Piecewise curve through (x, y) control points.

    ``pchip`` gives a monotone cubic that never overshoots between points,
    ``linear`` joins points with straight segments. Inputs outside the
    control-point span evaluate to the nearest endpoint value.
    """

    def __init__(self, points: Iterable[Sequence[float]] = ((0.0, 0.0), (1.0, 1.0)),
                 interpolation: str = "pchip"):
        if interpolation not in _VALID_INTERPOLATIONS:
            raise ValueError(
                f"interpolation must be one of {list(_VALID_INTERPOLATIONS)}, "
                f"got '{interpolation}'"
            )
        pts = np.asarray([tuple(p) for p in points], dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] != 2 or pts.shape[0] == 0:
            raise ValueError("curve points must be a non-empty list of (x, y) pairs")
        order = np.argsort(pts[:, 0], kind="stable")
        pts = pts[order]

        # Duplicate x positions: keep the last y so later edits win.
        xs, ys = [], []
        for x, y in pts:
            if xs and abs(x - xs[-1]) < 1e-9:
                ys[-1] = y
                continue
            xs.append(float(x))
            ys.append(float(y))

        self.interpolation = interpolation
        self._xs = np.asarray(xs, dtype=np.float64)
        self._ys = np.asarray(ys, dtype=np.float64)
        self._fn = None
        if len(xs) >= 2 and interpolation == "pchip":
            self._fn = PchipInterpolator(self._xs, self._ys, extrapolate=False)

    @property
    def points(self) -> Tuple[Tuple[float, float], ...]:
        return tuple(zip(self._xs.tolist(), self._ys.tolist()))

    @property
    def cache_key(self) -> tuple:
        return (self.points, self.interpolation)

    def evaluate(self, t) -> np.ndarray:
        t = np.asarray(t, dtype=np.float64)
        if self._xs.size == 1:
            return np.full_like(t, self._ys[0])
        clamped = np.clip(t, self._xs[0], self._xs[-1])
        if self._fn is None:
            return np.interp(clamped, self._xs, self._ys)
        return self._fn(clamped)

    def __call__(self, t):
        return self.evaluate(t)

    def __eq__(self, other) -> bool:
        return isinstance(other, ResponseCurve) and self.cache_key == other.cache_key

    def __hash__(self):
        return hash(self.cache_key)

    def __repr__(self) -> str:
        return f"ResponseCurve({list(self.points)!r}, interpolation={self.interpolation!r})"

    @classmethod
    def identity(cls) -> "ResponseCurve":
        return cls(((0.0, 0.0), (1.0, 1.0)), interpolation="linear")


def compile_lut(curve: ResponseCurve, size: int = CURVE_RESOLUTION) -> np.ndarray:
    """Sample ``curve`` at ``size`` uniform steps of [0,1], clamped to [0,1]."""
    if size < 2:
        raise ValueError(f"LUT size must be >= 2, got {size}")
    t = np.linspace(0.0, 1.0, size, dtype=np.float64)
    lut = np.clip(curve.evaluate(t), 0.0, 1.0).astype(np.float32)
    logger.debug("Compiled %d-entry LUT for %r", size, curve)
    return lut


def apply_lut(values: np.ndarray, lut: np.ndarray) -> np.ndarray:
    """Look up ``values`` (clamped to [0,1]) with linear interpolation."""
    size = lut.shape[0]
    coords = np.clip(values, 0.0, 1.0).astype(np.float32) * float(size - 1)
    i0 = np.floor(coords).astype(np.int32)
    i1 = np.minimum(i0 + 1, size - 1)
    frac = coords - i0
    return (lut[i0] * (1.0 - frac) + lut[i1] * frac).astype(np.float32)
