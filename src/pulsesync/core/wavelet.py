"""Haar wavelet shrinkage for borderline-quality channels.

The transform is orthonormal, so with a zero threshold the inverse
reproduces the input up to floating-point rounding.  Detail coefficients
are shrunk with the universal threshold ``sigma * sqrt(2 ln N)`` where
``sigma`` is estimated from the finest detail band via the median absolute
deviation.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

_SQRT2 = math.sqrt(2.0)
_MAD_TO_SIGMA = 0.6745


def _next_pow2(n: int) -> int:
    return 1 << max(0, (n - 1).bit_length())


def _mirror_pad(x: np.ndarray, size: int) -> np.ndarray:
    if size == x.size:
        return x.copy()
    # Reflect the tail, repeating the reflection for very short inputs.
    out = np.empty(size, dtype=float)
    out[: x.size] = x
    tail = x[::-1]
    pos = x.size
    while pos < size:
        chunk = tail[: size - pos]
        out[pos : pos + chunk.size] = chunk
        pos += chunk.size
    return out


def haar_forward(x: np.ndarray, levels: int) -> list[np.ndarray]:
    """Multi-level Haar DWT.

    Returns ``[approx_L, detail_L, ..., detail_1]`` for an input whose
    length is divisible by ``2**levels``.
    """

    approx = np.asarray(x, dtype=float)
    details: list[np.ndarray] = []
    for _ in range(levels):
        even = approx[0::2]
        odd = approx[1::2]
        details.append((even - odd) / _SQRT2)
        approx = (even + odd) / _SQRT2
    return [approx] + details[::-1]


def haar_inverse(coeffs: list[np.ndarray]) -> np.ndarray:
    """Invert :func:`haar_forward`."""

    approx = coeffs[0]
    for detail in coeffs[1:]:
        out = np.empty(approx.size * 2, dtype=float)
        out[0::2] = (approx + detail) / _SQRT2
        out[1::2] = (approx - detail) / _SQRT2
        approx = out
    return approx


def _shrink(values: np.ndarray, threshold: float, mode: str) -> np.ndarray:
    if threshold <= 0:
        return values
    if mode == "hard":
        return np.where(np.abs(values) > threshold, values, 0.0)
    return np.sign(values) * np.maximum(np.abs(values) - threshold, 0.0)


def noise_sigma(detail: np.ndarray) -> float:
    """Robust noise estimate ``MAD(detail) / 0.6745``."""

    if detail.size == 0:
        return 0.0
    med = np.median(detail)
    return float(np.median(np.abs(detail - med)) / _MAD_TO_SIGMA)


def denoise(
    signal: Sequence[float] | np.ndarray,
    *,
    levels: int = 4,
    threshold_factor: float = 1.0,
    mode: str = "soft",
) -> np.ndarray:
    """Denoise ``signal`` by Haar wavelet shrinkage.

    Parameters
    ----------
    signal:
        One-dimensional input.
    levels:
        Number of decomposition levels; reduced automatically for inputs too
        short to support it.
    threshold_factor:
        Multiplier on the universal threshold.  ``0`` disables shrinkage and
        makes the call an exact round trip.
    mode:
        ``"soft"`` or ``"hard"`` thresholding.
    """

    x = np.asarray(signal, dtype=float).reshape(-1)
    n = x.size
    if n < 2:
        return x.copy()
    if mode not in {"soft", "hard"}:
        raise ValueError(f"unknown threshold mode: {mode}")

    size = _next_pow2(n)
    levels = max(1, min(int(levels), int(math.log2(size))))
    padded = _mirror_pad(x, size)

    coeffs = haar_forward(padded, levels)
    sigma = noise_sigma(coeffs[-1])
    threshold = sigma * math.sqrt(2.0 * math.log(size)) * threshold_factor
    coeffs = [coeffs[0]] + [_shrink(d, threshold, mode) for d in coeffs[1:]]

    return haar_inverse(coeffs)[:n]


def should_denoise(sqi: float, low: float = 40, high: float = 80) -> bool:
    """``True`` when ``sqi`` lies in the inclusive borderline band."""

    return low <= sqi <= high


__all__ = ["haar_forward", "haar_inverse", "noise_sigma", "denoise", "should_denoise"]
