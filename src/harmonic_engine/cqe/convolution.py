"""FFT-based circular convolution used to bind and unbind real vectors.

Inputs whose length is not a power of two are zero-padded to the next power
of two and the result truncated back to ``n``; only power-of-two lengths give
a true circular convolution.
"""

from __future__ import annotations

import importlib.util
from dataclasses import dataclass
from typing import Sequence

if importlib.util.find_spec("numpy") is None:  # pragma: no cover - deterministic import guard
    raise ModuleNotFoundError(
        "The numpy package is required for the convolution engine. Install it with 'pip install numpy'."
    )
import numpy as np

from ..codec.transform import fft, ifft, next_power_of_two, real_to_complex

DEFAULT_EPSILON = 1e-8


def _check_lengths(x: Sequence[float], y: Sequence[float]) -> int:
    n = len(x)
    if len(y) != n:
        raise ValueError(f"Length mismatch: {n} vs {len(y)}")
    if n == 0:
        raise ValueError("vectors must not be empty")
    return n


def circular_convolution(x: Sequence[float], y: Sequence[float]) -> np.ndarray:
    n = _check_lengths(x, y)
    m = next_power_of_two(n)
    z = ifft(fft(real_to_complex(x, m)) * fft(real_to_complex(y, m)))
    return np.ascontiguousarray(z[:n].real)


def divide_spectra(numerator: np.ndarray, denominator: np.ndarray, eps: float = DEFAULT_EPSILON) -> np.ndarray:
    """Element-wise complex division stabilised near zero-magnitude bins."""

    power = denominator.real**2 + denominator.imag**2
    safe = np.where(power < eps, denominator + eps, denominator)
    safe_power = safe.real**2 + safe.imag**2
    safe_power = np.where(safe_power < eps, eps, safe_power)
    return numerator * np.conj(safe) / safe_power


def circular_deconvolution(
    bound: Sequence[float], known: Sequence[float], eps: float = DEFAULT_EPSILON
) -> np.ndarray:
    """Approximate inverse of :func:`circular_convolution` with respect to ``known``."""

    n = _check_lengths(bound, known)
    m = next_power_of_two(n)
    quotient = divide_spectra(fft(real_to_complex(bound, m)), fft(real_to_complex(known, m)), eps)
    return np.ascontiguousarray(ifft(quotient)[:n].real)


@dataclass(frozen=True)
class ConvolutionEngine:
    """Bind/unbind operations over real vectors."""

    epsilon: float = DEFAULT_EPSILON

    def __post_init__(self) -> None:
        if not self.epsilon > 0:
            raise ValueError("epsilon must be positive")

    def bind(self, a: Sequence[float], b: Sequence[float]) -> np.ndarray:
        return circular_convolution(a, b)

    def unbind(self, bound: Sequence[float], known: Sequence[float]) -> np.ndarray:
        return circular_deconvolution(bound, known, self.epsilon)

    @staticmethod
    def normalize(x: Sequence[float]) -> np.ndarray:
        data = np.array(x, dtype=np.float64, copy=True)
        norm = float(np.sqrt(np.dot(data, data)))
        if not np.isfinite(norm) or norm == 0:
            return data
        return data / norm


__all__ = [
    "DEFAULT_EPSILON",
    "ConvolutionEngine",
    "circular_convolution",
    "circular_deconvolution",
    "divide_spectra",
]
