"""Discrete Fourier transforms used by the codec and the convolution engine.

Two families live here.  ``idft_real``/``dft_of_real`` are the codec's
transform pair: a direct O(N²) DFT for arbitrary lengths, evaluated in row
blocks so the twiddle matrix never has to be materialised in full.  ``fft`` and
``ifft`` are an iterative radix-2 Cooley–Tukey pair restricted to power-of-two
lengths; the convolution engine uses them directly and the codec pair
delegates to them for power-of-two vectors when ``method="auto"``.
"""

from __future__ import annotations

import importlib.util
from typing import Optional, Sequence

if importlib.util.find_spec("numpy") is None:  # pragma: no cover - deterministic import guard
    raise ModuleNotFoundError(
        "The numpy package is required for the harmonic codec. Install it with 'pip install numpy'."
    )
import numpy as np

TRANSFORM_METHODS = ("auto", "direct", "fft")

_BLOCK_ROWS = 256
_NORM_EPSILON = 1e-15


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def next_power_of_two(n: int) -> int:
    p = 1
    while p < n:
        p <<= 1
    return p


def real_to_complex(values: Sequence[float], pad_to: Optional[int] = None) -> np.ndarray:
    """Copy ``values`` into a complex buffer, zero-padding up to ``pad_to``."""

    data = np.asarray(values, dtype=np.float64).reshape(-1)
    length = data.shape[0] if pad_to is None else int(pad_to)
    if length < data.shape[0]:
        raise ValueError(f"pad_to={length} is shorter than the input ({data.shape[0]})")
    out = np.zeros(length, dtype=np.complex128)
    out[: data.shape[0]] = data
    return out


def _bit_reversal_permutation(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    index = np.arange(n, dtype=np.int64)
    reversed_index = np.zeros(n, dtype=np.int64)
    for bit in range(bits):
        reversed_index |= ((index >> bit) & 1) << (bits - 1 - bit)
    return reversed_index


def fft(values: Sequence[complex]) -> np.ndarray:
    """Radix-2 decimation-in-time FFT of a power-of-two length sequence."""

    data = np.asarray(values, dtype=np.complex128).reshape(-1)
    n = data.shape[0]
    if not is_power_of_two(n):
        raise ValueError(f"FFT length must be a power of two, got {n}")
    out = data[_bit_reversal_permutation(n)]
    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / size)
        blocks = out.reshape(-1, size)
        even = blocks[:, :half].copy()
        odd = blocks[:, half:] * twiddle
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        size <<= 1
    return out


def ifft(values: Sequence[complex]) -> np.ndarray:
    """Inverse of :func:`fft`: conjugate, transform, conjugate, scale by ``1/n``."""

    data = np.asarray(values, dtype=np.complex128).reshape(-1)
    n = data.shape[0]
    return np.conj(fft(np.conj(data))) / n


def _direct_dft(values: np.ndarray, sign: float) -> np.ndarray:
    n = values.shape[0]
    index = np.arange(n, dtype=np.int64)
    out = np.empty(n, dtype=np.complex128)
    for start in range(0, n, _BLOCK_ROWS):
        rows = index[start : start + _BLOCK_ROWS]
        # Reduce k*n modulo N before scaling so large indices keep their precision.
        phase = np.outer(rows, index) % n
        twiddle = np.exp(sign * 2j * np.pi * phase / n)
        out[start : start + rows.shape[0]] = twiddle @ values
    return out


def _resolve_method(n: int, method: str) -> str:
    if method not in TRANSFORM_METHODS:
        raise ValueError(f"Unsupported transform method {method!r}; expected one of {TRANSFORM_METHODS}")
    if method == "auto":
        return "fft" if is_power_of_two(n) else "direct"
    if method == "fft" and not is_power_of_two(n):
        raise ValueError(f"method='fft' requires a power-of-two length, got {n}")
    return method


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    norm = float(np.sqrt(np.dot(vector, vector)))
    if not np.isfinite(norm) or norm <= _NORM_EPSILON:
        return vector
    return vector / norm


def idft_real(spectrum: Sequence[complex], method: str = "auto") -> np.ndarray:
    """Inverse DFT of ``spectrum`` keeping the real part, L2-normalised."""

    spec = np.asarray(spectrum, dtype=np.complex128).reshape(-1)
    n = spec.shape[0]
    if n == 0:
        raise ValueError("spectrum must not be empty")
    if _resolve_method(n, method) == "fft":
        values = ifft(spec)
    else:
        values = _direct_dft(spec, 1.0) / n
    return l2_normalize(np.ascontiguousarray(values.real))


def dft_of_real(vector: Sequence[float], method: str = "auto") -> np.ndarray:
    """Forward DFT of a real vector.

    Only phases are read back by the demodulators, so the scale introduced by
    the encoder's normalisation is irrelevant here.
    """

    data = np.asarray(vector, dtype=np.float64)
    if data.ndim != 1:
        raise ValueError(f"expected a 1-D vector, got shape {data.shape}")
    n = data.shape[0]
    if n == 0:
        raise ValueError("vector must not be empty")
    if _resolve_method(n, method) == "fft":
        return fft(data)
    return _direct_dft(data.astype(np.complex128), -1.0)


__all__ = [
    "TRANSFORM_METHODS",
    "dft_of_real",
    "fft",
    "idft_real",
    "ifft",
    "is_power_of_two",
    "l2_normalize",
    "next_power_of_two",
    "real_to_complex",
]
