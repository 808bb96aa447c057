"""Deterministic unit-magnitude carrier spectra."""

from __future__ import annotations

import importlib.util
import math

if importlib.util.find_spec("numpy") is None:  # pragma: no cover - deterministic import guard
    raise ModuleNotFoundError(
        "The numpy package is required for the harmonic codec. Install it with 'pip install numpy'."
    )
import numpy as np

from .common import make_rng


def unitary_spectrum(dim: int, seed: int) -> np.ndarray:
    """Return a conjugate-symmetric spectrum with every bin at magnitude 1.

    DC (and Nyquist for even ``dim``) are pinned to ``1+0j``; every other
    positive bin draws one phase from a fresh generator and its mirror takes
    the conjugate, so the inverse transform is real.
    """

    if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
        raise ValueError("dim must be a positive integer")
    rand = make_rng(seed)
    spec = np.zeros(dim, dtype=np.complex128)
    spec[0] = 1.0
    even = dim % 2 == 0
    if even:
        spec[dim >> 1] = 1.0
    half = dim // 2
    for k in range(1, half + (0 if even else 1)):
        theta = 2 * math.pi * rand()
        re, im = math.cos(theta), math.sin(theta)
        spec[k] = complex(re, im)
        spec[dim - k] = complex(re, -im)
    return spec


def set_carrier(spec: np.ndarray, k: int, phase: float) -> None:
    """Place a unit phasor at bin ``k`` and its conjugate at the mirror bin."""

    dim = spec.shape[0]
    re, im = math.cos(phase), math.sin(phase)
    spec[k] = complex(re, im)
    spec[(dim - k) % dim] = complex(re, -im)


def is_conjugate_symmetric(spectrum: np.ndarray, atol: float = 1e-12) -> bool:
    spec = np.asarray(spectrum, dtype=np.complex128)
    mirror = np.roll(spec[::-1], 1)
    return bool(np.allclose(spec, np.conj(mirror), atol=atol, rtol=0.0))


__all__ = ["is_conjugate_symmetric", "set_carrier", "unitary_spectrum"]
