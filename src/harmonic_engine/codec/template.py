"""Harmonic templates: seeded unitary vectors with masked placeholder bins."""

from __future__ import annotations

import importlib.util
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

if importlib.util.find_spec("numpy") is None:  # pragma: no cover - deterministic import guard
    raise ModuleNotFoundError(
        "The numpy package is required for the harmonic codec. Install it with 'pip install numpy'."
    )
import numpy as np

from .common import SeedLike, resolve_seed
from .spectrum import unitary_spectrum
from .transform import idft_real


@dataclass(frozen=True)
class TemplateResult:
    vector: np.ndarray
    spectrum: np.ndarray


def _amplitude(placeholder: Mapping[str, Any]) -> float:
    value = placeholder.get("amplitude")
    return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else 0.0


def _rescale(z: complex, amplitude: float) -> complex:
    magnitude = abs(z) or 1.0
    return complex(z.real / magnitude * amplitude, z.imag / magnitude * amplitude)


def mask_placeholders(spectrum: np.ndarray, placeholders: Iterable[Mapping[str, Any]] = ()) -> np.ndarray:
    """Return a copy of ``spectrum`` with placeholder bins rescaled.

    ``{"k": i, "amplitude": a}`` rescales bin ``i mod N`` and its mirror,
    keeping the phase unless ``keepPhase`` is false.  ``{"range": {"start": s,
    "end": e}, "amplitude": a}`` rescales the clamped inclusive range without
    touching mirrors.  Unrecognised entries are ignored.
    """

    out = np.array(spectrum, dtype=np.complex128, copy=True)
    n = out.shape[0]
    for placeholder in placeholders:
        amplitude = _amplitude(placeholder)
        k = placeholder.get("k")
        span = placeholder.get("range")
        if isinstance(k, int) and not isinstance(k, bool):
            k %= n
            if placeholder.get("keepPhase", True):
                value = _rescale(out[k], amplitude)
            else:
                value = complex(amplitude, 0.0)
            out[k] = value
            mirror = (n - k) % n
            if mirror != k:
                out[mirror] = value.conjugate()
        elif isinstance(span, Mapping):
            start, end = span.get("start"), span.get("end")
            if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in (start, end)):
                continue
            lo = max(0, min(n - 1, math.floor(start)))
            hi = max(0, min(n - 1, math.floor(end)))
            for index in range(lo, hi + 1):
                out[index] = _rescale(out[index], amplitude)
    return out


def generate_template(
    dim: int,
    seed: SeedLike = None,
    placeholders: Iterable[Mapping[str, Any]] = (),
    *,
    seed_derivation: str = "sha256",
    transform: str = "auto",
) -> TemplateResult:
    spec = mask_placeholders(unitary_spectrum(dim, resolve_seed(seed, seed_derivation)), placeholders)
    return TemplateResult(vector=idft_real(spec, transform), spectrum=spec)


__all__ = ["TemplateResult", "generate_template", "mask_placeholders"]
