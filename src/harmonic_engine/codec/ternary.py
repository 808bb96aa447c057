"""Balanced-ternary overlay: one trit per carrier bin via 3-PSK.

Trits ``-1, 0, +1`` map to phases ``-2π/3, 0, +2π/3``.  There is no framing
or checksum; encoder and decoder agree on the trit count out of band.
"""

from __future__ import annotations

import importlib.util
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

if importlib.util.find_spec("numpy") is None:  # pragma: no cover - deterministic import guard
    raise ModuleNotFoundError(
        "The numpy package is required for the harmonic codec. Install it with 'pip install numpy'."
    )
import numpy as np

from .common import MANIFEST_VERSION, CapacityError, LengthMismatchError, SeedLike, resolve_seed
from .plans import carrier_plan, normalize_plan_name
from .spectrum import set_carrier, unitary_spectrum
from .transform import dft_of_real, idft_real

logger = logging.getLogger(__name__)

TERNARY_MODULATION = "3psk-1trit"
TRIT_VALUES: Tuple[int, ...] = (-1, 0, 1)
TRIT_PHASES: Tuple[float, ...] = (-2 * math.pi / 3, 0.0, 2 * math.pi / 3)


@dataclass(frozen=True)
class TernaryManifest:
    dim: int
    seed: int
    plan: str
    trits: int
    bins: Tuple[int, ...]
    version: int = MANIFEST_VERSION
    modulation: str = TERNARY_MODULATION

    def as_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "dim": self.dim,
            "seed": self.seed,
            "plan": self.plan,
            "modulation": self.modulation,
            "trits": self.trits,
            "bins": list(self.bins),
        }


@dataclass(frozen=True)
class TernaryEncodeResult:
    vector: np.ndarray
    manifest: TernaryManifest


def _validate_trits(trits: Sequence[int]) -> List[int]:
    values: List[int] = []
    for position, trit in enumerate(trits):
        value = int(trit)
        if value not in TRIT_VALUES or value != trit:
            raise ValueError(f"trit {position} must be -1, 0 or 1, got {trit!r}")
        values.append(value)
    return values


def _ternary_bins(dim: int, seed: int, plan: str, count: Optional[int]) -> List[int]:
    if plan == "auto":
        if count is None:
            raise ValueError("the 'auto' plan needs an explicit trit count")
        bins = carrier_plan(dim, seed, plan, count=count)
        if len(bins) < count:
            raise CapacityError(count, len(bins))
        return bins
    bins = carrier_plan(dim, seed, plan)
    if count is not None and count > len(bins):
        raise CapacityError(count, len(bins), plan)
    return bins


def encode_trits(
    trits: Sequence[int],
    dim: int,
    seed: SeedLike = None,
    plan: str = "merkaba125",
    *,
    seed_derivation: str = "sha256",
    transform: str = "auto",
) -> TernaryEncodeResult:
    """Write ``trits`` onto the first carrier bins of ``plan``."""

    values = _validate_trits(trits)
    numeric_seed = resolve_seed(seed, seed_derivation)
    name = normalize_plan_name(plan)
    bins = _ternary_bins(dim, numeric_seed, name, len(values))
    spec = unitary_spectrum(dim, numeric_seed)
    for k, trit in zip(bins, values):
        set_carrier(spec, k, TRIT_PHASES[trit + 1])
    logger.debug("Encoded %s trits on plan %s (dim=%s)", len(values), name, dim)
    manifest = TernaryManifest(
        dim=dim,
        seed=numeric_seed,
        plan=name,
        trits=len(values),
        bins=tuple(bins[: len(values)]),
    )
    return TernaryEncodeResult(vector=idft_real(spec, transform), manifest=manifest)


def phase_to_trit(theta: np.ndarray) -> np.ndarray:
    """Nearest 3-PSK reference for phases folded into ``(-π, π]``."""

    angle = np.mod(np.asarray(theta, dtype=np.float64), 2 * math.pi)
    angle = np.where(angle > math.pi, angle - 2 * math.pi, angle)
    distance = np.abs(angle[..., None] - np.asarray(TRIT_PHASES))
    return np.argmin(distance, axis=-1) - 1


def decode_trits(
    vector: Any,
    dim: Optional[int] = None,
    seed: SeedLike = None,
    plan: str = "merkaba125",
    count: Optional[int] = None,
    *,
    seed_derivation: str = "sha256",
    transform: str = "auto",
) -> List[int]:
    """Read ``count`` trits (default: the plan capacity) back from ``vector``."""

    data = np.asarray(vector)
    spec = data.astype(np.complex128).reshape(-1) if np.iscomplexobj(data) else dft_of_real(data, transform)
    n = spec.shape[0]
    if dim is not None and dim != n:
        raise LengthMismatchError(dim, n, "vector length")
    numeric_seed = resolve_seed(seed, seed_derivation)
    name = normalize_plan_name(plan)
    bins = _ternary_bins(n, numeric_seed, name, count)
    used = bins if count is None else bins[:count]
    values = spec[np.asarray(used, dtype=np.int64)]
    return [int(t) for t in phase_to_trit(np.arctan2(values.imag, values.real))]


__all__ = [
    "TERNARY_MODULATION",
    "TRIT_PHASES",
    "TRIT_VALUES",
    "TernaryEncodeResult",
    "TernaryManifest",
    "decode_trits",
    "encode_trits",
    "phase_to_trit",
]
