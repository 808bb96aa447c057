"""QPSK embedding of byte payloads into the phases of carrier bins.

Every payload travels behind an 8-byte frame header (big-endian length, then
big-endian CRC32).  Two bits map to one carrier bin, MSB first, with phases
``{0, π/2, π, 3π/2}``; bins that carry nothing keep the seeded baseline
spectrum.  A decoder that knows the manifest reads the bins it lists.  One
that only knows the seed recovers the header first and, when the plan is also
unknown, tries ``pentad7+1``, ``pentad7`` and ``auto`` in that order.
"""

from __future__ import annotations

import bisect
import importlib.util
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

if importlib.util.find_spec("numpy") is None:  # pragma: no cover - deterministic import guard
    raise ModuleNotFoundError(
        "The numpy package is required for the harmonic codec. Install it with 'pip install numpy'."
    )
import numpy as np

from .common import (
    FRAME_HEADER_STRUCT,
    MANIFEST_VERSION,
    SEED_DERIVATIONS,
    U32_MASK,
    CapacityError,
    IntegrityError,
    LengthMismatchError,
    MissingManifestDataError,
    SeedLike,
    ceil_div,
    coerce_config,
    crc32,
    ensure_bytes,
    pack_frame_header,
    resolve_seed,
    snake_case,
    unpack_frame_header,
    usable_bins,
)
from .plans import auto_shuffle, carrier_plan, normalize_plan_name, plan_meta, select_carrier_bins
from .spectrum import set_carrier, unitary_spectrum
from .transform import TRANSFORM_METHODS, dft_of_real, idft_real

logger = logging.getLogger(__name__)

QPSK_MODULATION = "qpsk-2b"
BITS_PER_SYMBOL = 2
HEADER_SYMBOLS = ceil_div(FRAME_HEADER_STRUCT.size * 8, BITS_PER_SYMBOL)
DETECTION_ORDER: Tuple[str, ...] = ("pentad7+1", "pentad7", "auto")

_QPSK_PHASES = (0.0, math.pi / 2, math.pi, 3 * math.pi / 2)
_TWO_PI = 2 * math.pi


@dataclass(frozen=True)
class CodecConfig:
    """Parameters of a single-vector encode."""

    dim: int
    seed: SeedLike = None
    plan: str = "auto"
    seed_derivation: str = "sha256"
    transform: str = "auto"

    def __post_init__(self) -> None:
        if isinstance(self.dim, bool) or not isinstance(self.dim, int) or self.dim <= 0:
            raise ValueError("dim must be a positive integer")
        object.__setattr__(self, "plan", normalize_plan_name(self.plan))
        if self.seed_derivation not in SEED_DERIVATIONS:
            raise ValueError(f"seed_derivation must be one of {SEED_DERIVATIONS}")
        if self.transform not in TRANSFORM_METHODS:
            raise ValueError(f"transform must be one of {TRANSFORM_METHODS}")

    def resolved_seed(self) -> int:
        return resolve_seed(self.seed, self.seed_derivation)


@dataclass(frozen=True)
class Manifest:
    """Immutable record describing how one vector was produced."""

    dim: int
    seed: int
    bins: Tuple[int, ...]
    payload_bytes: int
    crc32: int
    plan: str = "auto"
    version: int = MANIFEST_VERSION
    modulation: str = QPSK_MODULATION
    bits_per_symbol: int = BITS_PER_SYMBOL
    plan_meta: Optional[Dict[str, Any]] = field(default=None, compare=False)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "version": self.version,
            "dim": self.dim,
            "seed": self.seed,
            "modulation": self.modulation,
            "bitsPerSymbol": self.bits_per_symbol,
            "bins": list(self.bins),
            "plan": self.plan,
        }
        if self.plan_meta is not None:
            data["planMeta"] = dict(self.plan_meta)
        data["payloadBytes"] = self.payload_bytes
        data["crc32"] = self.crc32
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Manifest":
        values = {snake_case(str(key)): value for key, value in data.items()}
        missing = [name for name in ("dim", "seed", "bins", "payload_bytes", "crc32") if values.get(name) is None]
        if missing:
            raise MissingManifestDataError(f"Manifest is missing {', '.join(missing)}")
        return cls(
            dim=int(values["dim"]),
            seed=int(values["seed"]) & U32_MASK,
            bins=tuple(int(k) for k in values["bins"]),
            payload_bytes=int(values["payload_bytes"]),
            crc32=int(values["crc32"]) & U32_MASK,
            plan=normalize_plan_name(values.get("plan")),
            version=int(values.get("version", MANIFEST_VERSION)),
            modulation=str(values.get("modulation", QPSK_MODULATION)),
            bits_per_symbol=int(values.get("bits_per_symbol", BITS_PER_SYMBOL)),
            plan_meta=values.get("plan_meta"),
        )


@dataclass(frozen=True)
class EncodeResult:
    vector: np.ndarray
    spectrum: np.ndarray
    manifest: Manifest

    def as_dict(self) -> Dict[str, Any]:
        return {"vector": self.vector.tolist(), "manifest": self.manifest.as_dict()}


@dataclass(frozen=True)
class _Frame:
    plan: str
    bins: List[int]
    payload_bytes: int
    crc32: int


# ---------------------------------------------------------------------------
# Bit packing
# ---------------------------------------------------------------------------


def bytes_to_symbols(data: bytes, count: int, bits_per_symbol: int = BITS_PER_SYMBOL) -> List[int]:
    """Split ``data`` into ``count`` symbols, MSB first, zero-filling the tail."""

    symbols: List[int] = []
    bit_idx = 0
    for _ in range(count):
        symbol = 0
        for _ in range(bits_per_symbol):
            byte_pos = bit_idx >> 3
            byte = data[byte_pos] if byte_pos < len(data) else 0
            symbol = (symbol << 1) | ((byte >> (7 - (bit_idx & 7))) & 1)
            bit_idx += 1
        symbols.append(symbol)
    return symbols


def symbols_to_bytes(symbols: Sequence[int], length: int, bits_per_symbol: int = BITS_PER_SYMBOL) -> bytes:
    """Inverse of :func:`bytes_to_symbols`, truncated to ``length`` bytes."""

    out = bytearray(length)
    bit_idx = 0
    for symbol in symbols:
        for shift in range(bits_per_symbol - 1, -1, -1):
            byte_pos = bit_idx >> 3
            if byte_pos < length:
                out[byte_pos] |= ((int(symbol) >> shift) & 1) << (7 - (bit_idx & 7))
            bit_idx += 1
    return bytes(out)


def phase_to_symbol(theta: Union[float, np.ndarray]) -> np.ndarray:
    """Nearest QPSK quadrant for the measured phase(s)."""

    angle = np.mod(theta, _TWO_PI)
    return (np.floor(angle / (math.pi / 2) + 0.5).astype(np.int64)) & 3


def _symbols_at(spec: np.ndarray, bins: Sequence[int]) -> np.ndarray:
    index = np.asarray(bins, dtype=np.int64)
    values = spec[index]
    return phase_to_symbol(np.arctan2(values.imag, values.real))


def _frame_bits(payload_bytes: int) -> int:
    return (payload_bytes + FRAME_HEADER_STRUCT.size) * 8


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def encode_binary_to_vector(
    payload: Union[bytes, bytearray, memoryview, str, Sequence[int]],
    config: Union[CodecConfig, Mapping[str, Any], None] = None,
    **options: Any,
) -> EncodeResult:
    """Embed ``payload`` into a real vector of length ``config.dim``."""

    cfg = coerce_config(config, CodecConfig, options)
    seed = cfg.resolved_seed()
    data = ensure_bytes(payload)
    header = pack_frame_header(data)
    needed = ceil_div(_frame_bits(len(data)), BITS_PER_SYMBOL)
    usable = usable_bins(cfg.dim)
    if needed > usable:
        raise CapacityError(needed, usable)

    if cfg.plan == "auto":
        bins = select_carrier_bins(cfg.dim, seed, needed)
    else:
        plan_bins = carrier_plan(cfg.dim, seed, cfg.plan)
        if needed > len(plan_bins):
            raise CapacityError(needed, len(plan_bins), cfg.plan)
        bins = plan_bins[:needed]
    logger.debug(
        "Encoding %s payload bytes into %s carrier bins (dim=%s plan=%s)",
        len(data),
        needed,
        cfg.dim,
        cfg.plan,
    )

    spec = unitary_spectrum(cfg.dim, seed)
    for k, symbol in zip(bins, bytes_to_symbols(header + data, needed)):
        set_carrier(spec, k, _QPSK_PHASES[symbol])
    vector = idft_real(spec, cfg.transform)
    manifest = Manifest(
        dim=cfg.dim,
        seed=seed,
        bins=tuple(bins),
        payload_bytes=len(data),
        crc32=crc32(data),
        plan=cfg.plan,
        plan_meta=plan_meta(cfg.plan),
    )
    return EncodeResult(vector=vector, spectrum=spec, manifest=manifest)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _spectrum_of(vector: Any, method: str) -> np.ndarray:
    data = np.asarray(vector)
    if np.iscomplexobj(data):
        return data.astype(np.complex128).reshape(-1)
    return dft_of_real(data, method)


def _demodulate(spec: np.ndarray, bins: Sequence[int], payload_bytes: int, expected_crc: Optional[int]) -> bytes:
    n = spec.shape[0]
    symbols_needed = ceil_div(_frame_bits(payload_bytes), BITS_PER_SYMBOL)
    if len(bins) < symbols_needed:
        raise LengthMismatchError(symbols_needed, len(bins), "carrier bin count")
    used = [int(k) for k in bins[:symbols_needed]]
    for k in used:
        if k < 0 or k >= n:
            raise ValueError(f"Carrier bin index out of range: {k} (dim={n})")
    frame = symbols_to_bytes(_symbols_at(spec, used), payload_bytes + FRAME_HEADER_STRUCT.size)
    declared_len, declared_crc = unpack_frame_header(frame)
    if declared_len != payload_bytes:
        raise LengthMismatchError(payload_bytes, declared_len)
    payload = frame[FRAME_HEADER_STRUCT.size : FRAME_HEADER_STRUCT.size + declared_len]
    actual_crc = crc32(payload)
    if actual_crc != declared_crc:
        raise IntegrityError(
            f"CRC32 check failed: header 0x{declared_crc:08x}, payload 0x{actual_crc:08x}",
            expected=declared_crc,
            actual=actual_crc,
        )
    if expected_crc is not None and actual_crc != (int(expected_crc) & U32_MASK):
        raise IntegrityError(
            f"CRC32 check failed: expected 0x{int(expected_crc) & U32_MASK:08x}, payload 0x{actual_crc:08x}",
            expected=int(expected_crc) & U32_MASK,
            actual=actual_crc,
        )
    return payload


def _try_frame(symbol_table: np.ndarray, bins: Sequence[int]) -> Optional[Tuple[List[int], int, int]]:
    if len(bins) < HEADER_SYMBOLS:
        return None
    header = symbols_to_bytes(symbol_table[list(bins[:HEADER_SYMBOLS])], FRAME_HEADER_STRUCT.size)
    length, checksum = unpack_frame_header(header)
    needed = ceil_div(_frame_bits(length), BITS_PER_SYMBOL)
    if needed > len(bins):
        return None
    used = list(bins[:needed])
    frame = symbols_to_bytes(symbol_table[used], length + FRAME_HEADER_STRUCT.size)
    if crc32(frame[FRAME_HEADER_STRUCT.size :]) != checksum:
        return None
    return used, length, checksum


def _detect_auto(symbol_table: np.ndarray, dim: int, seed: int) -> Optional[Tuple[List[int], int, int]]:
    # The auto selection is the sorted prefix of one shuffle, so its header
    # bins depend on the unknown count; try every count in ascending order.
    shuffled = auto_shuffle(dim, seed)
    prefix = sorted(shuffled[: HEADER_SYMBOLS - 1])
    for count in range(HEADER_SYMBOLS, len(shuffled) + 1):
        bisect.insort(prefix, shuffled[count - 1])
        header = symbols_to_bytes(symbol_table[prefix[:HEADER_SYMBOLS]], FRAME_HEADER_STRUCT.size)
        length, _ = unpack_frame_header(header)
        if ceil_div(_frame_bits(length), BITS_PER_SYMBOL) != count:
            continue
        found = _try_frame(symbol_table, prefix)
        if found is not None:
            return found
    return None


def _detect_frame(spec: np.ndarray, seed: int, plan: Optional[str]) -> _Frame:
    dim = spec.shape[0]
    explicit = plan is not None
    candidates = (normalize_plan_name(plan),) if explicit else DETECTION_ORDER
    symbol_table = _symbols_at(spec, range(dim))
    for candidate in candidates:
        logger.debug("Attempting frame recovery with carrier plan %s (dim=%s)", candidate, dim)
        if candidate == "auto":
            found = _detect_auto(symbol_table, dim, seed)
        else:
            try:
                plan_bins = carrier_plan(dim, seed, candidate)
            except CapacityError:
                if explicit:
                    raise
                logger.debug("Skipping plan %s: not enough usable bins at dim=%s", candidate, dim)
                continue
            found = _try_frame(symbol_table, plan_bins)
        if found is not None:
            bins, length, checksum = found
            return _Frame(plan=candidate, bins=bins, payload_bytes=length, crc32=checksum)
    raise IntegrityError(
        "Failed to recover header/payload via plan detection; provide a manifest or the correct plan"
    )


def _manifest_fields(manifest: Union[Manifest, Mapping[str, Any], None]) -> Dict[str, Any]:
    if manifest is None:
        return {}
    if isinstance(manifest, Manifest):
        return {
            "dim": manifest.dim,
            "seed": manifest.seed,
            "bins": list(manifest.bins),
            "payload_bytes": manifest.payload_bytes,
            "crc32": manifest.crc32,
            "plan": manifest.plan,
            "bits_per_symbol": manifest.bits_per_symbol,
        }
    if isinstance(manifest, Mapping):
        return {snake_case(str(key)): value for key, value in manifest.items() if value is not None}
    raise TypeError(f"Expected Manifest or dict, got {type(manifest)!r}")


def decode_vector_to_binary(
    vector: Any,
    manifest: Union[Manifest, Mapping[str, Any], None] = None,
    *,
    dim: Optional[int] = None,
    seed: SeedLike = None,
    plan: Optional[str] = None,
    payload_bytes: Optional[int] = None,
    crc32: Optional[int] = None,
    seed_derivation: str = "sha256",
    verify_bins: bool = False,
    transform: str = "auto",
) -> bytes:
    """Recover the payload embedded by :func:`encode_binary_to_vector`.

    ``vector`` is the real time-domain vector (or an already transformed
    complex spectrum).  Manifest fields win over the keyword arguments, which
    only fill gaps.  ``manifest.bins`` is trusted verbatim unless
    ``verify_bins`` asks for a cross-check against the carrier plan.
    """

    fields = _manifest_fields(manifest)
    for name, value in (
        ("dim", dim),
        ("seed", seed),
        ("plan", plan),
        ("payload_bytes", payload_bytes),
        ("crc32", crc32),
    ):
        if fields.get(name) is None and value is not None:
            fields[name] = value

    bits_per_symbol = int(fields.get("bits_per_symbol", BITS_PER_SYMBOL))
    if bits_per_symbol != BITS_PER_SYMBOL:
        raise ValueError(f"Unsupported bits per symbol: {bits_per_symbol}")

    spec = _spectrum_of(vector, transform)
    n = spec.shape[0]
    if fields.get("dim") is not None and int(fields["dim"]) != n:
        raise LengthMismatchError(int(fields["dim"]), n, "vector length")

    numeric_seed = (
        resolve_seed(fields["seed"], seed_derivation) if fields.get("seed") is not None else None
    )
    bins = fields.get("bins")
    length = fields.get("payload_bytes")
    expected_crc = fields.get("crc32")

    if bins is None or length is None:
        if numeric_seed is None:
            raise MissingManifestDataError(
                "decode needs a seed when carrier bins or payload length are not provided"
            )
        if fields.get("plan") is None:
            logger.warning("No carrier plan supplied; detecting plan from the frame header")
        frame = _detect_frame(spec, numeric_seed, fields.get("plan"))
        logger.debug(
            "Recovered frame with plan %s: %s payload bytes", frame.plan, frame.payload_bytes
        )
        if length is not None and int(length) != frame.payload_bytes:
            raise LengthMismatchError(int(length), frame.payload_bytes)
        bins, length = frame.bins, frame.payload_bytes
        if expected_crc is None:
            expected_crc = frame.crc32
    elif verify_bins:
        if numeric_seed is None:
            raise MissingManifestDataError("verify_bins requires the manifest seed")
        name = normalize_plan_name(fields.get("plan"))
        if name == "auto":
            reference = select_carrier_bins(n, numeric_seed, len(bins))
        else:
            reference = carrier_plan(n, numeric_seed, name)[: len(bins)]
        if [int(k) for k in bins] != reference:
            raise IntegrityError(f"Manifest bins do not match carrier plan {name!r}")

    return _demodulate(spec, list(bins), int(length), expected_crc)


def decode_document(document: Mapping[str, Any], **options: Any) -> bytes:
    """Decode ``{vector, manifest}`` or ``{vector, dim, seed, plan}``."""

    if "vector" not in document:
        raise MissingManifestDataError("document has no 'vector'")
    manifest = document.get("manifest")
    if manifest is None:
        manifest = {key: value for key, value in document.items() if key != "vector"}
    return decode_vector_to_binary(document["vector"], manifest, **options)


__all__ = [
    "BITS_PER_SYMBOL",
    "DETECTION_ORDER",
    "HEADER_SYMBOLS",
    "QPSK_MODULATION",
    "CodecConfig",
    "EncodeResult",
    "Manifest",
    "bytes_to_symbols",
    "decode_document",
    "decode_vector_to_binary",
    "encode_binary_to_vector",
    "phase_to_symbol",
    "symbols_to_bytes",
]
