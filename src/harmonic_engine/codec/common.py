"""Shared primitives used by the spectral codec and the chunk layer."""

from __future__ import annotations

import dataclasses
import hashlib
import re
import struct
import threading
from typing import Any, Iterable, List, Mapping, Optional, Type, TypeVar, Union

MANIFEST_VERSION = 1
U32_MASK = 0xFFFFFFFF
FRAME_HEADER_STRUCT = struct.Struct(">I I")
DEFAULT_SEED_TEXT = "harmonic"
SEED_DERIVATIONS = ("sha256", "fnv1a")

SeedLike = Union[int, str, None]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CodecError(RuntimeError):
    """Base class for failures raised by the harmonic codec."""


class CapacityError(CodecError):
    """Raised when a payload needs more carrier bins than are available."""

    def __init__(self, needed: int, available: int, plan: Optional[str] = None) -> None:
        self.needed = needed
        self.available = available
        self.plan = plan
        where = f"plan {plan!r}" if plan else "usable spectrum"
        super().__init__(
            f"Insufficient capacity in {where}: need {needed} carrier bins, have {available}"
        )


class UnknownPlanError(CodecError, ValueError):
    """Raised for carrier plan names the selector does not implement."""

    def __init__(self, plan: object) -> None:
        self.plan = plan
        super().__init__(f"Unknown carrier plan: {plan!r}")


class LengthMismatchError(CodecError):
    """Raised when a decoded length disagrees with the manifest or header."""

    def __init__(self, declared: int, actual: int, what: str = "payload length") -> None:
        self.declared = declared
        self.actual = actual
        super().__init__(f"{what} mismatch: declared {declared}, got {actual}")


class IntegrityError(CodecError):
    """Raised when a recomputed CRC32 does not match the recorded value."""

    def __init__(self, message: str, expected: Optional[int] = None, actual: Optional[int] = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class MissingManifestDataError(CodecError, ValueError):
    """Raised when a decode has neither a manifest nor a seed to work from."""


class TrieDecodeError(CodecError):
    """Raised when a trie leaf lacks the vector needed for reconstruction."""

    def __init__(self, key: str, index: Optional[int] = None) -> None:
        self.key = key
        self.index = index
        super().__init__(
            f"Leaf {key} (chunk {index}) has no embedded vector/manifest; "
            "encode with include_vectors=True"
        )


# ---------------------------------------------------------------------------
# CRC utilities
# ---------------------------------------------------------------------------


CRC32_TABLE: List[int] = []
_CRC32_LOCK = threading.Lock()


def _init_crc32_table() -> None:
    if CRC32_TABLE:
        return
    # Chunk encodes may run on worker threads; publish the table in one step.
    with _CRC32_LOCK:
        if CRC32_TABLE:
            return
        table = []
        for i in range(256):
            crc = i
            for _ in range(8):
                if crc & 1:
                    crc = (crc >> 1) ^ 0xEDB88320
                else:
                    crc >>= 1
            table.append(crc & U32_MASK)
        CRC32_TABLE[:] = table


def crc32(data: bytes) -> int:
    """Reflected CRC-32/IEEE 802.3 of ``data``."""

    _init_crc32_table()
    crc = U32_MASK
    for byte in data:
        crc = CRC32_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return (~crc) & U32_MASK


# ---------------------------------------------------------------------------
# Deterministic PRNG
# ---------------------------------------------------------------------------


def _imul(a: int, b: int) -> int:
    return (a * b) & U32_MASK


class Mulberry32:
    """32-bit counter generator yielding floats in ``[0, 1)``.

    The state advances in place on every call, so each caller must own its
    instance.  Two instances built from the same seed produce identical
    streams.
    """

    __slots__ = ("state",)

    def __init__(self, seed: int = 0) -> None:
        self.state = int(seed) & U32_MASK

    def next_u32(self) -> int:
        self.state = (self.state + 0x6D2B79F5) & U32_MASK
        t = self.state
        r = _imul(t ^ (t >> 15), t | 1)
        r ^= (r + _imul(r ^ (r >> 7), r | 61)) & U32_MASK
        return (r ^ (r >> 14)) & U32_MASK

    def __call__(self) -> float:
        return self.next_u32() / 4294967296.0


def make_rng(seed: int) -> Mulberry32:
    return Mulberry32(seed)


def fisher_yates(values: List[int], rng: Mulberry32) -> List[int]:
    """Shuffle ``values`` in place from the tail down and return it."""

    for i in range(len(values) - 1, 0, -1):
        j = int(rng() * (i + 1))
        values[i], values[j] = values[j], values[i]
    return values


# ---------------------------------------------------------------------------
# Seed derivation
# ---------------------------------------------------------------------------


def hash_to_seed(text: Union[str, bytes]) -> int:
    """XOR-fold the first four big-endian words of SHA-256(``text``)."""

    data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    digest = hashlib.sha256(data).digest()
    w0, w1, w2, w3 = struct.unpack_from(">4I", digest, 0)
    return (w0 ^ w1 ^ w2 ^ w3) & U32_MASK


def fnv1a_seed(text: Union[str, bytes]) -> int:
    """FNV-1a 32-bit hash of the UTF-8 bytes of ``text``."""

    data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    h = 0x811C9DC5
    for byte in data:
        h ^= byte
        h = (h * 0x01000193) & U32_MASK
    return h


def resolve_seed(seed: SeedLike, derivation: str = "sha256", default: str = DEFAULT_SEED_TEXT) -> int:
    """Return the numeric u32 seed for ``seed``.

    Integers are masked to 32 bits.  Text is hashed with the named derivation;
    the two derivations give different seeds for the same text, so callers
    record the resolved number rather than the text.
    """

    if derivation not in SEED_DERIVATIONS:
        raise ValueError(f"Unsupported seed derivation {derivation!r}")
    if isinstance(seed, bool):
        raise TypeError("seed must be an int or str, not bool")
    if isinstance(seed, int):
        return seed & U32_MASK
    text = default if seed is None else str(seed)
    if derivation == "fnv1a":
        return fnv1a_seed(text)
    return hash_to_seed(text)


# ---------------------------------------------------------------------------
# Framing helpers
# ---------------------------------------------------------------------------


def usable_bins(dim: int) -> int:
    """Number of positive-frequency bins excluding DC and Nyquist."""

    half = dim // 2
    return half - 1 if dim % 2 == 0 else half


def pack_frame_header(payload: bytes) -> bytes:
    return FRAME_HEADER_STRUCT.pack(len(payload) & U32_MASK, crc32(payload))


def unpack_frame_header(header: bytes) -> tuple[int, int]:
    if len(header) < FRAME_HEADER_STRUCT.size:
        raise LengthMismatchError(FRAME_HEADER_STRUCT.size, len(header), "frame header length")
    length, checksum = FRAME_HEADER_STRUCT.unpack_from(header, 0)
    return length, checksum


def ensure_bytes(value: Union[str, bytes, bytearray, memoryview, Iterable[int]]) -> bytes:
    """Coerce the provided value into a ``bytes`` instance."""

    if isinstance(value, bytes):
        return value
    if isinstance(value, bytearray):
        return bytes(value)
    if isinstance(value, memoryview):
        return bytes(value.tobytes())
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(int(part) & 0xFF for part in value)


def ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


# ---------------------------------------------------------------------------
# Configuration helpers
# ---------------------------------------------------------------------------


T = TypeVar("T")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def coerce_config(value: object, cls: Type[T], overrides: Mapping[str, Any]) -> T:
    """Return an instance of ``cls`` built from ``value`` plus ``overrides``.

    ``value`` may be ``None``, an instance of ``cls`` or a mapping whose keys
    use either the snake_case field names or the camelCase wire names.  Keys
    that are not fields of ``cls`` are ignored in mappings but rejected in
    ``overrides``, where they indicate a caller typo.
    """

    init_fields = {field.name for field in dataclasses.fields(cls) if field.init}
    unknown = sorted(set(overrides) - init_fields)
    if unknown:
        raise TypeError(f"Unexpected {cls.__name__} option(s): {', '.join(unknown)}")
    if isinstance(value, cls):
        return dataclasses.replace(value, **overrides) if overrides else value
    if value is None:
        merged: dict = {}
    elif isinstance(value, Mapping):
        merged = {}
        for key, item in value.items():
            name = snake_case(str(key))
            if name in init_fields:
                merged[name] = item
    else:
        raise TypeError(f"Expected {cls.__name__} or dict, got {type(value)!r}")
    merged.update(overrides)
    return cls(**merged)  # type: ignore[arg-type]


__all__ = [
    "CRC32_TABLE",
    "DEFAULT_SEED_TEXT",
    "FRAME_HEADER_STRUCT",
    "MANIFEST_VERSION",
    "SEED_DERIVATIONS",
    "U32_MASK",
    "CapacityError",
    "CodecError",
    "IntegrityError",
    "LengthMismatchError",
    "MissingManifestDataError",
    "Mulberry32",
    "SeedLike",
    "TrieDecodeError",
    "UnknownPlanError",
    "ceil_div",
    "coerce_config",
    "crc32",
    "ensure_bytes",
    "fisher_yates",
    "fnv1a_seed",
    "hash_to_seed",
    "make_rng",
    "pack_frame_header",
    "resolve_seed",
    "snake_case",
    "unpack_frame_header",
    "usable_bins",
]
