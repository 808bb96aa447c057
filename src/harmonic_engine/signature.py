"""Deterministic 3-PSK reference trits derived from a content digest.

Two labelled trit streams (``A`` and ``B``) are expanded from the digest with
SHA-256 in counter mode and combined mod 3 into a joint trit string.  The
joint string is what an external wallet signs; signing and anchoring are not
handled here.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Union

DIGEST_DOMAIN = b"CQE-HARMONIC"
PSK_KIND = "3-PSK"

_TRIT_CHARS = {-1: "-", 0: "0", 1: "+"}
_CHAR_TRITS = {"-": -1, "0": 0, "+": 1}


def derive_trits_from_digest(
    digest: Union[bytes, bytearray], count: int, label: Union[bytes, str] = b""
) -> List[int]:
    """Expand ``digest`` into ``count`` trits in ``{-1, 0, 1}``.

    Each block is ``sha256(domain || label || digest || counter)`` with a one
    byte counter; every output byte contributes ``byte % 3 - 1``.
    """

    if count < 0:
        raise ValueError("count must be non-negative")
    if isinstance(label, str):
        label = label.encode("utf-8")
    seed = DIGEST_DOMAIN + bytes(label) + bytes(digest)
    trits: List[int] = []
    counter = 0
    while len(trits) < count:
        block = hashlib.sha256(seed + bytes([counter & 0xFF])).digest()
        counter += 1
        for byte in block[: count - len(trits)]:
            trits.append(byte % 3 - 1)
    return trits


def trits_to_string(trits: Sequence[int]) -> str:
    try:
        return "".join(_TRIT_CHARS[int(t)] for t in trits)
    except KeyError as exc:
        raise ValueError(f"Invalid trit {exc.args[0]!r}") from exc


def string_to_trits(text: str) -> List[int]:
    # Unknown characters read as 0.
    return [_CHAR_TRITS.get(ch, 0) for ch in text]


def joint_trits(a: Sequence[int], b: Sequence[int]) -> List[int]:
    """Element-wise ``((a + 1) + (b + 1)) % 3 - 1`` over the shorter length."""

    return [((x + 1) + (y + 1)) % 3 - 1 for x, y in zip(a, b)]


@dataclass(frozen=True)
class HarmonicRef:
    label: str
    plan: str
    dim: int
    trits: str
    hrid: str
    psk: str = PSK_KIND

    def as_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "plan": self.plan,
            "dim": self.dim,
            "psk": self.psk,
            "trits": self.trits,
            "hrid": self.hrid,
        }


@dataclass(frozen=True)
class HarmonicSignature:
    scheme: str
    refs: Tuple[HarmonicRef, ...]
    joint_trits: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "scheme": self.scheme,
            "refs": [ref.as_dict() for ref in self.refs],
            "joint_trits": self.joint_trits,
        }


def _make_ref(digest: bytes, plan: str, count: int, label: str) -> HarmonicRef:
    label_bytes = f"{label}:{plan}".encode("utf-8")
    trit_str = trits_to_string(derive_trits_from_digest(digest, count, label_bytes))
    hrid = hashlib.sha256(trit_str.encode("utf-8") + label_bytes).hexdigest()
    return HarmonicRef(label=label, plan=plan, dim=count, trits=trit_str, hrid=hrid)


def harmonic_signature(digest_hex: str, plan: str = "merkaba125", count: int = 125) -> HarmonicSignature:
    digest = bytes.fromhex(digest_hex)
    refs = tuple(_make_ref(digest, plan, count, label) for label in ("A", "B"))
    joint = joint_trits(string_to_trits(refs[0].trits), string_to_trits(refs[1].trits))
    return HarmonicSignature(scheme=f"3psk-{plan}", refs=refs, joint_trits=trits_to_string(joint))


__all__ = [
    "HarmonicRef",
    "HarmonicSignature",
    "derive_trits_from_digest",
    "harmonic_signature",
    "joint_trits",
    "string_to_trits",
    "trits_to_string",
]
