from __future__ import annotations

import hashlib
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from harmonic_engine.signature import (
    derive_trits_from_digest,
    harmonic_signature,
    joint_trits,
    string_to_trits,
    trits_to_string,
)


def _expected_trits(digest: bytes, count: int, label: bytes) -> list[int]:
    stream = b""
    counter = 0
    while len(stream) < count:
        stream += hashlib.sha256(b"CQE-HARMONIC" + label + digest + bytes([counter])).digest()
        counter += 1
    return [byte % 3 - 1 for byte in stream[:count]]


def test_trit_stream_spans_multiple_blocks() -> None:
    digest = hashlib.sha256(b"axiom").digest()
    trits = derive_trits_from_digest(digest, 70, b"A:merkaba125")
    assert trits == _expected_trits(digest, 70, b"A:merkaba125")
    assert set(trits) <= {-1, 0, 1}
    assert derive_trits_from_digest(digest, 70, "A:merkaba125") == trits
    assert derive_trits_from_digest(digest, 0) == []
    with pytest.raises(ValueError):
        derive_trits_from_digest(digest, -1)


def test_trit_string_helpers() -> None:
    assert trits_to_string([-1, 0, 1]) == "-0+"
    assert string_to_trits("-0+?") == [-1, 0, 1, 0]
    with pytest.raises(ValueError):
        trits_to_string([2])


def test_joint_trits_combines_mod_three_over_shorter_length() -> None:
    assert joint_trits([1, 1, -1], [1, 0]) == [0, -1]
    assert joint_trits([-1, 0, 1], [0, 0, 0]) == [0, 1, -1]


def test_harmonic_signature_refs_and_joint() -> None:
    digest_hex = hashlib.sha256(b"payload").hexdigest()
    signature = harmonic_signature(digest_hex, "pentad7", 49)
    assert signature.scheme == "3psk-pentad7"
    assert [ref.label for ref in signature.refs] == ["A", "B"]
    ref_a, ref_b = signature.refs
    assert len(ref_a.trits) == 49
    assert ref_a.trits != ref_b.trits
    expected_hrid = hashlib.sha256(ref_a.trits.encode("utf-8") + b"A:pentad7").hexdigest()
    assert ref_a.hrid == expected_hrid
    joint = joint_trits(string_to_trits(ref_a.trits), string_to_trits(ref_b.trits))
    assert signature.joint_trits == trits_to_string(joint)

    data = signature.as_dict()
    assert data["refs"][1]["psk"] == "3-PSK"
    assert data["joint_trits"] == signature.joint_trits
    assert harmonic_signature(digest_hex, "pentad7", 49) == signature
