from __future__ import annotations

import hashlib
import struct
import sys
import zlib
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from harmonic_engine.codec import common
from harmonic_engine.codec.common import (
    CapacityError,
    CodecError,
    LengthMismatchError,
    MissingManifestDataError,
    Mulberry32,
    UnknownPlanError,
    coerce_config,
    crc32,
    fisher_yates,
    fnv1a_seed,
    hash_to_seed,
    resolve_seed,
)
from harmonic_engine.codec.qpsk import CodecConfig


def test_crc32_reference_value() -> None:
    assert crc32(b"hello") == 0x3610A686
    assert crc32(b"") == 0


@pytest.mark.parametrize(
    "payload",
    [b"a", b"123456789", bytes(range(256)), b"\x00" * 33, "harmonic ✓".encode("utf-8")],
)
def test_crc32_matches_zlib(payload: bytes) -> None:
    assert crc32(payload) == zlib.crc32(payload) & 0xFFFFFFFF


def test_crc32_table_has_256_entries() -> None:
    crc32(b"x")
    assert len(common.CRC32_TABLE) == 256
    assert common.CRC32_TABLE[1] == 0x77073096


def test_mulberry32_streams_are_reproducible() -> None:
    a = Mulberry32(1234)
    b = Mulberry32(1234)
    first = [a() for _ in range(16)]
    assert first == [b() for _ in range(16)]
    assert all(0.0 <= value < 1.0 for value in first)
    other = Mulberry32(1235)
    assert [other() for _ in range(16)] != first


@pytest.mark.parametrize(
    "seed, expected",
    [
        (0, [1144304738, 1416247, 958946056]),
        (1234, [314799534, 3021131492, 3877737075, 4168477787, 175938938]),
    ],
)
def test_mulberry32_reference_outputs(seed: int, expected: list) -> None:
    rng = Mulberry32(seed)
    assert [rng.next_u32() for _ in expected] == expected
    assert Mulberry32(seed)() == expected[0] / 4294967296


def test_mulberry32_masks_seed_to_u32() -> None:
    assert Mulberry32(2**32 + 7).state == 7
    assert Mulberry32(-1).state == 0xFFFFFFFF


def test_fisher_yates_is_a_seeded_permutation() -> None:
    values = list(range(50))
    shuffled = fisher_yates(list(values), Mulberry32(9))
    assert sorted(shuffled) == values
    assert shuffled != values
    assert shuffled == fisher_yates(list(values), Mulberry32(9))


def test_hash_to_seed_folds_sha256_words() -> None:
    digest = hashlib.sha256(b"harmonic").digest()
    w0, w1, w2, w3 = struct.unpack(">4I", digest[:16])
    assert hash_to_seed("harmonic") == w0 ^ w1 ^ w2 ^ w3
    assert hash_to_seed(b"harmonic") == hash_to_seed("harmonic")


def test_fnv1a_seed_known_values() -> None:
    assert fnv1a_seed("") == 0x811C9DC5
    assert fnv1a_seed("a") == 0xE40C292C


def test_resolve_seed_variants() -> None:
    assert resolve_seed(2**32 + 5) == 5
    assert resolve_seed(None) == hash_to_seed("harmonic")
    assert resolve_seed(None, default="trie") == hash_to_seed("trie")
    assert resolve_seed("abc", "fnv1a") == fnv1a_seed("abc")
    assert resolve_seed("abc") != resolve_seed("abc", "fnv1a")


def test_resolve_seed_rejects_bad_input() -> None:
    with pytest.raises(TypeError):
        resolve_seed(True)
    with pytest.raises(ValueError):
        resolve_seed("abc", "md5")


def test_frame_header_round_trip_and_short_header() -> None:
    header = common.pack_frame_header(b"hello")
    assert header == struct.pack(">II", 5, 0x3610A686)
    assert common.unpack_frame_header(header) == (5, 0x3610A686)
    with pytest.raises(LengthMismatchError):
        common.unpack_frame_header(header[:5])


@pytest.mark.parametrize("dim, expected", [(8, 3), (9, 4), (1024, 511), (2, 0), (1, 0)])
def test_usable_bins_excludes_dc_and_nyquist(dim: int, expected: int) -> None:
    assert common.usable_bins(dim) == expected


def test_ensure_bytes_accepts_common_buffers() -> None:
    assert common.ensure_bytes("hé") == "hé".encode("utf-8")
    assert common.ensure_bytes(bytearray(b"ab")) == b"ab"
    assert common.ensure_bytes(memoryview(b"cd")) == b"cd"
    assert common.ensure_bytes([1, 2, 300]) == bytes([1, 2, 44])


def test_coerce_config_accepts_camel_case_and_overrides() -> None:
    config = coerce_config({"dim": 64, "seedDerivation": "fnv1a", "unused": 1}, CodecConfig, {"seed": "x"})
    assert config.dim == 64
    assert config.seed_derivation == "fnv1a"
    assert config.seed == "x"

    base = CodecConfig(dim=32)
    assert coerce_config(base, CodecConfig, {}) is base
    assert coerce_config(base, CodecConfig, {"plan": "pentad7"}).plan == "pentad7"


def test_coerce_config_rejects_unknown_overrides() -> None:
    with pytest.raises(TypeError):
        coerce_config(None, CodecConfig, {"dim": 8, "dimension": 8})
    with pytest.raises(TypeError):
        coerce_config(42, CodecConfig, {})


def test_error_hierarchy_carries_context() -> None:
    err = CapacityError(52, 31, "pentad7")
    assert isinstance(err, CodecError)
    assert isinstance(err, RuntimeError)
    assert (err.needed, err.available, err.plan) == (52, 31, "pentad7")
    assert "pentad7" in str(err)

    assert issubclass(UnknownPlanError, ValueError)
    assert issubclass(MissingManifestDataError, ValueError)
    mismatch = LengthMismatchError(5, 0)
    assert (mismatch.declared, mismatch.actual) == (5, 0)
