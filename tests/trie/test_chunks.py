from __future__ import annotations

import hashlib
import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from harmonic_engine.codec.common import (
    IntegrityError,
    LengthMismatchError,
    TrieDecodeError,
    hash_to_seed,
)
from harmonic_engine.trie import (
    ChunkManifest,
    TrieConfig,
    canonicalize_json,
    decode_trie_to_buffer,
    encode_buffer_to_trie,
    encode_json_to_trie,
    lookup,
    trie_values,
)
from harmonic_engine.trie.chunks import chunk_buffer, chunk_seed, root_fingerprint


def _payload(size: int) -> bytes:
    return bytes((i * 37 + 11) & 0xFF for i in range(size))


def test_chunk_buffer_splits_with_short_tail() -> None:
    assert chunk_buffer(b"abcdefg", 3) == [b"abc", b"def", b"g"]
    assert chunk_buffer(b"", 3) == []
    with pytest.raises(ValueError):
        chunk_buffer(b"abc", 0)


def test_manifest_without_vectors_describes_chunks() -> None:
    data = _payload(200)
    manifest = encode_buffer_to_trie(data, chunk_size=64, seed=7)
    assert manifest.chunk_count == 4
    assert manifest.seed == 7
    assert manifest.kind == "patricia-trie-chunks"
    digests = [hashlib.sha256(chunk).hexdigest() for chunk in chunk_buffer(data, 64)]
    assert set(manifest.leaves) == set(digests)
    last = manifest.leaves[digests[-1]]
    assert (last.index, last.size) == (3, 8)
    assert last.seed == (7 ^ hash_to_seed(digests[-1])) & 0xFFFFFFFF
    assert last.vector is None
    assert manifest.root == root_fingerprint(digests)


def test_default_seed_is_derived_from_trie_text() -> None:
    manifest = encode_buffer_to_trie(b"x")
    assert manifest.seed == hash_to_seed("trie")
    assert manifest.dim == 1024
    assert manifest.chunk_size == 8192


def test_round_trip_with_vectors() -> None:
    data = _payload(300)
    manifest = encode_buffer_to_trie(data, TrieConfig(dim=1024, seed="vectors", chunk_size=100, include_vectors=True))
    leaf = next(iter(manifest.leaves.values()))
    assert leaf.vector.shape == (1024,)
    assert leaf.vector_manifest.seed == leaf.seed
    assert decode_trie_to_buffer(manifest) == data


def test_round_trip_through_json() -> None:
    data = b"json transport " * 10
    manifest = encode_buffer_to_trie(data, {"dim": 512, "chunkSize": 48, "includeVectors": True})
    wire = json.loads(json.dumps(manifest.as_dict()))
    assert wire["chunkCount"] == manifest.chunk_count
    assert "vectorManifest" in next(iter(wire["leaves"].values()))
    assert decode_trie_to_buffer(wire) == data
    assert decode_trie_to_buffer(ChunkManifest.from_dict(wire)) == data


def test_duplicate_chunks_share_one_leaf() -> None:
    data = b"A" * 32 + b"B" * 32 + b"A" * 32
    manifest = encode_buffer_to_trie(data, dim=512, seed=3, chunk_size=32, include_vectors=True)
    assert manifest.chunk_count == 3
    assert len(manifest.leaves) == 2
    key_a = hashlib.sha256(b"A" * 32).hexdigest()
    assert manifest.leaves[key_a].index == 0
    assert [ref["index"] for ref in lookup(manifest.trie, key_a)] == [0, 2]
    assert sorted(ref["index"] for ref in trie_values(manifest.trie)) == [0, 1, 2]
    assert decode_trie_to_buffer(manifest) == data


def test_empty_buffer() -> None:
    manifest = encode_buffer_to_trie(b"", include_vectors=True)
    assert manifest.chunk_count == 0
    assert manifest.trie is None
    assert manifest.leaves == {}
    assert decode_trie_to_buffer(manifest) == b""


def test_root_fingerprint_is_order_independent() -> None:
    assert root_fingerprint(["bb", "aa"]) == root_fingerprint(["aa", "bb", "aa"])
    assert root_fingerprint(["aa"]) != root_fingerprint(["bb"])


def test_thread_pool_matches_serial_encode() -> None:
    data = _payload(1000)
    serial = encode_buffer_to_trie(data, dim=512, chunk_size=50, include_vectors=True)
    pooled = encode_buffer_to_trie(data, dim=512, chunk_size=50, include_vectors=True, max_workers=4)
    assert pooled.root == serial.root
    assert pooled.trie == serial.trie
    assert pooled.leaves == serial.leaves
    assert decode_trie_to_buffer(pooled) == data


def test_decode_requires_vectors() -> None:
    manifest = encode_buffer_to_trie(b"no vectors here", chunk_size=4)
    with pytest.raises(TrieDecodeError) as excinfo:
        decode_trie_to_buffer(manifest)
    assert excinfo.value.index == 0


def test_decode_detects_count_and_hash_mismatch() -> None:
    data = _payload(90)
    manifest = encode_buffer_to_trie(data, dim=512, chunk_size=30, include_vectors=True)
    wire = manifest.as_dict()
    wire["chunkCount"] = 4
    with pytest.raises(LengthMismatchError):
        decode_trie_to_buffer(wire)

    wire = manifest.as_dict()
    keys = list(wire["leaves"])
    wire["leaves"][keys[0]]["vector"] = wire["leaves"][keys[1]]["vector"]
    wire["leaves"][keys[0]]["vectorManifest"] = wire["leaves"][keys[1]]["vectorManifest"]
    with pytest.raises(IntegrityError):
        decode_trie_to_buffer(wire)


def test_config_validation() -> None:
    with pytest.raises(ValueError):
        TrieConfig(chunk_size=0)
    with pytest.raises(ValueError):
        TrieConfig(max_workers=0)
    with pytest.raises(TypeError):
        encode_buffer_to_trie(b"x", chunksize=4)


def test_chunk_seed_masks_to_u32() -> None:
    digest = hashlib.sha256(b"x").hexdigest()
    assert chunk_seed(0, digest) == hash_to_seed(digest)
    assert 0 <= chunk_seed(0xFFFFFFFF, digest) <= 0xFFFFFFFF


def test_canonicalize_json_sorts_keys_and_strips_whitespace() -> None:
    value = {"b": 1, "a": [1, {"d": 2, "c": "é"}]}
    assert canonicalize_json(value) == '{"a":[1,{"c":"é","d":2}],"b":1}'
    shared = [1, 2]
    assert canonicalize_json({"x": shared, "y": shared}) == '{"x":[1,2],"y":[1,2]}'


def test_canonicalize_json_rejects_cycles() -> None:
    loop: dict = {}
    loop["self"] = loop
    with pytest.raises(ValueError):
        canonicalize_json(loop)


def test_encode_json_ignores_key_order() -> None:
    first = encode_json_to_trie({"a": 1, "b": [True, None]}, chunk_size=8)
    second = encode_json_to_trie({"b": [True, None], "a": 1}, chunk_size=8)
    assert first.root == second.root
    assert first.chunk_count == 3
