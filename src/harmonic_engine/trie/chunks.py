"""Content-addressed chunking of buffers too large for one vector.

A buffer is cut into fixed-size chunks, each addressed by its SHA-256 hex
digest.  The digests index a Patricia trie whose terminal values carry the
chunk positions, and the leaf table keeps one record per distinct digest.
With ``include_vectors`` every chunk is also embedded through the QPSK codec
under its own seed, ``manifest_seed ^ hash_to_seed(digest)``, which is what
makes :func:`decode_trie_to_buffer` possible.
"""

from __future__ import annotations

import hashlib
import importlib.util
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Union

if importlib.util.find_spec("numpy") is None:  # pragma: no cover - deterministic import guard
    raise ModuleNotFoundError(
        "The numpy package is required for the chunk trie encoder. Install it with 'pip install numpy'."
    )
import numpy as np

from ..codec.common import (
    MANIFEST_VERSION,
    U32_MASK,
    IntegrityError,
    LengthMismatchError,
    SeedLike,
    TrieDecodeError,
    coerce_config,
    ensure_bytes,
    hash_to_seed,
    resolve_seed,
)
from ..codec.qpsk import Manifest, decode_vector_to_binary, encode_binary_to_vector
from .patricia import TrieNode, build_patricia_trie, trie_values

logger = logging.getLogger(__name__)

TRIE_KIND = "patricia-trie-chunks"
DEFAULT_CHUNK_SIZE = 8192
DEFAULT_TRIE_DIM = 1024
DEFAULT_TRIE_SEED_TEXT = "trie"


@dataclass(frozen=True)
class TrieConfig:
    dim: int = DEFAULT_TRIE_DIM
    seed: SeedLike = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    include_vectors: bool = False
    max_workers: int = 1

    def __post_init__(self) -> None:
        if isinstance(self.dim, bool) or not isinstance(self.dim, int) or self.dim <= 0:
            raise ValueError("dim must be a positive integer")
        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, int) or self.chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")


@dataclass(frozen=True)
class ChunkLeaf:
    index: int
    size: int
    hash: str
    dim: int
    seed: int
    vector: Optional[np.ndarray] = field(default=None, compare=False)
    vector_manifest: Optional[Manifest] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "index": self.index,
            "size": self.size,
            "hash": self.hash,
            "dim": self.dim,
            "seed": self.seed,
        }
        if self.vector is not None:
            data["vector"] = self.vector.tolist()
        if self.vector_manifest is not None:
            data["vectorManifest"] = self.vector_manifest.as_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkLeaf":
        vector = data.get("vector")
        vector_manifest = data.get("vectorManifest", data.get("vector_manifest"))
        return cls(
            index=int(data["index"]),
            size=int(data["size"]),
            hash=str(data["hash"]),
            dim=int(data["dim"]),
            seed=int(data["seed"]) & U32_MASK,
            vector=None if vector is None else np.asarray(vector, dtype=np.float64),
            vector_manifest=None if vector_manifest is None else Manifest.from_dict(vector_manifest),
        )


@dataclass(frozen=True)
class ChunkManifest:
    root: str
    dim: int
    seed: int
    chunk_size: int
    chunk_count: int
    trie: Optional[TrieNode]
    leaves: Dict[str, ChunkLeaf]
    version: int = MANIFEST_VERSION
    kind: str = TRIE_KIND

    def as_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "kind": self.kind,
            "root": self.root,
            "dim": self.dim,
            "seed": self.seed,
            "chunkSize": self.chunk_size,
            "chunkCount": self.chunk_count,
            "trie": None if self.trie is None else self.trie.as_dict(),
            "leaves": {key: leaf.as_dict() for key, leaf in self.leaves.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkManifest":
        kind = data.get("kind", TRIE_KIND)
        if kind != TRIE_KIND:
            raise ValueError(f"Unsupported manifest kind {kind!r}")
        trie = data.get("trie")
        return cls(
            root=str(data["root"]),
            dim=int(data["dim"]),
            seed=int(data["seed"]) & U32_MASK,
            chunk_size=int(data.get("chunkSize", data.get("chunk_size"))),
            chunk_count=int(data.get("chunkCount", data.get("chunk_count"))),
            trie=None if trie is None else TrieNode.from_dict(trie),
            leaves={str(key): ChunkLeaf.from_dict(leaf) for key, leaf in data.get("leaves", {}).items()},
            version=int(data.get("version", MANIFEST_VERSION)),
        )


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def chunk_buffer(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[bytes]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [data[offset : offset + chunk_size] for offset in range(0, len(data), chunk_size)]


def root_fingerprint(keys: Union[Mapping[str, Any], List[str]]) -> str:
    """SHA-256 over the sorted, de-duplicated leaf keys concatenated."""

    return sha256_hex("".join(sorted(set(keys))).encode("utf-8"))


def chunk_seed(manifest_seed: int, digest_hex: str) -> int:
    return (manifest_seed ^ hash_to_seed(digest_hex)) & U32_MASK


def _encode_chunk(cfg: TrieConfig, seed: int, index: int, chunk: bytes) -> ChunkLeaf:
    digest = sha256_hex(chunk)
    leaf_seed = chunk_seed(seed, digest)
    vector = None
    vector_manifest = None
    if cfg.include_vectors:
        result = encode_binary_to_vector(chunk, dim=cfg.dim, seed=leaf_seed)
        vector, vector_manifest = result.vector, result.manifest
    return ChunkLeaf(
        index=index,
        size=len(chunk),
        hash=digest,
        dim=cfg.dim,
        seed=leaf_seed,
        vector=vector,
        vector_manifest=vector_manifest,
    )


def encode_buffer_to_trie(
    buffer: Union[bytes, bytearray, memoryview, str],
    config: Union[TrieConfig, Mapping[str, Any], None] = None,
    **options: Any,
) -> ChunkManifest:
    cfg = coerce_config(config, TrieConfig, options)
    seed = resolve_seed(cfg.seed, "sha256", default=DEFAULT_TRIE_SEED_TEXT)
    data = ensure_bytes(buffer)
    chunks = chunk_buffer(data, cfg.chunk_size)

    if cfg.max_workers > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=cfg.max_workers) as pool:
            encoded = list(
                pool.map(lambda item: _encode_chunk(cfg, seed, item[0], item[1]), enumerate(chunks))
            )
    else:
        encoded = [_encode_chunk(cfg, seed, index, chunk) for index, chunk in enumerate(chunks)]

    leaves: Dict[str, ChunkLeaf] = {}
    entries: List[Tuple[str, Dict[str, Any]]] = []
    for leaf in encoded:
        entries.append((leaf.hash, {"hash": leaf.hash, "index": leaf.index}))
        leaves.setdefault(leaf.hash, leaf)
    logger.debug(
        "Chunked %s bytes into %s chunks (%s distinct, chunk_size=%s, vectors=%s)",
        len(data),
        len(chunks),
        len(leaves),
        cfg.chunk_size,
        cfg.include_vectors,
    )
    return ChunkManifest(
        root=root_fingerprint(leaves),
        dim=cfg.dim,
        seed=seed,
        chunk_size=cfg.chunk_size,
        chunk_count=len(chunks),
        trie=build_patricia_trie(entries),
        leaves=leaves,
    )


def decode_trie_to_buffer(manifest: Union[ChunkManifest, Mapping[str, Any]]) -> bytes:
    """Reassemble the original buffer from a manifest built with vectors."""

    if not isinstance(manifest, ChunkManifest):
        manifest = ChunkManifest.from_dict(manifest)
    refs = sorted(trie_values(manifest.trie), key=lambda ref: int(ref["index"]))
    if len(refs) != manifest.chunk_count:
        raise LengthMismatchError(manifest.chunk_count, len(refs), "chunk count")
    parts: List[bytes] = []
    for ref in refs:
        key = str(ref["hash"])
        leaf = manifest.leaves.get(key)
        if leaf is None or leaf.vector is None or leaf.vector_manifest is None:
            raise TrieDecodeError(key, int(ref["index"]))
        chunk = decode_vector_to_binary(leaf.vector, leaf.vector_manifest)
        if sha256_hex(chunk) != key:
            raise IntegrityError(f"Chunk {ref['index']} does not hash to its key {key}")
        parts.append(chunk)
    return b"".join(parts)


def canonicalize_json(value: Any) -> str:
    """Serialise ``value`` with sorted keys and no insignificant whitespace.

    Containers currently being serialised are tracked by identity; meeting
    one again means the input is cyclic, which is rejected.
    """

    active: Set[int] = set()

    def _sorted(item: Any) -> Any:
        if isinstance(item, (Mapping, list, tuple)):
            marker = id(item)
            if marker in active:
                raise ValueError("Cyclic JSON not supported")
            active.add(marker)
            try:
                if isinstance(item, Mapping):
                    return {str(key): _sorted(item[key]) for key in sorted(item, key=str)}
                return [_sorted(element) for element in item]
            finally:
                active.discard(marker)
        return item

    return json.dumps(_sorted(value), separators=(",", ":"), ensure_ascii=False)


def encode_json_to_trie(
    value: Any,
    config: Union[TrieConfig, Mapping[str, Any], None] = None,
    **options: Any,
) -> ChunkManifest:
    return encode_buffer_to_trie(canonicalize_json(value).encode("utf-8"), config, **options)


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_TRIE_DIM",
    "TRIE_KIND",
    "ChunkLeaf",
    "ChunkManifest",
    "TrieConfig",
    "canonicalize_json",
    "chunk_buffer",
    "chunk_seed",
    "decode_trie_to_buffer",
    "encode_buffer_to_trie",
    "encode_json_to_trie",
    "root_fingerprint",
    "sha256_hex",
]
