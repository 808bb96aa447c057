"""Content-addressed chunk manifests indexed by a Patricia trie."""

from .chunks import (
    ChunkLeaf,
    ChunkManifest,
    TrieConfig,
    canonicalize_json,
    decode_trie_to_buffer,
    encode_buffer_to_trie,
    encode_json_to_trie,
)
from .patricia import TrieNode, build_patricia_trie, lookup, trie_values

__all__ = [
    "ChunkLeaf",
    "ChunkManifest",
    "TrieConfig",
    "TrieNode",
    "build_patricia_trie",
    "canonicalize_json",
    "decode_trie_to_buffer",
    "encode_buffer_to_trie",
    "encode_json_to_trie",
    "lookup",
    "trie_values",
]
