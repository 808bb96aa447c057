"""Deterministic spectral codecs, circular-convolution binding and chunk tries."""

from .codec import (
    CodecConfig,
    CodecError,
    Manifest,
    decode_vector_to_binary,
    encode_binary_to_vector,
)
from .cqe import ConvolutionEngine
from .signature import harmonic_signature
from .trie import TrieConfig, decode_trie_to_buffer, encode_buffer_to_trie, encode_json_to_trie

__all__ = [
    "CodecConfig",
    "CodecError",
    "ConvolutionEngine",
    "Manifest",
    "TrieConfig",
    "decode_trie_to_buffer",
    "decode_vector_to_binary",
    "encode_binary_to_vector",
    "encode_buffer_to_trie",
    "encode_json_to_trie",
    "harmonic_signature",
]
