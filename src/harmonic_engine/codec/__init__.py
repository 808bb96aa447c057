"""Spectral codec: QPSK and 3-PSK payloads carried in seeded unitary spectra."""

from .common import (
    CapacityError,
    CodecError,
    IntegrityError,
    LengthMismatchError,
    MissingManifestDataError,
    Mulberry32,
    TrieDecodeError,
    UnknownPlanError,
    crc32,
    fnv1a_seed,
    hash_to_seed,
    make_rng,
    resolve_seed,
)
from .plans import carrier_plan, plan_capacity, select_carrier_bins
from .qpsk import (
    CodecConfig,
    EncodeResult,
    Manifest,
    decode_document,
    decode_vector_to_binary,
    encode_binary_to_vector,
)
from .spectrum import is_conjugate_symmetric, unitary_spectrum
from .template import TemplateResult, generate_template
from .ternary import TernaryEncodeResult, TernaryManifest, decode_trits, encode_trits
from .transform import dft_of_real, fft, idft_real, ifft

__all__ = [
    "CapacityError",
    "CodecConfig",
    "CodecError",
    "EncodeResult",
    "IntegrityError",
    "LengthMismatchError",
    "Manifest",
    "MissingManifestDataError",
    "Mulberry32",
    "TemplateResult",
    "TernaryEncodeResult",
    "TernaryManifest",
    "TrieDecodeError",
    "UnknownPlanError",
    "carrier_plan",
    "crc32",
    "decode_document",
    "decode_trits",
    "decode_vector_to_binary",
    "dft_of_real",
    "encode_binary_to_vector",
    "encode_trits",
    "fft",
    "fnv1a_seed",
    "generate_template",
    "hash_to_seed",
    "idft_real",
    "ifft",
    "is_conjugate_symmetric",
    "make_rng",
    "plan_capacity",
    "resolve_seed",
    "select_carrier_bins",
    "unitary_spectrum",
]
