"""Computational quantum engine: bind/unbind of real vectors."""

from .convolution import (
    DEFAULT_EPSILON,
    ConvolutionEngine,
    circular_convolution,
    circular_deconvolution,
)

__all__ = [
    "DEFAULT_EPSILON",
    "ConvolutionEngine",
    "circular_convolution",
    "circular_deconvolution",
]
