"""
Codec components for tensorpickle.

This module provides the codec that turns torch tensors into the
byte payload and descriptor carried by a ``TensorRef``.
"""

from .codec import TensorCodec, get_default_codec

__all__ = [
    "TensorCodec",
    "get_default_codec",
]
