"""
Protocol definition for tensorpickle.

This module provides the opcode catalog, the argument encodings and
the primitive field codecs shared by both directions.
"""

from .opcodes import (
    Opcode,
    ArgKind,
    OPCODE_ARGS,
    DEFAULT_PROTOCOL,
    HIGHEST_PROTOCOL,
    TENSOR_FACTORY_MODULE,
    TENSOR_FACTORY_NAME
)
from .primitives import encode_long, decode_long, read_argument

__all__ = [
    "Opcode",
    "ArgKind",
    "OPCODE_ARGS",
    "DEFAULT_PROTOCOL",
    "HIGHEST_PROTOCOL",
    "TENSOR_FACTORY_MODULE",
    "TENSOR_FACTORY_NAME",
    "encode_long",
    "decode_long",
    "read_argument",
]
