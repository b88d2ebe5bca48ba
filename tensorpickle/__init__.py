"""
tensorpickle - Streaming pickle codec with tensor side channels

Writes and reads the subset of the pickle protocol needed for plain
values (None, bool, int, float, str, tuple, list, ordered dict), named
class instances and tensors, without importing any class named in the
stream.

Key Features:
- Byte-compatible with pickle protocol 2 for plain values
- Identity memoization with back-references
- Tensors either by index into a shared tensor table or inline
- Callback-driven streaming in both directions
- Pluggable class resolution
"""

from __future__ import annotations

__version__ = "1.0.0"
__license__ = "MIT"

# Entry points
from .serialization import (
    pickle_stream,
    pickle_to_buffer,
    unpickle_from_callbacks,
    unpickle_from_buffer
)
from .factory import (
    get_default_config,
    create_compact_config,
    create_pickler,
    create_unpickler,
    create_registry
)
from .config import PickleConfig

# Core components
from .core.pickler import Pickler
from .core.unpickler import Unpickler
from .core.tensor import TensorRef
from .core.tensor_table import TensorTable
from .core.registry import ClassRegistry
from .core.stream import BufferSource, BufferSink

# Codecs
from .codecs.codec import TensorCodec

# Protocol
from .protocol.opcodes import Opcode, DEFAULT_PROTOCOL, HIGHEST_PROTOCOL
from .protocol.disassembler import disassemble, count_opcodes, format_disassembly

# Types
from .types.descriptors import TensorDescriptor, StreamStats
from .types.enums import ValueKind
from .types.values import CustomObject, ClassDescriptor

# Exceptions
from .exceptions import (
    TensorPickleError,
    PicklingError,
    UnpicklingError,
    UnsupportedValueKind,
    RecursiveValueError,
    MalformedOpcode,
    UnexpectedEndOfStream,
    StackUnderflow,
    InvalidMemoReference,
    ClassNotRegistered,
    TensorIndexOutOfRange,
    TensorCodecError
)

# Public API
__all__ = [
    # Entry points
    "pickle_stream",
    "pickle_to_buffer",
    "unpickle_from_callbacks",
    "unpickle_from_buffer",
    
    # Factory functions
    "get_default_config",
    "create_compact_config",
    "create_pickler",
    "create_unpickler",
    "create_registry",
    "PickleConfig",
    
    # Core components
    "Pickler",
    "Unpickler",
    "TensorRef",
    "TensorTable",
    "ClassRegistry",
    "BufferSource",
    "BufferSink",
    
    # Codecs
    "TensorCodec",
    
    # Protocol
    "Opcode",
    "DEFAULT_PROTOCOL",
    "HIGHEST_PROTOCOL",
    "disassemble",
    "count_opcodes",
    "format_disassembly",
    
    # Types
    "TensorDescriptor",
    "StreamStats",
    "ValueKind",
    "CustomObject",
    "ClassDescriptor",
    
    # Exceptions
    "TensorPickleError",
    "PicklingError",
    "UnpicklingError",
    "UnsupportedValueKind",
    "RecursiveValueError",
    "MalformedOpcode",
    "UnexpectedEndOfStream",
    "StackUnderflow",
    "InvalidMemoReference",
    "ClassNotRegistered",
    "TensorIndexOutOfRange",
    "TensorCodecError",
]
