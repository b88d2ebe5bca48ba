"""
Core components for tensorpickle.

This module provides the pickler, the unpickler, the tensor handle and
table, and the buffer adapters that connect them to flat byte buffers.
"""

from .pickler import Pickler
from .unpickler import Unpickler, BUILTIN_GLOBALS
from .tensor import TensorRef
from .tensor_table import TensorTable
from .registry import ClassRegistry
from .stream import BufferSource, BufferSink
from .values import classify

__all__ = [
    "Pickler",
    "Unpickler",
    "BUILTIN_GLOBALS",
    "TensorRef",
    "TensorTable",
    "ClassRegistry",
    "BufferSource",
    "BufferSink",
    "classify",
]
