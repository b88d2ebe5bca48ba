"""
Type definitions and protocols for tensorpickle.

This module provides type definitions, protocols, and data structures
used throughout the library for type safety and clarity.
"""

from .descriptors import TensorDescriptor, StreamStats, ELEMENT_SIZES
from .enums import ValueKind
from .values import CustomObject, ClassDescriptor
from .protocols import (
    ByteSink,
    ByteSource,
    BoundsChecker,
    ClassResolver,
    ITensorTable
)
from .aliases import (
    MemoId,
    TensorIndex,
    ByteSize,
    QualifiedName
)

__all__ = [
    # Descriptors
    "TensorDescriptor",
    "StreamStats",
    "ELEMENT_SIZES",
    
    # Enums
    "ValueKind",
    
    # Values
    "CustomObject",
    "ClassDescriptor",
    
    # Protocols
    "ByteSink",
    "ByteSource",
    "BoundsChecker",
    "ClassResolver",
    "ITensorTable",
    
    # Type aliases
    "MemoId",
    "TensorIndex",
    "ByteSize",
    "QualifiedName",
]
