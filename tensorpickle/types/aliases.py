"""
Type aliases for tensorpickle.

This module defines type aliases used throughout the library
for better type safety and code clarity.
"""

from typing import NewType

MemoId = NewType('MemoId', int)
TensorIndex = NewType('TensorIndex', int)
ByteSize = NewType('ByteSize', int)
QualifiedName = NewType('QualifiedName', str)
