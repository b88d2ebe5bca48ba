"""
Enumeration types for tensorpickle.

Opcode and argument catalogs live in ``tensorpickle.protocol.opcodes``;
this module only holds the value-side enumerations.
"""

from enum import IntEnum


class ValueKind(IntEnum):
    """Variants of a tagged value that the pickler knows how to encode."""
    NONE = 0
    BOOL = 1
    INT = 2
    DOUBLE = 3
    STRING = 4
    TUPLE = 5
    LIST = 6
    DICT = 7
    TENSOR = 8
    OBJECT = 9

    @property
    def is_composite(self) -> bool:
        return self in (ValueKind.TUPLE, ValueKind.LIST, ValueKind.DICT, ValueKind.OBJECT)
