"""
Opcode catalog for the tensorpickle wire format.

Byte values match the standard pickle protocol. TENSOR_START and
TENSOR_STOP are the two extension markers that bracket an inline tensor
blob; they sit outside the range used by pickle protocols 0-5.
"""

from enum import IntEnum
from typing import Dict

DEFAULT_PROTOCOL = 2
HIGHEST_PROTOCOL = 5

TENSOR_FACTORY_MODULE = "torch.jit._pickle"
TENSOR_FACTORY_NAME = "build_tensor_from_id"


class Opcode(IntEnum):
    MARK = ord('(')
    STOP = ord('.')
    POP = ord('0')
    POP_MARK = ord('1')
    BINBYTES = ord('B')
    SHORT_BINBYTES = ord('C')
    BINFLOAT = ord('G')
    BININT = ord('J')
    BININT1 = ord('K')
    BININT2 = ord('M')
    NONE = ord('N')
    REDUCE = ord('R')
    BINUNICODE = ord('X')
    APPEND = ord('a')
    BUILD = ord('b')
    GLOBAL = ord('c')
    APPENDS = ord('e')
    BINGET = ord('h')
    LONG_BINGET = ord('j')
    BINPUT = ord('q')
    LONG_BINPUT = ord('r')
    SETITEM = ord('s')
    TUPLE = ord('t')
    SETITEMS = ord('u')
    EMPTY_TUPLE = ord(')')
    EMPTY_LIST = ord(']')
    EMPTY_DICT = ord('}')
    PROTO = 0x80
    NEWOBJ = 0x81
    TUPLE1 = 0x85
    TUPLE2 = 0x86
    TUPLE3 = 0x87
    NEWTRUE = 0x88
    NEWFALSE = 0x89
    LONG1 = 0x8a
    LONG4 = 0x8b
    SHORT_BINUNICODE = 0x8c
    BINUNICODE8 = 0x8d
    BINBYTES8 = 0x8e
    STACK_GLOBAL = 0x93
    MEMOIZE = 0x94
    FRAME = 0x95
    TENSOR_START = 0xf0
    TENSOR_STOP = 0xf1


class ArgKind(IntEnum):
    """How the argument following an opcode byte is encoded."""
    NONE = 0
    UINT1 = 1
    UINT2 = 2
    INT4 = 3
    UINT4 = 4
    UINT8 = 5
    LONG1 = 6
    LONG4 = 7
    FLOAT8 = 8
    UNICODE1 = 9
    UNICODE4 = 10
    UNICODE8 = 11
    BYTES1 = 12
    BYTES4 = 13
    BYTES8 = 14
    GLOBAL_NAME = 15


OPCODE_ARGS: Dict[Opcode, ArgKind] = {
    Opcode.MARK: ArgKind.NONE,
    Opcode.STOP: ArgKind.NONE,
    Opcode.POP: ArgKind.NONE,
    Opcode.POP_MARK: ArgKind.NONE,
    Opcode.BINBYTES: ArgKind.BYTES4,
    Opcode.SHORT_BINBYTES: ArgKind.BYTES1,
    Opcode.BINFLOAT: ArgKind.FLOAT8,
    Opcode.BININT: ArgKind.INT4,
    Opcode.BININT1: ArgKind.UINT1,
    Opcode.BININT2: ArgKind.UINT2,
    Opcode.NONE: ArgKind.NONE,
    Opcode.REDUCE: ArgKind.NONE,
    Opcode.BINUNICODE: ArgKind.UNICODE4,
    Opcode.APPEND: ArgKind.NONE,
    Opcode.BUILD: ArgKind.NONE,
    Opcode.GLOBAL: ArgKind.GLOBAL_NAME,
    Opcode.APPENDS: ArgKind.NONE,
    Opcode.BINGET: ArgKind.UINT1,
    Opcode.LONG_BINGET: ArgKind.UINT4,
    Opcode.BINPUT: ArgKind.UINT1,
    Opcode.LONG_BINPUT: ArgKind.UINT4,
    Opcode.SETITEM: ArgKind.NONE,
    Opcode.TUPLE: ArgKind.NONE,
    Opcode.SETITEMS: ArgKind.NONE,
    Opcode.EMPTY_TUPLE: ArgKind.NONE,
    Opcode.EMPTY_LIST: ArgKind.NONE,
    Opcode.EMPTY_DICT: ArgKind.NONE,
    Opcode.PROTO: ArgKind.UINT1,
    Opcode.NEWOBJ: ArgKind.NONE,
    Opcode.TUPLE1: ArgKind.NONE,
    Opcode.TUPLE2: ArgKind.NONE,
    Opcode.TUPLE3: ArgKind.NONE,
    Opcode.NEWTRUE: ArgKind.NONE,
    Opcode.NEWFALSE: ArgKind.NONE,
    Opcode.LONG1: ArgKind.LONG1,
    Opcode.LONG4: ArgKind.LONG4,
    Opcode.SHORT_BINUNICODE: ArgKind.UNICODE1,
    Opcode.BINUNICODE8: ArgKind.UNICODE8,
    Opcode.BINBYTES8: ArgKind.BYTES8,
    Opcode.STACK_GLOBAL: ArgKind.NONE,
    Opcode.MEMOIZE: ArgKind.NONE,
    Opcode.FRAME: ArgKind.UINT8,
    Opcode.TENSOR_START: ArgKind.NONE,
    Opcode.TENSOR_STOP: ArgKind.NONE,
}

# Opcodes that consume everything above the topmost MARK.
MARK_CONSUMERS = frozenset({
    Opcode.TUPLE,
    Opcode.APPENDS,
    Opcode.SETITEMS,
    Opcode.POP_MARK,
    Opcode.TENSOR_STOP,
})

# Opcodes that open a new MARK frame.
MARK_PRODUCERS = frozenset({
    Opcode.MARK,
    Opcode.TENSOR_START,
})
