"""
Primitive field encoders and decoders shared by the pickler, the
unpickler and the disassembler.

Fixed-width integers are little-endian, BINFLOAT is big-endian, and
LONG1/LONG4 payloads are minimal little-endian two's complement.
"""

from __future__ import annotations
import struct
from typing import Any, Callable, Tuple

from ..exceptions import UnpicklingError
from .opcodes import ArgKind

Reader = Callable[[int], bytes]

_UINT1 = struct.Struct('<B')
_UINT2 = struct.Struct('<H')
_INT4 = struct.Struct('<i')
_UINT4 = struct.Struct('<I')
_UINT8 = struct.Struct('<Q')
_FLOAT8 = struct.Struct('>d')

MAX_UINT4 = 0xffffffff


def pack_uint1(value: int) -> bytes:
    return _UINT1.pack(value)


def pack_uint2(value: int) -> bytes:
    return _UINT2.pack(value)


def pack_int4(value: int) -> bytes:
    return _INT4.pack(value)


def pack_uint4(value: int) -> bytes:
    return _UINT4.pack(value)


def pack_uint8(value: int) -> bytes:
    return _UINT8.pack(value)


def pack_float8(value: float) -> bytes:
    return _FLOAT8.pack(value)


def encode_long(value: int) -> bytes:
    """Smallest little-endian two's complement form of ``value``; zero is empty."""
    if value == 0:
        return b''
    nbytes = (value.bit_length() >> 3) + 1
    result = value.to_bytes(nbytes, byteorder='little', signed=True)
    if value < 0 and nbytes > 1:
        if result[-1] == 0xff and (result[-2] & 0x80) != 0:
            result = result[:-1]
    return result


def decode_long(data: bytes) -> int:
    return int.from_bytes(data, byteorder='little', signed=True)


def pack_unicode4(text: str) -> bytes:
    encoded = text.encode('utf-8', 'surrogatepass')
    return pack_uint4(len(encoded)) + encoded


def pack_global_name(module: str, name: str) -> bytes:
    return module.encode('utf-8') + b'\n' + name.encode('utf-8') + b'\n'


def _read_line(read: Reader) -> str:
    chunks = bytearray()
    while True:
        byte = read(1)
        if byte == b'\n':
            break
        chunks += byte
    try:
        return chunks.decode('utf-8')
    except UnicodeDecodeError as ex:
        raise UnpicklingError(f"Global name is not valid UTF-8: {bytes(chunks)!r}") from ex


def _read_text(read: Reader, size: int) -> str:
    data = read(size)
    try:
        return data.decode('utf-8', 'surrogatepass')
    except UnicodeDecodeError as ex:
        raise UnpicklingError(f"String payload is not valid UTF-8 ({size} bytes)") from ex


def read_global_name(read: Reader) -> Tuple[str, str]:
    module = _read_line(read)
    name = _read_line(read)
    return module, name


def read_argument(kind: ArgKind, read: Reader) -> Any:
    """Decode the argument of one opcode, pulling bytes through ``read``."""
    if kind == ArgKind.NONE:
        return None
    if kind == ArgKind.UINT1:
        return _UINT1.unpack(read(1))[0]
    if kind == ArgKind.UINT2:
        return _UINT2.unpack(read(2))[0]
    if kind == ArgKind.INT4:
        return _INT4.unpack(read(4))[0]
    if kind == ArgKind.UINT4:
        return _UINT4.unpack(read(4))[0]
    if kind == ArgKind.UINT8:
        return _UINT8.unpack(read(8))[0]
    if kind == ArgKind.FLOAT8:
        return _FLOAT8.unpack(read(8))[0]
    if kind == ArgKind.LONG1:
        size = _UINT1.unpack(read(1))[0]
        return decode_long(read(size))
    if kind == ArgKind.LONG4:
        size = _INT4.unpack(read(4))[0]
        if size < 0:
            raise UnpicklingError(f"LONG4 byte count is negative: {size}")
        return decode_long(read(size))
    if kind == ArgKind.UNICODE1:
        return _read_text(read, _UINT1.unpack(read(1))[0])
    if kind == ArgKind.UNICODE4:
        return _read_text(read, _UINT4.unpack(read(4))[0])
    if kind == ArgKind.UNICODE8:
        return _read_text(read, _UINT8.unpack(read(8))[0])
    if kind == ArgKind.BYTES1:
        return read(_UINT1.unpack(read(1))[0])
    if kind == ArgKind.BYTES4:
        return read(_UINT4.unpack(read(4))[0])
    if kind == ArgKind.BYTES8:
        return read(_UINT8.unpack(read(8))[0])
    if kind == ArgKind.GLOBAL_NAME:
        return read_global_name(read)
    raise ValueError(f"Unknown argument kind: {kind!r}")
