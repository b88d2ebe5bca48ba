"""
Buffer adapters for the callback-driven pickler and unpickler.

``BufferSource`` turns a flat byte buffer into the ``read(n)`` /
``has_more()`` pair the unpickler pulls from, tracking a read cursor.
``BufferSink`` collects everything a pickler writes.
"""

from __future__ import annotations
from typing import Optional, Union

from ..exceptions import UnexpectedEndOfStream

Buffer = Union[bytes, bytearray, memoryview]


class BufferSource:
    """Read cursor over a flat buffer, bounded by ``size``."""
    
    __slots__ = ('_data', '_size', '_position')
    
    def __init__(self, data: Buffer, size: Optional[int] = None):
        self._data = memoryview(data).cast('B')
        if size is None:
            size = len(self._data)
        if size < 0 or size > len(self._data):
            raise ValueError(f"Declared size {size} outside buffer of {len(self._data)} bytes")
        self._size = size
        self._position = 0
    
    @property
    def position(self) -> int:
        return self._position
    
    @property
    def remaining(self) -> int:
        return self._size - self._position
    
    def has_more(self) -> bool:
        return self._position < self._size
    
    def read(self, n: int) -> bytes:
        if n > self.remaining:
            raise UnexpectedEndOfStream(
                f"Requested {n} bytes with only {self.remaining} left",
                requested=n,
                position=self._position
            )
        start = self._position
        self._position += n
        return self._data[start:self._position].tobytes()


class BufferSink:
    """Accumulates pickler output in memory."""
    
    __slots__ = ('_buffer', '_writes')
    
    def __init__(self):
        self._buffer = bytearray()
        self._writes = 0
    
    def __call__(self, data: bytes) -> None:
        self._buffer += data
        self._writes += 1
    
    @property
    def write_count(self) -> int:
        return self._writes
    
    def getvalue(self) -> bytes:
        return bytes(self._buffer)
    
    def __len__(self) -> int:
        return len(self._buffer)
