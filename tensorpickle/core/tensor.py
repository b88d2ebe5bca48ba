"""
Tensor handle for tensorpickle.

A ``TensorRef`` is what the pickler writes and the unpickler rebuilds
for a tensor: raw bytes plus a small descriptor. The bytes are never
interpreted here; conversion to and from ``torch.Tensor`` goes through
the codec.
"""

from __future__ import annotations
from typing import Optional, Tuple

import torch

from ..codecs.codec import TensorCodec, get_default_codec
from ..types.aliases import ByteSize
from ..types.descriptors import TensorDescriptor


class TensorRef:
    """Opaque tensor handle carrying a byte payload and its descriptor."""
    
    __slots__ = ('_descriptor', '_data', '__weakref__')
    
    def __init__(self, data: bytes, dtype: str, shape: Tuple[int, ...]):
        self._data = bytes(data)
        self._descriptor = TensorDescriptor(
            dtype=dtype,
            shape=tuple(int(dim) for dim in shape),
            nbytes=ByteSize(len(self._data))
        )
    
    @classmethod
    def from_tensor(cls, tensor: torch.Tensor, codec: Optional[TensorCodec] = None) -> TensorRef:
        codec = codec or get_default_codec()
        data, descriptor = codec.encode(tensor)
        return cls(data, descriptor.dtype, descriptor.shape)
    
    def to_tensor(self, codec: Optional[TensorCodec] = None) -> torch.Tensor:
        codec = codec or get_default_codec()
        return codec.decode(self._data, self._descriptor)
    
    @property
    def descriptor(self) -> TensorDescriptor:
        return self._descriptor
    
    @property
    def data(self) -> bytes:
        return self._data
    
    @property
    def dtype(self) -> str:
        return self._descriptor.dtype
    
    @property
    def shape(self) -> Tuple[int, ...]:
        return self._descriptor.shape
    
    @property
    def nbytes(self) -> int:
        return self._descriptor.nbytes
    
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TensorRef):
            return NotImplemented
        return self._descriptor == other._descriptor and self._data == other._data
    
    __hash__ = object.__hash__
    
    def __repr__(self) -> str:
        return f"TensorRef(dtype={self.dtype}, shape={self.shape}, nbytes={self.nbytes})"
