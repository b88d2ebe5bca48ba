"""
Tensor codec for tensorpickle.

This module converts between ``torch.Tensor`` objects and the raw
bytes plus descriptor that the pickler writes for a tensor.
"""

from __future__ import annotations
from functools import lru_cache
from typing import Dict, Tuple

import numpy as np
import torch

from ..types.aliases import ByteSize
from ..types.descriptors import TensorDescriptor
from ..exceptions import TensorCodecError

_TORCH_DTYPES: Dict[str, torch.dtype] = {
    'bool': torch.bool,
    'uint8': torch.uint8,
    'int8': torch.int8,
    'int16': torch.int16,
    'int32': torch.int32,
    'int64': torch.int64,
    'float16': torch.float16,
    'bfloat16': torch.bfloat16,
    'float32': torch.float32,
    'float64': torch.float64,
    'complex64': torch.complex64,
    'complex128': torch.complex128,
}

_DTYPE_NAMES: Dict[torch.dtype, str] = {dtype: name for name, dtype in _TORCH_DTYPES.items()}

# numpy has no bfloat16; its bytes travel through an int16 view.
_VIEW_DTYPES: Dict[torch.dtype, torch.dtype] = {
    torch.bfloat16: torch.int16,
}


class TensorCodec:
    """Codec between torch tensors and their serialized byte payload."""
    
    __slots__ = ()
    
    def encode(self, tensor: torch.Tensor) -> Tuple[bytes, TensorDescriptor]:
        """Encode a tensor to its contiguous CPU bytes and descriptor."""
        dtype_name = self.dtype_name(tensor.dtype)
        
        if tensor.is_cuda:
            tensor = tensor.cpu()
        
        if not tensor.is_contiguous():
            tensor = tensor.contiguous()
        
        tensor = tensor.detach().resolve_conj().resolve_neg()
        view_dtype = _VIEW_DTYPES.get(tensor.dtype)
        if view_dtype is not None:
            tensor = tensor.view(view_dtype)
        
        data = tensor.numpy().tobytes()
        descriptor = TensorDescriptor(
            dtype=dtype_name,
            shape=tuple(tensor.shape),
            nbytes=ByteSize(len(data))
        )
        return data, descriptor
    
    def decode(self, data: bytes | memoryview, descriptor: TensorDescriptor) -> torch.Tensor:
        """Decode bytes to a CPU tensor shaped by ``descriptor``."""
        raw_data = bytes(data) if isinstance(data, memoryview) else data
        
        if len(raw_data) != descriptor.nbytes:
            raise TensorCodecError(
                f"Data size mismatch: {len(raw_data)} != {descriptor.nbytes}",
                dtype=descriptor.dtype
            )
        
        torch_dtype = self.torch_dtype(descriptor.dtype)
        view_dtype = _VIEW_DTYPES.get(torch_dtype, torch_dtype)
        np_dtype = self._torch_to_numpy_dtype(view_dtype)
        
        np_array = np.frombuffer(raw_data, dtype=np_dtype).copy()
        tensor = torch.from_numpy(np_array).reshape(descriptor.shape)
        
        if view_dtype != torch_dtype:
            tensor = tensor.view(torch_dtype)
        
        return tensor
    
    @staticmethod
    def dtype_name(dtype: torch.dtype) -> str:
        try:
            return _DTYPE_NAMES[dtype]
        except KeyError:
            raise TensorCodecError(f"Unsupported tensor dtype: {dtype}", dtype=str(dtype)) from None
    
    @staticmethod
    def torch_dtype(name: str) -> torch.dtype:
        try:
            return _TORCH_DTYPES[name]
        except KeyError:
            raise TensorCodecError(f"Unknown dtype tag: {name!r}", dtype=name) from None
    
    @staticmethod
    @lru_cache(maxsize=64)
    def _torch_to_numpy_dtype(torch_dtype: torch.dtype) -> np.dtype:
        mapping = {
            torch.float32: np.float32, 
            torch.float64: np.float64,
            torch.int32: np.int32, 
            torch.int64: np.int64,
            torch.uint8: np.uint8, 
            torch.int8: np.int8,
            torch.int16: np.int16, 
            torch.bool: np.bool_,
            torch.float16: np.float16, 
            torch.complex64: np.complex64, 
            torch.complex128: np.complex128
        }
        return np.dtype(mapping[torch_dtype])


@lru_cache(maxsize=1)
def get_default_codec() -> TensorCodec:
    return TensorCodec()
