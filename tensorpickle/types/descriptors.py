from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple, Dict

from .aliases import ByteSize

ELEMENT_SIZES: Dict[str, int] = {
    'bool': 1,
    'uint8': 1,
    'int8': 1,
    'int16': 2,
    'int32': 4,
    'int64': 8,
    'float16': 2,
    'bfloat16': 2,
    'float32': 4,
    'float64': 8,
    'complex64': 8,
    'complex128': 16,
}


@dataclass(frozen=True)
class TensorDescriptor:
    dtype: str
    shape: Tuple[int, ...]
    nbytes: ByteSize

    def __post_init__(self):
        if any(dim < 0 for dim in self.shape):
            raise ValueError(f"Invalid tensor shape: {self.shape}")

        if self.nbytes < 0:
            raise ValueError(f"Invalid tensor byte length: {self.nbytes}")

        element_size = ELEMENT_SIZES.get(self.dtype)
        if element_size is not None and self.numel * element_size != self.nbytes:
            raise ValueError(
                f"Byte length {self.nbytes} does not match shape {self.shape} "
                f"with dtype {self.dtype}"
            )

    @property
    def numel(self) -> int:
        result = 1
        for dim in self.shape:
            result *= dim
        return result

    @property
    def element_size(self) -> int:
        return ELEMENT_SIZES.get(self.dtype, 1)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    def __str__(self) -> str:
        return (
            f"TensorDescriptor(dtype={self.dtype}, shape={self.shape}, "
            f"size={self.nbytes} bytes)"
        )


@dataclass
class StreamStats:
    """Counters collected while writing one pickle stream."""
    bytes_written: int = 0
    opcodes_written: int = 0
    memo_entries: int = 0
    memo_hits: int = 0
    tensors_inline: int = 0
    tensors_tabled: int = 0

    def to_dict(self) -> dict:
        return {
            'bytes_written': self.bytes_written,
            'opcodes_written': self.opcodes_written,
            'memo_entries': self.memo_entries,
            'memo_hits': self.memo_hits,
            'tensors_inline': self.tensors_inline,
            'tensors_tabled': self.tensors_tabled,
        }
