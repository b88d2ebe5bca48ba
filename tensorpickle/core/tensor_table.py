"""
Tensor table for tensorpickle.

Side channel of tensor handles referenced by index from a pickle
stream. The writer appends, deduplicating by identity; the reader
looks handles up by the index found in the stream.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..types.aliases import TensorIndex
from ..exceptions import TensorIndexOutOfRange


class TensorTable:
    """Ordered, append-only table of tensor handles."""
    
    __slots__ = ('_tensors', '_indices')
    
    def __init__(self, tensors: Optional[Iterable[Any]] = None):
        self._tensors: List[Any] = []
        self._indices: Dict[int, TensorIndex] = {}
        for tensor in tensors or ():
            self.get_or_append(tensor)
    
    def get_or_append(self, tensor: Any) -> TensorIndex:
        """Index of ``tensor`` in the table, appending it on first sight."""
        index = self._indices.get(id(tensor))
        if index is not None:
            return index
        
        index = TensorIndex(len(self._tensors))
        self._tensors.append(tensor)
        self._indices[id(tensor)] = index
        return index
    
    def lookup(self, index: int) -> Any:
        if not 0 <= index < len(self._tensors):
            raise TensorIndexOutOfRange(
                f"Tensor index {index} out of range for table of {len(self._tensors)}",
                index=index,
                table_size=len(self._tensors)
            )
        return self._tensors[index]
    
    def __contains__(self, tensor: Any) -> bool:
        return id(tensor) in self._indices
    
    def __getitem__(self, index: int) -> Any:
        return self.lookup(index)
    
    def __len__(self) -> int:
        return len(self._tensors)
    
    def __iter__(self) -> Iterator[Any]:
        return iter(self._tensors)
    
    def __repr__(self) -> str:
        return f"TensorTable(size={len(self._tensors)})"
