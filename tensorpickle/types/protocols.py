from __future__ import annotations
from typing import Protocol, Callable, Optional, Any, Iterator, runtime_checkable

from .aliases import QualifiedName, TensorIndex
from .values import ClassDescriptor

ByteSink = Callable[[bytes], None]
ByteSource = Callable[[int], bytes]
BoundsChecker = Callable[[], bool]
ClassResolver = Callable[[QualifiedName], Optional[ClassDescriptor]]


@runtime_checkable
class ITensorTable(Protocol):
    def get_or_append(self, tensor: Any) -> TensorIndex:
        ...
    
    def lookup(self, index: int) -> Any:
        ...
    
    def __len__(self) -> int:
        ...
    
    def __iter__(self) -> Iterator[Any]:
        ...
