"""
Class registry for tensorpickle.

A static table from qualified class names to class descriptors that
can be handed to the unpickler as its class resolver.
"""

from __future__ import annotations
from typing import Dict, Iterable, Iterator, Optional

from ..types.values import ClassDescriptor


class ClassRegistry:
    """Name-to-descriptor table usable directly as a class resolver."""
    
    __slots__ = ('_classes',)
    
    def __init__(self, descriptors: Optional[Iterable[ClassDescriptor]] = None):
        self._classes: Dict[str, ClassDescriptor] = {}
        for descriptor in descriptors or ():
            self._classes[descriptor.qualified_name] = descriptor
    
    def register(
        self, 
        qualified_name: str, 
        field_names: Optional[Iterable[str]] = None
    ) -> ClassDescriptor:
        """Register a class, replacing any previous entry under the same name."""
        descriptor = ClassDescriptor(
            qualified_name=qualified_name,
            field_names=tuple(field_names) if field_names is not None else None
        )
        self._classes[qualified_name] = descriptor
        return descriptor
    
    def unregister(self, qualified_name: str) -> bool:
        return self._classes.pop(qualified_name, None) is not None
    
    def resolve(self, qualified_name: str) -> Optional[ClassDescriptor]:
        return self._classes.get(qualified_name)
    
    __call__ = resolve
    
    def __contains__(self, qualified_name: str) -> bool:
        return qualified_name in self._classes
    
    def __iter__(self) -> Iterator[str]:
        return iter(self._classes)
    
    def __len__(self) -> int:
        return len(self._classes)
