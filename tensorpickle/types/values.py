from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Optional


@dataclass
class CustomObject:
    """Instance of a named class, reduced to its qualified name and field values.

    Fields keep insertion order; that order is the order they are written in.
    """
    qualified_name: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def module(self) -> str:
        return self.qualified_name.rpartition('.')[0]

    @property
    def name(self) -> str:
        return self.qualified_name.rpartition('.')[2]

    def __post_init__(self):
        module, _, name = self.qualified_name.rpartition('.')
        if not module or not name:
            raise ValueError(
                f"Qualified name must be of the form 'module.Class': {self.qualified_name!r}"
            )


@dataclass(frozen=True)
class ClassDescriptor:
    """What a class resolver hands back for a qualified name."""
    qualified_name: str
    field_names: Optional[Tuple[str, ...]] = None

    def instantiate(self) -> CustomObject:
        return CustomObject(self.qualified_name)

    def accepts_field(self, name: str) -> bool:
        return self.field_names is None or name in self.field_names
