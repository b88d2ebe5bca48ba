from __future__ import annotations
from functools import lru_cache
from typing import Optional

from .config import PickleConfig
from .core.pickler import Pickler
from .core.registry import ClassRegistry
from .core.tensor_table import TensorTable
from .core.unpickler import Unpickler
from .types.protocols import BoundsChecker, ByteSink, ByteSource, ClassResolver


@lru_cache(maxsize=1)
def get_default_config() -> PickleConfig:
    return PickleConfig()


def create_compact_config() -> PickleConfig:
    return PickleConfig(
        memoize_strings=True,
        batch_size=4096  # fewer MARK/APPENDS pairs on long lists
    )


def create_pickler(
    sink: ByteSink,
    tensor_table: Optional[TensorTable] = None,
    **kwargs
) -> Pickler:
    config = PickleConfig(**kwargs) if kwargs else get_default_config()
    return Pickler(sink, tensor_table=tensor_table, config=config)


def create_unpickler(
    source: ByteSource,
    has_more: BoundsChecker,
    tensor_table: Optional[TensorTable] = None,
    class_resolver: Optional[ClassResolver] = None,
    **kwargs
) -> Unpickler:
    config = PickleConfig(**kwargs) if kwargs else get_default_config()
    return Unpickler(
        source, 
        has_more, 
        tensor_table=tensor_table, 
        class_resolver=class_resolver, 
        config=config
    )


def create_registry(*qualified_names: str) -> ClassRegistry:
    registry = ClassRegistry()
    for qualified_name in qualified_names:
        registry.register(qualified_name)
    return registry
