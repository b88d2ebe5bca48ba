"""
Entry points for pickling to and unpickling from streams and buffers.

Passing a ``TensorTable`` routes tensors through the table so that only
their indices are written; leaving it out embeds each tensor's bytes
inline. The choice is made per call.
"""

from __future__ import annotations
import logging
from typing import Any, List, Optional

from .config import PickleConfig
from .core.pickler import Pickler
from .core.stream import Buffer, BufferSink, BufferSource
from .core.tensor_table import TensorTable
from .core.unpickler import Unpickler
from .types.protocols import BoundsChecker, ByteSink, ByteSource, ClassResolver

logger = logging.getLogger("tensorpickle.serialization")


def pickle_stream(
    sink: ByteSink,
    value: Any,
    tensor_table: Optional[TensorTable] = None,
    config: Optional[PickleConfig] = None
) -> None:
    """Write ``value`` as one complete pickle through ``sink``."""
    pickler = Pickler(sink, tensor_table, config)
    pickler.protocol()
    pickler.push_value(value)
    pickler.stop()


def pickle_to_buffer(
    value: Any,
    tensor_table: Optional[TensorTable] = None,
    config: Optional[PickleConfig] = None
) -> bytes:
    """Pickle ``value`` into an in-memory byte string."""
    sink = BufferSink()
    pickle_stream(sink, value, tensor_table, config)
    
    logger.debug(
        f"Pickled {len(sink)} bytes in {sink.write_count} writes"
        + (f", tensor table holds {len(tensor_table)}" if tensor_table is not None else "")
    )
    return sink.getvalue()


def unpickle_from_callbacks(
    source: ByteSource,
    has_more: BoundsChecker,
    tensor_table: Optional[TensorTable] = None,
    class_resolver: Optional[ClassResolver] = None,
    config: Optional[PickleConfig] = None
) -> List[Any]:
    """Read every value from a callback-driven byte source."""
    unpickler = Unpickler(source, has_more, tensor_table, class_resolver, config)
    return unpickler.parse_value_list()


def unpickle_from_buffer(
    data: Buffer,
    size: Optional[int] = None,
    tensor_table: Optional[TensorTable] = None,
    class_resolver: Optional[ClassResolver] = None,
    config: Optional[PickleConfig] = None
) -> List[Any]:
    """Read every value from the first ``size`` bytes of ``data``."""
    source = BufferSource(data, size)
    return unpickle_from_callbacks(source.read, source.has_more, tensor_table, class_resolver, config)
