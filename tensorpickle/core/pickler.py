"""
Streaming pickler for tensorpickle.

Walks a value depth-first and writes protocol opcodes through a sink
callable. Composites are memoized by identity so a value reachable
twice is written once and referenced with BINGET afterwards. Tensors go
either to a tensor table (only their index is written) or inline,
bracketed by the TENSOR_START/TENSOR_STOP markers.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Sequence, Tuple

import torch

from ..codecs.codec import TensorCodec, get_default_codec
from ..config import PickleConfig
from ..exceptions import PicklingError, RecursiveValueError, TensorCodecError, UnsupportedValueKind
from ..protocol.opcodes import Opcode, TENSOR_FACTORY_MODULE, TENSOR_FACTORY_NAME
from ..protocol.primitives import (
    MAX_UINT4,
    encode_long,
    pack_float8,
    pack_global_name,
    pack_int4,
    pack_uint1,
    pack_uint2,
    pack_uint4,
    pack_uint8,
    pack_unicode4,
)
from ..types.aliases import MemoId
from ..types.descriptors import StreamStats
from ..types.enums import ValueKind
from ..types.protocols import ByteSink, ITensorTable
from ..types.values import CustomObject
from .tensor import TensorRef
from .values import classify


class Pickler:
    """Writes one pickle stream holding one or more top-level values."""
    
    __slots__ = (
        '_sink', '_tensor_table', '_config', '_codec', '_memo', '_memoized_strings',
        '_memoized_globals', '_next_memo_id', '_in_progress', '_started', '_stopped',
        '_stats', '_logger'
    )
    
    def __init__(
        self,
        sink: ByteSink,
        tensor_table: Optional[ITensorTable] = None,
        config: Optional[PickleConfig] = None,
        codec: Optional[TensorCodec] = None
    ):
        self._sink = sink
        self._tensor_table = tensor_table
        self._config = config or PickleConfig()
        self._codec = codec or get_default_codec()
        # id(value) -> (memo id, value); the value is held so its id stays unique
        self._memo: Dict[int, Tuple[MemoId, Any]] = {}
        self._memoized_strings: Dict[str, MemoId] = {}
        self._memoized_globals: Dict[str, MemoId] = {}
        self._next_memo_id = 0
        self._in_progress: Set[int] = set()
        self._started = False
        self._stopped = False
        self._stats = StreamStats()
        self._logger = logging.getLogger("tensorpickle.core.pickler")
    
    @property
    def stats(self) -> StreamStats:
        return self._stats
    
    @property
    def memo_size(self) -> int:
        return self._next_memo_id
    
    @property
    def is_stopped(self) -> bool:
        return self._stopped
    
    def protocol(self) -> None:
        """Write the protocol header; later calls are no-ops."""
        if self._started:
            return
        self._ensure_open()
        self._started = True
        self._write(Opcode.PROTO, pack_uint1(self._config.protocol))
    
    def push_value(self, value: Any) -> None:
        """Append one top-level value to the stream.

        A failed push stops the pickler and releases its sink.
        """
        self._ensure_open()
        if not self._started:
            self.protocol()
        try:
            self._push(value)
        except BaseException:
            self._release()
            raise
    
    def stop(self) -> None:
        """Terminate the stream and drop the sink and memo."""
        self._ensure_open()
        if not self._started:
            self.protocol()
        self._write(Opcode.STOP)
        
        self._logger.debug(
            f"Stream stopped after {self._stats.bytes_written} bytes, "
            f"{self._stats.memo_entries} memo entries, {self._stats.memo_hits} back-references"
        )
        self._release()
    
    def _release(self) -> None:
        self._stopped = True
        self._sink = None
        self._memo.clear()
        self._memoized_strings.clear()
        self._memoized_globals.clear()
        self._in_progress.clear()
    
    def _ensure_open(self) -> None:
        if self._stopped:
            raise PicklingError("Pickler has already been stopped")
    
    def _write(self, opcode: Opcode, payload: bytes = b'') -> None:
        chunk = bytes((opcode,)) + payload
        self._sink(chunk)
        self._stats.bytes_written += len(chunk)
        self._stats.opcodes_written += 1
    
    def _write_raw(self, data: bytes) -> None:
        self._sink(data)
        self._stats.bytes_written += len(data)
    
    def _push(self, value: Any) -> None:
        kind = classify(value)
        
        if kind.is_composite or (kind == ValueKind.TENSOR and self._tensor_table is None):
            entry = self._memo.get(id(value))
            if entry is not None:
                self._push_memo_get(entry[0])
                return
        
        if kind == ValueKind.NONE:
            self._write(Opcode.NONE)
        elif kind == ValueKind.BOOL:
            self._write(Opcode.NEWTRUE if value else Opcode.NEWFALSE)
        elif kind == ValueKind.INT:
            self._push_int(value)
        elif kind == ValueKind.DOUBLE:
            self._write(Opcode.BINFLOAT, pack_float8(value))
        elif kind == ValueKind.STRING:
            self._push_string(value)
        elif kind == ValueKind.TUPLE:
            self._push_tuple(value)
        elif kind == ValueKind.LIST:
            self._push_list(value)
        elif kind == ValueKind.DICT:
            self._push_dict(value)
        elif kind == ValueKind.TENSOR:
            self._push_tensor(value)
        elif kind == ValueKind.OBJECT:
            self._push_object(value)
    
    def _push_int(self, value: int) -> None:
        if 0 <= value <= 0xff:
            self._write(Opcode.BININT1, pack_uint1(value))
        elif 0 <= value <= 0xffff:
            self._write(Opcode.BININT2, pack_uint2(value))
        elif -0x80000000 <= value <= 0x7fffffff:
            self._write(Opcode.BININT, pack_int4(value))
        else:
            encoded = encode_long(value)
            if len(encoded) < 256:
                self._write(Opcode.LONG1, pack_uint1(len(encoded)) + encoded)
            else:
                self._write(Opcode.LONG4, pack_int4(len(encoded)) + encoded)
    
    def _push_string(self, value: str) -> None:
        if not self._config.memoize_strings:
            self._write(Opcode.BINUNICODE, pack_unicode4(value))
            return
        
        memo_id = self._memoized_strings.get(value)
        if memo_id is not None:
            self._push_memo_get(memo_id)
            return
        
        self._write(Opcode.BINUNICODE, pack_unicode4(value))
        self._memoized_strings[value] = self._put()
    
    def _push_tuple(self, value: tuple) -> None:
        if not value:
            self._write(Opcode.EMPTY_TUPLE)
            return
        
        key = id(value)
        if key in self._in_progress:
            raise RecursiveValueError("Tuple contains itself; reference cycles through tuples are not supported")
        
        self._in_progress.add(key)
        try:
            self._push_tuple_items(value, self._push)
        finally:
            self._in_progress.discard(key)
        
        self._memoize(value)
    
    def _push_tuple_items(self, items: Sequence[Any], push) -> None:
        if len(items) <= 3:
            for item in items:
                push(item)
            self._write((Opcode.EMPTY_TUPLE, Opcode.TUPLE1, Opcode.TUPLE2, Opcode.TUPLE3)[len(items)])
        else:
            self._write(Opcode.MARK)
            for item in items:
                push(item)
            self._write(Opcode.TUPLE)
    
    def _push_list(self, value: list) -> None:
        self._write(Opcode.EMPTY_LIST)
        self._memoize(value)
        self._batch_appends(value)
    
    def _batch_appends(self, items: List[Any]) -> None:
        batch_size = self._config.batch_size
        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            if len(batch) > 1:
                self._write(Opcode.MARK)
                for item in batch:
                    self._push(item)
                self._write(Opcode.APPENDS)
            else:
                self._push(batch[0])
                self._write(Opcode.APPEND)
    
    def _push_dict(self, value: dict) -> None:
        self._write(Opcode.EMPTY_DICT)
        self._memoize(value)
        self._batch_setitems(value.items())
    
    def _batch_setitems(self, entries: Iterable[Tuple[Any, Any]]) -> None:
        batch_size = self._config.batch_size
        entries = list(entries)
        for start in range(0, len(entries), batch_size):
            batch = entries[start:start + batch_size]
            if len(batch) > 1:
                self._write(Opcode.MARK)
                for key, item in batch:
                    self._push(key)
                    self._push(item)
                self._write(Opcode.SETITEMS)
            else:
                key, item = batch[0]
                self._push(key)
                self._push(item)
                self._write(Opcode.SETITEM)
    
    def _push_object(self, value: CustomObject) -> None:
        self._push_global(value.module, value.name)
        self._write(Opcode.EMPTY_TUPLE)
        self._write(Opcode.NEWOBJ)
        self._memoize(value)
        self._push(value.fields)
        self._write(Opcode.BUILD)
    
    def _push_global(self, module: str, name: str) -> None:
        qualified_name = f"{module}.{name}"
        memo_id = self._memoized_globals.get(qualified_name)
        if memo_id is not None:
            self._push_memo_get(memo_id)
            return
        
        self._write(Opcode.GLOBAL, pack_global_name(module, name))
        self._memoized_globals[qualified_name] = self._put()
    
    def _push_tensor(self, value: Any) -> None:
        if self._tensor_table is not None:
            self._push_tensor_reference(value)
        else:
            self._push_tensor_inline(value)
    
    def _push_tensor_reference(self, value: Any) -> None:
        index = self._tensor_table.get_or_append(value)
        self._push_global(TENSOR_FACTORY_MODULE, TENSOR_FACTORY_NAME)
        self._push_int(index)
        self._write(Opcode.TUPLE1)
        self._write(Opcode.REDUCE)
        self._stats.tensors_tabled += 1
    
    def _push_tensor_inline(self, value: Any) -> None:
        if isinstance(value, torch.Tensor):
            try:
                ref = TensorRef.from_tensor(value, self._codec)
            except TensorCodecError as ex:
                raise UnsupportedValueKind(
                    f"Tensor of dtype {value.dtype} has no inline encoding",
                    value_type=f"Tensor[{value.dtype}]"
                ) from ex
        else:
            ref = value
        
        self._write(Opcode.TENSOR_START)
        self._write(Opcode.BINUNICODE, pack_unicode4(ref.dtype))
        self._push_tuple_items(ref.shape, self._push_int)
        
        data = ref.data
        if len(data) <= MAX_UINT4:
            self._write(Opcode.BINBYTES, pack_uint4(len(data)))
        else:
            self._write(Opcode.BINBYTES8, pack_uint8(len(data)))
        self._write_raw(data)
        
        self._write(Opcode.TENSOR_STOP)
        self._memoize(value)
        self._stats.tensors_inline += 1
    
    def _memoize(self, value: Any) -> None:
        self._memo[id(value)] = (self._put(), value)
    
    def _put(self) -> MemoId:
        memo_id = MemoId(self._next_memo_id)
        self._next_memo_id += 1
        if memo_id < 256:
            self._write(Opcode.BINPUT, pack_uint1(memo_id))
        else:
            self._write(Opcode.LONG_BINPUT, pack_uint4(memo_id))
        self._stats.memo_entries += 1
        return memo_id
    
    def _push_memo_get(self, memo_id: MemoId) -> None:
        if memo_id < 256:
            self._write(Opcode.BINGET, pack_uint1(memo_id))
        else:
            self._write(Opcode.LONG_BINGET, pack_uint4(memo_id))
        self._stats.memo_hits += 1
