import pickle
import struct
import weakref

import pytest
import torch

from tensorpickle import PickleConfig
from tensorpickle.core import Pickler, BufferSink, TensorRef, TensorTable
from tensorpickle.exceptions import PicklingError, UnsupportedValueKind, RecursiveValueError, TensorCodecError
from tensorpickle.protocol import Opcode
from tensorpickle.protocol.disassembler import count_opcodes
from tensorpickle.serialization import pickle_to_buffer, unpickle_from_buffer
from tensorpickle.types import CustomObject, ValueKind


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y


class TestScalarEncoding:
    def test_none_and_bools(self):
        assert pickle_to_buffer(None) == b'\x80\x02N.'
        assert pickle_to_buffer(True) == b'\x80\x02\x88.'
        assert pickle_to_buffer(False) == b'\x80\x02\x89.'
    
    @pytest.mark.parametrize("value", [
        0, 1, 255, 256, 65535, 65536, -1, -2**31, 2**31 - 1, 2**31, -2**31 - 1, 2**64, -2**100, 2**2100
    ])
    def test_ints_match_stdlib(self, value):
        assert pickle_to_buffer(value) == pickle.dumps(value, protocol=2)
    
    def test_smallest_int_encoding(self):
        assert pickle_to_buffer(255)[2] == Opcode.BININT1
        assert pickle_to_buffer(256)[2] == Opcode.BININT2
        assert pickle_to_buffer(-1)[2] == Opcode.BININT
        assert pickle_to_buffer(2**40)[2] == Opcode.LONG1
        assert pickle_to_buffer(2**2100)[2] == Opcode.LONG4
    
    def test_float_is_eight_bytes_big_endian(self):
        assert pickle_to_buffer(1.5) == b'\x80\x02G' + struct.pack('>d', 1.5) + b'.'
    
    def test_string_is_length_prefixed_and_memoized(self):
        assert pickle_to_buffer("hé") == b'\x80\x02X\x03\x00\x00\x00h\xc3\xa9q\x00.'
    
    def test_equal_strings_share_one_encoding(self):
        data = pickle_to_buffer(["key", "".join(["k", "e", "y"])])
        counts = count_opcodes(data)
        assert counts[Opcode.BINUNICODE] == 1
        assert counts[Opcode.BINGET] == 1
    
    def test_strings_without_memoization(self):
        data = pickle_to_buffer(["key", "key"], config=PickleConfig(memoize_strings=False))
        counts = count_opcodes(data)
        assert counts[Opcode.BINUNICODE] == 2
        assert counts[Opcode.BINGET] == 0


class TestCompositeEncoding:
    @pytest.mark.parametrize("value", [
        (),
        (1,),
        (1, 2),
        (1, 2, 3),
        (1, 2, 3, 4),
        [],
        [7],
        list(range(10)),
        {},
        {"a": 1},
        {"a": [1, 2], "b": (3, "x"), "c": 1.5, "d": None, "e": True, "f": -7, "g": 2**40},
    ])
    def test_matches_stdlib_protocol_2(self, value):
        assert pickle_to_buffer(value) == pickle.dumps(value, protocol=2)
    
    def test_shared_list_matches_stdlib(self):
        shared = [1, 2]
        value = {"p": shared, "q": shared}
        assert pickle_to_buffer(value) == pickle.dumps(value, protocol=2)
    
    def test_custom_object_matches_stdlib(self):
        obj = CustomObject(f"{Point.__module__}.Point", {"x": 1, "y": 2})
        assert pickle_to_buffer(obj) == pickle.dumps(Point(1, 2), protocol=2)
    
    def test_list_batches(self):
        config = PickleConfig(batch_size=3)
        counts = count_opcodes(pickle_to_buffer(list(range(7)), config=config))
        assert counts[Opcode.APPENDS] == 2
        assert counts[Opcode.APPEND] == 1
    
    def test_dict_batches(self):
        config = PickleConfig(batch_size=2)
        counts = count_opcodes(pickle_to_buffer({i: i for i in range(5)}, config=config))
        assert counts[Opcode.SETITEMS] == 2
        assert counts[Opcode.SETITEM] == 1
    
    def test_repeated_composite_is_back_referenced(self):
        shared = [1]
        data = pickle_to_buffer([shared, shared])
        assert data == b'\x80\x02]q\x00(]q\x01K\x01ah\x01e.'
        
        counts = count_opcodes(data)
        assert counts[Opcode.EMPTY_LIST] == 2
        assert counts[Opcode.BINGET] == 1
    
    def test_equal_but_distinct_composites_are_not_shared(self):
        counts = count_opcodes(pickle_to_buffer([[1], [1]]))
        assert counts[Opcode.EMPTY_LIST] == 3
        assert counts[Opcode.BINGET] == 0
    
    def test_long_memo_ids(self):
        items = [[i] for i in range(300)]
        value = items + [items[-1]]
        counts = count_opcodes(pickle_to_buffer(value))
        assert counts[Opcode.LONG_BINPUT] > 0
        assert counts[Opcode.LONG_BINGET] == 1
    
    def test_global_is_memoized_by_name(self):
        value = [CustomObject("geo.Point", {}), CustomObject("geo.Point", {})]
        counts = count_opcodes(pickle_to_buffer(value))
        assert counts[Opcode.GLOBAL] == 1
        assert counts[Opcode.NEWOBJ] == 2
        assert counts[Opcode.BUILD] == 2
    
    def test_self_containing_list(self):
        value = []
        value.append(value)
        assert pickle_to_buffer(value) == b'\x80\x02]q\x00h\x00a.'
    
    def test_tuple_cycle_is_rejected(self):
        inner = []
        value = (inner,)
        inner.append(value)
        with pytest.raises(RecursiveValueError):
            pickle_to_buffer(value)


class TestTensorEncoding:
    def setup_method(self):
        self.tensor = TensorRef(b'\x01\x02', 'int16', (1,))
    
    def test_table_mode_writes_factory_call(self):
        table = TensorTable()
        data = pickle_to_buffer((self.tensor,), table)
        
        assert data == (
            b'\x80\x02ctorch.jit._pickle\nbuild_tensor_from_id\nq\x00'
            b'K\x00\x85R\x85q\x01.'
        )
        assert list(table) == [self.tensor]
    
    def test_table_mode_reuses_index_for_same_tensor(self):
        other = TensorRef(b'\x00\x00', 'int16', (1,))
        table = TensorTable()
        data = pickle_to_buffer([self.tensor, other, self.tensor], table)
        
        assert len(table) == 2
        assert table.lookup(0) is self.tensor
        assert table.lookup(1) is other
        assert count_opcodes(data)[Opcode.REDUCE] == 3
    
    def test_inline_mode_brackets_blob(self):
        data = pickle_to_buffer(self.tensor)
        assert data == (
            b'\x80\x02\xf0X\x05\x00\x00\x00int16K\x01\x85'
            b'B\x02\x00\x00\x00\x01\x02\xf1q\x00.'
        )
    
    def test_inline_markers_once_per_tensor(self):
        other = TensorRef(b'\xf0\xf1\xf0\xf1', 'uint8', (2, 2))
        data = pickle_to_buffer({"a": self.tensor, "b": other, "c": [self.tensor]})
        counts = count_opcodes(data)
        
        assert counts[Opcode.TENSOR_START] == 2
        assert counts[Opcode.TENSOR_STOP] == 2
    
    def test_torch_tensor_is_encoded_inline(self):
        tensor = torch.arange(4, dtype=torch.int32)
        data = pickle_to_buffer(tensor)
        
        assert count_opcodes(data)[Opcode.TENSOR_START] == 1
        assert tensor.numpy().tobytes() in data
    
    def test_scalar_tensor_shape(self):
        data = pickle_to_buffer(TensorRef(b'\x00' * 4, 'float32', ()))
        assert count_opcodes(data)[Opcode.EMPTY_TUPLE] == 1
    
    def test_unmapped_torch_dtype_is_unsupported_inline(self):
        tensor = torch.zeros(2, dtype=torch.uint16)
        
        with pytest.raises(UnsupportedValueKind) as exc_info:
            pickle_to_buffer([tensor])
        assert exc_info.value.value_type == "Tensor[torch.uint16]"
        assert isinstance(exc_info.value.__cause__, TensorCodecError)
        
        table = TensorTable()
        pickle_to_buffer([tensor], table)
        assert table.lookup(0) is tensor
    
    def test_conjugated_tensor_round_trips_inline(self):
        tensor = torch.tensor([1 + 2j, 3 - 1j], dtype=torch.complex64).conj()
        
        result, = unpickle_from_buffer(pickle_to_buffer(tensor))
        assert torch.equal(result.to_tensor(), tensor.resolve_conj())


class TestPicklerLifecycle:
    def setup_method(self):
        self.sink = BufferSink()
        self.pickler = Pickler(self.sink)
    
    def test_multiple_values_share_one_header(self):
        self.pickler.push_value(1)
        self.pickler.push_value("two")
        self.pickler.stop()
        
        data = self.sink.getvalue()
        counts = count_opcodes(data)
        assert counts[Opcode.PROTO] == 1
        assert counts[Opcode.STOP] == 1
        assert data.startswith(b'\x80\x02')
        assert data.endswith(b'.')
    
    def test_protocol_is_written_once(self):
        self.pickler.protocol()
        self.pickler.protocol()
        self.pickler.push_value(None)
        self.pickler.stop()
        assert self.sink.getvalue() == b'\x80\x02N.'
    
    def test_empty_stream(self):
        self.pickler.stop()
        assert self.sink.getvalue() == b'\x80\x02.'
    
    def test_push_after_stop(self):
        self.pickler.stop()
        assert self.pickler.is_stopped
        with pytest.raises(PicklingError, match="stopped"):
            self.pickler.push_value(1)
        with pytest.raises(PicklingError):
            self.pickler.stop()
    
    def test_stats(self):
        shared = [1, 2]
        self.pickler.push_value([shared, shared, TensorRef(b'', 'uint8', (0,))])
        self.pickler.stop()
        
        stats = self.pickler.stats
        assert stats.bytes_written == len(self.sink)
        assert stats.memo_hits == 1
        assert stats.tensors_inline == 1
        assert stats.tensors_tabled == 0
        assert stats.to_dict()['memo_entries'] == stats.memo_entries
    
    def test_unsupported_value(self):
        with pytest.raises(UnsupportedValueKind) as exc_info:
            self.pickler.push_value({1, 2})
        assert exc_info.value.value_type == "set"
    
    def test_unsupported_nested_value(self):
        with pytest.raises(UnsupportedValueKind):
            self.pickler.push_value([1, b'raw'])
    
    def test_failed_push_releases_sink(self):
        chunks = []
        
        def sink(chunk):
            chunks.append(chunk)
        
        sink_ref = weakref.ref(sink)
        pickler = Pickler(sink)
        del sink
        
        with pytest.raises(UnsupportedValueKind):
            pickler.push_value([1, {2}])
        assert pickler.is_stopped
        assert sink_ref() is None
        with pytest.raises(PicklingError, match="stopped"):
            pickler.push_value(1)
    
    def test_sink_receives_whole_opcodes(self):
        chunks = []
        pickler = Pickler(chunks.append)
        pickler.push_value("abc")
        pickler.stop()
        
        assert chunks == [b'\x80\x02', b'X\x03\x00\x00\x00abc', b'q\x00', b'.']


class TestValueKinds:
    def test_composite_kinds(self):
        assert ValueKind.LIST.is_composite
        assert ValueKind.OBJECT.is_composite
        assert not ValueKind.STRING.is_composite
        assert not ValueKind.TENSOR.is_composite
