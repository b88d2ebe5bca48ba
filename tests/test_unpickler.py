import io
import pickle
import weakref
from collections import OrderedDict

import pytest

from tensorpickle import PickleConfig
from tensorpickle.core import Unpickler, ClassRegistry, TensorRef, TensorTable, BufferSource
from tensorpickle.exceptions import (
    ClassNotRegistered,
    InvalidMemoReference,
    MalformedOpcode,
    StackUnderflow,
    TensorIndexOutOfRange,
    UnexpectedEndOfStream,
    UnpicklingError,
)
from tensorpickle.serialization import pickle_to_buffer, unpickle_from_buffer, unpickle_from_callbacks
from tensorpickle.types import ClassDescriptor, CustomObject


class TestStdlibStreams:
    @pytest.mark.parametrize("protocol", [2, 3, 4, 5])
    def test_reads_stdlib_pickles(self, protocol):
        value = {"name": "layer", "sizes": [3, 4], "bias": (0.5, None), "big": -2**70, "on": False}
        assert unpickle_from_buffer(pickle.dumps(value, protocol=protocol)) == [value]
    
    def test_reads_stdlib_ordered_dict(self):
        value = OrderedDict([("b", 1), ("a", 2)])
        result = unpickle_from_buffer(pickle.dumps(value, protocol=2))[0]
        
        assert type(result) is dict
        assert list(result.items()) == [("b", 1), ("a", 2)]
    
    def test_reads_concatenated_pickles(self):
        data = pickle.dumps(1, protocol=2) + pickle.dumps("a", protocol=4)
        assert unpickle_from_buffer(data) == [1, "a"]
    
    def test_memo_resets_between_pickles(self):
        data = pickle.dumps(["x"], protocol=2) + b'\x80\x02h\x01.'
        with pytest.raises(InvalidMemoReference):
            unpickle_from_buffer(data)
    
    def test_shared_values_keep_identity(self):
        shared = [1, 2]
        result = unpickle_from_buffer(pickle.dumps([shared, shared], protocol=2))[0]
        assert result[0] is result[1]
    
    def test_reads_torch_specialized_lists(self):
        data = b'\x80\x02ctorch.jit._pickle\nbuild_intlist\n](K\x01K\x02e\x85R.'
        assert unpickle_from_buffer(data) == [[1, 2]]


class TestStreaming:
    def test_callbacks_over_file_object(self):
        data = pickle_to_buffer({"a": [1, 2, 3]})
        stream = io.BytesIO(data)
        
        values = unpickle_from_callbacks(stream.read, lambda: stream.tell() < len(data))
        assert values == [{"a": [1, 2, 3]}]
    
    def test_declared_size_bounds_the_read(self):
        data = pickle_to_buffer(1) + b'garbage'
        assert unpickle_from_buffer(data, size=len(data) - len(b'garbage')) == [1]
    
    def test_source_is_released_after_parse(self):
        source = BufferSource(pickle_to_buffer(None))
        unpickler = Unpickler(source.read, source.has_more)
        
        assert unpickler.parse_value_list() == [None]
        assert unpickler.position == 4
        with pytest.raises(TypeError):
            unpickler.parse_value_list()

    def test_class_resolver_is_released_after_parse(self):
        def resolver(name):
            return ClassDescriptor(name)

        resolver_ref = weakref.ref(resolver)
        source = BufferSource(pickle_to_buffer(CustomObject("pkg.Thing", {})))
        unpickler = Unpickler(source.read, source.has_more, class_resolver=resolver)
        del resolver

        assert unpickler.parse_value_list() == [CustomObject("pkg.Thing", {})]
        assert resolver_ref() is None

    def test_empty_pickle_yields_nothing(self):
        assert unpickle_from_buffer(b'\x80\x02.') == []
    
    def test_empty_buffer_yields_nothing(self):
        assert unpickle_from_buffer(b'') == []


class TestErrors:
    def test_truncated_stream(self):
        data = pickle_to_buffer({"alpha": [1, 2, 300000], "beta": "text"})
        for cut in (1, 3, 8, len(data) // 2, len(data) - 1):
            with pytest.raises(UnexpectedEndOfStream):
                unpickle_from_buffer(data[:cut])
    
    def test_short_source_read(self):
        data = b'\x80\x02X\x10\x00\x00\x00abc'
        stream = io.BytesIO(data)
        with pytest.raises(UnexpectedEndOfStream) as exc_info:
            unpickle_from_callbacks(stream.read, lambda: stream.tell() < len(data))
        assert exc_info.value.requested == 16
    
    def test_unknown_opcode(self):
        with pytest.raises(MalformedOpcode) as exc_info:
            unpickle_from_buffer(b'\x80\x02\xff.')
        assert exc_info.value.opcode == 0xff
        assert exc_info.value.position == 2
    
    def test_invalid_memo_reference(self):
        with pytest.raises(InvalidMemoReference) as exc_info:
            unpickle_from_buffer(b'\x80\x02N\x94h\x05.')
        assert exc_info.value.memo_id == 5
        assert exc_info.value.memo_size == 1
    
    @pytest.mark.parametrize("data", [
        b'\x80\x02\x85.',
        b'\x80\x02(K\x01\x86.',
        b'\x80\x02e.',
        b'\x80\x02q\x00.',
        b'\x80\x020.',
    ])
    def test_stack_underflow(self, data):
        with pytest.raises(StackUnderflow):
            unpickle_from_buffer(data)
    
    def test_unsupported_protocol(self):
        with pytest.raises(UnpicklingError, match="protocol"):
            unpickle_from_buffer(b'\x80\x09N.')
    
    def test_highest_protocol_is_configurable(self):
        data = pickle.dumps(1, protocol=4)
        with pytest.raises(UnpicklingError):
            unpickle_from_buffer(data, config=PickleConfig(highest_protocol=3))
    
    def test_stop_inside_mark(self):
        with pytest.raises(UnpicklingError, match="MARK"):
            unpickle_from_buffer(b'\x80\x02(K\x01.')
    
    def test_append_to_non_list(self):
        with pytest.raises(UnpicklingError, match="APPEND"):
            unpickle_from_buffer(b'\x80\x02K\x01K\x02a.')
    
    def test_unhashable_key(self):
        with pytest.raises(UnpicklingError, match="Unhashable"):
            unpickle_from_buffer(b'\x80\x02}]K\x01s.')
    
    def test_malformed_inline_tensor(self):
        with pytest.raises(UnpicklingError, match="Inline tensor"):
            unpickle_from_buffer(b'\x80\x02\xf0K\x01\xf1.')
    
    def test_inline_tensor_with_wrong_byte_count(self):
        data = b'\x80\x02\xf0X\x05\x00\x00\x00int16K\x02\x85B\x02\x00\x00\x00\x01\x02\xf1.'
        with pytest.raises(UnpicklingError, match="inconsistent"):
            unpickle_from_buffer(data)


class TestClassResolution:
    def setup_method(self):
        self.obj = CustomObject("geometry.Point", {"y": 2, "x": 1})
        self.data = pickle_to_buffer([self.obj, self.obj])
    
    def test_registered_class(self):
        registry = ClassRegistry()
        registry.register("geometry.Point")
        
        result = unpickle_from_buffer(self.data, class_resolver=registry)[0]
        assert result[0] == self.obj
        assert result[0] is result[1]
    
    def test_field_order_follows_descriptor(self):
        registry = ClassRegistry()
        registry.register("geometry.Point", field_names=("x", "y"))
        
        result = unpickle_from_buffer(self.data, class_resolver=registry)[0]
        assert list(result[0].fields) == ["x", "y"]
    
    def test_unknown_field(self):
        registry = ClassRegistry([ClassDescriptor("geometry.Point", ("x",))])
        with pytest.raises(UnpicklingError, match="no fields"):
            unpickle_from_buffer(self.data, class_resolver=registry)
    
    def test_missing_resolver(self):
        with pytest.raises(ClassNotRegistered) as exc_info:
            unpickle_from_buffer(self.data)
        assert exc_info.value.qualified_name == "geometry.Point"
    
    def test_rejected_name(self):
        with pytest.raises(ClassNotRegistered):
            unpickle_from_buffer(self.data, class_resolver=ClassRegistry())
    
    def test_resolver_raising_key_error(self):
        def resolver(name):
            raise KeyError(name)
        
        with pytest.raises(ClassNotRegistered) as exc_info:
            unpickle_from_buffer(self.data, class_resolver=resolver)
        assert isinstance(exc_info.value.__cause__, KeyError)
    
    def test_resolver_called_only_for_classes(self):
        calls = []
        
        def resolver(name):
            calls.append(name)
            return ClassDescriptor(name)
        
        table = TensorTable()
        data = pickle_to_buffer([self.obj, TensorRef(b'', 'uint8', (0,))], table)
        unpickle_from_buffer(data, tensor_table=table, class_resolver=resolver)
        
        assert calls == ["geometry.Point"]
    
    def test_stdlib_object_with_stack_global(self):
        data = pickle.dumps(CustomObjectHolder(3), protocol=4)
        registry = ClassRegistry()
        registry.register(f"{CustomObjectHolder.__module__}.CustomObjectHolder")
        
        result = unpickle_from_buffer(data, class_resolver=registry)[0]
        assert result.fields == {"value": 3}
    
    def test_reduce_on_class_is_rejected(self):
        data = b'\x80\x02cgeometry\nPoint\n)R.'
        registry = ClassRegistry()
        registry.register("geometry.Point")
        with pytest.raises(UnpicklingError, match="REDUCE"):
            unpickle_from_buffer(data, class_resolver=registry)


class TestTensorResolution:
    def setup_method(self):
        self.t0 = TensorRef(b'\x00' * 8, 'float32', (2,))
        self.t1 = TensorRef(b'\x01' * 2, 'uint8', (1, 2))
        self.table = TensorTable()
        self.data = pickle_to_buffer({"w": self.t0, "b": self.t1}, self.table)
    
    def test_lookup_through_table(self):
        result = unpickle_from_buffer(self.data, tensor_table=self.table)[0]
        assert result["w"] is self.t0
        assert result["b"] is self.t1
    
    def test_missing_table(self):
        with pytest.raises(TensorIndexOutOfRange) as exc_info:
            unpickle_from_buffer(self.data)
        assert exc_info.value.table_size == 0
    
    def test_short_table(self):
        with pytest.raises(TensorIndexOutOfRange) as exc_info:
            unpickle_from_buffer(self.data, tensor_table=TensorTable([self.t0]))
        assert exc_info.value.index == 1
    
    def test_bad_factory_arguments(self):
        data = b'\x80\x02ctorch.jit._pickle\nbuild_tensor_from_id\nX\x01\x00\x00\x00a\x85R.'
        with pytest.raises(UnpicklingError, match="integer index"):
            unpickle_from_buffer(data, tensor_table=self.table)


class CustomObjectHolder:
    def __init__(self, value):
        self.value = value
