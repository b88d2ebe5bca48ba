"""
Streaming unpickler for tensorpickle.

Pulls opcodes through a ``read(n)`` / ``has_more()`` callback pair and
interprets them against an evaluation stack, a mark stack and a memo
table. Every value left on the stack at a STOP is a top-level result;
reading continues across concatenated pickles until the source reports
no more data.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from ..config import PickleConfig
from ..exceptions import (
    ClassNotRegistered,
    InvalidMemoReference,
    MalformedOpcode,
    StackUnderflow,
    TensorIndexOutOfRange,
    UnexpectedEndOfStream,
    UnpicklingError,
)
from ..protocol.opcodes import Opcode, OPCODE_ARGS, TENSOR_FACTORY_MODULE, TENSOR_FACTORY_NAME
from ..protocol.primitives import read_argument
from ..types.protocols import BoundsChecker, ByteSource, ClassResolver, ITensorTable
from ..types.values import ClassDescriptor, CustomObject
from .tensor import TensorRef


class _BuiltinGlobal(NamedTuple):
    qualified_name: str
    function: Optional[Callable[..., Any]]


def _ordered_dict(*args) -> dict:
    return dict(*args)


def _passthrough(data):
    return data


TENSOR_FACTORY = _BuiltinGlobal(f"{TENSOR_FACTORY_MODULE}.{TENSOR_FACTORY_NAME}", None)

# Names resolved without consulting the class resolver.
BUILTIN_GLOBALS: Dict[str, _BuiltinGlobal] = {
    builtin.qualified_name: builtin
    for builtin in (
        TENSOR_FACTORY,
        _BuiltinGlobal("collections.OrderedDict", _ordered_dict),
        _BuiltinGlobal("torch.jit._pickle.build_intlist", _passthrough),
        _BuiltinGlobal("torch.jit._pickle.build_doublelist", _passthrough),
        _BuiltinGlobal("torch.jit._pickle.build_boollist", _passthrough),
        _BuiltinGlobal("torch.jit._pickle.build_tensorlist", _passthrough),
    )
}


class Unpickler:
    """Rebuilds the values of one or more pickles from a byte source."""
    
    __slots__ = (
        '_source', '_has_more', '_tensor_table', '_class_resolver', '_config',
        '_stack', '_marks', '_memo', '_descriptors', '_position', '_protocol',
        '_dispatch', '_logger'
    )
    
    def __init__(
        self,
        source: ByteSource,
        has_more: BoundsChecker,
        tensor_table: Optional[ITensorTable] = None,
        class_resolver: Optional[ClassResolver] = None,
        config: Optional[PickleConfig] = None
    ):
        self._source = source
        self._has_more = has_more
        self._tensor_table = tensor_table
        self._class_resolver = class_resolver
        self._config = config or PickleConfig()
        self._stack: List[Any] = []
        self._marks: List[int] = []
        self._memo: Dict[int, Any] = {}
        self._descriptors: Dict[int, ClassDescriptor] = {}
        self._position = 0
        self._protocol = 0
        self._logger = logging.getLogger("tensorpickle.core.unpickler")
        self._dispatch: Dict[Opcode, Callable[[Any], None]] = {
            Opcode.PROTO: self._load_proto,
            Opcode.FRAME: self._load_frame,
            Opcode.NONE: self._load_none,
            Opcode.NEWTRUE: self._load_true,
            Opcode.NEWFALSE: self._load_false,
            Opcode.BININT: self._push,
            Opcode.BININT1: self._push,
            Opcode.BININT2: self._push,
            Opcode.LONG1: self._push,
            Opcode.LONG4: self._push,
            Opcode.BINFLOAT: self._push,
            Opcode.BINUNICODE: self._push,
            Opcode.SHORT_BINUNICODE: self._push,
            Opcode.BINUNICODE8: self._push,
            Opcode.BINBYTES: self._push,
            Opcode.SHORT_BINBYTES: self._push,
            Opcode.BINBYTES8: self._push,
            Opcode.EMPTY_TUPLE: self._load_empty_tuple,
            Opcode.TUPLE: self._load_tuple,
            Opcode.TUPLE1: self._load_tuple1,
            Opcode.TUPLE2: self._load_tuple2,
            Opcode.TUPLE3: self._load_tuple3,
            Opcode.EMPTY_LIST: self._load_empty_list,
            Opcode.APPEND: self._load_append,
            Opcode.APPENDS: self._load_appends,
            Opcode.EMPTY_DICT: self._load_empty_dict,
            Opcode.SETITEM: self._load_setitem,
            Opcode.SETITEMS: self._load_setitems,
            Opcode.MARK: self._load_mark,
            Opcode.POP: self._load_pop,
            Opcode.POP_MARK: self._load_pop_mark,
            Opcode.BINPUT: self._load_put,
            Opcode.LONG_BINPUT: self._load_put,
            Opcode.MEMOIZE: self._load_memoize,
            Opcode.BINGET: self._load_get,
            Opcode.LONG_BINGET: self._load_get,
            Opcode.GLOBAL: self._load_global,
            Opcode.STACK_GLOBAL: self._load_stack_global,
            Opcode.REDUCE: self._load_reduce,
            Opcode.NEWOBJ: self._load_newobj,
            Opcode.BUILD: self._load_build,
            Opcode.TENSOR_START: self._load_mark,
            Opcode.TENSOR_STOP: self._load_tensor_stop,
        }
    
    @property
    def position(self) -> int:
        return self._position
    
    def parse_value_list(self) -> List[Any]:
        """Interpret opcodes until the source is exhausted."""
        values: List[Any] = []
        pickles = 0
        try:
            while self._has_more():
                values.extend(self._parse_pickle())
                pickles += 1
        finally:
            self._source = None
            self._has_more = None
            self._class_resolver = None
        
        self._logger.debug(
            f"Unpickled {len(values)} values from {pickles} pickles ({self._position} bytes)"
        )
        return values
    
    def _parse_pickle(self) -> List[Any]:
        while True:
            position = self._position
            code = self._read(1)[0]
            try:
                opcode = Opcode(code)
            except ValueError:
                raise MalformedOpcode(
                    f"Unknown opcode 0x{code:02x} at position {position}",
                    opcode=code,
                    position=position
                ) from None
            
            arg = read_argument(OPCODE_ARGS[opcode], self._read)
            if opcode == Opcode.STOP:
                return self._finish_pickle(position)
            self._dispatch[opcode](arg)
    
    def _finish_pickle(self, position: int) -> List[Any]:
        if self._marks:
            raise UnpicklingError(f"STOP at position {position} inside an open MARK", position=position)
        values = self._stack
        self._stack = []
        self._memo.clear()
        self._descriptors.clear()
        return values
    
    def _read(self, n: int) -> bytes:
        if n == 0:
            return b''
        if not self._has_more():
            raise UnexpectedEndOfStream(
                f"Stream ended at position {self._position} while reading {n} bytes",
                requested=n,
                position=self._position
            )
        data = self._source(n)
        if len(data) < n:
            raise UnexpectedEndOfStream(
                f"Stream ended at position {self._position}: wanted {n} bytes, got {len(data)}",
                requested=n,
                position=self._position
            )
        self._position += n
        return bytes(data[:n])
    
    # Stack primitives. The stack is split into frames by MARK positions;
    # nothing may be popped from below the innermost mark.
    
    def _frame_base(self) -> int:
        return self._marks[-1] if self._marks else 0
    
    def _push(self, value: Any) -> None:
        self._stack.append(value)
    
    def _pop(self) -> Any:
        if len(self._stack) <= self._frame_base():
            raise StackUnderflow("Unpickling stack underflow", position=self._position)
        return self._stack.pop()
    
    def _pop_many(self, count: int) -> List[Any]:
        if len(self._stack) - self._frame_base() < count:
            raise StackUnderflow(
                f"Expected {count} values on the stack, found {len(self._stack) - self._frame_base()}",
                position=self._position
            )
        items = self._stack[-count:]
        del self._stack[-count:]
        return items
    
    def _top(self) -> Any:
        if len(self._stack) <= self._frame_base():
            raise StackUnderflow("Unpickling stack is empty", position=self._position)
        return self._stack[-1]
    
    def _pop_mark(self) -> List[Any]:
        if not self._marks:
            raise StackUnderflow("Could not find MARK", position=self._position)
        mark = self._marks.pop()
        items = self._stack[mark:]
        del self._stack[mark:]
        return items
    
    # Opcode handlers
    
    def _load_proto(self, version: int) -> None:
        if version > self._config.highest_protocol:
            raise UnpicklingError(f"Unsupported pickle protocol: {version}", position=self._position)
        self._protocol = version
    
    def _load_frame(self, size: int) -> None:
        pass
    
    def _load_none(self, _) -> None:
        self._push(None)
    
    def _load_true(self, _) -> None:
        self._push(True)
    
    def _load_false(self, _) -> None:
        self._push(False)
    
    def _load_empty_tuple(self, _) -> None:
        self._push(())
    
    def _load_tuple(self, _) -> None:
        self._push(tuple(self._pop_mark()))
    
    def _load_tuple1(self, _) -> None:
        self._push(tuple(self._pop_many(1)))
    
    def _load_tuple2(self, _) -> None:
        self._push(tuple(self._pop_many(2)))
    
    def _load_tuple3(self, _) -> None:
        self._push(tuple(self._pop_many(3)))
    
    def _load_empty_list(self, _) -> None:
        self._push([])
    
    def _load_append(self, _) -> None:
        value = self._pop()
        self._expect(self._top(), list, "APPEND").append(value)
    
    def _load_appends(self, _) -> None:
        items = self._pop_mark()
        self._expect(self._top(), list, "APPENDS").extend(items)
    
    def _load_empty_dict(self, _) -> None:
        self._push({})
    
    def _load_setitem(self, _) -> None:
        value = self._pop()
        key = self._pop()
        self._set_items(self._expect(self._top(), dict, "SETITEM"), [key, value])
    
    def _load_setitems(self, _) -> None:
        items = self._pop_mark()
        if len(items) % 2:
            raise UnpicklingError("SETITEMS needs an even number of stack items", position=self._position)
        self._set_items(self._expect(self._top(), dict, "SETITEMS"), items)
    
    def _set_items(self, target: dict, items: List[Any]) -> None:
        for i in range(0, len(items), 2):
            try:
                target[items[i]] = items[i + 1]
            except TypeError as ex:
                raise UnpicklingError(
                    f"Unhashable dict key of type {type(items[i]).__name__}",
                    position=self._position
                ) from ex
    
    def _load_mark(self, _) -> None:
        self._marks.append(len(self._stack))
    
    def _load_pop(self, _) -> None:
        self._pop()
    
    def _load_pop_mark(self, _) -> None:
        self._pop_mark()
    
    def _load_put(self, memo_id: int) -> None:
        self._memo[memo_id] = self._top()
    
    def _load_memoize(self, _) -> None:
        self._memo[len(self._memo)] = self._top()
    
    def _load_get(self, memo_id: int) -> None:
        try:
            value = self._memo[memo_id]
        except KeyError:
            raise InvalidMemoReference(
                f"Memo id {memo_id} not found (memo holds {len(self._memo)} entries)",
                memo_id=memo_id,
                memo_size=len(self._memo),
                position=self._position
            ) from None
        self._push(value)
    
    def _load_global(self, name: tuple) -> None:
        module, qualname = name
        self._push(self._find_class(module, qualname))
    
    def _load_stack_global(self, _) -> None:
        name = self._pop()
        module = self._pop()
        if not isinstance(module, str) or not isinstance(name, str):
            raise UnpicklingError("STACK_GLOBAL requires str module and name", position=self._position)
        self._push(self._find_class(module, name))
    
    def _find_class(self, module: str, name: str) -> Any:
        qualified_name = f"{module}.{name}"
        builtin = BUILTIN_GLOBALS.get(qualified_name)
        if builtin is not None:
            return builtin
        
        if self._class_resolver is None:
            raise ClassNotRegistered(
                f"No class resolver available for {qualified_name}",
                qualified_name=qualified_name,
                position=self._position
            )
        
        try:
            descriptor = self._class_resolver(qualified_name)
        except LookupError as ex:
            raise ClassNotRegistered(
                f"Class {qualified_name} is not registered",
                qualified_name=qualified_name,
                position=self._position
            ) from ex
        
        if descriptor is None:
            raise ClassNotRegistered(
                f"Class {qualified_name} is not registered",
                qualified_name=qualified_name,
                position=self._position
            )
        return descriptor
    
    def _load_reduce(self, _) -> None:
        args = self._pop()
        func = self._pop()
        if not isinstance(args, tuple):
            raise UnpicklingError("REDUCE arguments must be a tuple", position=self._position)
        
        if func is TENSOR_FACTORY:
            self._push(self._tensor_from_id(args))
        elif isinstance(func, _BuiltinGlobal):
            self._push(func.function(*args))
        elif isinstance(func, ClassDescriptor):
            raise UnpicklingError(
                f"Class {func.qualified_name} cannot be constructed with REDUCE",
                position=self._position
            )
        else:
            raise UnpicklingError(
                f"REDUCE target of type {type(func).__name__} is not callable",
                position=self._position
            )
    
    def _tensor_from_id(self, args: tuple) -> Any:
        if len(args) != 1 or not isinstance(args[0], int) or isinstance(args[0], bool):
            raise UnpicklingError(
                f"{TENSOR_FACTORY.qualified_name} takes a single integer index, got {args!r}",
                position=self._position
            )
        index = args[0]
        if self._tensor_table is None:
            raise TensorIndexOutOfRange(
                f"Stream references tensor {index} but no tensor table was supplied",
                index=index,
                table_size=0,
                position=self._position
            )
        return self._tensor_table.lookup(index)
    
    def _load_newobj(self, _) -> None:
        args = self._pop()
        cls = self._pop()
        if not isinstance(cls, ClassDescriptor):
            raise UnpicklingError(
                f"NEWOBJ target of type {type(cls).__name__} is not a class",
                position=self._position
            )
        if args != ():
            raise UnpicklingError(
                f"NEWOBJ for {cls.qualified_name} expects no constructor arguments",
                position=self._position
            )
        obj = cls.instantiate()
        self._descriptors[id(obj)] = cls
        self._push(obj)
    
    def _load_build(self, _) -> None:
        state = self._pop()
        obj = self._expect(self._top(), CustomObject, "BUILD")
        
        if isinstance(state, tuple) and len(state) == 2:
            state, slot_state = state
            merged = dict(state or {})
            merged.update(slot_state or {})
            state = merged
        if not isinstance(state, dict):
            raise UnpicklingError(
                f"BUILD state for {obj.qualified_name} must be a dict, got {type(state).__name__}",
                position=self._position
            )
        
        descriptor = self._descriptors.get(id(obj))
        if descriptor is not None and descriptor.field_names is not None:
            unknown = [name for name in state if not descriptor.accepts_field(name)]
            if unknown:
                raise UnpicklingError(
                    f"Class {obj.qualified_name} has no fields {unknown}",
                    position=self._position
                )
            state = {name: state[name] for name in descriptor.field_names if name in state}
        obj.fields.update(state)
    
    def _load_tensor_stop(self, _) -> None:
        items = self._pop_mark()
        if len(items) != 3:
            raise UnpicklingError(
                f"Inline tensor block holds {len(items)} items, expected 3",
                position=self._position
            )
        dtype, shape, data = items
        if (not isinstance(dtype, str) or not isinstance(shape, tuple) 
                or not all(isinstance(dim, int) for dim in shape) or not isinstance(data, bytes)):
            raise UnpicklingError("Inline tensor block is malformed", position=self._position)
        try:
            self._push(TensorRef(data, dtype, shape))
        except ValueError as ex:
            raise UnpicklingError(f"Inline tensor block is inconsistent: {ex}", position=self._position) from ex
    
    def _expect(self, value: Any, expected: type, opcode_name: str) -> Any:
        if not isinstance(value, expected):
            raise UnpicklingError(
                f"{opcode_name} target must be {expected.__name__}, got {type(value).__name__}",
                position=self._position
            )
        return value
