from __future__ import annotations
from typing import Optional


class TensorPickleError(Exception):
    def __init__(self, message: str, **kwargs):
        super().__init__(message)
        self.message = message
        self.context = kwargs


class PicklingError(TensorPickleError):
    pass


class UnsupportedValueKind(PicklingError):
    def __init__(self, message: str, value_type: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.value_type = value_type


class RecursiveValueError(PicklingError):
    pass


class UnpicklingError(TensorPickleError):
    def __init__(self, message: str, position: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.position = position


class MalformedOpcode(UnpicklingError):
    def __init__(self, message: str, opcode: Optional[int] = None, 
                 position: Optional[int] = None, **kwargs):
        super().__init__(message, position=position, **kwargs)
        self.opcode = opcode


class UnexpectedEndOfStream(UnpicklingError):
    def __init__(self, message: str, requested: Optional[int] = None, 
                 position: Optional[int] = None, **kwargs):
        super().__init__(message, position=position, **kwargs)
        self.requested = requested


class StackUnderflow(UnpicklingError):
    pass


class InvalidMemoReference(UnpicklingError):
    def __init__(self, message: str, memo_id: Optional[int] = None, 
                 memo_size: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.memo_id = memo_id
        self.memo_size = memo_size


class ClassNotRegistered(UnpicklingError):
    def __init__(self, message: str, qualified_name: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.qualified_name = qualified_name


class TensorIndexOutOfRange(UnpicklingError, IndexError):
    def __init__(self, message: str, index: Optional[int] = None, 
                 table_size: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.index = index
        self.table_size = table_size


class TensorCodecError(TensorPickleError):
    def __init__(self, message: str, dtype: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.dtype = dtype
