from __future__ import annotations
from typing import Any

import torch

from ..types.enums import ValueKind
from ..types.values import CustomObject
from ..exceptions import UnsupportedValueKind
from .tensor import TensorRef


def classify(value: Any) -> ValueKind:
    """Map a value onto the closed set of variants the pickler encodes."""
    if value is None:
        return ValueKind.NONE
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.DOUBLE
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, tuple):
        return ValueKind.TUPLE
    if isinstance(value, list):
        return ValueKind.LIST
    if isinstance(value, dict):
        return ValueKind.DICT
    if isinstance(value, (TensorRef, torch.Tensor)):
        return ValueKind.TENSOR
    if isinstance(value, CustomObject):
        return ValueKind.OBJECT
    raise UnsupportedValueKind(
        f"Cannot pickle value of type {type(value).__name__}",
        value_type=type(value).__qualname__
    )
