"""
Declared parameter shapes for JSON-RPC operations and the coercion of loosely
typed wire values into them.

JSON numbers arrive as int or float; integer shapes accept either as long as the
value is integral and fits the declared width. Strings, sequences and mappings
are checked but passed through untouched.
"""

from enum import Enum
from typing import Any, Callable, Dict, Tuple

from src.core.exceptions.base import InternalError, InvalidParams


class ParamShape(str, Enum):
    """Argument shape an operation declares for each positional parameter"""
    INT = "int"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT = "uint"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    ANY = "any"
    LIST = "list"
    MAP = "map"


def _invalid(index: int, shape: Any) -> InvalidParams:
    name = shape.value if isinstance(shape, ParamShape) else str(shape)
    return InvalidParams(data=f"Param [{index}] can't be converted to {name}")


def _integer_bounds(bits: int, signed: bool) -> Tuple[int, int]:
    if signed:
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    return 0, (1 << bits) - 1


def _integer(bits: int, signed: bool) -> Callable[[int, Any, ParamShape], int]:
    low, high = _integer_bounds(bits, signed)

    def coerce(index: int, value: Any, shape: ParamShape) -> int:
        # bool is an int subclass but never a valid wire number
        if isinstance(value, bool):
            raise _invalid(index, shape)
        if isinstance(value, int):
            number = value
        elif isinstance(value, float):
            if not value.is_integer():
                raise _invalid(index, shape)
            number = int(value)
        else:
            raise _invalid(index, shape)
        if number < low or number > high:
            raise _invalid(index, shape)
        return number

    return coerce


def _floating(index: int, value: Any, shape: ParamShape) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _invalid(index, shape)
    return float(value)


def _typed(expected: type) -> Callable[[int, Any, ParamShape], Any]:
    def coerce(index: int, value: Any, shape: ParamShape) -> Any:
        if not isinstance(value, expected):
            raise _invalid(index, shape)
        return value

    return coerce


def _passthrough(index: int, value: Any, shape: ParamShape) -> Any:
    return value


_COERCERS: Dict[ParamShape, Callable[[int, Any, ParamShape], Any]] = {
    ParamShape.INT: _integer(64, True),
    ParamShape.INT8: _integer(8, True),
    ParamShape.INT16: _integer(16, True),
    ParamShape.INT32: _integer(32, True),
    ParamShape.INT64: _integer(64, True),
    ParamShape.UINT: _integer(64, False),
    ParamShape.UINT8: _integer(8, False),
    ParamShape.UINT16: _integer(16, False),
    ParamShape.UINT32: _integer(32, False),
    ParamShape.UINT64: _integer(64, False),
    ParamShape.FLOAT32: _floating,
    ParamShape.FLOAT64: _floating,
    ParamShape.STRING: _typed(str),
    ParamShape.ANY: _passthrough,
    ParamShape.LIST: _typed(list),
    ParamShape.MAP: _typed(dict),
}


def is_supported(shape: Any) -> bool:
    return isinstance(shape, ParamShape) and shape in _COERCERS


def coerce_param(index: int, value: Any, shape: Any) -> Any:
    """
    Convert one wire argument to its declared shape.

    Raises:
        InvalidParams: value cannot be represented in the declared shape
        InternalError: the shape itself has no coercion path (bad method definition)
    """
    if not is_supported(shape):
        raise InternalError(data="Invalid method definition")
    return _COERCERS[shape](index, value, shape)
