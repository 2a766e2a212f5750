"""
Lily Runtime Values
Literal values, container-backed values, callables and the Variable slot
"""

import struct
from dataclasses import dataclass
from typing import Optional, Union


def to_f32(value: float) -> float:
  """Round a Python float to the nearest 32-bit float

  Values beyond the f32 range become signed infinity.
  """
  try:
    return struct.unpack('f', struct.pack('f', value))[0]
  except OverflowError:
    return float('inf') if value > 0 else float('-inf')


# ============================================================================
# LITERALS
# ============================================================================

@dataclass(frozen=True)
class Number:
  value: float

  def __post_init__(self):
    object.__setattr__(self, 'value', to_f32(float(self.value)))


@dataclass(frozen=True)
class Bool:
  value: bool


@dataclass(frozen=True)
class Str:
  value: str


@dataclass(frozen=True)
class Char:
  value: str


@dataclass(frozen=True)
class Undefined:
  """The "no value" sentinel"""


UNDEFINED = Undefined()
TRUE = Bool(True)
FALSE = Bool(False)


# ============================================================================
# CONTAINER-BACKED VALUES
# ============================================================================

@dataclass(frozen=True)
class ListValue:
  """A list whose entries live in the arena container `handle`

  Lists have value semantics: reading one copies the backing container.
  """
  handle: int


@dataclass(frozen=True)
class InstanceValue:
  """A struct instance; copies share the same field container"""
  struct_ref: int
  name: str
  handle: int


Value = Union[Number, Bool, Str, Char, Undefined, ListValue, InstanceValue]


# ============================================================================
# CALLABLES
# ============================================================================

@dataclass(frozen=True)
class ScriptFunction:
  """A function definition; context is the container it was read from, if any"""
  node_ref: int
  context: Optional[int] = None


@dataclass(frozen=True)
class StructType:
  node_ref: int


@dataclass(frozen=True)
class NativeFunction:
  name: str


Callable_ = Union[ScriptFunction, StructType, NativeFunction]


# ============================================================================
# VARIABLE SLOTS
# ============================================================================

@dataclass(frozen=True)
class Owned:
  """Slot owning its value"""
  value: Value


@dataclass(frozen=True)
class Reference:
  """Slot pointing at a shared definition, never copied or mutated"""
  target: Callable_


Variable = Union[Owned, Reference]


def type_name(value) -> str:
  """Human readable kind of a value or callable, used in error messages"""
  names = {
      Number: "number",
      Bool: "bool",
      Str: "string",
      Char: "char",
      Undefined: "undefined",
      ListValue: "list",
      InstanceValue: "instance",
      ScriptFunction: "function",
      StructType: "struct",
      NativeFunction: "builtin function",
  }
  return names.get(type(value), type(value).__name__)


def is_literal(value) -> bool:
  return isinstance(value, (Number, Bool, Str, Char, Undefined))
