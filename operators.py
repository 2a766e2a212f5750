"""
Lily Operators
Binary and unary operator semantics over runtime values.
Numbers are 32-bit floats; dividing by zero follows IEEE-754 rather than raising.
"""

import math
import operator
from typing import Any, Callable, Dict

from memory import MemoryArena
from utilities import operation_error
from values import (
  Number, Bool, Str, Char, Undefined, ListValue, InstanceValue, is_literal, TRUE, FALSE
)


# ==================== NUMERIC KERNEL ====================

def _divide(x: float, y: float) -> float:
  if y == 0:
    if x == 0 or math.isnan(x):
      return math.nan
    return math.copysign(math.inf, x) * math.copysign(1.0, y)
  return x / y


def _floor_divide(x: float, y: float) -> float:
  quotient = _divide(x, y)
  if math.isinf(quotient) or math.isnan(quotient):
    return quotient
  return float(math.floor(quotient))


def _power(x: float, y: float) -> float:
  try:
    return math.pow(x, y)
  except OverflowError:
    return math.inf
  except ValueError:
    return math.nan


def binary_arithmetic_op(op: Callable[[float, float], float], symbol: str) -> Callable:
  """
  Factory for numeric binary operations

  Args:
    op: Function over the two float payloads
    symbol: Operator symbol for error messages

  Returns:
    Function (lhs, rhs, memory) -> Number
  """
  def arithmetic(x, y, memory: MemoryArena):
    if not (isinstance(x, Number) and isinstance(y, Number)):
      raise operation_error(symbol, x, y)
    return Number(op(x.value, y.value))

  return arithmetic


def binary_comparison_op(op: Callable[[Any, Any], bool], symbol: str) -> Callable:
  """
  Factory for relational operations, defined over numbers only

  Returns:
    Function (lhs, rhs, memory) -> Bool
  """
  def comparison(x, y, memory: MemoryArena):
    if not (isinstance(x, Number) and isinstance(y, Number)):
      raise operation_error(symbol, x, y)
    return TRUE if op(x.value, y.value) else FALSE

  return comparison


def binary_logical_op(op: Callable[[bool, bool], bool], symbol: str) -> Callable:
  def logical(x, y, memory: MemoryArena):
    if not (isinstance(x, Bool) and isinstance(y, Bool)):
      raise operation_error(symbol, x, y)
    return TRUE if op(x.value, y.value) else FALSE

  return logical


# ==================== OVERLOADS ====================

def lily_add(x, y, memory: MemoryArena):
  """+ on numbers, string/char concatenation and list concatenation"""
  if isinstance(x, Number) and isinstance(y, Number):
    return Number(x.value + y.value)
  if isinstance(x, (Str, Char)) and isinstance(y, (Str, Char)) and (isinstance(x, Str) or isinstance(y, Str)):
    return Str(x.value + y.value)
  if isinstance(x, ListValue) and isinstance(y, ListValue):
    items = memory.list_items(x) + memory.list_items(y)
    return memory.make_list([memory.clone_value(item) for item in items])
  raise operation_error("+", x, y)


def values_equal(x, y, memory: MemoryArena) -> bool:
  """Structural equality; values of different kinds are unequal"""
  if type(x) is not type(y):
    return False
  if isinstance(x, ListValue):
    left, right = memory.list_items(x), memory.list_items(y)
    return len(left) == len(right) and all(
      values_equal(a, b, memory) for a, b in zip(left, right)
    )
  if isinstance(x, Undefined):
    return True
  if is_literal(x):
    # payload comparison keeps NaN unequal to itself
    return x.value == y.value
  if isinstance(x, InstanceValue):
    return x.handle == y.handle
  return x == y


def lily_eq(x, y, memory: MemoryArena):
  return TRUE if values_equal(x, y, memory) else FALSE


def lily_ne(x, y, memory: MemoryArena):
  return FALSE if values_equal(x, y, memory) else TRUE


BUILTIN_OPERATORS: Dict[str, Callable] = {
    "+": lily_add,
    "-": binary_arithmetic_op(operator.sub, "-"),
    "*": binary_arithmetic_op(operator.mul, "*"),
    "/": binary_arithmetic_op(_divide, "/"),
    "//": binary_arithmetic_op(_floor_divide, "//"),
    "^": binary_arithmetic_op(_power, "^"),
    "<": binary_comparison_op(operator.lt, "<"),
    "<=": binary_comparison_op(operator.le, "<="),
    ">": binary_comparison_op(operator.gt, ">"),
    ">=": binary_comparison_op(operator.ge, ">="),
    "==": lily_eq,
    "!=": lily_ne,
    "&&": binary_logical_op(operator.and_, "&&"),
    "||": binary_logical_op(operator.or_, "||"),
}


def apply_binary(symbol: str, x, y, memory: MemoryArena):
  try:
    impl = BUILTIN_OPERATORS[symbol]
  except KeyError:
    raise operation_error(symbol, x, y) from None
  return impl(x, y, memory)


def apply_unary(symbol: str, x):
  """Prefix operators: logical not and numeric negation"""
  if symbol == "!" and isinstance(x, Bool):
    return FALSE if x.value else TRUE
  if symbol == "-" and isinstance(x, Number):
    return Number(-x.value)
  raise operation_error(symbol, x)
