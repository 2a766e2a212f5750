"""
Utilities module for the Lily interpreter
Runtime error hierarchy, error message builders and value rendering helpers
"""

import math
from typing import List

from values import (
  Number, Bool, Str, Char, Undefined, ListValue, InstanceValue,
  to_f32, type_name
)


# ==================== RUNTIME ERRORS ====================

class LilyError(Exception):
  """Base class for every recoverable Lily runtime failure

  Carries a causal chain: the innermost message first, followed by the
  context added by each enclosing evaluation step as the error unwinds.
  """

  def __init__(self, message: str):
    self.message = message
    self.context: List[str] = []
    super().__init__(message)

  def add_context(self, message: str) -> 'LilyError':
    self.context.append(message)
    return self

  def chain(self) -> List[str]:
    """Messages from outermost context to root cause"""
    return list(reversed(self.context)) + [self.message]

  def __str__(self) -> str:
    if not self.context:
      return self.message
    lines = [self.context[-1]]
    lines.extend(f"  caused by: {msg}" for msg in self.chain()[1:])
    return '\n'.join(lines)


class ResolutionError(LilyError):
  """Unknown identifier, module, field or out of range index"""


class RedeclarationError(LilyError):
  """Name declared twice in the same frame"""


class LilyTypeError(LilyError):
  """Operation applied to values of the wrong kind"""


class ControlFlowError(LilyError):
  """return or break reached where nothing can receive it"""


class LilyImportError(LilyError):
  """Module file missing, unreadable or malformed import"""


class ArityError(LilyError):
  """Call site argument count differs from the function signature"""


# ==================== ERROR MESSAGE BUILDERS ====================

def type_mismatch_error(what: str, expected: str, actual) -> LilyTypeError:
  """
  Generate type mismatch error

  Args:
    what: What was being checked, e.g. "condition"
    expected: Expected kind
    actual: Offending value

  Returns:
    LilyTypeError with formatted message
  """
  return LilyTypeError(f"{what} must be {expected}, got {type_name(actual)}")


def arity_error(func_name: str, expected: int, got: int) -> ArityError:
  """
  Generate arity mismatch error

  Args:
    func_name: Function name
    expected: Expected number of arguments
    got: Actual number of arguments

  Returns:
    ArityError with formatted message
  """
  return ArityError(
    f"{func_name} requires {expected} arguments, got {got}"
  )


def operation_error(op: str, left, right=None) -> LilyTypeError:
  """
  Generate operation error

  Args:
    op: Operator symbol
    left: Left (or only) operand
    right: Right operand for binary operators

  Returns:
    LilyTypeError with formatted message
  """
  if right is None:
    return LilyTypeError(f"cannot apply '{op}' to {type_name(left)}")
  return LilyTypeError(
    f"cannot apply '{op}' to {type_name(left)} and {type_name(right)}"
  )


# ==================== NUMBER UTILITIES ====================

def format_number(value: float) -> str:
  """
  Render an f32 number the way scripts print it

  Args:
    value: Number payload (already f32-rounded)

  Returns:
    Shortest text that reads back as the same f32

  Examples:
    format_number(6.0) -> "6"
    format_number(2.5) -> "2.5"
    format_number(to_f32(0.1)) -> "0.1"
  """
  if math.isnan(value):
    return "NaN"
  if math.isinf(value):
    return "inf" if value > 0 else "-inf"
  if value == int(value) and abs(value) < 1e16:
    return str(int(value))
  for precision in range(1, 10):
    text = f"{value:.{precision}g}"
    if to_f32(float(text)) == value:
      return text
  return repr(value)


def as_index(value) -> int:
  """
  Convert a numeric value into a list position

  Raises:
    LilyTypeError if value is not a number
    ResolutionError if the position is negative or not finite
  """
  if not isinstance(value, Number):
    raise type_mismatch_error("index", "a number", value)
  if not math.isfinite(value.value) or value.value < 0:
    raise ResolutionError(f"invalid index {format_number(value.value)}")
  return int(value.value)


# ==================== RENDERING ====================

def render_value(value, list_items=None) -> str:
  """
  Human readable rendering used by print

  Args:
    value: Runtime value
    list_items: Callable returning the items of a ListValue, needed for lists

  Returns:
    Rendered text
  """
  if isinstance(value, Number):
    return format_number(value.value)
  elif isinstance(value, Bool):
    return "true" if value.value else "false"
  elif isinstance(value, (Str, Char)):
    return value.value
  elif isinstance(value, Undefined):
    return "undefined"
  elif isinstance(value, ListValue):
    items = list_items(value) if list_items else []
    return "[" + ", ".join(render_item(item, list_items) for item in items) + "]"
  elif isinstance(value, InstanceValue):
    return f"<{value.name} instance>"
  return f"<{type_name(value)}>"


def render_item(value, list_items=None) -> str:
  """Render a list element, quoting strings and chars"""
  if isinstance(value, Str):
    return f'"{value.value}"'
  if isinstance(value, Char):
    return f"'{value.value}'"
  return render_value(value, list_items)
