"""
Lily Standard Library
Native builtin functions and the bundled standard modules
"""

from typing import Callable, Dict, List, Optional

from memory import MemoryArena
from utilities import render_value, type_mismatch_error
from values import Number, Str, ListValue, UNDEFINED


# ============================================================================
# I/O FUNCTIONS
# ============================================================================

def lily_print(stdout, stdin, args: List, memory: MemoryArena):
  """Write a readable rendering of the value followed by a newline"""
  stdout.write(render_value(args[0], memory.list_items) + "\n")
  return None


def lily_input(stdout, stdin, args: List, memory: MemoryArena):
  """Read one line (without its newline); undefined at end of input"""
  line = stdin.readline()
  if not line:
    return UNDEFINED
  return Str(line[:-1] if line.endswith("\n") else line)


# ============================================================================
# COLLECTION FUNCTIONS
# ============================================================================

def lily_len(stdout, stdin, args: List, memory: MemoryArena):
  """Element count of a list or character count of a string"""
  value = args[0]
  if isinstance(value, ListValue):
    return Number(memory.list_length(value))
  elif isinstance(value, Str):
    return Number(len(value.value))
  raise type_mismatch_error("len argument", "a list or string", value)


# ============================================================================
# BUILT-IN FUNCTION REGISTRY
# ============================================================================

def make_builtin_function(name: str, func: Callable, arity: Optional[int] = None,
                          type_signature: str = "") -> Dict:
  """Create a built-in function entry"""
  return {
      'type': 'builtin_function',
      'name': name,
      'func': func,
      'arity': arity,
      'type_signature': type_signature
  }


BUILTIN_FUNCTIONS: Dict[str, Dict] = {
    "print": make_builtin_function("print", lily_print, 1, "a -> undefined"),
    "input": make_builtin_function("input", lily_input, 0, "-> string"),
    "len": make_builtin_function("len", lily_len, 1, "list | string -> number"),
}


def list_builtin_functions() -> List[str]:
  """List all available built-in functions"""
  return list(BUILTIN_FUNCTIONS.keys())


# ============================================================================
# STANDARD MODULES
# ============================================================================

MATH_MODULE = """
# math: numeric helpers, imported as `math`
func pow x y do
  return x ^ y
end

func abs x do
  if x < 0 do
    return -x
  end
  return x
end

func min a b do
  if a < b do
    return a
  end
  return b
end

func max a b do
  if a > b do
    return a
  end
  return b
end

func sqrt x do
  return x ^ 0.5
end

func floor x do
  return x // 1
end

func clamp x low high do
  return min(max(x, low), high)
end
"""

STANDARD_MODULES: Dict[str, str] = {
    "math": MATH_MODULE,
}
