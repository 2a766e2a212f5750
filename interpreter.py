"""
Lily Interpreter
Tree-walking evaluator over the node arena.

The runtime environment holds the root container, the currently active
container (None means root) and scope_id, the current nesting depth. Every
construct that opens a scope increments scope_id on entry and, on exit,
decrements it and drops the frames deeper than the new depth in the active
container. Statements and expressions are evaluated by the exec_* and eval_*
functions below, each taking the node reference, the node and the env.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ast_nodes import (
  NodeArena, Identifier, Block, Module, Declare, Assign, Function, FunctionCall,
  Struct, Conditional, Loop, Op, UnaryOp, Index, Member, Return, Break, Literal,
  ListNode, struct_members
)
from identifiers import ID
from interner import Interner
from memory import MemoryArena
from operators import apply_binary, apply_unary
from stdlib import BUILTIN_FUNCTIONS
from utilities import (
  LilyError, ResolutionError, RedeclarationError, LilyTypeError, ControlFlowError,
  arity_error, type_mismatch_error, as_index, render_value
)
from values import (
  Number, Bool, Str, Char, Undefined, ListValue, InstanceValue, Owned, Reference,
  ScriptFunction, StructType, NativeFunction, Variable, UNDEFINED, FALSE, TRUE, type_name
)

logger = logging.getLogger(__name__)


# ============================================================================
# CONTROL FLOW SIGNALS
# ============================================================================

@dataclass(frozen=True)
class Returned:
  """A return statement unwinding towards its function call"""
  value: object


@dataclass(frozen=True)
class Broken:
  """A break statement unwinding towards its loop"""


BREAK = Broken()


def make_slot(value) -> Variable:
  """Callables are stored by reference, everything else by value"""
  if isinstance(value, (ScriptFunction, StructType, NativeFunction)):
    return Reference(value)
  return Owned(value)


# ============================================================================
# RUNTIME ENVIRONMENT
# ============================================================================

class RuntimeEnv:
  """Containers, scope depth and builtins shared by every evaluation step"""

  def __init__(self, interner: Interner, nodes: NodeArena, output=None, input=None,
               debug: bool = False):
    self.interner = interner
    self.nodes = nodes
    self.memory = MemoryArena(interner)
    self.root = self.memory.allocate()
    self.context: Optional[int] = None
    self.scope_id = 0
    self.output = output if output is not None else sys.stdout
    self.input = input if input is not None else sys.stdin
    self.debug = debug
    self.builtins: Dict[str, Dict] = {}
    self.constructor = interner.intern("constructor")

  @property
  def active(self) -> int:
    """Handle of the container statements currently run in"""
    return self.root if self.context is None else self.context

  def name_of(self, ident: ID) -> str:
    return ident.display(self.interner)

  def run(self, ref: int) -> None:
    """Execute a top-level node"""
    execute(ref, self)

  # ==================== BUILTINS ====================

  def inject_builtins(self, builtins: Optional[Dict[str, Dict]] = None) -> None:
    """Declare every builtin in the root container"""
    for name, builtin in (builtins or BUILTIN_FUNCTIONS).items():
      self.register_builtin(name, builtin)

  def register_builtin(self, name: str, builtin: Dict) -> None:
    self.builtins[name] = builtin
    self.memory.table(self.root).declare(
      self.interner.intern(name), Reference(NativeFunction(name)), 0
    )

  # ==================== RESOLUTION ====================

  def resolve(self, ident: ID, start: Optional[int] = None) -> Tuple[int, int]:
    """Map an identifier path to (target container, final component)"""
    handle = self.active if start is None else start
    path = ident.to_path()
    for component in path[:-1]:
      handle = self._descend(handle, component)
    return handle, path[-1]

  def _descend(self, handle: int, component: int) -> int:
    try:
      return self.memory.get_module(handle, component)
    except ResolutionError:
      pass

    table = self.memory.table(handle)
    index = table.find(component)
    name = self.interner.resolve(component)
    if index is None:
      raise ResolutionError(f"'{name}' is not a module or value")
    variable = table.get_scope(index)[component]
    if isinstance(variable, Owned) and isinstance(variable.value, (InstanceValue, ListValue)):
      return variable.value.handle
    target = variable.value if isinstance(variable, Owned) else variable.target
    raise ResolutionError(f"cannot access members of '{name}', a {type_name(target)}")

  def _lookup_from(self, ident: ID, start: int) -> Tuple[Variable, int]:
    handle, name = self.resolve(ident, start)
    try:
      return self.memory.table(handle).get(name), handle
    except ResolutionError:
      raise ResolutionError(f"'{self.name_of(ident)}' not found") from None

  def lookup(self, ident: ID) -> Tuple[Variable, int]:
    """Find a variable (not copied) and the container holding it

    Misses inside a module or instance context retry from the root container.
    """
    try:
      return self._lookup_from(ident, self.active)
    except ResolutionError:
      if self.active == self.root:
        raise
    return self._lookup_from(ident, self.root)

  def get(self, ident: ID):
    """Read a value by copy; functions and structs are read as callables"""
    variable, found_in = self.lookup(ident)
    if isinstance(variable, Reference):
      return self.memory.clone_value(bind(variable.target, found_in))
    return self.memory.clone_value(variable.value)

  def declare(self, ident: ID, variable: Variable) -> None:
    handle, name = self.resolve(ident)
    try:
      self.memory.table(handle).declare(name, variable, self.scope_id)
    except RedeclarationError:
      raise RedeclarationError(
        f"'{self.name_of(ident)}' is already declared in this scope"
      ) from None

  def assign(self, ident: ID, value) -> None:
    """Overwrite the innermost declaration of ident"""
    starts = [self.active] if self.active == self.root else [self.active, self.root]
    for start in starts:
      try:
        handle, name = self.resolve(ident, start)
      except ResolutionError:
        if start == self.root:
          raise
        continue
      table = self.memory.table(handle)
      if table.find(name) is not None:
        previous = table.assign(name, make_slot(value))
        self.memory.release_variable(previous)
        return
    raise ResolutionError(f"cannot assign to undeclared '{self.name_of(ident)}'")

  def release_all(self, values) -> None:
    for value in values:
      self.memory.release_value(value)

  # ==================== SCOPES ====================

  def drop(self) -> None:
    """Remove frames deeper than scope_id from the active container"""
    removed = self.memory.table(self.active).truncate(self.scope_id + 1)
    self.memory.release_frames(removed)

  def drop_here(self) -> None:
    """Clear the frame at scope_id without removing it"""
    table = self.memory.table(self.active)
    if self.scope_id < table.scopes():
      frame = table.get_scope(self.scope_id)
      self.memory.release_frames([frame])
      frame.clear()

  # ==================== INSPECTION ====================

  def get_value(self, name: str):
    """Copy of a root-level value by dotted name"""
    return self.get(ID.from_text(name, self.interner))

  def to_python(self, value):
    """Convert a runtime value into plain Python data"""
    if isinstance(value, (Number, Bool, Str, Char)):
      return value.value
    elif isinstance(value, Undefined):
      return None
    elif isinstance(value, ListValue):
      return [self.to_python(item) for item in self.memory.list_items(value)]
    elif isinstance(value, InstanceValue):
      frame = self.memory.table(value.handle).get_scope(0)
      return {
          self.interner.resolve(key): self.to_python(variable.value)
          for key, variable in frame.items() if isinstance(variable, Owned)
      }
    return value

  def lookup_python(self, name: str):
    value = self.get_value(name)
    try:
      return self.to_python(value)
    finally:
      self.memory.release_value(value)

  def render(self, value) -> str:
    return render_value(value, self.memory.list_items)

  def globals(self) -> Dict[str, str]:
    """Rendered root-level values, used by the REPL :env command"""
    result = {}
    for frame in self.memory.table(self.root).frames:
      for key, variable in frame.items():
        if isinstance(variable, Owned):
          result[self.interner.resolve(key)] = self.render(variable.value)
        elif not isinstance(variable.target, NativeFunction):
          result[self.interner.resolve(key)] = f"<{type_name(variable.target)}>"
    return result


def bind(callee, found_in: int):
  """Remember the container a function was read from so calls run there"""
  if isinstance(callee, ScriptFunction) and callee.context is None:
    return ScriptFunction(callee.node_ref, found_in)
  return callee


# ============================================================================
# STATEMENTS
# ============================================================================

def execute(ref: int, env: RuntimeEnv):
  """Execute a node, returning a Returned/Broken signal or None"""
  node = env.nodes.get(ref)

  if isinstance(node, Block):
    return exec_block(ref, node, env)
  elif isinstance(node, Module):
    return exec_module(ref, node, env)
  elif isinstance(node, Declare):
    return exec_declare(ref, node, env)
  elif isinstance(node, Assign):
    return exec_assign(ref, node, env)
  elif isinstance(node, Function):
    return exec_function(ref, node, env)
  elif isinstance(node, Struct):
    return exec_struct(ref, node, env)
  elif isinstance(node, Conditional):
    return exec_conditional(ref, node, env)
  elif isinstance(node, Loop):
    return exec_loop(ref, node, env)
  elif isinstance(node, Return):
    return Returned(eval_ast(node.expr, env))
  elif isinstance(node, Break):
    return BREAK

  env.memory.release_value(eval_ast(ref, env))
  return None


def exec_block(ref: int, node: Block, env: RuntimeEnv):
  for statement in node.statements:
    signal = execute(statement, env)
    if signal is not None:
      if env.scope_id == 0:
        what = "return" if isinstance(signal, Returned) else "break"
        raise ControlFlowError(f"'{what}' outside of a function or loop")
      return signal
  return None


def exec_module(ref: int, node: Module, env: RuntimeEnv):
  previous = env.context
  if node.alias is not None:
    env.context = env.memory.add_module(env.active, node.alias)
  try:
    return execute(node.body, env)
  except LilyError as e:
    alias = env.interner.resolve(node.alias) if node.alias is not None else "<anonymous>"
    e.add_context(f"failed to execute module '{alias}'")
    raise
  finally:
    env.context = previous


def exec_declare(ref: int, node: Declare, env: RuntimeEnv):
  try:
    value = eval_ast(node.value, env)
    try:
      env.declare(node.id, make_slot(value))
    except LilyError:
      env.memory.release_value(value)
      raise
  except LilyError as e:
    e.add_context(f"failed to declare '{env.name_of(node.id)}'")
    raise
  return None


def exec_assign(ref: int, node: Assign, env: RuntimeEnv):
  try:
    value = eval_ast(node.value, env)
    try:
      if node.indices:
        assign_indexed(node, value, env)
      else:
        env.assign(node.id, value)
    except LilyError:
      env.memory.release_value(value)
      raise
  except LilyError as e:
    e.add_context(f"failed to assign to '{env.name_of(node.id)}'")
    raise
  return None


def assign_indexed(node: Assign, value, env: RuntimeEnv) -> None:
  positions = [as_index(eval_ast(index, env)) for index in node.indices]
  variable, _ = env.lookup(node.id)
  target = variable.value if isinstance(variable, Owned) else variable.target
  for position in positions[:-1]:
    target = element_at(target, position, env)
  if not isinstance(target, ListValue):
    raise type_mismatch_error("indexed assignment target", "a list", target)
  table = env.memory.table(target.handle)
  key = env.memory.index_key(positions[-1])
  if table.find(key) is None:
    raise ResolutionError(f"index {positions[-1]} out of range")
  previous = table.assign(key, Owned(value))
  env.memory.release_value(previous.value)


def exec_function(ref: int, node: Function, env: RuntimeEnv):
  env.declare(node.id, Reference(ScriptFunction(ref)))
  return None


def exec_struct(ref: int, node: Struct, env: RuntimeEnv):
  env.declare(node.id, Reference(StructType(ref)))
  return None


def eval_condition(ref: int, env: RuntimeEnv) -> bool:
  condition = eval_ast(ref, env)
  if not isinstance(condition, Bool):
    raise type_mismatch_error("condition", "a bool", condition)
  return condition.value


def exec_conditional(ref: int, node: Conditional, env: RuntimeEnv):
  branch = node.if_body if eval_condition(node.condition, env) else node.else_body
  env.scope_id += 1
  try:
    return execute(branch, env)
  finally:
    env.scope_id -= 1
    env.drop()


def exec_loop(ref: int, node: Loop, env: RuntimeEnv):
  env.scope_id += 1
  try:
    while eval_condition(node.condition, env):
      signal = execute(node.body, env)
      env.drop_here()
      if isinstance(signal, Broken):
        break
      if signal is not None:
        return signal
    return None
  finally:
    env.scope_id -= 1
    env.drop()


# ============================================================================
# EXPRESSIONS
# ============================================================================

def eval_ast(ref: int, env: RuntimeEnv):
  """Evaluate an expression node to a value owned by the caller"""
  node = env.nodes.get(ref)

  if isinstance(node, Literal):
    return eval_literal(ref, node, env)
  elif isinstance(node, ListNode):
    return eval_list(ref, node, env)
  elif isinstance(node, Index):
    return eval_index(ref, node, env)
  elif isinstance(node, Op):
    return eval_op(ref, node, env)
  elif isinstance(node, UnaryOp):
    return eval_unary(ref, node, env)
  elif isinstance(node, FunctionCall):
    return eval_call(ref, node, env)
  elif isinstance(node, Member):
    return eval_member(ref, node, env)
  raise LilyTypeError(f"{type(node).__name__} does not produce a value")


def eval_literal(ref: int, node: Literal, env: RuntimeEnv):
  if isinstance(node.token, Identifier):
    return env.get(node.token.id)
  return node.token


def eval_list(ref: int, node: ListNode, env: RuntimeEnv):
  return env.memory.make_list(evaluate_args(node.items, env))


def element_at(target, position: int, env: RuntimeEnv):
  """Peek at position of a list (no copy) or take the char of a string"""
  if isinstance(target, ListValue):
    variable = env.memory.table(target.handle).get_scope(0).get(env.memory.index_key(position))
    if variable is None:
      raise ResolutionError(f"index {position} out of range")
    return variable.value
  if isinstance(target, Str):
    if position >= len(target.value):
      raise ResolutionError(f"index {position} out of range")
    return Char(target.value[position])
  raise type_mismatch_error("indexed value", "a list or string", target)


def eval_index(ref: int, node: Index, env: RuntimeEnv):
  if node.id is None:
    source = eval_ast(node.source, env)
    try:
      position = as_index(eval_ast(node.index, env))
      return env.memory.clone_value(element_at(source, position, env))
    finally:
      env.memory.release_value(source)

  position = as_index(eval_ast(node.index, env))
  variable, _ = env.lookup(node.id)
  if isinstance(variable, Reference):
    raise type_mismatch_error("indexed value", "a list or string", variable.target)
  return env.memory.clone_value(element_at(variable.value, position, env))


def eval_op(ref: int, node: Op, env: RuntimeEnv):
  lhs = eval_ast(node.lhs, env)
  try:
    # && and || skip the right operand once the left one decides the result
    if node.op == "&&" and lhs == FALSE:
      return FALSE
    if node.op == "||" and lhs == TRUE:
      return TRUE
    rhs = eval_ast(node.rhs, env)
    try:
      return apply_binary(node.op, lhs, rhs, env.memory)
    finally:
      env.memory.release_value(rhs)
  finally:
    env.memory.release_value(lhs)


def eval_unary(ref: int, node: UnaryOp, env: RuntimeEnv):
  if node.op in ("++", "--"):
    ident = env.nodes.get(node.operand).token.id
    current = env.get(ident)
    if not isinstance(current, Number):
      env.memory.release_value(current)
      raise type_mismatch_error(f"operand of '{node.op}'", "a number", current)
    updated = Number(current.value + (1 if node.op == "++" else -1))
    env.assign(ident, updated)
    return updated
  operand = eval_ast(node.operand, env)
  try:
    return apply_unary(node.op, operand)
  finally:
    env.memory.release_value(operand)


def eval_member(ref: int, node: Member, env: RuntimeEnv):
  """Field read or method call on the result of an expression"""
  member = env.interner.resolve(node.member)
  source = eval_ast(node.source, env)
  try:
    if not isinstance(source, (InstanceValue, ListValue)):
      raise type_mismatch_error(f"target of '.{member}'", "an instance or list", source)
    try:
      variable = env.memory.table(source.handle).get(node.member)
    except ResolutionError:
      raise ResolutionError(f"{type_name(source)} has no member '{member}'") from None

    if node.args is None:
      if isinstance(variable, Reference):
        return env.memory.clone_value(bind(variable.target, source.handle))
      return env.memory.clone_value(variable.value)

    if not isinstance(variable, Reference):
      raise LilyTypeError(f"'{member}' is a {type_name(variable.value)}, not a function")
    try:
      args = evaluate_args(node.args, env)
      return invoke(variable.target, args, source.handle, member, env)
    except LilyError as e:
      e.add_context(f"failed to execute method call '{member}'")
      raise
  finally:
    env.memory.release_value(source)


def evaluate_args(refs, env: RuntimeEnv) -> List:
  """Evaluate expressions in order, releasing the finished ones if a later one fails"""
  values = []
  try:
    for ref in refs:
      values.append(eval_ast(ref, env))
  except LilyError:
    env.release_all(values)
    raise
  return values


# ============================================================================
# CALLS
# ============================================================================

def eval_call(ref: int, node: FunctionCall, env: RuntimeEnv):
  name = env.name_of(node.id)
  try:
    variable, found_in = env.lookup(node.id)
    if not isinstance(variable, Reference):
      raise LilyTypeError(f"'{name}' is a {type_name(variable.value)}, not a function")
    args = evaluate_args(node.args, env)
    return invoke(variable.target, args, found_in, name, env)
  except LilyError as e:
    e.add_context(f"failed to execute function call '{name}'")
    raise


def invoke(callee, args, found_in: int, name: str, env: RuntimeEnv):
  """Dispatch a call on the kind of callable; args are owned by the callee"""
  if isinstance(callee, ScriptFunction):
    context = callee.context if callee.context is not None else found_in
    if context == env.root:
      context = None
    return call_function(callee.node_ref, args, context, name, env)
  elif isinstance(callee, StructType):
    return instantiate(callee.node_ref, args, env)
  return call_builtin(callee, args, env)


def call_function(ref: int, args, context: Optional[int], name: str, env: RuntimeEnv):
  """Run a script function body in a fresh scope of context"""
  function = env.nodes.get(ref)
  if len(args) != len(function.params):
    env.release_all(args)
    raise arity_error(name, len(function.params), len(args))
  if env.debug:
    logger.debug(f"call {name} at scope {env.scope_id + 1}")

  previous = env.context
  env.context = context
  env.scope_id += 1
  try:
    table = env.memory.table(env.active)
    for param, arg in zip(function.params, args):
      table.declare(param, make_slot(arg), env.scope_id)
    signal = execute(function.body, env)
  finally:
    env.scope_id -= 1
    env.drop()
    env.context = previous

  if isinstance(signal, Broken):
    raise ControlFlowError("'break' outside of a loop")
  return signal.value if signal is not None else UNDEFINED


def call_builtin(callee: NativeFunction, args, env: RuntimeEnv):
  builtin = env.builtins[callee.name]
  arity = builtin['arity']
  try:
    if arity is not None and len(args) != arity:
      raise arity_error(callee.name, arity, len(args))
    result = builtin['func'](env.output, env.input, args, env.memory)
  finally:
    env.release_all(args)
  return result if result is not None else UNDEFINED


def instantiate(ref: int, args, env: RuntimeEnv):
  """Build a struct instance: defaults, methods, then the constructor"""
  struct = env.nodes.get(ref)
  name = env.name_of(struct.id)
  fields, methods = struct_members(env.nodes, struct)

  handle = env.memory.allocate()
  env.memory.track(handle)
  instance = InstanceValue(ref, name, handle)
  table = env.memory.table(handle)
  try:
    for field in fields:
      table.declare(field.id.last(), make_slot(eval_ast(field.value, env)), 0)
    for method in methods:
      table.declare(env.nodes.get(method).id.last(), Reference(ScriptFunction(method)), 0)
  except LilyError:
    env.release_all(args)
    env.memory.release_value(instance)
    raise

  constructor = table.get_scope(0).get(env.constructor)
  try:
    if isinstance(constructor, Reference):
      call_function(constructor.target.node_ref, args, handle, f"{name}.constructor", env)
    elif args:
      env.release_all(args)
      raise arity_error(name, 0, len(args))
  except LilyError:
    env.memory.release_value(instance)
    raise
  return instance


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_interpreter(interner: Interner, nodes: NodeArena, output=None, input=None,
                       debug: bool = False) -> RuntimeEnv:
  """Factory function returning a runtime environment with the builtins declared"""
  env = RuntimeEnv(interner, nodes, output, input, debug)
  env.inject_builtins()
  return env


def create_debug_interpreter(interner: Interner, nodes: NodeArena, output=None,
                             input=None) -> RuntimeEnv:
  """Factory function returning a debug interpreter"""
  return create_interpreter(interner, nodes, output, input, debug=True)
