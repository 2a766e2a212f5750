"""
Lily Semantic Analysis
Converts parser tuples into arena AST nodes, interning every identifier and
inlining imported modules.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ast_nodes import (
  NodeArena, Identifier, Block, Module, Declare, Assign, Function, FunctionCall,
  Struct, Conditional, Loop, Op, UnaryOp, Index, Member, Return, Break, Literal, ListNode
)
from error_handling import LilyParseError
from identifiers import ID
from interner import Interner
from utilities import LilyImportError
from values import Number, Bool, Str, Char

logger = logging.getLogger(__name__)


@dataclass
class AnalysisContext:
  """State threaded through one analysis run"""
  interner: Interner
  nodes: NodeArena
  parser: object
  base_dir: str
  filename: str = "<input>"
  import_stack: Tuple[str, ...] = ()
  debug: bool = False

  def for_file(self, path: str) -> 'AnalysisContext':
    """Context for a file imported from this one, relative to its own directory"""
    return AnalysisContext(
      self.interner, self.nodes, self.parser, os.path.dirname(path), path,
      self.import_stack + (path,), self.debug
    )


class LilySemanticsError(Exception):
  """Structurally invalid program"""

  def __init__(self, message: str, filename: Optional[str] = None):
    self.message = message
    self.filename = filename
    super().__init__(self._format_error())

  def _format_error(self) -> str:
    if self.filename:
      return f"Semantics error in {self.filename}: {self.message}"
    return f"Semantics error: {self.message}"


# ============================================================================
# HELPERS
# ============================================================================

def make_id(text: str, ctx: AnalysisContext) -> ID:
  try:
    return ID.from_text(text, ctx.interner)
  except ValueError as e:
    raise LilySemanticsError(str(e), ctx.filename) from None


def add_block(statements: List[tuple], ctx: AnalysisContext) -> int:
  refs = tuple(analyze_statement(stmt, ctx) for stmt in statements)
  return ctx.nodes.add(Block(refs))


# ============================================================================
# STATEMENTS
# ============================================================================

def analyze_statement(stmt: tuple, ctx: AnalysisContext) -> int:
  """Analyze a single statement tuple and return its node ref"""
  kind, value = stmt
  if ctx.debug:
    logger.debug(f"analyzing {kind}")

  handlers = {
      "DECLARE": analyze_declare,
      "ASSIGN": analyze_assign,
      "FUNCTION_DEF": analyze_function_def,
      "STRUCT_DEF": analyze_struct_def,
      "IF": analyze_if,
      "WHILE": analyze_while,
      "RETURN": analyze_return,
      "BREAK": analyze_break,
      "IMPORT": analyze_import,
      "EXPR": analyze_expression_statement,
  }
  if kind not in handlers:
    raise LilySemanticsError(f"unexpected statement {kind}", ctx.filename)
  return handlers[kind](value, ctx)


def analyze_declare(value: Dict, ctx: AnalysisContext) -> int:
  target = make_id(value['name'], ctx)
  return ctx.nodes.add(Declare(target, analyze_expression(value['value'], ctx)))


def analyze_assign(value: Dict, ctx: AnalysisContext) -> int:
  target = make_id(value['name'], ctx)
  indices = tuple(analyze_expression(index, ctx) for index in value['indices'])
  return ctx.nodes.add(Assign(target, analyze_expression(value['value'], ctx), indices))


def analyze_function_def(value: Dict, ctx: AnalysisContext) -> int:
  params = [ctx.interner.intern(param) for param in value['params']]
  if len(set(params)) != len(params):
    raise LilySemanticsError(f"duplicate parameter name in function '{value['name']}'", ctx.filename)
  body = add_block(value['body'], ctx)
  return ctx.nodes.add(Function(make_id(value['name'], ctx), tuple(params), body))


def analyze_struct_def(value: Dict, ctx: AnalysisContext) -> int:
  for kind, _ in value['body']:
    if kind not in ("DECLARE", "FUNCTION_DEF"):
      raise LilySemanticsError(
        f"struct '{value['name']}' may only contain 'let' fields and 'func' methods",
        ctx.filename
      )
  body = add_block(value['body'], ctx)
  return ctx.nodes.add(Struct(make_id(value['name'], ctx), body))


def analyze_if(value: Dict, ctx: AnalysisContext) -> int:
  condition = analyze_expression(value['condition'], ctx)
  if_body = add_block(value['then'], ctx)
  else_body = add_block(value['else'], ctx)
  return ctx.nodes.add(Conditional(condition, if_body, else_body))


def analyze_while(value: Dict, ctx: AnalysisContext) -> int:
  condition = analyze_expression(value['condition'], ctx)
  return ctx.nodes.add(Loop(condition, add_block(value['body'], ctx)))


def analyze_return(value, ctx: AnalysisContext) -> int:
  return ctx.nodes.add(Return(analyze_expression(value, ctx)))


def analyze_break(value, ctx: AnalysisContext) -> int:
  return ctx.nodes.add(Break())


def analyze_expression_statement(value, ctx: AnalysisContext) -> int:
  return analyze_expression(value, ctx)


def analyze_import(value: Dict, ctx: AnalysisContext) -> int:
  """Parse the imported file relative to the importing file and inline it as a Module"""
  path = os.path.normpath(os.path.join(ctx.base_dir, value['path']))
  alias = ctx.interner.intern(value['alias']) if value['alias'] else None

  if path in ctx.import_stack:
    raise LilyImportError(f"circular import of '{path}'").add_context(
      f"failed to import module from {ctx.filename}"
    )
  if not os.path.isfile(path):
    raise LilyImportError(f"module not found at '{path}'").add_context(
      f"failed to import module from {ctx.filename}"
    )

  try:
    with open(path, 'r', encoding='utf-8') as f:
      source = f.read()
  except (OSError, UnicodeDecodeError) as e:
    raise LilyImportError(f"failed to read module '{path}': {e}") from None

  logger.debug(f"importing {path} as {value['alias'] or '<anonymous>'}")
  try:
    statements = ctx.parser.parse_string(source, path)
  except LilyParseError as e:
    raise LilyImportError(f"failed to parse module body\n{e}") from None
  body = add_block(statements, ctx.for_file(path))
  return ctx.nodes.add(Module(alias, body))


# ============================================================================
# EXPRESSIONS
# ============================================================================

def analyze_expression(expr: tuple, ctx: AnalysisContext) -> int:
  """Analyze an expression tuple and return its node ref"""
  kind, value = expr

  if kind == "NUMBER":
    return ctx.nodes.add(Literal(Number(value)))
  elif kind == "STRING":
    return ctx.nodes.add(Literal(Str(value)))
  elif kind == "CHAR":
    return ctx.nodes.add(Literal(Char(value)))
  elif kind == "BOOL":
    return ctx.nodes.add(Literal(Bool(value)))
  elif kind == "IDENTIFIER":
    return ctx.nodes.add(Literal(Identifier(make_id(value, ctx))))
  elif kind == "CALL":
    args = tuple(analyze_expression(arg, ctx) for arg in value['args'])
    return ctx.nodes.add(FunctionCall(make_id(value['name'], ctx), args))
  elif kind == "LIST":
    return ctx.nodes.add(ListNode(tuple(analyze_expression(item, ctx) for item in value)))
  elif kind == "INDEX":
    return analyze_index(value, ctx)
  elif kind == "MEMBER":
    source = analyze_expression(value['target'], ctx)
    args = value['args']
    if args is not None:
      args = tuple(analyze_expression(arg, ctx) for arg in args)
    return ctx.nodes.add(Member(source, ctx.interner.intern(value['name']), args))
  elif kind == "INCREMENT":
    operand = ctx.nodes.add(Literal(Identifier(make_id(value['name'], ctx))))
    return ctx.nodes.add(UnaryOp(value['op'], operand))
  elif kind == "UNARY":
    return analyze_unary(value, ctx)
  elif kind == "OP":
    lhs = analyze_expression(value['lhs'], ctx)
    rhs = analyze_expression(value['rhs'], ctx)
    return ctx.nodes.add(Op(lhs, value['op'], rhs))
  raise LilySemanticsError(f"unexpected expression {kind}", ctx.filename)


def analyze_index(value: Dict, ctx: AnalysisContext) -> int:
  """a[i][j]: the first index names its target directly when it is an identifier"""
  target_kind, target_value = value['target']
  indices = [analyze_expression(index, ctx) for index in value['indices']]

  if target_kind == "IDENTIFIER":
    ref = ctx.nodes.add(Index(make_id(target_value, ctx), indices[0]))
  else:
    ref = ctx.nodes.add(Index(None, indices[0], analyze_expression(value['target'], ctx)))

  for index in indices[1:]:
    ref = ctx.nodes.add(Index(None, index, ref))
  return ref


def analyze_unary(value: Dict, ctx: AnalysisContext) -> int:
  operand_kind, operand_value = value['operand']
  # -<number literal> folds into a negative literal
  if value['op'] == '-' and operand_kind == "NUMBER":
    return ctx.nodes.add(Literal(Number(-operand_value)))
  return ctx.nodes.add(UnaryOp(value['op'], analyze_expression(value['operand'], ctx)))


# ============================================================================
# ENTRY POINTS
# ============================================================================

def analyze_program(statements: List[tuple], ctx: AnalysisContext) -> int:
  """Analyze top-level statements into a Block and return its ref"""
  ref = add_block(statements, ctx)
  if ctx.debug:
    logger.debug(f"analyzed {len(statements)} statements into {len(ctx.nodes)} nodes")
  return ref


def analyze_module(statements: List[tuple], ctx: AnalysisContext, alias: Optional[str] = None) -> int:
  """Wrap statements in a Module node, named when alias is given"""
  body = add_block(statements, ctx)
  name = ctx.interner.intern(alias) if alias else None
  return ctx.nodes.add(Module(name, body))
