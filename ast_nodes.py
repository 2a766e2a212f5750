"""
Lily Abstract Syntax Tree
Nodes live in a NodeArena and refer to their children by integer index,
so a function body is shared by every call site without copying.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from identifiers import ID
from interner import Interner
from values import Number, Bool, Str, Char, Undefined


@dataclass(frozen=True)
class Identifier:
  """Identifier token inside a Literal node"""
  id: ID


Token = Union[Number, Bool, Str, Char, Undefined, Identifier]


# ============================================================================
# NODE TYPES
# ============================================================================

@dataclass(frozen=True)
class Block:
  statements: Tuple[int, ...]


@dataclass(frozen=True)
class Module:
  """Imported file body; anonymous modules run in the enclosing container"""
  alias: Optional[int]
  body: int


@dataclass(frozen=True)
class Declare:
  id: ID
  value: int


@dataclass(frozen=True)
class Assign:
  """id = value, or id[i]...[k] = value when indices is non-empty"""
  id: ID
  value: int
  indices: Tuple[int, ...] = ()


@dataclass(frozen=True)
class Function:
  id: ID
  params: Tuple[int, ...]
  body: int


@dataclass(frozen=True)
class FunctionCall:
  id: ID
  args: Tuple[int, ...]


@dataclass(frozen=True)
class Struct:
  id: ID
  body: int


@dataclass(frozen=True)
class Conditional:
  condition: int
  if_body: int
  else_body: int


@dataclass(frozen=True)
class Loop:
  condition: int
  body: int


@dataclass(frozen=True)
class Op:
  lhs: int
  op: str
  rhs: int


@dataclass(frozen=True)
class UnaryOp:
  """Prefix ! and -, postfix ++ and -- (operand is an identifier Literal)"""
  op: str
  operand: int


@dataclass(frozen=True)
class Index:
  """target[index]; target is an identifier or, for chained indexing, a source node"""
  id: Optional[ID]
  index: int
  source: Optional[int] = None


@dataclass(frozen=True)
class Member:
  """source.member, or source.member(args) when args is not None"""
  source: int
  member: int
  args: Optional[Tuple[int, ...]] = None


@dataclass(frozen=True)
class Return:
  expr: int


@dataclass(frozen=True)
class Break:
  pass


@dataclass(frozen=True)
class Literal:
  token: Token


@dataclass(frozen=True)
class ListNode:
  items: Tuple[int, ...]


ASTNode = Union[
  Block, Module, Declare, Assign, Function, FunctionCall, Struct, Conditional,
  Loop, Op, UnaryOp, Index, Member, Return, Break, Literal, ListNode
]


# ============================================================================
# ARENA
# ============================================================================

class NodeArena:
  """Append-only node storage addressed by index"""

  def __init__(self):
    self._nodes: List[ASTNode] = []

  def add(self, node: ASTNode) -> int:
    self._nodes.append(node)
    return len(self._nodes) - 1

  def get(self, ref: int) -> ASTNode:
    return self._nodes[ref]

  def __len__(self) -> int:
    return len(self._nodes)


def struct_members(nodes: NodeArena, struct_node: Struct) -> Tuple[List[Declare], List[int]]:
  """Default field declarations and method refs of a struct body"""
  fields, methods = [], []
  body = nodes.get(struct_node.body)
  for ref in body.statements:
    node = nodes.get(ref)
    if isinstance(node, Declare):
      fields.append(node)
    elif isinstance(node, Function):
      methods.append(ref)
  return fields, methods


# ============================================================================
# PRETTY PRINTING
# ============================================================================

def pretty_print_ast(nodes: NodeArena, ref: int, interner: Interner, indent: int = 0) -> str:
  """Pretty print an arena subtree for debugging"""
  node = nodes.get(ref)
  pad = "  " * indent
  name = lambda ident: ident.display(interner)

  def children(*refs) -> str:
    return "".join(pretty_print_ast(nodes, child, interner, indent + 1) for child in refs)

  if isinstance(node, Block):
    return f"{pad}Block\n" + children(*node.statements)
  elif isinstance(node, Module):
    alias = interner.resolve(node.alias) if node.alias is not None else "<anonymous>"
    return f"{pad}Module({alias})\n" + children(node.body)
  elif isinstance(node, Declare):
    return f"{pad}Declare({name(node.id)})\n" + children(node.value)
  elif isinstance(node, Assign):
    return f"{pad}Assign({name(node.id)})\n" + children(*node.indices, node.value)
  elif isinstance(node, Function):
    params = ", ".join(interner.resolve(p) for p in node.params)
    return f"{pad}Function({name(node.id)}; {params})\n" + children(node.body)
  elif isinstance(node, FunctionCall):
    return f"{pad}Call({name(node.id)})\n" + children(*node.args)
  elif isinstance(node, Struct):
    return f"{pad}Struct({name(node.id)})\n" + children(node.body)
  elif isinstance(node, Conditional):
    return f"{pad}If\n" + children(node.condition, node.if_body, node.else_body)
  elif isinstance(node, Loop):
    return f"{pad}While\n" + children(node.condition, node.body)
  elif isinstance(node, Op):
    return f"{pad}Op({node.op})\n" + children(node.lhs, node.rhs)
  elif isinstance(node, UnaryOp):
    return f"{pad}Unary({node.op})\n" + children(node.operand)
  elif isinstance(node, Index):
    target = name(node.id) if node.id is not None else "<expr>"
    sources = (node.source,) if node.source is not None else ()
    return f"{pad}Index({target})\n" + children(*sources, node.index)
  elif isinstance(node, Member):
    suffix = "()" if node.args is not None else ""
    return f"{pad}Member({interner.resolve(node.member)}{suffix})\n" + children(node.source, *(node.args or ()))
  elif isinstance(node, Return):
    return f"{pad}Return\n" + children(node.expr)
  elif isinstance(node, Break):
    return f"{pad}Break\n"
  elif isinstance(node, ListNode):
    return f"{pad}List\n" + children(*node.items)
  elif isinstance(node, Literal):
    if isinstance(node.token, Identifier):
      return f"{pad}Identifier({name(node.token.id)})\n"
    return f"{pad}Literal({node.token!r})\n"
  return f"{pad}{type(node).__name__}\n"
