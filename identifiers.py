"""
Lily Identifiers
Dotted name paths over interned components
"""

from dataclasses import dataclass
from typing import List, Sequence, Union

from interner import Interner


@dataclass(frozen=True)
class LiteralKind:
  """A single name component"""
  name: int


@dataclass(frozen=True)
class MemberKind:
  """parent.member, where parent may itself be a member chain"""
  parent: 'ID'
  member: 'ID'


IDKind = Union[LiteralKind, MemberKind]


@dataclass(frozen=True)
class ID:
  """Identifier path such as `a` or `mod.inner.fn`"""
  kind: IDKind

  @classmethod
  def literal(cls, name: int) -> 'ID':
    return cls(LiteralKind(name))

  @classmethod
  def member(cls, parent: 'ID', member: 'ID') -> 'ID':
    return cls(MemberKind(parent, member))

  @classmethod
  def from_path(cls, path: Sequence[int]) -> 'ID':
    """Fold interned components into a left-associated member chain

    Examples:
        >>> ID.from_path([0, 1, 2]).to_path()
        [0, 1, 2]
    """
    if not path:
      raise ValueError("cannot build an identifier from an empty path")
    result = cls.literal(path[0])
    for component in path[1:]:
      result = cls.member(result, cls.literal(component))
    return result

  @classmethod
  def from_text(cls, text: str, interner: Interner) -> 'ID':
    """Split text on '.' and intern every segment"""
    segments = text.split('.')
    if any(not segment for segment in segments):
      raise ValueError(f"malformed identifier '{text}'")
    return cls.from_path([interner.intern(segment) for segment in segments])

  def to_path(self) -> List[int]:
    """Flatten into the ordered list of interned components"""
    if isinstance(self.kind, LiteralKind):
      return [self.kind.name]
    return self.kind.parent.to_path() + self.kind.member.to_path()

  def is_member(self) -> bool:
    return isinstance(self.kind, MemberKind)

  def last(self) -> int:
    """Final component of the path"""
    return self.to_path()[-1]

  def display(self, interner: Interner) -> str:
    return '.'.join(interner.resolve(component) for component in self.to_path())
