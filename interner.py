"""
Lily String Interner
Maps identifier text to small sequential integers so that names compare and hash
as plain ints everywhere past the parser.
"""

from typing import Dict, List


class Interner:
  """Bidirectional text <-> id table owned by a single interpreter run"""

  def __init__(self):
    self._ids: Dict[str, int] = {}
    self._texts: List[str] = []

  def intern(self, text: str) -> int:
    """Return the id for text, allocating the next sequential id on first sight

    Args:
        text: Identifier text

    Returns:
        Stable integer id for text

    Examples:
        >>> interner = Interner()
        >>> interner.intern("a"), interner.intern("b"), interner.intern("a")
        (0, 1, 0)
    """
    existing = self._ids.get(text)
    if existing is not None:
      return existing
    new_id = len(self._texts)
    self._ids[text] = new_id
    self._texts.append(text)
    return new_id

  def resolve(self, ident: int) -> str:
    """Return the text an id was allocated for

    Ids only ever come from this interner, so an unknown id is a bug in the caller.
    """
    assert 0 <= ident < len(self._texts), f"id {ident} was not issued by this interner"
    return self._texts[ident]

  def lookup(self, text: str):
    """Return the id for text if it was interned, otherwise None"""
    return self._ids.get(text)

  def __contains__(self, text: str) -> bool:
    return text in self._ids

  def __len__(self) -> int:
    return len(self._texts)

  def __repr__(self) -> str:
    return f"Interner({len(self._texts)} names)"
