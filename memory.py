"""
Lily Scoped Memory
Scoped variable tables ("containers") and the arena that owns them.

Every namespace in a running program is a container: the global namespace,
each module, each struct instance and each list. Containers are addressed by
integer handles, so module links and instance/list backing stores are plain
ints copied by value while mutation through any handle stays visible to all.
"""

import logging
from typing import Dict, List, Optional

from interner import Interner
from utilities import ResolutionError, RedeclarationError
from values import InstanceValue, ListValue, Owned, ScriptFunction, Variable

logger = logging.getLogger(__name__)


Frame = Dict[int, Variable]


class ScopedTable:
  """Ordered frames of name -> Variable plus named child containers"""

  def __init__(self, frames: int = 1):
    self.frames: List[Frame] = [{} for _ in range(frames)]
    self.modules: Dict[int, int] = {}

  def add_scope(self) -> None:
    self.frames.append({})

  def get_scope(self, index: int) -> Frame:
    return self.frames[index]

  def scopes(self) -> int:
    return len(self.frames)

  def ensure_scopes(self, count: int) -> None:
    """Append empty frames until at least count exist"""
    while len(self.frames) < count:
      self.add_scope()

  def find(self, name: int) -> Optional[int]:
    """Index of the innermost frame holding name, or None"""
    for index in range(len(self.frames) - 1, -1, -1):
      if name in self.frames[index]:
        return index
    return None

  def declare(self, name: int, variable: Variable, scope_id: int) -> None:
    self.ensure_scopes(scope_id + 1)
    frame = self.frames[scope_id]
    if name in frame:
      raise RedeclarationError("name is already declared in this scope")
    frame[name] = variable

  def get(self, name: int) -> Variable:
    index = self.find(name)
    if index is None:
      raise ResolutionError("name not found")
    return self.frames[index][name]

  def assign(self, name: int, variable: Variable) -> Variable:
    """Overwrite the innermost occurrence of name and return the replaced slot"""
    index = self.find(name)
    if index is None:
      raise ResolutionError("cannot assign to an undeclared name")
    previous = self.frames[index][name]
    self.frames[index][name] = variable
    return previous

  def truncate(self, count: int) -> List[Frame]:
    """Keep the first count frames and return the removed ones"""
    removed = self.frames[count:]
    del self.frames[count:]
    return removed


class MemoryArena:
  """Owner of every container, addressed by handle"""

  def __init__(self, interner: Interner):
    self.interner = interner
    self._tables: Dict[int, ScopedTable] = {}
    self._next_handle = 0
    # alias counts of instance containers, keyed by handle
    self._aliases: Dict[int, int] = {}

  def allocate(self, frames: int = 1) -> int:
    handle = self._next_handle
    self._next_handle += 1
    self._tables[handle] = ScopedTable(frames)
    return handle

  def table(self, handle: int) -> ScopedTable:
    return self._tables[handle]

  def __contains__(self, handle: int) -> bool:
    return handle in self._tables

  def live_containers(self) -> int:
    return len(self._tables)

  # ==================== MODULES ====================

  def add_module(self, handle: int, name: int) -> int:
    """Create (or reuse) the child container `name` of handle"""
    table = self.table(handle)
    existing = table.modules.get(name)
    if existing is not None:
      return existing
    child = self.allocate()
    table.modules[name] = child
    logger.debug(f"module '{self.interner.resolve(name)}' -> container {child}")
    return child

  def get_module(self, handle: int, name: int) -> int:
    try:
      return self.table(handle).modules[name]
    except KeyError:
      raise ResolutionError(f"'{self.interner.resolve(name)}' is not a module") from None

  # ==================== LISTS ====================

  def index_key(self, position: int) -> int:
    return self.interner.intern(str(position))

  def make_list(self, items) -> ListValue:
    """Allocate a list container holding items under keys "0", "1", ..."""
    handle = self.allocate()
    frame = self.table(handle).get_scope(0)
    for position, item in enumerate(items):
      frame[self.index_key(position)] = Owned(item)
    return ListValue(handle)

  def list_items(self, value: ListValue) -> list:
    frame = self.table(value.handle).get_scope(0)
    items = []
    for position in range(len(frame)):
      variable = frame.get(self.index_key(position))
      if not isinstance(variable, Owned):
        break
      items.append(variable.value)
    return items

  def list_length(self, value: ListValue) -> int:
    return len(self.table(value.handle).get_scope(0))

  # ==================== VALUE LIFETIME ====================

  def track(self, handle: int) -> None:
    """Start counting aliases of an instance container, held once by its creator"""
    self._aliases[handle] = 1

  def aliases(self, handle: int) -> int:
    return self._aliases.get(handle, 0)

  def _aliased_handle(self, value) -> Optional[int]:
    """Counted container a value keeps alive: an instance, or a method bound to one"""
    if isinstance(value, InstanceValue):
      handle = value.handle
    elif isinstance(value, ScriptFunction) and value.context is not None:
      handle = value.context
    else:
      return None
    return handle if handle in self._aliases else None

  def clone_value(self, value):
    """Copy a value for a read: lists deep-copy, instances gain an alias"""
    if isinstance(value, ListValue):
      return self.make_list([self.clone_value(item) for item in self.list_items(value)])
    handle = self._aliased_handle(value)
    if handle is not None:
      self._aliases[handle] += 1
    return value

  def release_value(self, value) -> None:
    """Give up one owned value

    A list's container is freed at once, since every read copies it. An
    instance's container is freed when its last alias is released.
    """
    if isinstance(value, ListValue):
      if value.handle in self._tables:
        for item in self.list_items(value):
          self.release_value(item)
        del self._tables[value.handle]
      return

    handle = self._aliased_handle(value)
    if handle is None:
      return
    self._aliases[handle] -= 1
    if self._aliases[handle] == 0:
      del self._aliases[handle]
      table = self._tables.pop(handle)
      self.release_frames(table.frames)
      logger.debug(f"freed instance container {handle}")

  def release_variable(self, variable: Variable) -> None:
    self.release_value(variable.value if isinstance(variable, Owned) else variable.target)

  def release_frames(self, frames: List[Frame]) -> None:
    for frame in frames:
      for variable in frame.values():
        self.release_variable(variable)
