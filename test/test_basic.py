"""
Basic tests for the Lily core data structures
Interner, identifiers, scoped tables and the memory arena
"""

import pytest
from interner import Interner
from identifiers import ID, LiteralKind, MemberKind
from memory import MemoryArena, ScopedTable
from utilities import RedeclarationError, ResolutionError, format_number
from values import InstanceValue, Number, Str, ListValue, Owned, ScriptFunction, to_f32


class TestInterner:
  """Test name interning"""

  def test_sequential_ids(self):
    """New names receive sequential ids"""
    interner = Interner()
    assert interner.intern("a") == 0
    assert interner.intern("b") == 1
    assert interner.intern("c") == 2

  def test_deduplication(self):
    """Interning the same text twice returns the same id"""
    interner = Interner()
    first = interner.intern("value")
    interner.intern("other")
    assert interner.intern("value") == first
    assert len(interner) == 2

  def test_resolve_round_trip(self):
    """resolve returns the text an id was issued for"""
    interner = Interner()
    ident = interner.intern("hello")
    assert interner.resolve(ident) == "hello"

  def test_unknown_id_is_programming_error(self):
    """Resolving an id this interner never issued is an assertion failure"""
    interner = Interner()
    interner.intern("only")
    with pytest.raises(AssertionError):
      interner.resolve(5)

  def test_instances_are_independent(self):
    """Two interners do not share state"""
    first, second = Interner(), Interner()
    first.intern("x")
    assert "x" in first
    assert "x" not in second


class TestIdentifiers:
  """Test dotted identifier construction"""

  @pytest.fixture
  def interner(self):
    """Provide a fresh interner for each test"""
    return Interner()

  def test_single_component(self, interner):
    """A name without dots is a literal"""
    ident = ID.from_text("name", interner)
    assert isinstance(ident.kind, LiteralKind)
    assert ident.to_path() == [interner.intern("name")]

  def test_member_chain(self, interner):
    """Dotted text folds into a member chain whose path keeps the order"""
    ident = ID.from_text("a.b.c", interner)
    assert isinstance(ident.kind, MemberKind)
    assert ident.to_path() == [interner.intern(s) for s in ("a", "b", "c")]
    assert ident.display(interner) == "a.b.c"
    assert ident.last() == interner.intern("c")

  def test_numeric_member(self, interner):
    """List positions may appear as path components"""
    ident = ID.from_text("list.0", interner)
    assert ident.to_path()[-1] == interner.intern("0")

  def test_malformed(self, interner):
    """Empty segments are rejected"""
    with pytest.raises(ValueError):
      ID.from_text("a..b", interner)

  def test_equality_is_structural(self, interner):
    """Identifiers built from the same text compare equal"""
    assert ID.from_text("m.f", interner) == ID.from_text("m.f", interner)


class TestScopedTable:
  """Test declare/get/assign over frames"""

  def test_declare_get_round_trip(self):
    """A declared value is returned by get"""
    table = ScopedTable()
    table.declare(1, Owned(Number(3)), 0)
    assert table.get(1) == Owned(Number(3))

  def test_no_redeclaration_in_same_frame(self):
    """Declaring twice in one frame fails and keeps the first value"""
    table = ScopedTable()
    table.declare(1, Owned(Number(1)), 0)
    with pytest.raises(RedeclarationError):
      table.declare(1, Owned(Number(2)), 0)
    assert table.get(1) == Owned(Number(1))

  def test_declare_grows_frames(self):
    """Declaring at a deeper scope appends the missing frames"""
    table = ScopedTable()
    table.declare(1, Owned(Number(1)), 3)
    assert table.scopes() == 4
    assert table.get_scope(3)[1] == Owned(Number(1))

  def test_shadowing(self):
    """The innermost frame wins, and the outer value returns after truncation"""
    table = ScopedTable()
    table.declare(1, Owned(Number(1)), 0)
    table.declare(1, Owned(Number(2)), 1)
    assert table.get(1) == Owned(Number(2))
    table.truncate(1)
    assert table.get(1) == Owned(Number(1))

  def test_assign_targets_innermost(self):
    """Assignment updates only the innermost occurrence"""
    table = ScopedTable()
    table.declare(1, Owned(Number(1)), 0)
    table.declare(1, Owned(Number(2)), 1)
    table.assign(1, Owned(Number(9)))
    assert table.get_scope(1)[1] == Owned(Number(9))
    assert table.get_scope(0)[1] == Owned(Number(1))

  def test_assign_requires_declaration(self):
    """Assigning an unknown name fails"""
    with pytest.raises(ResolutionError):
      ScopedTable().assign(7, Owned(Number(1)))

  def test_get_missing(self):
    """Reading an unknown name fails"""
    with pytest.raises(ResolutionError):
      ScopedTable().get(7)


class TestMemoryArena:
  """Test container handles, modules and list storage"""

  @pytest.fixture
  def memory(self):
    """Provide a fresh arena for each test"""
    return MemoryArena(Interner())

  def test_add_module_is_idempotent(self, memory):
    """Adding an existing module returns the same handle"""
    root = memory.allocate()
    name = memory.interner.intern("m")
    first = memory.add_module(root, name)
    assert memory.add_module(root, name) == first
    assert memory.get_module(root, name) == first

  def test_get_module_missing(self, memory):
    """Looking up an absent module fails"""
    root = memory.allocate()
    with pytest.raises(ResolutionError):
      memory.get_module(root, memory.interner.intern("nope"))

  def test_list_entries_keyed_by_position(self, memory):
    """List containers hold one frame keyed by decimal index strings"""
    value = memory.make_list([Number(1), Str("two")])
    frame = memory.table(value.handle).get_scope(0)
    assert frame[memory.interner.intern("0")] == Owned(Number(1))
    assert frame[memory.interner.intern("1")] == Owned(Str("two"))
    assert memory.list_length(value) == 2

  def test_clone_deep_copies_lists(self, memory):
    """Cloning a list produces an independent container"""
    inner = memory.make_list([Number(1)])
    outer = memory.make_list([inner])
    copy = memory.clone_value(outer)
    assert copy.handle != outer.handle
    copied_inner = memory.list_items(copy)[0]
    assert isinstance(copied_inner, ListValue)
    assert copied_inner.handle != inner.handle

  def test_release_frees_nested_lists(self, memory):
    """Releasing a list frees its container and those of nested lists"""
    before = memory.live_containers()
    value = memory.make_list([memory.make_list([Number(1)])])
    memory.release_value(value)
    assert memory.live_containers() == before

  def test_instances_are_freed_with_their_last_alias(self, memory):
    """Instance containers count aliases and free their fields at zero"""
    before = memory.live_containers()
    handle = memory.allocate()
    memory.track(handle)
    memory.table(handle).declare(memory.interner.intern("xs"), Owned(memory.make_list([Number(1)])), 0)
    instance = InstanceValue(0, memory.interner.intern("P"), handle)
    alias = memory.clone_value(instance)
    assert memory.aliases(handle) == 2
    memory.release_value(instance)
    assert memory.live_containers() == before + 2
    memory.release_value(alias)
    assert memory.aliases(handle) == 0
    assert memory.live_containers() == before

  def test_bound_function_holds_its_instance(self, memory):
    """A function bound to an instance counts as an alias of it"""
    handle = memory.allocate()
    memory.track(handle)
    method = memory.clone_value(ScriptFunction(0, handle))
    assert memory.aliases(handle) == 2
    memory.release_value(InstanceValue(0, memory.interner.intern("P"), handle))
    memory.release_value(method)
    assert memory.aliases(handle) == 0

  def test_untracked_containers_are_not_counted(self, memory):
    """Functions bound to modules do not touch alias counts"""
    before = memory.live_containers()
    module = memory.allocate()
    memory.release_value(memory.clone_value(ScriptFunction(0, module)))
    assert memory.aliases(module) == 0
    assert memory.live_containers() == before + 1


class TestNumbers:
  """Test f32 number handling and rendering"""

  def test_numbers_are_single_precision(self):
    """Number payloads are rounded to 32-bit floats"""
    assert Number(0.1).value == to_f32(0.1)
    assert Number(0.1).value != 0.1

  def test_overflow_becomes_infinity(self):
    """Values beyond the f32 range become infinite"""
    assert Number(1e300).value == float('inf')

  def test_format_number(self):
    """Integral numbers print without a fraction, others minimally"""
    assert format_number(6.0) == "6"
    assert format_number(2.5) == "2.5"
    assert format_number(Number(0.1).value) == "0.1"
    assert format_number(float('inf')) == "inf"
    assert format_number(float('nan')) == "NaN"
