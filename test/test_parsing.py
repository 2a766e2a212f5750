"""
Parsing tests for the Lily language
Grammar output shape, operator precedence, tokenizer and parse errors
"""

import pytest
from pyparsing import ParseResults
from parsing import LilyGrammar, LilyTokenizer, create_parser, make_binary, make_unary, unwrap
from error_handling import LilyParseError, LilyTokenizerError, get_context_lines


class TestStatements:
  """Test statement parsing"""

  @pytest.fixture
  def grammar(self):
    """Provide a fresh grammar instance for each test"""
    return LilyGrammar()

  def test_declaration(self, grammar):
    """let binds a name to an expression"""
    result = grammar.parse_program("let a = 1")
    assert result == [("DECLARE", {"name": "a", "value": ("NUMBER", 1.0)})]

  def test_semicolons_are_optional(self, grammar):
    """Statements may be separated by semicolons, newlines or nothing"""
    with_semicolons = grammar.parse_program("let a = 1; let b = 2;")
    with_newlines = grammar.parse_program("let a = 1\nlet b = 2\n")
    assert with_semicolons == with_newlines
    assert len(with_semicolons) == 2

  def test_assignment_is_not_equality(self, grammar):
    """a = 1 assigns while a == 1 is an expression statement"""
    assert grammar.parse_program("a = 1")[0][0] == "ASSIGN"
    assert grammar.parse_program("a == 1")[0][0] == "EXPR"

  def test_indexed_assignment(self, grammar):
    """list[i] = v records the index expressions"""
    kind, value = grammar.parse_program("xs[0] = 5")[0]
    assert kind == "ASSIGN"
    assert value["indices"] == [("NUMBER", 0.0)]

  def test_function_definition(self, grammar):
    """func name params do body end"""
    kind, value = grammar.parse_program("func add a b do return a + b end")[0]
    assert kind == "FUNCTION_DEF"
    assert value["name"] == "add"
    assert value["params"] == ["a", "b"]
    assert value["body"][0][0] == "RETURN"

  def test_conditional_with_else(self, grammar):
    """if/else keeps both branches"""
    kind, value = grammar.parse_program("if x do y = 1 else y = 2 end")[0]
    assert kind == "IF"
    assert len(value["then"]) == 1
    assert len(value["else"]) == 1

  def test_conditional_without_else(self, grammar):
    """A missing else branch is empty"""
    _, value = grammar.parse_program("if x do y = 1 end")[0]
    assert value["else"] == []

  def test_while_loop(self, grammar):
    """while condition do body end"""
    kind, value = grammar.parse_program("while i < 5 do i = i + 1 end")[0]
    assert kind == "WHILE"
    assert value["condition"][0] == "OP"

  def test_struct(self, grammar):
    """Struct bodies accept an optional do"""
    plain = grammar.parse_program("struct P\n let x = 0\nend")
    with_do = grammar.parse_program("struct P do let x = 0 end")
    assert plain == with_do
    assert plain[0][0] == "STRUCT_DEF"

  def test_import(self, grammar):
    """import with and without alias"""
    _, aliased = grammar.parse_program('import "./mod.ly" as m')[0]
    _, plain = grammar.parse_program('import "lib.ly"')[0]
    assert (aliased["path"], aliased["alias"]) == ("./mod.ly", "m")
    assert (plain["path"], plain["alias"]) == ("lib.ly", None)

  def test_comments_are_ignored(self, grammar):
    """# comments run to end of line but not inside strings"""
    result = grammar.parse_program('# heading\nlet s = "a # b" # trailing\n')
    assert result == [("DECLARE", {"name": "s", "value": ("STRING", "a # b")})]

  def test_keywords_are_not_identifiers(self, grammar):
    """Keywords cannot be declared, but may prefix longer names"""
    with pytest.raises(LilyParseError):
      grammar.parse_program("let end = 1")
    assert grammar.parse_program("let done = 1")[0][1]["name"] == "done"

  def test_unterminated_block(self, grammar):
    """A block without end is a parse error with location"""
    with pytest.raises(LilyParseError) as info:
      grammar.parse_program("func f do\n  return 1\n", "f.ly")
    assert info.value.span.filename == "f.ly"


class TestExpressions:
  """Test expression parsing"""

  @pytest.fixture
  def grammar(self):
    """Provide a fresh grammar instance for each test"""
    return LilyGrammar()

  def test_literals(self, grammar):
    """Numbers, strings, chars and booleans"""
    assert grammar.parse_expression("2.5") == ("NUMBER", 2.5)
    assert grammar.parse_expression('"hi\\n"') == ("STRING", "hi\n")
    assert grammar.parse_expression("'c'") == ("CHAR", "c")
    assert grammar.parse_expression("true") == ("BOOL", True)

  def test_precedence(self, grammar):
    """* binds tighter than +"""
    result = grammar.parse_expression("a + b * 2")
    assert result[1]["op"] == "+"
    assert result[1]["rhs"][1]["op"] == "*"

  def test_left_associativity(self, grammar):
    """a - b - c groups as (a - b) - c"""
    result = grammar.parse_expression("a - b - c")
    assert result[1]["lhs"][1]["op"] == "-"
    assert result[1]["rhs"] == ("IDENTIFIER", "c")

  def test_parentheses(self, grammar):
    """Parentheses override precedence"""
    result = grammar.parse_expression("(a + b) * 2")
    assert result[1]["op"] == "*"
    assert result[1]["lhs"][1]["op"] == "+"

  def test_logical_and_comparison(self, grammar):
    """&& binds looser than comparison"""
    result = grammar.parse_expression("a < 1 && b >= 2")
    assert result[1]["op"] == "&&"
    assert result[1]["lhs"][1]["op"] == "<"
    assert result[1]["rhs"][1]["op"] == ">="

  def test_floor_division(self, grammar):
    """// is a single operator"""
    assert grammar.parse_expression("a // b")[1]["op"] == "//"

  def test_unary(self, grammar):
    """Prefix ! and -"""
    assert grammar.parse_expression("!done") == ("UNARY", {"op": "!", "operand": ("IDENTIFIER", "done")})
    assert grammar.parse_expression("-x")[1]["op"] == "-"

  def test_call_with_arguments(self, grammar):
    """Calls take comma separated expressions"""
    result = grammar.parse_expression("m.add(1, x + 2)")
    assert result[0] == "CALL"
    assert result[1]["name"] == "m.add"
    assert len(result[1]["args"]) == 2

  def test_new_is_a_call(self, grammar):
    """new T(args) parses as a call to T"""
    assert grammar.parse_expression("new Point(1, 2)") == grammar.parse_expression("Point(1, 2)")

  def test_list_and_chained_index(self, grammar):
    """List literals and chained indexing"""
    assert grammar.parse_expression("[1, 2]") == ("LIST", [("NUMBER", 1.0), ("NUMBER", 2.0)])
    result = grammar.parse_expression("grid[1][2]")
    assert result[0] == "INDEX"
    assert result[1]["target"] == ("IDENTIFIER", "grid")
    assert len(result[1]["indices"]) == 2

  def test_dotted_numeric_member(self, grammar):
    """list.0 is a dotted identifier"""
    assert grammar.parse_expression("list.0") == ("IDENTIFIER", "list.0")

  def test_increment(self, grammar):
    """Postfix ++ and -- on names"""
    assert grammar.parse_expression("i++") == ("INCREMENT", {"name": "i", "op": "++"})

  def test_mixed_precedence_levels(self, grammar):
    """Operands from every precedence level arrive as plain tuples"""
    result = grammar.parse_expression("!(a < 2) || -b * c ^ 2 >= d / 4 && e == f")

    def check(node):
      assert isinstance(node, tuple)
      if node[0] == "OP":
        check(node[1]["lhs"])
        check(node[1]["rhs"])
      elif node[0] == "UNARY":
        check(node[1]["operand"])

    check(result)
    assert result[1]["op"] == "||"
    and_node = result[1]["rhs"]
    assert and_node[1]["op"] == "&&"
    assert and_node[1]["lhs"][1]["op"] == ">="
    assert and_node[1]["lhs"][1]["lhs"][1]["rhs"][1]["op"] == "^"

  def test_grouped_operands_are_unwrapped(self):
    """Operator actions accept operands nested in ParseResults"""
    wrapped = ParseResults([("IDENTIFIER", "x")])
    assert unwrap(ParseResults([wrapped])) == ("IDENTIFIER", "x")
    assert make_binary([[wrapped, "+", ("NUMBER", 1.0)]]) == (
        "OP", {"op": "+", "lhs": ("IDENTIFIER", "x"), "rhs": ("NUMBER", 1.0)}
    )
    assert make_unary([["-", wrapped]]) == ("UNARY", {"op": "-", "operand": ("IDENTIFIER", "x")})

  def test_member_of_call_result(self, grammar):
    """Fields and methods can follow a call"""
    result = grammar.parse_expression("make().child")
    assert result == ("MEMBER", {
        "target": ("CALL", {"name": "make", "args": []}), "name": "child", "args": None
    })
    method = grammar.parse_expression("make(1).child().size(2)")
    assert method[1]["name"] == "size"
    assert method[1]["args"] == [("NUMBER", 2.0)]
    assert method[1]["target"][1]["name"] == "child"
    assert method[1]["target"][1]["args"] == []

  def test_member_after_index(self, grammar):
    """Indices and members chain in source order"""
    result = grammar.parse_expression("nodes[0][1].value")
    assert result[0] == "MEMBER"
    assert result[1]["target"][0] == "INDEX"
    assert len(result[1]["target"][1]["indices"]) == 2
    indexed = grammar.parse_expression("pair().1")
    assert indexed[1]["name"] == "1"


class TestTokenizer:
  """Test the standalone tokenizer"""

  def test_token_types(self):
    """Keywords, identifiers, numbers and operators are distinguished"""
    tokens = LilyTokenizer().tokenize("let x = 1 == 2")
    assert [t.type for t in tokens] == ["KEYWORD", "IDENTIFIER", "OPERATOR", "NUMBER", "OPERATOR", "NUMBER"]
    assert tokens[4].value == "=="

  def test_spans(self):
    """Spans record line and column"""
    tokens = LilyTokenizer("t.ly").tokenize("let a = 1\nprint(a)")
    print_token = tokens[4]
    assert print_token.value == "print"
    assert (print_token.span.start_line, print_token.span.start_col) == (2, 1)

  def test_comments_skipped(self):
    """Text after # is dropped"""
    tokens = create_parser().tokenize("x # comment")
    assert len(tokens) == 1

  def test_unknown_character(self):
    """Unknown characters raise a tokenizer error"""
    with pytest.raises(LilyTokenizerError):
      LilyTokenizer().tokenize("let a = @")


class TestErrorFormatting:
  """Test parse error context rendering"""

  def test_context_marker(self):
    """The error line is followed by a caret under the column"""
    context = get_context_lines("a\nbad line\nc", 2, 5)
    lines = context.split('\n')
    assert lines[1].endswith("bad line")
    assert lines[2].index("^") == 6 + 4
