"""
Lily Programming Language Parser
pyparsing grammar producing ("TYPE", value) tuples, plus a standalone tokenizer
used for token dumps
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List

from pyparsing import (
    Forward, Group, Keyword, Literal, MatchFirst, OpAssoc, Optional as PyParsingOptional,
    ParseBaseException, ParserElement, ParseResults, QuotedString, Regex, StringEnd, Suppress,
    ZeroOrMore, DelimitedList, infix_notation, one_of, python_style_comment
)

from error_handling import LilyErrorHandler, LilyParseError, LilyTokenizerError, SourceSpan

# Enable packrat parsing for performance
ParserElement.enable_packrat()

logger = logging.getLogger(__name__)


KEYWORDS = (
    'let', 'func', 'struct', 'return', 'if', 'else', 'while', 'do', 'end',
    'true', 'false', 'import', 'as', 'new', 'break',
)


@dataclass(frozen=True)
class Token:
    """Lily token with source information"""
    type: str
    value: Any
    span: SourceSpan

    def __str__(self) -> str:
        return f"{self.type}({self.value!r})"


STRING_ESCAPES = {
    'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', '"': '"', "'": "'", '0': '\0',
}


def process_escapes(s: str) -> str:
    """Process backslash escape sequences in string and char literals"""
    result = []
    i = 0
    while i < len(s):
        if s[i] == '\\' and i + 1 < len(s):
            result.append(STRING_ESCAPES.get(s[i + 1], s[i + 1]))
            i += 2
        else:
            result.append(s[i])
            i += 1
    return ''.join(result)


class LilyTokenizer:
    """Lily tokenizer for the --tokens view"""

    def __init__(self, filename: str = "<input>"):
        self.filename = filename
        self._setup_token_patterns()

    def _setup_token_patterns(self):
        """Setup all token patterns for Lily"""
        self.string_pattern = re.compile(r'"(?:[^"\\]|\\.)*"')
        self.char_pattern = re.compile(r"'(?:[^'\\]|\\.)'")
        self.number_pattern = re.compile(r'\d+(?:\.\d+)?')
        self.identifier_pattern = re.compile(r'[A-Za-z_][A-Za-z0-9_]*(?:\.(?:[A-Za-z_][A-Za-z0-9_]*|\d+))*')

        # Longest operators first
        operators = ['==', '!=', '<=', '>=', '&&', '||', '++', '--', '//',
                     '+', '-', '*', '/', '^', '<', '>', '=', '!']
        self.operator_pattern = re.compile('|'.join(re.escape(op) for op in operators))
        self.delimiters = {'(', ')', '[', ']', ',', ';', '.'}

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize Lily source code"""
        tokens = []

        for line_num, line in enumerate(text.split('\n'), 1):
            pos = 0
            while pos < len(line):
                char = line[pos]
                if char.isspace():
                    pos += 1
                    continue
                if char == '#':
                    break

                token = self._match_token_at_position(line, pos, line_num)
                if token is None:
                    span = SourceSpan(self.filename, line_num, pos + 1, line_num, pos + 2, char)
                    raise LilyTokenizerError(f"Unknown character '{char}'", span)
                tokens.append(token)
                pos += len(token.span.text)

        return tokens

    def _span(self, line_num: int, pos: int, text: str) -> SourceSpan:
        return SourceSpan(self.filename, line_num, pos + 1, line_num, pos + len(text) + 1, text)

    def _match_token_at_position(self, line: str, pos: int, line_num: int):
        """Match a token at a specific position using priority order"""
        for token_type, pattern in (("STRING", self.string_pattern), ("CHAR", self.char_pattern)):
            match = pattern.match(line, pos)
            if match:
                text = match.group(0)
                return Token(token_type, process_escapes(text[1:-1]), self._span(line_num, pos, text))

        match = self.number_pattern.match(line, pos)
        if match:
            text = match.group(0)
            return Token("NUMBER", float(text), self._span(line_num, pos, text))

        match = self.identifier_pattern.match(line, pos)
        if match:
            text = match.group(0)
            token_type = "KEYWORD" if text in KEYWORDS else "IDENTIFIER"
            return Token(token_type, text, self._span(line_num, pos, text))

        match = self.operator_pattern.match(line, pos)
        if match:
            text = match.group(0)
            return Token("OPERATOR", text, self._span(line_num, pos, text))

        if line[pos] in self.delimiters:
            return Token("DELIMITER", line[pos], self._span(line_num, pos, line[pos]))

        return None


# ============================================================================
# PARSE ACTIONS
# ============================================================================

def unwrap(item):
    """Operands from a tighter infix level may arrive wrapped in ParseResults"""
    while isinstance(item, ParseResults):
        item = item[0]
    return item


def make_binary(tokens):
    """Fold a left-associative operator run into nested OP tuples"""
    items = tokens[0]
    result = unwrap(items[0])
    for i in range(1, len(items), 2):
        result = ("OP", {"op": items[i], "lhs": result, "rhs": unwrap(items[i + 1])})
    return result


def make_unary(tokens):
    op, operand = tokens[0][0], unwrap(tokens[0][1])
    return ("UNARY", {"op": op, "operand": operand})


def make_postfix(tokens):
    """Fold [i] and .member / .method(args) suffixes onto their target

    Runs of consecutive indices collapse into one INDEX tuple.
    """
    result = unwrap(tokens[0])
    indices = []
    for suffix in tokens[1]:
        kind, value = unwrap(suffix)
        if kind == "AT":
            indices.append(unwrap(value))
            continue
        if indices:
            result = ("INDEX", {"target": result, "indices": indices})
            indices = []
        result = ("MEMBER", {"target": result, "name": value["name"], "args": value["args"]})
    if indices:
        result = ("INDEX", {"target": result, "indices": indices})
    return result


class LilyGrammar:
    """Lily grammar definition using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    def _setup_grammar(self):
        """Setup the Lily grammar"""

        expression = Forward()
        statement = Forward()

        # Keywords
        kw = {name: Keyword(name) for name in KEYWORDS}
        reserved = MatchFirst(list(kw.values()))

        # Literals
        number = Regex(r'\d+(?:\.\d+)?').set_parse_action(lambda t: ("NUMBER", float(t[0])))
        string_literal = QuotedString('"', esc_char='\\', unquote_results=False).set_parse_action(
            lambda t: ("STRING", process_escapes(t[0][1:-1]))
        )
        char_literal = Regex(r"'(?:[^'\\]|\\.)'").set_parse_action(
            lambda t: ("CHAR", process_escapes(t[0][1:-1]))
        )
        bool_literal = (kw['true'] | kw['false']).set_parse_action(lambda t: ("BOOL", t[0] == 'true'))

        # Identifiers: plain names and dotted paths (list positions allowed after a dot)
        name = ~reserved + Regex(r'[A-Za-z_][A-Za-z0-9_]*')
        dotted_name = ~reserved + Regex(r'[A-Za-z_][A-Za-z0-9_]*(?:\.(?:[A-Za-z_][A-Za-z0-9_]*|\d+))*')
        identifier = dotted_name.copy().set_parse_action(lambda t: ("IDENTIFIER", t[0]))

        # Calls and construction
        arguments = Group(PyParsingOptional(DelimitedList(expression)))
        call = (dotted_name + Suppress("(") + arguments + Suppress(")")).set_parse_action(
            lambda t: ("CALL", {"name": t[0], "args": [unwrap(arg) for arg in t[1]]})
        )
        new_instance = (Suppress(kw['new']) + call).set_parse_action(lambda t: unwrap(t[0]))

        list_literal = (Suppress("[") + arguments + Suppress("]")).set_parse_action(
            lambda t: ("LIST", [unwrap(item) for item in t[0]])
        )

        increment = (dotted_name + (Literal("++") | Literal("--"))).set_parse_action(
            lambda t: ("INCREMENT", {"name": t[0], "op": t[1]})
        )

        atom = (
            number |
            string_literal |
            char_literal |
            bool_literal |
            new_instance |
            call |
            list_literal |
            increment |
            identifier |
            (Suppress("(") + expression + Suppress(")"))
        )

        index_suffix = Suppress("[") + expression + Suppress("]")

        # Postfix chains on any atom: xs[0], make().field, make().method(1)
        at_suffix = (Suppress("[") + expression + Suppress("]")).set_parse_action(
            lambda t: ("AT", unwrap(t[0]))
        )
        member_suffix = (
            Suppress(".") + Regex(r'[A-Za-z_][A-Za-z0-9_]*|\d+') +
            PyParsingOptional(Suppress("(") + arguments + Suppress(")"))
        ).set_parse_action(lambda t: ("DOT", {
            "name": t[0],
            "args": [unwrap(arg) for arg in t[1]] if len(t) > 1 else None,
        }))
        operand = (atom + Group(ZeroOrMore(at_suffix | member_suffix))).set_parse_action(make_postfix)

        expression <<= infix_notation(operand, [
            (one_of("! -"), 1, OpAssoc.RIGHT, make_unary),
            (Literal("^"), 2, OpAssoc.LEFT, make_binary),
            (one_of("* // /"), 2, OpAssoc.LEFT, make_binary),
            (one_of("+ -"), 2, OpAssoc.LEFT, make_binary),
            (one_of("<= >= < >"), 2, OpAssoc.LEFT, make_binary),
            (one_of("== !="), 2, OpAssoc.LEFT, make_binary),
            (Literal("&&"), 2, OpAssoc.LEFT, make_binary),
            (Literal("||"), 2, OpAssoc.LEFT, make_binary),
        ])

        # Statements
        separator = Suppress(";")
        block = Group(ZeroOrMore(statement | separator))
        assign_eq = Suppress(Regex(r'=(?!=)'))

        let_stmt = (Suppress(kw['let']) + dotted_name + assign_eq + expression).set_parse_action(
            lambda t: ("DECLARE", {"name": t[0], "value": unwrap(t[1])})
        )

        assign_stmt = (dotted_name + Group(ZeroOrMore(index_suffix)) + assign_eq + expression).set_parse_action(
            lambda t: ("ASSIGN", {"name": t[0], "indices": [unwrap(i) for i in t[1]], "value": unwrap(t[2])})
        )

        func_def = (
            Suppress(kw['func']) + name + Group(ZeroOrMore(name)) +
            Suppress(kw['do']) + block + Suppress(kw['end'])
        ).set_parse_action(
            lambda t: ("FUNCTION_DEF", {"name": t[0], "params": list(t[1]), "body": list(t[2])})
        )

        struct_def = (
            Suppress(kw['struct']) + name + PyParsingOptional(Suppress(kw['do'])) +
            block + Suppress(kw['end'])
        ).set_parse_action(lambda t: ("STRUCT_DEF", {"name": t[0], "body": list(t[1])}))

        if_stmt = (
            Suppress(kw['if']) + expression + Suppress(kw['do']) + block +
            Group(PyParsingOptional(Suppress(kw['else']) + block)) + Suppress(kw['end'])
        ).set_parse_action(lambda t: ("IF", {
            "condition": unwrap(t[0]),
            "then": list(t[1]),
            "else": list(t[2][0]) if len(t[2]) else [],
        }))

        while_stmt = (
            Suppress(kw['while']) + expression + Suppress(kw['do']) + block + Suppress(kw['end'])
        ).set_parse_action(lambda t: ("WHILE", {"condition": unwrap(t[0]), "body": list(t[1])}))

        return_stmt = (Suppress(kw['return']) + expression).set_parse_action(lambda t: ("RETURN", unwrap(t[0])))
        break_stmt = kw['break'].copy().set_parse_action(lambda t: ("BREAK", None))

        def make_import(s, loc, t):
            return ("IMPORT", {"path": t[0], "alias": t[1] if len(t) > 1 else None, "loc": loc})

        import_stmt = (
            Suppress(kw['import']) + QuotedString('"', esc_char='\\') +
            PyParsingOptional(Suppress(kw['as']) + name)
        ).set_parse_action(make_import)

        expression_stmt = expression.copy().set_parse_action(lambda t: ("EXPR", unwrap(t[0])))

        statement <<= (
            let_stmt |
            func_def |
            struct_def |
            if_stmt |
            while_stmt |
            return_stmt |
            break_stmt |
            import_stmt |
            assign_stmt |
            expression_stmt
        )

        program = ZeroOrMore(statement | separator) + StringEnd()
        program.ignore(python_style_comment)

        self.program = program
        self.statement = statement
        self.expression = expression
        self.identifier = identifier

    def parse_program(self, text: str, filename: str = "<input>") -> List[tuple]:
        """Parse a complete Lily program into a list of statement tuples"""
        try:
            result = self.program.parse_string(text, parse_all=True)
        except ParseBaseException as e:
            raise LilyErrorHandler(text, filename).enhance_parse_exception(e) from None
        statements = list(result)
        if self.debug:
            logger.debug(f"parsed {len(statements)} top-level statements from {filename}")
        return statements

    def parse_expression(self, text: str, filename: str = "<input>") -> tuple:
        """Parse a single Lily expression"""
        try:
            return self.expression.parse_string(text, parse_all=True)[0]
        except ParseBaseException as e:
            raise LilyErrorHandler(text, filename).enhance_parse_exception(e) from None


class LilyParser:
    """Main Lily parser combining tokenizer and grammar"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = LilyGrammar(debug)

    def parse_file(self, filepath: str) -> List[tuple]:
        """Parse a Lily source file"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise LilyParseError(f"File not found: {filepath}") from None
        except UnicodeDecodeError as e:
            raise LilyParseError(f"Cannot decode file {filepath}: {e}") from None
        return self.grammar.parse_program(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> List[tuple]:
        """Parse Lily source code from string"""
        return self.grammar.parse_program(text, filename)

    def parse_expression(self, text: str, filename: str = "<input>") -> tuple:
        return self.grammar.parse_expression(text, filename)

    def tokenize(self, text: str, filename: str = "<input>") -> List[Token]:
        """Tokenize Lily source code"""
        return LilyTokenizer(filename).tokenize(text)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> LilyParser:
    """Create a Lily parser"""
    return LilyParser(debug=debug)


def create_debug_parser() -> LilyParser:
    """Create a Lily parser with debug enabled"""
    return LilyParser(debug=True)
