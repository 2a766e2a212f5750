"""
Error reporting for the Lily parser with detailed, source-anchored messages
"""

from dataclasses import dataclass
from typing import List, Optional
from pyparsing import ParseBaseException
import re


@dataclass(frozen=True)
class SourceSpan:
    """Source location information"""
    filename: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    text: str = ""

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_col}"
        return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


class LilyParseError(Exception):
    """Lily parsing error with location, context and suggestions"""

    def __init__(self, message: str, span: Optional[SourceSpan] = None, context: str = "",
                 expected: Optional[List[str]] = None, got: Optional[str] = None,
                 suggestions: Optional[List[str]] = None):
        self.message = message
        self.span = span
        self.context = context
        self.expected = expected or []
        self.got = got
        self.suggestions = suggestions or []
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        if self.span:
            result = f"Parse error at {self.span}: {self.message}"
        else:
            result = f"Parse error: {self.message}"
        if self.expected:
            result += f"\n  Expected: {', '.join(self.expected)}"
        if self.got:
            result += f"\n  Got: {self.got}"
        if self.context:
            result += f"\n  Context:\n{self.context}"
        if self.suggestions:
            result += "\n  Suggestions:"
            for suggestion in self.suggestions:
                result += f"\n    - {suggestion}"
        return result


class LilyTokenizerError(LilyParseError):
    """Unknown character met by the standalone tokenizer"""


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 2) -> str:
    """Get numbered context lines around the error with a caret marker"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1:
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^ Error here")

    return '\n'.join(context_parts)


def extract_expected(exc: ParseBaseException) -> List[str]:
    """Extract expected tokens from a pyparsing exception message"""
    expected_match = re.search(r"Expected\s+(.+?)(?:,\s+found|\s+\(at|$)", str(exc))
    if expected_match:
        return [expected_match.group(1)]
    return ["valid syntax"]


def extract_got(source_text: str, line_num: int, col_num: int) -> str:
    """Extract what was actually found at the error location"""
    lines = source_text.split('\n')

    if 0 < line_num <= len(lines):
        error_line = lines[line_num - 1]
        start = max(0, col_num - 1)
        got_text = error_line[start:start + 12].strip()
        if got_text:
            return f"'{got_text}'"
        return "end of line"
    return "end of input"


def generate_suggestions(got: str, expected: List[str]) -> List[str]:
    """Generate hints for common Lily syntax slips"""
    suggestions = []
    expected_text = ' '.join(expected)

    if "{" in got or "}" in got:
        suggestions.append("Lily blocks use 'do' ... 'end' instead of braces")

    if "end" in expected_text:
        suggestions.append("Every 'do' block (func, if, while, struct) must be closed with 'end'")

    if "'do'" in expected_text or "do" == expected_text.strip("'\""):
        suggestions.append("Function, if and while headers are followed by 'do'")

    if got.startswith("'=") and "==" not in got:
        suggestions.append("Use 'let name = value' to declare a new variable")

    if got.startswith("'func") or got.startswith("'let"):
        suggestions.append("Keywords cannot be used as names")

    return suggestions


def enhance_parse_exception(exc: ParseBaseException, source_text: str, filename: str) -> LilyParseError:
    """Convert a pyparsing exception into a LilyParseError"""
    line_num = exc.lineno
    col_num = exc.column
    expected = extract_expected(exc)
    got = extract_got(source_text, line_num, col_num)
    span = SourceSpan(filename, line_num, col_num, line_num, col_num + 1, "")

    return LilyParseError(
        message=exc.msg,
        span=span,
        context=get_context_lines(source_text, line_num, col_num),
        expected=expected,
        got=got,
        suggestions=generate_suggestions(got, expected),
    )


class LilyErrorHandler:
    """Per-source helper turning parser failures into LilyParseErrors"""

    def __init__(self, source_text: str, filename: str = "<input>"):
        self.source_text = source_text
        self.filename = filename

    def enhance_parse_exception(self, exc: ParseBaseException) -> LilyParseError:
        return enhance_parse_exception(exc, self.source_text, self.filename)

    def error_at(self, message: str, location: int) -> LilyParseError:
        """Build an error for a character offset into the source"""
        line_num = self.source_text.count('\n', 0, location) + 1
        line_start = self.source_text.rfind('\n', 0, location) + 1
        col_num = location - line_start + 1
        span = SourceSpan(self.filename, line_num, col_num, line_num, col_num + 1, "")
        return LilyParseError(
            message, span, get_context_lines(self.source_text, line_num, col_num)
        )
