"""
Error taxonomy and diagnostics for the rua interpreter
Lex, parse and runtime errors all carry the source line they came from
"""

from typing import List, Optional, Dict
from pyparsing import ParseBaseException
import re


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_diagnostic(
    message: str,
    line: int,
    filename: Optional[str] = None,
    column: int = 0,
    got: Optional[str] = None,
    context: Optional[str] = None,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable diagnostic structure"""
    return {
        'message': message,
        'line': line,
        'filename': filename,
        'column': column,
        'got': got,
        'context': context,
        'suggestions': suggestions or []
    }


def format_diagnostic(diagnostic: Dict) -> str:
    """Format a diagnostic the way the command line reports it"""
    filename = diagnostic['filename'] or "<input>"
    return f"rua: {filename}:{diagnostic['line']}: {diagnostic['message']}"


def format_diagnostic_details(diagnostic: Dict) -> str:
    """Format the long form of a diagnostic: context lines and suggestions"""
    parts = [format_diagnostic(diagnostic)]

    if diagnostic['got']:
        parts.append(f"  Got: {diagnostic['got']}")

    if diagnostic['context']:
        parts.append(diagnostic['context'])

    if diagnostic['suggestions']:
        parts.append("  Suggestions:")
        for suggestion in diagnostic['suggestions']:
            parts.append(f"    - {suggestion}")

    return '\n'.join(parts)


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int = 0, context_lines: int = 2) -> str:
    """Get context lines around the error"""
    lines = source_text.split('\n')
    if line_num < 1 or line_num > len(lines):
        return ""
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1 and col_num > 0:
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^ Error here")

    return '\n'.join(context_parts)


def extract_got(source_text: str, line_num: int, col_num: int) -> str:
    """Extract what was actually found at the error location"""
    lines = source_text.split('\n')

    if 1 <= line_num <= len(lines):
        error_line = lines[line_num - 1]
        if col_num <= len(error_line):
            start = max(0, col_num - 1)
            match = re.match(r'\S+', error_line[start:])
            if match:
                return f"'{match.group(0)[:12]}'"
        return "end of line"
    return "end of input"


def generate_suggestions(message: str, got: str) -> List[str]:
    """Generate hints for mistakes people make coming from other languages"""
    suggestions = []

    if "!=" in got:
        suggestions.append("Lua spells 'not equal' as '~='")

    if "+=" in got or "-=" in got or "++" in got:
        suggestions.append("Compound assignment does not exist; write 'x = x + 1'")

    if "&&" in got or "||" in got:
        suggestions.append("Use the keywords 'and' / 'or' for boolean logic")

    if got.startswith("'}") and "end" in message:
        suggestions.append("Blocks are closed with 'end', not braces")

    return suggestions


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class RuaError(Exception):
    """Base class for every error the interpreter reports to the user"""
    def __init__(self, message: str, line: int = 0, filename: Optional[str] = None):
        self.message = message
        self.line = line
        self.filename = filename
        super().__init__(message)

    def diagnostic(self) -> Dict:
        return make_diagnostic(self.message, self.line, self.filename)

    def report(self, filename: Optional[str] = None) -> str:
        """One-line diagnostic: rua: <file>:<line>: <message>"""
        diagnostic = self.diagnostic()
        if filename is not None:
            diagnostic['filename'] = filename
        return format_diagnostic(diagnostic)

    def __str__(self) -> str:
        return f"{self.line}: {self.message}" if self.line else self.message


class RuaLexError(RuaError):
    """Malformed token, unterminated string or comment"""
    pass


class RuaParseError(RuaError):
    """Unexpected token or grammar violation"""
    def __init__(self, message: str, line: int = 0, filename: Optional[str] = None,
                 column: int = 0, got: Optional[str] = None, context: Optional[str] = None,
                 suggestions: Optional[List[str]] = None):
        self.column = column
        self.got = got
        self.context = context
        self.suggestions = suggestions or []
        super().__init__(message, line, filename)

    def diagnostic(self) -> Dict:
        return make_diagnostic(
            self.message, self.line, self.filename,
            self.column, self.got, self.context, self.suggestions
        )

    def details(self) -> str:
        return format_diagnostic_details(self.diagnostic())


class RuaRuntimeError(RuaError):
    """Error raised while evaluating a program"""
    pass


class RuaTypeError(RuaRuntimeError):
    """Operation applied to a value of the wrong type"""
    pass


class BreakOutsideLoopError(RuaRuntimeError):
    """'break' executed with no enclosing loop"""
    pass


class StackOverflowError(RuaRuntimeError):
    """Call depth exceeded the configured limit"""
    pass


# ============================================================================
# PYPARSING TRANSLATION
# ============================================================================

def clean_parse_message(exc: ParseBaseException) -> str:
    """Strip pyparsing's location suffix from its message"""
    message = exc.msg or "syntax error"
    if message.startswith("Expected"):
        return f"syntax error: {message[0].lower()}{message[1:]}"
    return message


def enhance_parse_exception(exc: ParseBaseException, source_text: str,
                            filename: Optional[str] = None) -> RuaParseError:
    """Convert a pyparsing exception to a RuaParseError with context"""
    line_num = exc.lineno
    col_num = exc.column
    got = extract_got(source_text, line_num, col_num)
    message = clean_parse_message(exc)
    if "near" not in message:
        message = f"{message} near {got}"

    return RuaParseError(
        message=message,
        line=line_num,
        filename=filename,
        column=col_num,
        got=got,
        context=get_context_lines(source_text, line_num, col_num),
        suggestions=generate_suggestions(message, got)
    )
