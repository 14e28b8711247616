"""
Rua lexer and parser
A hand-written tokenizer validates the source and produces the token stream;
a pyparsing grammar builds the AST (see syntax_tree.py) from the same text
"""

from typing import Dict, List, Tuple
from dataclasses import dataclass
import re

from pyparsing import (
    DelimitedList, Forward, Group, Keyword, Literal, MatchFirst, Opt,
    ParseBaseException, ParseFatalException, ParserElement, Regex, StringEnd,
    Suppress, ZeroOrMore, lineno, one_of
)

from error_handling import RuaError, RuaLexError, RuaParseError, enhance_parse_exception
from utilities import debug_trace
from values import parse_numeral
from syntax_tree import (
    make_assign, make_binary, make_block, make_boolean, make_break, make_call,
    make_call_stmt, make_do, make_function_decl, make_function_expr,
    make_generic_for, make_if, make_index, make_keyed_field, make_local,
    make_local_function, make_name, make_nil, make_number_literal,
    make_numeric_for, make_paren, make_positional_field, make_return,
    make_string_literal, make_table_constructor, make_unary, make_while
)

# Enable packrat parsing for performance
ParserElement.enable_packrat()


KEYWORDS = {
    'and', 'break', 'do', 'else', 'elseif', 'end', 'false', 'for', 'function',
    'if', 'in', 'local', 'nil', 'not', 'or', 'return', 'then', 'true', 'while',
}

OPERATORS = [
    '..', '==', '~=', '<=', '>=', '//',
    '+', '-', '*', '/', '%', '^', '#', '<', '>', '=',
    '(', ')', '{', '}', '[', ']', ';', ',', '.',
]

ESCAPES = {
    'n': '\n', 't': '\t', '\\': '\\', "'": "'", '"': '"',
    'r': '\r', 'a': '\a', 'b': '\b', 'f': '\f', 'v': '\v',
}

NAME_PATTERN = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
NUMBER_PATTERN = re.compile(r'0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
SHORT_STRING_PATTERN = re.compile(r'"(?:[^"\\\n]|\\.)*"|\'(?:[^\'\\\n]|\\.)*\'')
LONG_BRACKET_OPEN = re.compile(r'\[(=*)\[')
LONG_STRING_PATTERN = re.compile(r'\[(=*)\[.*?\]\1\]', re.DOTALL)
LONG_COMMENT_PATTERN = re.compile(r'--\[(=*)\[.*?\]\1\]', re.DOTALL)
SHORT_COMMENT_PATTERN = re.compile(r'--[^\n]*')
OPERATOR_PATTERN = re.compile('|'.join(re.escape(op) for op in sorted(OPERATORS, key=len, reverse=True)))


@dataclass(frozen=True)
class Token:
    """Rua token: kind, payload and the source line it starts on"""
    type: str
    value: object
    line: int

    def __str__(self) -> str:
        if self.type == "STRING":
            return f"{self.line}: {self.type}({self.value!r})"
        return f"{self.line}: {self.type}({self.value})"


# ============================================================================
# LITERAL HELPERS (shared by the tokenizer and the grammar)
# ============================================================================

def decode_escapes(body: str, line: int) -> str:
    """Resolve backslash escapes in the body of a short string"""
    result = []
    i = 0
    while i < len(body):
        if body[i] == '\\':
            escape = body[i + 1] if i + 1 < len(body) else ''
            if escape not in ESCAPES:
                raise RuaLexError(f"invalid escape sequence '\\{escape}'", line)
            result.append(ESCAPES[escape])
            i += 2
        else:
            result.append(body[i])
            i += 1
    return ''.join(result)


def long_bracket_body(literal: str) -> str:
    """Contents of [==[ ... ]==]; a newline right after the opening bracket is dropped"""
    level = literal.index('[', 1) - 1
    body = literal[level + 2:len(literal) - level - 2]
    if body.startswith('\r\n'):
        return body[2:]
    if body.startswith('\n'):
        return body[1:]
    return body


# ============================================================================
# TOKENIZER
# ============================================================================

class RuaTokenizer:
    """Rua tokenizer: source text to (kind, value, line) tokens, or a RuaLexError"""

    def __init__(self, filename: str = "<input>"):
        self.filename = filename

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize the whole source; comments and whitespace are dropped"""
        tokens = []
        pos = 0
        line = 1

        try:
            while pos < len(text):
                char = text[pos]
                if char == '\n':
                    line += 1
                    pos += 1
                elif char.isspace():
                    pos += 1
                elif text.startswith('--', pos):
                    end = self._skip_comment(text, pos, line)
                    line += text.count('\n', pos, end)
                    pos = end
                else:
                    token, end = self._match_token_at_position(text, pos, line)
                    tokens.append(token)
                    line += text.count('\n', pos, end)
                    pos = end
        except RuaLexError as e:
            e.filename = self.filename
            raise

        tokens.append(Token("EOF", "<eof>", line))
        return tokens

    def _skip_comment(self, text: str, pos: int, line: int) -> int:
        """Return the position right after the comment starting at `pos`"""
        if LONG_BRACKET_OPEN.match(text, pos + 2):
            match = LONG_COMMENT_PATTERN.match(text, pos)
            if not match:
                raise RuaLexError("unfinished long comment", line)
            return match.end()
        return SHORT_COMMENT_PATTERN.match(text, pos).end()

    def _match_token_at_position(self, text: str, pos: int, line: int) -> Tuple[Token, int]:
        """Match a token at a specific position using priority order"""
        char = text[pos]

        # Priority 1: short strings
        if char in '"\'':
            match = SHORT_STRING_PATTERN.match(text, pos)
            if not match:
                raise RuaLexError(f"unfinished string near '{self._snippet(text, pos)}'", line)
            value = decode_escapes(match.group(0)[1:-1], line)
            return Token("STRING", value, line), match.end()

        # Priority 2: long strings
        if char == '[' and LONG_BRACKET_OPEN.match(text, pos):
            match = LONG_STRING_PATTERN.match(text, pos)
            if not match:
                raise RuaLexError("unfinished long string", line)
            return Token("STRING", long_bracket_body(match.group(0)), line), match.end()

        # Priority 3: numbers
        if char.isdigit() or (char == '.' and text[pos + 1:pos + 2].isdigit()):
            match = NUMBER_PATTERN.match(text, pos)
            end = match.end()
            if end < len(text) and (text[end].isalnum() or text[end] in '_.'):
                malformed = re.match(r'[\w.]+', text[pos:]).group(0)
                raise RuaLexError(f"malformed number near '{malformed}'", line)
            return Token("NUMBER", parse_numeral(match.group(0)), line), end

        # Priority 4: operators and punctuation (longest match first)
        match = OPERATOR_PATTERN.match(text, pos)
        if match:
            return Token("OPERATOR", match.group(0), line), match.end()

        # Priority 5: names and keywords
        match = NAME_PATTERN.match(text, pos)
        if match:
            word = match.group(0)
            kind = "KEYWORD" if word in KEYWORDS else "NAME"
            return Token(kind, word, line), match.end()

        raise RuaLexError(f"unexpected symbol near '{char}'", line)

    @staticmethod
    def _snippet(text: str, pos: int) -> str:
        return text[pos:].split('\n', 1)[0][:20]


# ============================================================================
# GRAMMAR
# ============================================================================

def kw(word: str) -> ParserElement:
    return Suppress(Keyword(word))


def sym(text: str) -> ParserElement:
    return Suppress(Literal(text))


class RuaGrammar:
    """Rua grammar definition using pyparsing; parse actions build AST nodes"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    def _setup_grammar(self):
        """Setup the grammar, lowest precedence last"""

        # Forward declarations for recursive structures
        expression = Forward()
        block = Forward()
        unary_expr = Forward()
        concat_expr = Forward()

        reserved = MatchFirst([Keyword(word) for word in sorted(KEYWORDS)])

        def name() -> ParserElement:
            return ~reserved + Regex(NAME_PATTERN)

        def line_of(s: str, loc: int) -> int:
            return lineno(loc, s)

        # Literals
        nil_literal = Keyword("nil").set_parse_action(lambda s, l, t: make_nil(line_of(s, l)))
        true_literal = Keyword("true").set_parse_action(lambda s, l, t: make_boolean(True, line_of(s, l)))
        false_literal = Keyword("false").set_parse_action(lambda s, l, t: make_boolean(False, line_of(s, l)))
        number = Regex(NUMBER_PATTERN).set_parse_action(
            lambda s, l, t: make_number_literal(parse_numeral(t[0]), line_of(s, l))
        )
        short_string = Regex(SHORT_STRING_PATTERN).set_parse_action(
            lambda s, l, t: make_string_literal(decode_escapes(t[0][1:-1], line_of(s, l)), line_of(s, l))
        )
        long_string = Regex(LONG_STRING_PATTERN).set_parse_action(
            lambda s, l, t: make_string_literal(long_bracket_body(t[0]), line_of(s, l))
        )
        string = short_string | long_string

        explist = DelimitedList(expression, ",")
        name_list = Group(DelimitedList(name(), ","))

        # Function bodies: '(' [params] ')' block end
        params = Group(Opt(DelimitedList(name(), ",")))
        funcbody = sym("(") + params + sym(")") + block + kw("end")

        function_expr = (kw("function") + funcbody).set_parse_action(
            lambda s, l, t: make_function_expr(list(t[0]), t[1], None, line_of(s, l))
        )

        # Table constructors
        bracket_field = (sym("[") + expression + sym("]") + sym("=") + expression).set_parse_action(
            lambda s, l, t: make_keyed_field(t[0], t[1], line_of(s, l))
        )
        named_field = (name() + sym("=") + expression).set_parse_action(
            lambda s, l, t: make_keyed_field(make_string_literal(t[0], line_of(s, l)), t[1], line_of(s, l))
        )
        positional_field = expression.copy().set_parse_action(
            lambda s, l, t: make_positional_field(t[0], line_of(s, l))
        )
        field = bracket_field | named_field | positional_field
        field_sep = sym(",") | sym(";")
        table_constructor = (
            sym("{") + Group(Opt(field + ZeroOrMore(field_sep + field) + Opt(field_sep))) + sym("}")
        ).set_parse_action(lambda s, l, t: make_table_constructor(list(t[0]), line_of(s, l)))

        # Prefix expressions: Name or '(' exp ')' followed by index, field and call suffixes
        name_ref = name().set_parse_action(lambda s, l, t: make_name(t[0], line_of(s, l)))
        paren_expr = (sym("(") + expression + sym(")")).set_parse_action(
            lambda s, l, t: make_paren(t[0], line_of(s, l))
        )
        call_args = (
            (sym("(") + Group(Opt(explist)) + sym(")")).set_parse_action(lambda t: [list(t[0])])
            | table_constructor.copy().add_parse_action(lambda t: [[t[0]]])
            | string.copy().add_parse_action(lambda t: [[t[0]]])
        )
        index_suffix = (sym("[") + expression + sym("]")).set_parse_action(
            lambda s, l, t: ("index", t[0], line_of(s, l))
        )
        field_suffix = (sym(".") + name()).set_parse_action(
            lambda s, l, t: ("index", make_string_literal(t[0], line_of(s, l)), line_of(s, l))
        )
        call_suffix = call_args.copy().add_parse_action(
            lambda s, l, t: ("call", list(t[0]), line_of(s, l))
        )
        suffix = index_suffix | field_suffix | call_suffix
        prefix_expr = ((name_ref | paren_expr) + ZeroOrMore(suffix)).set_parse_action(self._fold_suffixes)

        simple_expr = (
            nil_literal | true_literal | false_literal | number | string |
            function_expr | table_constructor | prefix_expr
        )

        # Operators, highest precedence first.
        # '^' is right associative and its right operand may carry a unary operator (2^-1)
        power_expr = (simple_expr + Opt(Literal("^") + unary_expr)).set_parse_action(self._fold_left)
        unary_operator = Keyword("not") | Literal("#") | Literal("-")
        unary_expr <<= (
            (unary_operator + unary_expr).set_parse_action(
                lambda s, l, t: make_unary(t[0], t[1], line_of(s, l))
            )
            | power_expr
        )
        mul_expr = (unary_expr + ZeroOrMore(one_of("* // / %") + unary_expr)).set_parse_action(self._fold_left)
        add_expr = (mul_expr + ZeroOrMore(one_of("+ -") + mul_expr)).set_parse_action(self._fold_left)
        # '..' is right associative
        concat_expr <<= (add_expr + Opt(Literal("..") + concat_expr)).set_parse_action(self._fold_left)
        compare_expr = (
            concat_expr + ZeroOrMore(one_of("<= >= == ~= < >") + concat_expr)
        ).set_parse_action(self._fold_left)
        and_expr = (compare_expr + ZeroOrMore(Keyword("and") + compare_expr)).set_parse_action(self._fold_left)
        or_expr = (and_expr + ZeroOrMore(Keyword("or") + and_expr)).set_parse_action(self._fold_left)
        expression <<= or_expr

        # Statements
        local_function = (kw("local") + kw("function") + name() + funcbody).set_parse_action(
            lambda s, l, t: make_local_function(
                t[0], make_function_expr(list(t[1]), t[2], t[0], line_of(s, l)), line_of(s, l)
            )
        )
        local_stat = (kw("local") + name_list + Opt(sym("=") + Group(explist))).set_parse_action(
            lambda s, l, t: make_local(list(t[0]), list(t[1]) if len(t) > 1 else [], line_of(s, l))
        )
        function_stat = (
            kw("function") + Group(name() + ZeroOrMore(sym(".") + name())) + funcbody
        ).set_parse_action(self._make_function_stat)
        do_stat = (kw("do") + block + kw("end")).set_parse_action(
            lambda s, l, t: make_do(t[0], line_of(s, l))
        )
        while_stat = (kw("while") + expression + kw("do") + block + kw("end")).set_parse_action(
            lambda s, l, t: make_while(t[0], t[1], line_of(s, l))
        )
        if_stat = (
            kw("if") + expression + kw("then") + block
            + ZeroOrMore(Group(kw("elseif") + expression + kw("then") + block))
            + Opt(Group(kw("else") + block))
            + kw("end")
        ).set_parse_action(self._make_if)
        numeric_for = (
            kw("for") + name() + sym("=") + expression + sym(",") + expression
            + Opt(sym(",") + expression) + kw("do") + block + kw("end")
        ).set_parse_action(self._make_numeric_for)
        generic_for = (
            kw("for") + name_list + kw("in") + Group(explist) + kw("do") + block + kw("end")
        ).set_parse_action(lambda s, l, t: make_generic_for(list(t[0]), list(t[1]), t[2], line_of(s, l)))
        break_stat = Keyword("break").set_parse_action(lambda s, l, t: make_break(line_of(s, l)))
        expr_stat = (
            Group(DelimitedList(prefix_expr, ",")) + Opt(sym("=") + Group(explist))
        ).set_parse_action(self._make_expr_stat)
        return_stat = (kw("return") + Group(Opt(explist)) + Opt(sym(";"))).set_parse_action(
            lambda s, l, t: make_return(list(t[0]), line_of(s, l))
        )

        statement = (
            sym(";") | local_function | local_stat | function_stat | do_stat |
            while_stat | if_stat | numeric_for | generic_for | break_stat | expr_stat
        )
        block <<= (ZeroOrMore(statement) + Opt(return_stat)).set_parse_action(
            lambda s, l, t: make_block(list(t), line_of(s, l))
        )

        comment = Regex(LONG_COMMENT_PATTERN) | Regex(SHORT_COMMENT_PATTERN)
        chunk = block + StringEnd()
        chunk.ignore(comment)
        # String literals may contain tabs; line numbers rely on the untouched text
        chunk.parse_with_tabs()

        single_expression = expression + StringEnd()
        single_expression.ignore(comment)
        single_expression.parse_with_tabs()

        self.expression = single_expression
        self.block = block
        self.program = chunk

    # ------------------------------------------------------------------------
    # Parse actions
    # ------------------------------------------------------------------------

    @staticmethod
    def _fold_left(s, loc, tokens):
        """operand (op operand)* -> nested binary nodes, left to right"""
        node = tokens[0]
        for i in range(1, len(tokens) - 1, 2):
            node = make_binary(tokens[i], node, tokens[i + 1], node['line'] or lineno(loc, s))
        return node

    @staticmethod
    def _fold_suffixes(s, loc, tokens):
        """Apply index and call suffixes to the leading name or parenthesised expression"""
        node = tokens[0]
        for kind, payload, line in tokens[1:]:
            if kind == "index":
                node = make_index(node, payload, line)
            else:
                node = make_call(node, payload, line)
        return node

    @staticmethod
    def _make_function_stat(s, loc, tokens):
        parts = list(tokens[0])
        line = lineno(loc, s)
        target = make_name(parts[0], line)
        for part in parts[1:]:
            target = make_index(target, make_string_literal(part, line), line)
        function = make_function_expr(list(tokens[1]), tokens[2], ".".join(parts), line)
        return make_function_decl(target, function, line)

    @staticmethod
    def _make_if(s, loc, tokens):
        clauses = [{'condition': tokens[0], 'body': tokens[1]}]
        else_body = None
        for group in tokens[2:]:
            if len(group) == 2:
                clauses.append({'condition': group[0], 'body': group[1]})
            else:
                else_body = group[0]
        return make_if(clauses, else_body, lineno(loc, s))

    @staticmethod
    def _make_numeric_for(s, loc, tokens):
        step = tokens[3] if len(tokens) == 5 else None
        return make_numeric_for(tokens[0], tokens[1], tokens[2], step, tokens[-1], lineno(loc, s))

    @staticmethod
    def _make_expr_stat(s, loc, tokens):
        """`a, b.c = ...` is an assignment; a lone call is a call statement; anything else is an error"""
        targets = list(tokens[0])
        line = lineno(loc, s)
        if len(tokens) == 2:
            for target in targets:
                if target['type'] not in ("NAME", "INDEX"):
                    raise ParseFatalException(s, loc, f"syntax error near '{RuaTokenizer._snippet(s, loc)}'")
            return make_assign(targets, list(tokens[1]), line)
        if len(targets) == 1 and targets[0]['type'] == "CALL":
            return make_call_stmt(targets[0], line)
        raise ParseFatalException(s, loc, f"syntax error near '{RuaTokenizer._snippet(s, loc)}'")

    # ------------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------------

    def parse_program(self, text: str, filename: str = "<input>") -> Dict:
        """Parse a whole chunk and return its BLOCK node"""
        try:
            result = self.program.parse_string(text, parse_all=True)
            return result[0]
        except ParseBaseException as e:
            raise enhance_parse_exception(e, text, filename) from e
        except RecursionError:
            raise RuaParseError("chunk has too many syntax levels", 1, filename)
        except RuaError as e:
            e.filename = filename
            raise

    def parse_expression(self, text: str, filename: str = "<input>") -> Dict:
        """Parse a single expression"""
        try:
            result = self.expression.parse_string(text, parse_all=True)
            return result[0]
        except ParseBaseException as e:
            raise enhance_parse_exception(e, text, filename) from e
        except RecursionError:
            raise RuaParseError("expression has too many syntax levels", 1, filename)


class RuaParser:
    """Main rua parser combining tokenizer and grammar"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = RuaGrammar(debug)

    def parse_file(self, filepath: str) -> Dict:
        """Parse a rua source file"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise RuaParseError(f"cannot open {filepath}", 0, filepath)
        except UnicodeDecodeError as e:
            raise RuaParseError(f"cannot decode {filepath}: {e}", 0, filepath)
        return self.parse_string(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> Dict:
        """Parse rua source code from a string; lexical errors are reported first"""
        text = text.replace('\r\n', '\n')
        context = {'debug': self.debug}
        tokens = self.tokenize(text, filename)
        debug_trace(context, f"{filename}: {len(tokens)} tokens")
        block = self.grammar.parse_program(text, filename)
        debug_trace(context, f"{filename}: parsed {len(block['value']['statements'])} top-level statements")
        return block

    def parse_expression(self, text: str, filename: str = "<input>") -> Dict:
        """Parse a single rua expression"""
        self.tokenize(text, filename)
        return self.grammar.parse_expression(text, filename)

    def tokenize(self, text: str, filename: str = "<input>") -> List[Token]:
        """Tokenize rua source code"""
        tokenizer = RuaTokenizer(filename)
        return tokenizer.tokenize(text)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> RuaParser:
    """Create a rua parser"""
    return RuaParser(debug=debug)
