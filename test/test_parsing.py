"""
Tokenizer and grammar tests for rua
"""

import sys
import pytest
from parsing import RuaTokenizer, create_parser
from error_handling import RuaLexError, RuaParseError
from syntax_tree import pretty_print_ast


def token_summary(tokens):
  return [(token.type, token.value) for token in tokens]


class TestTokenizer:
  """Token kinds, values and lines"""

  @pytest.fixture
  def tokenizer(self):
    return RuaTokenizer("test.lua")

  def test_statement_tokens(self, tokenizer):
    tokens = tokenizer.tokenize("local x = 10\nprint(x)")
    assert token_summary(tokens) == [
        ("KEYWORD", "local"), ("NAME", "x"), ("OPERATOR", "="), ("NUMBER", 10.0),
        ("NAME", "print"), ("OPERATOR", "("), ("NAME", "x"), ("OPERATOR", ")"),
        ("EOF", "<eof>"),
    ]
    assert [token.line for token in tokens] == [1, 1, 1, 1, 2, 2, 2, 2, 2]

  def test_longest_operator_wins(self, tokenizer):
    tokens = tokenizer.tokenize("a .. b == c ~= d <= e // f")
    operators = [token.value for token in tokens if token.type == "OPERATOR"]
    assert operators == ["..", "==", "~=", "<=", "//"]

  def test_numbers(self, tokenizer):
    tokens = tokenizer.tokenize("3 3.5 .5 1e3 0x1F 2E-2")
    assert [token.value for token in tokens[:-1]] == [3.0, 3.5, 0.5, 1000.0, 31.0, 0.02]

  def test_short_string_escapes(self, tokenizer):
    tokens = tokenizer.tokenize(r'"a\tb\n" ' + r"'it\'s \"q\" \\'")
    assert tokens[0].value == "a\tb\n"
    assert tokens[1].value == "it's \"q\" \\"

  def test_long_strings_drop_leading_newline(self, tokenizer):
    tokens = tokenizer.tokenize("[[\nhello\nworld]] [==[ a ]] b ]==]")
    assert tokens[0].value == "hello\nworld"
    assert tokens[1].value == " a ]] b "

  def test_long_string_keeps_escapes_raw(self, tokenizer):
    tokens = tokenizer.tokenize(r"[[a\nb]]")
    assert tokens[0].value == "a\\nb"

  def test_comments_are_dropped(self, tokenizer):
    source = "-- short comment\nx --[[ long\ncomment ]] y\n--[==[ ]] ]==] z"
    tokens = tokenizer.tokenize(source)
    assert token_summary(tokens)[:-1] == [("NAME", "x"), ("NAME", "y"), ("NAME", "z")]
    assert [token.line for token in tokens[:-1]] == [2, 3, 4]

  def test_keywords_need_whole_words(self, tokenizer):
    tokens = tokenizer.tokenize("endx end")
    assert token_summary(tokens)[:-1] == [("NAME", "endx"), ("KEYWORD", "end")]

  def test_malformed_number(self, tokenizer):
    with pytest.raises(RuaLexError) as info:
      tokenizer.tokenize("x = 1\ny = 3x")
    assert info.value.message == "malformed number near '3x'"
    assert info.value.line == 2
    assert info.value.filename == "test.lua"

  def test_unfinished_string(self, tokenizer):
    with pytest.raises(RuaLexError) as info:
      tokenizer.tokenize('s = "abc\nprint(s)')
    assert info.value.message.startswith("unfinished string")
    assert info.value.line == 1

  def test_invalid_escape(self, tokenizer):
    with pytest.raises(RuaLexError) as info:
      tokenizer.tokenize(r's = "a\qb"')
    assert info.value.message.startswith("invalid escape sequence")

  def test_unexpected_symbol(self, tokenizer):
    with pytest.raises(RuaLexError) as info:
      tokenizer.tokenize("x = @")
    assert info.value.message == "unexpected symbol near '@'"

  def test_unfinished_long_comment(self, tokenizer):
    with pytest.raises(RuaLexError):
      tokenizer.tokenize("--[[ never closed")

  def test_unfinished_long_string(self, tokenizer):
    with pytest.raises(RuaLexError):
      tokenizer.tokenize("s = [[ never closed")


class TestExpressions:
  """Precedence and associativity"""

  def test_multiplication_binds_tighter(self, parser):
    node = parser.parse_expression("1 + 2 * 3")
    assert node['type'] == "BINARY"
    assert node['value']['operator'] == "+"
    assert node['value']['right']['value']['operator'] == "*"

  def test_subtraction_is_left_associative(self, parser):
    node = parser.parse_expression("10 - 4 - 3")
    assert node['value']['operator'] == "-"
    assert node['value']['left']['type'] == "BINARY"
    assert node['value']['right']['type'] == "NUMBER"

  def test_power_is_right_associative(self, parser):
    node = parser.parse_expression("2 ^ 3 ^ 2")
    assert node['value']['left']['type'] == "NUMBER"
    assert node['value']['right']['value']['operator'] == "^"

  def test_concat_is_right_associative(self, parser):
    node = parser.parse_expression("a .. b .. c")
    assert node['value']['operator'] == ".."
    assert node['value']['left']['type'] == "NAME"
    assert node['value']['right']['value']['operator'] == ".."

  def test_unary_minus_below_power(self, parser):
    node = parser.parse_expression("-2 ^ 2")
    assert node['type'] == "UNARY"
    assert node['value']['operand']['value']['operator'] == "^"

  def test_power_accepts_unary_right_operand(self, parser):
    node = parser.parse_expression("2 ^ -1")
    assert node['type'] == "BINARY"
    assert node['value']['right']['type'] == "UNARY"

  def test_not_binds_tighter_than_comparison(self, parser):
    node = parser.parse_expression("not a == b")
    assert node['value']['operator'] == "=="
    assert node['value']['left']['type'] == "UNARY"

  def test_and_binds_tighter_than_or(self, parser):
    node = parser.parse_expression("a or b and c")
    assert node['type'] == "LOGICAL"
    assert node['value']['operator'] == "or"
    assert node['value']['right']['value']['operator'] == "and"

  def test_comparison_above_and(self, parser):
    node = parser.parse_expression("a < b and c >= d")
    assert node['value']['operator'] == "and"
    assert node['value']['left']['value']['operator'] == "<"
    assert node['value']['right']['value']['operator'] == ">="

  def test_suffix_chain(self, parser):
    node = parser.parse_expression("a.b[c](d)")
    assert node['type'] == "CALL"
    callee = node['value']['callee']
    assert callee['type'] == "INDEX"
    assert callee['value']['target']['type'] == "INDEX"
    assert callee['value']['target']['value']['key']['value']['literal'] == "b"

  @pytest.mark.parametrize("source, arg_type", [
      ('f"text"', "STRING"),
      ("f[[text]]", "STRING"),
      ("f{1, 2}", "TABLE"),
  ])
  def test_call_sugar(self, parser, source, arg_type):
    node = parser.parse_expression(source)
    assert node['type'] == "CALL"
    assert [arg['type'] for arg in node['value']['args']] == [arg_type]

  def test_paren_node(self, parser):
    node = parser.parse_expression("(f())")
    assert node['type'] == "PAREN"

  def test_table_fields(self, parser):
    node = parser.parse_expression("{1; 2, x = 3, [4] = 5,}")
    fields = node['value']['fields']
    assert [field['type'] for field in fields] == [
        "POSITIONAL_FIELD", "POSITIONAL_FIELD", "KEYED_FIELD", "KEYED_FIELD"
    ]
    assert fields[2]['value']['key']['value']['literal'] == "x"

  def test_equality_field_is_positional(self, parser):
    node = parser.parse_expression("{x == 1}")
    assert node['value']['fields'][0]['type'] == "POSITIONAL_FIELD"

  def test_function_expression(self, parser):
    node = parser.parse_expression("function (a, b) return a end")
    assert node['type'] == "FUNCTION"
    assert node['value']['params'] == ["a", "b"]

  def test_string_literal_escapes(self, parser):
    node = parser.parse_expression(r'"tab\there"')
    assert node['value']['literal'] == "tab\there"


class TestStatements:
  """Statement nodes and statement validation"""

  def statements(self, parser, source):
    return parser.parse_string(source, "test.lua")['value']['statements']

  def test_empty_chunk(self, parser):
    assert self.statements(parser, "") == []
    assert self.statements(parser, "-- only a comment\n;;") == []

  def test_local(self, parser):
    (node,) = self.statements(parser, "local x, y = 1, 2")
    assert node['type'] == "LOCAL"
    assert node['value']['names'] == ["x", "y"]
    assert len(node['value']['exprs']) == 2

  def test_local_without_values(self, parser):
    (node,) = self.statements(parser, "local x")
    assert node['value']['exprs'] == []

  def test_multiple_assignment(self, parser):
    (node,) = self.statements(parser, "a, b.c, d[1] = 1, 2")
    assert node['type'] == "ASSIGN"
    assert [target['type'] for target in node['value']['targets']] == ["NAME", "INDEX", "INDEX"]

  def test_call_statement(self, parser):
    (node,) = self.statements(parser, "print('hi')")
    assert node['type'] == "CALL_STMT"

  def test_dotted_function_declaration(self, parser):
    (node,) = self.statements(parser, "function a.b.c(x) end")
    assert node['type'] == "FUNCTION_DECL"
    assert node['value']['target']['type'] == "INDEX"
    assert node['value']['function']['value']['name'] == "a.b.c"

  def test_local_function(self, parser):
    (node,) = self.statements(parser, "local function f(n) return n end")
    assert node['type'] == "LOCAL_FUNCTION"
    assert node['value']['name'] == "f"

  def test_if_chain(self, parser):
    source = "if a then x = 1 elseif b then x = 2 elseif c then x = 3 else x = 4 end"
    (node,) = self.statements(parser, source)
    assert len(node['value']['clauses']) == 3
    assert node['value']['else_body'] is not None

  def test_numeric_for(self, parser):
    first, second = self.statements(parser, "for i = 1, 3 do end\nfor j = 10, 1, -1 do end")
    assert first['value']['step'] is None
    assert second['value']['step']['type'] == "UNARY"
    assert second['line'] == 2

  def test_generic_for(self, parser):
    (node,) = self.statements(parser, "for k, v in pairs(t) do print(k, v) end")
    assert node['type'] == "GENERIC_FOR"
    assert node['value']['names'] == ["k", "v"]

  def test_while_do_break_return(self, parser):
    source = "while true do do break end end\nreturn 1, 2;"
    while_node, return_node = self.statements(parser, source)
    assert while_node['type'] == "WHILE"
    assert "BREAK" in pretty_print_ast(while_node)
    assert return_node['type'] == "RETURN"
    assert len(return_node['value']['exprs']) == 2

  def test_statement_lines(self, parser):
    nodes = self.statements(parser, "x = 1\n\n-- comment\ny = 2")
    assert [node['line'] for node in nodes] == [1, 4]

  @pytest.mark.parametrize("source", [
      "x",
      "f() = 1",
      "x == 1",
      "(a)",
      "a.b",
  ])
  def test_expression_is_not_a_statement(self, parser, source):
    with pytest.raises(RuaParseError):
      parser.parse_string(source)

  @pytest.mark.parametrize("source", [
      "if x then",
      "local end = 1",
      "x = = 2",
      "for i = 1 do end",
      "return return",
      "f(",
  ])
  def test_grammar_violations(self, parser, source):
    with pytest.raises(RuaParseError):
      parser.parse_string(source)

  def test_parse_error_line(self, parser):
    with pytest.raises(RuaParseError) as info:
      parser.parse_string("x = 1\ny = 2\nz = = 3", "broken.lua")
    assert info.value.line == 3
    assert info.value.report().startswith("rua: broken.lua:3:")

  def test_lex_errors_come_first(self, parser):
    with pytest.raises(RuaLexError):
      parser.parse_string("x = = 3x")

  def test_parse_file(self, parser, tmp_path):
    script = tmp_path / "script.lua"
    script.write_text("print(1)\r\nprint(2)\r\n")
    block = parser.parse_file(str(script))
    assert len(block['value']['statements']) == 2

  def test_too_deep_nesting_is_a_parse_error(self, parser):
    limit = sys.getrecursionlimit()
    sys.setrecursionlimit(2000)
    try:
      with pytest.raises(RuaParseError) as info:
        parser.parse_string("x = " + "(" * 500 + "1" + ")" * 500, "deep.lua")
    finally:
      sys.setrecursionlimit(limit)
    assert info.value.report() == "rua: deep.lua:1: chunk has too many syntax levels"
