"""
Rua abstract syntax tree
Nodes are dictionaries: {'type': NODE_TYPE, 'value': {fields}, 'line': source line}
"""

from typing import Any, Dict, List, Optional


def make_ast_node(node_type: str, value: Optional[Dict] = None, line: int = 0) -> Dict:
  """Create an AST node"""
  return {
      'type': node_type,
      'value': value or {},
      'line': line
  }


# ============================================================================
# STATEMENTS
# ============================================================================

def make_block(statements: List[Dict], line: int = 0) -> Dict:
  return make_ast_node("BLOCK", {'statements': statements}, line)


def make_local(names: List[str], exprs: List[Dict], line: int = 0) -> Dict:
  return make_ast_node("LOCAL", {'names': names, 'exprs': exprs}, line)


def make_assign(targets: List[Dict], exprs: List[Dict], line: int = 0) -> Dict:
  return make_ast_node("ASSIGN", {'targets': targets, 'exprs': exprs}, line)


def make_call_stmt(call: Dict, line: int = 0) -> Dict:
  return make_ast_node("CALL_STMT", {'call': call}, line)


def make_do(body: Dict, line: int = 0) -> Dict:
  return make_ast_node("DO", {'body': body}, line)


def make_while(condition: Dict, body: Dict, line: int = 0) -> Dict:
  return make_ast_node("WHILE", {'condition': condition, 'body': body}, line)


def make_if(clauses: List[Dict], else_body: Optional[Dict], line: int = 0) -> Dict:
  """`clauses` is a list of {'condition', 'body'} for the if and each elseif"""
  return make_ast_node("IF", {'clauses': clauses, 'else_body': else_body}, line)


def make_numeric_for(name: str, start: Dict, stop: Dict, step: Optional[Dict], body: Dict, line: int = 0) -> Dict:
  return make_ast_node("NUMERIC_FOR", {
      'name': name, 'start': start, 'stop': stop, 'step': step, 'body': body
  }, line)


def make_generic_for(names: List[str], exprs: List[Dict], body: Dict, line: int = 0) -> Dict:
  return make_ast_node("GENERIC_FOR", {'names': names, 'exprs': exprs, 'body': body}, line)


def make_function_decl(target: Dict, function: Dict, line: int = 0) -> Dict:
  """function a.b.c() ... end  -- `target` is the NAME or INDEX being assigned"""
  return make_ast_node("FUNCTION_DECL", {'target': target, 'function': function}, line)


def make_local_function(name: str, function: Dict, line: int = 0) -> Dict:
  return make_ast_node("LOCAL_FUNCTION", {'name': name, 'function': function}, line)


def make_return(exprs: List[Dict], line: int = 0) -> Dict:
  return make_ast_node("RETURN", {'exprs': exprs}, line)


def make_break(line: int = 0) -> Dict:
  return make_ast_node("BREAK", {}, line)


# ============================================================================
# EXPRESSIONS
# ============================================================================

def make_nil(line: int = 0) -> Dict:
  return make_ast_node("NIL", {}, line)


def make_boolean(flag: bool, line: int = 0) -> Dict:
  return make_ast_node("BOOLEAN", {'literal': flag}, line)


def make_number_literal(number: float, line: int = 0) -> Dict:
  return make_ast_node("NUMBER", {'literal': number}, line)


def make_string_literal(text: str, line: int = 0) -> Dict:
  return make_ast_node("STRING", {'literal': text}, line)


def make_name(name: str, line: int = 0) -> Dict:
  return make_ast_node("NAME", {'name': name}, line)


def make_index(target: Dict, key: Dict, line: int = 0) -> Dict:
  return make_ast_node("INDEX", {'target': target, 'key': key}, line)


def make_call(callee: Dict, args: List[Dict], line: int = 0) -> Dict:
  return make_ast_node("CALL", {'callee': callee, 'args': args}, line)


def make_function_expr(params: List[str], body: Dict, name: Optional[str] = None, line: int = 0) -> Dict:
  return make_ast_node("FUNCTION", {'params': params, 'body': body, 'name': name}, line)


def make_table_constructor(fields: List[Dict], line: int = 0) -> Dict:
  return make_ast_node("TABLE", {'fields': fields}, line)


def make_positional_field(expr: Dict, line: int = 0) -> Dict:
  return make_ast_node("POSITIONAL_FIELD", {'expr': expr}, line)


def make_keyed_field(key: Dict, expr: Dict, line: int = 0) -> Dict:
  return make_ast_node("KEYED_FIELD", {'key': key, 'expr': expr}, line)


def make_paren(expr: Dict, line: int = 0) -> Dict:
  return make_ast_node("PAREN", {'expr': expr}, line)


def make_binary(operator: str, left: Dict, right: Dict, line: int = 0) -> Dict:
  if operator in ("and", "or"):
    return make_ast_node("LOGICAL", {'operator': operator, 'left': left, 'right': right}, line)
  return make_ast_node("BINARY", {'operator': operator, 'left': left, 'right': right}, line)


def make_unary(operator: str, operand: Dict, line: int = 0) -> Dict:
  return make_ast_node("UNARY", {'operator': operator, 'operand': operand}, line)


# ============================================================================
# UTILITIES
# ============================================================================

def is_ast_node(item: Any) -> bool:
  return isinstance(item, dict) and 'type' in item and 'value' in item and 'line' in item


def child_nodes(node: Dict) -> List[Dict]:
  """Direct children of a node, in field order"""
  children = []
  for field in node['value'].values():
    if is_ast_node(field):
      children.append(field)
    elif isinstance(field, list):
      for item in field:
        if is_ast_node(item):
          children.append(item)
        elif isinstance(item, dict):
          children.extend(value for value in item.values() if is_ast_node(value))
  return children


def pretty_print_ast(node: Dict, indent: int = 0) -> str:
  """Pretty print an AST for debugging"""
  scalars = {
      key: value for key, value in node['value'].items()
      if value is not None and not is_ast_node(value) and not isinstance(value, list)
  }
  names = {
      key: value for key, value in node['value'].items()
      if isinstance(value, list) and value and all(isinstance(v, str) for v in value)
  }
  scalars.update(names)

  result = "  " * indent + f"{node['type']}"
  if scalars:
    details = ", ".join(f"{key}={value!r}" for key, value in scalars.items())
    result += f"({details})"
  result += f"  @{node['line']}\n"

  for child in child_nodes(node):
    result += pretty_print_ast(child, indent + 1)

  return result
