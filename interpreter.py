"""
Rua Interpreter
Tree-walking evaluator over the dictionary AST built by parsing.py
Statements return (signal, env); expressions return values
"""

from typing import Any, Dict, List, Optional, Tuple
import sys

from values import (
  NIL,
  make_bool,
  make_number,
  make_string,
  make_ref,
  make_value_list,
  compress,
  expand,
  adjust,
  is_truthy,
  is_table,
  is_function,
  to_number,
  type_name
)
from heap import make_table, make_function, table_get, table_set, table_length
from environment import (
  make_frame,
  env_push,
  env_lookup,
  env_assign,
  env_declare,
  env_is_global
)
from utilities import (
  ARITHMETIC_OPERATORS,
  describe_variable,
  arithmetic_error,
  concat_error,
  index_error,
  call_error,
  length_error,
  debug_trace
)
from error_handling import (
  RuaError,
  RuaRuntimeError,
  RuaTypeError,
  BreakOutsideLoopError,
  StackOverflowError
)
from stdlib import (
  call_builtin,
  create_builtin_runtime_env,
  is_pairs,
  pairs_iterator,
  rua_add as stdlib_add_impl,
  rua_sub as stdlib_sub_impl,
  rua_mul as stdlib_mul_impl,
  rua_div as stdlib_div_impl,
  rua_floordiv as stdlib_floordiv_impl,
  rua_mod as stdlib_mod_impl,
  rua_pow as stdlib_pow_impl,
  rua_concat as stdlib_concat_impl,
  rua_eq as stdlib_eq_impl,
  rua_ne as stdlib_ne_impl,
  rua_lt as stdlib_lt_impl,
  rua_gt as stdlib_gt_impl,
  rua_le as stdlib_le_impl,
  rua_ge as stdlib_ge_impl
)
from parsing import create_parser


# A RecursionError from the host still ends the run as a stack overflow
DEFAULT_MAX_CALL_DEPTH = 20000

# Python frames used by one rua call on a typical path; sizes the host recursion limit
PYTHON_FRAMES_PER_CALL = 40


# ============================================================================
# EXECUTION CONTEXT AND CONTROL SIGNALS
# ============================================================================

def make_execution_context(debug: bool = False, max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
                           output: Any = None) -> Dict:
  """Create the execution context shared by every evaluation function"""
  return {
      'debug': debug,
      'max_call_depth': max_call_depth,
      'output': output,
      'call_depth': 0
  }


NORMAL = {'kind': 'Normal'}


def make_break_signal(line: int) -> Dict:
  return {'kind': 'Break', 'line': line}


def make_return_signal(values: List[Dict]) -> Dict:
  return {'kind': 'Return', 'values': values}


def at_line(error: RuaError, node: Dict) -> RuaError:
  """Attach the node's source line to an error that has none yet"""
  if not error.line:
    error.line = node['line']
  return error


def describe_node(node: Dict, env: Dict) -> str:
  """Variable suffix for error messages: (global 'x'), (local 'x') or (field 'x')"""
  if node['type'] == "NAME":
    name = node['value']['name']
    return describe_variable("global" if env_is_global(env, name) else "local", name)
  if node['type'] == "INDEX" and node['value']['key']['type'] == "STRING":
    return describe_variable("field", node['value']['key']['value']['literal'])
  return ""


# ============================================================================
# BUILT-IN OPERATIONS
# ============================================================================

BUILTIN_OPERATORS = {
    '+': stdlib_add_impl,
    '-': stdlib_sub_impl,
    '*': stdlib_mul_impl,
    '/': stdlib_div_impl,
    '//': stdlib_floordiv_impl,
    '%': stdlib_mod_impl,
    '^': stdlib_pow_impl,
    '..': stdlib_concat_impl,
    '==': stdlib_eq_impl,
    '~=': stdlib_ne_impl,
    '<': stdlib_lt_impl,
    '>': stdlib_gt_impl,
    '<=': stdlib_le_impl,
    '>=': stdlib_ge_impl,
}


# ============================================================================
# BLOCKS AND STATEMENTS
# ============================================================================

def exec_block(block: Dict, env: Dict, context: Dict) -> Tuple[Dict, Dict]:
  """
  Run the statements of a block in `env` (no new frame is pushed here).

  Returns the first non-Normal signal, or Normal, and the environment the
  block ended with.
  """
  for statement in block['value']['statements']:
    signal, env = exec_stmt(statement, env, context)
    if signal['kind'] != 'Normal':
      return signal, env
  return NORMAL, env


def exec_scoped_block(block: Dict, env: Dict, context: Dict) -> Dict:
  """Run a block in a new frame on top of `env`; the frame is dropped afterwards"""
  signal, _ = exec_block(block, env_push(env), context)
  return signal


def exec_stmt(ast_node: Dict, env: Dict, context: Dict) -> Tuple[Dict, Dict]:
  """Execute one statement and return (signal, environment for what follows)"""
  node_type = ast_node['type']
  debug_trace(context, f"exec {node_type} @{ast_node['line']}")

  try:
    if node_type == "LOCAL":
      return exec_local(ast_node, env, context)
    elif node_type == "ASSIGN":
      return exec_assign(ast_node, env, context)
    elif node_type == "CALL_STMT":
      eval_call(ast_node['value']['call'], env, context)
      return NORMAL, env
    elif node_type == "DO":
      return exec_scoped_block(ast_node['value']['body'], env, context), env
    elif node_type == "WHILE":
      return exec_while(ast_node, env, context), env
    elif node_type == "IF":
      return exec_if(ast_node, env, context), env
    elif node_type == "NUMERIC_FOR":
      return exec_numeric_for(ast_node, env, context), env
    elif node_type == "GENERIC_FOR":
      return exec_generic_for(ast_node, env, context), env
    elif node_type == "FUNCTION_DECL":
      return exec_function_decl(ast_node, env, context)
    elif node_type == "LOCAL_FUNCTION":
      return exec_local_function(ast_node, env, context)
    elif node_type == "RETURN":
      return make_return_signal(eval_expr_list(ast_node['value']['exprs'], env, context)), env
    elif node_type == "BREAK":
      return make_break_signal(ast_node['line']), env
    else:
      raise RuaRuntimeError(f"unknown statement type {node_type}")
  except RuaError as e:
    raise at_line(e, ast_node)


def exec_local(ast_node: Dict, env: Dict, context: Dict) -> Tuple[Dict, Dict]:
  """local a, b = e1, e2 -- right-hand side first, then the new bindings"""
  names = ast_node['value']['names']
  values = adjust(eval_expr_list(ast_node['value']['exprs'], env, context), len(names))
  return NORMAL, env_declare(env, names, values)


def resolve_target(target: Dict, env: Dict, context: Dict) -> Tuple:
  """Evaluate the addressing part of an assignment target without storing anything"""
  if target['type'] == "NAME":
    return ('name', target['value']['name'])
  table_value = eval_single(target['value']['target'], env, context)
  key = eval_single(target['value']['key'], env, context)
  if not is_table(table_value):
    raise at_line(index_error(table_value, describe_node(target['value']['target'], env)), target)
  return ('index', table_value['value'], key)


def store(place: Tuple, value: Dict, env: Dict) -> None:
  if place[0] == 'name':
    env_assign(env, place[1], value)
  else:
    table_set(place[1], place[2], value)


def exec_assign(ast_node: Dict, env: Dict, context: Dict) -> Tuple[Dict, Dict]:
  """
  Multiple assignment in three phases: evaluate every right-hand expression,
  resolve every target, then store pairwise.
  """
  targets = ast_node['value']['targets']
  values = eval_expr_list(ast_node['value']['exprs'], env, context)
  places = [resolve_target(target, env, context) for target in targets]
  for place, value in zip(places, adjust(values, len(places))):
    store(place, value, env)
  return NORMAL, env


def exec_while(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  condition = ast_node['value']['condition']
  body = ast_node['value']['body']
  while is_truthy(eval_single(condition, env, context)):
    signal = exec_scoped_block(body, env, context)
    if signal['kind'] == 'Break':
      break
    if signal['kind'] == 'Return':
      return signal
  return NORMAL


def exec_if(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  for clause in ast_node['value']['clauses']:
    if is_truthy(eval_single(clause['condition'], env, context)):
      return exec_scoped_block(clause['body'], env, context)
  if ast_node['value']['else_body'] is not None:
    return exec_scoped_block(ast_node['value']['else_body'], env, context)
  return NORMAL


def for_number(value: Dict, what: str) -> float:
  number = to_number(value)
  if number is None:
    raise RuaTypeError(f"'for' {what} must be a number")
  return number


def exec_numeric_for(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  """for i = start, stop [, step] -- operands are evaluated once, the variable is fresh each turn"""
  fields = ast_node['value']
  start = for_number(eval_single(fields['start'], env, context), "initial value")
  stop = for_number(eval_single(fields['stop'], env, context), "limit")
  step = 1.0
  if fields['step'] is not None:
    step = for_number(eval_single(fields['step'], env, context), "step")
  if step == 0:
    raise RuaRuntimeError("'for' step is zero")

  counter = start
  while (step > 0 and counter <= stop) or (step < 0 and counter >= stop):
    frame = env_push(env, {fields['name']: make_number(counter)})
    signal, _ = exec_block(fields['body'], frame, context)
    if signal['kind'] == 'Break':
      break
    if signal['kind'] == 'Return':
      return signal
    counter += step
  return NORMAL


def exec_generic_for(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  """for k, v in pairs(t) -- the only supported iterator"""
  fields = ast_node['value']
  exprs = fields['exprs']
  if len(exprs) != 1 or exprs[0]['type'] != "CALL":
    raise RuaTypeError("generic 'for' expects a call to 'pairs'")
  callee = eval_single(exprs[0]['value']['callee'], env, context)
  if not is_pairs(callee):
    raise RuaTypeError(f"generic 'for' expects a call to 'pairs', got a {type_name(callee)} value")
  args = eval_expr_list(exprs[0]['value']['args'], env, context)

  names = fields['names']
  for key, value in pairs_iterator(args, context):
    frame = env_push(env, dict(zip(names, adjust([key, value], len(names)))))
    signal, _ = exec_block(fields['body'], frame, context)
    if signal['kind'] == 'Break':
      break
    if signal['kind'] == 'Return':
      return signal
  return NORMAL


def exec_function_decl(ast_node: Dict, env: Dict, context: Dict) -> Tuple[Dict, Dict]:
  """function a.b.c() ... end assigns the new closure to the named variable or field"""
  function = eval_function(ast_node['value']['function'], env)
  place = resolve_target(ast_node['value']['target'], env, context)
  store(place, function, env)
  return NORMAL, env


def exec_local_function(ast_node: Dict, env: Dict, context: Dict) -> Tuple[Dict, Dict]:
  """local function f() ... end -- f is declared before the closure captures the frame"""
  name = ast_node['value']['name']
  env = env_declare(env, [name], [NIL])
  env['bindings'][name] = eval_function(ast_node['value']['function'], env)
  return NORMAL, env


# ============================================================================
# EXPRESSIONS
# ============================================================================

def eval_expr(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  """
  Evaluate an expression.
  Only calls produce a ValueList; every other node yields a single value.
  """
  node_type = ast_node['type']

  if node_type == "NIL":
    return NIL
  elif node_type == "BOOLEAN":
    return make_bool(ast_node['value']['literal'])
  elif node_type == "NUMBER":
    return make_number(ast_node['value']['literal'])
  elif node_type == "STRING":
    return make_string(ast_node['value']['literal'])
  elif node_type == "NAME":
    return env_lookup(env, ast_node['value']['name'])
  elif node_type == "INDEX":
    return eval_index(ast_node, env, context)
  elif node_type == "CALL":
    return eval_call(ast_node, env, context)
  elif node_type == "FUNCTION":
    return eval_function(ast_node, env)
  elif node_type == "TABLE":
    return eval_table(ast_node, env, context)
  elif node_type == "PAREN":
    return eval_single(ast_node['value']['expr'], env, context)
  elif node_type == "LOGICAL":
    return eval_logical(ast_node, env, context)
  elif node_type == "BINARY":
    return eval_binary(ast_node, env, context)
  elif node_type == "UNARY":
    return eval_unary(ast_node, env, context)
  raise at_line(RuaRuntimeError(f"unknown expression type {node_type}"), ast_node)


def eval_single(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  """Evaluate in a single-value position"""
  return compress(eval_expr(ast_node, env, context))


def eval_expr_list(exprs: List[Dict], env: Dict, context: Dict) -> List[Dict]:
  """Evaluate left to right; only the last expression may contribute several values"""
  values = []
  for position, expr in enumerate(exprs, 1):
    value = eval_expr(expr, env, context)
    if position == len(exprs):
      values.extend(expand(value))
    else:
      values.append(compress(value))
  return values


def eval_index(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  target = ast_node['value']['target']
  table_value = eval_single(target, env, context)
  key = eval_single(ast_node['value']['key'], env, context)
  if not is_table(table_value):
    raise at_line(index_error(table_value, describe_node(target, env)), ast_node)
  return table_get(table_value['value'], key)


def eval_function(ast_node: Dict, env: Dict) -> Dict:
  """A function expression evaluates to a closure over the current frame chain"""
  fields = ast_node['value']
  return make_ref(make_function(fields['params'], fields['body'], env, fields['name']))


def eval_table(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  """Table constructor; a trailing positional call spreads all of its values"""
  table = make_table()
  fields = ast_node['value']['fields']
  position = 1
  for number, field in enumerate(fields, 1):
    if field['type'] == "POSITIONAL_FIELD":
      value = eval_expr(field['value']['expr'], env, context)
      values = expand(value) if number == len(fields) else [compress(value)]
      for item in values:
        table_set(table, make_number(position), item)
        position += 1
    else:
      key = eval_single(field['value']['key'], env, context)
      value = eval_single(field['value']['expr'], env, context)
      try:
        table_set(table, key, value)
      except RuaError as e:
        raise at_line(e, field)
  return make_ref(table)


def eval_logical(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  """and/or short-circuit and yield the deciding operand itself"""
  left = eval_single(ast_node['value']['left'], env, context)
  if ast_node['value']['operator'] == "and":
    if not is_truthy(left):
      return left
  elif is_truthy(left):
    return left
  return eval_single(ast_node['value']['right'], env, context)


def eval_binary(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  op = ast_node['value']['operator']
  left_node = ast_node['value']['left']
  right_node = ast_node['value']['right']
  left = eval_single(left_node, env, context)
  right = eval_single(right_node, env, context)

  # Name the offending operand in the error message
  if op in ARITHMETIC_OPERATORS:
    for value, operand in ((left, left_node), (right, right_node)):
      if to_number(value) is None:
        raise at_line(arithmetic_error(value, describe_node(operand, env)), ast_node)
  elif op == '..':
    for value, operand in ((left, left_node), (right, right_node)):
      if value['type'] not in ("Str", "Num"):
        raise at_line(concat_error(value, describe_node(operand, env)), ast_node)

  try:
    return BUILTIN_OPERATORS[op](left, right)
  except RuaError as e:
    raise at_line(e, ast_node)


def eval_unary(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  op = ast_node['value']['operator']
  operand_node = ast_node['value']['operand']
  operand = eval_single(operand_node, env, context)

  if op == "not":
    return make_bool(not is_truthy(operand))
  elif op == "-":
    number = to_number(operand)
    if number is None:
      raise at_line(arithmetic_error(operand, describe_node(operand_node, env)), ast_node)
    return make_number(-number)
  elif op == "#":
    if operand['type'] == "Str":
      return make_number(len(operand['value'].encode('utf-8')))
    if is_table(operand):
      return make_number(table_length(operand['value']))
    raise at_line(length_error(operand, describe_node(operand_node, env)), ast_node)
  raise at_line(RuaRuntimeError(f"unknown unary operator {op}"), ast_node)


# ============================================================================
# CALLS
# ============================================================================

def eval_call(ast_node: Dict, env: Dict, context: Dict) -> Dict:
  """Evaluate callee, then arguments left to right, then call"""
  callee_node = ast_node['value']['callee']
  callee = eval_single(callee_node, env, context)
  args = eval_expr_list(ast_node['value']['args'], env, context)
  if callee['type'] != "Builtin" and not is_function(callee):
    raise at_line(call_error(callee, describe_node(callee_node, env)), ast_node)
  try:
    return call_function(callee, args, context)
  except RuaError as e:
    raise at_line(e, ast_node)


def call_function(callee: Dict, args: List[Dict], context: Dict) -> Dict:
  """
  Call a function value with already evaluated arguments.

  The body runs in a new frame whose parent is the frame chain captured
  when the function was created. Returns a ValueList (empty when the body
  ends without 'return').
  """
  if callee['type'] == "Builtin":
    return call_builtin(callee['value'], args, context)
  if not is_function(callee):
    raise call_error(callee)

  function = callee['value']
  if context['call_depth'] >= context['max_call_depth']:
    raise StackOverflowError("stack overflow")

  params = function['params']
  frame = make_frame(function['closure_env'], dict(zip(params, adjust(args, len(params)))))

  context['call_depth'] += 1
  debug_trace(context, f"call {function['name']} (depth {context['call_depth']})")
  try:
    signal, _ = exec_block(function['body'], frame, context)
  finally:
    context['call_depth'] -= 1

  if signal['kind'] == 'Break':
    raise BreakOutsideLoopError("break outside a loop", signal['line'])
  values = signal['values'] if signal['kind'] == 'Return' else []
  debug_trace(context, f"return from {function['name']} with {len(values)} value(s)")
  return make_value_list(values)


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def unwrap_value(value: Dict, seen: Optional[Dict] = None) -> Any:
  """Convert a runtime value to a plain Python value (tables become dicts)"""
  tag = value['type']
  if tag == "Nil":
    return None
  elif tag in ("Bool", "Str", "Num", "Builtin"):
    return value['value']
  elif tag == "ValueList":
    return [unwrap_value(item, seen) for item in value['value']]
  elif is_table(value):
    seen = {} if seen is None else seen
    table = value['value']
    if id(table) in seen:
      return seen[id(table)]
    result = seen[id(table)] = {}
    for index, item in enumerate(table['array'], 1):
      result[float(index)] = unwrap_value(item, seen)
    for key, item in table['hash'].values():
      python_key = id(key['value']) if key['type'] == "Ref" else unwrap_value(key, seen)
      result[python_key] = unwrap_value(item, seen)
    return result
  return value['value']


def eval_program(block: Dict, global_env: Dict, context: Dict) -> List[Dict]:
  """
  Run a chunk as an implicit zero-parameter function: its locals live in a
  frame whose parent is the global frame. Returns the chunk's return values.
  """
  frame = env_push(global_env)
  context['call_depth'] = 0
  try:
    signal, _ = exec_block(block, frame, context)
  except RecursionError:
    raise StackOverflowError("stack overflow")

  if signal['kind'] == 'Break':
    raise BreakOutsideLoopError("break outside a loop", signal['line'])
  if signal['kind'] == 'Return':
    return signal['values']
  return []


def ensure_recursion_limit(max_call_depth: int) -> None:
  """Make room on the host stack for max_call_depth nested rua calls"""
  needed = max_call_depth * PYTHON_FRAMES_PER_CALL + 1000
  if sys.getrecursionlimit() < needed:
    sys.setrecursionlimit(needed)


# ============================================================================
# FACTORY FUNCTIONS (for main.py)
# ============================================================================

def create_interpreter(debug: bool = False, max_call_depth: int = DEFAULT_MAX_CALL_DEPTH, output: Any = None):
  """Factory function returning an interpreter with its own global frame"""
  context = make_execution_context(debug, max_call_depth, output)
  global_env = create_builtin_runtime_env()
  parser = create_parser(debug)
  ensure_recursion_limit(max_call_depth)

  def interpret_program_func(block: Dict, filename: Optional[str] = None) -> List[Any]:
    try:
      values = eval_program(block, global_env, context)
    except RuaError as e:
      if e.filename is None:
        e.filename = filename
      raise
    return [unwrap_value(value) for value in values]

  def run_source_func(text: str, filename: str = "<input>") -> List[Any]:
    block = parser.parse_string(text, filename)
    return interpret_program_func(block, filename)

  return type('Interpreter', (), {
      'interpret_program': lambda self, block, filename=None: interpret_program_func(block, filename),
      'run_source': lambda self, text, filename="<input>": run_source_func(text, filename),
      'global_env': global_env,
      'context': context,
      'parser': parser
  })()
