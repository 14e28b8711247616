"""
Rua Standard Library
Builtin functions (print, pairs), operator implementations and the global frame
"""

from typing import Dict, Iterator, List, Optional, Tuple
import operator
import sys

from values import (
  make_bool,
  make_builtin,
  make_string,
  make_value_list,
  format_number,
  is_table,
  tostring,
  type_name,
  values_equal
)
from heap import iterate_table
from environment import make_frame
from utilities import (
  binary_arithmetic_op,
  binary_comparison_op,
  concat_error,
  debug_trace
)
from error_handling import RuaTypeError


# ============================================================================
# OPERATORS
# ============================================================================

rua_add = binary_arithmetic_op('+')
rua_sub = binary_arithmetic_op('-')
rua_mul = binary_arithmetic_op('*')
rua_div = binary_arithmetic_op('/')
rua_floordiv = binary_arithmetic_op('//')
rua_mod = binary_arithmetic_op('%')
rua_pow = binary_arithmetic_op('^')

rua_lt = binary_comparison_op(operator.lt)
rua_le = binary_comparison_op(operator.le)


def rua_gt(x: Dict, y: Dict) -> Dict:
  """a > b is b < a"""
  return rua_lt(y, x)


def rua_ge(x: Dict, y: Dict) -> Dict:
  """a >= b is b <= a"""
  return rua_le(y, x)


def rua_eq(x: Dict, y: Dict) -> Dict:
  return make_bool(values_equal(x, y))


def rua_ne(x: Dict, y: Dict) -> Dict:
  return make_bool(not values_equal(x, y))


def rua_concat(x: Dict, y: Dict) -> Dict:
  """String concatenation; numbers take their canonical form"""
  parts = []
  for value in (x, y):
    if value['type'] == "Str":
      parts.append(value['value'])
    elif value['type'] == "Num":
      parts.append(format_number(value['value']))
    else:
      raise concat_error(value)
  return make_string(parts[0] + parts[1])


# ============================================================================
# BUILTIN FUNCTIONS
# ============================================================================

def rua_print(args: List[Dict], context: Dict) -> Dict:
  """Write the canonical forms of the arguments, tab separated, on one line"""
  stream = context.get('output') or sys.stdout
  stream.write("\t".join(tostring(arg) for arg in args) + "\n")
  return make_value_list([])


def rua_pairs(args: List[Dict], context: Dict) -> Dict:
  raise RuaTypeError("'pairs' can only be used as the iterator of a generic 'for'")


def pairs_iterator(args: List[Dict], context: Optional[Dict] = None) -> Iterator[Tuple[Dict, Dict]]:
  """Iterator over the table passed to pairs() in a generic for"""
  if not args:
    raise RuaTypeError("bad argument #1 to 'pairs' (table expected, got no value)")
  if not is_table(args[0]):
    raise RuaTypeError(f"bad argument #1 to 'pairs' (table expected, got {type_name(args[0])})")
  debug_trace(context, "pairs: iterating table")
  return iterate_table(args[0]['value'])


BUILTINS = {
    'print': rua_print,
    'pairs': rua_pairs,
}


def call_builtin(name: str, args: List[Dict], context: Dict) -> Dict:
  return BUILTINS[name](args, context)


def is_pairs(value: Dict) -> bool:
  return value['type'] == "Builtin" and value['value'] == "pairs"


def create_builtin_runtime_env() -> Dict:
  """A fresh global frame holding the builtins"""
  return make_frame(None, {name: make_builtin(name) for name in BUILTINS})
