"""
Utilities module for the rua interpreter
Error message builders, operator factories and debug tracing
"""

from typing import Callable, Dict, Optional
import math
import sys

from values import make_bool, make_number, to_number, type_name
from error_handling import RuaTypeError


# ==================== ERROR MESSAGE BUILDERS ====================

def describe_variable(kind: Optional[str], name: Optional[str]) -> str:
  """
  Suffix naming the variable an offending value came from

  Examples:
    describe_variable("global", "b") -> " (global 'b')"
    describe_variable(None, None) -> ""
  """
  if kind and name:
    return f" ({kind} '{name}')"
  return ""


def arithmetic_error(value: Dict, variable: str = "") -> RuaTypeError:
  return RuaTypeError(f"attempt to perform arithmetic on a {type_name(value)} value{variable}")


def concat_error(value: Dict, variable: str = "") -> RuaTypeError:
  return RuaTypeError(f"attempt to concatenate a {type_name(value)} value{variable}")


def compare_error(left: Dict, right: Dict) -> RuaTypeError:
  left_type, right_type = type_name(left), type_name(right)
  if left_type == right_type:
    return RuaTypeError(f"attempt to compare two {left_type} values")
  return RuaTypeError(f"attempt to compare {left_type} with {right_type}")


def index_error(value: Dict, variable: str = "") -> RuaTypeError:
  return RuaTypeError(f"attempt to index a {type_name(value)} value{variable}")


def call_error(value: Dict, variable: str = "") -> RuaTypeError:
  return RuaTypeError(f"attempt to call a {type_name(value)} value{variable}")


def length_error(value: Dict, variable: str = "") -> RuaTypeError:
  return RuaTypeError(f"attempt to get length of a {type_name(value)} value{variable}")


# ==================== FLOATING POINT HELPERS ====================

def float_div(a: float, b: float) -> float:
  """IEEE division: x/0 is +-inf, 0/0 is nan"""
  if b == 0:
    if a == 0 or math.isnan(a):
      return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)
  return a / b


def float_floordiv(a: float, b: float) -> float:
  quotient = float_div(a, b)
  if math.isinf(quotient) or math.isnan(quotient):
    return quotient
  return float(math.floor(quotient))


def float_mod(a: float, b: float) -> float:
  """Modulo with the sign of the divisor: a - floor(a/b)*b"""
  if b == 0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
    return math.nan
  result = math.fmod(a, b)
  if result != 0 and (result < 0) != (b < 0):
    result += b
  return result


def float_pow(a: float, b: float) -> float:
  try:
    return math.pow(a, b)
  except OverflowError:
    return math.inf
  except ValueError:
    if a == 0:
      return math.inf
    return math.nan


ARITHMETIC_OPERATORS: Dict[str, Callable[[float, float], float]] = {
    '+': lambda a, b: a + b,
    '-': lambda a, b: a - b,
    '*': lambda a, b: a * b,
    '/': float_div,
    '//': float_floordiv,
    '%': float_mod,
    '^': float_pow,
}


# ==================== BINARY OPERATION FACTORIES ====================

def binary_arithmetic_op(op_name: str) -> Callable[[Dict, Dict], Dict]:
  """
  Factory for binary arithmetic operations

  Operands may be numbers or strings that read as numerals.

  Examples:
    rua_add = binary_arithmetic_op('+')
    rua_add(make_number(1), make_string("2")) -> {'type': 'Num', 'value': 3.0}
  """
  op = ARITHMETIC_OPERATORS[op_name]

  def arithmetic(x: Dict, y: Dict) -> Dict:
    a = to_number(x)
    if a is None:
      raise arithmetic_error(x)
    b = to_number(y)
    if b is None:
      raise arithmetic_error(y)
    return make_number(op(a, b))

  return arithmetic


def binary_comparison_op(op: Callable[[object, object], bool]) -> Callable[[Dict, Dict], Dict]:
  """
  Factory for ordering comparisons (< and <=)

  Two numbers compare numerically, two strings compare lexicographically;
  any other combination is an error, there is no coercion.
  """
  def comparison(x: Dict, y: Dict) -> Dict:
    if x['type'] == y['type'] and x['type'] in ("Num", "Str"):
      return make_bool(op(x['value'], y['value']))
    raise compare_error(x, y)

  return comparison


# ==================== DEBUG TRACING ====================

def debug_trace(context: Optional[Dict], message: str) -> None:
  """Write a trace line to stderr when the execution context has debug enabled"""
  if context is not None and context.get('debug'):
    print(f"[debug] {message}", file=sys.stderr)
