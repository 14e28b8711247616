"""
Rua value model
Every runtime value is a tagged dictionary {'type': tag, 'value': payload}

Tags:
  Nil        no payload
  Bool       Python bool
  Str        Python str
  Num        Python float (Lua numbers are doubles)
  Ref        a heap object (table or function), compared by identity
  ValueList  list of values produced by a call; transient, see compress()
  Builtin    name of a builtin function ('print', 'pairs')
"""

from typing import Any, Dict, List, Optional
import math
import re


# ============================================================================
# CONSTRUCTORS
# ============================================================================

def make_value(value: Any, type_name: str = "Nil") -> Dict:
  """Create a runtime value"""
  return {
      'value': value,
      'type': type_name
  }


NIL = make_value(None, "Nil")
TRUE = make_value(True, "Bool")
FALSE = make_value(False, "Bool")


def make_bool(flag: bool) -> Dict:
  return TRUE if flag else FALSE


def make_number(number: float) -> Dict:
  return make_value(float(number), "Num")


def make_string(text: str) -> Dict:
  return make_value(text, "Str")


def make_ref(heap_object: Dict) -> Dict:
  """Wrap a heap object (table or function) as a reference value"""
  return make_value(heap_object, "Ref")


def make_builtin(name: str) -> Dict:
  return make_value(name, "Builtin")


def make_value_list(values: Optional[List[Dict]] = None) -> Dict:
  """Create a multi-value result; must be compressed before single-value use"""
  return make_value(list(values or []), "ValueList")


# ============================================================================
# MULTI-VALUE HANDLING
# ============================================================================

def compress(value: Dict) -> Dict:
  """Reduce a ValueList to its first element (Nil when empty); other values pass through"""
  if value['type'] == "ValueList":
    return value['value'][0] if value['value'] else NIL
  return value


def expand(value: Dict) -> List[Dict]:
  """Spread a value into a Python list: all elements of a ValueList, otherwise just itself"""
  if value['type'] == "ValueList":
    return list(value['value'])
  return [value]


def adjust(values: List[Dict], count: int) -> List[Dict]:
  """Pad with Nil or truncate so exactly `count` values remain"""
  if len(values) >= count:
    return values[:count]
  return values + [NIL] * (count - len(values))


# ============================================================================
# PREDICATES
# ============================================================================

def is_nil(value: Dict) -> bool:
  return value['type'] == "Nil"


def is_truthy(value: Dict) -> bool:
  """Everything except nil and false is true"""
  if value['type'] == "Nil":
    return False
  if value['type'] == "Bool":
    return value['value']
  return True


def is_table(value: Dict) -> bool:
  return value['type'] == "Ref" and value['value']['kind'] == "table"


def is_function(value: Dict) -> bool:
  return value['type'] == "Ref" and value['value']['kind'] == "function"


def type_name(value: Dict) -> str:
  """Lua's name for the type of a value, used in error messages"""
  tag = value['type']
  if tag == "Nil":
    return "nil"
  elif tag == "Bool":
    return "boolean"
  elif tag == "Str":
    return "string"
  elif tag == "Num":
    return "number"
  elif tag == "Ref":
    return value['value']['kind']
  elif tag == "Builtin":
    return "function"
  return type_name(compress(value))


def values_equal(left: Dict, right: Dict) -> bool:
  """Raw equality: different tags never match, references match only on identity"""
  if left['type'] != right['type']:
    return False
  if left['type'] == "Ref":
    return left['value'] is right['value']
  return left['value'] == right['value']


# ============================================================================
# NUMBER COERCION
# ============================================================================

DECIMAL_NUMERAL = re.compile(r'(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
HEX_NUMERAL = re.compile(r'0[xX][0-9a-fA-F]+')


def parse_numeral(text: str) -> Optional[float]:
  """Convert a Lua numeral (surrounding whitespace allowed) to a float, or None"""
  stripped = text.strip()
  negative = stripped.startswith('-')
  if negative or stripped.startswith('+'):
    stripped = stripped[1:]
  if HEX_NUMERAL.fullmatch(stripped):
    number = float(int(stripped, 16))
  elif DECIMAL_NUMERAL.fullmatch(stripped):
    number = float(stripped)
  else:
    return None
  return -number if negative else number


def to_number(value: Dict) -> Optional[float]:
  """Numbers and numeric strings convert; everything else gives None"""
  if value['type'] == "Num":
    return value['value']
  if value['type'] == "Str":
    return parse_numeral(value['value'])
  return None


# ============================================================================
# STRING FORMS
# ============================================================================

def format_number(number: float) -> str:
  """Canonical number form: integral floats print without a fraction"""
  if math.isnan(number):
    return "nan"
  if math.isinf(number):
    return "inf" if number > 0 else "-inf"
  return '%.14g' % number


def tostring(value: Dict) -> str:
  """Canonical string form used by print and concatenation"""
  tag = value['type']
  if tag == "Nil":
    return "nil"
  elif tag == "Bool":
    return "true" if value['value'] else "false"
  elif tag == "Num":
    return format_number(value['value'])
  elif tag == "Str":
    return value['value']
  elif tag == "Ref":
    return f"{value['value']['kind']}: 0x{id(value['value']):012x}"
  elif tag == "Builtin":
    return f"function: builtin: {value['value']}"
  return tostring(compress(value))
