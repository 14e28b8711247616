"""
Heap objects: tables and functions
Both are mutable dictionaries shared by reference; a 'Ref' value points at one
"""

from typing import Dict, Iterator, List, Optional, Tuple
import math

from values import NIL, make_number, is_nil
from error_handling import RuaTypeError


# ============================================================================
# TABLES
# ============================================================================

def make_table() -> Dict:
  """
  Create an empty table.

  'array' holds the values of keys 1..n with no gaps; every other key lives
  in 'hash', indexed by table_key(). Hash entries keep the original key value
  next to the stored value so iteration can hand keys back.
  """
  return {
      'kind': 'table',
      'array': [],
      'hash': {}
  }


def table_key(key: Dict) -> Tuple:
  """Hashable identity of a key: content for primitives, object identity for references"""
  if key['type'] == "Ref":
    return ("Ref", id(key['value']))
  return (key['type'], key['value'])


def array_index(key: Dict) -> Optional[int]:
  """Positive integral number keys map to a 1-based position, anything else to None"""
  if key['type'] != "Num":
    return None
  number = key['value']
  if number >= 1 and number.is_integer() and not math.isinf(number):
    return int(number)
  return None


def table_get(table: Dict, key: Dict) -> Dict:
  """Raw read; missing keys (and nil/NaN keys) give nil"""
  position = array_index(key)
  if position is not None and position <= len(table['array']):
    return table['array'][position - 1]
  if key['type'] == "Nil":
    return NIL
  entry = table['hash'].get(table_key(key))
  return entry[1] if entry is not None else NIL


def table_set(table: Dict, key: Dict, value: Dict) -> None:
  """Raw write; assigning nil removes the key"""
  if key['type'] == "Nil":
    raise RuaTypeError("table index is nil")
  if key['type'] == "Num" and math.isnan(key['value']):
    raise RuaTypeError("table index is NaN")

  array = table['array']
  position = array_index(key)

  if position is not None and position <= len(array):
    if is_nil(value):
      # Everything after the hole no longer belongs to the contiguous run
      for offset, moved in enumerate(array[position:], position + 1):
        moved_key = make_number(offset)
        table['hash'][table_key(moved_key)] = (moved_key, moved)
      del array[position - 1:]
    else:
      array[position - 1] = value
    return

  if position == len(array) + 1 and not is_nil(value):
    table['hash'].pop(table_key(key), None)
    array.append(value)
    migrate_to_array(table)
    return

  if is_nil(value):
    table['hash'].pop(table_key(key), None)
  else:
    table['hash'][table_key(key)] = (key, value)


def migrate_to_array(table: Dict) -> None:
  """Pull keys n+1, n+2, ... out of the hash part while they continue the run"""
  array = table['array']
  while True:
    entry = table['hash'].pop(("Num", float(len(array) + 1)), None)
    if entry is None:
      return
    array.append(entry[1])


def table_length(table: Dict) -> int:
  """Length of the contiguous run of keys starting at 1 (always a valid border)"""
  return len(table['array'])


def table_items(table: Dict) -> List[Tuple[Dict, Dict]]:
  """Snapshot of the current (key, value) pairs"""
  items = [(make_number(index), value) for index, value in enumerate(table['array'], 1)]
  items.extend(table['hash'].values())
  return items


def iterate_table(table: Dict) -> Iterator[Tuple[Dict, Dict]]:
  """
  Single pass over a table.

  The key set is fixed when iteration starts. Values are re-read on every
  step, and keys removed in the meantime are skipped.
  """
  for key, _ in table_items(table):
    value = table_get(table, key)
    if not is_nil(value):
      yield key, value


# ============================================================================
# FUNCTIONS
# ============================================================================

def make_function(params: List[str], body: Dict, closure_env: Dict, name: Optional[str] = None) -> Dict:
  """Create a function with its captured frame chain"""
  return {
      'kind': 'function',
      'name': name or '?',
      'params': params,
      'body': body,
      'closure_env': closure_env
  }
