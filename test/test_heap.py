"""
Table and environment tests
"""

import math
import pytest
from values import NIL, make_number, make_string, make_ref, TRUE
from heap import (
  make_table, table_get, table_set, table_length,
  table_items, iterate_table
)
from environment import (
  make_frame, env_push, env_lookup, env_assign, env_declare, env_is_global
)
from error_handling import RuaTypeError


def is_border(table, n):
  """n is a border: t[n] non-nil (or n == 0) and t[n+1] nil"""
  if n != 0 and table_get(table, make_number(n)) is NIL:
    return False
  return table_get(table, make_number(n + 1)) is NIL


class TestTables:

  @pytest.fixture
  def table(self):
    table = make_table()
    for number in (1, 2, 3, 4):
      table_set(table, make_number(number), make_number(number * 10))
    return table

  def test_missing_key_reads_nil(self, table):
    assert table_get(table, make_string("absent")) is NIL
    assert table_get(table, make_number(99)) is NIL
    assert table_get(table, NIL) is NIL

  def test_length_of_sequence(self, table):
    assert table_length(table) == 4

  def test_number_and_string_keys_are_distinct(self):
    table = make_table()
    table_set(table, make_number(1), make_string("number"))
    table_set(table, make_string("1"), make_string("string"))
    assert table_get(table, make_number(1)) == make_string("number")
    assert table_get(table, make_string("1")) == make_string("string")

  def test_reference_keys_use_identity(self):
    table = make_table()
    key_object = make_table()
    table_set(table, make_ref(key_object), TRUE)
    assert table_get(table, make_ref(key_object)) is TRUE
    assert table_get(table, make_ref(make_table())) is NIL

  def test_removing_first_key_keeps_a_border(self, table):
    table_set(table, make_number(1), NIL)
    assert is_border(table, table_length(table))
    assert table_get(table, make_number(2)) == make_number(20)

  def test_removing_middle_key_keeps_other_values(self, table):
    table_set(table, make_number(2), NIL)
    assert is_border(table, table_length(table))
    assert table_get(table, make_number(3)) == make_number(30)
    assert table_get(table, make_number(4)) == make_number(40)

  def test_filling_a_gap_extends_the_sequence(self):
    table = make_table()
    table_set(table, make_number(2), make_string("b"))
    table_set(table, make_number(3), make_string("c"))
    assert is_border(table, table_length(table))
    table_set(table, make_number(1), make_string("a"))
    assert table_length(table) == 3

  def test_fractional_and_negative_keys(self):
    table = make_table()
    table_set(table, make_number(1.5), TRUE)
    table_set(table, make_number(-1), TRUE)
    assert table_length(table) == 0
    assert table_get(table, make_number(1.5)) is TRUE

  def test_nil_key_is_rejected(self):
    with pytest.raises(RuaTypeError, match="table index is nil"):
      table_set(make_table(), NIL, TRUE)

  def test_nan_key_is_rejected(self):
    with pytest.raises(RuaTypeError, match="table index is NaN"):
      table_set(make_table(), make_number(math.nan), TRUE)

  def test_assigning_nil_removes_hash_key(self):
    table = make_table()
    table_set(table, make_string("k"), TRUE)
    table_set(table, make_string("k"), NIL)
    assert table_items(table) == []

  def test_items_cover_every_entry(self, table):
    table_set(table, make_string("x"), TRUE)
    keys = sorted(str(key['value']) for key, _ in table_items(table))
    assert keys == ["1.0", "2.0", "3.0", "4.0", "x"]

  def test_iteration_skips_removed_keys(self, table):
    seen = []
    for key, value in iterate_table(table):
      seen.append(key['value'])
      table_set(table, make_number(4), NIL)
    # key 4 is only seen when it came first, before it was removed
    assert 4.0 not in seen[1:]
    assert len(seen) == (4 if seen[0] == 4.0 else 3)

  def test_iteration_sees_updated_values(self):
    table = make_table()
    table_set(table, make_string("a"), make_number(1))
    table_set(table, make_string("b"), make_number(2))
    values = []
    for key, value in iterate_table(table):
      values.append(value['value'])
      for other in ("a", "b"):
        table_set(table, make_string(other), make_number(100))
    assert values[1] == 100.0


class TestEnvironment:

  @pytest.fixture
  def global_frame(self):
    return make_frame()

  def test_unbound_name_reads_nil(self, global_frame):
    assert env_lookup(global_frame, "missing") is NIL

  def test_local_shadows_global(self, global_frame):
    env_assign(global_frame, "x", make_number(1))
    inner = env_declare(env_push(global_frame), ["x"], [make_number(2)])
    assert env_lookup(inner, "x") == make_number(2)
    assert env_lookup(global_frame, "x") == make_number(1)

  def test_assignment_updates_defining_frame(self, global_frame):
    outer = env_declare(env_push(global_frame), ["x"], [make_number(1)])
    inner = env_push(outer)
    env_assign(inner, "x", make_number(5))
    assert outer['bindings']["x"] == make_number(5)
    assert "x" not in global_frame['bindings']

  def test_unresolved_assignment_creates_global(self, global_frame):
    inner = env_push(env_push(global_frame))
    env_assign(inner, "g", TRUE)
    assert global_frame['bindings']["g"] is TRUE
    assert env_is_global(inner, "g")

  def test_redeclaration_opens_a_new_frame(self, global_frame):
    frame = env_declare(env_push(global_frame), ["x"], [make_number(1)])
    again = env_declare(frame, ["x"], [make_number(2)])
    assert again is not frame
    assert again['parent'] is frame
    assert env_lookup(frame, "x") == make_number(1)
    assert env_lookup(again, "x") == make_number(2)

  def test_declaration_leaves_captured_frame_untouched(self, global_frame):
    captured = env_push(global_frame)
    frame = env_declare(captured, ["a"], [TRUE])
    assert frame is not captured
    assert "a" not in captured['bindings']
    assert env_lookup(captured, "a") is NIL
    assert not env_is_global(frame, "a")
