"""
Test configuration for rua tests
"""

import io
import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import create_parser
from interpreter import create_interpreter


@pytest.fixture
def parser():
  """Provide a fresh parser for each test"""
  return create_parser()


@pytest.fixture
def examples_dir():
  return project_root / "examples"


@pytest.fixture
def run_lua():
  """Run a chunk and return what it printed, one string per line"""
  def run(source, **options):
    output = io.StringIO()
    interpreter = create_interpreter(output=output, **options)
    interpreter.run_source(source, "test.lua")
    return output.getvalue().splitlines()
  return run
