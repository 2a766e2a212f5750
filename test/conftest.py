"""
Test configuration for Lily interpreter tests
"""

import io
import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from execute import LilyConfig


@pytest.fixture
def run_source():
  """Run Lily source and return (interpreter, captured stdout text)"""
  def run(source, base_dir=".", filename="<input>", stdin="", no_std=False):
    output = io.StringIO()
    interpreter = LilyConfig(no_std=no_std).execute(
      source, output, io.StringIO(stdin), base_dir, filename
    )
    return interpreter, output.getvalue()

  return run


@pytest.fixture
def run(run_source):
  """Run Lily source and return just the interpreter"""
  def run_only(source, **kwargs):
    return run_source(source, **kwargs)[0]

  return run_only
