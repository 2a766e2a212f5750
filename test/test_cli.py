"""
Command line tests for the Lily interpreter
"""

import sys
import pytest
import main
from execute import LilyConfig


def run_main(monkeypatch, *argv):
  monkeypatch.setattr(sys, "argv", ["lily", *argv])
  main.main()


class TestCommandLine:
  """Test the lily entry point"""

  def test_run_script(self, monkeypatch, capsys, tmp_path):
    """A script runs and prints to stdout"""
    script = tmp_path / "hello.ly"
    script.write_text('let name = "world"\nprint("hello " + name)\n')
    run_main(monkeypatch, str(script))
    assert capsys.readouterr().out == "hello world\n"

  def test_script_imports_relative_to_itself(self, monkeypatch, capsys, tmp_path):
    """Imports resolve against the script's directory, not the working directory"""
    (tmp_path / "util.ly").write_text("func greet do print(\"hi\") end")
    script = tmp_path / "app.ly"
    script.write_text('import "util.ly" as util\nutil.greet()\n')
    monkeypatch.chdir("/")
    run_main(monkeypatch, str(script))
    assert capsys.readouterr().out == "hi\n"

  def test_runtime_error_exits_nonzero(self, monkeypatch, capsys, tmp_path):
    """Runtime errors are reported on stderr with their causes"""
    script = tmp_path / "bad.ly"
    script.write_text("let a = missing\n")
    with pytest.raises(SystemExit) as info:
      run_main(monkeypatch, str(script))
    assert info.value.code == 1
    err = capsys.readouterr().err
    assert "failed to declare 'a'" in err
    assert "caused by: 'missing' not found" in err

  def test_parse_error_exits_nonzero(self, monkeypatch, capsys, tmp_path):
    """Parse errors are reported with the file name"""
    script = tmp_path / "broken.ly"
    script.write_text("func f do\n")
    with pytest.raises(SystemExit) as info:
      run_main(monkeypatch, str(script))
    assert info.value.code == 1
    assert "broken.ly" in capsys.readouterr().err

  def test_missing_script(self, monkeypatch, capsys, tmp_path):
    """A nonexistent script path is an error"""
    with pytest.raises(SystemExit) as info:
      run_main(monkeypatch, str(tmp_path / "absent.ly"))
    assert info.value.code == 1

  def test_tokens(self, monkeypatch, capsys, tmp_path):
    """--tokens prints one token per line"""
    script = tmp_path / "t.ly"
    script.write_text("let x = 1")
    run_main(monkeypatch, "--tokens", str(script))
    assert len(capsys.readouterr().out.strip().splitlines()) == 4

  def test_ast(self, monkeypatch, capsys, tmp_path):
    """--ast prints the analyzed tree without running it"""
    script = tmp_path / "t.ly"
    script.write_text('func f x do return x end\nprint("side effect")')
    run_main(monkeypatch, "--ast", str(script))
    out = capsys.readouterr().out
    assert "Function" in out
    assert "side effect" not in out.splitlines()

  def test_no_std(self, monkeypatch, capsys, tmp_path):
    """--no-std leaves math undefined"""
    script = tmp_path / "m.ly"
    script.write_text("print(math.abs(-1))")
    run_main(monkeypatch, str(script))
    assert capsys.readouterr().out == "1\n"
    with pytest.raises(SystemExit):
      run_main(monkeypatch, "--no-std", str(script))


class TestConfig:
  """Test LilyConfig module loading"""

  def test_include_as(self):
    """Named includes become modules before the program runs"""
    config = LilyConfig(include_as=[("geo", "func area w h do return w * h end")], no_std=True)
    interpreter = config.execute("let a = geo.area(2, 3)")
    assert interpreter.lookup_python("a") == 6.0

  def test_include(self):
    """Anonymous includes declare into the root container"""
    config = LilyConfig(include=["let base = 10"])
    interpreter = config.execute("let b = base + math.max(1, 2)")
    assert interpreter.lookup_python("b") == 12.0

  def test_std_modules_come_first(self):
    """Standard modules load before user includes"""
    config = LilyConfig(include=["let a = 1"], include_as=[("x", "let b = 2")])
    assert [alias for alias, _ in config.modules()] == ["math", None, "x"]
    assert [alias for alias, _ in LilyConfig(no_std=True).modules()] == []
