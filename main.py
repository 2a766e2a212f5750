"""
Lily Programming Language - Main Entry Point
A small imperative scripting language with modules, structs and lists
"""

import sys
import argparse
import logging
import os
from pathlib import Path

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from ast_nodes import pretty_print_ast
from error_handling import LilyParseError
from execute import LilyConfig, LilySession
from parsing import KEYWORDS, create_parser
from semantics import LilySemanticsError
from stdlib import list_builtin_functions
from utilities import LilyError

VERSION = "Lily v0.3.0"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      description='Lily Programming Language - tree-walking interpreter',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.ly              # Run a Lily script
  %(prog)s -i                     # Interactive mode
  %(prog)s --tokens script.ly     # Show the token stream
  %(prog)s --ast script.ly        # Parse, analyze and show the AST
  %(prog)s --debug script.ly      # Run with debug logging
  %(prog)s --no-std script.ly     # Run without the bundled math module
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='Lily script file to execute'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Tokenize file and show tokens (for debugging)'
  )

  parser.add_argument(
      '--ast',
      action='store_true',
      help='Parse and analyze file, show AST (for debugging)'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug logging for all stages'
  )

  parser.add_argument(
      '--no-std',
      action='store_true',
      help='Do not load the standard library modules'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def configure_logging(debug: bool) -> None:
  logging.basicConfig(
      level=logging.DEBUG if debug else logging.WARNING,
      format="%(levelname)s %(name)s: %(message)s",
  )


def report_error(script_path: str, error: Exception) -> None:
  """Print an error with its context chain to stderr"""
  if isinstance(error, LilyError):
    print(f"Error in '{script_path}': {error.chain()[0]}", file=sys.stderr)
    for message in error.chain()[1:]:
      print(f"  caused by: {message}", file=sys.stderr)
  else:
    print(f"Error in '{script_path}': {error}", file=sys.stderr)


def show_tokens(script_path: str) -> None:
  """Tokenize a Lily script file and print the tokens"""
  try:
    with open(script_path, 'r', encoding='utf-8') as f:
      source = f.read()
    for token in create_parser().tokenize(source, script_path):
      print(f"{token.span.start_line:4d}:{token.span.start_col:<4d} {token}")
  except (OSError, UnicodeDecodeError, LilyParseError) as e:
    report_error(script_path, e)
    sys.exit(1)


def show_ast(script_path: str, config: LilyConfig) -> None:
  """Parse and analyze a Lily script file and print the AST"""
  try:
    session = LilySession(LilyConfig(no_std=True, debug=config.debug))
    with open(script_path, 'r', encoding='utf-8') as f:
      source = f.read()
    ref = session.compile(source, os.path.dirname(os.path.abspath(script_path)), script_path)
    print(pretty_print_ast(session.nodes, ref, session.interner), end='')
  except (OSError, UnicodeDecodeError, LilyParseError, LilySemanticsError, LilyError) as e:
    report_error(script_path, e)
    sys.exit(1)


def run_script_file(script_path: str, config: LilyConfig) -> None:
  """Run a Lily script file"""
  try:
    session = LilySession(config)
    session.run_file(script_path)
  except FileNotFoundError:
    print(f"Error: Script file '{script_path}' not found", file=sys.stderr)
    print(f"  Hint: Check the file path and make sure the file exists", file=sys.stderr)
    sys.exit(1)
  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'", file=sys.stderr)
    sys.exit(1)
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{script_path}': {e}", file=sys.stderr)
    print(f"  Hint: Make sure the file is a text file with UTF-8 encoding", file=sys.stderr)
    sys.exit(1)
  except (LilyParseError, LilySemanticsError, LilyError) as e:
    report_error(script_path, e)
    sys.exit(1)
  except RecursionError:
    print(f"Error in '{script_path}': maximum recursion depth exceeded", file=sys.stderr)
    sys.exit(1)


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.lily_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First run, no history yet
  readline.set_history_length(1000)

  completions = list(KEYWORDS) + list_builtin_functions() + [":env", ":help", ":quit"]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def read_statement(prompt: str = "lily> ") -> str:
  """Read lines until every do-block opened on them is closed"""
  lines = [input(prompt)]
  tokenizer_parser = create_parser()
  while True:
    try:
      tokens = tokenizer_parser.tokenize("\n".join(lines))
    except LilyParseError:
      break
    opened = sum(1 for t in tokens if t.type == "KEYWORD" and t.value in ("do", "struct"))
    opened -= sum(1 for t in tokens if t.type == "KEYWORD" and t.value == "do"
                  and _follows_struct(tokens, t))
    closed = sum(1 for t in tokens if t.type == "KEYWORD" and t.value == "end")
    if opened <= closed:
      break
    lines.append(input("....> "))
  return "\n".join(lines)


def _follows_struct(tokens, token) -> bool:
  """True for the optional `do` of a `struct Name do` header"""
  index = tokens.index(token)
  return index >= 2 and tokens[index - 2].type == "KEYWORD" and tokens[index - 2].value == "struct"


def run_interactive_mode(config: LilyConfig) -> None:
  """Run Lily in interactive mode"""
  print(f"{VERSION} - Interactive Mode")
  print("Type ':quit' to quit, ':help' for commands")
  if config.debug:
    print("Debug mode enabled")
  print()

  setup_readline()
  session = LilySession(config)

  while True:
    try:
      code = read_statement()
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    command = code.strip()
    if not command:
      continue
    if command == ":quit":
      break
    if command == ":help":
      print("REPL Commands:")
      print("  :env              - Show global bindings")
      print("  :help             - Show this help")
      print("  :quit             - Exit REPL")
      print()
      print("Language features:")
      print("  let x = 5                      - Declaration")
      print("  x = x + 1                      - Assignment")
      print("  func add a b do return a + b end")
      print("  if x > 1 do print(x) else print(0) end")
      print("  while x < 10 do x++ end")
      print("  import \"lib.ly\" as lib         - Module import")
      continue
    if command == ":env":
      bindings = session.interpreter.globals()
      if bindings:
        for name, value in bindings.items():
          print(f"  {name} = {value[:60]}")
      else:
        print("  (no user-defined bindings)")
      continue

    try:
      session.run_source(code, os.getcwd(), "<repl>")
    except (LilyParseError, LilySemanticsError) as e:
      print(e)
    except LilyError as e:
      print(f"Runtime error: {e}")


def main() -> None:
  """Main entry point for Lily"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args()

  configure_logging(args.debug)
  sys.setrecursionlimit(max(sys.getrecursionlimit(), 10000))
  config = LilyConfig(no_std=args.no_std, debug=args.debug,
                      debug_lexer=args.debug, debug_parser=args.debug)

  if args.script:
    if not Path(args.script).exists():
      print(f"Error: Script file '{args.script}' does not exist", file=sys.stderr)
      sys.exit(1)

    if args.tokens:
      show_tokens(args.script)
    elif args.ast:
      show_ast(args.script, config)
    else:
      run_script_file(args.script, config)

    if args.interactive:
      run_interactive_mode(config)
  elif args.interactive or len(sys.argv) == 1:
    run_interactive_mode(config)
  else:
    arg_parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
  main()
