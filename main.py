"""
Rua - Main Entry Point
Runs a Lua-subset script, or an interactive session
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from parsing import create_parser, KEYWORDS
from syntax_tree import pretty_print_ast
from interpreter import create_interpreter, DEFAULT_MAX_CALL_DEPTH
from error_handling import RuaError, RuaParseError, get_context_lines

VERSION = "rua 0.1.0"


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='rua',
      description='Rua - a tree-walking interpreter for a subset of Lua',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.lua             # Run a script
  %(prog)s -i                     # Interactive mode
  %(prog)s --tokens script.lua    # Show the token stream
  %(prog)s --parse script.lua     # Parse and show the AST
  %(prog)s --debug script.lua     # Run with execution trace on stderr
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='Lua script file to execute'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Tokenize file and show the tokens'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show the AST'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Trace parsing and execution on stderr'
  )

  parser.add_argument(
      '--max-depth',
      type=int,
      default=DEFAULT_MAX_CALL_DEPTH,
      metavar='N',
      help=f'Maximum call depth (default {DEFAULT_MAX_CALL_DEPTH})'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def read_source(script_path: str) -> str:
  try:
    with open(script_path, 'r', encoding='utf-8') as f:
      return f.read()
  except (FileNotFoundError, PermissionError, IsADirectoryError) as e:
    raise RuaError(f"cannot open {script_path}: {e.strerror}", 0, script_path)
  except UnicodeDecodeError as e:
    raise RuaError(f"cannot decode {script_path}: {e.reason}", 0, script_path)


def report_error(error: RuaError, script_path: Optional[str], source: Optional[str], debug: bool) -> None:
  """Print the one-line diagnostic (and, with --debug, the source around it) to stderr"""
  print(error.report(error.filename or script_path), file=sys.stderr)
  if not debug:
    return
  if isinstance(error, RuaParseError):
    print(error.details(), file=sys.stderr)
  elif source and error.line:
    print(get_context_lines(source, error.line), file=sys.stderr)


def show_tokens(script_path: str, debug: bool = False) -> int:
  """Tokenize a script and print one token per line"""
  source = None
  try:
    source = read_source(script_path)
    for token in create_parser(debug).tokenize(source, script_path):
      print(token)
  except RuaError as e:
    report_error(e, script_path, source, debug)
    return 1
  return 0


def show_ast(script_path: str, debug: bool = False) -> int:
  """Parse a script and print its AST"""
  source = None
  try:
    source = read_source(script_path)
    block = create_parser(debug).parse_string(source, script_path)
    print(pretty_print_ast(block), end='')
  except RuaError as e:
    report_error(e, script_path, source, debug)
    return 1
  return 0


def run_script_file(script_path: str, debug: bool = False, max_depth: int = DEFAULT_MAX_CALL_DEPTH) -> int:
  """Run a script; returns the process exit code"""
  source = None
  try:
    source = read_source(script_path)
    interpreter = create_interpreter(debug=debug, max_call_depth=max_depth)
    interpreter.run_source(source, script_path)
  except RuaError as e:
    sys.stdout.flush()
    report_error(e, script_path, source, debug)
    return 1
  return 0


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.rua_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    # First session, or the history file is unreadable
    pass
  readline.set_history_length(1000)

  completions = sorted(KEYWORDS) + ["print", "pairs", ":help", ":parse", ":env", ":quit"]

  def completer(text, state):
    options = [word for word in completions if word.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def run_interactive_mode(debug: bool = False, max_depth: int = DEFAULT_MAX_CALL_DEPTH) -> None:
  """Read-eval-print loop; globals persist from one line to the next"""
  print(f"{VERSION} - Interactive Mode")
  print("Type ':quit' to exit, ':help' for commands")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()
  interpreter = create_interpreter(debug=debug, max_call_depth=max_depth)

  while True:
    try:
      code = input("rua> ")
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    command = code.strip()
    if not command:
      continue
    if command in (":quit", ":q"):
      break

    if command == ":help":
      print("REPL Commands:")
      print("  :parse <code>     - Show the AST of a chunk")
      print("  :env              - Show global variables")
      print("  :help             - Show this help")
      print("  :quit             - Exit")
      print()
      print("An expression on its own line is printed, e.g. `1 + 2`.")
      continue

    if command == ":env":
      user_bindings = {
          name: value for name, value in interpreter.global_env['bindings'].items()
          if value['type'] != "Builtin"
      }
      if not user_bindings:
        print("  (no user-defined globals)")
      for name, value in user_bindings.items():
        print(f"  {name} = {value['type']} {str(value['value'])[:60]}")
      continue

    try:
      if command.startswith(":parse "):
        print(pretty_print_ast(interpreter.parser.parse_string(command[7:], "stdin")), end='')
        continue
      # A line that parses as an expression is printed
      try:
        interpreter.parser.parse_expression(command, "stdin")
        code = f"print({command})"
      except RuaParseError:
        pass
      interpreter.run_source(code, "stdin")
    except RuaError as e:
      report_error(e, "stdin", code, debug)


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for rua"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  if args.max_depth < 1:
    arg_parser.error("--max-depth must be at least 1")

  if args.script:
    if not Path(args.script).is_file():
      print(f"rua: cannot open {args.script}", file=sys.stderr)
      sys.exit(1)

    if args.tokens:
      sys.exit(show_tokens(args.script, debug=args.debug))
    elif args.parse:
      sys.exit(show_ast(args.script, debug=args.debug))
    sys.exit(run_script_file(args.script, debug=args.debug, max_depth=args.max_depth))

  elif args.interactive:
    run_interactive_mode(debug=args.debug, max_depth=args.max_depth)

  else:
    arg_parser.print_usage(sys.stderr)
    print("rua: no script given (use -i for interactive mode)", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
  main()
