"""
Lily execution configuration
One place that wires interner, parser, analyzer and interpreter together for a run
"""

import logging
import os
from typing import List, Optional, Tuple

from ast_nodes import NodeArena, pretty_print_ast
from interner import Interner
from interpreter import RuntimeEnv, create_debug_interpreter, create_interpreter
from parsing import create_debug_parser, create_parser
from semantics import AnalysisContext, analyze_module, analyze_program
from stdlib import STANDARD_MODULES

logger = logging.getLogger(__name__)


class LilyConfig:
  """Options for one interpreter run

  Attributes:
    include: Sources executed before the program as anonymous modules
    include_as: (alias, source) pairs executed as named modules
    debug_lexer: Log the token stream of the program
    debug_parser: Log the analyzed AST of the program
    no_std: Skip the bundled standard modules
    debug: Trace parsing, imports and calls
  """

  def __init__(self, include: Optional[List[str]] = None,
               include_as: Optional[List[Tuple[str, str]]] = None,
               debug_lexer: bool = False, debug_parser: bool = False,
               no_std: bool = False, debug: bool = False):
    self.include = list(include or [])
    self.include_as = list(include_as or [])
    self.debug_lexer = debug_lexer
    self.debug_parser = debug_parser
    self.no_std = no_std
    self.debug = debug

  def modules(self) -> List[Tuple[Optional[str], str]]:
    """Everything to run before the program, standard modules first"""
    modules: List[Tuple[Optional[str], str]] = []
    if not self.no_std:
      modules.extend(STANDARD_MODULES.items())
    modules.extend((None, source) for source in self.include)
    modules.extend(self.include_as)
    return modules

  def execute(self, source: str, output=None, input=None, base_dir: str = ".",
              filename: str = "<input>") -> RuntimeEnv:
    """Parse and run source, returning the interpreter for inspection"""
    session = LilySession(self, output, input)
    session.run_source(source, base_dir, filename)
    return session.interpreter


class LilySession:
  """Interpreter plus the parsing state it shares across runs (used by the REPL)"""

  def __init__(self, config: Optional[LilyConfig] = None, output=None, input=None):
    self.config = config or LilyConfig()
    self.interner = Interner()
    self.nodes = NodeArena()
    self.parser = create_debug_parser() if self.config.debug else create_parser()
    if self.config.debug:
      self.interpreter = create_debug_interpreter(self.interner, self.nodes, output, input)
    else:
      self.interpreter = create_interpreter(self.interner, self.nodes, output, input)

    for alias, module_source in self.config.modules():
      statements = self.parser.parse_string(module_source, f"<{alias or 'include'}>")
      ref = analyze_module(statements, self._context(".", "<module>"), alias)
      self.interpreter.run(ref)
      logger.debug(f"loaded module {alias or '<anonymous>'}")

  def _context(self, base_dir: str, filename: str) -> AnalysisContext:
    stack = (os.path.abspath(filename),) if os.path.isfile(filename) else ()
    return AnalysisContext(
      self.interner, self.nodes, self.parser, os.path.abspath(base_dir), filename,
      stack, self.config.debug
    )

  def compile(self, source: str, base_dir: str = ".", filename: str = "<input>") -> int:
    """Parse and analyze source into the shared node arena"""
    if self.config.debug_lexer:
      for token in self.parser.tokenize(source, filename):
        logger.debug(f"token {token} at {token.span}")
    statements = self.parser.parse_string(source, filename)
    ref = analyze_program(statements, self._context(base_dir, filename))
    if self.config.debug_parser:
      logger.debug("\n" + pretty_print_ast(self.nodes, ref, self.interner))
    return ref

  def run_source(self, source: str, base_dir: str = ".", filename: str = "<input>") -> None:
    self.interpreter.run(self.compile(source, base_dir, filename))

  def run_file(self, path: str) -> None:
    with open(path, 'r', encoding='utf-8') as f:
      source = f.read()
    self.run_source(source, os.path.dirname(os.path.abspath(path)), path)
