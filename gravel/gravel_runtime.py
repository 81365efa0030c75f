"""
Runs the gravel pipeline (parse, evaluate, print) and reports the outcome as
a structured `CompileResult`.
"""
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple, Union

from gravel.gravel_datatypes import Scope, Span, Value, GravelError, VariableDecl
from gravel.gravel_config import CompilerOptions
from gravel.gravel_parser import StylesheetParser
from gravel.gravel_interpreter import Evaluator
from gravel.gravel_expression import evaluate
from gravel.gravel_tokens import tokenize


def line_and_col(source: str, offset: int) -> Tuple[int, int]:
    """1-based line and column of a character offset."""
    offset = max(0, min(offset, len(source)))
    line = source.count('\n', 0, offset) + 1
    col = offset - (source.rfind('\n', 0, offset) + 1) + 1
    return line, col


def source_context(source: str, line: int, col: Optional[int], radius: int = 2) -> str:
    lines = source.splitlines()
    if not line or line < 1 or line > len(lines):
        return ""
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    width = len(str(end))
    out = []
    for i in range(start, end + 1):
        prefix = ">" if i == line else " "
        ln = str(i).rjust(width)
        out.append(f"{prefix} {ln} | {lines[i - 1]}")
        if i == line and col is not None:
            caret = " " * max(col - 1, 0)
            out.append(f"  {' ' * width} | {caret}^")
    return "\n".join(out)


@dataclass
class CompileResult:
    """The structured result of compiling one stylesheet."""
    status: Literal['success', 'error']
    css: Optional[str] = None
    value: Optional[Value] = None
    error_message: Optional[str] = None
    error_span: Optional[Span] = None
    line: Optional[int] = None
    col: Optional[int] = None
    context: str = ""
    stacktrace: List[str] = field(default_factory=list)
    side_effects: List[Dict] = field(default_factory=list)
    path: Optional[str] = None

    def format_error(self) -> str:
        """Formats the error with its location, source context and call stack."""
        if self.status != 'error':
            return ""
        msg = f"Error: {self.error_message or 'Unknown error'}"
        if self.line is not None:
            where = f"{self.path}:" if self.path else ""
            msg += f"\n  ({where}line {self.line}, col {self.col})"
            if self.context:
                msg += "\n" + self.context
        if self.stacktrace:
            msg += "\n" + "\n".join(f"  at {frame}" for frame in self.stacktrace)
        return msg


class StylesheetRunner:
    """Parses, evaluates and prints gravel stylesheets.

    Each `handle_stylesheet` call gets a fresh evaluator and root scope, so a
    runner can be reused without one stylesheet's variables leaking into the
    next. The REPL scope used by `evaluate_expression` persists.
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()
        self.evaluator = Evaluator(self.options)
        self.repl_scope = Scope()
        self.repl_scope.meta["evaluator"] = self.evaluator

    def _error_result(self, e: Exception, source: str, path: Optional[str] = None) -> CompileResult:
        if isinstance(e, GravelError):
            result = CompileResult(status='error', error_message=e.message, error_span=e.span,
                                   stacktrace=list(e.stack or []), path=path)
            if e.span is not None:
                result.line, result.col = line_and_col(source, e.span.start)
                result.context = source_context(source, result.line, result.col)
        else:
            result = CompileResult(status='error', error_message=f"InternalError: {e}", path=path)
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': result.format_error()})
        result.side_effects = self.evaluator.side_effects
        return result

    def handle_stylesheet(self, source: str, path: Optional[str] = None) -> CompileResult:
        """The main entry point to compile a stylesheet."""
        self.evaluator = Evaluator(self.options)
        try:
            nodes = StylesheetParser(source).parse()
            css_nodes = self.evaluator.eval_stylesheet(nodes, Scope())
            css = self.evaluator.format(css_nodes)
        except GravelError as e:
            return self._error_result(e, source, path)
        except Exception as e:
            return self._error_result(e, source, path)
        return CompileResult(status='success', css=css, side_effects=self.evaluator.side_effects, path=path)

    def compile_file(self, path: Union[str, Path]) -> CompileResult:
        try:
            source = Path(path).read_text(encoding='utf-8')
        except OSError as e:
            return CompileResult(status='error', error_message=f"Cannot read {path}: {e.strerror}",
                                 path=str(path))
        return self.handle_stylesheet(source, path=str(path))

    def evaluate_expression(self, text: str) -> CompileResult:
        """Evaluates an expression or a `$name: value` assignment in the REPL scope."""
        self.evaluator.side_effects = []
        self.repl_scope.meta["evaluator"] = self.evaluator
        try:
            if text.lstrip().startswith('$') and ':' in text:
                nodes = StylesheetParser(text).parse()
                if len(nodes) == 1 and isinstance(nodes[0], VariableDecl):
                    decl = nodes[0]
                    value = evaluate(decl.value, self.repl_scope)
                    if decl.is_default and decl.name in self.repl_scope:
                        value = self.repl_scope[decl.name]
                    self.repl_scope.insert_var(decl.name, value)
                    return CompileResult(status='success', value=value, side_effects=self.evaluator.side_effects)
            value = evaluate(tokenize(text.strip().rstrip(';')), self.repl_scope)
        except GravelError as e:
            return self._error_result(e, text)
        except Exception as e:
            return self._error_result(e, text)
        return CompileResult(status='success', value=value, side_effects=self.evaluator.side_effects)


async def compile_batch(paths: List[Union[str, Path]],
                        options: Optional[CompilerOptions] = None) -> List[CompileResult]:
    """Compiles independent files concurrently, one runner (and scope chain) per file."""
    loop = asyncio.get_running_loop()

    def _compile(path):
        return StylesheetRunner(options).compile_file(path)

    tasks = [loop.run_in_executor(None, _compile, p) for p in paths]
    return list(await asyncio.gather(*tasks))
