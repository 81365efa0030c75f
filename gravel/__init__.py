from gravel.gravel_datatypes import (
    Span, Token, GravelError, ParseError, ArityError, ArgumentError, ValueTypeError,
    UnitError, UndefinedOperation, UndefinedVariable,
    Unit, Number, Value, Dimension, Ident, QuoteKind, Boolean, NullValue, ValueList,
    TRUE, FALSE, NULL, Scope
)
from gravel.gravel_args import (
    Parameter, FunctionSignature, CallArguments, Named, Positional, parse_declaration, parse_call
)
from gravel.gravel_expression import evaluate, interpolate
from gravel.gravel_config import CompilerOptions
from gravel.gravel_runtime import StylesheetRunner, CompileResult, compile_batch


def compile_string(source: str, options: CompilerOptions = None) -> str:
    """Compiles `source` to CSS, raising the first GravelError encountered."""
    from gravel.gravel_parser import StylesheetParser
    from gravel.gravel_interpreter import Evaluator
    evaluator = Evaluator(options)
    nodes = StylesheetParser(source).parse()
    return evaluator.format(evaluator.eval_stylesheet(nodes, Scope()))
