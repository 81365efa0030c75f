"""
The gravel evaluator: runs a statement tree against a scope chain and
collects the resulting CSS rules.
"""
import os
import sys
from typing import Any, List, Optional

from gravel.gravel_datatypes import (
    Span, Scope, Value, Dimension, ValueList, NullValue, NULL,
    GravelError, ArgumentError, ValueTypeError, UnitError,
    Mixin, UserFunction,
    RuleSet, Declaration, VariableDecl, MixinDecl, FunctionDecl, Include, Return,
    If, For, Each, While, MessageRule, AtRule, Comment, Node,
    CssRule, CssDeclaration, CssComment, CssAtRule, CssNode
)
from gravel.gravel_args import FunctionSignature, CallArguments, Named, Positional
from gravel.gravel_expression import evaluate, interpolate
from gravel.gravel_config import CompilerOptions
from gravel.gravel_printer import Printer


class ReturnValue:
    """Carries an `@return` value out of nested control-flow bodies."""
    __slots__ = ("value",)

    def __init__(self, value: Value):
        self.value = value

    def __repr__(self):
        return f"<ReturnValue {self.value!r}>"


def is_return(x) -> bool:
    return isinstance(x, ReturnValue)


def unwrap_return(x):
    return x.value if is_return(x) else x


# =================================================================
# Selectors
# =================================================================

def split_selector_list(selector: str) -> List[str]:
    """Splits `a, b:not(c, d)` on top-level commas."""
    parts, depth, current = [], 0, []
    for ch in selector:
        if ch in '([':
            depth += 1
        elif ch in ')]' and depth:
            depth -= 1
        if ch == ',' and depth == 0:
            parts.append(''.join(current))
            current = []
        else:
            current.append(ch)
    parts.append(''.join(current))
    return [' '.join(p.split()) for p in parts if p.strip()]


def combine_selectors(parent: Optional[str], child: str, span: Optional[Span] = None) -> str:
    """Nests `child` under `parent`: a cartesian product with `&` substitution."""
    children = split_selector_list(child)
    if not parent:
        for c in children:
            if '&' in c:
                raise GravelError('Top-level selectors may not contain the parent selector "&".', span)
        return ', '.join(children)
    out = []
    for p in split_selector_list(parent):
        for c in children:
            out.append(c.replace('&', p) if '&' in c else f"{p} {c}")
    return ', '.join(out)


# =================================================================
# Evaluator
# =================================================================

class Evaluator:
    """The gravel execution engine."""

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()
        self.printer = Printer(self.options.indent_width, self.options.precision)
        self.side_effects: List[Any] = []
        self.call_stack: List[dict] = []
        self.output: List[CssNode] = []

    def _dbg(self, *parts):
        if self.options.debug or os.environ.get("GRAVEL_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _emit(self, topic: str, message: str):
        self.side_effects.append({'topics': ['stderr', topic], 'message': message})

    # --- Call stack ---
    def _push_frame(self, name: str, args: CallArguments, span: Span):
        if len(self.call_stack) >= self.options.max_call_depth:
            raise GravelError("Stack depth exceeded.", span)
        self.call_stack.append({'name': name, 'args': repr(args), 'call_site': span})

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _attach_stack(self, err: GravelError):
        if err.stack is None:
            err.stack = [frame['name'] for frame in reversed(self.call_stack)]

    # --- Entry points ---
    def eval_stylesheet(self, nodes: List[Node], scope: Scope) -> List[CssNode]:
        """Evaluates top-level statements, returning the compiled CSS nodes."""
        scope.root.meta["evaluator"] = self
        self.output = []
        self._eval_body(nodes, scope, rule=None, selector=None, in_function=False)
        return self.output

    def format(self, nodes: List[CssNode]) -> str:
        return self.printer.format_css(nodes)

    def _eval_body(self, nodes, scope, rule, selector, in_function):
        for node in nodes:
            result = self._eval(node, scope, rule, selector, in_function)
            if is_return(result):
                return result
        return None

    def _eval(self, node: Node, scope: Scope, rule: Optional[CssRule],
              selector: Optional[str], in_function: bool):
        match node:
            case RuleSet():
                if in_function:
                    raise GravelError("@function rules may not contain style rules.", node.span)
                text = interpolate(node.selector, scope, selector)
                full = combine_selectors(selector, text, node.span)
                self._dbg("RULE", full)
                css_rule = CssRule(full)
                self.output.append(css_rule)
                self._eval_body(node.body, scope.child(), css_rule, full, False)
                return None

            case Declaration():
                if in_function:
                    raise GravelError("@function rules may not contain declarations.", node.span)
                if rule is None:
                    raise GravelError("Declarations may only be used within style rules.", node.span)
                name = interpolate(node.name, scope, selector).strip()
                value = evaluate(node.value, scope, selector, slash_separator=True)
                css = self.printer.pformat(value)
                if css:
                    rule.items.append(CssDeclaration(name, css))
                return None

            case VariableDecl(name=name):
                if node.is_default:
                    target = scope.root if node.is_global else scope
                    if target.var_exists(name) and not isinstance(target.get_var(name), NullValue):
                        return None
                value = evaluate(node.value, scope, selector)
                self._dbg("SET", name, "global" if node.is_global else "local", value)
                if node.is_global:
                    scope.insert_global(name, value)
                else:
                    scope.insert_var(name, value)
                return None

            case MixinDecl(name=name):
                scope.insert_mixin(name, Mixin(name, node.signature, node.body, scope))
                return None

            case FunctionDecl(name=name):
                scope.insert_function(name, UserFunction(name, node.signature, node.body, scope))
                return None

            case Include(name=name):
                if in_function:
                    raise GravelError("Mixins may not be included in functions.", node.span)
                mixin = scope.get_mixin(name, node.span)
                self.call_mixin(mixin, node.args.copy(), scope, rule, selector, node.span)
                return None

            case Return():
                if not in_function:
                    raise GravelError("This at-rule is not allowed here.", node.span)
                return ReturnValue(evaluate(node.value, scope, selector))

            case If(clauses=clauses):
                for condition, body in clauses:
                    if condition is None or evaluate(condition, scope, selector).is_true():
                        return self._eval_body(body, scope, rule, selector, in_function)
                return None

            case For():
                return self._eval_for(node, scope, rule, selector, in_function)

            case Each(names=names):
                iterable = evaluate(node.iterable, scope, selector)
                items = iterable.items if isinstance(iterable, ValueList) else (iterable,)
                for item in items:
                    if len(names) == 1:
                        scope.insert_var(names[0], item)
                    else:
                        parts = item.items if isinstance(item, ValueList) else (item,)
                        for i, var in enumerate(names):
                            scope.insert_var(var, parts[i] if i < len(parts) else NULL)
                    result = self._eval_body(node.body, scope, rule, selector, in_function)
                    if is_return(result):
                        return result
                return None

            case While():
                while evaluate(node.condition, scope, selector).is_true():
                    result = self._eval_body(node.body, scope, rule, selector, in_function)
                    if is_return(result):
                        return result
                return None

            case MessageRule(kind=kind):
                value = evaluate(node.value, scope, selector)
                match kind:
                    case 'debug':
                        self._emit('debug', f"DEBUG: {self.printer.inspect(value)}")
                    case 'warn':
                        self._emit('warn', f"WARNING: {self.printer.pformat(value.unquote())}")
                    case 'error':
                        raise GravelError(self.printer.pformat(value.unquote()), node.span)
                return None

            case AtRule():
                text = interpolate(node.text, scope, selector)
                self.output.append(CssAtRule(text))
                return None

            case Comment(text=text):
                if in_function:
                    return None
                if rule is not None:
                    rule.items.append(CssComment(text))
                else:
                    self.output.append(CssComment(text))
                return None

        raise TypeError(f"Unknown statement node: {node!r}")

    def _eval_for(self, node: For, scope, rule, selector, in_function):
        start_val = evaluate(node.start, scope, selector)
        end_val = evaluate(node.end, scope, selector)
        start = self._expect_int(start_val, node.span)
        end = self._expect_int(end_val, node.span)
        if start <= end:
            bounds = range(start, end + 1 if node.inclusive else end)
        else:
            bounds = range(start, end - 1 if node.inclusive else end, -1)
        for i in bounds:
            scope.insert_var(node.var, Dimension.of(i, start_val.unit))
            result = self._eval_body(node.body, scope, rule, selector, in_function)
            if is_return(result):
                return result
        return None

    @staticmethod
    def _expect_int(value: Value, span: Span) -> int:
        if not isinstance(value, Dimension):
            raise ValueTypeError(f"{value.inspect()} is not a number.", span)
        n = value.number.to_index()
        if n is None:
            raise UnitError(f"{value.number} is not an int.", span)
        return n

    # --- Invocation ---
    def _bind_arguments(self, signature: FunctionSignature, args: CallArguments,
                        callee: Scope, caller: Scope, selector: Optional[str], span: Span):
        """Binds call arguments to parameters: by name, then by position, then default."""
        if signature.variadic is None:
            args.enforce_max(len(signature))
        for i, param in enumerate(signature):
            if param.is_variadic:
                rest = args.into_rest_values(caller, selector)
                callee.insert_var(param.name, ValueList(tuple(rest), ","))
                return
            if Named(param.name) in args.args and Positional(i) in args.args:
                raise ArgumentError(
                    f"Argument ${param.name} was passed both by position and by name.", span
                )
            value = args.get(i, param.name, caller, selector, default=None)
            if value is None:
                if param.default is None:
                    raise ArgumentError(f"Missing argument ${param.name}.", span)
                value = evaluate(param.default, callee, selector)
            callee.insert_var(param.name, value)
        for slot in args.args:
            if isinstance(slot, Named):
                raise ArgumentError(f"No argument named ${slot.name}.", span)

    def call_mixin(self, mixin: Mixin, args: CallArguments, caller: Scope,
                   rule: Optional[CssRule], selector: Optional[str], span: Span):
        self._push_frame(f"@include {mixin.name}", args, span)
        try:
            callee = mixin.closure.child()
            self._bind_arguments(mixin.signature, args, callee, caller, selector, span)
            self._eval_body(mixin.body, callee, rule, selector, False)
        except GravelError as e:
            self._attach_stack(e)
            raise
        finally:
            self._pop_frame()

    def call_function(self, fn: UserFunction, args: CallArguments, caller: Scope,
                      selector: Optional[str], span: Span) -> Value:
        self._push_frame(f"{fn.name}()", args, span)
        try:
            callee = fn.closure.child()
            self._bind_arguments(fn.signature, args, callee, caller, selector, span)
            result = self._eval_body(fn.body, callee, None, selector, True)
            if not is_return(result):
                raise GravelError("Function finished without @return.", span)
            self._dbg("RETURN", fn.name, result.value)
            return unwrap_return(result)
        except GravelError as e:
            self._attach_stack(e)
            raise
        finally:
            self._pop_frame()
