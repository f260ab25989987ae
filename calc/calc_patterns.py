"""
Bind patterns: destructuring a runtime value against named binds,
wildcards and decomposable constructor shapes.

A pattern is written as an ordinary expression and compiled by executing
it in a read-only scope where unknown names turn into placeholders.
Placeholders can be called (`Point(x, y)`) and dotted (`shapes.Point(x, y)`)
to describe constructor decompositions. The single resulting value is then
translated into a tree of `PatternPart` matchers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from calc.calc_datatypes import (
    CONS, Attributable, CalcCallable, Code, Cons, DecompositionContractError, Decomposable,
    ExecutionError, Frame, Namespace, ParseError, PushValue, Scope, Symbol, SymbolCall, SymbolMap,
    SymbolNotFound, ValueSymbol, _dbg, expect_exact_return_count,
)
from calc.calc_lambda import LambdaNode, code_constant
from calc.calc_nodes import ExprNode, SymbolNodeFactory

MATCH_ANY = "_"
SYMBOL_MATCH = "match"


# =================================================================
# Pattern tree
# =================================================================

class PatternPart(ABC):
    @abstractmethod
    def match(self, env: Frame, output: SymbolMap, value: Any) -> bool:
        raise NotImplementedError


class PatternAny(PatternPart):
    def match(self, env, output, value):
        return True

    def __repr__(self) -> str:
        return "PatternAny"


PATTERN_ANY = PatternAny()


class PatternBindName(PatternPart):
    def __init__(self, name: str):
        self.name = name

    def match(self, env, output, value):
        output.put(self.name, value)
        return True

    def __repr__(self) -> str:
        return f"PatternBindName({self.name!r})"


class PatternMatchValue(PatternPart):
    """Matches values equal to a constant."""

    def __init__(self, value: Any):
        self.value = value

    def match(self, env, output, value):
        return value == self.value

    def __repr__(self) -> str:
        return f"PatternMatchValue({self.value!r})"


class PatternMatchConstructor(PatternPart):
    """Decomposes the value with a constructor, then matches each part."""

    def __init__(self, arg_matchers: Sequence[PatternPart]):
        self.arg_matchers = list(arg_matchers)

    def match(self, env, output, value):
        constructor = self.find_constructor(env)
        if not isinstance(constructor, Decomposable):
            raise ExecutionError(f"Value {constructor!r} does not describe constructor or type")

        expected = len(self.arg_matchers)
        decomposition = constructor.try_decompose(value, expected)
        if decomposition is None:
            return False

        actual = len(decomposition)
        if actual != expected:
            raise DecompositionContractError(
                f"Decomposable contract broken by {constructor!r}: expected {expected} values, got {actual}")

        for pattern, part in zip(self.arg_matchers, decomposition):
            if not pattern.match(env, output, part):
                return False
        return True

    def find_constructor(self, env: Frame) -> Any:
        raise NotImplementedError


class PatternMatchFixedConstructor(PatternMatchConstructor):
    def __init__(self, arg_matchers, constructor: Decomposable):
        super().__init__(arg_matchers)
        self.constructor = constructor

    def find_constructor(self, env):
        return self.constructor


class PatternMatchLocalConstructor(PatternMatchConstructor):
    def __init__(self, arg_matchers, type_name: str):
        super().__init__(arg_matchers)
        self.type_name = type_name

    def find_constructor(self, env):
        symbol = env.symbols.get_symbol(self.type_name)
        if symbol is None:
            raise SymbolNotFound(self.type_name, f"Can't find decomposable constructor '{self.type_name}'")
        return symbol.get()


class PatternMatchNamespaceConstructor(PatternMatchConstructor):
    def __init__(self, arg_matchers, path_start: str, path: Sequence[str]):
        super().__init__(arg_matchers)
        self.path_start = path_start
        self.path = list(path)

    def find_constructor(self, env):
        symbol = env.symbols.get_symbol(self.path_start)
        if symbol is None:
            raise SymbolNotFound(self.path_start, f"Can't find symbol '{self.path_start}'")

        result = symbol.get()
        for key in self.path:
            if not isinstance(result, Attributable):
                raise ExecutionError(f"Value {result!r} is not a structure")
            member = result.attr(key)
            if member is None:
                raise ExecutionError(f"Can't find value '{key}' in {result!r}")
            result = member
        return result


# =================================================================
# Placeholders produced while compiling a pattern
# =================================================================

class PatternProvider(ABC):
    @abstractmethod
    def get_pattern(self, translator: 'BindPatternTranslator') -> PatternPart:
        raise NotImplementedError


def _collect_args(frame: Frame, args: Optional[int]) -> List[Any]:
    if args is None:
        raise ExecutionError("Type constructor must be always called with arg count")
    return frame.stack.substack(args).pop_all()


class CtorPlaceholder(PatternProvider):
    def __init__(self, var: str, args: Sequence[Any]):
        self.var = var
        self.args = list(args)

    def get_pattern(self, translator):
        return PatternMatchLocalConstructor(translator.translate_all(self.args), self.var)

    def __repr__(self) -> str:
        return f"<pattern {self.var}({len(self.args)})>"


class TerminalNamespaceCtorPlaceholder(PatternProvider):
    def __init__(self, var: str, path: Sequence[str], args: Sequence[Any]):
        self.var = var
        self.path = list(path)
        self.args = list(args)

    def get_pattern(self, translator):
        return PatternMatchNamespaceConstructor(translator.translate_all(self.args), self.var, self.path)

    def __repr__(self) -> str:
        return f"<pattern {'.'.join([self.var] + self.path)}({len(self.args)})>"


class NamespaceCtorPlaceholder(PatternProvider, Attributable, CalcCallable):
    def __init__(self, var: str, path: Sequence[str]):
        self.var = var
        self.path = list(path)

    def get_pattern(self, translator):
        raise ExecutionError(f"Unfinished namespace constructor matcher: {'.'.join([self.var] + self.path)}")

    def attr(self, key):
        return NamespaceCtorPlaceholder(self.var, self.path + [key])

    def call(self, frame, args, returns):
        expect_exact_return_count(returns, 1)
        frame.stack.push(TerminalNamespaceCtorPlaceholder(self.var, self.path, _collect_args(frame, args)))

    def __repr__(self) -> str:
        return f"<pattern {'.'.join([self.var] + self.path)}>"


class VarPlaceholder(PatternProvider, Attributable, CalcCallable):
    def __init__(self, var: str):
        self.var = var

    def get_pattern(self, translator):
        if self.var == MATCH_ANY:
            return PATTERN_ANY
        return PatternBindName(self.var)

    def attr(self, key):
        return NamespaceCtorPlaceholder(self.var, [key])

    def call(self, frame, args, returns):
        expect_exact_return_count(returns, 1)
        frame.stack.push(CtorPlaceholder(self.var, _collect_args(frame, args)))

    def __repr__(self) -> str:
        return f"<pattern {self.var}>"


class PatternPlaceholderSymbol(Symbol):
    def __init__(self, var: str):
        self.var = var

    def get(self):
        return VarPlaceholder(self.var)

    def call(self, frame, args, returns):
        VarPlaceholder(self.var).call(frame, args, returns)


def _is_constructor_path(symbol: Symbol) -> bool:
    return isinstance(symbol, ValueSymbol) and isinstance(symbol.value, (Decomposable, Namespace))


class PatternScope(SymbolMap):
    """Read-only scope used to compile patterns.

    Names bound in the parent resolve normally unless they are bound to a
    decomposable constructor or a namespace; every other name becomes a
    placeholder.
    """

    def __init__(self, parent: SymbolMap):
        self.parent = parent

    def put(self, name, symbol):
        raise ExecutionError("Can't create new symbols in match patterns")

    def get_symbol(self, name):
        if name != MATCH_ANY:
            symbol = self.parent.get_symbol(name)
            if symbol is not None and not _is_constructor_path(symbol):
                return symbol
        return PatternPlaceholderSymbol(name)


# =================================================================
# Translation and evaluation
# =================================================================

class BindPatternTranslator:
    def translate_pattern(self, value: Any) -> PatternPart:
        match value:
            case PatternProvider():
                return value.get_pattern(self)
            case Cons(car=car, cdr=cdr):
                return PatternMatchFixedConstructor([self.translate_pattern(car), self.translate_pattern(cdr)], CONS)
            case _:
                return PatternMatchValue(value)

    def translate_all(self, values: Sequence[Any]) -> List[PatternPart]:
        return [self.translate_pattern(v) for v in values]


class BindPatternEvaluator:
    def __init__(self):
        self.translator = BindPatternTranslator()

    def evaluate(self, top_symbols: SymbolMap, pattern: Code) -> Any:
        """Runs pattern code in a placeholder scope and returns its single value."""
        pattern_frame = Frame.symbols_to_frame(PatternScope(top_symbols))
        pattern.execute(pattern_frame)
        if len(pattern_frame.stack) != 1:
            raise ExecutionError(f"Invalid result of pattern compilation: {len(pattern_frame.stack)} values")
        return pattern_frame.stack.pop()

    def compile(self, top_symbols: SymbolMap, pattern: Code) -> PatternPart:
        return self.translator.translate_pattern(self.evaluate(top_symbols, pattern))

    def match(self, env: Frame, pattern: PatternPart, value: Any) -> Optional[Scope]:
        """Returns a scope holding the binds, or None when the value does not match."""
        output = Scope(env.symbols)
        if pattern.match(env, output, value):
            return output
        return None


# =================================================================
# match(subject, pattern -> body, ...)
# =================================================================

@dataclass(eq=True, repr=False)
class MatchNode(ExprNode):
    symbol: str
    subject: ExprNode
    clauses: tuple

    @property
    def children(self):
        return (self.subject,) + self.clauses

    def flatten(self, output):
        self.subject.flatten(output)
        for clause in self.clauses:
            output.append(PushValue(Code.flatten(clause.params)))
            output.append(PushValue(code_constant(clause.body)))
        output.append(SymbolCall(self.symbol, 1 + 2 * len(self.clauses), 1))


class MatchNodeFactory(SymbolNodeFactory):
    def create_root_symbol_node(self, children):
        if not children or len(children) < 2:
            raise ParseError(f"Expected value and at least one 'pattern -> body' clause in '{self.symbol}'")
        clauses = tuple(children[1:])
        for clause in clauses:
            if not isinstance(clause, LambdaNode):
                raise ParseError(f"Expected 'pattern -> body' clause in '{self.symbol}', got {clause!r}")
        return MatchNode(self.symbol, children[0], clauses)


class MatchSymbol(CalcCallable):
    def __init__(self, evaluator: BindPatternEvaluator):
        self.evaluator = evaluator

    def call(self, frame, args, returns):
        if args is None or args < 3 or args % 2 == 0:
            raise ExecutionError(f"'{SYMBOL_MATCH}' expects a value and pattern/body pairs, got {args} argument(s)")

        stack = frame.stack.substack(args)
        values = stack.pop_all()
        subject = values[0]

        for pattern_code, body in zip(values[1::2], values[2::2]):
            pattern = self.evaluator.compile(frame.symbols, pattern_code)
            output = self.evaluator.match(frame, pattern, subject)
            _dbg("MATCH", pattern, subject, output is not None)
            if output is not None:
                body.execute(Frame(output, stack))
                expect_exact_return_count(returns, len(stack))
                return

        raise ExecutionError(f"No pattern matched value {subject!r}")

    def __repr__(self) -> str:
        return f"<native {SYMBOL_MATCH}>"
