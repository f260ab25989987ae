"""
The calc runtime: builtins, environment setup and the host-facing runner.
"""
import collections.abc
import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Union

from calc.calc_datatypes import (
    CONS, NIL, Attributable, CalcCallable, Code, Cons, ExecutionError, Frame, InvalidToken, PushValue,
    ParseError, SymbolCall, Token, TokenStream, _dbg, call_value, expect_exact_arg_count,
    expect_exact_return_count, iterate_list,
)
from calc.calc_interpreter import Environment
from calc.calc_lambda import SYMBOL_CLOSURE, ClosureSymbol, code_constant, create_lambda_node
from calc.calc_let import (
    SYMBOL_LET, SYMBOL_LETREC, SYMBOL_LETSEQ, LetNodeFactory, LetRecSymbol, LetSeqSymbol, LetSymbol,
)
from calc.calc_nodes import SYMBOL_APPLY, ExprNode, SymbolNodeFactory
from calc.calc_operators import OperatorDictionary
from calc.calc_parser import QuoteNodeFactory
from calc.calc_patterns import SYMBOL_MATCH, BindPatternEvaluator, MatchNodeFactory, MatchSymbol
from calc.calc_printer import Printer

DEFAULT_OPERATORS_PATH = Path(__file__).parent / "operators.yaml"

SYMBOL_IF = "if"
MODIFIER_QUOTE = "#"


class StdLib:
    """Python implementations of the calc built-ins and operator functions.

    Every `_name` method is installed as the global `name` and is also
    available as the `impl` of an operator table entry.
    """

    # --- Math and Logic ---
    def _add(self, a, b): return a + b
    def _sub(self, a, b): return a - b
    def _mul(self, a, b): return a * b
    def _div(self, a, b): return a / b
    def _mod(self, a, b): return a % b
    def _pow(self, b, e): return b ** e
    def _neg(self, x): return -x
    def _pos(self, x): return +x
    def _eq(self, a, b): return a == b
    def _neq(self, a, b): return a != b
    def _gt(self, a, b): return a > b
    def _gte(self, a, b): return a >= b
    def _lt(self, a, b): return a < b
    def _lte(self, a, b): return a <= b
    def _not(self, x): return not x
    # both operands are already evaluated; these only combine them
    def _and(self, a, b): return a and b
    def _or(self, a, b): return a or b

    # --- Lists ---
    def _cons(self, car, cdr): return Cons(car, cdr)
    def _list(self, *items): return Cons.from_list(items)

    def _car(self, pair):
        if not isinstance(pair, Cons):
            raise TypeError(f"car: expected a pair, got {pair!r}")
        return pair.car

    def _cdr(self, pair):
        if not isinstance(pair, Cons):
            raise TypeError(f"cdr: expected a pair, got {pair!r}")
        return pair.cdr

    def _len(self, value):
        if isinstance(value, str):
            return len(value)
        return len(iterate_list(value, "len argument"))

    def _str(self, value):
        if isinstance(value, str):
            return value
        return Printer().pformat(value)

    # --- Structures ---
    def _attr(self, target, key):
        match target:
            case Attributable():
                result = target.attr(key)
                if result is not None:
                    return result
            case collections.abc.Mapping():
                # mapping entries may hold None
                if key in target:
                    return target[key]
            case _:
                raise ExecutionError(f"Value {target!r} has no attributes")
        raise ExecutionError(f"Can't find value '{key}' in {target!r}")


class ApplySymbol(CalcCallable):
    """`apply(f, x, ...)`: calls the first argument with the rest."""

    def call(self, frame, args, returns):
        if args is None or args < 1:
            raise ExecutionError(f"'{SYMBOL_APPLY}' expects a callable and its arguments")
        values = frame.stack.substack(args).pop_all()
        target, arguments = values[0], values[1:]
        for value in arguments:
            frame.stack.push(value)
        call_value(target, frame, len(arguments), returns)

    def __repr__(self) -> str:
        return f"<native {SYMBOL_APPLY}>"


# =================================================================
# if(cond, then, else)
# =================================================================

@dataclass(eq=True, repr=False)
class IfNode(ExprNode):
    symbol: str
    condition: ExprNode
    then: ExprNode
    otherwise: ExprNode

    @property
    def children(self):
        return (self.condition, self.then, self.otherwise)

    def flatten(self, output):
        self.condition.flatten(output)
        output.append(PushValue(code_constant(self.then)))
        output.append(PushValue(code_constant(self.otherwise)))
        output.append(SymbolCall(self.symbol, 3, 1))


class IfNodeFactory(SymbolNodeFactory):
    def create_root_symbol_node(self, children):
        if children is None or len(children) != 3:
            count = 0 if children is None else len(children)
            raise ParseError(f"Expected three args for '{self.symbol}' expression, got {count}")
        return IfNode(self.symbol, *children)


class IfSymbol(CalcCallable):
    """Runs only the branch selected by the condition."""

    def call(self, frame, args, returns):
        expect_exact_arg_count(args, 3)
        stack = frame.stack.substack(3)
        condition, then, otherwise = stack.pop_all()
        branch = then if condition else otherwise
        if not isinstance(branch, Code):
            raise TypeError(f"Expected code as '{SYMBOL_IF}' branch, got {branch!r}")
        branch.execute(Frame(frame.symbols, stack))
        expect_exact_return_count(returns, len(stack))

    def __repr__(self) -> str:
        return f"<native {SYMBOL_IF}>"


# =================================================================
# Environment setup
# =================================================================

def stdlib_members(stdlib: StdLib) -> Dict[str, Any]:
    members = {}
    for name, member in inspect.getmembers(stdlib):
        if name.startswith('_') and not name.startswith('__') and callable(member):
            members[name[1:]] = member
    return members


def create_environment(operator_config: Optional[Dict[str, Any]] = None) -> Environment:
    """Builds an environment with the default syntax and built-ins installed."""
    if operator_config is None:
        operator_config = OperatorDictionary.load_config(DEFAULT_OPERATORS_PATH)

    builtins = stdlib_members(StdLib())
    operators = OperatorDictionary.from_config(operator_config, builtins).freeze()
    env = Environment(operators)

    factory = env.node_factory
    factory.register_binary("lambda", create_lambda_node)
    factory.register_modifier(MODIFIER_QUOTE, QuoteNodeFactory(env.value_parser))
    for symbol in (SYMBOL_LET, SYMBOL_LETSEQ, SYMBOL_LETREC):
        factory.register_symbol(symbol, LetNodeFactory)
    factory.register_symbol(SYMBOL_MATCH, MatchNodeFactory)
    factory.register_symbol(SYMBOL_IF, IfNodeFactory)

    for name, member in builtins.items():
        env.set_global(name, member)

    env.set_global(SYMBOL_CLOSURE, ClosureSymbol())
    env.set_global(SYMBOL_LET, LetSymbol())
    env.set_global(SYMBOL_LETSEQ, LetSeqSymbol())
    env.set_global(SYMBOL_LETREC, LetRecSymbol())
    env.set_global(SYMBOL_MATCH, MatchSymbol(BindPatternEvaluator()))
    env.set_global(SYMBOL_APPLY, ApplySymbol())
    env.set_global(SYMBOL_IF, IfSymbol())
    env.set_global("Cons", CONS)
    env.set_global("null", NIL)
    env.set_global("true", True)
    env.set_global("false", False)
    return env


# =================================================================
# Host runner
# =================================================================

@dataclass
class ExecutionResult:
    """The structured result of running a program."""
    status: Literal['success', 'error']
    values: List[Any] = field(default_factory=list)
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def value(self) -> Any:
        """The top of the final stack, or None when it is empty."""
        return self.values[-1] if self.values else None

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token is not None:
            return f"{msg} (at {self.error_token})"
        return msg


class CalcRunner:
    """Parses and executes token streams against a private environment."""

    _operator_configs: Dict[str, Dict[str, Any]] = {}

    def __init__(self, operators_path=None):
        path = str(operators_path or DEFAULT_OPERATORS_PATH)
        if path not in CalcRunner._operator_configs:
            CalcRunner._operator_configs[path] = OperatorDictionary.load_config(path)
        self.environment = create_environment(CalcRunner._operator_configs[path])
        self.side_effects: List[Dict] = []

    def _format_error(self, e: Exception) -> str:
        return f"{type(e).__name__}: {e}"

    def run(self, tokens: Union[TokenStream, Iterable[Token]]) -> ExecutionResult:
        """The main entry point to execute a `;`-separated program."""
        self.side_effects = []
        try:
            nodes = self.environment.parse_program(tokens)
            code = self.environment.compile_program(nodes)
            values = self.environment.execute(code)
            return ExecutionResult(status='success', values=values, side_effects=self.side_effects)
        except Exception as e:
            msg = self._format_error(e)
            token = e.token if isinstance(e, InvalidToken) else None
            _dbg("ERROR", msg)
            self.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(
                status='error',
                error_message=msg,
                error_token=token,
                side_effects=self.side_effects,
            )
