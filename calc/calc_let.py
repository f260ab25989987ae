"""
The let-family: `let`, `letseq` and `letrec`.

All three share the syntax `let([name: expr, f(x, y): expr, ...], body)`
and compile to a call of the same-named symbol with two arguments: a
constant list of `(name . code)` pairs and the body code. They differ only
in the scope each binding expression is evaluated in.
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from calc.calc_datatypes import (
    NIL, CalcCallable, Code, Cons, ExecutionError, Frame, Name, ParseError,
    PlaceholderSymbol, PushValue, Stack, SymbolCall, SymbolMap, _dbg,
    expect_exact_arg_count, expect_exact_return_count,
)
from calc.calc_lambda import closure_wrapper_code, code_constant, extract_arg_names
from calc.calc_nodes import (
    BinaryOpNode, BracketNode, ExprNode, SymbolCallNode, SymbolGetNode, SymbolNodeFactory,
    ValueNode,
)

SYMBOL_LET = "let"
SYMBOL_LETSEQ = "letseq"
SYMBOL_LETREC = "letrec"

BINDING_OPERATORS = (":", "=")


@dataclass(eq=True, repr=False)
class LetNode(ExprNode):
    symbol: str
    bindings: ExprNode
    body: ExprNode

    @property
    def children(self):
        return (self.bindings, self.body)

    def binding_nodes(self) -> Sequence[ExprNode]:
        if isinstance(self.bindings, BracketNode):
            return self.bindings.children
        return (self.bindings,)

    def flatten(self, output):
        pairs = [self._flatten_name_and_value(node) for node in self.binding_nodes()]
        output.append(PushValue(Cons.from_list(pairs)))
        output.append(PushValue(code_constant(self.body)))
        output.append(SymbolCall(self.symbol, 2, 1))

    def _flatten_name_and_value(self, node: ExprNode) -> Cons:
        if not (isinstance(node, BinaryOpNode) and node.operator.name in BINDING_OPERATORS):
            raise ParseError(f"Expected name:value pair in '{self.symbol}', got {node!r}")
        name, value = node.left, node.right

        match name:
            case SymbolCallNode(symbol=symbol, args=args):
                # f(x, y):<code> -> f:(x, y) -> <code>
                return Cons(Name(symbol), closure_wrapper_code(extract_arg_names(BracketNode("(", ")", args)), value))
            case SymbolGetNode(symbol=symbol):
                return Cons(Name(symbol), Code.flatten(value))
            case ValueNode(value=Name() as quoted):
                return Cons(quoted, Code.flatten(value))
            case ValueNode(value=str(text)):
                return Cons(Name(text), Code.flatten(value))
        raise ParseError(f"Invalid binding name in '{self.symbol}': {name!r}")


class LetNodeFactory(SymbolNodeFactory):
    def create_root_symbol_node(self, children):
        if children is None or len(children) != 2:
            count = 0 if children is None else len(children)
            raise ParseError(f"Expected two args for '{self.symbol}' expression, got {count}")
        return LetNode(self.symbol, children[0], children[1])


# =================================================================
# Runtime symbols
# =================================================================

def _iterate_bindings(bindings, symbol: str) -> List[Tuple[str, Code]]:
    result = []
    cells: Iterable = () if bindings is NIL else bindings
    if bindings is not NIL and not isinstance(bindings, Cons):
        raise TypeError(f"Expected list of name:value pairs as first '{symbol}' parameter, got {bindings!r}")
    for pair in cells:
        if not (isinstance(pair, Cons) and isinstance(pair.car, Name) and isinstance(pair.cdr, Code)):
            raise TypeError(f"Expected list of name:value pairs as first '{symbol}' parameter, got {bindings!r}")
        result.append((pair.car.text, pair.cdr))
    return result


def _single_result(stack: Stack, name: str):
    if len(stack) != 1:
        raise ExecutionError(f"Expected single result from 'let' expression for '{name}', got {len(stack)}")
    return stack.pop()


class LetSymbolBase(CalcCallable):
    symbol = SYMBOL_LET

    def call(self, frame, args, returns):
        expect_exact_arg_count(args, 2)

        let_frame = Frame.new_local_frame_with_substack(frame, 2)
        let_stack = let_frame.stack
        code = let_stack.pop()
        if not isinstance(code, Code):
            raise TypeError(f"Expected code as second '{self.symbol}' parameter, got {code!r}")
        bindings = _iterate_bindings(let_stack.pop(), self.symbol)

        self.prepare_frame(let_frame.symbols, frame.symbols, bindings)

        code.execute(let_frame)
        expect_exact_return_count(returns, len(let_stack))

    def prepare_frame(self, output: SymbolMap, call_symbols: SymbolMap, bindings: List[Tuple[str, Code]]):
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<native {self.symbol}>"


class LetSymbol(LetSymbolBase):
    """Each binding sees only the call-site scope, never its siblings."""
    symbol = SYMBOL_LET

    def prepare_frame(self, output, call_symbols, bindings):
        for name, expr in bindings:
            execution_frame = Frame.new_local_frame(call_symbols)
            execution_frame.symbols.put(name, PlaceholderSymbol(name))

            expr.execute(execution_frame)

            result = _single_result(execution_frame.stack, name)
            _dbg("LET", name, result)
            # replace placeholder with actual value
            execution_frame.symbols.put(name, result)
            output.put(name, result)


class LetSeqSymbol(LetSymbolBase):
    """Bindings run in order in the body scope; later ones see earlier ones."""
    symbol = SYMBOL_LETSEQ

    def prepare_frame(self, output, call_symbols, bindings):
        execution_frame = Frame.symbols_to_frame(output)
        for name, expr in bindings:
            output.put(name, PlaceholderSymbol(name))
            expr.execute(execution_frame)
            result = _single_result(execution_frame.stack, name)
            _dbg("LETSEQ", name, result)
            output.put(name, result)


class LetRecSymbol(LetSymbolBase):
    """All names exist (as placeholders) while any binding is evaluated."""
    symbol = SYMBOL_LETREC

    def prepare_frame(self, output, call_symbols, bindings):
        execution_frame = Frame.new_local_frame(call_symbols)
        execution_symbols = execution_frame.symbols

        for name, _ in bindings:
            execution_symbols.put(name, PlaceholderSymbol(name))

        results = []
        for name, expr in bindings:
            expr.execute(execution_frame)
            results.append((name, _single_result(execution_frame.stack, name)))

        # values become visible only once every expression has been evaluated
        for name, value in results:
            _dbg("LETREC", name, value)
            execution_symbols.put(name, value)
            output.put(name, value)
