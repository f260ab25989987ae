"""
Lambda syntax (`params -> body`) and the `closure` symbol it compiles to.
"""

from dataclasses import dataclass
from typing import List

from calc.calc_datatypes import (
    NIL, CalcCallable, Closure, Code, Cons, Name, ParseError, PushValue, SymbolCall,
    _dbg, expect_exact_arg_count, expect_exact_return_count,
)
from calc.calc_nodes import (
    BinaryOpNode, BracketNode, ExprNode, RawCodeNode, SymbolGetNode, ValueNode,
)

SYMBOL_CLOSURE = "closure"


def extract_arg_name(node: ExprNode) -> Name:
    """Reads a single parameter name from a parsed node."""
    match node:
        case SymbolGetNode(symbol=symbol):
            return Name(symbol)
        case ValueNode(value=Name() as name):
            return name
        case ValueNode(value=str(text)):
            return Name(text)
    raise ParseError(f"Expected single symbol or list of symbols as lambda arguments, got {node!r}")


def extract_arg_names(node: ExprNode) -> List[Name]:
    # any bracket kind is accepted as an argument list
    if isinstance(node, BracketNode):
        return [extract_arg_name(child) for child in node.children]
    return [extract_arg_name(node)]


@dataclass(eq=True, repr=False)
class LambdaNode(BinaryOpNode):
    """`params -> body`: builds a closure over the scope it is evaluated in."""

    @property
    def params(self) -> ExprNode:
        return self.left

    @property
    def body(self) -> ExprNode:
        return self.right

    def flatten(self, output):
        output.append(PushValue(Cons.from_list(extract_arg_names(self.left))))
        if isinstance(self.right, RawCodeNode):
            self.right.flatten(output)
        else:
            output.append(PushValue(Code.flatten(self.right)))
        output.append(SymbolCall(SYMBOL_CLOSURE, 2, 1))


def create_lambda_node(op, left: ExprNode, right: ExprNode) -> ExprNode:
    return LambdaNode(op, left, right)


def code_constant(node: ExprNode) -> Code:
    """Compiles `node` for deferred execution; a `{...}` block is unwrapped."""
    if isinstance(node, RawCodeNode):
        return Code.flatten(node.body)
    return Code.flatten(node)


def closure_wrapper_code(arg_names: List[Name], body: ExprNode) -> Code:
    """Code that builds a closure, as a hand-written `(args) -> body` would."""
    return Code((
        PushValue(Cons.from_list(arg_names)),
        PushValue(code_constant(body)),
        SymbolCall(SYMBOL_CLOSURE, 2, 1),
    ))


class ClosureSymbol(CalcCallable):
    """`closure(args, code)`: captures the calling frame's scope."""

    def call(self, frame, args, returns):
        expect_exact_arg_count(args, 2)
        expect_exact_return_count(returns, 1)

        code = frame.stack.pop()
        if not isinstance(code, Code):
            raise TypeError(f"Expected code as second argument of 'closure', got {code!r}")

        arg_list = frame.stack.pop()
        names: List[str] = []
        if arg_list is not NIL:
            if not isinstance(arg_list, Cons):
                raise TypeError(f"Expected list of symbols as first argument of 'closure', got {arg_list!r}")
            for arg in arg_list:
                if not isinstance(arg, Name):
                    raise TypeError(f"Expected symbol in lambda args list, got {arg!r}")
                names.append(arg.text)

        _dbg("CLOSURE", names)
        frame.stack.push(Closure(frame.symbols, code, names))

    def __repr__(self) -> str:
        return "<native closure>"
