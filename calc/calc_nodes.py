"""
AST node variants and the pluggable node factory used by the parser.

Every node knows how to flatten itself into a post-order list of
executable operations. Custom syntax (let-forms, lambdas, quoting, match)
hooks in by registering symbol, modifier or binary node factories.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from calc.calc_datatypes import (
    NIL, Code, Executable, OperatorCall, ParseError, PushValue, SymbolCall, SymbolGet,
)

SYMBOL_LIST = "list"
SYMBOL_APPLY = "apply"


class ExprNode(ABC):
    """Base class for all AST nodes."""

    @abstractmethod
    def flatten(self, output: List[Executable]):
        raise NotImplementedError

    @property
    def children(self) -> tuple:
        return ()

    def __repr__(self) -> str:
        from calc.calc_printer import Printer
        return f"<{type(self).__name__} {Printer().pformat(self)}>"


@dataclass(eq=True, repr=False)
class ValueNode(ExprNode):
    value: Any

    def flatten(self, output):
        output.append(PushValue(self.value))


@dataclass(eq=True, repr=False)
class SymbolGetNode(ExprNode):
    symbol: str

    def flatten(self, output):
        output.append(SymbolGet(self.symbol))


@dataclass(eq=True, repr=False)
class SymbolCallNode(ExprNode):
    symbol: str
    args: tuple = ()

    def flatten(self, output):
        for arg in self.args:
            arg.flatten(output)
        output.append(SymbolCall(self.symbol, len(self.args), 1))

    @property
    def children(self):
        return self.args


@dataclass(eq=True, repr=False)
class UnaryOpNode(ExprNode):
    operator: Any
    arg: ExprNode

    def flatten(self, output):
        self.arg.flatten(output)
        output.append(OperatorCall(self.operator))

    @property
    def children(self):
        return (self.arg,)


@dataclass(eq=True, repr=False)
class BinaryOpNode(ExprNode):
    operator: Any
    left: ExprNode
    right: ExprNode

    def flatten(self, output):
        self.left.flatten(output)
        self.right.flatten(output)
        output.append(OperatorCall(self.operator))

    @property
    def children(self):
        return (self.left, self.right)


@dataclass(eq=True, repr=False)
class BracketNode(ExprNode):
    """A bracketed, separator-delimited list of expressions. Evaluates to a list."""
    opening: str
    closing: str
    items: tuple = ()

    def flatten(self, output):
        if not self.items:
            output.append(PushValue(NIL))
            return
        for item in self.items:
            item.flatten(output)
        output.append(SymbolCall(SYMBOL_LIST, len(self.items), 1))

    @property
    def children(self):
        return self.items


@dataclass(eq=True, repr=False)
class RawCodeNode(ExprNode):
    """`{expr}`: evaluates to the compiled Code of `expr` without running it."""
    body: ExprNode

    def flatten(self, output):
        output.append(PushValue(Code.flatten(self.body)))

    @property
    def children(self):
        return (self.body,)


@dataclass(eq=True, repr=False)
class DotNode(BinaryOpNode):
    """`a.b` reads attribute `b`; `a.b(x, y)` reads it and calls the result."""

    def flatten(self, output):
        match self.right:
            case SymbolGetNode(symbol=key):
                self.left.flatten(output)
                output.append(PushValue(key))
                output.append(OperatorCall(self.operator))
            case SymbolCallNode(symbol=key, args=args):
                self.left.flatten(output)
                output.append(PushValue(key))
                output.append(OperatorCall(self.operator))
                for arg in args:
                    arg.flatten(output)
                output.append(SymbolCall(SYMBOL_APPLY, len(args) + 1, 1))
            case _:
                raise ParseError(f"Expected member name after '{self.operator.name}', got {self.right!r}")


# =================================================================
# Node factories
# =================================================================

class SymbolNodeFactory:
    """Builds the node for a symbol token; subclasses implement custom syntax."""

    def __init__(self, node_factory: 'ExprNodeFactory', symbol: str):
        self.node_factory = node_factory
        self.symbol = symbol

    def get_parser(self):
        return self.node_factory.get_parser()

    def create_root_symbol_node(self, children: Optional[Sequence[ExprNode]]) -> ExprNode:
        """`children` is None for a bare symbol and a list for `symbol(...)`."""
        if children is None:
            return SymbolGetNode(self.symbol)
        return SymbolCallNode(self.symbol, tuple(children))


class ModifierNodeFactory(ABC):
    @abstractmethod
    def get_parser(self):
        raise NotImplementedError

    @abstractmethod
    def create_root_modifier_node(self, child: ExprNode) -> ExprNode:
        raise NotImplementedError


BinaryNodeFactory = Callable[[Any, ExprNode, ExprNode], ExprNode]


class ExprNodeFactory:
    """Creates AST nodes, dispatching to registered custom-syntax factories."""

    def __init__(self):
        self.parser = None
        self.symbol_factories: Dict[str, Callable[['ExprNodeFactory', str], SymbolNodeFactory]] = {}
        self.modifier_factories: Dict[str, ModifierNodeFactory] = {}
        self.binary_factories: Dict[str, BinaryNodeFactory] = {"dot": DotNode}

    def get_parser(self):
        if self.parser is None:
            raise RuntimeError("No parser bound to node factory")
        return self.parser

    def register_symbol(self, symbol: str, factory: Callable[['ExprNodeFactory', str], SymbolNodeFactory]):
        self.symbol_factories[symbol] = factory

    def register_modifier(self, modifier: str, factory: ModifierNodeFactory):
        self.modifier_factories[modifier] = factory

    def register_binary(self, node: str, factory: BinaryNodeFactory):
        self.binary_factories[node] = factory

    def create_value_node(self, value: Any) -> ExprNode:
        return ValueNode(value)

    def create_symbol_factory(self, symbol: str) -> SymbolNodeFactory:
        factory = self.symbol_factories.get(symbol)
        if factory is None:
            return SymbolNodeFactory(self, symbol)
        return factory(self, symbol)

    def create_modifier_factory(self, modifier: str) -> ModifierNodeFactory:
        try:
            return self.modifier_factories[modifier]
        except KeyError:
            raise ParseError(f"Unknown modifier: '{modifier}'") from None

    def create_bracket_node(self, opening: str, closing: str, children: Sequence[ExprNode]) -> ExprNode:
        if opening == "{":
            if len(children) != 1:
                raise ParseError(f"Expected single expression in code block, got {len(children)}")
            return RawCodeNode(children[0])
        if opening == "(" and len(children) == 1:
            # plain grouping
            return children[0]
        return BracketNode(opening, closing, tuple(children))

    def create_unary_op_node(self, op, arg: ExprNode) -> ExprNode:
        return UnaryOpNode(op, arg)

    def create_binary_op_node(self, op, left: ExprNode, right: ExprNode) -> ExprNode:
        if op.node is None:
            return BinaryOpNode(op, left, right)
        try:
            factory = self.binary_factories[op.node]
        except KeyError:
            raise ParseError(f"No node factory '{op.node}' for operator '{op.name}'") from None
        return factory(op, left, right)
