"""
The calc interpreter: an explicit environment handle threading the
operator table, node factory and global scope through parse, compile
and execute.
"""
from typing import Any, Iterable, List, Optional, Union

from calc.calc_datatypes import (
    CalcCallable, Code, Frame, InvalidToken, NativeFunction, Scope, Stack, SymbolMap, Token,
    TokenStream, TokenType, UnmatchedBrackets, _dbg, expect_exact_return_count,
)
from calc.calc_nodes import ExprNode, ExprNodeFactory
from calc.calc_operators import OperatorDictionary
from calc.calc_parser import InfixParser, ValueParser, _as_stream


def _skip_terminators(tokens: TokenStream):
    while tokens.has_next() and tokens.peek().type is TokenType.TERMINATOR:
        tokens.next()


def _expect_statement_end(tokens: TokenStream):
    if not tokens.has_next():
        return
    token = tokens.peek()
    if token.type is TokenType.TERMINATOR:
        return
    if token.type is TokenType.RIGHT_BRACKET:
        raise UnmatchedBrackets(token.value)
    raise InvalidToken(token, f"Unexpected {token} after end of expression")


class Environment:
    """Everything needed to parse and run calc code.

    Nothing here is global: two environments never share scopes, so hosts
    can run them side by side and tests can build one per case.
    """

    def __init__(self, operators: OperatorDictionary, value_parser: Optional[ValueParser] = None,
                 node_factory: Optional[ExprNodeFactory] = None):
        self.operators = operators
        self.value_parser = value_parser or ValueParser()
        self.node_factory = node_factory or ExprNodeFactory()
        self.parser = InfixParser(self.value_parser, self.operators, self.node_factory)
        self.node_factory.parser = self.parser
        self.root_scope = Scope()

    # --- Globals ---

    def set_global(self, name: str, value: Any):
        """Installs a global value. Plain Python callables become native functions."""
        if callable(value) and not isinstance(value, CalcCallable):
            value = NativeFunction(value, name)
        self.root_scope.put(name, value)

    def __getitem__(self, name: str) -> Any:
        return self.root_scope[name]

    def __setitem__(self, name: str, value: Any):
        self.set_global(name, value)

    # --- Pipeline ---

    def parse(self, tokens: Union[TokenStream, Iterable[Token]]) -> ExprNode:
        """Parses a single expression; only terminators may follow it."""
        tokens = _as_stream(tokens)
        node = self.parser.parse(tokens)
        _expect_statement_end(tokens)
        return node

    def parse_program(self, tokens: Union[TokenStream, Iterable[Token]]) -> List[ExprNode]:
        """Parses `;`-separated expressions."""
        tokens = _as_stream(tokens)
        nodes = []
        _skip_terminators(tokens)
        while tokens.has_next():
            nodes.append(self.parser.parse(tokens))
            _expect_statement_end(tokens)
            _skip_terminators(tokens)
        return nodes

    def compile(self, node: ExprNode) -> Code:
        return Code.flatten(node)

    def compile_program(self, nodes: Iterable[ExprNode]) -> Code:
        ops = []
        for node in nodes:
            node.flatten(ops)
        return Code(tuple(ops))

    def execute(self, code: Code, scope: Optional[SymbolMap] = None) -> List[Any]:
        """Runs code on a fresh stack and returns the final stack, bottom first."""
        frame = Frame(scope if scope is not None else self.root_scope, Stack())
        _dbg("EXECUTE", len(code), "ops")
        code.execute(frame)
        return list(frame.stack)

    def evaluate(self, tokens: Union[TokenStream, Iterable[Token]], scope: Optional[SymbolMap] = None) -> Any:
        """Parses, compiles and runs one expression, returning its single value."""
        values = self.execute(self.compile(self.parse(tokens)), scope)
        expect_exact_return_count(1, len(values))
        return values[0]
