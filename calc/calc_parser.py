"""
The operator-precedence (shunting-yard) parser turning tokens into an AST.
"""

from typing import Any, Iterable, List, Union

from calc.calc_datatypes import (
    Cons, InvalidToken, Name, NonExpression, Token, TokenStream, TokenType,
    UnfinishedExpression, UnmatchedBrackets, _dbg, closing_bracket,
)
from calc.calc_nodes import ExprNode, ExprNodeFactory, ModifierNodeFactory, ValueNode
from calc.calc_operators import BinaryOperator, Operator, OperatorDictionary, UnaryOperator


class ValueParser:
    """Turns literal tokens into values: numbers and quoted strings."""

    def parse_token(self, token: Token) -> Any:
        text = token.value
        if token.type is TokenType.STRING:
            if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
                return text[1:-1]
            return text
        if token.type is TokenType.NUMBER:
            try:
                if text.lower().startswith("0x"):
                    return int(text, 16)
                if any(c in text for c in ".eE"):
                    return float(text)
                return int(text)
            except ValueError:
                raise InvalidToken(token, f"Invalid number literal: {text!r}") from None
        raise InvalidToken(token)


def _as_stream(tokens: Union[TokenStream, Iterable[Token]]) -> TokenStream:
    if isinstance(tokens, TokenStream):
        return tokens
    return TokenStream(tokens)


class InfixParser:
    """Parses one expression from a token stream.

    Parsing stops (without consuming) at an expression terminator, so the
    same parser is reused for bracketed, separator-delimited children.
    """

    def __init__(self, value_parser: ValueParser, operators: OperatorDictionary, node_factory: ExprNodeFactory):
        self.value_parser = value_parser
        self.operators = operators
        self.node_factory = node_factory

    def parse(self, tokens: Union[TokenStream, Iterable[Token]]) -> ExprNode:
        tokens = _as_stream(tokens)
        node_stack: List[ExprNode] = []
        operator_stack: List[Operator] = []

        default_operator = self.operators.get_default_operator()

        pushed_non_operator_last_loop = False

        while tokens.has_next():
            token = tokens.peek()
            if token.type.is_expression_terminator:
                break
            tokens.next()

            pushed_non_operator_this_loop = True

            if token.type.is_value:
                value = self.value_parser.parse_token(token)
                node_stack.append(self.node_factory.create_value_node(value))
            elif token.type is TokenType.SYMBOL:
                symbol_factory = self.node_factory.create_symbol_factory(token.value)
                if tokens.has_next() and tokens.peek().type is TokenType.LEFT_BRACKET:
                    opening = tokens.next().value
                    children = self._collect_children(tokens, opening, closing_bracket(opening), symbol_factory)
                    node_stack.append(symbol_factory.create_root_symbol_node(children))
                else:
                    node_stack.append(symbol_factory.create_root_symbol_node(None))
            elif token.type is TokenType.MODIFIER:
                modifier_factory = self.node_factory.create_modifier_factory(token.value)
                parsed = modifier_factory.get_parser().parse(tokens)
                node_stack.append(modifier_factory.create_root_modifier_node(parsed))
            elif token.type is TokenType.LEFT_BRACKET:
                opening = token.value
                closing = closing_bracket(opening)
                children = self._collect_children(tokens, opening, closing, self.node_factory)
                node_stack.append(self.node_factory.create_bracket_node(opening, closing, children))
            elif token.type is TokenType.OPERATOR:
                if not pushed_non_operator_last_loop:
                    # operator at start or after another operator
                    op = self.operators.get_unary_operator(token.value)
                    if op is None:
                        raise InvalidToken(token, f"No unary version of operator: {token.value}")
                else:
                    op = self.operators.get_binary_operator(token.value)
                    if op is None:
                        raise InvalidToken(token, f"Invalid binary operator: {token.value}")
                self._push_operator(node_stack, operator_stack, op)
                pushed_non_operator_this_loop = False
            else:
                raise InvalidToken(token)

            if pushed_non_operator_last_loop and pushed_non_operator_this_loop:
                # two adjacent terms: act as if the default operator had been pushed between them
                if default_operator is None:
                    raise InvalidToken(token, f"Missing operator before {token}")
                this_loop_push = node_stack.pop()
                self._push_operator(node_stack, operator_stack, default_operator)
                node_stack.append(this_loop_push)

            pushed_non_operator_last_loop = pushed_non_operator_this_loop

        while operator_stack:
            self._reduce(node_stack, operator_stack.pop())

        if len(node_stack) != 1:
            raise NonExpression(len(node_stack))
        return node_stack.pop()

    def _collect_children(self, tokens: TokenStream, opening: str, closing: str, parser_provider) -> List[ExprNode]:
        args: List[ExprNode] = []

        if not tokens.has_next():
            raise UnmatchedBrackets(opening)
        if tokens.peek().type is TokenType.RIGHT_BRACKET:
            token = tokens.next()
            if token.value != closing:
                raise UnmatchedBrackets(opening, token.value)
            return args

        while True:
            args.append(parser_provider.get_parser().parse(tokens))

            if not tokens.has_next():
                raise UnmatchedBrackets(opening)
            token = tokens.next()
            if token.type is TokenType.RIGHT_BRACKET:
                if token.value != closing:
                    raise UnmatchedBrackets(opening, token.value)
                return args
            if token.type is not TokenType.SEPARATOR:
                raise InvalidToken(token, f"Expected argument separator, got {token}")

    def _push_operator(self, node_stack: List[ExprNode], operator_stack: List[Operator], new_op: Operator):
        # a prefix operator has no left operand, so nothing below it can be reduced yet
        if not isinstance(new_op, UnaryOperator):
            while operator_stack:
                top = operator_stack[-1]
                if not new_op.is_less_than(top):
                    break
                operator_stack.pop()
                self._reduce(node_stack, top)

        operator_stack.append(new_op)

    def _reduce(self, node_stack: List[ExprNode], op: Operator):
        _dbg("REDUCE", op.name)
        if isinstance(op, BinaryOperator):
            if len(node_stack) < 2:
                raise UnfinishedExpression(f"Missing operand for operator '{op.name}'")
            right = node_stack.pop()
            left = node_stack.pop()
            node_stack.append(self.node_factory.create_binary_op_node(op, left, right))
        elif isinstance(op, UnaryOperator):
            if not node_stack:
                raise UnfinishedExpression(f"Missing operand for operator '{op.name}'")
            node_stack.append(self.node_factory.create_unary_op_node(op, node_stack.pop()))
        else:
            raise TypeError(f"Unknown type of operator: {type(op).__name__}")


# =================================================================
# Quote modifier
# =================================================================

class QuoteParser:
    """Parses a single quoted term into a literal value node.

    `#name` yields a Name, `#123` a literal, `#(a, b)` a list of quoted items.
    """

    def __init__(self, value_parser: ValueParser):
        self.value_parser = value_parser

    def parse(self, tokens: Union[TokenStream, Iterable[Token]]) -> ExprNode:
        tokens = _as_stream(tokens)
        return ValueNode(self._parse_term(tokens))

    def _parse_term(self, tokens: TokenStream) -> Any:
        if not tokens.has_next():
            raise UnfinishedExpression("Nothing to quote")
        token = tokens.next()
        if token.type.is_value:
            return self.value_parser.parse_token(token)
        if token.type is TokenType.SYMBOL or token.type is TokenType.OPERATOR:
            return Name(token.value)
        if token.type is TokenType.LEFT_BRACKET:
            return self._parse_list(tokens, token.value, closing_bracket(token.value))
        raise InvalidToken(token, f"Cannot quote {token}")

    def _parse_list(self, tokens: TokenStream, opening: str, closing: str) -> Any:
        items = []
        while True:
            if not tokens.has_next():
                raise UnmatchedBrackets(opening)
            token = tokens.peek()
            if token.type is TokenType.RIGHT_BRACKET:
                tokens.next()
                if token.value != closing:
                    raise UnmatchedBrackets(opening, token.value)
                return Cons.from_list(items)
            if token.type is TokenType.SEPARATOR:
                if not items:
                    raise InvalidToken(token, "Unexpected separator in quoted list")
                tokens.next()
                continue
            items.append(self._parse_term(tokens))


class QuoteNodeFactory(ModifierNodeFactory):
    def __init__(self, value_parser: ValueParser):
        self.parser = QuoteParser(value_parser)

    def get_parser(self):
        return self.parser

    def create_root_modifier_node(self, child):
        return child
