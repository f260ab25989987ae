import pytest
import yaml
from pathlib import Path

from calc.calc_datatypes import (
    InvalidToken, NonExpression, ParseError, Token, TokenStream, TokenType, UnfinishedExpression,
    UnmatchedBrackets,
)
from calc.calc_interpreter import Environment
from calc.calc_nodes import BinaryOpNode, BracketNode, SymbolGetNode, ValueNode
from calc.calc_operators import BinaryOperator, OperatorDictionary, UnaryOperator
from conftest import tokenize

# --- Test Setup ---

def load_vectors():
    path = Path(__file__).parent / "data" / "parser_shapes.yaml"
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)

VECTORS = load_vectors()


# --- Test Cases ---

@pytest.mark.parametrize("source, expected", [(v["source"], v["expected"]) for v in VECTORS],
                         ids=[v["id"] for v in VECTORS])
def test_parser_shapes(show, source, expected):
    assert show(source) == expected


@pytest.mark.parametrize("grouped, bare", [
    ("a + ( b * c )", "a + b * c"),
    ("( a + b ) + c", "a + b + c"),
    ("( a * b ) + ( c * d )", "a * b + c * d"),
    ("a ^ ( b ^ c )", "a ^ b ^ c"),
    ("( f x ) y", "f x y"),
    ("( - a ) - ( - b )", "- a - - b"),
    ("x -> ( x + 1 )", "x -> x + 1"),
    ("f ( ( a ) , ( b + c ) )", "f ( a , b + c )"),
])
def test_redundant_parentheses_do_not_change_shape(parse, grouped, bare):
    assert parse(grouped) == parse(bare)


def test_juxtaposition_is_default_operator(env, parse):
    default = env.operators.get_default_operator()
    assert parse("f x") == BinaryOpNode(default, SymbolGetNode("f"), SymbolGetNode("x"))


def test_bracket_children_in_order(parse):
    node = parse("( 1 , 2 , 3 )")
    assert isinstance(node, BracketNode)
    assert node.children == (ValueNode(1), ValueNode(2), ValueNode(3))


def test_parse_stops_at_terminator_without_consuming(env):
    stream = TokenStream(tokenize("1 + 2 ; 3"))
    env.parser.parse(stream)
    assert stream.peek() == Token(TokenType.TERMINATOR, ";")


def test_parse_program_splits_on_terminators(env):
    nodes = env.parse_program(tokenize("; 1 + 2 ; ; f x ;"))
    assert len(nodes) == 2


@pytest.mark.parametrize("source", [
    "( 1 , 2 ]",
    "[ 1 )",
    "{ a ]",
    "( 1 , 2",
    "f ( 1",
    "1 )",
])
def test_unmatched_brackets(parse, source):
    with pytest.raises(UnmatchedBrackets):
        parse(source)


@pytest.mark.parametrize("source", ["1 +", "- "])
def test_unfinished_expression(parse, source):
    with pytest.raises(UnfinishedExpression):
        parse(source)


def test_binary_only_operator_in_prefix_position(parse):
    with pytest.raises(InvalidToken) as excinfo:
        parse("* 1")
    assert excinfo.value.token == Token(TokenType.OPERATOR, "*")


def test_unknown_binary_operator(env):
    tokens = [Token(TokenType.NUMBER, "1"), Token(TokenType.OPERATOR, "!"), Token(TokenType.NUMBER, "2")]
    with pytest.raises(InvalidToken):
        env.parse(tokens)


def test_symbol_with_args_token_is_invalid_in_infix(env):
    with pytest.raises(InvalidToken):
        env.parse([Token(TokenType.SYMBOL_WITH_ARGS, "f")])


def test_separator_must_follow_argument(parse):
    with pytest.raises(InvalidToken):
        parse("( 1 ; 2 )")


def test_empty_input_is_not_an_expression(parse):
    with pytest.raises(NonExpression) as excinfo:
        parse("")
    assert excinfo.value.count == 0


def test_missing_default_operator_rejects_adjacent_terms():
    ops = OperatorDictionary()
    ops.register_binary(BinaryOperator("+", 6, lambda a, b: a + b))
    env = Environment(ops)
    with pytest.raises(InvalidToken):
        env.parse(tokenize("a b"))


def test_custom_operator_table():
    ops = OperatorDictionary()
    ops.register_unary(UnaryOperator("-", 1))
    ops.register_binary(BinaryOperator("+", 5))
    env = Environment(ops)
    node = env.parse(tokenize("- a + b"))
    # with a low-precedence unary minus the whole sum is negated
    assert isinstance(node.children[0], BinaryOpNode)


def test_invalid_number_literal(env):
    with pytest.raises(InvalidToken):
        env.parse([Token(TokenType.NUMBER, "12abc")])


@pytest.mark.parametrize("source", [
    "{ }",
    "let ( x )",
    "let ( [ 1 ] , 2 )",
    "match ( x , 1 )",
    "match ( x )",
    "if ( a , b )",
])
def test_malformed_special_forms(env, source):
    with pytest.raises(ParseError):
        env.compile(env.parse(tokenize(source)))


def test_member_access_needs_name(env, parse):
    node = parse("a . 1")
    with pytest.raises(ParseError):
        env.compile(node)


def test_unknown_modifier(env):
    with pytest.raises(ParseError):
        env.parse([Token(TokenType.MODIFIER, "@"), Token(TokenType.SYMBOL, "a")])


def test_quote_needs_a_term(parse):
    with pytest.raises(InvalidToken):
        parse("# )")
