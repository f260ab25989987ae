import pytest

from calc.calc_datatypes import Token, TokenType
from calc.calc_printer import Printer
from calc.calc_runtime import CalcRunner, create_environment

OPERATOR_NAMES = {
    "-", "+", "!", ":", "=", "->", "||", "&&", "==", "!=", "<", ">", "<=", ">=",
    "*", "/", "%", "^", ".",
}


def tokenize(source: str):
    """Turns whitespace-separated words into typed tokens.

    Only meant for tests: every token must be separated by spaces, e.g.
    `f ( x , 1 ) + 2`.
    """
    tokens = []
    for word in source.split():
        if word in "([{":
            kind = TokenType.LEFT_BRACKET
        elif word in ")]}":
            kind = TokenType.RIGHT_BRACKET
        elif word == ",":
            kind = TokenType.SEPARATOR
        elif word == ";":
            kind = TokenType.TERMINATOR
        elif word == "#":
            kind = TokenType.MODIFIER
        elif word[0].isdigit():
            kind = TokenType.NUMBER
        elif word[0] in "\"'":
            kind = TokenType.STRING
        elif word in OPERATOR_NAMES:
            kind = TokenType.OPERATOR
        else:
            kind = TokenType.SYMBOL
        tokens.append(Token(kind, word))
    return tokens


@pytest.fixture
def env():
    """A fresh environment with the default operator table and built-ins."""
    return create_environment()


@pytest.fixture
def runner():
    return CalcRunner()


@pytest.fixture
def parse(env):
    def _parse(source):
        return env.parse(tokenize(source))
    return _parse


@pytest.fixture
def show(parse):
    def _show(source):
        return Printer().pformat(parse(source))
    return _show


@pytest.fixture
def evaluate(env):
    def _evaluate(source, scope=None):
        return env.evaluate(tokenize(source), scope)
    return _evaluate
