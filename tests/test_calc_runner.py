import pytest

from calc.calc_datatypes import Cons, Token, TokenType
from calc.calc_runtime import DEFAULT_OPERATORS_PATH, CalcRunner, ExecutionResult
from conftest import tokenize


def run(runner, source):
    return runner.run(tokenize(source))


def assert_ok(result, expected):
    assert result.status == 'success', result.format_error()
    assert result.value == expected


def assert_error(result, prefix):
    assert result.status == 'error'
    assert result.error_message.startswith(prefix), result.error_message


# --- Success ---

@pytest.mark.parametrize("source, expected", [
    ("1 + 2", 3),
    ("[ 1 , 2 ]", Cons.from_list([1, 2])),
    ("let ( [ sq ( v ) : v * v ] , sq ( 7 ) )", 49),
    ("match ( [ 4 , 5 ] , ( h : t ) -> h )", 4),
], ids=["arith", "list", "let", "match"])
def test_run_success(runner, source, expected):
    assert_ok(run(runner, source), expected)


def test_program_leaves_every_statement_value(runner):
    result = run(runner, "1 ; 2 * 3 ; ; 'x' ;")
    assert result.status == 'success'
    assert result.values == [1, 6, "x"]
    assert result.value == "x"
    assert result.side_effects == []


def test_empty_program(runner):
    result = runner.run([])
    assert result.status == 'success'
    assert result.values == []
    assert result.value is None


def test_runner_exposes_its_environment(runner):
    runner.environment["base"] = 40
    assert_ok(run(runner, "base + 2"), 42)


# --- Errors ---

def test_parse_error_result(runner):
    result = run(runner, "1 + 2 )")
    assert_error(result, "UnmatchedBrackets:")
    assert result.values == []
    assert result.error_token is None


def test_invalid_token_is_reported(runner):
    result = run(runner, "* 1")
    assert_error(result, "InvalidToken:")
    assert result.error_token == Token(TokenType.OPERATOR, "*")
    assert result.format_error().endswith("(at operator('*'))")


def test_runtime_error_result(runner):
    result = run(runner, "1 / 0")
    assert_error(result, "ZeroDivisionError:")
    assert result.format_error() == result.error_message


def test_unknown_symbol_result(runner):
    assert_error(run(runner, "nope ( 1 )"), "SymbolNotFound:")


def test_error_is_recorded_as_side_effect(runner):
    result = run(runner, "match ( 1 , 2 -> 3 )")
    assert_error(result, "ExecutionError:")
    assert result.side_effects == [{'topics': ['stderr'], 'message': result.error_message}]


def test_side_effects_reset_between_runs(runner):
    run(runner, "1 / 0")
    assert run(runner, "1").side_effects == []


def test_format_error_on_success_is_empty():
    assert ExecutionResult(status='success', values=[1]).format_error() == ""


# --- Configuration ---

def test_operator_config_is_cached(runner):
    assert str(DEFAULT_OPERATORS_PATH) in CalcRunner._operator_configs
    other = CalcRunner()
    assert other.environment.operators is not runner.environment.operators


def test_runners_do_not_share_globals():
    first, second = CalcRunner(), CalcRunner()
    first.environment["only_here"] = 1
    assert_ok(run(first, "only_here"), 1)
    assert_error(run(second, "only_here"), "SymbolNotFound:")


def test_custom_operator_table(tmp_path):
    path = tmp_path / "ops.yaml"
    path.write_text(
        "binary:\n"
        "  - {name: '+', precedence: 2, impl: mul}\n"
        "  - {name: '*', precedence: 1, impl: add}\n"
    )
    runner = CalcRunner(operators_path=path)
    assert_ok(run(runner, "2 + 3 * 4"), 10)
    assert_error(run(runner, "- 1"), "InvalidToken:")


# --- Debug output ---

def test_debug_output(monkeypatch, capsys, runner):
    monkeypatch.setenv("CALC_DEBUG", "1")
    run(runner, "match ( 1 , x -> x )")
    err = capsys.readouterr().err
    assert "[DBG] EXECUTE" in err
    assert "[DBG] MATCH" in err


def test_debug_output_is_off_by_default(monkeypatch, capsys, runner):
    monkeypatch.delenv("CALC_DEBUG", raising=False)
    run(runner, "1 / 0")
    assert capsys.readouterr().err == ""
