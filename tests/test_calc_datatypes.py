import pytest

from calc.calc_datatypes import (
    CONS, NIL, ArityError, Closure, Code, Cons, Frame, Name, Namespace, NativeFunction,
    NotCallable, PlaceholderSymbol, PushValue, Record, RecordType, Scope, Stack, StackUnderflow,
    SymbolCall, SymbolGet, SymbolNotFound, Token, TokenStream, TokenType, UnfinishedExpression,
    ValueSymbol, iterate_list,
)


# --- Scopes ---

def test_scope_lookup_falls_back_to_parent():
    root = Scope()
    root["a"] = 1
    child = Scope(root)
    child["b"] = 2
    assert child["a"] == 1
    assert child["b"] == 2
    assert "b" not in root
    assert root.is_root and not child.is_root


def test_scope_shadowing_leaves_parent_untouched():
    root = Scope()
    root["a"] = 1
    child = Scope(root)
    child["a"] = 10
    assert child["a"] == 10
    assert root["a"] == 1


def test_missing_symbol():
    scope = Scope(Scope())
    with pytest.raises(SymbolNotFound) as excinfo:
        scope["nope"]
    assert excinfo.value.key == "nope"
    assert isinstance(excinfo.value, KeyError)
    assert scope.get("nope", 5) == 5


def test_scope_keys_are_local():
    root = Scope()
    root["a"] = 1
    child = Scope(root)
    child["b"] = 2
    assert list(child.keys()) == ["b"]


def test_placeholder_symbol_fails_loudly():
    scope = Scope()
    scope.put("x", PlaceholderSymbol("x"))
    with pytest.raises(SymbolNotFound, match="during its definition"):
        scope["x"]
    with pytest.raises(SymbolNotFound):
        scope.get_symbol("x").call(Frame(scope), 0, 1)


def test_calling_plain_value_symbol():
    with pytest.raises(NotCallable):
        ValueSymbol(3).call(Frame(Scope()), 0, 1)


# --- Stack ---

def test_substack_is_a_view_over_the_top():
    stack = Stack()
    for v in (1, 2, 3):
        stack.push(v)
    sub = stack.substack(2)
    assert len(sub) == 2
    assert sub.pop_all() == [2, 3]
    sub.push(9)
    assert list(stack) == [1, 9]


def test_substack_underflow():
    stack = Stack()
    stack.push(1)
    with pytest.raises(StackUnderflow):
        stack.substack(2)
    sub = stack.substack(0)
    with pytest.raises(StackUnderflow):
        sub.pop()
    with pytest.raises(StackUnderflow):
        sub.peek()
    assert stack.peek() == 1


# --- Tokens ---

def test_token_stream_peek_and_next():
    stream = TokenStream([Token(TokenType.SYMBOL, "a")])
    assert stream.peek() == stream.next()
    assert not stream.has_next()
    with pytest.raises(UnfinishedExpression):
        stream.next()


def test_expression_terminators():
    assert TokenType.SEPARATOR.is_expression_terminator
    assert TokenType.RIGHT_BRACKET.is_expression_terminator
    assert TokenType.TERMINATOR.is_expression_terminator
    assert not TokenType.LEFT_BRACKET.is_expression_terminator
    assert TokenType.NUMBER.is_value and TokenType.STRING.is_value
    assert TokenType.SYMBOL_WITH_ARGS.is_symbol


# --- Values ---

def test_cons_lists():
    lst = Cons.from_list([1, 2, 3])
    assert lst.is_list
    assert list(lst) == [1, 2, 3]
    assert iterate_list(lst, "test") == [1, 2, 3]
    assert iterate_list(NIL, "test") == []
    assert Cons.from_list([]) is NIL


def test_improper_list():
    pair = Cons(1, 2)
    assert not pair.is_list
    with pytest.raises(TypeError):
        list(pair)
    with pytest.raises(TypeError):
        iterate_list(pair, "test")


def test_cons_constructor_decomposes_pairs_only():
    assert CONS.try_decompose(Cons(1, 2), 2) == [1, 2]
    assert CONS.try_decompose(Cons(1, 2), 3) is None
    assert CONS.try_decompose(NIL, 2) is None
    assert CONS.try_decompose(5, 2) is None


def test_record_type():
    point = RecordType("Point", ["x", "y"])
    frame = Frame(Scope())
    frame.stack.push(1)
    frame.stack.push(2)
    point.call(frame, 2, 1)
    record = frame.stack.pop()
    assert record == Record(point, [1, 2])
    assert record.attr("y") == 2
    assert record.attr("z") is None
    assert point.try_decompose(record, 2) == [1, 2]
    assert point.try_decompose(record, 1) is None
    assert point.try_decompose(Record(RecordType("Point", ["x", "y"]), [1, 2]), 2) is None
    assert point.attr("fields") == Cons.from_list([Name("x"), Name("y")])


def test_record_type_arity():
    point = RecordType("Point", ["x", "y"])
    frame = Frame(Scope())
    frame.stack.push(1)
    with pytest.raises(ArityError):
        point.call(frame, 1, 1)


def test_namespace_members():
    ns = Namespace("geo", {"origin": 0})
    assert ns.attr("origin") == 0
    assert ns.attr("missing") is None


def test_native_function_checks_arity():
    frame = Frame(Scope())
    fn = NativeFunction(lambda a, b: a * b, "mul")
    frame.stack.push(6)
    frame.stack.push(7)
    fn.call(frame, 2, 1)
    assert frame.stack.pop() == 42

    frame.stack.push(1)
    with pytest.raises(ArityError):
        fn.call(frame, 1, 1)


# --- Code and closures ---

def test_code_is_reexecutable():
    code = Code((PushValue(2), PushValue(3), SymbolCall("mul", 2, 1)))
    scope = Scope()
    scope["mul"] = NativeFunction(lambda a, b: a * b)
    first, second = Frame(scope), Frame(scope)
    code.execute(first)
    code.execute(second)
    assert list(first.stack) == list(second.stack) == [6]


def test_symbol_get_missing():
    with pytest.raises(SymbolNotFound):
        SymbolGet("x").execute(Frame(Scope()))


def test_closure_binds_params_in_fresh_scope():
    captured = Scope()
    captured["k"] = 100
    body = Code((SymbolGet("x"), SymbolGet("k")))
    closure = Closure(captured, body, ["x"])

    frame = Frame(Scope())
    frame.stack.push(1)
    closure.call(frame, 1, 2)
    assert list(frame.stack) == [1, 100]
    assert "x" not in captured


def test_closure_arity_and_return_count():
    closure = Closure(Scope(), Code((SymbolGet("x"),)), ["x"])
    frame = Frame(Scope())
    frame.stack.push(1)
    frame.stack.push(2)
    with pytest.raises(ArityError):
        closure.call(frame, 2, 1)
    with pytest.raises(ArityError):
        closure.call(frame, 1, 2)
