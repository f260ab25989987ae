"""
Defines the core data types for the calc expression engine.

This module provides the error kinds, tokens, first-class values, symbols,
symbol maps (scopes), the evaluation stack and frame, and the flattened
executable form (`Code`) that the parser and interpreter work with.
"""

import enum
import inspect
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence


def _dbg(*parts):
    if os.environ.get("CALC_DEBUG"):
        try:
            print("[DBG]", *parts, file=sys.stderr)
        except Exception:
            pass


# =================================================================
# Errors
# =================================================================

class ParseError(SyntaxError):
    """Base class for all errors raised while turning tokens into an AST."""


class UnfinishedExpression(ParseError):
    def __init__(self, message: str = "Unfinished expression"):
        super().__init__(message)


class InvalidToken(ParseError):
    def __init__(self, token: 'Token', message: Optional[str] = None):
        super().__init__(message or f"Invalid token: {token}")
        self.token = token


class UnmatchedBrackets(ParseError):
    def __init__(self, opening: str, closing: Optional[str] = None):
        if closing is None:
            message = f"Unmatched bracket: '{opening}'"
        else:
            message = f"Unmatched brackets: '{opening}' and '{closing}'"
        super().__init__(message)
        self.opening = opening
        self.closing = closing


class NonExpression(ParseError):
    def __init__(self, count: int):
        super().__init__(f"Not a single expression: {count} nodes left after parsing")
        self.count = count


class ExecutionError(Exception):
    """Base class for errors raised while executing compiled code."""


class ArityError(ExecutionError, TypeError):
    pass


class NotCallable(ExecutionError, TypeError):
    pass


class StackUnderflow(ExecutionError, IndexError):
    pass


class SymbolNotFound(ExecutionError, KeyError):
    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or f"Unknown symbol: '{key}'")
        self.key = key

    def __str__(self) -> str:
        return self.args[0]


class DecompositionContractError(ExecutionError):
    """A decompose capability returned a different number of values than requested."""


def expect_exact_arg_count(actual: Optional[int], expected: int):
    if actual is not None and actual != expected:
        raise ArityError(f"Expected {expected} argument(s), got {actual}")


def expect_exact_return_count(expected: Optional[int], actual: int):
    if expected is not None and expected != actual:
        raise ArityError(f"Expected {expected} return value(s), got {actual}")


# =================================================================
# Tokens
# =================================================================

class TokenType(enum.Enum):
    NUMBER = "number"
    STRING = "string"
    SYMBOL = "symbol"
    SYMBOL_WITH_ARGS = "symbol_with_args"
    OPERATOR = "operator"
    MODIFIER = "modifier"
    LEFT_BRACKET = "left_bracket"
    RIGHT_BRACKET = "right_bracket"
    SEPARATOR = "separator"
    TERMINATOR = "terminator"

    @property
    def is_value(self) -> bool:
        return self in (TokenType.NUMBER, TokenType.STRING)

    @property
    def is_symbol(self) -> bool:
        return self in (TokenType.SYMBOL, TokenType.SYMBOL_WITH_ARGS)

    @property
    def is_expression_terminator(self) -> bool:
        return self in (TokenType.SEPARATOR, TokenType.RIGHT_BRACKET, TokenType.TERMINATOR)


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str

    def __str__(self) -> str:
        return f"{self.type.value}({self.value!r})"


BRACKETS = {"(": ")", "[": "]", "{": "}"}


def closing_bracket(opening: str) -> str:
    try:
        return BRACKETS[opening]
    except KeyError:
        raise UnmatchedBrackets(opening) from None


class TokenStream:
    """A peekable wrapper around any iterable of tokens."""
    _EMPTY = object()

    def __init__(self, tokens: Iterable[Token]):
        self._it = iter(tokens)
        self._peeked: Any = self._EMPTY

    def has_next(self) -> bool:
        if self._peeked is self._EMPTY:
            self._peeked = next(self._it, self._EMPTY)
        return self._peeked is not self._EMPTY

    def peek(self) -> Token:
        if not self.has_next():
            raise UnfinishedExpression()
        return self._peeked

    def next(self) -> Token:
        token = self.peek()
        self._peeked = self._EMPTY
        return token

    def __iter__(self) -> Iterator[Token]:
        while self.has_next():
            yield self.next()


# =================================================================
# Capabilities
# =================================================================

class CalcCallable(ABC):
    """Values that can be invoked with an argument and return count."""

    @abstractmethod
    def call(self, frame: 'Frame', args: Optional[int], returns: Optional[int]):
        raise NotImplementedError


class Attributable(ABC):
    """Values that expose named members (`value.key`)."""

    @abstractmethod
    def attr(self, key: str) -> Optional[Any]:
        raise NotImplementedError


class Decomposable(ABC):
    """Values (constructors, types) that can split an instance into parts.

    `try_decompose` returns exactly `count` values, or None when `value`
    cannot be decomposed that way.
    """

    @abstractmethod
    def try_decompose(self, value: Any, count: int) -> Optional[List[Any]]:
        raise NotImplementedError


# =================================================================
# Values
# =================================================================

@dataclass(frozen=True)
class Name:
    """A quoted symbol, e.g. a lambda parameter or let binding name."""
    text: str

    def __repr__(self) -> str:
        return f"Name<{self.text!r}>"


class _Nil:
    """The empty list / list terminator."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __iter__(self):
        return iter(())

    def __len__(self) -> int:
        return 0

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NIL"


NIL = _Nil()


@dataclass(frozen=True)
class Cons:
    car: Any
    cdr: Any

    @staticmethod
    def from_list(values: Iterable[Any], terminator: Any = NIL) -> Any:
        result = terminator
        for value in reversed(list(values)):
            result = Cons(value, result)
        return result

    @property
    def is_list(self) -> bool:
        cell = self
        while isinstance(cell, Cons):
            cell = cell.cdr
        return cell is NIL

    def __iter__(self):
        """Iterates a proper list. Raises on an improper tail."""
        cell = self
        while isinstance(cell, Cons):
            yield cell.car
            cell = cell.cdr
        if cell is not NIL:
            raise TypeError(f"Not a proper list, terminated by {cell!r}")

    def __repr__(self) -> str:
        from calc.calc_printer import Printer
        return Printer().pformat(self)


def iterate_list(value: Any, what: str) -> List[Any]:
    """Converts a Cons list (or NIL) to a Python list."""
    if value is NIL:
        return []
    if isinstance(value, Cons) and value.is_list:
        return list(value)
    raise TypeError(f"Expected list as {what}, got {value!r}")


class ConsType(CalcCallable, Decomposable):
    """The `Cons` constructor: builds pairs and decomposes them into car/cdr."""

    def call(self, frame, args, returns):
        expect_exact_arg_count(args, 2)
        expect_exact_return_count(returns, 1)
        cdr = frame.stack.pop()
        car = frame.stack.pop()
        frame.stack.push(Cons(car, cdr))

    def try_decompose(self, value, count):
        if isinstance(value, Cons) and count == 2:
            return [value.car, value.cdr]
        return None

    def __repr__(self) -> str:
        return "<type Cons>"


CONS = ConsType()


class Namespace(Attributable):
    """A read-only bag of named members, reachable with dotted access."""

    def __init__(self, name: str, members: Optional[Dict[str, Any]] = None):
        self.name = name
        self.members: Dict[str, Any] = dict(members or {})

    def attr(self, key):
        return self.members.get(key)

    def __repr__(self) -> str:
        return f"<namespace {self.name} [{', '.join(self.members)}]>"


class Record(Attributable):
    """An instance produced by a RecordType constructor."""

    def __init__(self, type: 'RecordType', values: Sequence[Any]):
        self.type = type
        self.values = tuple(values)

    def attr(self, key):
        try:
            return self.values[self.type.fields.index(key)]
        except ValueError:
            return None

    def __eq__(self, other):
        if not isinstance(other, Record):
            return NotImplemented
        return self.type is other.type and self.values == other.values

    def __hash__(self):
        return hash((id(self.type), self.values))

    def __repr__(self) -> str:
        from calc.calc_printer import Printer
        return Printer().pformat(self)


class RecordType(CalcCallable, Decomposable, Attributable):
    """A named constructor with fixed fields. Calling it builds a Record."""

    def __init__(self, name: str, fields: Sequence[str]):
        self.name = name
        self.fields = list(fields)

    def call(self, frame, args, returns):
        expect_exact_arg_count(args, len(self.fields))
        expect_exact_return_count(returns, 1)
        values = frame.stack.substack(len(self.fields)).pop_all()
        frame.stack.push(Record(self, values))

    def try_decompose(self, value, count):
        if isinstance(value, Record) and value.type is self and count == len(self.fields):
            return list(value.values)
        return None

    def attr(self, key):
        if key == "name":
            return self.name
        if key == "fields":
            return Cons.from_list(Name(f) for f in self.fields)
        return None

    def __repr__(self) -> str:
        return f"<type {self.name}>"


class NativeFunction(CalcCallable):
    """Wraps a plain Python callable so it can be invoked from calc code."""

    def __init__(self, fn, name: Optional[str] = None):
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "<native>")
        try:
            self._signature = inspect.signature(fn)
        except (TypeError, ValueError):
            self._signature = None

    def call(self, frame, args, returns):
        expect_exact_return_count(returns, 1)
        arg_values = frame.stack.substack(args or 0).pop_all()
        if self._signature is not None:
            try:
                self._signature.bind(*arg_values)
            except TypeError as e:
                raise ArityError(f"{self.name}: {e}") from None
        frame.stack.push(self.fn(*arg_values))

    def __repr__(self) -> str:
        return f"<native {self.name}>"


def call_value(target: Any, frame: 'Frame', args: Optional[int], returns: Optional[int]):
    """Invokes a callable value found on the stack or in a scope."""
    match target:
        case CalcCallable():
            target.call(frame, args, returns)
        case _ if callable(target):
            # host callables reached through attributes are not wrapped at registration
            NativeFunction(target).call(frame, args, returns)
        case _:
            raise NotCallable(f"Value {target!r} is not callable")


# =================================================================
# Symbols
# =================================================================

class Symbol(ABC):
    """A bindable entry of a symbol map."""

    @abstractmethod
    def get(self) -> Any:
        raise NotImplementedError

    @abstractmethod
    def call(self, frame: 'Frame', args: Optional[int], returns: Optional[int]):
        raise NotImplementedError


class ValueSymbol(Symbol):
    """A plain value binding. Calling it delegates to the value's call capability."""

    def __init__(self, value: Any):
        self.value = value

    def get(self):
        return self.value

    def call(self, frame, args, returns):
        match self.value:
            case CalcCallable():
                self.value.call(frame, args, returns)
            case _:
                raise NotCallable(f"Value {self.value!r} is not callable")

    def __repr__(self) -> str:
        return f"ValueSymbol({self.value!r})"


class PlaceholderSymbol(Symbol):
    """Stands in for a name whose value is still being defined."""

    def __init__(self, name: str):
        self.name = name

    def get(self):
        raise SymbolNotFound(self.name, f"Cannot reference symbol '{self.name}' during its definition")

    def call(self, frame, args, returns):
        raise SymbolNotFound(self.name, f"Cannot call symbol '{self.name}' during its definition")


def as_symbol(value: Any) -> Symbol:
    if isinstance(value, Symbol):
        return value
    return ValueSymbol(value)


# =================================================================
# Symbol Maps
# =================================================================

class SymbolMap(ABC):
    """A node in a parent-chained scope graph mapping names to symbols."""

    @abstractmethod
    def get_symbol(self, name: str) -> Optional[Symbol]:
        raise NotImplementedError

    @abstractmethod
    def put(self, name: str, symbol: Any):
        raise NotImplementedError

    def __getitem__(self, name: str) -> Any:
        symbol = self.get_symbol(name)
        if symbol is None:
            raise SymbolNotFound(name)
        return symbol.get()

    def __setitem__(self, name: str, value: Any):
        self.put(name, value)

    def __contains__(self, name: str) -> bool:
        return self.get_symbol(name) is not None

    def get(self, name: str, default: Any = None) -> Any:
        """Gets a bound value, returning a default if not found."""
        symbol = self.get_symbol(name)
        if symbol is None:
            return default
        return symbol.get()


class Scope(SymbolMap):
    """A writable scope. With no parent it is the root (global) scope.

    Lookup walks the local bindings, then the parent chain. Writes always
    go to the local bindings, shadowing any parent entry.
    """

    def __init__(self, parent: Optional[SymbolMap] = None):
        self.bindings: Dict[str, Symbol] = {}
        self.parent = parent

    def get_symbol(self, name):
        scope = self
        while isinstance(scope, Scope):
            symbol = scope.bindings.get(name)
            if symbol is not None:
                return symbol
            scope = scope.parent
        if scope is not None:
            return scope.get_symbol(name)
        return None

    def put(self, name, symbol):
        if not isinstance(name, str):
            raise TypeError(f"Scope key must be a str, not {type(name)}")
        self.bindings[name] = as_symbol(symbol)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def keys(self):
        """Returns a view of keys in the current scope only."""
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{keys}]{parent_id}>"


# =================================================================
# Stack and Frame
# =================================================================

class Stack:
    """A LIFO of values. A substack is a view over the top of its parent.

    Popping a substack below its bottom raises StackUnderflow; values pushed
    onto a substack stay on the parent once the substack is discarded.
    """

    def __init__(self, data: Optional[List[Any]] = None, bottom: int = 0):
        self._data = data if data is not None else []
        self._bottom = bottom

    def push(self, value: Any):
        self._data.append(value)

    def pop(self) -> Any:
        if len(self._data) <= self._bottom:
            raise StackUnderflow("Stack underflow")
        return self._data.pop()

    def peek(self, depth: int = 0) -> Any:
        index = len(self._data) - 1 - depth
        if index < self._bottom:
            raise StackUnderflow("Stack underflow")
        return self._data[index]

    def substack(self, depth: int) -> 'Stack':
        if depth > len(self):
            raise StackUnderflow(f"Expected {depth} value(s) on stack, got {len(self)}")
        return Stack(self._data, len(self._data) - depth)

    def pop_all(self) -> List[Any]:
        """Removes every value of this (sub)stack, bottom first."""
        values = self._data[self._bottom:]
        del self._data[self._bottom:]
        return values

    def clear(self):
        del self._data[self._bottom:]

    def __len__(self) -> int:
        return len(self._data) - self._bottom

    def __iter__(self):
        return iter(self._data[self._bottom:])

    def __repr__(self) -> str:
        return f"Stack({self._data[self._bottom:]!r})"


class Frame:
    """An evaluation stack paired with the symbols visible to it."""

    def __init__(self, symbols: SymbolMap, stack: Optional[Stack] = None):
        self.symbols = symbols
        self.stack = stack if stack is not None else Stack()

    @staticmethod
    def new_local_frame(parent: SymbolMap) -> 'Frame':
        return Frame(Scope(parent))

    @staticmethod
    def new_local_frame_with_substack(parent: 'Frame', depth: int) -> 'Frame':
        return Frame(Scope(parent.symbols), parent.stack.substack(depth))

    @staticmethod
    def symbols_to_frame(symbols: SymbolMap) -> 'Frame':
        return Frame(symbols)

    def __repr__(self) -> str:
        return f"<Frame {self.stack!r} symbols={self.symbols!r}>"


# =================================================================
# Executable operations and Code
# =================================================================

class Executable(ABC):
    @abstractmethod
    def execute(self, frame: Frame):
        raise NotImplementedError


@dataclass(frozen=True)
class PushValue(Executable):
    value: Any

    def execute(self, frame):
        frame.stack.push(self.value)


@dataclass(frozen=True)
class SymbolGet(Executable):
    name: str

    def execute(self, frame):
        symbol = frame.symbols.get_symbol(self.name)
        if symbol is None:
            raise SymbolNotFound(self.name)
        frame.stack.push(symbol.get())


@dataclass(frozen=True)
class SymbolCall(Executable):
    name: str
    args: Optional[int]
    returns: Optional[int] = 1

    def execute(self, frame):
        symbol = frame.symbols.get_symbol(self.name)
        if symbol is None:
            raise SymbolNotFound(self.name)
        symbol.call(frame, self.args, self.returns)


@dataclass(frozen=True)
class OperatorCall(Executable):
    operator: Any

    def execute(self, frame):
        self.operator.execute(frame)


@dataclass(frozen=True)
class Code:
    """An immutable, re-executable sequence of operations."""
    ops: tuple = ()

    @staticmethod
    def flatten(node) -> 'Code':
        output: List[Executable] = []
        node.flatten(output)
        return Code(tuple(output))

    def execute(self, frame: Frame):
        for op in self.ops:
            op.execute(frame)

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self):
        return iter(self.ops)

    def __repr__(self) -> str:
        return f"Code({list(self.ops)!r})"


# =================================================================
# Closures
# =================================================================

class Closure(CalcCallable):
    """A callable capturing its defining scope, parameter names and body.

    Each call builds a new scope chained to the captured one, binds the
    arguments there and runs the body on the caller's stack.
    """

    def __init__(self, scope: SymbolMap, code: Code, params: Sequence[str]):
        self.scope = scope
        self.code = code
        self.params = list(params)

    def call(self, frame, args, returns):
        expect_exact_arg_count(args, len(self.params))
        stack = frame.stack.substack(len(self.params))
        local = Scope(self.scope)
        for name, value in zip(self.params, stack.pop_all()):
            local.put(name, value)

        self.code.execute(Frame(local, stack))
        expect_exact_return_count(returns, len(stack))

    def __repr__(self) -> str:
        return f"<closure ({', '.join(self.params)})>"
