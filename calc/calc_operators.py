"""
Operators and the operator dictionary used by the infix parser.

The ordering relation `is_less_than` drives the reduction order of the
parser; associativity is folded into the relation itself.
"""

import enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from calc.calc_datatypes import ExecutionError, Frame, call_value


class Associativity(enum.Enum):
    LEFT = "left"
    RIGHT = "right"


class Operator:
    def __init__(self, name: str, precedence: int, fn: Optional[Callable] = None, node: Optional[str] = None):
        self.name = name
        self.precedence = precedence
        self.fn = fn
        # Name of the binary node factory that builds this operator's AST node.
        self.node = node

    def is_less_than(self, other: 'Operator') -> bool:
        raise NotImplementedError

    def execute(self, frame: Frame):
        raise NotImplementedError

    def _impl(self) -> Callable:
        if self.fn is None:
            raise ExecutionError(f"No implementation for operator '{self.name}'")
        return self.fn


class UnaryOperator(Operator):
    def is_less_than(self, other):
        return self.precedence < other.precedence

    def execute(self, frame):
        value = frame.stack.pop()
        frame.stack.push(self._impl()(value))

    def __repr__(self) -> str:
        return f"<unary {self.name} prec={self.precedence}>"


class BinaryOperator(Operator):
    def __init__(self, name: str, precedence: int, fn: Optional[Callable] = None,
                 associativity: Associativity = Associativity.LEFT, node: Optional[str] = None):
        super().__init__(name, precedence, fn, node)
        self.associativity = associativity

    def is_less_than(self, other):
        if self.associativity is Associativity.LEFT:
            return self.precedence <= other.precedence
        return self.precedence < other.precedence

    def execute(self, frame):
        right = frame.stack.pop()
        left = frame.stack.pop()
        frame.stack.push(self._impl()(left, right))

    def __repr__(self) -> str:
        return f"<binary {self.name} prec={self.precedence} {self.associativity.value}>"


class ApplyOperator(BinaryOperator):
    """The default operator: `f x` calls `f` with the single argument `x`."""

    def execute(self, frame):
        arg = frame.stack.pop()
        target = frame.stack.pop()
        frame.stack.push(arg)
        call_value(target, frame, 1, 1)


class OperatorDictionary:
    """Registry of unary and binary operators plus the default operator."""

    def __init__(self):
        self.unary_operators: Dict[str, UnaryOperator] = {}
        self.binary_operators: Dict[str, BinaryOperator] = {}
        self.default_operator: Optional[BinaryOperator] = None
        self._frozen = False

    def _check_mutable(self):
        if self._frozen:
            raise RuntimeError("Operator dictionary is frozen")

    def register_unary(self, op: UnaryOperator) -> UnaryOperator:
        self._check_mutable()
        if op.name in self.unary_operators:
            raise ValueError(f"Duplicate unary operator: {op.name}")
        self.unary_operators[op.name] = op
        return op

    def register_binary(self, op: BinaryOperator) -> BinaryOperator:
        self._check_mutable()
        if op.name in self.binary_operators:
            raise ValueError(f"Duplicate binary operator: {op.name}")
        self.binary_operators[op.name] = op
        return op

    def set_default(self, op: BinaryOperator) -> BinaryOperator:
        self._check_mutable()
        self.default_operator = op
        return op

    def freeze(self) -> 'OperatorDictionary':
        self._frozen = True
        return self

    def get_unary_operator(self, name: str) -> Optional[UnaryOperator]:
        return self.unary_operators.get(name)

    def get_binary_operator(self, name: str) -> Optional[BinaryOperator]:
        return self.binary_operators.get(name)

    def get_default_operator(self) -> Optional[BinaryOperator]:
        return self.default_operator

    def all_operators(self):
        yield from self.unary_operators.values()
        yield from self.binary_operators.values()
        if self.default_operator is not None:
            yield self.default_operator

    # -----------------------------------------------------------------
    # Configuration
    # -----------------------------------------------------------------

    @classmethod
    def from_config(cls, config: Mapping[str, Any], impls: Mapping[str, Callable]) -> 'OperatorDictionary':
        """Builds a dictionary from a parsed operator table.

        `impls` maps the `impl` names used by the table to Python callables.
        """
        def lookup(entry):
            impl = entry.get("impl")
            if impl is None:
                return None
            try:
                return impls[impl]
            except KeyError:
                raise ValueError(f"Unknown implementation {impl!r} for operator {entry.get('name')!r}") from None

        ops = cls()
        for entry in config.get("unary") or []:
            ops.register_unary(UnaryOperator(str(entry["name"]), int(entry["precedence"]), lookup(entry), entry.get("node")))
        for entry in config.get("binary") or []:
            ops.register_binary(BinaryOperator(
                str(entry["name"]),
                int(entry["precedence"]),
                lookup(entry),
                Associativity(entry.get("associativity", "left")),
                entry.get("node"),
            ))
        default = config.get("default")
        if default:
            ops.set_default(ApplyOperator(
                str(default["name"]),
                int(default["precedence"]),
                None,
                Associativity(default.get("associativity", "left")),
            ))
        return ops

    @staticmethod
    def load_config(path) -> Mapping[str, Any]:
        """Reads an operator table from a YAML file."""
        config = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if not isinstance(config, Mapping):
            raise ValueError(f"Operator table {path} must be a mapping, got {type(config).__name__}")
        return config

    @classmethod
    def from_file(cls, path, impls: Mapping[str, Callable]) -> 'OperatorDictionary':
        return cls.from_config(cls.load_config(path), impls)
