"""
A pretty-printer for calc values and AST nodes.
"""
from calc.calc_datatypes import (
    NIL, Closure, Code, Cons, Name, NativeFunction, Record, RecordType,
)
from calc.calc_nodes import (
    BinaryOpNode, BracketNode, ExprNode, RawCodeNode, SymbolCallNode,
    SymbolGetNode, UnaryOpNode, ValueNode,
)


class Printer:
    """Formats values as calc literals and nodes as s-expressions.

    Nodes print with explicit grouping, so `a + b * c` reads `(+ a (* b c))`
    and two parses print the same exactly when their trees are equal.
    """

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj):
        """Public entry point to format an object."""
        return self._get_handler(obj)(obj)

    def _get_handler(self, obj):
        if obj is NIL:
            return self._pformat_nil
        # walk the MRO so node subclasses (lambda, dot) reuse their base printer
        for cls in type(obj).__mro__:
            handler = self._handlers.get(cls)
            if handler is not None:
                return handler
        return repr

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            Name: self._pformat_name,
            Cons: self._pformat_cons,
            Code: self._pformat_code,
            Closure: self._pformat_closure,
            Record: self._pformat_record,
            RecordType: self._pformat_record_type,
            NativeFunction: repr,
            ValueNode: self._pformat_value_node,
            SymbolGetNode: self._pformat_symbol_get,
            SymbolCallNode: self._pformat_symbol_call,
            UnaryOpNode: self._pformat_unary,
            BinaryOpNode: self._pformat_binary,
            BracketNode: self._pformat_bracket,
            RawCodeNode: self._pformat_raw_code,
            ExprNode: self._pformat_form,
        }

    # -----------------------------------------------------------------
    # Values
    # -----------------------------------------------------------------

    def _pformat_primitive(self, obj):
        return str(obj)

    def _pformat_str(self, obj):
        escaped = obj.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'

    def _pformat_bool(self, obj):
        return "true" if obj else "false"

    def _pformat_none(self, obj):
        return "null"

    def _pformat_nil(self, obj):
        return "null"

    def _pformat_name(self, obj):
        return f"#{obj.text}"

    def _pformat_cons(self, obj):
        if obj.is_list:
            return f"[{', '.join(self.pformat(item) for item in obj)}]"
        return f"({self.pformat(obj.car)} : {self.pformat(obj.cdr)})"

    def _pformat_code(self, obj):
        return f"<code {len(obj)} ops>"

    def _pformat_closure(self, obj):
        return f"<closure ({', '.join(obj.params)})>"

    def _pformat_record(self, obj):
        values = ', '.join(self.pformat(v) for v in obj.values)
        return f"{obj.type.name}({values})"

    def _pformat_record_type(self, obj):
        return f"<type {obj.name}({', '.join(obj.fields)})>"

    # -----------------------------------------------------------------
    # Nodes
    # -----------------------------------------------------------------

    def _pformat_value_node(self, node):
        return self.pformat(node.value)

    def _pformat_symbol_get(self, node):
        return node.symbol

    def _pformat_symbol_call(self, node):
        return f"{node.symbol}({self._join(node.args)})"

    def _pformat_unary(self, node):
        return f"({node.operator.name} {self.pformat(node.arg)})"

    def _pformat_binary(self, node):
        return f"({node.operator.name} {self.pformat(node.left)} {self.pformat(node.right)})"

    def _pformat_bracket(self, node):
        return f"{node.opening}{self._join(node.items)}{node.closing}"

    def _pformat_raw_code(self, node):
        return f"{{{self.pformat(node.body)}}}"

    def _pformat_form(self, node):
        # special forms (let, match, if) print as the call they were written as
        name = getattr(node, "symbol", type(node).__name__)
        return f"{name}({self._join(node.children)})"

    def _join(self, nodes):
        return ", ".join(self.pformat(n) for n in nodes)
