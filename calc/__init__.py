from calc.calc_datatypes import (
    NIL, ArityError, Closure, Code, Cons, DecompositionContractError, ExecutionError, Frame,
    InvalidToken, Name, Namespace, NativeFunction, NonExpression, NotCallable, ParseError,
    RecordType, Scope, Stack, StackUnderflow, SymbolNotFound, Token, TokenStream, TokenType,
    UnfinishedExpression, UnmatchedBrackets,
)
from calc.calc_interpreter import Environment
from calc.calc_operators import OperatorDictionary
from calc.calc_printer import Printer
from calc.calc_runtime import CalcRunner, ExecutionResult, StdLib, create_environment
