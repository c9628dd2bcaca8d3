from __future__ import annotations

import math
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional

from .ast import (
    Assignment,
    BinaryOp,
    Block,
    BooleanLiteral,
    BreakStmt,
    CallExpr,
    DoStmt,
    Expr,
    ExprStmt,
    ForGenericStmt,
    ForNumericStmt,
    FunctionExpr,
    FunctionStmt,
    Identifier,
    IfStmt,
    IndexExpr,
    LocalAssignment,
    LocalFunctionStmt,
    MethodCallExpr,
    NilLiteral,
    NumberLiteral,
    ParenExpr,
    RepeatStmt,
    ReturnStmt,
    Stmt,
    StringLiteral,
    TableConstructor,
    UnaryOp,
    VarargExpr,
    WhileStmt,
)
from .errors import ScriptError, format_number
from .objects import (
    LuaFunction,
    NativeFunction,
    UserData,
    adjust,
    first,
    is_truthy,
    raw_equal,
    to_number,
    value_type_name,
)
from .table import LuaTable

if TYPE_CHECKING:  # pragma: no cover
    from .vm import LuaVM


class Scope:
    """One lexical block: its locals and the enclosing block."""

    __slots__ = ("vars", "parent")

    def __init__(self, parent: Optional["Scope"] = None):
        self.vars: Dict[str, Any] = {}
        self.parent = parent

    def lookup(self, name: str) -> Optional["Scope"]:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.vars:
                return scope
            scope = scope.parent
        return None


class Frame:
    """Activation record of a running script function.

    ``pending`` holds the value lists an expression has evaluated but not yet
    consumed; the collector treats them as roots.
    """

    __slots__ = ("func", "varargs", "scope", "line", "pending")

    def __init__(self, func: LuaFunction, varargs: List[Any], scope: Scope):
        self.func = func
        self.varargs = varargs
        self.scope = scope
        self.line = func.line
        self.pending: List[List[Any]] = []


class _Break(Exception):
    pass


class _Return(Exception):
    def __init__(self, values: List[Any]):
        super().__init__()
        self.values = values


_ARITH_EVENTS = {"+": "add", "-": "sub", "*": "mul", "/": "div", "%": "mod", "^": "pow"}


def _arith(op: str, a: float, b: float) -> float:
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if op == "/":
        if b == 0:
            if a == 0 or math.isnan(a):
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1.0, b)
        return a / b
    if op == "%":
        if b == 0 or math.isinf(a):
            return math.nan
        if math.isinf(b):
            return a if (a >= 0) == (b > 0) else b
        return a - math.floor(a / b) * b
    try:
        return math.pow(a, b)
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


class Interpreter:
    """Tree-walking evaluator; calls out through the VM for every function call."""

    def __init__(self, vm: "LuaVM"):
        self.vm = vm
        self._statements: Dict[type, Callable[[Any, Scope, Frame], None]] = {
            LocalAssignment: self._exec_local,
            LocalFunctionStmt: self._exec_local_function,
            FunctionStmt: self._exec_function,
            Assignment: self._exec_assignment,
            ExprStmt: self._exec_expr,
            IfStmt: self._exec_if,
            WhileStmt: self._exec_while,
            RepeatStmt: self._exec_repeat,
            ForNumericStmt: self._exec_for_numeric,
            ForGenericStmt: self._exec_for_generic,
            DoStmt: self._exec_do,
            ReturnStmt: self._exec_return,
            BreakStmt: self._exec_break,
        }

    # ----------------------------------------------------------------- calls
    def call(self, func: LuaFunction, args: List[Any]) -> List[Any]:
        scope = Scope(func.scope)
        for idx, name in enumerate(func.params):
            scope.vars[name] = args[idx] if idx < len(args) else None
        varargs = list(args[len(func.params):]) if func.vararg else []
        frame = Frame(func, varargs, scope)
        self.vm.call_stack.append(frame)
        try:
            self._run_statements(func.body.statements, scope, frame)
        except _Return as ret:
            return ret.values
        finally:
            self.vm.call_stack.pop()
        return []

    def _error(self, frame: Frame, node: Any, message: str) -> ScriptError:
        return ScriptError(f"{frame.func.chunkname}:{node.line}: {message}")

    # ------------------------------------------------------------ statements
    def _run_statements(self, statements: List[Stmt], scope: Scope, frame: Frame) -> None:
        for stmt in statements:
            frame.line = stmt.line
            self._statements[type(stmt)](stmt, scope, frame)

    def _exec_block(self, block: Block, scope: Scope, frame: Frame) -> None:
        inner = Scope(scope)
        outer, frame.scope = frame.scope, inner
        try:
            self._run_statements(block.statements, inner, frame)
        finally:
            frame.scope = outer

    def _exec_local(self, stmt: LocalAssignment, scope: Scope, frame: Frame) -> None:
        values = adjust(self._eval_list(stmt.values, scope, frame), len(stmt.names))
        for name, value in zip(stmt.names, values):
            scope.vars[name] = value

    def _exec_local_function(self, stmt: LocalFunctionStmt, scope: Scope, frame: Frame) -> None:
        scope.vars[stmt.name] = None
        scope.vars[stmt.name] = self._make_function(stmt.func, scope, frame)

    def _exec_function(self, stmt: FunctionStmt, scope: Scope, frame: Frame) -> None:
        func = self._make_function(stmt.func, scope, frame)
        self._assign(stmt.target, func, scope, frame)

    def _exec_assignment(self, stmt: Assignment, scope: Scope, frame: Frame) -> None:
        # resolve the targets' tables and keys before evaluating the values
        places = []
        held: List[Any] = []
        with self._holding(frame, held):
            for target in stmt.targets:
                if isinstance(target, IndexExpr):
                    obj = self._eval(target.table, scope, frame)
                    held.append(obj)
                    key = self._eval(target.index, scope, frame)
                    held.append(key)
                    places.append((target, obj, key))
                else:
                    places.append((target, None, None))
            values = adjust(self._eval_list(stmt.values, scope, frame), len(places))
            held.extend(values)
            for (target, obj, key), value in zip(places, values):
                if isinstance(target, IndexExpr):
                    self._set_index(target, obj, key, value, scope, frame)
                else:
                    self._assign(target, value, scope, frame)

    def _exec_expr(self, stmt: ExprStmt, scope: Scope, frame: Frame) -> None:
        self._eval_multi(stmt.expr, scope, frame)

    def _exec_if(self, stmt: IfStmt, scope: Scope, frame: Frame) -> None:
        for condition, body in stmt.branches:
            if is_truthy(self._eval(condition, scope, frame)):
                self._exec_block(body, scope, frame)
                return
        if stmt.else_branch is not None:
            self._exec_block(stmt.else_branch, scope, frame)

    def _exec_while(self, stmt: WhileStmt, scope: Scope, frame: Frame) -> None:
        while is_truthy(self._eval(stmt.condition, scope, frame)):
            try:
                self._exec_block(stmt.body, scope, frame)
            except _Break:
                break

    def _exec_repeat(self, stmt: RepeatStmt, scope: Scope, frame: Frame) -> None:
        while True:
            inner = Scope(scope)
            outer, frame.scope = frame.scope, inner
            try:
                self._run_statements(stmt.body.statements, inner, frame)
                # the condition sees the body's locals
                done = is_truthy(self._eval(stmt.condition, inner, frame))
            except _Break:
                break
            finally:
                frame.scope = outer
            if done:
                break

    def _exec_for_numeric(self, stmt: ForNumericStmt, scope: Scope, frame: Frame) -> None:
        start = to_number(self._eval(stmt.start, scope, frame))
        if start is None:
            raise self._error(frame, stmt, "'for' initial value must be a number")
        limit = to_number(self._eval(stmt.limit, scope, frame))
        if limit is None:
            raise self._error(frame, stmt, "'for' limit must be a number")
        step = 1.0
        if stmt.step is not None:
            step = to_number(self._eval(stmt.step, scope, frame))
            if step is None:
                raise self._error(frame, stmt, "'for' step must be a number")
        value = start
        while (step > 0 and value <= limit) or (step <= 0 and value >= limit):
            loop_scope = Scope(scope)
            loop_scope.vars[stmt.var] = value
            try:
                self._exec_block(stmt.body, loop_scope, frame)
            except _Break:
                break
            value += step

    def _exec_for_generic(self, stmt: ForGenericStmt, scope: Scope, frame: Frame) -> None:
        func, state, control = adjust(self._eval_list(stmt.iter_exprs, scope, frame), 3)
        while True:
            results = adjust(self._call(func, [state, control], stmt, frame, "for iterator"), len(stmt.names))
            if results[0] is None:
                break
            control = results[0]
            loop_scope = Scope(scope)
            for name, value in zip(stmt.names, results):
                loop_scope.vars[name] = value
            try:
                self._exec_block(stmt.body, loop_scope, frame)
            except _Break:
                break

    def _exec_do(self, stmt: DoStmt, scope: Scope, frame: Frame) -> None:
        self._exec_block(stmt.body, scope, frame)

    def _exec_return(self, stmt: ReturnStmt, scope: Scope, frame: Frame) -> None:
        raise _Return(self._eval_list(stmt.values, scope, frame))

    def _exec_break(self, stmt: BreakStmt, scope: Scope, frame: Frame) -> None:
        raise _Break()

    def _assign(self, target: Expr, value: Any, scope: Scope, frame: Frame) -> None:
        if isinstance(target, Identifier):
            owner = scope.lookup(target.name)
            if owner is not None:
                owner.vars[target.name] = value
            else:
                self.vm.set_index(self.vm.globals, target.name, value)
            return
        assert isinstance(target, IndexExpr)
        obj = self._eval(target.table, scope, frame)
        key = self._eval(target.index, scope, frame)
        self._set_index(target, obj, key, value, scope, frame)

    def _set_index(self, target: IndexExpr, obj: Any, key: Any, value: Any, scope: Scope, frame: Frame) -> None:
        if not isinstance(obj, LuaTable) and self.vm.metamethod(obj, "__newindex") is None:
            raise self._index_error(target.table, obj, scope, frame)
        self.vm.set_index(obj, key, value)

    # ----------------------------------------------------------- expressions
    @staticmethod
    @contextmanager
    def _holding(frame: Frame, values: List[Any]) -> Iterator[List[Any]]:
        frame.pending.append(values)
        try:
            yield values
        finally:
            frame.pending.pop()

    def _eval_list(self, exprs: List[Expr], scope: Scope, frame: Frame, held: Optional[List[Any]] = None) -> List[Any]:
        """Evaluate an expression list; only the last one may expand to many values.

        Values land after ``held``, which stays reachable while the rest evaluate.
        """
        values: List[Any] = [] if held is None else held
        with self._holding(frame, values):
            for idx, expr in enumerate(exprs):
                if idx == len(exprs) - 1:
                    values.extend(self._eval_multi(expr, scope, frame))
                else:
                    values.append(self._eval(expr, scope, frame))
        return values

    def _eval_multi(self, expr: Expr, scope: Scope, frame: Frame) -> List[Any]:
        if isinstance(expr, CallExpr):
            func = self._eval(expr.callee, scope, frame)
            args = self._eval_list(expr.args, scope, frame, [func])[1:]
            frame.line = expr.line
            return self._call(func, args, expr, frame, self._describe(expr.callee, scope))
        if isinstance(expr, MethodCallExpr):
            receiver = self._eval(expr.receiver, scope, frame)
            with self._holding(frame, [receiver]):
                method = self._index(expr.receiver, receiver, expr.method, scope, frame)
            args = self._eval_list(expr.args, scope, frame, [method, receiver])[1:]
            frame.line = expr.line
            return self._call(method, args, expr, frame, f"method '{expr.method}'")
        if isinstance(expr, VarargExpr):
            return list(frame.varargs)
        return [self._eval(expr, scope, frame)]

    def _eval(self, expr: Expr, scope: Scope, frame: Frame) -> Any:
        if isinstance(expr, (NumberLiteral, StringLiteral, BooleanLiteral)):
            return expr.value
        if isinstance(expr, NilLiteral):
            return None
        if isinstance(expr, Identifier):
            owner = scope.lookup(expr.name)
            if owner is not None:
                return owner.vars[expr.name]
            return self.vm.get_index(self.vm.globals, expr.name)
        if isinstance(expr, IndexExpr):
            obj = self._eval(expr.table, scope, frame)
            key = self._eval(expr.index, scope, frame)
            return self._index(expr.table, obj, key, scope, frame)
        if isinstance(expr, (CallExpr, MethodCallExpr, VarargExpr)):
            return first(self._eval_multi(expr, scope, frame))
        if isinstance(expr, ParenExpr):
            return self._eval(expr.inner, scope, frame)
        if isinstance(expr, FunctionExpr):
            return self._make_function(expr, scope, frame)
        if isinstance(expr, TableConstructor):
            return self._eval_table(expr, scope, frame)
        if isinstance(expr, BinaryOp):
            return self._eval_binary(expr, scope, frame)
        if isinstance(expr, UnaryOp):
            return self._eval_unary(expr, scope, frame)
        raise self._error(frame, expr, f"unsupported expression {type(expr).__name__}")

    def _eval_table(self, expr: TableConstructor, scope: Scope, frame: Frame) -> LuaTable:
        table = LuaTable()
        with self._holding(frame, [table]) as held:
            return self._fill_table(table, expr, scope, frame, held)

    def _fill_table(self, table: LuaTable, expr: TableConstructor, scope: Scope, frame: Frame, held: List[Any]) -> LuaTable:
        position = 1
        for idx, field in enumerate(expr.fields):
            if field.key is not None:
                key = self._eval(field.key, scope, frame)
                held.append(key)
                value = self._eval(field.value, scope, frame)
                held.pop()
                if key is None:
                    raise self._error(frame, expr, "table index is nil")
                table.raw_set(key, value)
                continue
            if idx == len(expr.fields) - 1:
                values = self._eval_multi(field.value, scope, frame)
            else:
                values = [self._eval(field.value, scope, frame)]
            for value in values:
                table.raw_set(float(position), value)
                position += 1
        return table

    def _eval_binary(self, expr: BinaryOp, scope: Scope, frame: Frame) -> Any:
        op = expr.op
        left = self._eval(expr.left, scope, frame)
        if op == "and":
            return self._eval(expr.right, scope, frame) if is_truthy(left) else left
        if op == "or":
            return left if is_truthy(left) else self._eval(expr.right, scope, frame)
        with self._holding(frame, [left]):
            right = self._eval(expr.right, scope, frame)
        if op in _ARITH_EVENTS:
            a, b = to_number(left), to_number(right)
            if a is None or b is None:
                bad_expr, bad = (expr.left, left) if a is None else (expr.right, right)
                raise self._operand_error(frame, expr, "perform arithmetic on", self._describe(bad_expr, scope), bad)
            return _arith(op, a, b)
        if op == "..":
            parts = []
            for side_expr, value in ((expr.left, left), (expr.right, right)):
                if isinstance(value, str):
                    parts.append(value)
                elif isinstance(value, float):
                    parts.append(format_number(value))
                else:
                    raise self._operand_error(frame, expr, "concatenate", self._describe(side_expr, scope), value)
            return "".join(parts)
        if op == "==":
            return raw_equal(left, right)
        if op == "~=":
            return not raw_equal(left, right)
        if op == "<":
            return self._less_than(left, right, expr, frame)
        if op == ">":
            return self._less_than(right, left, expr, frame)
        if op == "<=":
            return not self._less_than(right, left, expr, frame)
        if op == ">=":
            return not self._less_than(left, right, expr, frame)
        raise self._error(frame, expr, f"unknown operator {op}")

    def _less_than(self, left: Any, right: Any, expr: Expr, frame: Frame) -> bool:
        if isinstance(left, float) and isinstance(right, float):
            return left < right
        if isinstance(left, str) and isinstance(right, str):
            return left < right
        ta, tb = value_type_name(left), value_type_name(right)
        if ta == tb:
            raise self._error(frame, expr, f"attempt to compare two {ta} values")
        raise self._error(frame, expr, f"attempt to compare {ta} with {tb}")

    def _eval_unary(self, expr: UnaryOp, scope: Scope, frame: Frame) -> Any:
        value = self._eval(expr.operand, scope, frame)
        if expr.op == "not":
            return not is_truthy(value)
        if expr.op == "-":
            number = to_number(value)
            if number is None:
                raise self._operand_error(frame, expr, "perform arithmetic on", self._describe(expr.operand, scope), value)
            return -number
        if isinstance(value, str):
            return float(len(value))
        if isinstance(value, LuaTable):
            return float(value.length())
        raise self._operand_error(frame, expr, "get length of", self._describe(expr.operand, scope), value)

    # --------------------------------------------------------------- helpers
    def _make_function(self, expr: FunctionExpr, scope: Scope, frame: Frame) -> LuaFunction:
        return LuaFunction(
            expr.params,
            expr.vararg,
            expr.body,
            scope,
            frame.func.chunkname,
            name=expr.name,
            line=expr.line,
        )

    def _index(self, table_expr: Expr, obj: Any, key: Any, scope: Scope, frame: Frame) -> Any:
        if not isinstance(obj, LuaTable) and self.vm.metamethod(obj, "__index") is None:
            raise self._index_error(table_expr, obj, scope, frame)
        return self.vm.get_index(obj, key)

    def _index_error(self, table_expr: Expr, obj: Any, scope: Scope, frame: Frame) -> ScriptError:
        return self._operand_error(frame, table_expr, "index", self._describe(table_expr, scope), obj)

    def _call(self, func: Any, args: List[Any], node: Any, frame: Frame, description: Optional[str]) -> List[Any]:
        if not isinstance(func, (LuaFunction, NativeFunction)) and self.vm.metamethod(func, "__call") is None:
            raise self._operand_error(frame, node, "call", description, func)
        return self.vm.call_value(func, args)

    def _operand_error(
        self, frame: Frame, node: Any, action: str, description: Optional[str], value: Any
    ) -> ScriptError:
        if description is None:
            return self._error(frame, node, f"attempt to {action} a {value_type_name(value)} value")
        return self._error(frame, node, f"attempt to {action} {description} (a {value_type_name(value)} value)")

    def _describe(self, expr: Expr, scope: Scope) -> Optional[str]:
        if isinstance(expr, Identifier):
            kind = "local" if scope.lookup(expr.name) is not None else "global"
            return f"{kind} '{expr.name}'"
        if isinstance(expr, IndexExpr) and isinstance(expr.index, StringLiteral):
            return f"field '{expr.index.value}'"
        return None


__all__ = ["Interpreter", "Frame", "Scope"]
