import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from luavm.ast import (
    Assignment,
    BinaryOp,
    CallExpr,
    ForNumericStmt,
    FunctionStmt,
    IndexExpr,
    LocalAssignment,
    MethodCallExpr,
    ReturnStmt,
    StringLiteral,
    TableConstructor,
    UnaryOp,
)
from luavm.errors import LuaParseError
from luavm.lexer import LuaLexer
from luavm.parser import LuaParser


def test_lexer_handles_long_strings_and_escapes():
    tokens = LuaLexer('x = [[a\nb]] .. "\\65\\tz" -- comment\n--[==[ long\ncomment ]==]').tokenize()
    kinds = [tok.kind for tok in tokens]
    assert kinds == ["IDENT", "OP", "STRING", "OP", "STRING", "EOF"]
    assert tokens[2].value == "a\nb"
    assert tokens[4].value == "A\tz"


def test_lexer_reports_unfinished_string():
    with pytest.raises(LuaParseError) as excinfo:
        LuaLexer('s = "abc', "input").tokenize()
    assert str(excinfo.value) == "input:1: unfinished string"


def test_hex_and_exponent_numbers():
    chunk = LuaParser.parse("return 0x1F, 1e2, .5")
    ret = chunk.body.statements[0]
    assert isinstance(ret, ReturnStmt)
    assert [value.value for value in ret.values] == [31.0, 100.0, 0.5]


def test_operator_precedence():
    chunk = LuaParser.parse("return 1 + 2 * 3 .. 'x' == 'y'")
    expr = chunk.body.statements[0].values[0]
    assert isinstance(expr, BinaryOp) and expr.op == "=="
    concat = expr.left
    assert concat.op == ".."
    assert concat.left.op == "+"
    assert concat.left.right.op == "*"


def test_power_binds_tighter_than_unary_minus():
    expr = LuaParser.parse("return -2 ^ 2").body.statements[0].values[0]
    assert isinstance(expr, UnaryOp)
    assert expr.operand.op == "^"


def test_method_definition_gets_self():
    stmt = LuaParser.parse("function a.b:c(x) return x end").body.statements[0]
    assert isinstance(stmt, FunctionStmt)
    assert stmt.func.params == ["self", "x"]
    assert stmt.func.name == "a.b:c"
    assert isinstance(stmt.target, IndexExpr)
    assert isinstance(stmt.target.index, StringLiteral)


def test_call_forms():
    statements = LuaParser.parse("f 'x'; g{1}; obj:m(1, 2)").body.statements
    assert isinstance(statements[0].expr, CallExpr)
    assert isinstance(statements[1].expr.args[0], TableConstructor)
    assert isinstance(statements[2].expr, MethodCallExpr)
    assert statements[2].expr.method == "m"


def test_multiple_assignment_and_locals():
    statements = LuaParser.parse("local a, b = 1\na, b = b, a").body.statements
    assert isinstance(statements[0], LocalAssignment)
    assert statements[0].names == ["a", "b"]
    assert isinstance(statements[1], Assignment)
    assert len(statements[1].targets) == 2


def test_numeric_for():
    stmt = LuaParser.parse("for i = 1, 10, 2 do end").body.statements[0]
    assert isinstance(stmt, ForNumericStmt)
    assert stmt.var == "i"
    assert stmt.step is not None


@pytest.mark.parametrize(
    "source, message",
    [
        ("x = ", "input:1: unexpected symbol near '<eof>'"),
        ("break", "input:1: no loop to break near 'break'"),
        ("function f() return ... end", "input:1: cannot use '...' outside a vararg function near '...'"),
        ("x", "input:1: syntax error near '<eof>'"),
        ("if x then", "input:1: 'end' expected near '<eof>'"),
    ],
)
def test_syntax_errors(source, message):
    with pytest.raises(LuaParseError) as excinfo:
        LuaParser.parse(source, "input")
    assert str(excinfo.value) == message


def test_break_inside_nested_function_is_rejected():
    with pytest.raises(LuaParseError):
        LuaParser.parse("while true do local f = function() break end end")
