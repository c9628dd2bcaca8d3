from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

# Expression nodes

@dataclass
class Expr:
    line: int
    column: int

@dataclass
class NumberLiteral(Expr):
    value: float

@dataclass
class StringLiteral(Expr):
    value: str

@dataclass
class BooleanLiteral(Expr):
    value: bool

@dataclass
class NilLiteral(Expr):
    pass

@dataclass
class VarargExpr(Expr):
    pass

@dataclass
class Identifier(Expr):
    name: str

@dataclass
class BinaryOp(Expr):
    left: Expr
    op: str
    right: Expr

@dataclass
class UnaryOp(Expr):
    op: str
    operand: Expr

@dataclass
class ParenExpr(Expr):
    """Parenthesised expression; truncates multiple results to one."""

    inner: Expr

@dataclass
class CallExpr(Expr):
    callee: Expr
    args: List[Expr]


@dataclass
class MethodCallExpr(Expr):
    receiver: Expr
    method: str
    args: List[Expr]


@dataclass
class IndexExpr(Expr):
    table: Expr
    index: Expr


@dataclass
class TableField:
    value: Expr
    key: Optional[Expr] = None


@dataclass
class TableConstructor(Expr):
    fields: List[TableField]

@dataclass
class FunctionExpr(Expr):
    params: List[str]
    vararg: bool
    body: "Block"
    name: str = "?"

# Statement nodes

@dataclass
class Stmt:
    line: int
    column: int

@dataclass
class Assignment(Stmt):
    targets: List[Expr]
    values: List[Expr]


@dataclass
class LocalAssignment(Stmt):
    names: List[str]
    values: List[Expr]


@dataclass
class LocalFunctionStmt(Stmt):
    name: str
    func: FunctionExpr


@dataclass
class FunctionStmt(Stmt):
    """``function a.b:c() end``; ``target`` is the assignable path."""

    target: Expr
    func: FunctionExpr


@dataclass
class IfStmt(Stmt):
    # (condition, body) pairs for the ``if`` and every ``elseif``
    branches: List[tuple]
    else_branch: Optional["Block"] = None

@dataclass
class WhileStmt(Stmt):
    condition: Expr
    body: "Block"

@dataclass
class RepeatStmt(Stmt):
    body: "Block"
    condition: Expr


@dataclass
class DoStmt(Stmt):
    body: "Block"


@dataclass
class BreakStmt(Stmt):
    pass

@dataclass
class ForNumericStmt(Stmt):
    var: str
    start: Expr
    limit: Expr
    step: Optional[Expr]
    body: "Block"

@dataclass
class ForGenericStmt(Stmt):
    names: List[str]
    iter_exprs: List[Expr]
    body: "Block"

@dataclass
class ReturnStmt(Stmt):
    values: List[Expr]

@dataclass
class ExprStmt(Stmt):
    expr: Expr

@dataclass
class Block:
    statements: List[Stmt] = field(default_factory=list)

@dataclass
class Chunk:
    body: Block

__all__ = [
    "Expr",
    "NumberLiteral",
    "StringLiteral",
    "BooleanLiteral",
    "NilLiteral",
    "VarargExpr",
    "Identifier",
    "BinaryOp",
    "UnaryOp",
    "ParenExpr",
    "CallExpr",
    "MethodCallExpr",
    "IndexExpr",
    "TableConstructor",
    "TableField",
    "FunctionExpr",
    "Stmt",
    "Assignment",
    "LocalAssignment",
    "LocalFunctionStmt",
    "FunctionStmt",
    "IfStmt",
    "WhileStmt",
    "RepeatStmt",
    "DoStmt",
    "BreakStmt",
    "ForNumericStmt",
    "ForGenericStmt",
    "ReturnStmt",
    "ExprStmt",
    "Block",
    "Chunk",
]
