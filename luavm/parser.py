from __future__ import annotations

from typing import List, Optional, Tuple

from .ast import (
    Assignment,
    BinaryOp,
    Block,
    BooleanLiteral,
    BreakStmt,
    CallExpr,
    Chunk,
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
    StringLiteral,
    TableConstructor,
    TableField,
    UnaryOp,
    VarargExpr,
    WhileStmt,
)
from .errors import LuaParseError
from .lexer import LuaLexer, Token

_COMPARISON_OPS = {"==", "~=", "<", ">", "<=", ">="}
_BLOCK_END = {"end", "else", "elseif", "until", "EOF"}


class LuaParser:
    def __init__(self, tokens: List[Token], chunkname: str = "?"):
        self.tokens = tokens
        self.chunkname = chunkname
        self.pos = 0
        self._loop_depth = 0
        self._vararg_stack = [True]

    @classmethod
    def parse(cls, source: str, chunkname: str = "?") -> Chunk:
        lexer = LuaLexer(source, chunkname)
        tokens = lexer.tokenize()
        parser = cls(tokens, chunkname)
        return parser._parse_chunk()

    # ------------------------------------------------------------------
    def _current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self._current()
        if token.kind != "EOF":
            self.pos += 1
        return token

    def _peek(self, offset: int = 1) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def _match(self, *kinds: str) -> Optional[Token]:
        if self._current().kind in kinds:
            return self._advance()
        return None

    def _is_op(self, *symbols: str) -> bool:
        token = self._current()
        return token.kind == "OP" and token.value in symbols

    def _error(self, message: str, token: Optional[Token] = None) -> LuaParseError:
        token = token or self._current()
        near = token.value if token.kind != "EOF" else "<eof>"
        return LuaParseError(
            f"{self.chunkname}:{token.line}: {message} near '{near}'",
            token.line,
            token.column,
        )

    def _expect(self, kind: str) -> Token:
        token = self._current()
        if token.kind != kind:
            raise self._error(f"'{kind}' expected")
        return self._advance()

    def _expect_op(self, symbol: str) -> Token:
        if not self._is_op(symbol):
            raise self._error(f"'{symbol}' expected")
        return self._advance()

    def _parse_chunk(self) -> Chunk:
        body = self._parse_block()
        if self._current().kind != "EOF":
            raise self._error("'<eof>' expected")
        return Chunk(body)

    def _parse_block(self) -> Block:
        statements: List = []
        while self._current().kind not in _BLOCK_END:
            if self._current().kind == "return":
                statements.append(self._parse_return())
                break
            statements.append(self._parse_statement())
            self._match(";")
        return Block(statements)

    def _parse_statement(self):
        token = self._current()
        if token.kind == "if":
            return self._parse_if()
        if token.kind == "while":
            return self._parse_while()
        if token.kind == "do":
            self._advance()
            body = self._parse_block()
            self._expect("end")
            return DoStmt(token.line, token.column, body)
        if token.kind == "for":
            return self._parse_for()
        if token.kind == "repeat":
            return self._parse_repeat()
        if token.kind == "function":
            return self._parse_function()
        if token.kind == "local":
            if self._peek().kind == "function":
                return self._parse_local_function()
            return self._parse_local_assignment()
        if token.kind == "break":
            if self._loop_depth == 0:
                raise self._error("no loop to break")
            self._advance()
            return BreakStmt(token.line, token.column)
        return self._parse_assignment_or_call()

    def _parse_if(self) -> IfStmt:
        if_tok = self._expect("if")
        branches = []
        condition = self._parse_expression()
        self._expect("then")
        branches.append((condition, self._parse_block()))
        else_block = None
        while True:
            if self._match("elseif"):
                condition = self._parse_expression()
                self._expect("then")
                branches.append((condition, self._parse_block()))
                continue
            if self._match("else"):
                else_block = self._parse_block()
            break
        self._expect("end")
        return IfStmt(if_tok.line, if_tok.column, branches, else_block)

    def _parse_while(self) -> WhileStmt:
        tok = self._expect("while")
        condition = self._parse_expression()
        self._expect("do")
        body = self._parse_loop_body()
        self._expect("end")
        return WhileStmt(tok.line, tok.column, condition, body)

    def _parse_loop_body(self) -> Block:
        self._loop_depth += 1
        try:
            return self._parse_block()
        finally:
            self._loop_depth -= 1

    def _parse_repeat(self) -> RepeatStmt:
        tok = self._expect("repeat")
        body = self._parse_loop_body()
        self._expect("until")
        condition = self._parse_expression()
        return RepeatStmt(tok.line, tok.column, body, condition)

    def _parse_for(self):
        tok = self._expect("for")
        first = self._expect("IDENT").value
        if self._is_op("="):
            self._advance()
            start = self._parse_expression()
            self._expect(",")
            limit = self._parse_expression()
            step = None
            if self._match(","):
                step = self._parse_expression()
            self._expect("do")
            body = self._parse_loop_body()
            self._expect("end")
            return ForNumericStmt(tok.line, tok.column, first, start, limit, step, body)
        names = [first]
        while self._match(","):
            names.append(self._expect("IDENT").value)
        self._expect("in")
        iter_exprs = self._parse_expression_list()
        self._expect("do")
        body = self._parse_loop_body()
        self._expect("end")
        return ForGenericStmt(tok.line, tok.column, names, iter_exprs, body)

    def _parse_return(self) -> ReturnStmt:
        tok = self._expect("return")
        values: List[Expr] = []
        if self._current().kind not in _BLOCK_END and self._current().kind != ";":
            values = self._parse_expression_list()
        self._match(";")
        return ReturnStmt(tok.line, tok.column, values)

    def _parse_function(self) -> FunctionStmt:
        tok = self._expect("function")
        name_tok = self._expect("IDENT")
        target: Expr = Identifier(name_tok.line, name_tok.column, name_tok.value)
        full_name = name_tok.value
        is_method = False
        while self._is_op("."):
            self._advance()
            key_tok = self._expect("IDENT")
            target = IndexExpr(key_tok.line, key_tok.column, target, StringLiteral(key_tok.line, key_tok.column, key_tok.value))
            full_name += "." + key_tok.value
        if self._match(":"):
            key_tok = self._expect("IDENT")
            target = IndexExpr(key_tok.line, key_tok.column, target, StringLiteral(key_tok.line, key_tok.column, key_tok.value))
            full_name += ":" + key_tok.value
            is_method = True
        func = self._parse_function_body(tok, full_name)
        if is_method:
            func.params.insert(0, "self")
        return FunctionStmt(tok.line, tok.column, target, func)

    def _parse_param_list(self) -> Tuple[List[str], bool]:
        params: List[str] = []
        vararg = False
        self._expect("(")
        if self._current().kind != ")":
            while True:
                if self._current().kind == "VARARG":
                    self._advance()
                    vararg = True
                    break
                ident = self._expect("IDENT")
                params.append(ident.value)
                if not self._match(","):
                    break
        self._expect(")")
        return params, vararg

    def _parse_function_body(self, tok: Token, name: str = "?") -> FunctionExpr:
        params, vararg = self._parse_param_list()
        saved_loops, self._loop_depth = self._loop_depth, 0
        self._vararg_stack.append(vararg)
        try:
            body = self._parse_block()
        finally:
            self._vararg_stack.pop()
            self._loop_depth = saved_loops
        self._expect("end")
        return FunctionExpr(tok.line, tok.column, params, vararg, body, name)

    def _parse_local_function(self) -> LocalFunctionStmt:
        local_tok = self._expect("local")
        tok = self._expect("function")
        name_tok = self._expect("IDENT")
        func = self._parse_function_body(tok, name_tok.value)
        return LocalFunctionStmt(local_tok.line, local_tok.column, name_tok.value, func)

    def _parse_local_assignment(self) -> LocalAssignment:
        tok = self._expect("local")
        names: List[str] = [self._expect("IDENT").value]
        while self._match(","):
            names.append(self._expect("IDENT").value)
        values: List[Expr] = []
        if self._is_op("="):
            self._advance()
            values = self._parse_expression_list()
        return LocalAssignment(tok.line, tok.column, names, values)

    def _parse_assignment_or_call(self):
        expr = self._parse_suffixed()
        if self._is_op("=") or self._current().kind == ",":
            targets: List[Expr] = [expr]
            while self._match(","):
                targets.append(self._parse_suffixed())
            for target in targets:
                if not self._is_assignable(target):
                    raise self._error("syntax error")
            self._expect_op("=")
            values = self._parse_expression_list()
            return Assignment(expr.line, expr.column, targets, values)
        if not isinstance(expr, (CallExpr, MethodCallExpr)):
            raise self._error("syntax error")
        return ExprStmt(expr.line, expr.column, expr)

    def _parse_expression_list(self) -> List[Expr]:
        values: List[Expr] = [self._parse_expression()]
        while self._match(","):
            values.append(self._parse_expression())
        return values

    def _is_assignable(self, expr: Expr) -> bool:
        return isinstance(expr, (Identifier, IndexExpr))

    # ------------------------ expression parsing ------------------------- #
    def _parse_expression(self) -> Expr:
        return self._parse_or()

    def _parse_or(self) -> Expr:
        expr = self._parse_and()
        while self._current().kind == "or":
            op_tok = self._advance()
            right = self._parse_and()
            expr = BinaryOp(op_tok.line, op_tok.column, expr, "or", right)
        return expr

    def _parse_and(self) -> Expr:
        expr = self._parse_comparison()
        while self._current().kind == "and":
            op_tok = self._advance()
            right = self._parse_comparison()
            expr = BinaryOp(op_tok.line, op_tok.column, expr, "and", right)
        return expr

    def _parse_comparison(self) -> Expr:
        expr = self._parse_concat()
        while self._is_op(*_COMPARISON_OPS):
            op_tok = self._advance()
            right = self._parse_concat()
            expr = BinaryOp(op_tok.line, op_tok.column, expr, op_tok.value, right)
        return expr

    def _parse_concat(self) -> Expr:
        expr = self._parse_term()
        if self._is_op(".."):
            op_tok = self._advance()
            # right associative
            right = self._parse_concat()
            expr = BinaryOp(op_tok.line, op_tok.column, expr, "..", right)
        return expr

    def _parse_term(self) -> Expr:
        expr = self._parse_factor()
        while self._is_op("+", "-"):
            op_tok = self._advance()
            right = self._parse_factor()
            expr = BinaryOp(op_tok.line, op_tok.column, expr, op_tok.value, right)
        return expr

    def _parse_factor(self) -> Expr:
        expr = self._parse_unary()
        while self._is_op("*", "/", "%"):
            op_tok = self._advance()
            right = self._parse_unary()
            expr = BinaryOp(op_tok.line, op_tok.column, expr, op_tok.value, right)
        return expr

    def _parse_unary(self) -> Expr:
        token = self._current()
        if self._is_op("-", "#") or token.kind == "not":
            op_tok = self._advance()
            operand = self._parse_unary()
            return UnaryOp(op_tok.line, op_tok.column, op_tok.value, operand)
        return self._parse_power()

    def _parse_power(self) -> Expr:
        base = self._parse_simple()
        if self._is_op("^"):
            op_tok = self._advance()
            exponent = self._parse_unary()
            return BinaryOp(op_tok.line, op_tok.column, base, "^", exponent)
        return base

    def _parse_simple(self) -> Expr:
        token = self._current()
        if token.kind == "NUMBER":
            tok = self._advance()
            text = tok.value
            value = float(int(text, 16)) if text[:2] in ("0x", "0X") else float(text)
            return NumberLiteral(tok.line, tok.column, value)
        if token.kind == "STRING":
            tok = self._advance()
            return StringLiteral(tok.line, tok.column, tok.value)
        if token.kind == "nil":
            tok = self._advance()
            return NilLiteral(tok.line, tok.column)
        if token.kind == "true":
            tok = self._advance()
            return BooleanLiteral(tok.line, tok.column, True)
        if token.kind == "false":
            tok = self._advance()
            return BooleanLiteral(tok.line, tok.column, False)
        if token.kind == "VARARG":
            if not self._vararg_stack[-1]:
                raise self._error("cannot use '...' outside a vararg function")
            tok = self._advance()
            return VarargExpr(tok.line, tok.column)
        if token.kind == "function":
            tok = self._advance()
            return self._parse_function_body(tok)
        if token.kind == "{":
            return self._parse_table_constructor()
        return self._parse_suffixed()

    def _parse_primary(self) -> Expr:
        token = self._current()
        if token.kind == "IDENT":
            self._advance()
            return Identifier(token.line, token.column, token.value)
        if token.kind == "(":
            self._advance()
            inner = self._parse_expression()
            self._expect(")")
            return ParenExpr(token.line, token.column, inner)
        raise self._error("unexpected symbol")

    def _parse_suffixed(self) -> Expr:
        expr = self._parse_primary()
        while True:
            token = self._current()
            if self._is_op("."):
                self._advance()
                name_tok = self._expect("IDENT")
                key = StringLiteral(name_tok.line, name_tok.column, name_tok.value)
                expr = IndexExpr(name_tok.line, name_tok.column, expr, key)
                continue
            if token.kind == "[":
                bracket_tok = self._advance()
                index_expr = self._parse_expression()
                self._expect("]")
                expr = IndexExpr(bracket_tok.line, bracket_tok.column, expr, index_expr)
                continue
            if token.kind == ":":
                colon_tok = self._advance()
                name_tok = self._expect("IDENT")
                args = self._parse_call_arguments()
                expr = MethodCallExpr(colon_tok.line, colon_tok.column, expr, name_tok.value, args)
                continue
            if token.kind in {"(", "STRING", "{"}:
                args = self._parse_call_arguments()
                expr = CallExpr(token.line, token.column, expr, args)
                continue
            break
        return expr

    def _parse_call_arguments(self) -> List[Expr]:
        token = self._current()
        if token.kind == "STRING":
            self._advance()
            return [StringLiteral(token.line, token.column, token.value)]
        if token.kind == "{":
            return [self._parse_table_constructor()]
        self._expect("(")
        args: List[Expr] = []
        if self._current().kind != ")":
            args = self._parse_expression_list()
        self._expect(")")
        return args

    def _parse_table_constructor(self) -> TableConstructor:
        start = self._expect("{")
        fields: List[TableField] = []
        while self._current().kind != "}":
            if self._current().kind == "[":
                self._advance()
                key_expr = self._parse_expression()
                self._expect("]")
                self._expect_op("=")
                fields.append(TableField(self._parse_expression(), key=key_expr))
            elif (
                self._current().kind == "IDENT"
                and self._peek().kind == "OP"
                and self._peek().value == "="
            ):
                name_tok = self._advance()
                self._expect_op("=")
                key = StringLiteral(name_tok.line, name_tok.column, name_tok.value)
                fields.append(TableField(self._parse_expression(), key=key))
            else:
                fields.append(TableField(self._parse_expression()))
            if not self._match(",") and not self._match(";"):
                break
        self._expect("}")
        return TableConstructor(start.line, start.column, fields)


__all__ = ["LuaParser"]
