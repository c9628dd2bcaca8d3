from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .errors import LuaParseError

KEYWORDS = {
    "and",
    "break",
    "do",
    "else",
    "elseif",
    "end",
    "false",
    "for",
    "function",
    "if",
    "in",
    "local",
    "nil",
    "not",
    "or",
    "repeat",
    "return",
    "then",
    "true",
    "until",
    "while",
}

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "\n": "\n",
}


@dataclass
class Token:
    kind: str
    value: str
    line: int
    column: int

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Token({self.kind!r}, {self.value!r}, {self.line}:{self.column})"


class LuaLexer:
    def __init__(self, source: str, chunkname: str = "?"):
        self.source = source
        self.chunkname = chunkname
        self.length = len(source)
        self.pos = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        if self.source.startswith("#"):
            # skip a shebang line
            while self._peek() not in {"\n", "\0"}:
                self._advance()
        while True:
            token = self._next_token()
            if token is None:
                break
            tokens.append(token)
        tokens.append(Token("EOF", "", self.line, self.column))
        return tokens

    # ------------------------------- internals ---------------------------- #
    def _error(self, message: str, line: int) -> LuaParseError:
        return LuaParseError(f"{self.chunkname}:{line}: {message}", line)

    def _peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        if idx >= self.length:
            return "\0"
        return self.source[idx]

    def _advance(self, count: int = 1) -> str:
        ch = ""
        for _ in range(count):
            if self.pos >= self.length:
                return "\0"
            ch = self.source[self.pos]
            self.pos += 1
            if ch == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return ch

    def _next_token(self) -> Optional[Token]:
        while True:
            ch = self._peek()
            if ch in " \t\r\n":
                self._advance()
                continue
            if ch == "-" and self._peek(1) == "-":
                self._advance(2)
                level = self._long_bracket_level()
                if level is not None:
                    self._long_bracket(level, self.line)
                    continue
                while self._peek() not in {"\n", "\0"}:
                    self._advance()
                continue
            break

        start_line, start_col = self.line, self.column
        ch = self._peek()
        if ch == "\0":
            return None

        if ch == "." and self._peek(1) == "." and self._peek(2) == ".":
            self._advance(3)
            return Token("VARARG", "...", start_line, start_col)
        if ch.isdigit() or (ch == "." and self._peek(1).isdigit()):
            return self._number(start_line, start_col)
        if ch == '"' or ch == "'":
            return self._string(start_line, start_col)
        if ch == "[":
            level = self._long_bracket_level()
            if level is not None:
                value = self._long_bracket(level, start_line)
                return Token("STRING", value, start_line, start_col)
        if ch.isalpha() or ch == "_":
            return self._identifier(start_line, start_col)

        # Operators / punctuation
        two_char = ch + self._peek(1)
        if two_char in {"==", "~=", "<=", ">=", ".."}:
            self._advance(2)
            return Token("OP", two_char, start_line, start_col)
        if ch in "+-*/%^=#<>.":
            self._advance()
            return Token("OP", ch, start_line, start_col)
        if ch in "(){}[],;:":
            self._advance()
            return Token(ch, ch, start_line, start_col)

        raise self._error(f"unexpected symbol near '{ch}'", start_line)

    def _number(self, line: int, col: int) -> Token:
        start = self.pos
        if self._peek() == "0" and self._peek(1) in "xX":
            self._advance(2)
            while self._peek() in "0123456789abcdefABCDEF":
                self._advance()
            text = self.source[start:self.pos]
            if len(text) == 2:
                raise self._error(f"malformed number near '{text}'", line)
            return Token("NUMBER", text, line, col)
        while self._peek().isdigit() or self._peek() == ".":
            self._advance()
        if self._peek() in "eE":
            self._advance()
            if self._peek() in "+-":
                self._advance()
            while self._peek().isdigit():
                self._advance()
        text = self.source[start:self.pos]
        try:
            float(text)
        except ValueError:
            raise self._error(f"malformed number near '{text}'", line) from None
        return Token("NUMBER", text, line, col)

    def _string(self, line: int, col: int) -> Token:
        quote = self._advance()
        chars: List[str] = []
        while True:
            ch = self._peek()
            if ch == "\0" or ch == "\n":
                raise self._error("unfinished string", line)
            if ch == quote:
                break
            if ch == "\\":
                self._advance()
                esc = self._peek()
                if esc.isdigit():
                    digits = ""
                    while len(digits) < 3 and self._peek().isdigit():
                        digits += self._advance()
                    code = int(digits)
                    if code > 255:
                        raise self._error("escape sequence too large", line)
                    chars.append(chr(code))
                    continue
                if esc not in _ESCAPES:
                    raise self._error("invalid escape sequence", line)
                chars.append(_ESCAPES[esc])
                self._advance()
                continue
            chars.append(self._advance())
        self._advance()  # closing quote
        return Token("STRING", "".join(chars), line, col)

    def _long_bracket_level(self) -> Optional[int]:
        if self._peek() != "[":
            return None
        level = 0
        while self._peek(level + 1) == "=":
            level += 1
        if self._peek(level + 1) != "[":
            return None
        return level

    def _long_bracket(self, level: int, line: int) -> str:
        self._advance(level + 2)
        if self._peek() == "\n":
            self._advance()
        closing = "]" + "=" * level + "]"
        end = self.source.find(closing, self.pos)
        if end < 0:
            raise self._error("unfinished long string", line)
        value = self.source[self.pos:end]
        self._advance(end - self.pos + len(closing))
        return value

    def _identifier(self, line: int, col: int) -> Token:
        start = self.pos
        while True:
            ch = self._peek()
            if not (ch.isalnum() or ch == "_"):
                break
            self._advance()
        value = self.source[start:self.pos]
        kind = value if value in KEYWORDS else "IDENT"
        return Token(kind, value, line, col)


__all__ = ["LuaLexer", "Token", "KEYWORDS"]
