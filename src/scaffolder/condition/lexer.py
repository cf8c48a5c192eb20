from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from scaffolder.util.errors import ConditionSyntaxError

TokenKind = Literal["number", "string", "name", "op", "lparen", "rparen", "dot", "eof"]

# Longest operators first so "===" is not read as "==" followed by "=".
OPERATORS = ("===", "!==", "==", "!=", "<=", ">=", "&&", "||", "<", ">", "!", "-")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


@dataclass(slots=True)
class Token:
    kind: TokenKind
    value: str
    pos: int


def _is_name_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$"


def _is_name_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def _read_string(source: str, start: int) -> tuple[str, int]:
    quote = source[start]
    pos = start + 1
    chars: list[str] = []
    while pos < len(source):
        ch = source[pos]
        if ch == quote:
            return "".join(chars), pos + 1
        if ch == "\\":
            pos += 1
            if pos >= len(source):
                break
            chars.append(_ESCAPES.get(source[pos], source[pos]))
        else:
            chars.append(ch)
        pos += 1
    raise ConditionSyntaxError(f"unterminated string starting at position {start}")


def _read_number(source: str, start: int) -> tuple[str, int]:
    pos = start
    seen_dot = False
    while pos < len(source):
        ch = source[pos]
        if ch.isdigit():
            pos += 1
        elif ch == "." and not seen_dot and pos + 1 < len(source) and source[pos + 1].isdigit():
            seen_dot = True
            pos += 1
        else:
            break
    return source[start:pos], pos


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        ch = source[pos]
        if ch.isspace():
            pos += 1
            continue
        if ch in "'\"":
            value, end = _read_string(source, pos)
            tokens.append(Token("string", value, pos))
            pos = end
            continue
        if ch.isdigit():
            value, end = _read_number(source, pos)
            tokens.append(Token("number", value, pos))
            pos = end
            continue
        if _is_name_start(ch):
            end = pos + 1
            while end < len(source) and _is_name_char(source[end]):
                end += 1
            tokens.append(Token("name", source[pos:end], pos))
            pos = end
            continue
        if ch == "(":
            tokens.append(Token("lparen", ch, pos))
            pos += 1
            continue
        if ch == ")":
            tokens.append(Token("rparen", ch, pos))
            pos += 1
            continue
        if ch == ".":
            tokens.append(Token("dot", ch, pos))
            pos += 1
            continue
        for op in OPERATORS:
            if source.startswith(op, pos):
                tokens.append(Token("op", op, pos))
                pos += len(op)
                break
        else:
            raise ConditionSyntaxError(f"unexpected character {ch!r} at position {pos}")
    tokens.append(Token("eof", "", len(source)))
    return tokens
