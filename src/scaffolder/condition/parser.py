"""Recursive-descent parser and evaluator for condition expressions.

The grammar is a small, side-effect free subset of JavaScript expressions::

    expr       := or
    or         := and ("||" and)*
    and        := equality ("&&" equality)*
    equality   := relational (("===" | "!==" | "==" | "!=") relational)*
    relational := unary (("<" | "<=" | ">" | ">=") unary)*
    unary      := ("!" | "-") unary | primary
    primary    := NUMBER | STRING | "true" | "false" | "null" | "undefined"
                | NAME ("." NAME)* | "(" expr ")"

Values follow JavaScript truthiness and equality rules. ``null`` and
``undefined`` both evaluate to ``None``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from scaffolder.condition.lexer import Token, tokenize
from scaffolder.util.errors import (
    ConditionEvaluationError,
    ConditionSyntaxError,
    UnknownIdentifierError,
)

_KEYWORDS: dict[str, Any] = {"true": True, "false": False, "null": None, "undefined": None}


@dataclass(slots=True)
class Literal:
    value: Any


@dataclass(slots=True)
class Name:
    parts: tuple[str, ...]


@dataclass(slots=True)
class Unary:
    op: str
    operand: Node


@dataclass(slots=True)
class Binary:
    op: str
    left: Node
    right: Node


Node = Literal | Name | Unary | Binary


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _match_op(self, *ops: str) -> str | None:
        token = self._peek()
        if token.kind == "op" and token.value in ops:
            self._pos += 1
            return token.value
        return None

    def parse(self) -> Node:
        node = self._or()
        token = self._peek()
        if token.kind != "eof":
            raise ConditionSyntaxError(f"unexpected token {token.value!r} at position {token.pos}")
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._match_op("||"):
            node = Binary("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._match_op("&&"):
            node = Binary("&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._relational()
        while True:
            op = self._match_op("===", "!==", "==", "!=")
            if op is None:
                return node
            node = Binary(op, node, self._relational())

    def _relational(self) -> Node:
        node = self._unary()
        while True:
            op = self._match_op("<", "<=", ">", ">=")
            if op is None:
                return node
            node = Binary(op, node, self._unary())

    def _unary(self) -> Node:
        op = self._match_op("!", "-")
        if op is not None:
            return Unary(op, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()
        if token.kind == "number":
            number = float(token.value)
            if "." in token.value or not math.isfinite(number):
                return Literal(number)
            return Literal(int(number))
        if token.kind == "string":
            return Literal(token.value)
        if token.kind == "lparen":
            node = self._or()
            closing = self._advance()
            if closing.kind != "rparen":
                raise ConditionSyntaxError(f"expected ')' at position {closing.pos}")
            return node
        if token.kind == "name":
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            parts = [token.value]
            while self._peek().kind == "dot":
                self._advance()
                member = self._advance()
                if member.kind != "name":
                    raise ConditionSyntaxError(f"expected property name at position {member.pos}")
                parts.append(member.value)
            return Name(tuple(parts))
        if token.kind == "eof":
            raise ConditionSyntaxError("unexpected end of expression")
        raise ConditionSyntaxError(f"unexpected token {token.value!r} at position {token.pos}")


def parse(source: str) -> Node:
    return _Parser(tokenize(source)).parse()


def is_truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _js_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def _to_number(value: Any) -> float:
    kind = _js_type(value)
    if kind == "number":
        return float(value)
    if kind == "boolean":
        return 1.0 if value else 0.0
    if kind == "string":
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    raise ConditionEvaluationError(f"cannot convert {kind} to number")


def strict_equals(left: Any, right: Any) -> bool:
    left_type, right_type = _js_type(left), _js_type(right)
    if left_type != right_type:
        return False
    if left_type == "object":
        return left is right
    return bool(left == right)


def loose_equals(left: Any, right: Any) -> bool:
    left_type, right_type = _js_type(left), _js_type(right)
    if left_type == right_type:
        return strict_equals(left, right)
    if "null" in (left_type, right_type) or "object" in (left_type, right_type):
        return False
    return _to_number(left) == _to_number(right)


def _compare(op: str, left: Any, right: Any) -> bool:
    left_type, right_type = _js_type(left), _js_type(right)
    for kind in (left_type, right_type):
        if kind in ("null", "object"):
            raise ConditionEvaluationError(f"cannot compare {left_type} {op} {right_type}")
    if left_type == "string" and right_type == "string":
        a: Any = left
        b: Any = right
    else:
        a, b = _to_number(left), _to_number(right)
    if op == "<":
        return bool(a < b)
    if op == "<=":
        return bool(a <= b)
    if op == ">":
        return bool(a > b)
    return bool(a >= b)


def _lookup(parts: tuple[str, ...], context: Mapping[str, Any]) -> Any:
    root = parts[0]
    if root not in context:
        raise UnknownIdentifierError(root)
    current = context[root]
    for index, part in enumerate(parts[1:], start=1):
        if current is None:
            owner = ".".join(parts[:index])
            raise ConditionEvaluationError(f"cannot read property '{part}' of null ({owner})")
        if isinstance(current, Mapping):
            current = current.get(part)
        elif part == "length" and isinstance(current, (str, list)):
            current = len(current)
        else:
            current = None
    return current


def evaluate_node(node: Node, context: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Name):
        return _lookup(node.parts, context)
    if isinstance(node, Unary):
        operand = evaluate_node(node.operand, context)
        if node.op == "!":
            return not is_truthy(operand)
        return -_to_number(operand)
    if node.op == "&&":
        left = evaluate_node(node.left, context)
        return evaluate_node(node.right, context) if is_truthy(left) else left
    if node.op == "||":
        left = evaluate_node(node.left, context)
        return left if is_truthy(left) else evaluate_node(node.right, context)
    left = evaluate_node(node.left, context)
    right = evaluate_node(node.right, context)
    if node.op == "===":
        return strict_equals(left, right)
    if node.op == "!==":
        return not strict_equals(left, right)
    if node.op == "==":
        return loose_equals(left, right)
    if node.op == "!=":
        return not loose_equals(left, right)
    return _compare(node.op, left, right)


def evaluate_expression(source: str, context: Mapping[str, Any]) -> Any:
    try:
        return evaluate_node(parse(source), context)
    except RecursionError as exc:
        raise ConditionSyntaxError("expression is nested too deeply") from exc
    except OverflowError as exc:
        raise ConditionEvaluationError(f"numeric overflow: {exc}") from exc
