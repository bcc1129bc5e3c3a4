from typing import List, Optional
from .tokenizer import Token, TokenType
from ..domain.errors import MarkerSyntaxError

class Node:
    def to_string(self) -> str:
        raise NotImplementedError

class Value(Node):
    """a marker variable or a quoted literal."""
    def __init__(self, token: Token):
        self.token = token

    @property
    def is_variable(self) -> bool:
        return self.token.type == TokenType.IDENTIFIER

    @property
    def text(self) -> str:
        """the variable name, or the literal without its quotes."""
        if self.is_variable:
            return self.token.value
        return self.token.value[1:-1]

    def to_string(self) -> str:
        return self.token.value

    def __repr__(self):
        return f"Value({self.token.value})"

class Comparison(Node):
    def __init__(self, lhs: Value, op: str, rhs: Value):
        self.lhs = lhs
        self.op = op
        self.rhs = rhs

    def to_string(self) -> str:
        return f"{self.lhs.to_string()} {self.op} {self.rhs.to_string()}"

    def __repr__(self):
        return f"Comparison({self.to_string()})"

class BoolOp(Node):
    def __init__(self, op: str, children: List[Node]):
        self.op = op
        self.children = children

    def to_string(self) -> str:
        return f" {self.op} ".join(f"({c.to_string()})" for c in self.children)

    def __repr__(self):
        return f"BoolOp({self.op}, children={len(self.children)})"

class MarkerParser:
    """
    recursive descent parser for PEP 508 markers.

        marker_or  := marker_and ('or' marker_and)*
        marker_and := marker_atom ('and' marker_atom)*
        marker_atom := '(' marker_or ')' | value op value
    """

    def __init__(self, tokens: List[Token], source: str = ""):
        # whitespace carries no meaning past tokenization
        self.tokens = [t for t in tokens if t.type != TokenType.WHITESPACE]
        self.pos = 0
        self.source = source

    def parse(self) -> Node:
        node = self._parse_or()
        leftover = self._peek()
        if leftover is not None:
            self._fail(f"unexpected '{leftover.value}' at position {leftover.start}")
        return node

    def _peek(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _consume(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            t = self.tokens[self.pos]
            self.pos += 1
            return t
        return None

    def _is_keyword(self, token: Optional[Token], keyword: str) -> bool:
        return token is not None and token.type == TokenType.IDENTIFIER and token.value == keyword

    def _fail(self, reason: str):
        raise MarkerSyntaxError(self.source, reason)

    def _parse_or(self) -> Node:
        children = [self._parse_and()]
        while self._is_keyword(self._peek(), "or"):
            self._consume()
            children.append(self._parse_and())
        return children[0] if len(children) == 1 else BoolOp("or", children)

    def _parse_and(self) -> Node:
        children = [self._parse_atom()]
        while self._is_keyword(self._peek(), "and"):
            self._consume()
            children.append(self._parse_atom())
        return children[0] if len(children) == 1 else BoolOp("and", children)

    def _parse_atom(self) -> Node:
        token = self._peek()
        if token is None:
            self._fail("unexpected end of marker")

        if token.type == TokenType.LPAREN:
            self._consume()
            node = self._parse_or()
            closing = self._consume()
            if closing is None or closing.type != TokenType.RPAREN:
                self._fail("expected ')'")
            return node

        lhs = self._parse_value()
        op = self._parse_op()
        rhs = self._parse_value()
        return Comparison(lhs, op, rhs)

    def _parse_value(self) -> Value:
        token = self._consume()
        if token is None:
            self._fail("expected a variable or a quoted string")
        if token.type == TokenType.STRING:
            return Value(token)
        if token.type == TokenType.IDENTIFIER and token.value not in ("and", "or", "in", "not"):
            return Value(token)
        self._fail(f"expected a variable or a quoted string, got '{token.value}'")

    def _parse_op(self) -> str:
        token = self._consume()
        if token is None:
            self._fail("expected a comparison operator")
        if token.type == TokenType.OPERATOR:
            return token.value
        if self._is_keyword(token, "in"):
            return "in"
        if self._is_keyword(token, "not") and self._is_keyword(self._peek(), "in"):
            self._consume()
            return "not in"
        self._fail(f"expected a comparison operator, got '{token.value}'")
