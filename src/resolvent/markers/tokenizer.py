from enum import Enum, auto
from typing import List, NamedTuple
import re

class TokenType(Enum):
    IDENTIFIER = auto()
    STRING = auto()
    OPERATOR = auto()
    LPAREN = auto()
    RPAREN = auto()
    WHITESPACE = auto()
    UNKNOWN = auto()

class Token(NamedTuple):
    type: TokenType
    value: str
    start: int
    end: int

class MarkerTokenizer:
    """
    a lossless tokenizer for PEP 508 environment markers.
    preserves whitespace so the source can be reconstructed exactly.
    """

    # order matters: `===` before `==`, `<=` before `<`
    PATTERNS = [
        (TokenType.STRING, r"'[^']*'|\"[^\"]*\""),
        (TokenType.OPERATOR, r"===|==|!=|~=|<=|>=|<|>"),
        (TokenType.IDENTIFIER, r"[A-Za-z_][A-Za-z0-9_.]*"),
        (TokenType.LPAREN, r"\("),
        (TokenType.RPAREN, r"\)"),
        (TokenType.WHITESPACE, r"\s+"),
    ]

    _COMPILED = [(token_type, re.compile(pattern)) for token_type, pattern in PATTERNS]

    def tokenize(self, marker: str) -> List[Token]:
        tokens = []
        pos = 0
        length = len(marker)

        while pos < length:
            match = None
            for token_type, regex in self._COMPILED:
                match = regex.match(marker, pos)
                if match:
                    value = match.group(0)
                    tokens.append(Token(token_type, value, pos, pos + len(value)))
                    pos += len(value)
                    break

            if not match:
                # unknown character
                tokens.append(Token(TokenType.UNKNOWN, marker[pos], pos, pos + 1))
                pos += 1

        return tokens

    def reconstruct(self, tokens: List[Token]) -> str:
        return "".join(t.value for t in tokens)
