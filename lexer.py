from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence, Union


class LightBotError(Exception):
    """Base class for LightBot errors."""


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int
    statement: str


# Block keywords take the rest of the line as their argument text.
KEYWORDS = {
    "REPEAT",
    "ENDREPEAT",
    "FUNCTION",
    "ENDFUNCTION",
    "CALL",
}


def split_source(source: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(source, str):
        return source.splitlines()
    lines: List[str] = []
    for item in source:
        lines.extend(item.splitlines() or [""])
    return lines


class Lexer:
    def __init__(self, source: Union[str, Sequence[str]], filename: str) -> None:
        self.lines = split_source(source)
        self.filename = filename

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        for index, raw in enumerate(self.lines):
            statement = raw.strip()
            if not statement:
                continue
            column = len(raw) - len(raw.lstrip()) + 1
            tokens_append(self._classify(statement, index + 1, column))
        return tokens

    def _classify(self, statement: str, line: int, column: int) -> Token:
        parts = statement.split(None, 1)
        head = parts[0]
        if head in KEYWORDS:
            rest = parts[1].strip() if len(parts) > 1 else ""
            return Token(head, rest, line, column, statement)
        # Anything else is carried verbatim; unknown opcodes are no-ops.
        return Token("OPCODE", statement, line, column, statement)
