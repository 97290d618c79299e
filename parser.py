from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from lexer import Token


INT_LITERAL = re.compile(r"[+-]?[0-9]+")


class Opcode(Enum):
    FORWARD = "FORWARD"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    LIGHT = "LIGHT"
    NOOP = "NOOP"


OPCODES: Dict[str, Opcode] = {op.value: op for op in Opcode if op is not Opcode.NOOP}


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


class Instruction(Node):
    pass


class Expression(Node):
    pass


@dataclass
class Literal(Expression):
    value: int


@dataclass
class Identifier(Expression):
    name: str


@dataclass
class Simple(Instruction):
    opcode: Opcode
    text: str


@dataclass
class Repeat(Instruction):
    count: Expression
    body: List[Instruction]


@dataclass
class Call(Instruction):
    name: str
    args: List[Expression]


@dataclass
class FuncDef(Node):
    name: str
    params: List[str]
    body: List[Instruction]


@dataclass
class Program(Node):
    functions: Dict[str, FuncDef]
    statements: List[Instruction]


class Parser:
    """Two-pass parser over classified program lines.

    The first pass harvests every ``FUNCTION`` block into the function table,
    the second builds the top-level instruction list. Blocks are delimited by
    depth-counted scans that return the index of the matching closer, or the
    end of the enclosing range when the closer is missing.
    """

    def __init__(self, tokens: List[Token], filename: str) -> None:
        self.tokens = tokens
        self.filename = filename

    def parse(self) -> Program:
        functions = self._harvest_functions()
        statements = self._parse_range(0, len(self.tokens))
        location = SourceLocation(file=self.filename, line=1, column=1, statement="")
        return Program(location=location, functions=functions, statements=statements)

    def _harvest_functions(self) -> Dict[str, FuncDef]:
        functions: Dict[str, FuncDef] = {}
        tokens = self.tokens
        stop = len(tokens)
        i = 0
        while i < stop:
            token = tokens[i]
            if token.type != "FUNCTION":
                i += 1
                continue
            end = self._find_block_end(i, stop, "FUNCTION", "ENDFUNCTION")
            name, params = self._split_signature(token.value)
            # Redefinition replaces the earlier entry.
            functions[name] = FuncDef(
                location=self._location_from_token(token),
                name=name,
                params=params,
                body=self._parse_range(i + 1, end),
            )
            i = end + 1
        return functions

    def _parse_range(self, start: int, stop: int) -> List[Instruction]:
        statements: List[Instruction] = []
        i = start
        while i < stop:
            node, i = self._parse_instruction(i, stop)
            if node is not None:
                statements.append(node)
        return statements

    def _parse_instruction(self, index: int, stop: int) -> Tuple[Optional[Instruction], int]:
        token = self.tokens[index]
        if token.type == "FUNCTION":
            # Harvested already; nested definitions are skipped whole.
            end = self._find_block_end(index, stop, "FUNCTION", "ENDFUNCTION")
            return None, end + 1
        if token.type == "REPEAT":
            return self._parse_repeat(index, stop)
        if token.type == "CALL":
            return self._parse_call(token), index + 1
        opcode = OPCODES.get(token.statement, Opcode.NOOP)
        return Simple(location=self._location_from_token(token), opcode=opcode, text=token.statement), index + 1

    def _parse_repeat(self, index: int, stop: int) -> Tuple[Repeat, int]:
        token = self.tokens[index]
        end = self._find_block_end(index, stop, "REPEAT", "ENDREPEAT")
        location = self._location_from_token(token)
        node = Repeat(
            location=location,
            count=self._parse_expression(token.value, location),
            body=self._parse_range(index + 1, end),
        )
        return node, end + 1

    def _parse_call(self, token: Token) -> Call:
        location = self._location_from_token(token)
        name, args = self._split_signature(token.value)
        return Call(
            location=location,
            name=name,
            args=[self._parse_expression(arg, location) for arg in args],
        )

    def _find_block_end(self, start: int, stop: int, opener: str, closer: str) -> int:
        depth = 0
        tokens = self.tokens
        for i in range(start, stop):
            kind = tokens[i].type
            if kind == opener:
                depth += 1
            elif kind == closer:
                depth -= 1
                if depth == 0:
                    return i
        # Unterminated: the block runs to the end of the range.
        return stop

    def _split_signature(self, text: str) -> Tuple[str, List[str]]:
        name, paren, rest = text.partition("(")
        if not paren:
            return name.strip(), []
        inner = rest.partition(")")[0]
        items = [item.strip() for item in inner.split(",")]
        return name.strip(), [item for item in items if item]

    def _parse_expression(self, text: str, location: SourceLocation) -> Expression:
        if INT_LITERAL.fullmatch(text):
            return Literal(location=location, value=int(text))
        return Identifier(location=location, name=text)

    def _location_from_token(self, token: Token) -> SourceLocation:
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=token.statement)
