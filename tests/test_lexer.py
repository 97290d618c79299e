from __future__ import annotations

from lexer import Lexer, split_source


def test_blank_lines_are_dropped_but_line_numbers_kept() -> None:
    tokens = Lexer("FORWARD\n\n   \nLIGHT\n", "<test>").tokenize()
    assert [t.type for t in tokens] == ["OPCODE", "OPCODE"]
    assert [t.line for t in tokens] == [1, 4]


def test_keywords_split_off_argument_text() -> None:
    source = [
        "FUNCTION WALK(n, m)",
        "  REPEAT n",
        "    CALL STEP( 1 )",
        "  ENDREPEAT",
        "ENDFUNCTION",
    ]
    tokens = Lexer(source, "<test>").tokenize()
    assert [t.type for t in tokens] == ["FUNCTION", "REPEAT", "CALL", "ENDREPEAT", "ENDFUNCTION"]
    assert tokens[0].value == "WALK(n, m)"
    assert tokens[1].value == "n"
    assert tokens[1].column == 3
    assert tokens[2].value == "STEP( 1 )"
    assert tokens[2].statement == "CALL STEP( 1 )"
    assert tokens[3].value == ""


def test_tab_separated_keyword() -> None:
    tokens = Lexer(["REPEAT\t3"], "<test>").tokenize()
    assert tokens[0].type == "REPEAT"
    assert tokens[0].value == "3"


def test_unknown_lines_are_opcodes_verbatim() -> None:
    tokens = Lexer(["JUMP high", "forward", "CALLF()"], "<test>").tokenize()
    assert [t.type for t in tokens] == ["OPCODE", "OPCODE", "OPCODE"]
    assert [t.value for t in tokens] == ["JUMP high", "forward", "CALLF()"]


def test_split_source_accepts_strings_and_line_lists() -> None:
    assert split_source("A\r\nB") == ["A", "B"]
    assert split_source(["A", "", "B\nC"]) == ["A", "", "B", "C"]
