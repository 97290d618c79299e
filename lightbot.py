"""LightBot engine facade and command-line entry point."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional, Sequence, Tuple, Union

from interpreter import Interpreter, LightBotRuntimeError, TracebackFormatter
from world import Cell, ConstructionError, Direction, parse_map, render_rows


class LightBot:
    def __init__(self, map_source: Union[str, Sequence[str]], *, verbose: bool = False) -> None:
        self.grid, self.robot = parse_map(map_source)
        self.start_position = self.robot.position
        self.start_direction = self.robot.direction
        self.interpreter = Interpreter(self.grid, self.robot, verbose=verbose)

    def reset(self) -> None:
        self.grid.reset()
        self.robot.x, self.robot.y = self.start_position
        self.robot.direction = self.start_direction

    def run(self, program: Union[str, Sequence[str]], *, filename: str = "<program>") -> None:
        self.reset()
        self.interpreter.run(program, filename)

    def robot_position(self) -> Tuple[int, int]:
        return self.robot.position

    def robot_direction(self) -> Direction:
        return self.robot.direction

    def map_rows(self) -> List[str]:
        return self.grid.rows()

    def render(self) -> List[str]:
        return render_rows(self.grid, self.robot)

    def lamps_remaining(self) -> int:
        return self.grid.count(Cell.LAMP_OFF)

    def is_solved(self) -> bool:
        return self.lamps_remaining() == 0 and self.grid.count(Cell.LAMP_ON) > 0


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="LightBot program runner")
    parser.add_argument("map", help="Map file path")
    parser.add_argument("program", help="Program file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Include the map in tracebacks and keep the full step trace")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    try:
        map_text = _read_text(args.map)
    except OSError as exc:
        print(f"Failed to read {args.map}: {exc}", file=sys.stderr)
        return 1

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            source_text = _read_text(filename)
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    try:
        bot = LightBot(map_text, verbose=args.verbose)
    except ConstructionError as error:
        print(f"ConstructionError: {error}", file=sys.stderr)
        return 1

    try:
        bot.run(source_text, filename=filename)
    except LightBotRuntimeError as error:
        formatter = TracebackFormatter(bot.interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1

    for row in bot.render():
        print(row)
    x, y = bot.robot_position()
    print(f"robot: ({x}, {y}) facing {bot.robot_direction().name}")
    print(f"lamps remaining: {bot.lamps_remaining()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
