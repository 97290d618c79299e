from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from lexer import LightBotError, Lexer
from parser import (
    Call,
    Expression,
    FuncDef,
    Identifier,
    Instruction,
    Literal,
    Opcode,
    Parser,
    Program,
    Repeat,
    Simple,
    SourceLocation,
)
from world import Cell, Direction, Grid, PASSABLE, Robot, render_rows


class LightBotRuntimeError(LightBotError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.step_index: Optional[int] = None
        # Call stack as it stood when the error was raised.
        self.call_stack: Optional[List[Frame]] = None


class UnresolvedReference(LightBotRuntimeError):
    def __init__(self, reference: str, *, location: Optional[SourceLocation] = None) -> None:
        super().__init__(f"Unresolved reference '{reference}'", location=location, rule="EVAL")
        self.reference = reference


@dataclass
class Environment:
    parent: Optional["Environment"] = None
    values: Dict[str, int] = field(default_factory=dict)

    def _find_env(self, name: str) -> Optional["Environment"]:
        env: Optional[Environment] = self
        while env is not None:
            if name in env.values:
                return env
            env = env.parent
        return None

    def set(self, name: str, value: int) -> None:
        self.values[name] = value

    def get_optional(self, name: str) -> Optional[int]:
        env = self._find_env(name)
        if env is not None:
            return env.values[name]
        return None


@dataclass
class StepEntry:
    step_index: int
    rule: str
    location: Optional[SourceLocation]
    # Robot (x, y, direction) before the step ran.
    robot: Tuple[int, int, Direction]


@dataclass
class Frame:
    name: str
    env: Environment
    call_location: Optional[SourceLocation]
    last_entry: Optional[StepEntry] = None


class StepLog:
    """Counts executed instructions.

    Every frame remembers its own latest step, so the log itself only holds
    the most recent entry. The full trace is kept in verbose mode only.
    """

    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StepEntry] = []
        self.step_count = 0
        self.last_entry: Optional[StepEntry] = None

    def record(self, frame: Optional[Frame], rule: str, location: Optional[SourceLocation], robot: Robot) -> StepEntry:
        entry = StepEntry(
            step_index=self.step_count,
            rule=rule,
            location=location,
            robot=(robot.x, robot.y, robot.direction),
        )
        self.step_count += 1
        self.last_entry = entry
        if frame is not None:
            frame.last_entry = entry
        if self.verbose:
            self.entries.append(entry)
        return entry


class Interpreter:
    def __init__(self, grid: Grid, robot: Robot, *, verbose: bool = False) -> None:
        self.grid = grid
        self.robot = robot
        self.verbose = verbose
        self.functions: Dict[str, FuncDef] = {}
        self.call_stack: List[Frame] = []
        self.steps = StepLog(verbose=verbose)
        self._opcode_handlers: Dict[Opcode, Callable[[], None]] = {
            Opcode.FORWARD: self._forward,
            Opcode.LEFT: self.robot.turn_left,
            Opcode.RIGHT: self.robot.turn_right,
            Opcode.LIGHT: self._light,
            Opcode.NOOP: lambda: None,
        }

    def parse(self, source: Union[str, Sequence[str]], filename: str = "<program>") -> Program:
        tokens = Lexer(source, filename).tokenize()
        return Parser(tokens, filename).parse()

    def run(self, source: Union[str, Sequence[str]], filename: str = "<program>") -> None:
        program = self.parse(source, filename)
        # Nothing carries over from a previous run.
        self.functions = program.functions
        self.call_stack = []
        self.steps = StepLog(verbose=self.verbose)

        global_env = Environment()
        self.call_stack.append(Frame(name="<top-level>", env=global_env, call_location=None))
        try:
            self._execute_block(program.statements, global_env)
        except LightBotRuntimeError as error:
            if error.call_stack is None:
                error.call_stack = list(self.call_stack)
            if self.steps.last_entry is not None:
                error.step_index = self.steps.last_entry.step_index
            raise
        finally:
            self.call_stack.pop()

    def evaluate(self, expression: Expression, env: Environment) -> int:
        if isinstance(expression, Literal):
            return expression.value
        if isinstance(expression, Identifier):
            value = env.get_optional(expression.name)
            if value is None:
                raise UnresolvedReference(expression.name, location=expression.location)
            return value
        raise LightBotRuntimeError(
            f"Unsupported expression {expression.__class__.__name__}",
            location=expression.location,
            rule="EVAL",
        )

    def _execute_block(self, statements: List[Instruction], env: Environment) -> None:
        execute_stmt = self._execute_statement
        for statement in statements:
            execute_stmt(statement, env)

    def _execute_statement(self, statement: Instruction, env: Environment) -> None:
        if isinstance(statement, Simple):
            self._log_step(statement.opcode.value, statement.location)
            self._opcode_handlers[statement.opcode]()
            return
        if isinstance(statement, Repeat):
            self._log_step("REPEAT", statement.location)
            # The count is fixed on entry.
            count = self.evaluate(statement.count, env)
            for _ in range(count):
                self._execute_block(statement.body, env)
            return
        if isinstance(statement, Call):
            self._log_step("CALL", statement.location)
            self._execute_call(statement, env)
            return
        raise LightBotRuntimeError(
            f"Unsupported instruction {statement.__class__.__name__}",
            location=statement.location,
            rule="internal",
        )

    def _execute_call(self, statement: Call, env: Environment) -> None:
        function = self.functions.get(statement.name)
        if function is None:
            # Calls to undefined functions do nothing.
            return
        # Arguments see the caller's frames only.
        args = [self.evaluate(arg, env) for arg in statement.args]
        call_env = Environment(parent=env)
        for name, value in zip(function.params, args):
            call_env.set(name, value)
        self.call_stack.append(Frame(name=function.name, env=call_env, call_location=statement.location))
        try:
            self._execute_block(function.body, call_env)
        except LightBotRuntimeError as error:
            if error.call_stack is None:
                error.call_stack = list(self.call_stack)
            raise
        finally:
            self.call_stack.pop()

    def _forward(self) -> None:
        x, y = self.grid.wrap(*self.robot.ahead())
        if self.grid.cell_at(x, y) in PASSABLE:
            self.robot.x = x
            self.robot.y = y

    def _light(self) -> None:
        x, y = self.robot.position
        cell = self.grid.cell_at(x, y)
        if cell == Cell.EMPTY:
            self.grid.set_cell(x, y, Cell.FLOOR_LIT)
        elif cell == Cell.LAMP_OFF:
            self.grid.set_cell(x, y, Cell.LAMP_ON)

    def _log_step(self, rule: str, location: Optional[SourceLocation]) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        self.steps.record(frame, rule, location, self.robot)


@dataclass
class TracebackFrame:
    name: str
    bindings: Dict[str, int]
    location: Optional[SourceLocation]

    @property
    def signature(self) -> str:
        if not self.bindings:
            return self.name
        args = ", ".join(f"{k}={v}" for k, v in self.bindings.items())
        return f"{self.name}({args})"


class TracebackFormatter:
    """Renders a failed run: the calls that were active, then the robot and map."""

    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self, error: LightBotRuntimeError) -> List[TracebackFrame]:
        stack = error.call_stack if error.call_stack is not None else self.interpreter.call_stack
        frames: List[TracebackFrame] = []
        for frame in stack:
            location = frame.last_entry.location if frame.last_entry else frame.call_location
            frames.append(TracebackFrame(name=frame.name, bindings=dict(frame.env.values), location=location))
        return frames

    def format_text(self, error: LightBotRuntimeError, verbose: bool) -> str:
        lines = ["LightBot traceback (innermost call last):"]
        for frame in self.build_frames(error):
            location = frame.location
            if location is None:
                lines.append(f"  <unknown location> in {frame.signature}")
                continue
            lines.append(f"  \"{location.file}\", line {location.line}, in {frame.signature}")
            if location.statement:
                lines.append(f"    {location.statement}")
        robot = self.interpreter.robot
        steps = self.interpreter.steps.step_count
        lines.append(f"Robot at ({robot.x}, {robot.y}) facing {robot.direction.name} after {steps} steps")
        if verbose:
            lines.append("Map:")
            lines.extend(f"  {row}" for row in render_rows(self.interpreter.grid, robot))
        lines.append(f"{error.__class__.__name__}: {error.message}")
        return "\n".join(lines)

    def to_json(self, error: LightBotRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for frame in self.build_frames(error):
            entry: Dict[str, Any] = {"name": frame.name, "bindings": frame.bindings}
            if frame.location:
                entry["file"] = frame.location.file
                entry["line"] = frame.location.line
                entry["column"] = frame.location.column
                entry["statement"] = frame.location.statement
            frames_json.append(entry)
        robot = self.interpreter.robot
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "rule": error.rule,
                "step": error.step_index,
            },
            "robot": {"x": robot.x, "y": robot.y, "direction": robot.direction.name},
            "frames": frames_json,
            "map": self.interpreter.grid.rows(),
        }
        return json.dumps(data, indent=2)
