"""Executes requested tasks and their dependencies for a single run."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, TextIO

from depflow.context import Cancelled, Context
from depflow.output import BufferedOutput, Output
from depflow.params import BoolParam, BoolValue, ParameterDefinition, Value
from depflow.runner import Runner

if TYPE_CHECKING:
    from depflow.taskflow import RegisteredTask, Task

logger = logging.getLogger(__name__)

CODE_PASS = 0
CODE_FAILURE = 1
CODE_INVALID_ARGS = 2

_HELP_ARGS = frozenset({"-h", "--help", "help"})
_COLUMN_PADDING = 4


class TaskFailedError(Exception):
    def __init__(self, task: str) -> None:
        super().__init__(f"task failed: {task}")
        self.task = task


class InvalidArgumentError(Exception):
    """The command line could not be interpreted. The message is shown to the user."""


class FlowRunner:
    """State of one invocation. Build a new instance for every run."""

    def __init__(
        self,
        *,
        output: TextIO,
        params: Mapping[str, ParameterDefinition],
        tasks: Mapping[str, Task],
        verbose: BoolParam | None,
        default_task: RegisteredTask | None,
    ) -> None:
        self.output = output
        self.params = params
        self.tasks = tasks
        self.verbose = verbose
        self.default_task = default_task
        self.param_values: dict[str, Value] = {}

    def run(self, ctx: Context, args: Sequence[str]) -> int:
        """Run the tasks named in ``args`` and all their dependencies.

        Each task is executed at most once.
        """
        try:
            tasks, usage_requested = self._parse_args(args)
        except InvalidArgumentError as exc:
            logger.info("Invalid arguments", extra={"error": str(exc)})
            self._println(str(exc))
            return CODE_INVALID_ARGS

        if usage_requested:
            self.print_usage()
            return CODE_PASS

        if not tasks and self.default_task is not None:
            tasks.append(self.default_task.name)

        if not tasks:
            self._println("no task provided")
            self.print_usage()
            return CODE_INVALID_ARGS

        return self._run_tasks(ctx, tasks)

    # ------------------------------------------------------------------
    # Arguments
    # ------------------------------------------------------------------

    def _parse_args(self, args: Sequence[str]) -> tuple[list[str], bool]:
        values_by_flag: dict[str, Value] = {}
        for definition in self.params.values():
            value = definition.new_value()
            self.param_values[definition.info.name] = value
            values_by_flag[definition.info.long_flag] = value
            if definition.info.short_flag:
                values_by_flag[definition.info.short_flag] = value

        tasks: list[str] = []
        usage_requested = False
        # Flag waiting for the next argument as its value.
        pending: tuple[str, Value] | None = None

        for arg in args:
            if pending is not None:
                flag, value = pending
                pending = None
                _set_flag(flag, value, arg)
                continue

            if arg in self.tasks:
                tasks.append(arg)
                continue

            flag, sep, text = arg.partition("=")
            value = values_by_flag.get(flag)
            if value is not None:
                if sep:
                    _set_flag(flag, value, text)
                elif value.is_bool():
                    _set_flag(flag, value, "")
                else:
                    pending = (flag, value)
                continue

            # Only reached when no task or flag overrides these.
            if arg in _HELP_ARGS:
                usage_requested = True
                continue

            raise InvalidArgumentError(f"unknown argument: {arg}")

        if pending is not None:
            raise InvalidArgumentError(f"missing value for {pending[0]}")

        return tasks, usage_requested

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run_tasks(self, ctx: Context, tasks: Sequence[str]) -> int:
        started = time.perf_counter()
        executed: set[str] = set()
        for name in tasks:
            try:
                self._run(ctx, name, executed)
            except (TaskFailedError, Cancelled) as exc:
                logger.warning("Run failed", extra={"error": str(exc)})
                self._println(f"{exc}\t{time.perf_counter() - started:.3f}s")
                return CODE_FAILURE
        self._println(f"ok\t{time.perf_counter() - started:.3f}s")
        return CODE_PASS

    def _run(self, ctx: Context, name: str, executed: set[str]) -> None:
        """Run ``name`` after its dependencies, depth first and in declaration order."""
        if name in executed:
            return
        root = self.tasks[name]
        # Each entry is a task and the dependencies it has yet to visit.
        stack: list[tuple[Task, Iterator[RegisteredTask]]] = [(root, iter(root.dependencies))]
        while stack:
            task, pending = stack[-1]
            dep = next((d for d in pending if d.name not in executed), None)
            if dep is not None:
                child = self.tasks[dep.name]
                stack.append((child, iter(child.dependencies)))
                continue
            stack.pop()
            self._execute(ctx, task, executed)

    def _execute(self, ctx: Context, task: Task, executed: set[str]) -> None:
        _raise_if_cancelled(ctx)
        passed = self._run_task(ctx, task)
        _raise_if_cancelled(ctx)
        if not passed:
            raise TaskFailedError(task.name)
        executed.add(task.name)

    def _run_task(self, ctx: Context, task: Task) -> bool:
        if task.command is None:
            return True

        visible: dict[str, Value] = {
            param.name: self.param_values[param.name] for param in task.parameters
        }
        if self.verbose is not None:
            visible[self.verbose.name] = self.param_values[self.verbose.name]

        real = Output.single(self.output)
        out = real
        buffer: BufferedOutput | None = None
        if self.verbose is not None and not _is_true(visible[self.verbose.name]):
            buffer = BufferedOutput()
            out = buffer.output()

        logger.debug("Task started", extra={"task": task.name})
        out.write_message("===== TASK  %s", task.name)
        runner = Runner(ctx=ctx, task_name=task.name, param_values=visible, output=out)
        result = runner.run(task.command)

        status = "PASS"
        if result.failed:
            status = "FAIL"
        elif result.skipped:
            status = "SKIP"
        seconds = result.duration.total_seconds()
        out.write_message("----- %s: %s (%.2fs)", status, task.name, seconds)
        logger.debug(
            "Task finished",
            extra={"task": task.name, "status": status, "duration": round(seconds, 3)},
        )

        if buffer is not None and result.failed:
            buffer.write_to(real)
        return not result.failed

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def print_usage(self) -> None:
        self._println("Usage: [flag(s)] task(s)")
        self._println("Flags:")
        rows = []
        for key in sorted(self.params):
            info = self.params[key].info
            default = self.params[key].new_value()
            rows.append([info.short_flag, info.long_flag, f"Default: {default}", info.usage])
        self._print_table(rows)

        self._println("Tasks:")
        rows = []
        for key in sorted(k for k, t in self.tasks.items() if t.description):
            task = self.tasks[key]
            flags = sorted(self.params[p.name].info.long_flag for p in task.parameters)
            params_text = "; " + " ".join(flags) if flags else ""
            rows.append([task.name, task.description + params_text])
        self._print_table(rows)

        if self.default_task is not None:
            self._println(f"Default task: {self.default_task.name}")

    def _print_table(self, rows: list[list[str]]) -> None:
        if not rows:
            return
        widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]) - 1)]
        for row in rows:
            cells = [cell.ljust(widths[i] + _COLUMN_PADDING) for i, cell in enumerate(row[:-1])]
            self._println(("  " + "".join(cells) + row[-1]).rstrip())

    def _println(self, line: str) -> None:
        self.output.write(line + "\n")


def _set_flag(flag: str, value: Value, text: str) -> None:
    try:
        value.set(text)
    except ValueError as exc:
        raise InvalidArgumentError(f"invalid value for {flag}: {exc}") from exc


def _is_true(value: Value) -> bool:
    if isinstance(value, BoolValue):
        return value.get()
    return str(value) == "true"


def _raise_if_cancelled(ctx: Context) -> None:
    err = ctx.err()
    if err is not None:
        logger.info("Run cancelled", extra={"reason": err.reason})
        raise err

