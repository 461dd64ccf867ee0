"""Task and parameter registry.

Register parameters and tasks on a :class:`Taskflow`, then call
:meth:`Taskflow.run` (or :meth:`Taskflow.main` from a script) with the names
of the tasks to execute.
"""

from __future__ import annotations

import logging
import signal
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import timedelta
from types import FrameType
from typing import TextIO

from depflow.config import DepflowSettings
from depflow.context import Context
from depflow.flow_runner import CODE_INVALID_ARGS, FlowRunner
from depflow.logging import configure_logging
from depflow.params import (
    BoolParam,
    BoolValue,
    DurationParam,
    DurationValue,
    FloatParam,
    FloatValue,
    IntParam,
    IntValue,
    ParameterDefinition,
    ParameterInfo,
    RegisteredParam,
    StringParam,
    StringValue,
    Value,
    ValueParam,
)
from depflow.runner import TF

logger = logging.getLogger(__name__)

VERBOSE_PARAM_NAME = "v"
VERBOSE_PARAM_USAGE = (
    "Verbose output: log all tasks as they are run. "
    "Also print all text from log calls even if the task succeeds."
)


class RegistrationError(Exception):
    pass


class TaskRegistrationError(RegistrationError):
    pass


class ParamRegistrationError(RegistrationError):
    pass


@dataclass(frozen=True, slots=True)
class RegisteredTask:
    """A task accepted by a :class:`Taskflow`.

    Only usable as a dependency of tasks registered on the same taskflow.
    """

    name: str
    _owner: object = field(default=None, repr=False, compare=False)


@dataclass
class Task:
    name: str
    command: Callable[[TF], None] | None = None
    # Tasks without a description are left out of the usage text.
    description: str = ""
    dependencies: Sequence[RegisteredTask] = ()
    parameters: Sequence[RegisteredParam] = ()


class Taskflow:
    """Registry of tasks and parameters.

    ``output`` is where all text is written; ``sys.stdout`` when left unset.
    ``default_task`` is run when no task is named on the command line.
    """

    def __init__(
        self,
        *,
        output: TextIO | None = None,
        default_task: RegisteredTask | None = None,
    ) -> None:
        self.output = output
        self.default_task = default_task
        self._verbose: BoolParam | None = None
        self._params: dict[str, ParameterDefinition] = {}
        self._tasks: dict[str, Task] = {}
        self._token = object()

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def verbose_param(self) -> BoolParam:
        """The built-in ``-v`` parameter controlling whether passing tasks print output."""
        if self._verbose is None:
            self._verbose = self.register_bool_param(
                False, ParameterInfo(name=VERBOSE_PARAM_NAME, usage=VERBOSE_PARAM_USAGE)
            )
        return self._verbose

    def register_value_param(self, new_value: Callable[[], Value], info: ParameterInfo) -> ValueParam:
        """Register a parameter backed by a caller-defined :class:`Value`.

        ``new_value`` is called once per run, so each run starts from a fresh value.
        """
        self._register_param(new_value, info)
        return ValueParam(info.name)

    def register_bool_param(self, default: bool, info: ParameterInfo) -> BoolParam:
        self._register_param(lambda: BoolValue(default), info)
        return BoolParam(info.name)

    def register_int_param(self, default: int, info: ParameterInfo) -> IntParam:
        self._register_param(lambda: IntValue(default), info)
        return IntParam(info.name)

    def register_float_param(self, default: float, info: ParameterInfo) -> FloatParam:
        self._register_param(lambda: FloatValue(default), info)
        return FloatParam(info.name)

    def register_string_param(self, default: str, info: ParameterInfo) -> StringParam:
        self._register_param(lambda: StringValue(default), info)
        return StringParam(info.name)

    def register_duration_param(self, default: timedelta, info: ParameterInfo) -> DurationParam:
        self._register_param(lambda: DurationValue(default), info)
        return DurationParam(info.name)

    def _register_param(self, new_value: Callable[[], Value], info: ParameterInfo) -> None:
        if not info.name:
            raise ParamRegistrationError("parameter name cannot be empty")
        if info.name in self._params:
            raise ParamRegistrationError(f"{info.name} parameter was already registered")
        self._params[info.name] = ParameterDefinition(info=info, new_value=new_value)
        logger.debug("Registered parameter", extra={"param": info.name})

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def register(self, task: Task) -> RegisteredTask:
        """Register ``task`` and return a handle usable as a dependency.

        Raises:
            TaskRegistrationError: If the name is empty or taken, or a
                dependency or parameter is not registered on this taskflow.
        """
        if not task.name:
            raise TaskRegistrationError("task name cannot be empty")
        if task.name in self._tasks:
            raise TaskRegistrationError(f"{task.name} task was already registered")
        for dep in task.dependencies:
            if not self._owns(dep):
                raise TaskRegistrationError(f"invalid dependency {dep.name}")
        for param in task.parameters:
            if param.name not in self._params:
                raise TaskRegistrationError(f"invalid parameter {param.name}")

        self._tasks[task.name] = replace(
            task, dependencies=tuple(task.dependencies), parameters=tuple(task.parameters)
        )
        logger.debug(
            "Registered task",
            extra={"task": task.name, "dependencies": [d.name for d in task.dependencies]},
        )
        return RegisteredTask(name=task.name, _owner=self._token)

    def _owns(self, handle: RegisteredTask) -> bool:
        return handle.name in self._tasks and handle._owner is self._token

    def must_register(self, task: Task) -> RegisteredTask:
        """Like :meth:`register`, but exits the process on error."""
        try:
            return self.register(task)
        except RegistrationError as exc:
            logger.error("Task registration failed", extra={"task": task.name})
            raise SystemExit(str(exc)) from exc

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run(self, *args: str, ctx: Context | None = None) -> int:
        """Run the tasks named in ``args`` and all their dependencies.

        Each task is executed at most once. Returns ``CODE_PASS``,
        ``CODE_FAILURE`` or ``CODE_INVALID_ARGS``.
        """
        output = self.output if self.output is not None else sys.stdout
        if self.default_task is not None and not self._owns(self.default_task):
            logger.info("Invalid default task", extra={"task": self.default_task.name})
            output.write(f"invalid default task {self.default_task.name}\n")
            return CODE_INVALID_ARGS

        verbose = self.verbose_param()
        flow = FlowRunner(
            output=output,
            params=dict(self._params),
            tasks=dict(self._tasks),
            verbose=verbose,
            default_task=self.default_task,
        )
        return flow.run(ctx if ctx is not None else Context.background(), args)

    def main(self, argv: Sequence[str] | None = None) -> None:
        """Run from a script: exits the process with the run's status code.

        The first SIGINT cancels the run; tasks already running must notice it
        through ``tf.context``.
        """
        settings = DepflowSettings()
        configure_logging(settings.log_level, fmt=settings.log_format)

        ctx = Context()

        def _on_interrupt(signum: int, _frame: FrameType | None) -> None:
            logger.info("Interrupted", extra={"signal": signum})
            ctx.cancel("interrupted")
            signal.signal(signal.SIGINT, restore)

        previous = signal.signal(signal.SIGINT, _on_interrupt)
        restore = previous if previous is not None else signal.default_int_handler
        try:
            args = list(sys.argv[1:] if argv is None else argv)
            code = self.run(*args, ctx=ctx)
        finally:
            signal.signal(signal.SIGINT, restore)
        raise SystemExit(code)
