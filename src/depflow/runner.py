"""Runs a single task command and reports how it ended."""

from __future__ import annotations

import logging
import threading
import time
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta

from depflow.context import Context
from depflow.output import Output
from depflow.params import ParamNotDeclaredError, Params, Value

logger = logging.getLogger(__name__)


class _TaskExit(BaseException):
    """Stops a task command from ``fail_now``/``skip_now``.

    Derives from BaseException so that ``except Exception`` in a task body
    does not swallow it.
    """


@dataclass(frozen=True, slots=True)
class RunResult:
    failed: bool
    skipped: bool
    duration: timedelta


class TF:
    """Context handed to a task command.

    Provides the task's name, cancellation context, output writers and the
    parameters the task declared. ``log`` and friends write to the message
    stream; ``fail_now``, ``fatal``, ``skip_now`` and ``skip`` stop the
    command immediately.
    """

    def __init__(
        self,
        *,
        name: str,
        context: Context,
        output: Output,
        param_values: Mapping[str, Value],
    ) -> None:
        self._name = name
        self._context = context
        self._output = output
        self._param_values = dict(param_values)
        self._lock = threading.Lock()
        self._failed = False
        self._skipped = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def context(self) -> Context:
        return self._context

    @property
    def output(self) -> Output:
        return self._output

    @property
    def params(self) -> Params:
        """Text of every visible parameter, keyed by name."""
        return Params({name: str(value) for name, value in self._param_values.items()})

    def value(self, name: str) -> Value:
        try:
            return self._param_values[name]
        except KeyError:
            raise ParamNotDeclaredError(name, self._name) from None

    def log(self, msg: object, *args: object) -> None:
        self._output.write_message(str(msg), *args)

    def error(self, msg: object, *args: object) -> None:
        self.log(msg, *args)
        self.fail()

    def fatal(self, msg: object, *args: object) -> None:
        self.log(msg, *args)
        self.fail_now()

    def skip(self, msg: object, *args: object) -> None:
        self.log(msg, *args)
        self.skip_now()

    def fail(self) -> None:
        with self._lock:
            self._failed = True

    def fail_now(self) -> None:
        self.fail()
        raise _TaskExit()

    def skip_now(self) -> None:
        with self._lock:
            self._skipped = True
        raise _TaskExit()

    @property
    def failed(self) -> bool:
        with self._lock:
            return self._failed

    @property
    def skipped(self) -> bool:
        with self._lock:
            return self._skipped


class Runner:
    """Executes a task command with a fresh :class:`TF`."""

    def __init__(
        self,
        *,
        ctx: Context,
        task_name: str,
        param_values: Mapping[str, Value],
        output: Output,
    ) -> None:
        self.ctx = ctx
        self.task_name = task_name
        self.param_values = param_values
        self.output = output

    def run(self, command: Callable[[TF], None]) -> RunResult:
        tf = TF(
            name=self.task_name,
            context=self.ctx,
            output=self.output,
            param_values=self.param_values,
        )
        started = time.perf_counter()
        try:
            command(tf)
        except _TaskExit:
            pass
        except Exception as exc:
            logger.debug("Task command raised", extra={"task": self.task_name}, exc_info=True)
            tf.log("panic: %s", exc)
            self.output.message.write(traceback.format_exc())
            tf.fail()
        duration = timedelta(seconds=time.perf_counter() - started)

        failed = tf.failed
        return RunResult(failed=failed, skipped=tf.skipped and not failed, duration=duration)
