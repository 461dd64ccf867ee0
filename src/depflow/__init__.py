"""depflow: declare tasks with dependencies and typed parameters, then run them.

- each requested task and its dependencies run at most once, in order
- parameters are bound from command-line style flags
- output of passing tasks is hidden unless ``-v`` is given
"""

__version__ = "0.1.0"

from depflow.context import Cancelled, Context
from depflow.flow_runner import CODE_FAILURE, CODE_INVALID_ARGS, CODE_PASS
from depflow.output import BufferedOutput, Output
from depflow.params import (
    BoolParam,
    DurationParam,
    FloatParam,
    IntParam,
    ParameterInfo,
    ParamNotDeclaredError,
    ParamNotSetError,
    Params,
    ParamValueError,
    StringParam,
    Value,
    ValueParam,
)
from depflow.runner import TF, Runner, RunResult
from depflow.taskflow import (
    ParamRegistrationError,
    RegisteredTask,
    RegistrationError,
    Task,
    Taskflow,
    TaskRegistrationError,
)

__all__ = [
    "__version__",
    "BoolParam",
    "BufferedOutput",
    "CODE_FAILURE",
    "CODE_INVALID_ARGS",
    "CODE_PASS",
    "Cancelled",
    "Context",
    "DurationParam",
    "FloatParam",
    "IntParam",
    "Output",
    "ParamNotDeclaredError",
    "ParamNotSetError",
    "ParamRegistrationError",
    "ParamValueError",
    "ParameterInfo",
    "Params",
    "RegisteredTask",
    "RegistrationError",
    "RunResult",
    "Runner",
    "StringParam",
    "TF",
    "Task",
    "TaskRegistrationError",
    "Taskflow",
    "Value",
    "ValueParam",
]
