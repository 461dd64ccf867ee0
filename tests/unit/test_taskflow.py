"""Unit tests for task and parameter registration."""

from __future__ import annotations

from datetime import timedelta

import pytest

from depflow import (
    TF,
    ParameterInfo,
    ParamRegistrationError,
    RegisteredTask,
    Task,
    Taskflow,
    TaskRegistrationError,
)


def test_register_returns_handle_usable_as_dependency(flow: Taskflow) -> None:
    first = flow.register(Task(name="first"))
    second = flow.register(Task(name="second", dependencies=[first]))

    assert first.name == "first"
    assert second.name == "second"


def test_register_rejects_empty_name(flow: Taskflow) -> None:
    with pytest.raises(TaskRegistrationError, match="cannot be empty"):
        flow.register(Task(name=""))


def test_register_rejects_duplicate_without_mutation(flow: Taskflow) -> None:
    calls: list[str] = []
    flow.register(Task(name="build", command=lambda tf: calls.append("original")))

    with pytest.raises(TaskRegistrationError, match="already registered"):
        flow.register(Task(name="build", command=lambda tf: calls.append("replacement")))

    assert flow.run("build") == 0
    assert calls == ["original"]


def test_register_rejects_unknown_dependency_without_mutation(flow: Taskflow) -> None:
    with pytest.raises(TaskRegistrationError, match="invalid dependency ghost"):
        flow.register(Task(name="build", dependencies=[RegisteredTask(name="ghost")]))

    # The failed name is still free.
    flow.register(Task(name="build"))


def test_register_rejects_handle_from_another_taskflow(flow: Taskflow) -> None:
    other = Taskflow()
    foreign = other.register(Task(name="lint"))
    flow.register(Task(name="lint"))

    with pytest.raises(TaskRegistrationError, match="invalid dependency lint"):
        flow.register(Task(name="build", dependencies=[foreign]))


def test_register_rejects_unknown_parameter(flow: Taskflow) -> None:
    other = Taskflow()
    param = other.register_int_param(1, ParameterInfo(name="count"))

    with pytest.raises(TaskRegistrationError, match="invalid parameter count"):
        flow.register(Task(name="build", parameters=[param]))


def test_must_register_exits(flow: Taskflow) -> None:
    flow.must_register(Task(name="build"))

    with pytest.raises(SystemExit) as excinfo:
        flow.must_register(Task(name="build"))

    assert "already registered" in str(excinfo.value.code)


def test_registering_param_twice_fails(flow: Taskflow) -> None:
    flow.register_string_param("", ParameterInfo(name="target"))

    with pytest.raises(ParamRegistrationError, match="already registered"):
        flow.register_bool_param(False, ParameterInfo(name="target"))


def test_registering_param_with_empty_name_fails(flow: Taskflow) -> None:
    with pytest.raises(ParamRegistrationError, match="cannot be empty"):
        flow.register_int_param(0, ParameterInfo(name=""))


def test_verbose_param_registered_once(flow: Taskflow) -> None:
    first = flow.verbose_param()
    second = flow.verbose_param()

    assert first == second
    assert first.name == "v"
    with pytest.raises(ParamRegistrationError):
        flow.register_bool_param(True, ParameterInfo(name="v"))


def test_typed_params_reach_declaring_task(flow: Taskflow) -> None:
    count = flow.register_int_param(1, ParameterInfo(name="count"))
    ratio = flow.register_float_param(0.5, ParameterInfo(name="ratio"))
    target = flow.register_string_param("all", ParameterInfo(name="target"))
    timeout = flow.register_duration_param(timedelta(seconds=5), ParameterInfo(name="timeout"))
    dry = flow.register_bool_param(False, ParameterInfo(name="dry"))
    seen: dict[str, object] = {}

    def command(tf: TF) -> None:
        seen.update(
            count=count.get(tf),
            ratio=ratio.get(tf),
            target=target.get(tf),
            timeout=timeout.get(tf),
            dry=dry.get(tf),
        )

    flow.register(
        Task(name="build", command=command, parameters=[count, ratio, target, timeout, dry])
    )

    code = flow.run("build", "--count=3", "--ratio", "0x1p-2", "--timeout=1m", "--dry")

    assert code == 0
    assert seen == {
        "count": 3,
        "ratio": 0.25,
        "target": "all",
        "timeout": timedelta(minutes=1),
        "dry": True,
    }


def test_values_are_fresh_for_every_run(flow: Taskflow) -> None:
    count = flow.register_int_param(1, ParameterInfo(name="count"))
    seen: list[int] = []
    flow.register(Task(name="build", command=lambda tf: seen.append(count.get(tf)), parameters=[count]))

    flow.run("build", "--count=5")
    flow.run("build")

    assert seen == [5, 1]


class _ListValue:
    """Custom value collecting every flag occurrence."""

    def __init__(self) -> None:
        self.items: list[str] = []

    def set(self, text: str) -> None:  # noqa: A003
        self.items.append(text)

    def is_bool(self) -> bool:
        return False

    def __str__(self) -> str:
        return ",".join(self.items)


def test_custom_value_param(flow: Taskflow) -> None:
    tags = flow.register_value_param(_ListValue, ParameterInfo(name="tag", usage="Tag to apply"))
    seen: list[list[str]] = []
    flow.register(
        Task(name="release", command=lambda tf: seen.append(tags.get(tf).items), parameters=[tags])
    )

    assert flow.run("release", "--tag", "a", "--tag=b") == 0
    assert seen == [["a", "b"]]
