#!/usr/bin/env python3
"""Build script example.

This demonstrates declaring tasks with depflow:

* tasks with dependencies (``all`` runs ``lint`` and ``test`` once each)
* typed parameters bound from flags (``--count=3``, ``--pause 250ms``)
* quiet output: passing tasks print nothing unless ``-v`` is given

Try ``python examples/basic_usage.py -h`` or ``python examples/basic_usage.py -v all``.
"""

from __future__ import annotations

from datetime import timedelta

from depflow import TF, ParameterInfo, Task, Taskflow

flow = Taskflow()

count = flow.register_int_param(1, ParameterInfo(name="count", usage="How many test rounds to run"))
pause = flow.register_duration_param(
    timedelta(0), ParameterInfo(name="pause", usage="Pause between test rounds")
)


def lint(tf: TF) -> None:
    tf.log("checking style")


def test(tf: TF) -> None:
    rounds = count.get(tf)
    for n in range(1, rounds + 1):
        if tf.context.wait(pause.get(tf).total_seconds()):
            tf.fatal("cancelled after %d rounds", n - 1)
        tf.log("round %d/%d passed", n, rounds)


lint_task = flow.must_register(Task(name="lint", command=lint, description="Check code style"))
test_task = flow.must_register(
    Task(name="test", command=test, description="Run tests", parameters=[count, pause])
)
flow.default_task = flow.must_register(
    Task(name="all", description="Lint and test", dependencies=[lint_task, test_task])
)


if __name__ == "__main__":
    flow.main()
