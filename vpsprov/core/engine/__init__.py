"""Engine — registry, planner, executor, and report rendering."""

from vpsprov.core.engine.executor import Executor
from vpsprov.core.engine.planner import ExecutionPlan, plan
from vpsprov.core.engine.registry import StepRegistry

__all__ = [
    "ExecutionPlan",
    "Executor",
    "StepRegistry",
    "plan",
]
