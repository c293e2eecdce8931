"""
Domain models — Pydantic types and step definitions.

All models are re-exported here for convenient access:

    from vpsprov.core.models import Configuration, Command, ProvisioningStep
"""

from vpsprov.core.models.command import Command, CommandResult
from vpsprov.core.models.configuration import (
    Addon,
    Configuration,
    Database,
    MongoInstall,
    NodeVersion,
    WebServer,
)
from vpsprov.core.models.report import (
    ExecutionReport,
    RunStatus,
    SkipReason,
    StepOutcome,
    StepResult,
)
from vpsprov.core.models.step import ProvisioningStep, StepCategory, StepState
from vpsprov.core.models.template import GeneratedFile

__all__ = [
    # command.py
    "Command",
    "CommandResult",
    # configuration.py
    "Addon",
    "Configuration",
    "Database",
    "MongoInstall",
    "NodeVersion",
    "WebServer",
    # report.py
    "ExecutionReport",
    "RunStatus",
    "SkipReason",
    "StepOutcome",
    "StepResult",
    # step.py
    "ProvisioningStep",
    "StepCategory",
    "StepState",
    # template.py
    "GeneratedFile",
]
