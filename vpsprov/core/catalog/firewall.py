"""
Firewall steps — allow SSH and web traffic, then enable ufw on approval.
"""

from __future__ import annotations

import re

from vpsprov.core.catalog import checks
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Configuration, WebServer
from vpsprov.core.models.step import ProvisioningStep, StepCategory

SSH_PROFILE = "OpenSSH"
ENABLE_QUESTION = (
    "Enable firewall now? This might disconnect your SSH session "
    "if not properly configured."
)


def web_profile(config: Configuration) -> str:
    return "Nginx Full" if config.web_server == WebServer.NGINX else "Apache Full"


def _allow(config: Configuration) -> list[Command]:
    return [
        Command.of("ufw", "allow", SSH_PROFILE),
        Command.of("ufw", "allow", web_profile(config)),
    ]


def _disallow(config: Configuration) -> list[Command]:
    # SSH stays allowed so an unwind can never lock the operator out
    return [Command.of("ufw", "delete", "allow", web_profile(config))]


def _rules_pattern(config: Configuration) -> str:
    ssh = re.escape(f"ufw allow {SSH_PROFILE}")
    web = re.escape(f"ufw allow '{web_profile(config)}'")
    return rf"(?s)^{ssh}$.*^{web}$|^{web}$.*^{ssh}$"


STEPS = [
    ProvisioningStep(
        id="configure-firewall",
        label="Configure firewall rules",
        category=StepCategory.FIREWALL,
        apply=_allow,
        check=checks.output_matches(
            lambda config: Command.of("ufw", "show", "added"),
            _rules_pattern,
        ),
        rollback=_disallow,
        depends_on=("install-essentials",),
        after=("configure-nginx-proxy", "configure-apache-proxy"),
    ),
    ProvisioningStep(
        id="enable-firewall",
        label="Enable firewall",
        category=StepCategory.FIREWALL,
        apply=lambda config: [Command.of("ufw", "--force", "enable")],
        check=checks.output_matches(
            lambda config: Command.of("ufw", "status"),
            lambda config: r"^Status: active",
        ),
        rollback=lambda config: [Command.of("ufw", "--force", "disable")],
        depends_on=("configure-firewall",),
        fatal=False,
        confirm=ENABLE_QUESTION,
        description="Skipped unless approved; enable later with 'sudo ufw enable'",
    ),
]
