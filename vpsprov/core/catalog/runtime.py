"""
Runtime steps — Node.js from NodeSource and the PM2 process manager.
"""

from __future__ import annotations

import logging
import re

from vpsprov.adapters.base import CommandRunner
from vpsprov.core.catalog import checks
from vpsprov.core.catalog.commands import apt_install, apt_purge, remove_files
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.step import ProvisioningStep, StepCategory, StepState

logger = logging.getLogger(__name__)

NODESOURCE_SETUP_URL = "https://deb.nodesource.com/setup_{version}"
NODESOURCE_FILES = (
    "/etc/apt/sources.list.d/nodesource.list",
    "/etc/apt/keyrings/nodesource.gpg",
)

_NODE_VERSION_RE = re.compile(r"^v(\d+)\.")


def node_check(config: Configuration, runner: CommandRunner) -> StepState:
    """Node.js is present if ``node -v`` answers.

    A different major version than requested is left alone with a
    warning rather than replaced, so a rollback never removes a
    runtime this run did not install.
    """
    result = runner.run(Command.of("node", "-v", read_only=True), timeout=checks.CHECK_TIMEOUT)
    if result.timed_out:
        return StepState.UNKNOWN
    if not result.ok:
        return StepState.ABSENT

    match = _NODE_VERSION_RE.match(result.stdout.strip())
    if match is None:
        return StepState.UNKNOWN
    if match.group(1) != config.node_version.major:
        logger.warning(
            "Node.js %s is already installed (requested %s), keeping it",
            result.stdout.strip(),
            config.node_version,
        )
    return StepState.PRESENT


def _install_node(config: Configuration) -> list[Command]:
    url = NODESOURCE_SETUP_URL.format(version=config.node_version.value)
    return [
        Command.sh(f"curl -fsSL {url} | bash -"),
        apt_install("nodejs"),
    ]


def _remove_node(config: Configuration) -> list[Command]:
    return [*apt_purge("nodejs"), remove_files(*NODESOURCE_FILES)]


def _pm2(*args: str) -> Command:
    # pm2 lives under /usr/bin when installed globally from NodeSource
    return Command.sh("env PATH=$PATH:/usr/bin pm2 " + " ".join(args))


def _pm2_startup(config: Configuration) -> list[Command]:
    return [_pm2("startup", "systemd", "-u", config.app_user, "--hp", config.home_dir)]


def _pm2_unstartup(config: Configuration) -> list[Command]:
    return [_pm2("unstartup", "systemd", "-u", config.app_user, "--hp", config.home_dir)]


STEPS = [
    ProvisioningStep(
        id="install-runtime",
        label="Install Node.js",
        category=StepCategory.RUNTIME,
        apply=_install_node,
        check=node_check,
        rollback=_remove_node,
        depends_on=("install-essentials",),
    ),
    ProvisioningStep(
        id="install-process-manager",
        label="Install PM2",
        category=StepCategory.RUNTIME,
        apply=lambda config: [Command.of("npm", "install", "-g", "pm2")],
        check=checks.command_available("pm2"),
        rollback=lambda config: [Command.of("npm", "uninstall", "-g", "pm2")],
        depends_on=("install-runtime",),
    ),
    ProvisioningStep(
        id="enable-process-manager-startup",
        label="Start PM2 on boot",
        category=StepCategory.RUNTIME,
        apply=_pm2_startup,
        check=checks.succeeds(
            lambda config: Command.of("systemctl", "is-enabled", f"pm2-{config.app_user}")
        ),
        rollback=_pm2_unstartup,
        depends_on=("install-process-manager", "create-app-user"),
    ),
]
