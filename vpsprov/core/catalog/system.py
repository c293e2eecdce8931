"""
System steps — package index, base tooling, app user and directory.
"""

from __future__ import annotations

from vpsprov.core.catalog import checks
from vpsprov.core.catalog.commands import apt_install, apt_update
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.step import ProvisioningStep, StepCategory

ESSENTIAL_PACKAGES = (
    "build-essential",
    "git",
    "curl",
    "wget",
    "unzip",
    "gnupg2",
    "ca-certificates",
    "lsb-release",
    "software-properties-common",
    "apt-transport-https",
    "vim",
)


def _update_system(config: Configuration) -> list[Command]:
    return [
        apt_update(),
        Command.of("apt-get", "upgrade", "-y", env={"DEBIAN_FRONTEND": "noninteractive"}),
    ]


# Package lists refreshed within the last hour count as up to date
_recently_updated = checks.output_matches(
    lambda config: Command.sh(
        "find /var/lib/apt/lists -maxdepth 1 -name '*Release' -mmin -60 | head -n 1"
    ),
    lambda config: r"\S",
)


def _create_user(config: Configuration) -> list[Command]:
    return [Command.of("useradd", "-m", "-s", "/bin/bash", config.app_user)]


def _remove_user(config: Configuration) -> list[Command]:
    return [Command.of("userdel", "-r", config.app_user)]


def _create_app_dir(config: Configuration) -> list[Command]:
    owner = f"{config.app_user}:{config.app_user}"
    return [
        Command.of("mkdir", "-p", config.app_dir),
        Command.of("chown", "-R", owner, config.app_dir),
    ]


def _remove_app_dir(config: Configuration) -> list[Command]:
    return [Command.of("rm", "-rf", "--", config.app_dir)]


STEPS = [
    ProvisioningStep(
        id="update-system",
        label="Update system packages",
        category=StepCategory.SYSTEM,
        apply=_update_system,
        check=_recently_updated,
    ),
    ProvisioningStep(
        id="install-essentials",
        label="Install essential tools",
        category=StepCategory.SYSTEM,
        apply=lambda config: [apt_install(*ESSENTIAL_PACKAGES)],
        check=checks.packages_installed(*ESSENTIAL_PACKAGES),
        depends_on=("update-system",),
    ),
    ProvisioningStep(
        id="create-app-user",
        label="Create application user",
        category=StepCategory.SYSTEM,
        apply=_create_user,
        check=checks.succeeds(lambda config: Command.of("id", "-u", config.app_user)),
        rollback=_remove_user,
    ),
    ProvisioningStep(
        id="create-app-directory",
        label="Create application directory",
        category=StepCategory.SYSTEM,
        apply=_create_app_dir,
        check=checks.succeeds(lambda config: Command.of("test", "-d", config.app_dir)),
        rollback=_remove_app_dir,
        depends_on=("create-app-user",),
    ),
]
