"""
Command builders shared by the step catalog.

Small constructors for the package-manager, service-manager and file
operations every step is made of, plus their undo counterparts.
"""

from __future__ import annotations

from vpsprov.core.models.command import Command
from vpsprov.core.models.template import GeneratedFile

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def apt_update() -> Command:
    return Command.of("apt-get", "update", env=_APT_ENV)


def apt_install(*packages: str) -> Command:
    return Command.of("apt-get", "install", "-y", *packages, env=_APT_ENV)


def apt_purge(*packages: str) -> list[Command]:
    """Purge exactly the named packages.

    No autoremove: that would sweep up every orphaned package on the
    host, not just the ones this run pulled in. Dependencies installed
    alongside stay behind.
    """
    return [Command.of("apt-get", "purge", "-y", *packages, env=_APT_ENV)]


def systemctl(action: str, *units: str) -> Command:
    return Command.of("systemctl", action, *units)


def remove_files(*paths: str) -> Command:
    return Command.of("rm", "-f", *paths)


def write_file(generated: GeneratedFile) -> list[Command]:
    """Write a generated file, then apply its mode and owner."""
    commands = [
        Command.of(
            "tee",
            generated.path,
            input=generated.content,
            description=generated.reason,
        )
    ]
    if generated.mode:
        commands.append(Command.of("chmod", generated.mode, generated.path))
    if generated.owner:
        commands.append(Command.of("chown", generated.owner, generated.path))
    return commands
