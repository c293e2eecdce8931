"""
Interactive prompts — the classic question-and-answer setup session.

Asks the setup questions in a fixed order, each with a menu default.
Answers already given through flags or an
answers file become the prompt defaults. The raw answers are returned
unchanged: menu numbers and names are interpreted by the ConfigResolver.
"""

from __future__ import annotations

from typing import Any

import click

from vpsprov.core.config.resolver import database_choice
from vpsprov.core.models.configuration import Configuration, Database
from vpsprov.core.models.step import ProvisioningStep

_NODE_MENU = (
    "1) 16.x (Maintenance LTS)",
    "2) 18.x (Active LTS)",
    "3) 20.x (Active LTS)",
    "4) 21.x (Current)",
)
_DATABASE_MENU = (
    "1) PostgreSQL",
    "2) MySQL / MariaDB",
    "3) MongoDB",
    "4) None (Skip database installation)",
)
_WEB_SERVER_MENU = ("1) Nginx", "2) Apache")
_ADDON_MENU = (
    "1) Docker and Docker Compose",
    "2) Redis",
    "3) Let's Encrypt SSL",
    "4) Fail2ban (basic security)",
)

DOMAIN_QUESTION = "Enter domain name (e.g., example.com)"


def banner() -> None:
    click.secho("=" * 54, fg="blue")
    click.secho("      Interactive Ubuntu VPS Setup", fg="blue", bold=True)
    click.secho("=" * 54, fg="blue")


def _menu(title: str, options: tuple[str, ...], question: str, default: Any) -> str:
    click.echo()
    click.echo(title)
    for option in options:
        click.echo(option)
    return click.prompt(question, default=str(default))


def ask_domain() -> str:
    """Second chance at the domain when the first answer was empty."""
    click.secho("⚠️  Domain name is required for proper setup", fg="yellow")
    return click.prompt(DOMAIN_QUESTION, default="", show_default=False)


def ask_answers(answers: dict[str, Any]) -> dict[str, Any]:
    """Run the setup questions.

    Args:
        answers: Answers known so far; used as prompt defaults.

    Returns:
        A new answers dict with the operator's replies merged in.
    """
    result = dict(answers)

    result["app_user"] = click.prompt(
        "Enter application username", default=answers.get("app_user") or "app"
    )
    result["app_dir"] = click.prompt(
        "Enter application directory",
        default=answers.get("app_dir") or f"/var/www/{result['app_user']}",
    )
    result["domain"] = click.prompt(
        DOMAIN_QUESTION, default=answers.get("domain") or "", show_default=bool(answers.get("domain"))
    )

    result["node_version"] = _menu(
        "Select Node.js version:", _NODE_MENU,
        "Choose Node.js version", answers.get("node_version") or "2",
    )
    result["database"] = _menu(
        "Select database type:", _DATABASE_MENU,
        "Choose database", answers.get("database") or "1",
    )
    result["web_server"] = _menu(
        "Select web server:", _WEB_SERVER_MENU,
        "Choose web server", answers.get("web_server") or "1",
    )

    addons = answers.get("addons")
    if isinstance(addons, (list, tuple)):
        addons = ",".join(str(a) for a in addons)
    click.echo()
    click.echo("Select additional components to install (comma-separated numbers):")
    for option in _ADDON_MENU:
        click.echo(option)
    result["addons"] = click.prompt(
        "Enter components", default=addons or "none", show_default=True
    )
    return result


def ask_secrets(answers: dict[str, Any]) -> dict[str, Any]:
    """Prompt (hidden) for the database passwords not supplied yet."""
    result = dict(answers)
    database = database_choice(answers.get("database"), strict=False)
    user = answers.get("app_user") or "app"

    if database == Database.MYSQL and not answers.get("db_root_password"):
        result["db_root_password"] = click.prompt(
            "Enter password for MySQL root user", hide_input=True
        )
    if database in (Database.POSTGRESQL, Database.MYSQL) and not answers.get("db_password"):
        label = "PostgreSQL" if database == Database.POSTGRESQL else "MySQL"
        result["db_password"] = click.prompt(
            f"Enter password for {label} user '{user}'", hide_input=True
        )
    return result


def show_summary(config: Configuration) -> None:
    """Print the configuration the run will use."""
    click.echo()
    click.secho("=== Configuration Summary ===", fg="blue", bold=True)
    click.echo(f"Application User: {config.app_user}")
    click.echo(f"Application Directory: {config.app_dir}")
    click.echo(f"Domain Name: {config.domain}")
    click.echo(f"Node.js Version: {config.node_version.value}")
    click.echo(f"Database: {config.database.value}")
    click.echo(f"Web Server: {config.web_server.value}")
    click.echo("Additional Components:")
    for addon in sorted(a.value for a in config.addons):
        click.echo(f"- {addon}")
    if config.database == Database.MONGODB:
        via = "Docker" if config.mongodb_via_docker else "apt repository"
        click.echo(f"MongoDB via: {via}")


def confirm_step(step: ProvisioningStep) -> bool:
    """Ask the operator to approve a step that needs it."""
    return click.confirm(step.confirm or f"Apply '{step.label}'?", default=False)
