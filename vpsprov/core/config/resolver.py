"""
ConfigResolver — raw operator answers in, validated Configuration out.

Answers arrive as loosely-typed values from prompts, a YAML file or
CLI flags. Menu numbers are forgiving: an out-of-range choice falls
back to the menu default with a warning, exactly like the prompts
always did. Names are strict: an unknown name is a ValidationError,
unless the answers were typed at the prompts.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import SecretStr
from pydantic import ValidationError as PydanticValidationError

from vpsprov.core.errors import ValidationError
from vpsprov.core.models.configuration import (
    Addon,
    Configuration,
    Database,
    MongoInstall,
    NodeVersion,
    WebServer,
)

logger = logging.getLogger(__name__)


# ── Menus ───────────────────────────────────────────────────────
# (number → value, default number) in the order the prompts show them

NODE_MENU: dict[str, NodeVersion] = {
    "1": NodeVersion.V16,
    "2": NodeVersion.V18,
    "3": NodeVersion.V20,
    "4": NodeVersion.V21,
}
NODE_DEFAULT = "2"

DATABASE_MENU: dict[str, Database] = {
    "1": Database.POSTGRESQL,
    "2": Database.MYSQL,
    "3": Database.MONGODB,
    "4": Database.NONE,
}
DATABASE_DEFAULT = "1"

WEB_SERVER_MENU: dict[str, WebServer] = {
    "1": WebServer.NGINX,
    "2": WebServer.APACHE,
}
WEB_SERVER_DEFAULT = "1"

ADDON_MENU: dict[str, Addon] = {
    "1": Addon.DOCKER,
    "2": Addon.REDIS,
    "3": Addon.TLS,
    "4": Addon.FAIL2BAN,
}

_DATABASE_ALIASES = {
    "postgres": Database.POSTGRESQL,
    "mariadb": Database.MYSQL,
    "mongo": Database.MONGODB,
}
_WEB_SERVER_ALIASES = {"apache2": WebServer.APACHE}
_ADDON_ALIASES = {"ssl": Addon.TLS, "letsencrypt": Addon.TLS}

DomainPrompt = Callable[[], str]


_NUMBER = re.compile(r"-?\d+")


def _is_number(value: Any) -> bool:
    return isinstance(value, int) or (isinstance(value, str) and _NUMBER.fullmatch(value.strip()) is not None)


def _choose(
    field: str,
    value: Any,
    menu: dict[str, Any],
    default: str,
    names: dict[str, Any],
    strict: bool = True,
):
    """Map a menu number or a name onto an enum value.

    Blank answers take the menu default. Numbers outside the menu take
    the default too, with a warning. Unknown names raise, unless
    ``strict`` is off, in which case they fall back like numbers.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return menu[default]

    text = str(value).strip().lower()
    if text in names:
        return names[text]

    if text in menu:
        return menu[text]

    if _is_number(value) or not strict:
        logger.warning(
            "%s choice '%s' is not on the menu, using default %s",
            field, text, menu[default].value,
        )
        return menu[default]

    known = ", ".join(sorted(names))
    raise ValidationError(field, f"unknown value '{value}' (expected one of: {known})")


def _enum_names(enum_cls, aliases: dict[str, Any] | None = None) -> dict[str, Any]:
    names = {member.value: member for member in enum_cls}
    names.update(aliases or {})
    return names


def _node_names() -> dict[str, NodeVersion]:
    # "20" and "20.x" both name a version
    names = _enum_names(NodeVersion)
    names.update({v.major: v for v in NodeVersion})
    return names


def database_choice(value: Any, strict: bool = True) -> Database:
    """The database an answer selects, by menu number or name."""
    return _choose(
        "database", value, DATABASE_MENU, DATABASE_DEFAULT,
        _enum_names(Database, _DATABASE_ALIASES), strict=strict,
    )


def parse_addons(value: Any) -> frozenset[Addon]:
    """Parse the additional-components answer.

    Accepts a list of names or numbers, a comma-separated string of
    names, or the menu's digit string (``"1,3"``). Digit strings are
    matched by presence, so ``"13"`` and ``"3,1"`` also mean docker and
    TLS, and digits outside the menu are ignored.
    """
    if value is None:
        return frozenset()

    if isinstance(value, int):
        value = str(value)

    if isinstance(value, str):
        text = value.strip()
        if not text or text.lower() == "none":
            return frozenset()
        if all(ch.isdigit() or ch in ", " for ch in text):
            return frozenset(addon for digit, addon in ADDON_MENU.items() if digit in text)
        items: Iterable[Any] = [part for part in text.split(",") if part.strip()]
    else:
        items = value

    names = _enum_names(Addon, _ADDON_ALIASES)
    chosen = set()
    for item in items:
        key = str(item).strip().lower()
        if key in ADDON_MENU:
            chosen.add(ADDON_MENU[key])
        elif key in names:
            chosen.add(names[key])
        else:
            known = ", ".join(a.value for a in Addon)
            raise ValidationError("addons", f"unknown component '{item}' (expected: {known})")
    return frozenset(chosen)


class ConfigResolver:
    """Produce a validated Configuration from raw answers.

    Args:
        reprompt_domain: Called once if the domain answer is empty.
            Without it an empty domain fails immediately.
        strict_menus: Reject menu answers that are neither a menu
            number nor a known name. Prompted answers turn this off so
            a typo takes the menu default instead of ending the session.
    """

    def __init__(self, reprompt_domain: DomainPrompt | None = None, strict_menus: bool = True):
        self._reprompt_domain = reprompt_domain
        self._strict = strict_menus

    def resolve(self, answers: Mapping[str, Any]) -> Configuration:
        """Resolve raw answers.

        Raises:
            ValidationError: Naming the first offending field.
        """
        domain = self._domain(answers.get("domain"))
        app_user = (answers.get("app_user") or "app").strip()

        database = database_choice(answers.get("database"), strict=self._strict)

        fields: dict[str, Any] = {
            "app_user": app_user,
            "app_dir": (answers.get("app_dir") or "").strip(),
            "domain": domain,
            "node_version": _choose(
                "node_version", answers.get("node_version"),
                NODE_MENU, NODE_DEFAULT, _node_names(), strict=self._strict,
            ),
            "database": database,
            "web_server": _choose(
                "web_server", answers.get("web_server"),
                WEB_SERVER_MENU, WEB_SERVER_DEFAULT,
                _enum_names(WebServer, _WEB_SERVER_ALIASES), strict=self._strict,
            ),
            "addons": parse_addons(answers.get("addons")),
            "mongodb_install": self._mongodb_install(answers.get("mongodb_install")),
        }
        for key in ("app_port", "step_timeout"):
            if answers.get(key) is not None:
                fields[key] = answers[key]

        fields.update(self._secrets(database, answers))

        try:
            config = Configuration(**fields)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"]) or "configuration"
            message = str(first["msg"]).removeprefix("Value error, ")
            raise ValidationError(field, message) from e

        logger.debug("Resolved configuration: %s", config.summary())
        return config

    # ── Fields ──────────────────────────────────────────────────

    def _domain(self, value: Any) -> str:
        domain = (value or "").strip()
        if domain:
            return domain
        if self._reprompt_domain is not None:
            logger.warning("Domain name is required for proper setup")
            domain = (self._reprompt_domain() or "").strip()
            if domain:
                return domain
        raise ValidationError("domain", "domain name is required")

    @staticmethod
    def _mongodb_install(value: Any) -> MongoInstall:
        if value is None or not str(value).strip():
            return MongoInstall.AUTO
        try:
            return MongoInstall(str(value).strip().lower())
        except ValueError:
            known = ", ".join(m.value for m in MongoInstall)
            raise ValidationError(
                "mongodb_install", f"unknown value '{value}' (expected one of: {known})"
            ) from None

    @staticmethod
    def _secrets(database: Database, answers: Mapping[str, Any]) -> dict[str, SecretStr]:
        required = {
            Database.POSTGRESQL: ("db_password",),
            Database.MYSQL: ("db_root_password", "db_password"),
        }.get(database, ())

        secrets = {}
        for name in ("db_root_password", "db_password"):
            value = answers.get(name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if value:
                secrets[name] = SecretStr(value)
            elif name in required:
                raise ValidationError(name, f"required when the database is {database.value}")
        return secrets
