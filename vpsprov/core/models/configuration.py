"""
Configuration model — the resolved operator answers for one run.

Built once per run by the ConfigResolver and passed explicitly to
every component. Immutable: no component mutates it, and nothing
reads ambient process state in its place.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

_USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
_HOSTNAME_LABEL_RE = re.compile(r"(?!-)[a-z0-9-]{1,63}(?<!-)", re.IGNORECASE)


class NodeVersion(StrEnum):
    V16 = "16.x"
    V18 = "18.x"
    V20 = "20.x"
    V21 = "21.x"

    @property
    def major(self) -> str:
        return self.value.split(".", 1)[0]


class Database(StrEnum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MONGODB = "mongodb"
    NONE = "none"


class WebServer(StrEnum):
    NGINX = "nginx"
    APACHE = "apache"


class Addon(StrEnum):
    DOCKER = "docker"
    REDIS = "redis"
    TLS = "tls"
    FAIL2BAN = "fail2ban"


class MongoInstall(StrEnum):
    """How MongoDB is installed when it is the selected database."""

    AUTO = "auto"                # docker if the docker addon is selected
    DOCKER = "docker"
    REPOSITORY = "repository"


class Configuration(BaseModel):
    """Typed, validated configuration for a provisioning run.

    Secrets are ``SecretStr``: they render as ``**********`` in repr
    and JSON dumps, and are only unwrapped by the steps that need them.
    """

    model_config = ConfigDict(frozen=True)

    app_user: str = "app"
    app_dir: str = ""
    domain: str
    node_version: NodeVersion = NodeVersion.V18
    database: Database = Database.POSTGRESQL
    web_server: WebServer = WebServer.NGINX
    addons: frozenset[Addon] = Field(default_factory=frozenset)
    mongodb_install: MongoInstall = MongoInstall.AUTO
    app_port: int = Field(default=3000, ge=1, le=65535)
    step_timeout: int = Field(default=600, gt=0)

    db_password: SecretStr | None = None
    db_root_password: SecretStr | None = None

    @field_validator("domain")
    @classmethod
    def _domain_is_hostname(cls, value: str) -> str:
        # used verbatim in config file paths, so no scheme, port or slash
        value = value.strip()
        if not value:
            raise ValueError("domain name is required")
        labels = value.split(".")
        if len(value) > 253 or not all(_HOSTNAME_LABEL_RE.fullmatch(label) for label in labels):
            raise ValueError(
                f"'{value}' is not a host name (letters, digits and hyphens, separated by dots)"
            )
        return value.lower()

    @field_validator("app_user")
    @classmethod
    def _valid_username(cls, value: str) -> str:
        if not _USERNAME_RE.match(value):
            raise ValueError(f"'{value}' is not a valid Linux user name")
        return value

    @field_validator("app_dir")
    @classmethod
    def _absolute_app_dir(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith("/"):
            raise ValueError("app_dir must be an absolute path")
        return value

    @model_validator(mode="after")
    def _default_app_dir(self) -> Configuration:
        if not self.app_dir:
            object.__setattr__(self, "app_dir", f"/var/www/{self.app_user}")
        return self

    # ── Derived values ──────────────────────────────────────────

    @property
    def home_dir(self) -> str:
        return f"/home/{self.app_user}"

    @property
    def db_name(self) -> str:
        return f"{self.app_user}_db"

    def wants(self, addon: Addon) -> bool:
        return addon in self.addons

    @property
    def mongodb_via_docker(self) -> bool:
        """Whether MongoDB goes through the container path."""
        if self.mongodb_install == MongoInstall.AUTO:
            return self.wants(Addon.DOCKER)
        return self.mongodb_install == MongoInstall.DOCKER

    def summary(self) -> dict[str, Any]:
        """Secret-free view for reports and the confirmation screen."""
        return {
            "app_user": self.app_user,
            "app_dir": self.app_dir,
            "domain": self.domain,
            "node_version": self.node_version.value,
            "database": self.database.value,
            "web_server": self.web_server.value,
            "addons": sorted(a.value for a in self.addons),
            "mongodb_install": self.mongodb_install.value,
            "app_port": self.app_port,
        }
