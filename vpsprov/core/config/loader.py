"""
Answers loader — reads a YAML answers file and environment secrets.

The answers file holds the same values the interactive prompts ask
for, so an unattended run can be described once and replayed. It is
validated for shape here; value semantics (menu numbers, names,
required secrets) are the ConfigResolver's job.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from vpsprov.core.errors import ValidationError

logger = logging.getLogger(__name__)

ENV_DB_PASSWORD = "VPSPROV_DB_PASSWORD"
ENV_DB_ROOT_PASSWORD = "VPSPROV_DB_ROOT_PASSWORD"


class AnswersFile(BaseModel):
    """Shape of a YAML answers file. Every key is optional."""

    model_config = ConfigDict(extra="forbid")

    app_user: str | None = None
    app_dir: str | None = None
    domain: str | None = None
    node_version: str | int | None = None
    database: str | int | None = None
    web_server: str | int | None = None
    addons: list[str | int] | str | int | None = None
    mongodb_install: str | None = None
    app_port: int | None = None
    step_timeout: int | None = None
    db_password: str | None = None
    db_root_password: str | None = None


def load_answers(path: Path) -> dict[str, Any]:
    """Load an answers file into a dict of the keys it sets.

    Args:
        path: Path to the YAML file.

    Returns:
        Mapping of answer name to raw value; unset keys are omitted.

    Raises:
        ValidationError: If the file is missing, unreadable, not YAML,
            or has unknown keys or wrongly-typed values.
    """
    if not path.is_file():
        raise ValidationError("config", f"file not found: {path}")

    logger.debug("Loading answers from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError("config", f"cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValidationError("config", f"invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(
            "config", f"expected a YAML mapping in {path}, got {type(data).__name__}"
        )

    try:
        answers = AnswersFile.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or "config"
        raise ValidationError(field, f"{first['msg']} (in {path})") from e

    loaded = answers.model_dump(exclude_none=True)
    logger.info("Loaded %d answers from %s", len(loaded), path)
    return loaded


def env_secrets(environ: dict[str, str] | None = None) -> dict[str, str]:
    """Database passwords supplied through the environment."""
    env = os.environ if environ is None else environ
    secrets = {}
    if env.get(ENV_DB_PASSWORD):
        secrets["db_password"] = env[ENV_DB_PASSWORD]
    if env.get(ENV_DB_ROOT_PASSWORD):
        secrets["db_root_password"] = env[ENV_DB_ROOT_PASSWORD]
    return secrets


def merge_answers(*layers: dict[str, Any] | None) -> dict[str, Any]:
    """Merge answer layers; later layers win, ``None`` values never do."""
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            if value is not None:
                merged[key] = value
    return merged
