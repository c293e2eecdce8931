"""
Shared test fixtures.
"""

from pathlib import Path

import pytest
from pydantic import SecretStr

from tests.helpers import make_config, marker_step
from vpsprov.core.engine.registry import StepRegistry
from vpsprov.core.models.configuration import Configuration


@pytest.fixture
def config() -> Configuration:
    return make_config()


@pytest.fixture
def postgres_config() -> Configuration:
    return make_config(database="postgresql", db_password=SecretStr("s3cr3t-pg"))


@pytest.fixture
def chain_registry() -> StepRegistry:
    """Three marker steps in a dependency chain: a ← b ← c."""
    return StepRegistry([
        marker_step("step-a"),
        marker_step("step-b", depends_on=["step-a"]),
        marker_step("step-c", depends_on=["step-b"]),
    ])


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch) -> Path:
    """Point the state directory (reports, audit ledger) at a temp dir."""
    directory = tmp_path / "state"
    monkeypatch.setenv("VPSPROV_STATE_DIR", str(directory))
    return directory
