"""
Step catalog — every provisioning step vpsprov knows about.

Registration order doubles as the tie-breaker when the planner orders
independent steps, so it follows the sequence an operator expects:
base system, runtime, database, optional services, web server, TLS,
firewall, and finally the deployment helpers.
"""

from __future__ import annotations

from vpsprov.core.catalog import addons, database, deploy, firewall, runtime, system, webserver
from vpsprov.core.engine.registry import StepRegistry
from vpsprov.core.models.step import ProvisioningStep

CATALOG: tuple[ProvisioningStep, ...] = (
    *system.STEPS,
    *runtime.STEPS,
    *database.STEPS,
    *addons.DOCKER_STEPS,
    *addons.REDIS_STEPS,
    *webserver.NGINX_STEPS,
    *webserver.APACHE_STEPS,
    *addons.TLS_STEPS,
    *addons.FAIL2BAN_STEPS,
    *firewall.STEPS,
    *deploy.STEPS,
)


def build_default_registry() -> StepRegistry:
    """A fresh registry holding the full catalog."""
    return StepRegistry(CATALOG)


__all__ = ["CATALOG", "build_default_registry"]
