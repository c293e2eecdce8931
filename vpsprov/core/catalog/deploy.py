"""
Deployment helpers written into the application directory.
"""

from __future__ import annotations

from vpsprov.core.catalog import checks
from vpsprov.core.catalog.commands import remove_files, write_file
from vpsprov.core.generators.deploy import generate_deploy_script, generate_env_example
from vpsprov.core.models.step import ProvisioningStep, StepCategory

STEPS = [
    ProvisioningStep(
        id="write-deploy-script",
        label="Write deployment script",
        category=StepCategory.DEPLOY,
        apply=lambda config: write_file(generate_deploy_script(config)),
        check=checks.file_matches(generate_deploy_script),
        rollback=lambda config: [remove_files(generate_deploy_script(config).path)],
        depends_on=("create-app-directory", "install-process-manager"),
    ),
    ProvisioningStep(
        id="write-env-example",
        label="Write environment template",
        category=StepCategory.DEPLOY,
        apply=lambda config: write_file(generate_env_example(config)),
        check=checks.file_matches(generate_env_example),
        rollback=lambda config: [remove_files(generate_env_example(config).path)],
        depends_on=("create-app-directory",),
    ),
]
