"""
Deployment artifacts — the deploy helper script and example env file.

Both live in the application directory and belong to the app user.
"""

from __future__ import annotations

from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.template import GeneratedFile

_DEPLOY_SCRIPT = """\
#!/bin/bash
# Deployment script for {domain}

# Pull latest changes
git pull

# Install dependencies
npm install

# Build the application
npm run build

# Restart the application
pm2 restart all

echo "Deployment completed!"
"""

_ENV_EXAMPLE = """\
NODE_ENV=production
PORT={port}
HOST=localhost
"""


def generate_deploy_script(config: Configuration) -> GeneratedFile:
    """``deploy.sh``: fetch, install, build, restart the managed processes."""
    return GeneratedFile(
        path=f"{config.app_dir}/deploy.sh",
        content=_DEPLOY_SCRIPT.format(domain=config.domain),
        mode="755",
        owner=f"{config.app_user}:{config.app_user}",
        reason="Deployment helper",
    )


def generate_env_example(config: Configuration) -> GeneratedFile:
    """``.env.example`` with the keys the application reads."""
    return GeneratedFile(
        path=f"{config.app_dir}/.env.example",
        content=_ENV_EXAMPLE.format(port=config.app_port),
        owner=f"{config.app_user}:{config.app_user}",
        reason="Environment template",
    )
