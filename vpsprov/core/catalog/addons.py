"""
Optional components — Docker, Redis, Let's Encrypt and Fail2ban.
"""

from __future__ import annotations

from vpsprov.core.catalog import checks
from vpsprov.core.catalog.commands import apt_install, apt_purge, remove_files, systemctl, write_file
from vpsprov.core.generators.security import (
    CERTBOT_CRON,
    FAIL2BAN_JAIL,
    generate_certbot_cron,
    generate_fail2ban_jail,
)
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Addon, Configuration, WebServer
from vpsprov.core.models.step import ProvisioningStep, StepCategory

DOCKER_KEYRING = "/etc/apt/keyrings/docker.gpg"
DOCKER_LIST = "/etc/apt/sources.list.d/docker.list"
DOCKER_PACKAGES = ("docker-ce", "docker-ce-cli", "containerd.io", "docker-compose-plugin")
COMPOSE_PLUGIN_DIR = "/usr/local/lib/docker/cli-plugins"
COMPOSE_PLUGIN_URL = (
    "https://github.com/docker/compose/releases/latest/download/docker-compose-linux-x86_64"
)
REDIS_CONF = "/etc/redis/redis.conf"


def _selected(addon: Addon):
    return lambda config: config.wants(addon)


# ── Docker ──────────────────────────────────────────────────────


def _install_docker(config: Configuration) -> list[Command]:
    repo = (
        'echo "deb [arch=$(dpkg --print-architecture) '
        f'signed-by={DOCKER_KEYRING}] https://download.docker.com/linux/ubuntu '
        f'$(lsb_release -cs) stable" > {DOCKER_LIST}'
    )
    plugin = f"{COMPOSE_PLUGIN_DIR}/docker-compose"
    return [
        Command.of("install", "-m", "0755", "-d", "/etc/apt/keyrings"),
        Command.sh(
            "curl -fsSL https://download.docker.com/linux/ubuntu/gpg"
            f" | gpg --dearmor --yes -o {DOCKER_KEYRING}"
        ),
        Command.sh(repo),
        Command.of("apt-get", "update", env={"DEBIAN_FRONTEND": "noninteractive"}),
        apt_install(*DOCKER_PACKAGES),
        Command.of("usermod", "-aG", "docker", config.app_user),
        Command.of("mkdir", "-p", COMPOSE_PLUGIN_DIR),
        Command.of("curl", "-fSL", COMPOSE_PLUGIN_URL, "-o", plugin),
        Command.of("chmod", "+x", plugin),
    ]


def _remove_docker(config: Configuration) -> list[Command]:
    return [
        *apt_purge(*DOCKER_PACKAGES),
        remove_files(DOCKER_LIST, DOCKER_KEYRING, f"{COMPOSE_PLUGIN_DIR}/docker-compose"),
    ]


# ── Redis ───────────────────────────────────────────────────────


def _install_redis(config: Configuration) -> list[Command]:
    return [
        apt_install("redis-server"),
        Command.of("sed", "-i", "s/supervised no/supervised systemd/g", REDIS_CONF),
        systemctl("restart", "redis.service"),
    ]


# ── TLS ─────────────────────────────────────────────────────────


def _certbot_plugin(config: Configuration) -> str:
    return "nginx" if config.web_server == WebServer.NGINX else "apache"


def _obtain_certificate(config: Configuration) -> list[Command]:
    plugin = _certbot_plugin(config)
    domain = config.domain
    return [
        apt_install("certbot", f"python3-certbot-{plugin}"),
        Command.of(
            "certbot", f"--{plugin}",
            "-d", domain, "-d", f"www.{domain}",
            "--non-interactive", "--agree-tos",
            "--email", f"admin@{domain}",
        ),
        *write_file(generate_certbot_cron()),
    ]


def _revoke_certificate(config: Configuration) -> list[Command]:
    return [
        Command.of("certbot", "delete", "--non-interactive", "--cert-name", config.domain),
        remove_files(CERTBOT_CRON),
    ]


# ── Fail2ban ────────────────────────────────────────────────────


def _install_fail2ban(config: Configuration) -> list[Command]:
    return [
        apt_install("fail2ban"),
        *write_file(generate_fail2ban_jail()),
        systemctl("restart", "fail2ban"),
    ]


def _remove_fail2ban(config: Configuration) -> list[Command]:
    return [*apt_purge("fail2ban"), remove_files(FAIL2BAN_JAIL)]


DOCKER_STEPS = [
    ProvisioningStep(
        id="install-docker",
        label="Install Docker and Compose",
        category=StepCategory.ADDON,
        apply=_install_docker,
        check=checks.command_available("docker"),
        rollback=_remove_docker,
        depends_on=("install-essentials", "create-app-user"),
        when=_selected(Addon.DOCKER),
    ),
]

REDIS_STEPS = [
    ProvisioningStep(
        id="install-redis",
        label="Install Redis",
        category=StepCategory.ADDON,
        apply=_install_redis,
        check=checks.packages_installed("redis-server"),
        rollback=lambda config: apt_purge("redis-server"),
        depends_on=("install-essentials",),
        when=_selected(Addon.REDIS),
        auto_include=False,
    ),
]

TLS_STEPS = [
    ProvisioningStep(
        id="obtain-tls-certificate",
        label="Obtain Let's Encrypt certificate",
        category=StepCategory.ADDON,
        apply=_obtain_certificate,
        check=checks.all_of(
            checks.path_exists(lambda config: f"/etc/letsencrypt/live/{config.domain}/fullchain.pem"),
            checks.file_matches(lambda config: generate_certbot_cron()),
        ),
        rollback=_revoke_certificate,
        depends_on=("install-essentials",),
        after=("configure-nginx-proxy", "configure-apache-proxy"),
        when=_selected(Addon.TLS),
        auto_include=False,
        description="Needs DNS for the domain pointing at this host",
    ),
]

FAIL2BAN_STEPS = [
    ProvisioningStep(
        id="install-fail2ban",
        label="Install Fail2ban",
        category=StepCategory.ADDON,
        apply=_install_fail2ban,
        check=checks.all_of(
            checks.packages_installed("fail2ban"),
            checks.file_matches(lambda config: generate_fail2ban_jail()),
        ),
        rollback=_remove_fail2ban,
        depends_on=("install-essentials",),
        when=_selected(Addon.FAIL2BAN),
        auto_include=False,
    ),
]
