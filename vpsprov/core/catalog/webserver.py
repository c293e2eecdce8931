"""
Web server steps — install Nginx or Apache and proxy the domain to the app.

The two branches are mutually exclusive and never auto-included: a step
that hard-depends on the branch the operator did not choose is a
planning error, not a reason to install a second web server.
"""

from __future__ import annotations

from vpsprov.core.catalog import checks
from vpsprov.core.catalog.commands import apt_install, apt_purge, remove_files, systemctl, write_file
from vpsprov.core.generators.proxy_site import (
    APACHE_SITES_AVAILABLE,
    NGINX_SITES_AVAILABLE,
    NGINX_SITES_ENABLED,
    apache_site_name,
    generate_apache_site,
    generate_nginx_site,
    nginx_site_path,
)
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Configuration, WebServer
from vpsprov.core.models.step import ProvisioningStep, StepCategory

APACHE_MODULES = ("proxy", "proxy_http", "rewrite", "headers")


def _uses(kind: WebServer):
    return lambda config: config.web_server == kind


# ── Nginx ───────────────────────────────────────────────────────


def _configure_nginx(config: Configuration) -> list[Command]:
    return [
        *write_file(generate_nginx_site(config)),
        Command.of("ln", "-sf", nginx_site_path(config), f"{NGINX_SITES_ENABLED}/"),
        remove_files(f"{NGINX_SITES_ENABLED}/default"),
        Command.of("nginx", "-t"),
        systemctl("restart", "nginx"),
    ]


def _unconfigure_nginx(config: Configuration) -> list[Command]:
    return [
        remove_files(f"{NGINX_SITES_ENABLED}/{config.domain}", nginx_site_path(config)),
        Command.of(
            "ln", "-sf",
            f"{NGINX_SITES_AVAILABLE}/default",
            f"{NGINX_SITES_ENABLED}/default",
        ),
        systemctl("reload", "nginx"),
    ]


# ── Apache ──────────────────────────────────────────────────────


def _configure_apache(config: Configuration) -> list[Command]:
    return [
        Command.of("a2enmod", *APACHE_MODULES),
        *write_file(generate_apache_site(config)),
        Command.of("a2ensite", apache_site_name(config)),
        Command.of("a2dissite", "000-default.conf"),
        systemctl("restart", "apache2"),
    ]


def _unconfigure_apache(config: Configuration) -> list[Command]:
    return [
        Command.of("a2dissite", apache_site_name(config)),
        remove_files(f"{APACHE_SITES_AVAILABLE}/{apache_site_name(config)}"),
        Command.of("a2ensite", "000-default.conf"),
        systemctl("reload", "apache2"),
    ]


STEPS = [
    ProvisioningStep(
        id="install-nginx",
        label="Install Nginx",
        category=StepCategory.WEBSERVER,
        apply=lambda config: [apt_install("nginx")],
        check=checks.packages_installed("nginx"),
        rollback=lambda config: apt_purge("nginx", "nginx-common"),
        depends_on=("install-essentials",),
        when=_uses(WebServer.NGINX),
        auto_include=False,
    ),
    ProvisioningStep(
        id="configure-nginx-proxy",
        label="Configure Nginx reverse proxy",
        category=StepCategory.WEBSERVER,
        apply=_configure_nginx,
        check=checks.all_of(
            checks.file_matches(generate_nginx_site),
            checks.path_exists(lambda config: f"{NGINX_SITES_ENABLED}/{config.domain}"),
        ),
        rollback=_unconfigure_nginx,
        depends_on=("install-nginx",),
        when=_uses(WebServer.NGINX),
        auto_include=False,
    ),
    ProvisioningStep(
        id="install-apache",
        label="Install Apache",
        category=StepCategory.WEBSERVER,
        apply=lambda config: [apt_install("apache2")],
        check=checks.packages_installed("apache2"),
        rollback=lambda config: apt_purge("apache2"),
        depends_on=("install-essentials",),
        when=_uses(WebServer.APACHE),
        auto_include=False,
    ),
    ProvisioningStep(
        id="configure-apache-proxy",
        label="Configure Apache reverse proxy",
        category=StepCategory.WEBSERVER,
        apply=_configure_apache,
        check=checks.all_of(
            checks.file_matches(generate_apache_site),
            checks.path_exists(
                lambda config: f"/etc/apache2/sites-enabled/{apache_site_name(config)}"
            ),
        ),
        rollback=_unconfigure_apache,
        depends_on=("install-apache",),
        when=_uses(WebServer.APACHE),
        auto_include=False,
    ),
]

NGINX_STEPS = STEPS[:2]
APACHE_STEPS = STEPS[2:]
