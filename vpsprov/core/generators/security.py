"""
Security-related files — Fail2ban jail and certificate renewal schedule.
"""

from __future__ import annotations

from vpsprov.core.models.template import GeneratedFile

FAIL2BAN_JAIL = "/etc/fail2ban/jail.local"
CERTBOT_CRON = "/etc/cron.d/vpsprov-certbot"

_JAIL_LOCAL = """\
[DEFAULT]
bantime  = 10m
findtime  = 10m
maxretry = 5

[sshd]
enabled = true
"""

# cron.d entries carry a user field; root's own crontab is left alone
_CERTBOT_CRON = """\
0 3 * * * root /usr/bin/certbot renew --quiet
"""


def generate_fail2ban_jail() -> GeneratedFile:
    return GeneratedFile(
        path=FAIL2BAN_JAIL,
        content=_JAIL_LOCAL,
        mode="644",
        reason="Fail2ban SSH protection",
    )


def generate_certbot_cron() -> GeneratedFile:
    return GeneratedFile(
        path=CERTBOT_CRON,
        content=_CERTBOT_CRON,
        mode="644",
        reason="Nightly certificate renewal",
    )
