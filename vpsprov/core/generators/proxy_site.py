"""
Reverse-proxy site generators — Nginx server block and Apache vhost.

Both route ``<domain>`` and ``www.<domain>`` to the application on
``localhost:<app_port>``.
"""

from __future__ import annotations

from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.template import GeneratedFile

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"
APACHE_SITES_AVAILABLE = "/etc/apache2/sites-available"


_NGINX_SITE = """\
server {{
    listen 80;
    server_name {domain} www.{domain};
    
    location / {{
        proxy_pass http://localhost:{port};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_set_header Host $host;
        proxy_cache_bypass $http_upgrade;
    }}
}}
"""

_APACHE_SITE = """\
<VirtualHost *:80>
    ServerAdmin webmaster@{domain}
    ServerName {domain}
    ServerAlias www.{domain}
    
    ProxyPreserveHost On
    ProxyPass / http://localhost:{port}/
    ProxyPassReverse / http://localhost:{port}/
    
    ErrorLog ${{APACHE_LOG_DIR}}/{domain}-error.log
    CustomLog ${{APACHE_LOG_DIR}}/{domain}-access.log combined
</VirtualHost>
"""


def nginx_site_path(config: Configuration) -> str:
    return f"{NGINX_SITES_AVAILABLE}/{config.domain}"


def apache_site_name(config: Configuration) -> str:
    return f"{config.domain}.conf"


def generate_nginx_site(config: Configuration) -> GeneratedFile:
    """Nginx server block with protocol-upgrade forwarding."""
    return GeneratedFile(
        path=nginx_site_path(config),
        content=_NGINX_SITE.format(domain=config.domain, port=config.app_port),
        mode="644",
        reason=f"Reverse proxy {config.domain} → localhost:{config.app_port}",
    )


def generate_apache_site(config: Configuration) -> GeneratedFile:
    """Apache virtual host proxying to the application port."""
    return GeneratedFile(
        path=f"{APACHE_SITES_AVAILABLE}/{apache_site_name(config)}",
        content=_APACHE_SITE.format(domain=config.domain, port=config.app_port),
        mode="644",
        reason=f"Reverse proxy {config.domain} → localhost:{config.app_port}",
    )
