"""
Compose descriptor generator — container-based database installs.
"""

from __future__ import annotations

from vpsprov.core.models.configuration import Configuration
from vpsprov.core.models.template import GeneratedFile

MONGODB_IMAGE = "mongo:6.0"
MONGODB_DATA_DIR = "/data/db"

_MONGODB_COMPOSE = """\
version: '3'
services:
  mongodb:
    image: {image}
    container_name: mongodb
    ports:
      - "27017:27017"
    volumes:
      - {data_dir}:/data/db
    restart: always
"""


def mongodb_compose_path(config: Configuration) -> str:
    return f"{config.app_dir}/docker-compose.mongodb.yml"


def generate_mongodb_compose(config: Configuration) -> GeneratedFile:
    """MongoDB pinned to a fixed image with a persistent data volume."""
    return GeneratedFile(
        path=mongodb_compose_path(config),
        content=_MONGODB_COMPOSE.format(image=MONGODB_IMAGE, data_dir=MONGODB_DATA_DIR),
        reason="MongoDB container",
    )
