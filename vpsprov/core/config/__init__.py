"""Configuration — answers loading and resolution into a Configuration."""

from vpsprov.core.config.loader import env_secrets, load_answers, merge_answers
from vpsprov.core.config.resolver import ConfigResolver, database_choice, parse_addons

__all__ = [
    "ConfigResolver",
    "database_choice",
    "env_secrets",
    "load_answers",
    "merge_answers",
    "parse_addons",
]
