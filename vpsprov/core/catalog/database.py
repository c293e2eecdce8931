"""
Database steps — PostgreSQL, MySQL, and MongoDB (container or repository).

SQL carrying passwords is fed through stdin and the MySQL root
password through ``MYSQL_PWD``, so secrets never appear in a process
argument list. Every secret is also registered on its Command so it is
masked in logs and reports.
"""

from __future__ import annotations

from vpsprov.core.catalog import checks
from vpsprov.core.catalog.commands import apt_install, apt_purge, remove_files, systemctl, write_file
from vpsprov.core.errors import ValidationError
from vpsprov.core.generators.compose import (
    MONGODB_DATA_DIR,
    generate_mongodb_compose,
    mongodb_compose_path,
)
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Configuration, Database
from vpsprov.core.models.step import ProvisioningStep, StepCategory

MONGODB_KEY_URL = "https://www.mongodb.org/static/pgp/server-6.0.asc"
MONGODB_KEYRING = "/usr/share/keyrings/mongodb-archive-keyring.gpg"
MONGODB_LIST = "/etc/apt/sources.list.d/mongodb-org-6.0.list"
MONGODB_REPO = (
    f"deb [signed-by={MONGODB_KEYRING} arch=amd64,arm64] "
    "https://repo.mongodb.org/apt/ubuntu jammy/mongodb-org/6.0 multiverse"
)
# No noble repository yet: apt is told to accept the jammy one for the install only
APT_FORCE_CONF = "/etc/apt/apt.conf.d/99force-mongodb"
_APT_FORCE = """\
Acquire::AllowInsecureRepositories "true";
Acquire::AllowDowngradeToInsecureRepositories "true";
APT::Get::AllowUnauthenticated "true";
"""


def _secret(config: Configuration, name: str) -> str:
    value = getattr(config, name)
    if value is None:
        raise ValidationError(name, "required for the selected database")
    return value.get_secret_value()


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


# ── PostgreSQL ──────────────────────────────────────────────────


def _psql(sql: str, secrets: list[str] | None = None) -> Command:
    return Command.of(
        "sudo", "-u", "postgres", "psql", "-v", "ON_ERROR_STOP=1",
        input=sql,
        secrets=secrets or [],
    )


def _configure_postgresql(config: Configuration) -> list[Command]:
    password = _secret(config, "db_password")
    role = f'"{config.app_user}"'
    sql = (
        f"CREATE ROLE {role} WITH LOGIN ENCRYPTED PASSWORD {_sql_literal(password)};\n"
        f'CREATE DATABASE "{config.db_name}" OWNER {role};\n'
        f'GRANT ALL PRIVILEGES ON DATABASE "{config.db_name}" TO {role};\n'
    )
    return [_psql(sql, secrets=[password, password.replace("'", "''")])]


def _drop_postgresql(config: Configuration) -> list[Command]:
    sql = (
        f'DROP DATABASE IF EXISTS "{config.db_name}";\n'
        f'DROP ROLE IF EXISTS "{config.app_user}";\n'
    )
    return [_psql(sql)]


_postgres_role_exists = checks.output_matches(
    lambda config: Command.of(
        "sudo", "-u", "postgres", "psql", "-tAc",
        f"SELECT 1 FROM pg_roles WHERE rolname='{config.app_user}'",
    ),
    lambda config: r"^1$",
)


# ── MySQL ───────────────────────────────────────────────────────


def _mysql(sql: str, root_password: str | None, secrets: list[str]) -> Command:
    env = {"MYSQL_PWD": root_password} if root_password else {}
    argv = ["mysql", "-u", "root"]
    return Command(argv=argv, input=sql, env=env, secrets=secrets)


def _secure_mysql(config: Configuration) -> list[Command]:
    root = _secret(config, "db_root_password")
    sql = (
        "ALTER USER 'root'@'localhost' IDENTIFIED WITH mysql_native_password "
        f"BY {_sql_literal(root)};\n"
        "DELETE FROM mysql.user WHERE User='';\n"
        "DELETE FROM mysql.user WHERE User='root' AND Host NOT IN ('localhost', '127.0.0.1', '::1');\n"
        "DROP DATABASE IF EXISTS test;\n"
        "DELETE FROM mysql.db WHERE Db='test' OR Db='test\\\\_%';\n"
        "FLUSH PRIVILEGES;\n"
    )
    # Root still authenticates through the socket at this point
    return [_mysql(sql, None, secrets=[root, root.replace("'", "''")])]


def _configure_mysql(config: Configuration) -> list[Command]:
    root = _secret(config, "db_root_password")
    password = _secret(config, "db_password")
    user = f"'{config.app_user}'@'localhost'"
    sql = (
        f"CREATE DATABASE `{config.db_name}`;\n"
        f"CREATE USER {user} IDENTIFIED BY {_sql_literal(password)};\n"
        f"GRANT ALL PRIVILEGES ON `{config.db_name}`.* TO {user};\n"
        "FLUSH PRIVILEGES;\n"
    )
    return [_mysql(sql, root, secrets=[root, password, password.replace("'", "''")])]


def _drop_mysql(config: Configuration) -> list[Command]:
    root = _secret(config, "db_root_password")
    sql = (
        f"DROP USER IF EXISTS '{config.app_user}'@'localhost';\n"
        f"DROP DATABASE IF EXISTS `{config.db_name}`;\n"
        "FLUSH PRIVILEGES;\n"
    )
    return [_mysql(sql, root, secrets=[root])]


# Socket login without a password only works until root is secured
_mysql_root_secured = checks.fails(
    lambda config: Command.of("mysql", "-u", "root", "-e", "SELECT 1")
)


def _mysql_user_exists(config, runner):
    root = _secret(config, "db_root_password")
    probe = Command.of(
        "mysql", "-u", "root", "-N", "-e",
        f"SELECT User FROM mysql.user WHERE User='{config.app_user}'",
        env={"MYSQL_PWD": root},
        secrets=[root],
    )
    return checks.output_matches(
        lambda config: probe,
        lambda config: rf"^{config.app_user}$",
    )(config, runner)


# ── MongoDB ─────────────────────────────────────────────────────


def _mongodb_docker(config: Configuration) -> list[Command]:
    owner = f"{config.app_user}:{config.app_user}"
    return [
        Command.of("mkdir", "-p", MONGODB_DATA_DIR),
        Command.of("chown", "-R", owner, MONGODB_DATA_DIR),
        *write_file(generate_mongodb_compose(config)),
        Command.of("docker", "compose", "-f", mongodb_compose_path(config), "up", "-d"),
    ]


def _mongodb_docker_down(config: Configuration) -> list[Command]:
    path = mongodb_compose_path(config)
    return [
        Command.of("docker", "compose", "-f", path, "down"),
        remove_files(path),
    ]


def _mongodb_repository(config: Configuration) -> list[Command]:
    # The force conf must never outlive the install, even a failed one
    install = (
        f"cat > {APT_FORCE_CONF} <<'EOF'\n{_APT_FORCE}EOF\n"
        f"trap 'rm -f {APT_FORCE_CONF}' EXIT\n"
        "apt-get update && apt-get install -y mongodb-org"
    )
    return [
        Command.sh(f"wget -qO - {MONGODB_KEY_URL} | gpg --dearmor --yes -o {MONGODB_KEYRING}"),
        Command.of("tee", MONGODB_LIST, input=MONGODB_REPO + "\n"),
        Command.sh(install, env={"DEBIAN_FRONTEND": "noninteractive"}),
        systemctl("enable", "mongod"),
        systemctl("start", "mongod"),
    ]


def _mongodb_repository_remove(config: Configuration) -> list[Command]:
    return [
        systemctl("disable", "--now", "mongod"),
        *apt_purge("mongodb-org"),
        remove_files(MONGODB_LIST, MONGODB_KEYRING),
    ]


def _uses(kind: Database):
    return lambda config: config.database == kind


STEPS = [
    ProvisioningStep(
        id="install-postgresql",
        label="Install PostgreSQL",
        category=StepCategory.DATABASE,
        apply=lambda config: [apt_install("postgresql", "postgresql-contrib")],
        check=checks.packages_installed("postgresql"),
        rollback=lambda config: apt_purge("postgresql", "postgresql-contrib"),
        depends_on=("install-essentials",),
        when=_uses(Database.POSTGRESQL),
        auto_include=False,
    ),
    ProvisioningStep(
        id="configure-postgresql",
        label="Create PostgreSQL role and database",
        category=StepCategory.DATABASE,
        apply=_configure_postgresql,
        check=_postgres_role_exists,
        rollback=_drop_postgresql,
        depends_on=("install-postgresql", "create-app-user"),
        when=_uses(Database.POSTGRESQL),
        auto_include=False,
    ),
    ProvisioningStep(
        id="install-mysql",
        label="Install MySQL",
        category=StepCategory.DATABASE,
        apply=lambda config: [apt_install("mysql-server")],
        check=checks.packages_installed("mysql-server"),
        rollback=lambda config: apt_purge("mysql-server"),
        depends_on=("install-essentials",),
        when=_uses(Database.MYSQL),
        auto_include=False,
    ),
    ProvisioningStep(
        id="secure-mysql",
        label="Secure MySQL installation",
        category=StepCategory.DATABASE,
        apply=_secure_mysql,
        check=_mysql_root_secured,
        depends_on=("install-mysql",),
        when=_uses(Database.MYSQL),
        auto_include=False,
        description="Not undone on rollback; the root password stays set",
    ),
    ProvisioningStep(
        id="configure-mysql",
        label="Create MySQL user and database",
        category=StepCategory.DATABASE,
        apply=_configure_mysql,
        check=_mysql_user_exists,
        rollback=_drop_mysql,
        depends_on=("secure-mysql", "create-app-user"),
        when=_uses(Database.MYSQL),
        auto_include=False,
    ),
    ProvisioningStep(
        id="install-mongodb-docker",
        label="Run MongoDB in Docker",
        category=StepCategory.DATABASE,
        apply=_mongodb_docker,
        check=checks.output_matches(
            lambda config: Command.of("docker", "ps", "-q", "-f", "name=^mongodb$"),
            lambda config: r"\S",
        ),
        rollback=_mongodb_docker_down,
        depends_on=("install-docker", "create-app-directory"),
        when=lambda config: config.database == Database.MONGODB and config.mongodb_via_docker,
        auto_include=False,
    ),
    ProvisioningStep(
        id="install-mongodb-repository",
        label="Install MongoDB from repository",
        category=StepCategory.DATABASE,
        apply=_mongodb_repository,
        check=checks.packages_installed("mongodb-org"),
        rollback=_mongodb_repository_remove,
        depends_on=("install-essentials",),
        when=lambda config: config.database == Database.MONGODB and not config.mongodb_via_docker,
        auto_include=False,
    ),
]
