"""
Tests for the step catalog — the commands each step emits and its checks.
"""

import pytest
from pydantic import SecretStr

from tests.helpers import make_config
from vpsprov.adapters.mock import MockRunner
from vpsprov.core.catalog import CATALOG, build_default_registry, checks
from vpsprov.core.catalog.database import APT_FORCE_CONF
from vpsprov.core.catalog.firewall import ENABLE_QUESTION, web_profile
from vpsprov.core.catalog.runtime import node_check
from vpsprov.core.errors import ValidationError
from vpsprov.core.models.command import Command
from vpsprov.core.models.configuration import Addon
from vpsprov.core.models.step import StepState
from vpsprov.core.models.template import GeneratedFile


def _step(step_id):
    return build_default_registry()[step_id]


def _commands(step_id, config, rollback=False):
    step = _step(step_id)
    builder = step.rollback if rollback else step.apply
    return builder(config)


def _argv_text(commands):
    return " ".join(" ".join(c.exec_args()) for c in commands)


# ── Catalog shape ────────────────────────────────────────────────────


class TestCatalogShape:
    def test_ids_unique(self):
        ids = [step.id for step in CATALOG]
        assert len(ids) == len(set(ids))

    def test_every_step_has_a_label(self):
        assert all(step.label for step in CATALOG)

    def test_branch_steps_not_auto_included(self):
        for step_id in ("install-nginx", "install-apache", "install-postgresql", "install-redis"):
            assert not _step(step_id).auto_include
        assert _step("install-docker").auto_include

    def test_only_firewall_enable_asks(self):
        asking = [step.id for step in CATALOG if step.confirm]
        assert asking == ["enable-firewall"]


# ── Databases ────────────────────────────────────────────────────────


class TestDatabaseSteps:
    def test_postgres_password_only_on_stdin(self, postgres_config):
        commands = _commands("configure-postgresql", postgres_config)
        assert "s3cr3t-pg" not in _argv_text(commands)
        assert "s3cr3t-pg" in commands[0].input
        assert "s3cr3t-pg" not in commands[0].display()
        assert "CREATE DATABASE \"app_db\"" in commands[0].input

    def test_postgres_password_quoted(self):
        config = make_config(database="postgresql", db_password=SecretStr("it's"))
        sql = _commands("configure-postgresql", config)[0].input
        assert "PASSWORD 'it''s'" in sql

    def test_postgres_needs_password(self, config):
        with pytest.raises(ValidationError) as exc:
            _commands("configure-postgresql", config)
        assert exc.value.field == "db_password"

    def test_mysql_root_password_in_environment(self):
        config = make_config(
            database="mysql",
            db_password=SecretStr("app-pw"),
            db_root_password=SecretStr("root-pw"),
        )
        command = _commands("configure-mysql", config)[0]
        assert command.env == {"MYSQL_PWD": "root-pw"}
        assert "root-pw" not in _argv_text([command])
        assert "app-pw" in command.input
        assert "app-pw" not in command.display()

    def test_secure_mysql_has_no_rollback(self):
        assert not _step("secure-mysql").reversible

    def test_mysql_root_secured_check(self, config):
        runner = MockRunner()
        runner.set_failure("mysql -u root -e", error="Access denied", exit_code=1)
        assert _step("secure-mysql").check(config, runner) == StepState.PRESENT

        runner = MockRunner()
        runner.set_failure("mysql -u root -e", error="not found", exit_code=127)
        assert _step("secure-mysql").check(config, runner) == StepState.UNKNOWN

        assert _step("secure-mysql").check(config, MockRunner()) == StepState.ABSENT

    def test_mongodb_repository_cleans_force_conf(self):
        config = make_config(database="mongodb")
        install = [c for c in _commands("install-mongodb-repository", config) if c.shell and "mongodb-org" in c.shell]
        assert len(install) == 1
        assert f"trap 'rm -f {APT_FORCE_CONF}' EXIT" in install[0].shell

    def test_mongodb_docker_uses_compose_plugin(self):
        config = make_config(database="mongodb", addons={Addon.DOCKER})
        commands = _commands("install-mongodb-docker", config)
        assert commands[-1].argv == [
            "docker", "compose", "-f", "/var/www/app/docker-compose.mongodb.yml", "up", "-d",
        ]
        tee = [c for c in commands if c.argv[:1] == ["tee"]]
        assert "mongo:6.0" in tee[0].input


# ── Web server and firewall ──────────────────────────────────────────


class TestWebServerSteps:
    def test_nginx_proxy_commands(self, config):
        displays = [c.display() for c in _commands("configure-nginx-proxy", config)]
        assert displays[0] == "tee /etc/nginx/sites-available/example.com <<< (stdin)"
        assert "ln -sf /etc/nginx/sites-available/example.com /etc/nginx/sites-enabled/" in displays
        assert "rm -f /etc/nginx/sites-enabled/default" in displays
        assert displays.index("nginx -t") < displays.index("systemctl restart nginx")

    def test_nginx_proxy_rollback_restores_default(self, config):
        displays = [c.display() for c in _commands("configure-nginx-proxy", config, rollback=True)]
        assert any("sites-enabled/default" in d and d.startswith("ln") for d in displays)

    def test_nginx_uninstall_purges_only_its_packages(self, config):
        displays = [c.display() for c in _commands("install-nginx", config, rollback=True)]
        assert displays == ["apt-get purge -y nginx nginx-common"]

    def test_no_rollback_runs_autoremove(self):
        full = make_config(
            database="postgresql",
            db_password=SecretStr("pw"),
            db_root_password=SecretStr("root"),
            addons={Addon.DOCKER, Addon.REDIS, Addon.FAIL2BAN},
        )
        for step in build_default_registry():
            if step.rollback is not None:
                assert "autoremove" not in _argv_text(step.rollback(full)), step.id

    def test_apache_proxy_enables_modules(self):
        config = make_config(web_server="apache")
        commands = _commands("configure-apache-proxy", config)
        assert commands[0].argv == ["a2enmod", "proxy", "proxy_http", "rewrite", "headers"]
        assert ["a2ensite", "example.com.conf"] in [c.argv for c in commands]
        assert ["a2dissite", "000-default.conf"] in [c.argv for c in commands]


class TestFirewallSteps:
    def test_web_profile(self):
        assert web_profile(make_config()) == "Nginx Full"
        assert web_profile(make_config(web_server="apache")) == "Apache Full"

    def test_allows_ssh_and_web(self, config):
        argvs = [c.argv for c in _commands("configure-firewall", config)]
        assert argvs == [["ufw", "allow", "OpenSSH"], ["ufw", "allow", "Nginx Full"]]

    def test_rollback_keeps_ssh(self, config):
        argvs = [c.argv for c in _commands("configure-firewall", config, rollback=True)]
        assert argvs == [["ufw", "delete", "allow", "Nginx Full"]]

    def test_rules_check(self, config):
        runner = MockRunner()
        runner.set_output("ufw show added", "Added user rules:\nufw allow OpenSSH\nufw allow 'Nginx Full'\n")
        assert _step("configure-firewall").check(config, runner) == StepState.PRESENT

        runner = MockRunner()
        runner.set_output("ufw show added", "Added user rules:\nufw allow OpenSSH\n")
        assert _step("configure-firewall").check(config, runner) == StepState.ABSENT

    def test_enable_is_optional_and_confirmed(self):
        step = _step("enable-firewall")
        assert not step.fatal
        assert step.confirm == ENABLE_QUESTION
        assert "disconnect your SSH session" in step.confirm


# ── Add-ons and deploy files ────────────────────────────────────────


class TestAddonSteps:
    def test_certbot_uses_selected_plugin(self):
        config = make_config(web_server="apache", addons={Addon.TLS})
        commands = _commands("obtain-tls-certificate", config)
        assert commands[0].argv[-1] == "python3-certbot-apache"
        certbot = commands[1].argv
        assert certbot[:2] == ["certbot", "--apache"]
        assert "www.example.com" in certbot

    def test_certbot_renewal_in_cron_d(self):
        config = make_config(addons={Addon.TLS})
        paths = [c.argv[1] for c in _commands("obtain-tls-certificate", config) if c.argv[:1] == ["tee"]]
        assert paths == ["/etc/cron.d/vpsprov-certbot"]

    def test_docker_adds_app_user_to_group(self, config):
        argvs = [c.argv for c in _commands("install-docker", config)]
        assert ["usermod", "-aG", "docker", "app"] in argvs

    def test_redis_supervised_by_systemd(self, config):
        commands = _commands("install-redis", config)
        assert any("supervised systemd" in " ".join(c.argv) for c in commands)


class TestDeploySteps:
    def test_deploy_script_written_with_mode_and_owner(self, config):
        argvs = [c.argv for c in _commands("write-deploy-script", config)]
        assert argvs[0] == ["tee", "/var/www/app/deploy.sh"]
        assert ["chmod", "755", "/var/www/app/deploy.sh"] in argvs
        assert ["chown", "app:app", "/var/www/app/deploy.sh"] in argvs

    def test_env_example_rollback(self, config):
        argvs = [c.argv for c in _commands("write-env-example", config, rollback=True)]
        assert argvs == [["rm", "-f", "/var/www/app/.env.example"]]


# ── Check factories ──────────────────────────────────────────────────


class TestChecks:
    def test_packages_installed(self, config):
        check = checks.packages_installed("nginx", "nginx-common")
        runner = MockRunner()
        runner.set_output("dpkg-query", "install ok installed\ninstall ok installed\n")
        assert check(config, runner) == StepState.PRESENT

        runner = MockRunner()
        runner.set_output("dpkg-query", "install ok installed\ndeinstall ok config-files\n")
        assert check(config, runner) == StepState.ABSENT

    def test_probes_are_read_only(self, config):
        runner = MockRunner()
        checks.path_exists(lambda c: "/etc/x")(config, runner)
        assert runner.call_log[0].read_only
        assert runner.timeouts == [checks.CHECK_TIMEOUT]

    def test_timed_out_probe_is_unknown(self, config):
        runner = MockRunner()
        runner.set_timeout("test -e")
        assert checks.path_exists(lambda c: "/etc/x")(config, runner) == StepState.UNKNOWN

    def test_file_matches(self, config):
        generated = GeneratedFile(path="/etc/thing", content="a = 1\n")
        check = checks.file_matches(lambda c: generated)
        runner = MockRunner()
        runner.set_output("cat /etc/thing", "a = 1\n")
        assert check(config, runner) == StepState.PRESENT

        runner = MockRunner()
        runner.set_output("cat /etc/thing", "a = 2\n")
        assert check(config, runner) == StepState.ABSENT

    def test_all_of(self, config):
        present = lambda c, r: StepState.PRESENT  # noqa: E731
        absent = lambda c, r: StepState.ABSENT  # noqa: E731
        unknown = lambda c, r: StepState.UNKNOWN  # noqa: E731
        assert checks.all_of(present, present)(config, None) == StepState.PRESENT
        assert checks.all_of(present, absent, unknown)(config, None) == StepState.ABSENT
        assert checks.all_of(present, unknown)(config, None) == StepState.UNKNOWN

    @pytest.mark.parametrize(
        "stdout, expected",
        [("v18.19.0\n", StepState.PRESENT), ("v20.1.0\n", StepState.PRESENT), ("weird", StepState.UNKNOWN)],
    )
    def test_node_check(self, config, stdout, expected):
        runner = MockRunner()
        runner.set_output("node -v", stdout)
        assert node_check(config, runner) == expected

    def test_node_missing(self, config):
        runner = MockRunner()
        runner.set_failure("node -v", exit_code=127)
        assert node_check(config, runner) == StepState.ABSENT

    def test_command_available(self, config):
        runner = MockRunner()
        checks.command_available("docker")(config, runner)
        assert runner.calls_matching("command -v docker")
        assert isinstance(runner.call_log[0], Command)
