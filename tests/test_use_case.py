"""
Tests for the provision use case — preflight, persistence, resume, exit codes.
"""

import json
import logging

from tests.helpers import fresh_host, marker_step
from vpsprov.adapters.mock import MockRunner
from vpsprov.core.engine.registry import StepRegistry
from vpsprov.core.models.report import ExecutionReport, RunStatus, SkipReason, StepOutcome, StepResult
from vpsprov.core.persistence import AuditWriter, load_report, save_report
from vpsprov.core.use_cases.provision import (
    EXIT_OK,
    EXIT_PLANNING,
    EXIT_ROLLBACK_INCOMPLETE,
    EXIT_ROLLED_BACK,
    EXIT_VALIDATION,
    exit_code_for,
    preflight,
    provision,
)


def _root_ubuntu(runner: MockRunner) -> MockRunner:
    runner.set_output("id -u", "0\n")
    return runner


def _host() -> MockRunner:
    return _root_ubuntu(fresh_host(MockRunner()))


# ── Preflight ────────────────────────────────────────────────────────


class TestPreflight:
    def test_root_on_ubuntu(self):
        runner = _root_ubuntu(MockRunner())
        preflight(runner)
        assert runner.calls_matching("grep -q Ubuntu /etc/os-release")

    def test_not_root(self, config, state_dir):
        runner = MockRunner()
        runner.set_output("id -u", "1000\n")
        result = provision(config, runner=runner)
        assert result.exit_code == EXIT_VALIDATION
        assert "root or with sudo" in result.error
        assert result.report is None
        assert runner.call_count == 1

    def test_not_ubuntu(self, config, state_dir):
        runner = _root_ubuntu(MockRunner())
        runner.set_failure("/etc/os-release")
        result = provision(config, runner=runner)
        assert result.exit_code == EXIT_VALIDATION
        assert "Ubuntu" in result.error

    def test_skip_preflight(self, config, state_dir):
        runner = fresh_host(MockRunner())
        result = provision(config, runner=runner, skip_preflight=True)
        assert result.exit_code == EXIT_OK
        assert not runner.calls_matching("/etc/os-release")


# ── Planning and execution ──────────────────────────────────────────


class TestProvision:
    def test_full_run(self, config, state_dir):
        result = provision(config, runner=_host())
        assert result.exit_code == EXIT_OK
        assert result.report.status == RunStatus.PROVISIONED
        assert result.plan.steps[0] == "update-system"

    def test_planning_error(self, config, state_dir):
        registry = StepRegistry([marker_step("a", depends_on=["ghost"])])
        result = provision(config, runner=_host(), registry=registry)
        assert result.exit_code == EXIT_PLANNING
        assert "ghost" in result.error
        assert result.report is None

    def test_report_saved_after_run(self, config, state_dir):
        result = provision(config, runner=_host())
        assert result.report_path.parent == state_dir / "reports"
        saved = load_report(result.report_path)
        assert saved.run_id == result.report.run_id
        assert saved.finished

    def test_explicit_report_path(self, config, state_dir, tmp_path):
        target = tmp_path / "mine.json"
        result = provision(config, runner=_host(), report_path=target)
        assert result.report_path == target
        assert target.is_file()

    def test_audit_entry_written(self, config, state_dir):
        result = provision(config, runner=_host())
        entries = AuditWriter(state_dir / "audit.ndjson").read_all()
        assert [e.run_id for e in entries] == [result.report.run_id]
        assert entries[0].status == "provisioned"

    def test_dry_run_leaves_no_trace(self, config, state_dir):
        runner = MockRunner(dry_run=True)
        result = provision(config, runner=runner)
        assert result.exit_code == EXIT_OK
        assert result.report.status == RunStatus.DRY_RUN
        assert result.report_path is None
        assert not state_dir.exists()
        assert not runner.calls_matching("id -u")

    def test_failure_exit_code(self, config, state_dir):
        runner = _host()
        runner.set_failure("apt-get install -y nginx")
        result = provision(config, runner=runner)
        assert result.exit_code == EXIT_ROLLED_BACK
        assert load_report(result.report_path).status == RunStatus.ROLLED_BACK

    def test_to_dict(self, config, state_dir):
        data = provision(config, runner=_host()).to_dict()
        json.dumps(data)
        assert data["exit_code"] == 0
        assert data["report"]["status"] == "provisioned"
        assert "install-nginx" in data["plan"]


# ── Resume ───────────────────────────────────────────────────────────


class TestResume:
    def test_resume_skips_completed(self, config, state_dir, tmp_path):
        previous = ExecutionReport(
            plan=["update-system", "install-essentials", "install-nginx"],
            results=[
                StepResult(step_id="update-system", outcome=StepOutcome.APPLIED),
                StepResult(step_id="install-essentials", outcome=StepOutcome.APPLIED),
                StepResult(step_id="install-nginx", outcome=StepOutcome.FAILED),
                StepResult(step_id="not-in-plan", outcome=StepOutcome.APPLIED),
            ],
            configuration=config.summary(),
            finished=True,
        )
        path = tmp_path / "previous.json"
        save_report(previous, path)

        runner = _host()
        result = provision(config, runner=runner, resume_from=path)
        report = result.report
        assert report.resumed_from == previous.run_id
        assert report.result_for("update-system").skip_reason == SkipReason.RESUMED
        assert report.result_for("install-essentials").skip_reason == SkipReason.RESUMED
        assert report.result_for("install-nginx").outcome == StepOutcome.APPLIED
        assert not runner.calls_matching("apt-get upgrade")

    def test_config_mismatch_warns(self, config, state_dir, tmp_path, caplog):
        previous = ExecutionReport(configuration={"domain": "other.com"}, finished=True)
        path = tmp_path / "previous.json"
        save_report(previous, path)
        with caplog.at_level(logging.WARNING):
            provision(config, runner=_host(), resume_from=path)
        assert "differs from the resumed run" in caplog.text

    def test_bad_resume_file(self, config, state_dir, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")
        result = provision(config, runner=_host(), resume_from=path)
        assert result.exit_code == EXIT_VALIDATION
        assert "Corrupt" in result.error


class TestExitCodes:
    def test_unfinished_report(self):
        assert exit_code_for(ExecutionReport(plan=["a"])) == EXIT_ROLLBACK_INCOMPLETE
