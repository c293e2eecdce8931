"""
Tests for the executor — idempotency, rollback, timeouts, cancellation.
"""

import threading

from pydantic import SecretStr

from tests.helpers import HostRunner, fresh_host, make_config, marker_step
from vpsprov.adapters.mock import MockRunner
from vpsprov.core.catalog import build_default_registry
from vpsprov.core.engine.executor import Executor
from vpsprov.core.engine.planner import plan
from vpsprov.core.engine.registry import StepRegistry
from vpsprov.core.engine.reporter import summary_line
from vpsprov.core.models.command import Command
from vpsprov.core.models.report import RunStatus, SkipReason, StepOutcome
from vpsprov.core.models.step import ProvisioningStep, StepCategory


def _run(registry, runner, config, **kwargs):
    executor = Executor(registry, runner, **kwargs)
    return executor.execute(plan(config, registry), config)


def _failing_step(step_id, depends_on=(), **kwargs):
    return ProvisioningStep(
        id=step_id,
        label=step_id,
        category=StepCategory.SYSTEM,
        apply=lambda config: [Command.of("explode", step_id)],
        depends_on=tuple(depends_on),
        **kwargs,
    )


def _host(**kwargs):
    """A HostRunner on which every failing step really fails."""
    runner = HostRunner(**kwargs)
    runner.set_failure("explode", error="Command exited with code 2")
    return runner


# ── Happy path and idempotency ───────────────────────────────────────


class TestExecution:
    def test_applies_every_step(self, chain_registry, config):
        runner = _host()
        report = _run(chain_registry, runner, config)
        assert report.status == RunStatus.PROVISIONED
        assert [r.outcome for r in report.results] == [StepOutcome.APPLIED] * 3
        assert runner.files == {"/m/step-a", "/m/step-b", "/m/step-c"}

    def test_second_run_skips_everything(self, chain_registry, config):
        runner = _host()
        _run(chain_registry, runner, config)
        runner.reset()

        report = _run(chain_registry, runner, config)
        assert report.status == RunStatus.PROVISIONED
        assert report.failed == 0
        assert all(r.outcome == StepOutcome.SKIPPED for r in report.results)
        assert all(r.skip_reason == SkipReason.PRESENT for r in report.results)
        assert not runner.calls_matching("touch")

    def test_unknown_check_applies(self, config):
        registry = StepRegistry([
            ProvisioningStep(
                id="always", label="Always", category=StepCategory.SYSTEM,
                apply=lambda c: [Command.of("true")],
            )
        ])
        report = _run(registry, MockRunner(), config)
        assert report.result_for("always").outcome == StepOutcome.APPLIED

    def test_raising_check_counts_as_unknown(self, config):
        def broken(config, runner):
            raise RuntimeError("probe crashed")

        registry = StepRegistry([
            ProvisioningStep(
                id="x", label="X", category=StepCategory.SYSTEM,
                apply=lambda c: [Command.of("true")], check=broken,
            )
        ])
        report = _run(registry, MockRunner(), config)
        assert report.result_for("x").outcome == StepOutcome.APPLIED

    def test_commands_recorded(self, chain_registry, config):
        report = _run(chain_registry, _host(), config)
        assert report.result_for("step-a").commands == ["touch /m/step-a"]

    def test_on_result_called_after_each_step(self, chain_registry, config):
        snapshots = []
        _run(chain_registry, _host(), config,
             on_result=lambda r: snapshots.append(len(r.results)))
        assert snapshots[0] == 0
        assert 1 in snapshots and 2 in snapshots
        assert snapshots[-1] == 3


# ── Failure and rollback ─────────────────────────────────────────────


class TestRollback:
    def test_rollback_in_reverse_order(self, config):
        registry = StepRegistry([
            marker_step("one"),
            marker_step("two", depends_on=["one"]),
            marker_step("three", depends_on=["two"]),
            _failing_step("four", depends_on=["three"]),
        ])
        runner = _host()
        report = _run(registry, runner, config)

        removals = [c for c in runner.commands if c.startswith("rm")]
        assert removals == ["rm -f /m/three", "rm -f /m/two", "rm -f /m/one"]
        assert runner.files == set()
        assert report.status == RunStatus.ROLLED_BACK
        assert report.failed_step == "four"
        assert summary_line(report) == "Aborted, rolled back to clean state"

    def test_nothing_after_failure_starts(self, config):
        registry = StepRegistry([
            _failing_step("boom"),
            marker_step("after", depends_on=["boom"]),
        ])
        report = _run(registry, _host(), config)
        assert report.pending == ["after"]

    def test_skipped_steps_not_rolled_back(self, config):
        registry = StepRegistry([
            marker_step("existing"),
            marker_step("new", depends_on=["existing"]),
            _failing_step("boom", depends_on=["new"]),
        ])
        runner = _host(present={"/m/existing"})
        report = _run(registry, runner, config)
        assert "/m/existing" in runner.files
        assert report.result_for("existing").outcome == StepOutcome.SKIPPED
        assert report.result_for("new").outcome == StepOutcome.ROLLED_BACK

    def test_step_without_rollback_left_in_place(self, config):
        registry = StepRegistry([
            marker_step("permanent", reversible=False),
            _failing_step("boom", depends_on=["permanent"]),
        ])
        runner = _host()
        report = _run(registry, runner, config)
        assert "/m/permanent" in runner.files
        assert report.result_for("permanent").outcome == StepOutcome.APPLIED
        assert report.status == RunStatus.ROLLED_BACK

    def test_rollback_failure_recorded_and_unwind_continues(self, config):
        registry = StepRegistry([
            marker_step("one"),
            marker_step("two", depends_on=["one"]),
            _failing_step("boom", depends_on=["two"]),
        ])
        runner = _host()
        runner.set_failure("rm -f /m/two", error="device busy")
        report = _run(registry, runner, config)

        assert report.status == RunStatus.ROLLBACK_INCOMPLETE
        assert "device busy" in report.result_for("two").rollback_error
        assert report.result_for("one").outcome == StepOutcome.ROLLED_BACK
        assert "manual cleanup required for step two" in summary_line(report)

    def test_each_rollback_runs_once(self, config):
        registry = StepRegistry([
            marker_step("one"),
            _failing_step("boom", depends_on=["one"]),
        ])
        runner = _host()
        _run(registry, runner, config)
        assert len(runner.calls_matching("rm -f /m/one")) == 1

    def test_rollback_recorded_on_own_result(self, config):
        registry = StepRegistry([
            marker_step("earlier"),
            marker_step("now", depends_on=["earlier"]),
            _failing_step("boom", depends_on=["now"]),
        ])
        runner = _host(present={"/m/earlier"})
        report = _run(registry, runner, config, completed={"earlier"})

        assert report.result_for("earlier").skip_reason == SkipReason.RESUMED
        assert "/m/earlier" in runner.files
        now = report.result_for("now")
        assert now.outcome == StepOutcome.ROLLED_BACK
        assert now.commands == ["touch /m/now", "[rollback] rm -f /m/now"]
        assert report.result_for("earlier").commands == []

    def test_failure_detail_has_stderr(self, config):
        registry = StepRegistry([_failing_step("boom")])
        runner = MockRunner()
        runner.set_failure("explode", error="Command exited with code 2", stderr="kaboom happened")
        report = _run(registry, runner, config)
        error = report.result_for("boom").error
        assert "explode boom" in error
        assert "kaboom happened" in error

    def test_builder_exception_fails_step(self, config):
        def bad_builder(config):
            raise KeyError("missing")

        registry = StepRegistry([
            marker_step("one"),
            ProvisioningStep(
                id="bad", label="Bad", category=StepCategory.SYSTEM,
                apply=bad_builder, depends_on=("one",),
            ),
        ])
        report = _run(registry, _host(), config)
        assert report.result_for("bad").outcome == StepOutcome.FAILED
        assert report.result_for("one").outcome == StepOutcome.ROLLED_BACK


# ── Timeouts ─────────────────────────────────────────────────────────


class TestTimeouts:
    def test_command_timeout_fails_and_rolls_back(self, config):
        registry = StepRegistry([
            marker_step("one"),
            _failing_step("slow", depends_on=["one"]),
        ])
        runner = HostRunner()
        runner.set_timeout("explode")
        report = _run(registry, runner, config)
        assert "timed out" in report.result_for("slow").error
        assert report.status == RunStatus.ROLLED_BACK

    def test_timeout_budget_passed_to_runner(self):
        config = make_config(step_timeout=45)
        registry = StepRegistry([
            ProvisioningStep(
                id="x", label="X", category=StepCategory.SYSTEM,
                apply=lambda c: [Command.of("a"), Command.of("b", timeout=10)],
            )
        ])
        runner = MockRunner()
        _run(registry, runner, config)
        assert runner.timeouts[0] <= 45
        assert runner.timeouts[1] == 10


# ── Confirmation, continue-on-failure, cancellation ─────────────────


class TestControlFlow:
    def _confirmable(self):
        return StepRegistry([
            marker_step("rules"),
            marker_step("enable", depends_on=["rules"], confirm="Really?", fatal=False),
        ])

    def test_declined_by_default(self, config):
        runner = _host()
        report = _run(self._confirmable(), runner, config)
        result = report.result_for("enable")
        assert result.outcome == StepOutcome.SKIPPED
        assert result.skip_reason == SkipReason.DECLINED
        assert "/m/enable" not in runner.files
        assert report.status == RunStatus.PROVISIONED

    def test_confirmed(self, config):
        asked = []
        report = _run(
            self._confirmable(), _host(), config,
            confirm=lambda step: asked.append(step.id) or True,
        )
        assert asked == ["enable"]
        assert report.result_for("enable").outcome == StepOutcome.APPLIED

    def test_non_fatal_failure_continues_when_requested(self, config):
        registry = StepRegistry([
            marker_step("one"),
            _failing_step("optional", depends_on=["one"], fatal=False),
            marker_step("two", depends_on=["one"]),
        ])
        runner = _host()
        report = _run(registry, runner, config, continue_on_failure=True)
        assert report.status == RunStatus.PARTIAL
        assert report.result_for("two").outcome == StepOutcome.APPLIED
        assert "Partially provisioned, see step optional" == summary_line(report)

    def test_non_fatal_failure_aborts_by_default(self, config):
        registry = StepRegistry([
            marker_step("one"),
            _failing_step("optional", depends_on=["one"], fatal=False),
        ])
        report = _run(registry, _host(), config)
        assert report.status == RunStatus.ROLLED_BACK

    def test_fatal_failure_aborts_even_with_continue(self, config):
        registry = StepRegistry([
            marker_step("one"),
            _failing_step("critical", depends_on=["one"]),
        ])
        report = _run(registry, _host(), config, continue_on_failure=True)
        assert report.status == RunStatus.ROLLED_BACK

    def test_cancel_between_steps(self, chain_registry, config):
        cancel = threading.Event()

        def cancel_after_first(report):
            if len(report.results) == 1:
                cancel.set()

        runner = _host()
        report = _run(chain_registry, runner, config, cancel_event=cancel, on_result=cancel_after_first)
        assert report.cancelled
        assert report.status == RunStatus.ROLLED_BACK
        assert report.result_for("step-a").outcome == StepOutcome.ROLLED_BACK
        assert report.pending == ["step-b", "step-c"]
        assert runner.files == set()
        assert summary_line(report).startswith("Cancelled")


# ── Resume and dry run ───────────────────────────────────────────────


class TestResumeAndDryRun:
    def test_resume_skips_completed(self, chain_registry, config):
        runner = _host()
        report = _run(chain_registry, runner, config, completed={"step-a", "step-b"}, resumed_from="run-x")
        assert report.resumed_from == "run-x"
        assert report.result_for("step-a").skip_reason == SkipReason.RESUMED
        assert report.result_for("step-c").outcome == StepOutcome.APPLIED
        assert not runner.calls_matching("/m/step-a")

    def test_dry_run_runs_no_checks(self, chain_registry, config):
        runner = _host(dry_run=True, present={"/m/step-a"})
        report = _run(chain_registry, runner, config)
        assert report.status == RunStatus.DRY_RUN
        assert all(r.outcome == StepOutcome.APPLIED for r in report.results)
        assert not runner.calls_matching("test -e")
        assert runner.files == {"/m/step-a"}

    def test_dry_run_never_confirms(self, config):
        registry = StepRegistry([marker_step("ask", confirm="Sure?")])
        asked = []
        _run(registry, _host(dry_run=True), config, confirm=lambda s: asked.append(s) or True)
        assert asked == []


# ── The real catalog ─────────────────────────────────────────────────


class TestCatalogExecution:
    def test_nginx_failure_rolls_back_user_and_runtime(self, config):
        runner = fresh_host(MockRunner())
        runner.set_failure("apt-get install -y nginx", error="Command exited with code 100")
        report = _run(build_default_registry(), runner, config)

        assert report.result_for("install-nginx").outcome == StepOutcome.FAILED
        assert report.result_for("create-app-user").outcome == StepOutcome.ROLLED_BACK
        assert report.result_for("install-runtime").outcome == StepOutcome.ROLLED_BACK
        assert report.status == RunStatus.ROLLED_BACK
        assert summary_line(report) == "Aborted, rolled back to clean state"
        assert runner.calls_matching("userdel -r app")

    def test_fresh_host_fully_provisioned(self, config):
        runner = fresh_host(MockRunner())
        report = _run(build_default_registry(), runner, config)
        assert report.status == RunStatus.PROVISIONED
        assert report.result_for("enable-firewall").skip_reason == SkipReason.DECLINED
        assert not runner.calls_matching("ufw --force enable")

    def test_secrets_never_in_commands_or_report(self):
        config = make_config(
            database="mysql",
            db_password=SecretStr("app-secret-1"),
            db_root_password=SecretStr("root-secret-2"),
        )
        runner = fresh_host(MockRunner())
        report = _run(build_default_registry(), runner, config)

        assert report.status == RunStatus.PROVISIONED
        for cmd in runner.call_log:
            assert "app-secret-1" not in " ".join(cmd.exec_args())
            assert "root-secret-2" not in " ".join(cmd.exec_args())
        dumped = report.model_dump_json()
        assert "app-secret-1" not in dumped
        assert "root-secret-2" not in dumped

    def test_check_present_skips(self, config):
        runner = MockRunner()
        runner.set_output("ufw status", "Status: active\n")
        fresh_host(runner)
        report = _run(build_default_registry(), runner, config)
        assert report.result_for("enable-firewall").skip_reason == SkipReason.PRESENT
        assert report.result_for("enable-firewall").outcome == StepOutcome.SKIPPED
