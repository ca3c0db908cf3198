"""Tests for the transition catalog."""

from dataclasses import replace

import pytest

from valet_doctor.actions import phpinfo
from valet_doctor.engine.exceptions import TransitionUnavailableError, UnknownTransitionError
from valet_doctor.engine.transitions import (
    TRANSITION_BUILDERS,
    TransitionContext,
    TransitionKind,
    fix_my_valet,
    fix_permissions,
    plan_transition,
    switch_version,
)
from valet_doctor.model.transition import FailurePolicy, Privilege

CONTINUE = FailurePolicy.CONTINUE
ABORT = FailurePolicy.ABORT


@pytest.fixture
def ctx(sample_snapshot, settings, fake_brew):
    return TransitionContext(snapshot=sample_snapshot, settings=settings, shell=fake_brew)


def test_every_kind_has_a_builder():
    assert set(TRANSITION_BUILDERS) == set(TransitionKind)


class TestFixMyValet:
    def test_step_shape(self, ctx):
        plan = fix_my_valet(ctx)
        steps = plan.transition.steps

        # restart dnsmasq, 3 per version, 3 user stops, link, 3 restarts
        assert len(steps) == 1 + 3 * 3 + 3 + 1 + 3
        assert steps[0].command == "{brew} services restart dnsmasq"
        assert steps[0].privilege is Privilege.ELEVATED

        assert [s.command for s in steps[1:4]] == [
            "{brew} unlink php@8.1",
            "{brew} services stop php@8.1",
            "{brew} services stop php@8.1",
        ]
        assert steps[2].privilege is Privilege.NORMAL
        assert steps[3].privilege is Privilege.ELEVATED

    def test_default_version_uses_plain_formula_for_services(self, ctx):
        commands = [s.command for s in fix_my_valet(ctx).transition.steps]
        assert "{brew} unlink php@8.3" in commands
        assert "{brew} services stop php" in commands
        assert "{brew} services stop php@8.3" not in commands

    def test_only_link_and_restarts_abort(self, ctx):
        steps = fix_my_valet(ctx).transition.steps
        assert all(s.on_failure is CONTINUE for s in steps[:-4])
        assert all(s.on_failure is ABORT for s in steps[-4:])
        assert steps[-4].command == "{brew} link php --overwrite --force"
        assert [s.command for s in steps[-3:]] == [
            "{brew} services restart dnsmasq",
            "{brew} services restart php",
            "{brew} services restart nginx",
        ]

    def test_postcondition(self, ctx):
        post = fix_my_valet(ctx).postcondition
        assert post.active_version == "8.3"
        assert post.running == ("dnsmasq", "php", "nginx")

    def test_unavailable_without_default_version(self, ctx):
        ctx.snapshot = replace(ctx.snapshot, brew_php_version=None)
        with pytest.raises(TransitionUnavailableError):
            fix_my_valet(ctx)

    def test_unavailable_without_versions(self, ctx):
        ctx.snapshot = replace(ctx.snapshot, available_versions=())
        with pytest.raises(TransitionUnavailableError):
            fix_my_valet(ctx)


class TestSwitchVersion:
    def test_step_order(self, ctx):
        plan = switch_version(ctx, version="8.1")
        commands = [s.command for s in plan.transition.steps]

        assert commands == [
            "{brew} unlink php@8.1",
            "{brew} unlink php@8.2",
            "{brew} unlink php",
            "{brew} services stop php@8.1",
            "{brew} services stop php@8.2",
            "{brew} services stop php",
            "{brew} link php@8.1 --overwrite --force",
            "{brew} services start php@8.1",
            "{brew} services restart nginx",
        ]

    def test_policies(self, ctx):
        steps = switch_version(ctx, version="8.1").transition.steps
        assert [s.on_failure for s in steps] == [CONTINUE] * 6 + [ABORT, ABORT, CONTINUE]
        assert all(s.elevated for s in steps[3:6])

    def test_postcondition(self, ctx):
        post = switch_version(ctx, version="8.3").postcondition
        assert post.active_version == "8.3"
        assert post.running == ("php",)

    def test_composer_update_runs_after_verification(self, ctx):
        ctx.settings = replace(ctx.settings, auto_composer_update_after_switch=True)
        plan = switch_version(ctx, version="8.1")

        assert "{composer} global update" not in [s.command for s in plan.transition.steps]
        assert [s.command for s in plan.after_verified] == ["{composer} global update"]
        assert plan.after_verified[0].on_failure is CONTINUE
        assert plan.after_verified[0].timeout == ctx.settings.composer_timeout

    def test_composer_skipped_when_missing(self, ctx, fake_brew):
        ctx.settings = replace(ctx.settings, auto_composer_update_after_switch=True)
        fake_brew.composer_installed = False
        assert switch_version(ctx, version="8.1").after_verified == ()

    def test_uninstalled_version_unavailable(self, ctx):
        with pytest.raises(TransitionUnavailableError, match="7.4"):
            switch_version(ctx, version="7.4")

    def test_version_required(self, ctx):
        with pytest.raises(TransitionUnavailableError):
            switch_version(ctx)


class TestOtherTransitions:
    def test_restart_php_uses_active_formula(self, ctx):
        plan = plan_transition(TransitionKind.RESTART_PHP_FPM, ctx)
        assert plan.transition.steps[0].command == "{brew} services restart php@8.2"
        assert plan.postcondition.running == ("php@8.2",)

    def test_restart_all_tolerates_failures(self, ctx):
        plan = plan_transition(TransitionKind.RESTART_ALL, ctx)
        assert [s.on_failure for s in plan.transition.steps] == [CONTINUE] * 3

    def test_stop_all_expects_stopped(self, ctx):
        plan = plan_transition(TransitionKind.STOP_ALL, ctx)
        assert set(plan.postcondition.stopped) == {"php@8.2", "nginx", "dnsmasq"}

    def test_fix_permissions_single_elevated_step(self, ctx):
        plan = fix_permissions(ctx)
        (step,) = plan.transition.steps

        assert step.privilege is Privilege.ELEVATED
        assert step.on_failure is ABORT
        assert "{brew} services stop nginx" in step.command
        assert "chown -R {whoami}:staff {cellar}/php@8.1" in step.command
        assert step.command.endswith("{cellar}/php")

    def test_composer_update_unavailable_when_missing(self, ctx, fake_brew):
        fake_brew.composer_installed = False
        with pytest.raises(TransitionUnavailableError):
            plan_transition(TransitionKind.COMPOSER_UPDATE, ctx)

    def test_composer_update_timeout(self, ctx):
        plan = plan_transition(TransitionKind.COMPOSER_UPDATE, ctx)
        assert plan.transition.steps[0].timeout == 900.0

    def test_phpinfo_plan(self, ctx):
        plan = plan_transition(TransitionKind.PHPINFO, ctx)
        assert plan.before is phpinfo.write_phpinfo_script
        assert plan.artifacts["phpinfo"].endswith("valet_doctor_phpinfo.html")
        assert "php-cgi" in plan.transition.steps[0].command

    def test_toggle_extension_restarts_php(self, ctx):
        plan = plan_transition(TransitionKind.TOGGLE_EXTENSION, ctx, name="XDEBUG")

        assert plan.transition.idempotent is False
        assert plan.transition.description == "Enable xdebug"
        assert plan.transition.steps[0].command == "{brew} services restart php@8.2"
        assert callable(plan.before)

    def test_toggle_extension_without_restart(self, ctx):
        ctx.settings = replace(ctx.settings, auto_restart_after_extension_toggle=False)
        plan = plan_transition(TransitionKind.TOGGLE_EXTENSION, ctx, name="redis")
        assert plan.transition.steps == ()
        assert plan.transition.description == "Disable redis"

    def test_toggle_unknown_extension(self, ctx):
        with pytest.raises(TransitionUnavailableError, match="imagick"):
            plan_transition(TransitionKind.TOGGLE_EXTENSION, ctx, name="imagick")

    def test_reload_has_no_steps(self, ctx):
        plan = plan_transition("reload", ctx)
        assert plan.transition.steps == ()
        assert plan.postcondition is None


class TestDispatch:
    def test_unknown_kind(self, ctx):
        with pytest.raises(UnknownTransitionError):
            plan_transition("make_coffee", ctx)

    def test_bad_parameters(self, ctx):
        with pytest.raises(TransitionUnavailableError):
            plan_transition(TransitionKind.RESTART_NGINX, ctx, version="8.1")
