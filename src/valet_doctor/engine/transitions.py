"""Transition catalog - Step lists for every orchestration the tool offers.

Each builder turns the current snapshot into a ``TransitionPlan``. The
plans are plain data; nothing here runs a command. ``TRANSITION_BUILDERS``
is the dispatch table the orchestrator looks kinds up in.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from valet_doctor.actions import phpinfo
from valet_doctor.actions.extensions import (
    ExtensionNotFoundError,
    find_extension,
    toggle_extension,
)
from valet_doctor.config import Paths, Settings
from valet_doctor.connector.shell import ShellConnector
from valet_doctor.engine.exceptions import TransitionUnavailableError, UnknownTransitionError
from valet_doctor.model.environment import EnvironmentSnapshot
from valet_doctor.model.transition import (
    FailurePolicy,
    PostCondition,
    Privilege,
    ServiceTransition,
    Step,
)

CONTINUE = FailurePolicy.CONTINUE
ABORT = FailurePolicy.ABORT


class TransitionKind(str, Enum):
    """Every transition the orchestrator can dispatch."""

    RESTART_PHP_FPM = "restart_php_fpm"
    RESTART_NGINX = "restart_nginx"
    RESTART_DNSMASQ = "restart_dnsmasq"
    RESTART_ALL = "restart_all"
    STOP_ALL = "stop_all"
    SWITCH_VERSION = "switch_version"
    FIX_MY_VALET = "fix_my_valet"
    FIX_PERMISSIONS = "fix_permissions"
    COMPOSER_UPDATE = "composer_update"
    PHPINFO = "phpinfo"
    TOGGLE_EXTENSION = "toggle_extension"
    RELOAD = "reload"


@dataclass
class TransitionContext:
    """What a builder may look at."""

    snapshot: EnvironmentSnapshot
    settings: Settings
    shell: ShellConnector

    @property
    def paths(self) -> Paths:
        return self.settings.paths


@dataclass
class TransitionPlan:
    """A transition plus what surrounds it.

    Attributes:
        transition: The steps to run.
        postcondition: State to verify afterwards, if any.
        before: Local preparation run under the busy gate before the steps.
        after_verified: Steps run only once the post-condition held.
        artifacts: Paths or URLs handed back on the report.
    """

    kind: TransitionKind
    transition: ServiceTransition
    postcondition: PostCondition | None = None
    before: Callable[[], Any] | None = None
    after_verified: tuple[Step, ...] = ()
    artifacts: dict[str, str] = field(default_factory=dict)


def brew_service(
    verb: str,
    formula: str,
    *,
    policy: FailurePolicy = CONTINUE,
    elevated: bool = True,
) -> Step:
    """``brew services <verb> <formula>``, elevated unless told otherwise."""
    return Step(
        command=f"{{brew}} services {verb} {formula}",
        privilege=Privilege.ELEVATED if elevated else Privilege.NORMAL,
        on_failure=policy,
        label=f"{verb} {formula}" + ("" if elevated else " (user)"),
    )


def _active_formula(ctx: TransitionContext) -> str:
    snapshot = ctx.snapshot
    version = snapshot.active.short_version or snapshot.brew_php_version
    if version is None:
        return "php"
    return snapshot.formula_for(version)


def _require_versions(ctx: TransitionContext) -> tuple[str, ...]:
    if not ctx.snapshot.available_versions:
        raise TransitionUnavailableError("No Homebrew PHP versions were detected")
    return ctx.snapshot.available_versions


# =========================================================================
# Services
# =========================================================================


def restart_php_fpm(ctx: TransitionContext) -> TransitionPlan:
    formula = _active_formula(ctx)
    return TransitionPlan(
        kind=TransitionKind.RESTART_PHP_FPM,
        transition=ServiceTransition(
            id="restart-php-fpm",
            steps=(brew_service("restart", formula, policy=ABORT),),
            description=f"Restart PHP-FPM ({formula})",
        ),
        postcondition=PostCondition(running=(formula,)),
    )


def restart_nginx(ctx: TransitionContext) -> TransitionPlan:
    return TransitionPlan(
        kind=TransitionKind.RESTART_NGINX,
        transition=ServiceTransition(
            id="restart-nginx",
            steps=(brew_service("restart", "nginx", policy=ABORT),),
            description="Restart nginx",
        ),
        postcondition=PostCondition(running=("nginx",)),
    )


def restart_dnsmasq(ctx: TransitionContext) -> TransitionPlan:
    return TransitionPlan(
        kind=TransitionKind.RESTART_DNSMASQ,
        transition=ServiceTransition(
            id="restart-dnsmasq",
            steps=(brew_service("restart", "dnsmasq", policy=ABORT),),
            description="Restart dnsmasq",
        ),
        postcondition=PostCondition(running=("dnsmasq",)),
    )


def restart_all(ctx: TransitionContext) -> TransitionPlan:
    formula = _active_formula(ctx)
    names = ("dnsmasq", formula, "nginx")
    return TransitionPlan(
        kind=TransitionKind.RESTART_ALL,
        transition=ServiceTransition(
            id="restart-all",
            steps=tuple(brew_service("restart", name) for name in names),
            description="Restart dnsmasq, PHP-FPM and nginx",
        ),
        postcondition=PostCondition(running=names),
    )


def stop_all(ctx: TransitionContext) -> TransitionPlan:
    formula = _active_formula(ctx)
    names = (formula, "nginx", "dnsmasq")
    return TransitionPlan(
        kind=TransitionKind.STOP_ALL,
        transition=ServiceTransition(
            id="stop-all",
            steps=tuple(brew_service("stop", name) for name in names),
            description="Stop PHP-FPM, nginx and dnsmasq",
        ),
        postcondition=PostCondition(stopped=names),
    )


# =========================================================================
# Versions
# =========================================================================


def switch_version(ctx: TransitionContext, version: str | None = None) -> TransitionPlan:
    """Unlink and stop every version, then link and start the target."""
    if not version:
        raise TransitionUnavailableError("A PHP version to switch to is required")
    versions = _require_versions(ctx)
    if version not in versions:
        raise TransitionUnavailableError(
            f"PHP {version} is not installed (available: {', '.join(versions)})"
        )

    snapshot = ctx.snapshot
    target = snapshot.formula_for(version)
    steps: list[Step] = []

    for v in versions:
        formula = snapshot.formula_for(v)
        steps.append(Step(f"{{brew}} unlink {formula}", label=f"unlink {formula}"))
    for v in versions:
        steps.append(brew_service("stop", snapshot.formula_for(v)))

    steps.append(Step(
        f"{{brew}} link {target} --overwrite --force",
        on_failure=ABORT,
        label=f"link {target}",
    ))
    steps.append(brew_service("start", target, policy=ABORT))
    steps.append(brew_service("restart", "nginx"))

    after: tuple[Step, ...] = ()
    if ctx.settings.auto_composer_update_after_switch and ctx.shell.file_exists(ctx.paths.composer):
        after = (Step(
            "{composer} global update",
            label="composer global update",
            timeout=ctx.settings.composer_timeout,
        ),)

    return TransitionPlan(
        kind=TransitionKind.SWITCH_VERSION,
        transition=ServiceTransition(
            id=f"switch-to-{version}",
            steps=tuple(steps),
            description=f"Switch to PHP {version}",
        ),
        postcondition=PostCondition(active_version=version, running=(target,)),
        after_verified=after,
    )


def fix_my_valet(ctx: TransitionContext) -> TransitionPlan:
    """Reset every version and bring Homebrew's default PHP back up."""
    versions = _require_versions(ctx)
    snapshot = ctx.snapshot
    default = snapshot.brew_php_version
    if default is None or default not in versions:
        raise TransitionUnavailableError(
            f"Homebrew's default PHP version ({default or 'unknown'}) is not installed"
        )

    steps: list[Step] = [brew_service("restart", "dnsmasq")]
    for v in versions:
        formula = snapshot.formula_for(v)
        steps.append(Step(f"{{brew}} unlink php@{v}", label=f"unlink php@{v}"))
        steps.append(brew_service("stop", formula, elevated=False))
        steps.append(brew_service("stop", formula))

    for name in ("dnsmasq", "php", "nginx"):
        steps.append(brew_service("stop", name, elevated=False))

    steps.append(Step("{brew} link php --overwrite --force", on_failure=ABORT, label="link php"))
    for name in ("dnsmasq", "php", "nginx"):
        steps.append(brew_service("restart", name, policy=ABORT))

    return TransitionPlan(
        kind=TransitionKind.FIX_MY_VALET,
        transition=ServiceTransition(
            id="fix-my-valet",
            steps=tuple(steps),
            description=f"Fix My Valet (link PHP {default}, restart services)",
        ),
        postcondition=PostCondition(
            active_version=default,
            running=("dnsmasq", "php", "nginx"),
        ),
    )


def fix_permissions(ctx: TransitionContext) -> TransitionPlan:
    """Stop services and give the Cellar folders back to the current user.

    Runs as one elevated step so the user sees a single prompt.
    """
    snapshot = ctx.snapshot
    formulae = ["nginx", "dnsmasq"] + [snapshot.formula_for(v) for v in snapshot.available_versions]

    services = [f"{{brew}} services stop {f}" for f in formulae]
    cellar = [f"chown -R {{whoami}}:staff {{cellar}}/{f}" for f in formulae]

    return TransitionPlan(
        kind=TransitionKind.FIX_PERMISSIONS,
        transition=ServiceTransition(
            id="fix-permissions",
            steps=(Step(
                " && ".join(services + cellar),
                privilege=Privilege.ELEVATED,
                on_failure=ABORT,
                label="stop services and chown Cellar folders",
            ),),
            description="Fix Homebrew permissions",
        ),
    )


# =========================================================================
# Tools
# =========================================================================


def composer_update(ctx: TransitionContext) -> TransitionPlan:
    if not ctx.shell.file_exists(ctx.paths.composer):
        raise TransitionUnavailableError(f"Composer was not found at {ctx.paths.composer}")
    return TransitionPlan(
        kind=TransitionKind.COMPOSER_UPDATE,
        transition=ServiceTransition(
            id="composer-global-update",
            steps=(Step(
                "{composer} global update",
                on_failure=ABORT,
                label="composer global update",
                timeout=ctx.settings.composer_timeout,
            ),),
            description="Update global Composer dependencies",
        ),
    )


def render_phpinfo(ctx: TransitionContext) -> TransitionPlan:
    return TransitionPlan(
        kind=TransitionKind.PHPINFO,
        transition=ServiceTransition(
            id="phpinfo",
            steps=(Step(phpinfo.render_command(), on_failure=ABORT, label="php-cgi phpinfo()"),),
            description="Render phpinfo()",
        ),
        before=phpinfo.write_phpinfo_script,
        artifacts={"phpinfo": phpinfo.output_url()},
    )


def toggle_php_extension(ctx: TransitionContext, name: str | None = None) -> TransitionPlan:
    """Flip an extension, then restart PHP-FPM when configured to."""
    if not name:
        raise TransitionUnavailableError("An extension name is required")
    try:
        extension = find_extension(ctx.snapshot.active.extensions, name)
    except ExtensionNotFoundError as e:
        raise TransitionUnavailableError(str(e)) from e

    steps: tuple[Step, ...] = ()
    if ctx.settings.auto_restart_after_extension_toggle:
        steps = (brew_service("restart", _active_formula(ctx), policy=ABORT),)

    return TransitionPlan(
        kind=TransitionKind.TOGGLE_EXTENSION,
        transition=ServiceTransition(
            id=f"toggle-{extension.name}",
            steps=steps,
            idempotent=False,
            description=f"{'Disable' if extension.enabled else 'Enable'} {extension.name}",
        ),
        before=lambda: toggle_extension(extension),
    )


def reload(ctx: TransitionContext) -> TransitionPlan:
    """No steps; running it just re-probes the installation."""
    return TransitionPlan(
        kind=TransitionKind.RELOAD,
        transition=ServiceTransition(id="reload", description="Reload installation info"),
    )


Builder = Callable[..., TransitionPlan]

TRANSITION_BUILDERS: dict[TransitionKind, Builder] = {
    TransitionKind.RESTART_PHP_FPM: restart_php_fpm,
    TransitionKind.RESTART_NGINX: restart_nginx,
    TransitionKind.RESTART_DNSMASQ: restart_dnsmasq,
    TransitionKind.RESTART_ALL: restart_all,
    TransitionKind.STOP_ALL: stop_all,
    TransitionKind.SWITCH_VERSION: switch_version,
    TransitionKind.FIX_MY_VALET: fix_my_valet,
    TransitionKind.FIX_PERMISSIONS: fix_permissions,
    TransitionKind.COMPOSER_UPDATE: composer_update,
    TransitionKind.PHPINFO: render_phpinfo,
    TransitionKind.TOGGLE_EXTENSION: toggle_php_extension,
    TransitionKind.RELOAD: reload,
}


def plan_transition(kind: TransitionKind | str, ctx: TransitionContext, /, **params: Any) -> TransitionPlan:
    """Look the kind up in the dispatch table and build its plan.

    Raises:
        UnknownTransitionError: If the kind has no builder.
        TransitionUnavailableError: If the plan cannot be built right now.
    """
    try:
        kind = TransitionKind(kind)
    except ValueError as e:
        raise UnknownTransitionError(f"Unknown transition '{kind}'") from e

    builder = TRANSITION_BUILDERS.get(kind)
    if builder is None:
        raise UnknownTransitionError(f"No builder registered for '{kind.value}'")
    try:
        return builder(ctx, **params)
    except TypeError as e:
        raise TransitionUnavailableError(f"Invalid parameters for {kind.value}: {e}") from e
