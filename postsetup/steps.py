"""Post-setup workflow steps."""
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Union

from postsetup.config import ConfigFile, Tier, load_config
from postsetup.dispatch import lookup
from postsetup.errors import ActionFailed
from postsetup.gate import RunContext, SubStep, apply_step, resolve_interactive_mode
from postsetup.handlers import HANDLERS, run_handler
from postsetup.utils import log_debug, log_error, log_info
from postsetup.variables import (
    Assignment,
    HandlerDirective,
    TrustedCommand,
    bind_variables,
    classify,
    split_assignment,
)


@dataclass
class RunSummary:
    standard_applied: List[str] = field(default_factory=list)
    standard_skipped: List[str] = field(default_factory=list)
    optional_applied: List[str] = field(default_factory=list)
    optional_skipped: List[str] = field(default_factory=list)
    optional_failed: List[str] = field(default_factory=list)
    disabled: List[str] = field(default_factory=list)


@contextmanager
def exit_finalizer() -> Iterator[None]:
    """Log a closing line however the run ends."""
    try:
        yield
    finally:
        log_info("Post-setup run finished.")


def apply_standard_configs(ctx: RunContext, config: ConfigFile, summary: RunSummary) -> None:
    """Run every STANDARD declaration. Any failure propagates and ends the run."""
    log_info("Applying standard configurations...")
    for declaration in config.standard:
        action = classify(declaration)
        if isinstance(action, Assignment):
            log_debug(f"Bound {action.key}")
        elif isinstance(action, HandlerDirective):
            if run_handler(ctx, HANDLERS[action.kind], Tier.STANDARD):
                summary.standard_applied.append(action.kind.value)
            else:
                summary.standard_skipped.append(action.kind.value)
        elif isinstance(action, TrustedCommand):
            if apply_step(ctx, SubStep(f"running `{action.command}`", action), Tier.STANDARD):
                summary.standard_applied.append(action.command)
            else:
                summary.standard_skipped.append(action.command)
        else:
            raise ActionFailed(
                f"unknown directive `{action.text}` on line {declaration.line_number}",
                Tier.STANDARD,
            )


def process_optional_configs(ctx: RunContext, config: ConfigFile, summary: RunSummary) -> None:
    """Run the handler of every enabled OPTIONAL flag, carrying on past failures."""
    log_info("Processing optional configurations...")
    for declaration in config.optional:
        assignment = split_assignment(declaration.text)
        if assignment is None:
            log_debug(f"Ignoring optional directive: {declaration.text}")
            continue

        flag = assignment[0]
        handler = lookup(flag)
        if handler is None:
            log_debug(f"No handler for {flag}, skipping.")
            continue
        if not ctx.variables.flag(flag):
            log_debug(f"{flag} is not enabled, skipping.")
            continue

        try:
            applied = run_handler(ctx, handler, Tier.OPTIONAL)
        except ActionFailed as e:
            log_error(str(e))
            summary.optional_failed.append(flag)
            continue
        if applied:
            summary.optional_applied.append(flag)
        else:
            summary.optional_skipped.append(flag)


def log_disabled_configs(config: ConfigFile, summary: RunSummary) -> None:
    log_info("Skipping disabled configurations...")
    for declaration in config.disabled:
        log_info(f"Disabled: {declaration.text}")
        summary.disabled.append(declaration.text)


def provision_host(config_path: Union[str, Path]) -> RunSummary:
    """Main post-setup workflow: load, bind, confirm and apply every tier in turn."""
    config = load_config(config_path)
    variables = bind_variables(config)
    log_debug(f"Loaded {len(config.declarations)} declarations from {config_path}")

    ctx = RunContext(interactive=resolve_interactive_mode(), variables=variables)
    summary = RunSummary()

    log_info("Starting post-setup script...")
    apply_standard_configs(ctx, config, summary)
    process_optional_configs(ctx, config, summary)
    log_disabled_configs(config, summary)

    log_info(
        f"Standard: {len(summary.standard_applied)} applied, {len(summary.standard_skipped)} skipped. "
        f"Optional: {len(summary.optional_applied)} applied, {len(summary.optional_skipped)} skipped, "
        f"{len(summary.optional_failed)} failed. "
        f"Disabled: {len(summary.disabled)}."
    )
    return summary
