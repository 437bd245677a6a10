"""Confirmation gate: decides whether each sub-step runs."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Tuple

import sh
import typer

from postsetup.config import Tier
from postsetup.errors import ActionFailed, BackupFailed, PostSetupError
from postsetup.utils import backup_file, log_action, log_error, log_info
from postsetup.variables import Variables

AFFIRMATIVE = ("y", "yes")

# Failures a sub-step action may raise; anything else is a bug and propagates.
STEP_ERRORS = (sh.ErrorReturnCode, sh.CommandNotFound, OSError, PostSetupError)


@dataclass(frozen=True)
class RunContext:
    """Settings fixed for the whole run."""

    interactive: bool = False
    variables: Variables = field(default_factory=Variables)


@dataclass(frozen=True)
class SubStep:
    """A single unit of work the user is asked to confirm."""

    description: str
    action: Callable[[], None]
    backup: Tuple[Path, ...] = ()

    def execute(self) -> None:
        for target in self.backup:
            try:
                backup_file(target)
            except BackupFailed as e:
                log_error(str(e))
        self.action()


def is_affirmative(answer: str) -> bool:
    return answer.strip().lower() in AFFIRMATIVE


def ask(question: str, default: str = "yes") -> bool:
    """Prompt on the console; an empty answer takes the default."""
    return is_affirmative(typer.prompt(question, default=default))


def resolve_interactive_mode() -> bool:
    """Ask once whether every sub-step should be confirmed."""
    return ask("Run in interactive mode?")


def apply_step(ctx: RunContext, step: SubStep, tier: Tier) -> bool:
    """Run ``step`` after confirmation; returns False when the user skipped it."""
    if ctx.interactive and not ask(f"Apply {step.description}?"):
        log_info(f"Skipped {step.description}.")
        return False

    log_action(f"Applying {step.description}...")
    try:
        step.execute()
    except STEP_ERRORS as e:
        raise ActionFailed(step.description, tier, e) from e
    return True
