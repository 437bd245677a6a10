"""CLI interface for the post-setup tool."""
import sys
from pathlib import Path
from typing import Optional

import typer

from . import steps
from . import utils
from .config import DEFAULT_CONFIG_PATH
from .errors import PostSetupError, PrivilegeError

# Exit status typer uses for usage errors such as an unknown option
USAGE_ERROR_EXIT_CODE = 2


def setup(
    config: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", envvar="POSTSETUP_CONFIG", help="Configuration file to apply"
    ),
    log_file: Optional[Path] = typer.Option(None, "--log-file", "-l", help="Append every log record to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Apply post-setup hardening and tooling to this host."""
    utils.setup_logging(verbose)

    with steps.exit_finalizer():
        try:
            if log_file:
                utils.add_log_file(log_file)
            if not utils.is_root():
                raise PrivilegeError("This script must be run as root. Run with sudo.")
            steps.provision_host(config)
        except PostSetupError as e:
            utils.log_error(str(e))
            raise typer.Exit(1)

        typer.echo("✅ Post-setup complete!")


app = typer.Typer(
    name="post-setup",
    help="A config-driven post-setup tool for freshly provisioned hosts.",
    add_completion=False,
    invoke_without_command=True,
    callback=setup,
)


def main() -> None:
    """Console entry point; usage errors exit with status 1."""
    try:
        app()
    except SystemExit as e:
        if e.code == USAGE_ERROR_EXIT_CODE:
            sys.exit(1)
        raise


if __name__ == "__main__":
    main()
