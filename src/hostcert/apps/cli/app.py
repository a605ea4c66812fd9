from __future__ import annotations

from functools import wraps
from pathlib import Path
from typing import Optional
import os
import traceback

import typer

from hostcert.build_info import BUILD_INFO
from hostcert.services.crypto import pki
from hostcert.services.logging import setup_logging
from hostcert.services.settings import Settings
from hostcert.services.ssl.enums import Action
from hostcert.services.ssl.errors import SslError
from hostcert.services.ssl.models import ActionResult
from hostcert.services.ssl.orchestrator import EnrollmentOrchestrator

app = typer.Typer(help="Manage SSL keys and certificates for hostcert agents.", no_args_is_help=True)

_ACTIONS = ", ".join(action.value for action in Action)


def _run_safe(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception:
            if os.getenv("HOSTCERT_CLI_DEBUG") == "1":
                traceback.print_exc()
            raise

    return wrapper


def _print_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)


def _fail(message: str, exit_code: int) -> None:
    if os.getenv("HOSTCERT_CLI_DEBUG") == "1":
        traceback.print_exc()
    _print_error(message)
    raise typer.Exit(exit_code)


def _orchestrator(settings: Settings) -> EnrollmentOrchestrator:
    return EnrollmentOrchestrator.from_settings(settings)


def _resolve_settings(config: Optional[Path], target: Optional[str]) -> Settings:
    settings = Settings.from_sources(config_path=config)
    if target:
        settings = settings.for_target(target)
    return settings


@app.callback()
def _root() -> None:
    """hostcert command line."""


@app.command("ssl")
@_run_safe
def ssl_command(
    action: str = typer.Argument(..., help=f"One of: {_ACTIONS}."),
    target: Optional[str] = typer.Option(
        None,
        "--target",
        help="Manage the certificate of CERTNAME instead of this host's, stored under the device directory.",
    ),
    localca: bool = typer.Option(False, "--localca", help="Also remove the local CA certificate and CRL on clean."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO level."),
    debug: bool = typer.Option(False, "--debug", "-d", help="Log at DEBUG level."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to hostcert.yaml."),
) -> None:
    """Run an SSL ACTION: bootstrap, submit_request, download_cert, verify or clean."""
    try:
        parsed = Action.parse(action)
        settings = _resolve_settings(config, target)
        setup_logging(
            verbose=verbose or parsed is Action.BOOTSTRAP,
            debug=debug,
            log_file=settings.log_file,
        )
        orchestrator = _orchestrator(settings)
        result = orchestrator.run(parsed, settings.certname, local_ca=localca)
    except SslError as exc:
        _fail(str(exc), exc.exit_code)
    except OSError as exc:
        _fail(str(exc), 1)
    _echo_result(result, orchestrator.endpoint)


@app.command("version")
def version() -> None:
    """Print the hostcert version."""
    typer.echo(BUILD_INFO.version)


def _echo_result(result: ActionResult, endpoint: str) -> None:
    if result.action is Action.VERIFY:
        for entry in result.verified:
            typer.echo(f"Verified {entry.label} '{entry.subject}' fingerprint {entry.fingerprint}")
        return
    if result.action is Action.CLEAN:
        for artifact in result.removed:
            typer.echo(f"Removed {artifact.label} {artifact.path}")
        return

    if result.action is Action.SUBMIT_REQUEST:
        typer.echo(f"Submitted certificate request for '{result.identity}' to {endpoint}")
    if result.pending:
        typer.echo(f"The certificate for '{result.identity}' has not yet been signed")
        return
    if result.certificate is None:
        return
    if result.action is Action.BOOTSTRAP:
        typer.secho("Completed SSL initialization", fg=typer.colors.GREEN)
        typer.echo(f"Certificate '{result.identity}' fingerprint {pki.fingerprint(result.certificate)}")
        return
    typer.echo(
        f"Downloaded certificate '{result.identity}' with fingerprint {pki.fingerprint(result.certificate)}"
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
