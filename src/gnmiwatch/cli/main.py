"""CLI entry-point: Click command group and dispatch."""

from __future__ import annotations

import dataclasses
import logging

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler

from gnmiwatch.errors import ConfigError
from gnmiwatch.models.config import AppSettings
from gnmiwatch.output.formatter import OutputFormatter

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "grpc")

# ---------------------------------------------------------------------------
# Application context (stored in ctx.obj)
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class AppContext:
    """Shared state passed to every Click command via ``@click.pass_obj``."""

    output_format: str | None
    verbose: bool
    settings: AppSettings = dataclasses.field(default_factory=AppSettings)
    _formatter: OutputFormatter | None = dataclasses.field(default=None, repr=False)

    @property
    def formatter(self) -> OutputFormatter:
        if self._formatter is None:
            self._formatter = OutputFormatter(force_format=self.output_format)
        return self._formatter


def configure_logging(verbose: bool) -> None:
    """Send log records to stderr through Rich; DEBUG when *verbose*."""
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        root.addHandler(handler)
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Root Click group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["rich", "json"]),
    default=None,
    help="Output format (default: auto-detect)",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, output_format: str | None, verbose: bool) -> None:
    """Stream gNMI telemetry from network devices and serve it over HTTP."""
    configure_logging(verbose)
    ctx.obj = AppContext(output_format=output_format, verbose=verbose)


def _register_commands() -> None:
    from gnmiwatch.cli.serve import serve_cmd
    from gnmiwatch.cli.status import status_cmd

    cli.add_command(serve_cmd)
    cli.add_command(status_cmd)


_register_commands()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and dispatch to the appropriate command handler."""
    try:
        cli(args=argv, standalone_mode=False)
    except click.exceptions.Exit as exc:
        raise SystemExit(exc.exit_code) from None
    except click.exceptions.Abort:
        raise SystemExit(1) from None
    except click.ClickException as exc:
        exc.show()
        raise SystemExit(exc.exit_code) from None
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except SystemExit:
        raise
    except Exception as exc:
        app_ctx, command = _failed_command()
        formatter = app_ctx.formatter if app_ctx else OutputFormatter()
        formatter.output_error(code=_error_code(exc), message=str(exc), command=command)
        raise SystemExit(1) from exc


# ---------------------------------------------------------------------------
# Helpers for error handling
# ---------------------------------------------------------------------------


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ConfigError):
        return "config_error"
    if isinstance(exc, httpx.HTTPError):
        return "connection_error"
    return type(exc).__name__


def _failed_command() -> tuple[AppContext | None, str]:
    """The innermost AppContext and the dotted subcommand name, if a context is live."""
    app_ctx: AppContext | None = None
    names: list[str] = []
    ctx = click.get_current_context(silent=True)
    while ctx is not None:
        if app_ctx is None and isinstance(ctx.obj, AppContext):
            app_ctx = ctx.obj
        if ctx.parent is not None and ctx.info_name:
            names.append(ctx.info_name)
        ctx = ctx.parent
    return app_ctx, ".".join(reversed(names)) or "unknown"
