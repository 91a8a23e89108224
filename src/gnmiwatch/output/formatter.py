from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any

from rich.console import Console

from gnmiwatch.output.json_output import format_json_error, format_json_response
from gnmiwatch.output.rich_output import RichOutput

if TYPE_CHECKING:
    from io import TextIOBase


class OutputFormatter:
    """Picks JSON or Rich output.

    *force_format* wins; otherwise a TTY *stream* (default ``sys.stdout``)
    gets ``"rich"`` and anything piped or redirected gets ``"json"``.
    """

    def __init__(
        self,
        *,
        stream: TextIOBase | Any | None = None,
        force_format: str | None = None,
    ) -> None:
        self._stream = stream or sys.stdout
        if force_format is not None:
            self._format = force_format
        elif hasattr(self._stream, "isatty") and self._stream.isatty():
            self._format = "rich"
        else:
            self._format = "json"

        self._console = Console(file=self._stream) if stream is not None else Console()
        self._rich = RichOutput(self._console)

    @property
    def format(self) -> str:  # noqa: A003
        """Return the active output format (``"rich"`` or ``"json"``)."""
        return self._format

    @property
    def rich(self) -> RichOutput:
        return self._rich

    def output(self, data: Any, *, command: str) -> None:
        """Emit *data* as a JSON envelope, or as plain text in rich mode.

        Callers with typed data normally use :attr:`rich` directly.
        """
        if self._format == "json":
            rendered = format_json_response(data=data, command=command)
            print(rendered, file=self._stream)  # noqa: T201
        else:
            self._rich.info(str(data))

    def output_error(self, *, code: str, message: str, command: str) -> None:
        if self._format == "json":
            print(  # noqa: T201
                format_json_error(code=code, message=message, command=command),
                file=self._stream,
            )
        else:
            self._rich.error(message)
