"""Command frame parsing and response formatting for the handler protocol.

Command frames have the form::

    ["$"] "<<" [site | "*"] "%" CommandName "%" [body] [">>" | "%*>>"]

and responses the form::

    "<<" site "%" RESPONSE-NAME "%" field=value[;field=value...] ">>"
"""

from __future__ import annotations

from dataclasses import dataclass

from odssim_core.errors import ProtocolError

SENTINEL = "$"
FRAME_START = "<<"
FRAME_END = ">>"
WILDCARD_END = "%*>>"
SEPARATOR = "%"
WILDCARD_SITE = "*"


@dataclass(frozen=True)
class CommandFrame:
    """A parsed command frame.

    Attributes:
        site: Site token as sent (a site number or ``"*"``), or None if the
            frame carried no site token.
        name: Command name (e.g. ``"GetDUTInfo"``).
        body: Command body with the frame terminator removed.
    """

    site: str | None
    name: str
    body: str = ""

    @property
    def is_wildcard(self) -> bool:
        """True if the site is ``"*"`` or absent."""
        return self.site is None or self.site == WILDCARD_SITE


def parse_frame(text: str) -> CommandFrame:
    """Parse a trimmed command string into a CommandFrame.

    Args:
        text: Raw command text, optionally prefixed with ``$``.

    Returns:
        The parsed frame.

    Raises:
        ProtocolError: If the text is not a command frame.
    """
    line = text.strip().lstrip(SENTINEL).strip()
    if not line.startswith(FRAME_START):
        raise ProtocolError(f"Frame must start with {FRAME_START!r}: {text!r}")

    inner = line[len(FRAME_START) :]
    if inner.endswith(WILDCARD_END):
        inner = inner[: -len(WILDCARD_END)]
    elif inner.endswith(FRAME_END):
        inner = inner[: -len(FRAME_END)]

    parts = inner.split(SEPARATOR, 2)
    if len(parts) < 2 or not parts[1].strip():
        raise ProtocolError(f"Frame has no command name: {text!r}")

    site = parts[0].strip() or None
    body = parts[2].strip() if len(parts) == 3 else ""
    return CommandFrame(site=site, name=parts[1].strip(), body=body)


def parse_params(body: str) -> dict[str, str]:
    """Parse a ``KEY=VALUE;KEY=VALUE`` body.

    Segments without ``=`` are ignored. A repeated key keeps its last value.
    """
    params: dict[str, str] = {}
    for segment in body.split(";"):
        key, sep, value = segment.partition("=")
        if sep and key.strip():
            params[key.strip()] = value.strip()
    return params


def format_fields(fields: dict[str, object]) -> str:
    """Render ``field=value`` pairs joined with ``;``."""
    return ";".join(f"{key}={value}" for key, value in fields.items())


def format_response(site: str, name: str, payload: str) -> str:
    """Build a response frame.

    Args:
        site: Site token to echo (``"*"`` for site-independent replies).
        name: Upper-case response name (e.g. ``"GETDUTINFO"``).
        payload: Response payload, usually from :func:`format_fields`.

    Returns:
        The framed response without a line terminator.
    """
    return f"{FRAME_START}{site}{SEPARATOR}{name}{SEPARATOR}{payload}{FRAME_END}"
