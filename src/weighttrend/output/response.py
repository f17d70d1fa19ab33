"""JSON envelope printed by every CLI command run with ``--json``."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

SCHEMA_VERSION = "1.0"


@dataclass
class CommandResponse:
    """One command's outcome.

    ``data`` holds the command payload (for ``trend show`` the full
    ``get_trend`` result); ``human_summary`` is the line a person would
    have seen without ``--json``.
    """

    success: bool
    command: str
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    human_summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["generated_at"] = datetime.now(timezone.utc).isoformat()
        payload["schema_version"] = SCHEMA_VERSION
        return payload

    def to_json(self, indent: int = 2) -> str:
        # Dates inside payloads are rendered as ISO strings
        return json.dumps(self.to_dict(), indent=indent, default=str)


def success_response(
    command: str,
    data: Optional[dict[str, Any]] = None,
    warnings: Optional[list[str]] = None,
    human_summary: str = "",
) -> CommandResponse:
    """Envelope for a command that did its job (possibly with warnings)."""
    return CommandResponse(
        success=True,
        command=command,
        data=dict(data or {}),
        warnings=list(warnings or []),
        human_summary=human_summary,
    )


def error_response(
    command: str,
    error: str,
    suggestions: Optional[list[str]] = None,
) -> CommandResponse:
    """Envelope for a failed command; the CLI exits with status 1 after printing it."""
    return CommandResponse(
        success=False,
        command=command,
        errors=[error],
        suggestions=list(suggestions or []),
        human_summary=f"Error: {error}",
    )
