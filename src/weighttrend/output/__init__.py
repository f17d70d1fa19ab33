"""Machine-readable CLI output."""

from __future__ import annotations

from weighttrend.output.response import CommandResponse, success_response, error_response

__all__ = ["CommandResponse", "success_response", "error_response"]
