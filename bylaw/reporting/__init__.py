"""Renderers for compliance run reports."""

from __future__ import annotations

from .json_report import render_json, render_json_summary
from .markdown import render_markdown
from .sarif import SarifBuilder

__all__ = ["SarifBuilder", "render_json", "render_json_summary", "render_markdown"]
