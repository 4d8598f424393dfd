"""Command hierarchy groups for organized CLI experience.

Provides logical grouping of commands under:
  tg config   — Crawler configuration
  tg watch    — Live re-crawling on file changes
"""

from __future__ import annotations

import typer

# ── Configuration group ──────────────────────────────────────
config_grp = typer.Typer(
    help="⚙️  Configuration — exclude patterns, retries and debounce.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
