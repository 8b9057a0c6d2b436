"""
Project-level incremental render pipeline for multi-file document projects.

Modules are structured to separate configuration loading, input discovery,
per-input index caching, render orchestration, output relocation, and the
library freezer. See `render_project.py` for the primary CLI.
"""

from __future__ import annotations

# Project-local scratch area (index cache, hidden freezer).
SCRATCH_DIR = ".project"

__all__ = ["SCRATCH_DIR"]
