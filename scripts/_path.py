"""Make the repository root importable when a script is run by path."""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent


def add_root() -> None:
    """Prepend the repository root to ``sys.path`` if it is missing."""

    root_str = str(REPO_ROOT)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)
