"""Helpers for loading optional .env files and validating required variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from core.logging import get_logger

logger = get_logger(__name__)


def load_dotenv_if_available(path: Path | None = None) -> bool:
    """Load environment variables from a .env file when the file exists.

    Already-exported variables win over the file. Returns True when a file was read.
    """

    env_path = path or Path(".env")
    if not env_path.exists():
        return False
    loaded = load_dotenv(dotenv_path=env_path, override=False)
    logger.debug("Loaded environment variables from %s", env_path)
    return bool(loaded)


def require_env_vars(required: Sequence[str], *, context: str | None = None) -> None:
    """Raise an error when one or more required environment variables are missing."""

    missing = [name for name in required if not os.getenv(name)]
    if not missing:
        return

    prefix = f"[{context}] " if context else ""
    raise RuntimeError(
        f"{prefix}Missing required environment variables: {', '.join(sorted(missing))}. "
        "Populate your .env or export them before starting the service."
    )


__all__ = ["load_dotenv_if_available", "require_env_vars"]
