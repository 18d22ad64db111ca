"""Delete one-time links whose expiry has passed."""

from __future__ import annotations

import argparse

from scripts._path import add_root

add_root()

from core.env_utils import load_dotenv_if_available, require_env_vars  # noqa: E402
from core.logging import get_logger  # noqa: E402

load_dotenv_if_available()

from services.onelink.facade import build_default_service  # noqa: E402

logger = get_logger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.parse_args(argv)

    require_env_vars(["ONELINK_ENCRYPTION_KEY"], context="purge_expired_links")
    removed = build_default_service().purge_expired()
    logger.info("Removed %d expired link(s).", removed)
    print(f"Removed {removed} expired link(s).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
