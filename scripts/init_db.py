"""Create the one-time link tables, retrying while the database starts up."""

import time
from typing import Callable

from scripts._path import add_root

add_root()

from core.env_utils import load_dotenv_if_available  # noqa: E402
from core.logging import get_logger  # noqa: E402

load_dotenv_if_available()

from sqlalchemy.exc import OperationalError  # noqa: E402

from database import Base, engine  # noqa: E402
import models  # noqa: E402,F401

logger = get_logger(__name__)


def _retry(operation: Callable[[], None], *, retries: int = 7, delay: float = 3.0) -> None:
    for attempt in range(1, retries + 1):
        try:
            operation()
            return
        except OperationalError as exc:
            if attempt == retries:
                raise
            logger.warning(
                "Database not ready yet (attempt %d/%d). Retrying in %.1f seconds: %s",
                attempt,
                retries,
                delay,
                exc,
            )
            time.sleep(delay)


def _create_tables() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("Ensured tables: %s", ", ".join(sorted(Base.metadata.tables)))


def main() -> None:
    _retry(_create_tables)


if __name__ == "__main__":
    main()
