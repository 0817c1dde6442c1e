import logging
import sys
import uuid
from datetime import datetime, timezone

from .config import get_config


def new_uuid() -> str:
    return str(uuid.uuid4())


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def setup_logging() -> None:
    """Configure the root logger from the ``logging.level`` setting."""
    config = get_config()

    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    level = level_map.get(config.logging.level.lower(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("uvicorn").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if level == logging.DEBUG else logging.WARNING
    )

    logging.getLogger(__name__).info("Logging configured at level: %s", config.logging.level)
