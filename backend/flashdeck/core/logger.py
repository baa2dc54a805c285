import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import get_config


class HealthCheckFilter(logging.Filter):
    """Drops uvicorn access lines for load balancer health probes."""

    def filter(self, record: logging.LogRecord) -> bool:
        return "GET /health" not in record.getMessage()


def setup_logging() -> None:
    config = get_config().logging
    level = getattr(logging, config.level.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(log_file, maxBytes=config.max_bytes, backupCount=config.backup_count)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [file_handler, console_handler]

    # Review transitions are logged at DEBUG; SQL echo stays off unless asked for
    logging.getLogger("flashdeck").setLevel(getattr(logging, config.flashdeck_level.upper(), level))
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())
