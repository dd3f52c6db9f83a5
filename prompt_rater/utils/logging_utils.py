import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level_name: str = "INFO") -> None:
    """
    Configure root logging for the service.

    Args:
        level_name: The logging level (e.g., "DEBUG", "INFO"). Unknown names fall back to INFO.
    """
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)

    # SQL echo is controlled by the engine's echo flag, not the root level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
