import logging

from billscan.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d - %(message)s"

logger = logging.getLogger("billscan")


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Root logging setup; safe to call more than once (basicConfig is a no-op after the first)."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.setLevel(level)
