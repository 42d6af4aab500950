"""Logging setup for scripts and hosting processes.

Library modules only create module-level loggers; whoever runs the pipeline
calls configure_logging once at startup.
"""

import logging

from taxdocs.shared.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "PIL")


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Application settings providing log_level
    """
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, force=True)
    if settings.log_level != "DEBUG":
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
