"""Logging configuration for the kubecheck package."""
import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

NOISY_LOGGERS = ('urllib3', 'kubernetes')


def setup_logging(debug_mode: bool = False, level: str = "INFO") -> None:
    """Configure logging based on debug mode.

    Args:
        debug_mode: Log everything at DEBUG, including client libraries
        level: Level name used when not debugging
    """
    log_level = logging.DEBUG if debug_mode else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler()
        ]
    )
    logging.getLogger().setLevel(log_level)
    # Disable debug logging for noisy libraries
    if not debug_mode:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
