import logging
import logging.config
from typing import Union

from multitransfer.logger import MultiTransferLogger  # noqa: F401  registers the logger class

__version__ = "0.1.0"

LOG_FORMAT = "%(asctime)s - %(process)d - %(name)s - %(levelname)s - %(message)s"


def init_logging(level: Union[int, str] = logging.INFO, log_format: str = LOG_FORMAT):
    """
    Configure the root logger for multitransfer processes.

    Library code never calls this; it is intended for entry points such as the CLI.
    """
    if isinstance(level, str):
        level = level.upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {"format": log_format},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "simple",
                "stream": "ext://sys.stderr",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "web3": {"level": "WARNING"},
            "urllib3": {"level": "WARNING"},
        },
    })
