# notifier/logging_config.py
import logging
import logging.config
import sys
from typing import Any, Dict


def setup_logging(level: str = "INFO") -> logging.Logger:
    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "simple",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "": {"level": level, "handlers": ["console"]},
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
        },
    }
    logging.config.dictConfig(config)

    # SDKs are chatty at INFO
    for noisy in ("azure", "uamqp", "httpx", "apscheduler.executors"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger("notifier")
    logger.info("Logging configured with level %s", level)
    return logger
