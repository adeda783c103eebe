import logging
import logging.config
import os


class PrefixFormatter(logging.Formatter):
    """Marks warnings and errors so they stand out in a busy console."""

    def format(self, record):
        line = super().format(record)
        if record.levelno >= logging.ERROR:
            return "⛔ " + line
        if record.levelno == logging.WARNING:
            return "⚠️ " + line
        return line


def setup_logging(level: str | None = None) -> logging.Logger:
    level_name = (level or os.getenv("LOG_LEVEL", "info")).upper()
    loglevel = getattr(logging, level_name, logging.INFO)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "()": PrefixFormatter,
                "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": loglevel,
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": loglevel,
        },
    }

    logging.config.dictConfig(logging_config)

    # PIL's plugin chatter is noise at debug level
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.DEBUG if loglevel == logging.DEBUG else logging.WARNING)

    return logging.getLogger("profea")
