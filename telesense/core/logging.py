import logging
import sys

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def setup_logging(level: str | int = logging.INFO, name: str = "telesense") -> logging.Logger:
    """Attach a single stdout handler to the package logger.

    Gunicorn / uvicorn capture stdout, so there is no file handler. Safe to
    call more than once: handlers are only added the first time.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    return logger
