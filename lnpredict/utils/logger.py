# lnpredict/utils/logger.py

import logging
import sys


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Create a logger writing to stdout.

    The handler lives on the top-level package logger only; module loggers
    such as `lnpredict.pipeline` propagate to it, so each record is written once.
    """
    package = logging.getLogger(name.split(".")[0])
    if not package.handlers:
        package.setLevel(level)
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        fmt = logging.Formatter(
            "[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(fmt)
        package.addHandler(handler)
    return logging.getLogger(name)
