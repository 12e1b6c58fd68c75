import logging
from typing import Optional

from infra.config import load_config


_logger: Optional[logging.Logger] = None


def get_logger(name: str = "conciliacao") -> logging.Logger:
    global _logger
    if _logger is not None:
        return _logger

    try:
        nivel = load_config().log.nivel.upper()
    except FileNotFoundError:
        nivel = "INFO"

    logger = logging.getLogger(name)
    logger.setLevel(nivel)

    ch = logging.StreamHandler()
    ch.setLevel(nivel)
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    _logger = logger
    return logger
