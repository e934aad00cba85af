import logging

from ._config import RuntimeConfig, get_config

_ROOT = "fastumap"


def apply_log_level(config: RuntimeConfig | None = None) -> None:
    """
    Set the level of the root "fastumap" logger from `FASTUMAP_LOG_LEVEL`.
    """
    cfg = get_config() if config is None else config
    level = getattr(logging, cfg.log_level, logging.WARNING)
    logging.getLogger(_ROOT).setLevel(level)


def get_logger(name: str = _ROOT) -> logging.Logger:
    """
    Return a logger below the package root logger.

    The root "fastumap" logger gets a single stream handler the first time any
    logger is requested; its level follows `FASTUMAP_LOG_LEVEL`. Modules pass
    a fixed dotted name such as "fastumap.backends.registry".
    """
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("[%(asctime)s][%(levelname)s][%(name)s] %(message)s")
        handler.setFormatter(formatter)
        root.addHandler(handler)
    apply_log_level()

    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
