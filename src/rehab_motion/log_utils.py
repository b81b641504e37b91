import logging

_level = logging.INFO


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.hasHandlers():
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(_level)
    return logger


def set_log_level(level: str) -> None:
    """Apply a level to every rehab_motion logger, including ones created later."""
    global _level
    _level = logging.getLevelName(level.upper())
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("rehab_motion") and isinstance(logger, logging.Logger):
            logger.setLevel(_level)
