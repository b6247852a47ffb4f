import logging
import logging.handlers
from pathlib import Path
from typing import Optional

# Global logging configuration, applied to loggers created afterwards
_log_config = {
    "level": "INFO",
    "log_dir": "logs",
    "log_to_file": False,
}


def configure_logging(log_level: str = "INFO", log_dir: str = "logs", log_to_file: bool = True):
    """Set global logging parameters and re-apply them to the package loggers created so far"""
    _log_config.update({
        "level": log_level,
        "log_dir": log_dir,
        "log_to_file": log_to_file,
    })
    for name, existing in list(logging.Logger.manager.loggerDict.items()):
        if not name.startswith("reportsync") or not isinstance(existing, logging.Logger):
            continue
        for handler in list(existing.handlers):
            existing.removeHandler(handler)
            handler.close()
        setup_logger(name)


def setup_logger(name: str, log_level: Optional[str] = None) -> logging.Logger:
    """
    Create and configure a module logger

    Args:
        name: Logger name (usually __name__)
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    level_str = log_level or _log_config["level"]
    level = getattr(logging, level_str.upper(), logging.INFO)
    logger.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if _log_config["log_to_file"]:
        log_dir = Path(_log_config["log_dir"])
        log_dir.mkdir(exist_ok=True, parents=True)

        log_file = log_dir / "reportsync.log"

        try:
            file_handler = logging.handlers.RotatingFileHandler(
                str(log_file),
                maxBytes=10_000_000,  # 10 MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Failed to setup file logger: {e}")

    logger.propagate = False

    return logger
