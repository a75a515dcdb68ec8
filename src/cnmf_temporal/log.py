import logging
import os
from pathlib import Path

from rich.logging import RichHandler


def setup_logger(
    log_file: Path | None = None, level: int = logging.INFO, name: str = "cnmf_temporal"
) -> logging.Logger:
    """
    Sets up the logging configuration for the package.

    Args:
        log_file (Path): Optional path to a log file where logs will be saved.
        level (int): Logging level (INFO, DEBUG, etc.).
        name (str): Name of the logger to configure. Module loggers under
            ``cnmf_temporal.*`` propagate to the default one.

    Returns:
        logging.Logger: Configured logger instance.
    """
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    rich_handler = next((h for h in logger.handlers if isinstance(h, RichHandler)), None)
    if rich_handler is None:
        rich_handler = RichHandler(rich_tracebacks=True, markup=True)
        rich_handler.setFormatter(formatter)
        logger.addHandler(rich_handler)
    rich_handler.setLevel(level)

    if log_file is not None:
        filename = os.path.abspath(log_file)
        if not any(
            isinstance(h, logging.FileHandler) and h.baseFilename == filename
            for h in logger.handlers
        ):
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
