import logging

LOGGER_NAME = "healthsync"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO", log_file: str = "", name: str = LOGGER_NAME) -> logging.Logger:
    """Attach console (and optionally file) handlers to the service logger.

    Safe to call more than once; handlers are only added the first time.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper())

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
