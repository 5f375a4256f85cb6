import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging once at startup.
    Module loggers are named by concern (scheduler, pipeline, knowledge, ...).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    # httpx logs every request at INFO; keep it for DEBUG runs only
    if level.upper() != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
