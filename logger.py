import logging
import sys


_LOGGER: logging.Logger | None = None
_RUN_ID: str = ""


class RunIdFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID
        return True


def setup_logger(
    run_id: str,
    level: int = logging.INFO,
    log_file: str | None = None,
) -> logging.Logger:
    """
    Configure the "target" logger: stdout always, plus an append-mode
    log file when *log_file* is given.
    """
    global _LOGGER, _RUN_ID
    _RUN_ID = run_id

    logger = logging.getLogger("target")
    logger.setLevel(level)
    for old in logger.handlers:
        old.close()
    logger.handlers.clear()

    fmt = logging.Formatter(
        fmt="%(asctime)s [%(run_id)s] %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(fmt)
        handler.addFilter(RunIdFilter())
        logger.addHandler(handler)

    logger.propagate = False

    _LOGGER = logger
    return logger


def get_logger(name: str = "target") -> logging.Logger:

    if _LOGGER is None:
        raise RuntimeError("Call setup_logger(run_id) before get_logger().")
    child = _LOGGER.getChild(name.replace("target.", ""))
    child.addFilter(RunIdFilter())
    return child
