import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(out_dir=None, console_level=logging.INFO, log_name="run.log"):
    """Attach handlers to the "roadflow" logger and return it.

    - Console: console_level and above
    - File (only when out_dir is given): DEBUG and above -> {out_dir}/{log_name}, append mode

    Calling it again replaces the previous handlers, so repeated overline runs
    in one session don't duplicate output.
    """
    logger = logging.getLogger("roadflow")
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)
    logger.setLevel(logging.DEBUG if out_dir is not None else console_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if out_dir is not None:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(out_dir / log_name, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger
