import logging
import os
import sys
from typing import Optional

# third-party loggers that flood the console at INFO/DEBUG
NOISY_LOGGERS = ("pyftpdlib", "PIL")


def setup_logger(
    name: str,
    out_dir: Optional[str] = None,
    log_file: Optional[str] = None,
    verbose: bool = False,
) -> logging.Logger:
    """
    Setup and return the connector logger.

    Args:
        name: Logger name (e.g., 'remotefm')
        out_dir: Base output directory; when empty only the console is used
        log_file: Optional custom log filename under <out_dir>/logs (defaults to '{name}.log')
        verbose: DEBUG level, and third-party loggers are left alone
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s - %(message)s"))
    logger.addHandler(console)

    if out_dir:
        log_dir = os.path.join(out_dir, "logs")
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.FileHandler(os.path.join(log_dir, log_file or f"{name}.log"), encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(fh)

    if not verbose:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
