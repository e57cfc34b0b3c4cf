"""
Logging of the ordbetareg package.

The package reports rescaled outcomes and dropped rows at "info" and "warning",
the random seed of a fit at "info", and divergent transitions or hits of the maximum
tree depth of the NUTS sampler at "warning". All messages go to the ``"ordbetareg"``
logger and its children, e.g. ``"ordbetareg.fit"``.
"""

import logging
from pathlib import Path

LOGGER_NAME = "ordbetareg"

_LEVELS = ("debug", "info", "warning", "error", "critical")


def _level(level: str) -> int:
    if level.lower() not in _LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {_LEVELS}.")
    return getattr(logging, level.upper())


def setup_logger(level: str = "info") -> None:
    """
    Prints the messages of the package to the terminal.

    Runs when the package is imported. Calling it again only changes the level, it
    does not add a second handler. The messages are not passed on to the root logger.

    Parameters
    ----------
    level
        The log level of the package logger. Use ``"warning"`` to see only the sampler
        diagnostics, or ``"debug"`` to also see the category counts of the outcomes
        and the posterior predictive counts.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_level(level))
    logger.propagate = False

    if any(getattr(h, "_ordbetareg_default", False) for h in logger.handlers):
        return

    handler = logging.StreamHandler()
    handler._ordbetareg_default = True  # type: ignore[attr-defined]
    handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))

    logger.addHandler(handler)


def reset_logger() -> None:
    """
    Removes all handlers and the level of the package logger and lets its messages
    propagate to the root logger again, e.g. to configure logging with
    ``logging.basicConfig``.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True

    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def add_file_handler(
    path: str | Path,
    level: str,
    logger: str = LOGGER_NAME,
    fmt: str = "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
) -> None:
    """
    Writes the messages of the package, or of one of its modules, to a file.

    Parameters
    ----------
    path
        Absolute path to the log file. Missing parent directories are created.
    level
        The log level of the messages to write to the file.
    logger
        The name of the logger, e.g. ``"ordbetareg.fit"`` for the sampler messages
        only.
    fmt
        Formatting string. See the documentation of the :class:`logging.Formatter`.

    Examples
    --------
    Keeping the sampler diagnostics of a simulation study::

        import ordbetareg as obr

        obr.logging.add_file_handler(
            path="/tmp/ordbetareg/fit.log", level="warning", logger="ordbetareg.fit"
        )
    """

    path = Path(path)

    if not path.is_absolute():
        raise ValueError(f"The path of the log file must be absolute, got {path}.")

    handler_level = _level(level)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path)
    handler.setLevel(handler_level)
    handler.setFormatter(logging.Formatter(fmt, "%Y-%m-%d %H:%M:%S"))

    logging.getLogger(logger).addHandler(handler)
