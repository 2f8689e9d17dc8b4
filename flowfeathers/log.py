# -*- coding: utf-8; -*-
"""Hierarchical progress messages.

The solvers report what they are doing as nested tasks::

    begin("Time step 3")
    begin("Assembling")
    ...
    end()
    info("Assembly completed in 0.1 seconds.")
    end()

Each `begin` increases the indentation of subsequent messages by one level,
and the matching `end` decreases it again. The messages go to the standard
`logging` module, under the logger named `"flowfeathers"`, so the usual
handler/level configuration applies. By default, only warnings are shown;
use `set_log_level(logging.INFO)` to see the progress messages.
"""

__all__ = ["logger", "set_log_level",
           "begin", "end", "info", "warning"]

import logging

logger = logging.getLogger("flowfeathers")

_indent = "  "
_depth = 0


def set_log_level(level: int) -> None:
    """Set the level of the `flowfeathers` logger, e.g. `logging.INFO`.

    If no handler has been configured yet, a console handler is added,
    so that calling this is enough to see the messages in a script.
    """
    logger.setLevel(level)
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)


def begin(msg: str) -> None:
    """Log `msg` at INFO level, then start a nested task."""
    global _depth
    info(msg)
    _depth += 1


def end() -> None:
    """End the innermost nested task."""
    global _depth
    _depth = max(0, _depth - 1)


def info(msg: str) -> None:
    logger.info(f"{_indent * _depth}{msg}")


def warning(msg: str) -> None:
    logger.warning(f"{_indent * _depth}{msg}")
