"""
Logging helpers for streambly processes.

Library modules only create module level loggers; applications call
:func:`configure_logging` once at startup.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO, format: Optional[str] = None) -> bool:
    """
    Configure the root logger unless the host application already did.

    Returns ``True`` when handlers were installed.
    """

    root = logging.getLogger()
    if root.handlers:
        # Respect any user provided configuration.
        return False

    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=format or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("streambly").setLevel(level)
    return True
