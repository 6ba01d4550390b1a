"""Run-scoped logging helpers.

Chat runs log through :func:`log_run` so each record carries the run id that
the HTTP layer assigned (or received in the ``X_Run_Id`` header).
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def log_run(run_id: str, message: str, *args: object, level: int = logging.INFO) -> None:
    logger.log(level, message, *args, extra={"run_id": run_id})


__all__ = ["log_run"]
