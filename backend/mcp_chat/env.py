"""Environment loading helpers.

Nothing here runs at import time. Entrypoints (the ASGI app factory and the
CLI) call :func:`load_dotenv_if_present` before settings are first read.
"""

from __future__ import annotations

from dotenv import find_dotenv, load_dotenv


def load_dotenv_if_present(filename: str = ".env") -> bool:
    """Load variables from ``filename`` (searched from the cwd upwards).

    Variables already present in the process environment win. Returns whether
    a file was found.
    """

    dotenv_path = find_dotenv(filename=filename, usecwd=True)
    if not dotenv_path:
        return False
    return load_dotenv(dotenv_path=dotenv_path, override=False)
