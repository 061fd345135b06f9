"""
Shared CLI runner helper.

Runs a tool inside the current interpreter's environment and exits with the
tool's exit code.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence


def run(cmd: Sequence[str]) -> None:
    """
    Run a command and propagate its exit code.

    Example:
        >>> run([sys.executable, "-m", "pytest", "-q"])
    """
    result = subprocess.run(cmd)
    raise SystemExit(result.returncode)
