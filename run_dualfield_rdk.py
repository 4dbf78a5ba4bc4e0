"""Entry point script for the dual-field random-dot motion task.

This small wrapper simply dispatches to :mod:`dualfield_rdk.cli`.  Keeping the
actual logic in the package makes it possible to launch the experiment via
``python -m dualfield_rdk`` *or* by executing this file directly.
"""
from __future__ import annotations

from dualfield_rdk.cli import main


if __name__ == "__main__":
    main()
