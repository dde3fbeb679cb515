"""Make the ``src/`` layout importable when the package is not installed.

Running ``pytest`` from a plain checkout leaves ``src/dirmirror`` off
``sys.path``; prepend it so the tests exercise the working tree.
"""

from __future__ import annotations

import sys
from pathlib import Path


SRC_ROOT = str(Path(__file__).resolve().parent.parent / "src")

if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)
