"""Pytest setup: put src/ on the import path.

Lets `from health_economics ...` work without an editable install.
"""

import os
import sys


def _add_src_to_path() -> None:
    root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    src = os.path.join(root, "src")
    if src not in sys.path:
        sys.path.insert(0, src)


_add_src_to_path()
