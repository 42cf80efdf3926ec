"""Make ``slope_toolkit`` importable when tests run from a source checkout."""

from __future__ import annotations

import sys
from pathlib import Path

_package_dir = Path(__file__).resolve().parent
while _package_dir != _package_dir.parent and not (_package_dir / "__init__.py").exists():
    _package_dir = _package_dir.parent

_checkout_root = str(_package_dir.parent)
if _checkout_root not in sys.path:
    sys.path.insert(0, _checkout_root)
