"""Test bootstrap for mock-expect."""

from __future__ import annotations

import sys
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

pytest_plugins = ["pytester", "mock_expect.pytest_plugin"]
