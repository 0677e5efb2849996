"""Pytest configuration.

Puts the repository root on ``sys.path`` so ``import otp_relay...`` works
whether or not the package has been installed.
"""

import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))
