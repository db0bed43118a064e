"""Serverless entrypoint: exposes the automation API (worker tick included) to Vercel."""

from __future__ import annotations

import sys
from pathlib import Path

# The function runs from ``api/``; the ``digitalflow`` package lives one level up.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from digitalflow.main import app  # noqa: E402,F401
