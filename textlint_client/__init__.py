from __future__ import annotations

from pathlib import Path

TEXTLINT_CLIENT_ROOT = Path(__file__).parent
__version__ = "0.6.8"
