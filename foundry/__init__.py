"""Strategy research engine: backtests, fold-based validation and candidate ranking."""

import os
from pathlib import Path

from dotenv import load_dotenv

__version__ = "0.4.0"

# Load environment variables early so settings pick up a local .env
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def _detect_build_version() -> str:
    explicit = os.getenv("APP_VERSION")
    if explicit:
        return explicit
    return __version__


APP_VERSION = _detect_build_version()
