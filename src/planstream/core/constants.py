"""PlanStream constants: limits, preview lengths, provider defaults."""

from __future__ import annotations

import os
import sys
from enum import IntEnum
from pathlib import Path

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    NETWORK_ERROR = 4
    EMPTY_RESPONSE = 6


# ---------------------------------------------------------------------------
# Platform-specific config directory
# ---------------------------------------------------------------------------


def _default_config_dir() -> Path:
    """
    Return the platform-appropriate PlanStream config directory.

    macOS : ~/Library/Application Support/planstream
    Linux : ~/.config/planstream
    Other : ~/.planstream
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "planstream"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "planstream"
    return Path.home() / ".planstream"


CONFIG_FILENAME = "config.toml"

# ---------------------------------------------------------------------------
# Streaming limits
# ---------------------------------------------------------------------------

DEFAULT_MAX_MESSAGE_CHARS = 200_000  # caps a single generation
DEFAULT_MAX_PENDING_FENCE_CHARS = 50_000  # longest a fence may stay unconfirmed
DEFAULT_SIMULATED_CHUNK_CHARS = 10  # replay size for non-streamed responses
DEFAULT_TIMEOUT_SECONDS = 120.0

# ---------------------------------------------------------------------------
# Plan recovery limits
# ---------------------------------------------------------------------------

MAX_DELIVERABLES_PER_WORKSTREAM = 5
MAX_PLAN_HEADING_ITEMS = 10
MIN_BULLET_CHARS = 10  # bullets at or below this length are noise
MIN_RECOVERED_WORKSTREAMS = 2
TITLE_PREVIEW_CHARS = 80
DESCRIPTION_PREVIEW_CHARS = 200
FALLBACK_DESCRIPTION_CHARS = 150
LEAD_IN_MAX_CHARS = 200
LEAD_IN_FALLBACK_CHARS = 150
CLOSING_REMARK_MAX_CHARS = 150
LOOKS_LIKE_PLAN_MIN_CHARS = 200

# ---------------------------------------------------------------------------
# Temperatures
# ---------------------------------------------------------------------------

DEFAULT_TEMPERATURE = 0.7
PLAN_TEMPERATURE = 0.1
