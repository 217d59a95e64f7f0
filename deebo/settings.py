"""Environment defaults for the deebo debugging agents."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%H:%M:%S"

# Root directory for memory bank, audit logs and tool stderr captures
DEEBO_ROOT = os.getenv("DEEBO_ROOT", str(Path.home() / ".deebo"))

# Profile selection (shared with scenario processes through the environment)
DEEBO_PROFILE = os.getenv("DEEBO_PROFILE", "default")
DEEBO_CONFIG = os.getenv("DEEBO_CONFIG")

# OpenRouter
# Any model routed by OpenRouter works, e.g.:
# - anthropic/claude-3.5-sonnet (default for both agents)
# - openai/gpt-4o
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_DEFAULT_MODEL = "anthropic/claude-3.5-sonnet"

# Anthropic (direct API)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

# Agent models
MOTHER_MODEL = os.getenv("MOTHER_MODEL")
SCENARIO_MODEL = os.getenv("SCENARIO_MODEL")

# Memory bank
USE_MEMORY_BANK = os.getenv("USE_MEMORY_BANK", "false").lower() == "true"

# Auxiliary launcher executables for the tool registry
DEEBO_NPX_PATH = os.getenv("DEEBO_NPX_PATH")
DEEBO_UVX_PATH = os.getenv("DEEBO_UVX_PATH")


def configure_logging(level: str | None = None, filename: str | Path | None = None) -> None:
    """Configure root logging with the project format.

    Scenario processes pass a filename: their stdout and stderr are reserved
    for the verdict JSON.
    """
    kwargs = {}
    if filename is not None:
        Path(filename).parent.mkdir(parents=True, exist_ok=True)
        kwargs["filename"] = str(filename)

    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        force=True,
        **kwargs,
    )
