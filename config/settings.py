"""
Configuration settings for the content preference engine.

Centralized configuration for the preference store, registry, content filter
and CLI.
"""

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_ROOT = Path(os.getenv("FEEDPREFS_DATA_ROOT", str(PROJECT_ROOT / "data")))
PREFERENCES_DIR = DATA_ROOT / "preferences"
OUTPUT_ROOT = PROJECT_ROOT / "output"

# Profiles
DEFAULT_PROFILE = os.getenv("FEEDPREFS_PROFILE", "default")

# Topic validation
TOPIC_MAX_LENGTH = 64  # Characters, after normalization

# Content Filter
BOOST_UNIT = 1.0  # Relevance added per distinct preferred topic match
MATCH_MODE = os.getenv("FEEDPREFS_MATCH_MODE", "word")  # "word" or "substring"

# Preference Registry persistence
SAVE_WORKERS = 2  # Background threads for durable saves
SAVE_TIMEOUT_SECONDS = 10  # Upper bound when flushing pending saves

# Preference Store
STORE_FORMAT_VERSION = "1.0.0"

# Taxonomy
SUGGESTION_LIMIT = 12  # Quick-add block suggestions shown at once

# Logging
LOG_LEVEL = os.getenv("FEEDPREFS_LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "feedprefs.log"
