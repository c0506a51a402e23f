"""Shared configuration for the sync engine.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Database configuration
DB_PATH = os.getenv("SYNC_DB_PATH", "./data/sync.db")

# Settings file (global retention/timeout settings and per-type schedules)
SETTINGS_PATH = os.getenv("SYNC_SETTINGS_PATH", "./config/sync.yaml")

# Logging configuration
LOG_LEVEL = os.getenv("SYNC_LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("SYNC_LOG_FILE") or None

# Worker pool size for background sync execution
MAX_WORKERS = int(os.getenv("SYNC_MAX_WORKERS", "5"))
