"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It seeds the environment so that module-level ``Settings()`` can be built
without a .env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("RATE_LIMIT_POINTS", "5")
os.environ.setdefault("RATE_LIMIT_DURATION", "60")
os.environ.setdefault("RATE_LIMIT_STORE", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")
