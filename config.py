"""
Configuration for the production billing service.

Values come from the environment, with a .env file loaded first so local
overrides do not need to be exported in the shell.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    JSON_SORT_KEYS = False

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # Log directory for rotating file logs (production only)
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))

    # ==========================================================================
    # Run configuration
    # ==========================================================================
    # MAX_RUN_IMAGES: photos attached to one run (reference prints, film)
    # MAX_TEXT_LENGTH: cap for free-text fields (particulars, design labels)
    # ==========================================================================
    MAX_RUN_IMAGES = int(os.environ.get("MAX_RUN_IMAGES", "2"))
    MAX_TEXT_LENGTH = int(os.environ.get("MAX_TEXT_LENGTH", "255"))

    # ==========================================================================
    # Billing configuration
    # ==========================================================================
    # BILLING_CURRENCY: currency stamped on every snapshot
    #
    # BILLING_ALLOW_REFINALIZE: whether a FINAL billing group can be
    #   finalized again with new rates. A re-finalize writes a new FINAL
    #   version; it never returns the group to DRAFT.
    #   Default: 1 (allowed)
    #
    # BILLING_CONTEXTS_PAGE_SIZE: default page size for the groups list
    # ==========================================================================
    BILLING_CURRENCY = os.environ.get("BILLING_CURRENCY", "INR")
    BILLING_ALLOW_REFINALIZE = _env_flag("BILLING_ALLOW_REFINALIZE", "1")
    BILLING_CONTEXTS_PAGE_SIZE = int(os.environ.get("BILLING_CONTEXTS_PAGE_SIZE", "12"))


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    ENVIRONMENT = "testing"
    BILLING_ALLOW_REFINALIZE = True
