"""Shared configuration for the destination configuration service.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Database configuration
DB_PATH = os.getenv("DB_PATH", "./data/destinations.db")

# Destination definition catalog loaded at startup
CATALOG_DIR = os.getenv(
    "CATALOG_DIR", os.path.join(os.path.dirname(__file__), "catalog")
)

# Inline icons, used when USE_ICON_URL_IN_API_RESPONSE is off
ICONS_DIR = os.getenv("ICONS_DIR", os.path.join(CATALOG_DIR, "icons"))
USE_ICON_URL_IN_API_RESPONSE = (
    os.getenv("USE_ICON_URL_IN_API_RESPONSE", "true").lower() == "true"
)

# Handling of configuration fields the connector schema does not declare
# ("passthrough" or "reject")
UNKNOWN_FIELD_POLICY = os.getenv("UNKNOWN_FIELD_POLICY", "passthrough").lower()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Comma-separated list of allowed origins
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if origin.strip()
]

# Requests per client address, slowapi limit syntax
RATE_LIMIT = os.getenv("RATE_LIMIT", "100/minute")
