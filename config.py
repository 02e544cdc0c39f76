"""Configuration loader for the marketplace booking client."""

import os
from dotenv import load_dotenv

load_dotenv()

# Marketplace API
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:9999")
AUTH_SCHEME = os.getenv("AUTH_SCHEME", "")
_timeout = os.getenv("REQUEST_TIMEOUT", "")
REQUEST_TIMEOUT = float(_timeout) if _timeout else None

# Tenant branding (boreal, giro, rumos)
TENANT = os.getenv("TENANT", "giro")

# Purchase cleanup
LEAKED_HOLD_RETRIES = int(os.getenv("LEAKED_HOLD_RETRIES", "1"))

# Mock API
MOCK_API = os.getenv("MOCK_API", "false").lower() in ("true", "1", "yes")
MOCK_DELAYS = os.getenv("MOCK_DELAYS", "false").lower() in ("true", "1", "yes")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def validate():
    """Validate configuration is usable."""
    problems = []
    if not API_BASE_URL and not MOCK_API:
        problems.append("API_BASE_URL")
    if TENANT not in ("boreal", "giro", "rumos"):
        problems.append(f"TENANT={TENANT} (falls back to rumos)")
    if LEAKED_HOLD_RETRIES < 0:
        problems.append("LEAKED_HOLD_RETRIES")
    if problems:
        print(f"WARNING: Check config: {', '.join(problems)}")
        print("Some features may not work. Copy .env.example to .env and fill in values.")
