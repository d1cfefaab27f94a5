"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    REAPER_ENABLED           — Start the sweep loop with the service (default: true)
    REAPER_INTERVAL          — Seconds between sweep passes (default: 86400)
    REAPER_PENDING_DEADLINE  — Minutes a build may stay pending (default: 0 → 24h)
    REAPER_RUNNING_DEADLINE  — Minutes a build may stay running (default: 0 → 24h)
    REAPER_BUFFER            — Tolerance buffer in minutes (default: 30)
    BUILD_SERVER_URL         — Base URL of the build server REST API
    BUILD_SERVER_TOKEN       — Bearer token used against the build server
    BUILD_SERVER_TIMEOUT     — HTTP timeout in seconds (default: 20)
    LOG_LEVEL                — Root log level (default: INFO)
    LOG_DIR                  — Directory for the daily log file, empty to disable

Deadline Philosophy:
    A zero deadline means "use the default" (24 hours). The pending
    deadline is measured from build creation, the running deadline from
    build start. The buffer is added on top of both so that a build which
    finishes right at its deadline is not reaped because of clock skew
    between the build server and the reaper host.
"""
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

REAPER_ENABLED = os.getenv("REAPER_ENABLED", "true").lower() == "true"
REAPER_INTERVAL = float(os.getenv("REAPER_INTERVAL", 86400))

REAPER_PENDING_DEADLINE = timedelta(minutes=int(os.getenv("REAPER_PENDING_DEADLINE", 0)))
REAPER_RUNNING_DEADLINE = timedelta(minutes=int(os.getenv("REAPER_RUNNING_DEADLINE", 0)))
REAPER_BUFFER = timedelta(minutes=int(os.getenv("REAPER_BUFFER", 30)))

BUILD_SERVER_URL = os.getenv("BUILD_SERVER_URL", "http://localhost:8080")
BUILD_SERVER_TOKEN = os.getenv("BUILD_SERVER_TOKEN", "")
BUILD_SERVER_TIMEOUT = float(os.getenv("BUILD_SERVER_TIMEOUT", 20))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")
