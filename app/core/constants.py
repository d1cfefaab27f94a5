"""
Constants
Centralised storage for reaper defaults and build/stage status groupings.
"""
from datetime import timedelta

# Deadline applied when a pending/running deadline is configured as zero
DEFAULT_DEADLINE = timedelta(hours=24)

# Grace added to every deadline comparison to absorb clock skew
DEFAULT_BUFFER = timedelta(minutes=30)

# Fallback repository execution timeout, minutes
DEFAULT_REPO_TIMEOUT = 60

# Stage statuses that still count as active work
ACTIVE_STAGE_STATUSES = ("waiting_on_dependencies", "pending", "running", "blocked")
