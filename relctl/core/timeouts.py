from __future__ import annotations

# Local git operations (rev-parse, diff, archive)
GIT_TIMEOUT_SECONDS = 60.0

# Network-bound git operations (fetch)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Dependency environment creation + install
INSTALL_TIMEOUT_SECONDS = 20 * 60.0

# Preflight commands (migrate, self-check, drift check)
PREFLIGHT_TIMEOUT_SECONDS = 10 * 60.0

# systemctl verbs
SUPERVISOR_TIMEOUT_SECONDS = 90.0

# Graded reload: wait for the new generation, then for old workers to drain
RELOAD_READY_TIMEOUT_SECONDS = 30.0
RELOAD_SETTLE_SECONDS = 5.0
RELOAD_DRAIN_SECONDS = 5.0
RELOAD_POLL_INTERVAL_SECONDS = 0.5

# Notification webhook
NOTIFY_TIMEOUT_SECONDS = 10.0
