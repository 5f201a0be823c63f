# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use:
- .env (local, gitignored)
- config_local.py (local safe overrides, gitignored)
"""

ENV_VARS = {
    # App / logging
    "BUILDTRACK_APP_NAME": "App display name (default: buildtrack).",
    "BUILDTRACK_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "BUILDTRACK_DATA_DIR": "Local data directory (default: .local/buildtrack).",
    "BUILDTRACK_SELECTION_CACHE_PATH": (
        "Per-user selected project cache (default: <data_dir>/selection.json)."
    ),
    # Supabase
    "BUILDTRACK_SUPABASE_URL": "Project URL; falls back to SUPABASE_URL.",
    "BUILDTRACK_SUPABASE_KEY": (
        "API key; falls back to SUPABASE_SERVICE_ROLE_KEY, then SUPABASE_ANON_KEY."
    ),
    "BUILDTRACK_REMOTE_TIMEOUT_SECONDS": "HTTP timeout for every request (default: 10).",
    "BUILDTRACK_SELECTION_READ_TIMEOUT_SECONDS": (
        "Bound on the startup read of the last selected project (default: 5)."
    ),
    # Console
    "BUILDTRACK_USER_ID": "User to triage for when the console starts.",
    "BUILDTRACK_TASKS_FILE": "JSON file of task records loaded at start (offline mode).",
}
