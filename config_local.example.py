# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env` for secrets. This file should contain only safe overrides.
"""

# Example: always triage as the same user
# USER_ID = "u1"

# Example: load an exported task list on start
# TASKS_FILE = ".local/buildtrack/tasks.json"

# LOG_LEVEL = "DEBUG"
