"""
Club Scheduler API module.

Provides FastAPI HTTP endpoints for the scheduling system.
"""

from club_scheduler.api.main import app, run_server

__all__ = ["app", "run_server"]
