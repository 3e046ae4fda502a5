"""
Club Scheduler.

Scheduling core for an organization's recurring activities and the shared
resources and locations they consume.
"""

__version__ = "0.1.0"
