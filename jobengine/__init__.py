"""Job Engine - asynchronous job queue and lifecycle management.

Accepts long-running units of work, schedules them by priority, tracks
progress and recovers from handler failures with bounded retries.
"""

__version__ = "0.1.0"
