"""
Background task helpers shared by the services.
"""

from core.tasks.periodic import PeriodicTask

__all__ = ["PeriodicTask"]
