"""
Core Components.

Building blocks shared by every job, separated from job-specific logic.

Structure:
    models/: Pure data structures (status, descriptor, instance, summary)
    errors.py: Error codes and deployment error taxonomy
    error_handler.py: Operation error-handling context manager
    utils.py: Small timing helpers
"""

from . import models

__all__ = [
    'models',
]
