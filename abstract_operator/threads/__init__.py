"""
Background threads shared by the operators
"""

# Local
from .base import ThreadBase
from .timer import TimerEvent, TimerThread
