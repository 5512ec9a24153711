"""
Watch threads that feed cluster events to an operator
"""

# Local
from .base import AbstractWatcher
from .config_map_watcher import ConfigMapWatcher
from .custom_resource_watcher import CustomResourceWatcher
