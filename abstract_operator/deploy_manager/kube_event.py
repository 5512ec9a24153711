"""
Event types delivered by DeployManagerBase.watch_objects
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Local
from ..managed_object import ManagedObject


class KubeEventType(Enum):
    """The change types of a kubernetes watch stream"""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass
class KubeWatchEvent:
    """One change of a watched resource, stamped with its arrival time"""

    type: KubeEventType
    resource: ManagedObject
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_stream(cls, event_obj: dict) -> "KubeWatchEvent":
        """Build an event from a raw watch stream entry"""
        return cls(KubeEventType(event_obj["type"]), ManagedObject(event_obj["object"]))

    def __str__(self):
        return f"{self.type.value}[{self.resource}]"
