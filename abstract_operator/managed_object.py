"""
Helper object to represent a raw kubernetes object observed by an operator
"""
# Standard
from typing import Optional


class ManagedObject:
    """Basic struct to represent a raw kubernetes object"""

    def __init__(self, definition: dict):
        self.kind = definition.get("kind")
        self.metadata = definition.get("metadata") or {}
        self.name = self.metadata.get("name")
        self.namespace = self.metadata.get("namespace")
        self.resource_version = self.metadata.get("resourceVersion")
        self.api_version = definition.get("apiVersion")
        self.definition = definition

        assert self.kind is not None, "No kind found"
        assert self.api_version is not None, "No apiVersion found"
        assert self.name is not None, "No name found"

        # Objects that were never persisted have no uid, so fall back to the
        # stringified identifiers
        self.uid = self.metadata.get("uid") or str(self)

    @property
    def labels(self) -> dict:
        return self.metadata.get("labels") or {}

    def get(self, *args, **kwargs):
        """Pass get calls to the objects definition"""
        return self.definition.get(*args, **kwargs)

    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.namespaced_name()}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash on the cluster-assigned uid so that two views of the same
        resource at different resourceVersions are the same key
        """
        return hash(self.uid)

    def __eq__(self, other: Optional["ManagedObject"]):
        return isinstance(other, ManagedObject) and hash(self) == hash(other)
