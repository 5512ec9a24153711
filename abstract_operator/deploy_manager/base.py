"""
The DeployManagerBase interface: the one handle an operator uses to read,
write and watch the cluster
"""

# Standard
from typing import Any, Iterator, List, Optional, Tuple
import abc

# Local
from .kube_event import KubeWatchEvent


class DeployManagerBase(abc.ABC):
    """Cluster access of a single operator. Every call reports whether the
    cluster operation succeeded instead of raising for cluster errors.
    """

    @abc.abstractmethod
    def deploy(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Create or update the given resources in order

        Args:
            resource_definitions:  List[dict]
                Full manifests of the resources

        Returns:
            success:  bool
                False if any resource could not be applied
            changed:  bool
                True if any resource in the cluster changed
        """

    @abc.abstractmethod
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Delete the given resources. Missing resources are not an error.

        Args:
            resource_definitions:  List[dict]
                Manifests naming the resources. Only kind, apiVersion,
                name and namespace are used.

        Returns:
            success:  bool
                False if any delete failed
            changed:  bool
                True if anything was deleted
        """

    @abc.abstractmethod
    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Read one resource

        Returns:
            success:  bool
                False if the read failed, e.g. it was forbidden
            content:  Optional[dict]
                The resource, None if it does not exist
        """

    @abc.abstractmethod
    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        """List the resources of a kind

        Args:
            kind:  str
                The kind to list
            namespace:  Optional[str]
                The namespace to list, None for every namespace
            api_version:  Optional[str]
                The api_version of the kind
            label_selector:  Optional[str]
                Kubernetes label selector, e.g. "app=foo,tier!=db"
            field_selector:  Optional[str]
                Kubernetes field selector, e.g. "metadata.name=foo"

        Returns:
            success:  bool
                False if the list failed
            content:  List[dict]
                The matching resources
        """

    @abc.abstractmethod
    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout: Optional[int] = None,
        watch_manager: Optional[Any] = None,
    ) -> Iterator[KubeWatchEvent]:
        """Stream the changes of a kind. Without a resource_version the
        stream opens with an ADDED event per existing resource.

        Args:
            kind:  str
                The kind to watch
            api_version:  Optional[str]
                The api_version of the kind
            namespace:  Optional[str]
                The namespace to watch, None for every namespace
            label_selector:  Optional[str]
                Restricts the watched resources
            resource_version:  Optional[str]
                Only changes after this version are streamed
            timeout:  Optional[int]
                Seconds after which the stream ends
            watch_manager:  Optional[kubernetes.watch.Watch]
                Calling stop() on it ends the stream

        Returns:
            events:  Iterator[KubeWatchEvent]
                The changes in arrival order
        """

    @abc.abstractmethod
    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        """Replace the status of a resource through its status subresource

        Returns:
            success:  bool
                False if the write failed. A missing resource is not a
                failure.
            changed:  bool
                True if the status was written
        """

    @abc.abstractmethod
    def is_openshift(self) -> bool:
        """Whether the cluster serves the openshift APIs"""

    def close(self):
        """Release the connection to the cluster"""
