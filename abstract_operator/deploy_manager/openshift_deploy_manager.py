"""
The OpenshiftDeployManager talks to a live cluster through the openshift
DynamicClient. It works both inside the cluster and from a workstation with
a kubeconfig.
"""
# Standard
from typing import Any, Callable, Iterator, List, NamedTuple, Optional, Tuple
import copy
import threading
import time

# Third Party
from kubernetes import client
from kubernetes.watch import Watch
from openshift.dynamic import DynamicClient
from openshift.dynamic.apply import recursive_diff
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)
from openshift.dynamic.resource import Resource
import kubernetes
import urllib3

# First Party
import alog

# Local
from .. import config, constants
from ..exceptions import assert_cluster
from .base import DeployManagerBase
from .kube_event import KubeWatchEvent

log = alog.use_channel("OSFTD")

# Server and client side watch timeouts, see
# https://github.com/kubernetes-client/python/blob/master/examples/watch/timeout-settings.md
SERVER_WATCH_TIMEOUT = 3600
CLIENT_WATCH_TIMEOUT = 30

# Field manager owning the fields written with server side apply
FIELD_MANAGER = "abstract-operator"

# Metadata that differs between two reads of an unchanged resource
VOLATILE_METADATA_FIELDS = [
    "resourceVersion",
    "generation",
    "managedFields",
    "uid",
    "creationTimestamp",
]

# HTTP status of a watch whose resourceVersion is too old
GONE = 410


class ResourceId(NamedTuple):
    """The coordinates of one resource"""

    api_version: Optional[str]
    kind: str
    name: str
    namespace: Optional[str]

    @classmethod
    def from_manifest(cls, manifest: dict, require_api_version: bool = True):
        metadata = manifest.get("metadata") or {}
        res_id = cls(
            manifest.get("apiVersion"),
            manifest.get("kind"),
            metadata.get("name"),
            metadata.get("namespace"),
        )
        assert res_id.kind and res_id.name, "A resource needs a kind and a name"
        assert (
            res_id.api_version or not require_api_version
        ), "A resource needs an apiVersion"
        return res_id

    def __str__(self):
        return f"{self.namespace}/{self.api_version}/{self.kind}/{self.name}"


class OpenshiftDeployManager(DeployManagerBase):
    """Deploy manager for a live cluster. Writes use server side apply and
    are retried when they conflict with a concurrent writer.
    """

    def __init__(self):
        self._client = None
        self._is_openshift = None

        # Status writes read, modify and replace the resource
        self._status_lock = threading.Lock()

    @property
    def client(self) -> DynamicClient:
        """The DynamicClient, connected on first use"""
        if self._client is None:
            self._client = self._setup_client()
        return self._client

    ## Interface ###############################################################

    @alog.logged_function(log.debug2)
    def deploy(self, resource_definitions: List[dict], **_) -> Tuple[bool, bool]:
        return self._for_each_resource(resource_definitions, self._apply)

    @alog.logged_function(log.debug2)
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        return self._for_each_resource(resource_definitions, self._delete)

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        handle = self._get_resource_handle(kind, api_version)
        if handle is None:
            return True, None
        try:
            return True, handle.get(name=name, namespace=namespace).to_dict()
        except NotFoundError:
            log.debug3("%s %s/%s does not exist", kind, namespace, name)
            return True, None
        except ForbiddenError:
            log.warning("Reading %s %s/%s is forbidden", kind, namespace, name)
            return False, None

    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        handle = self._get_resource_handle(kind, api_version)
        if handle is None:
            return True, []
        try:
            listed = handle.get(
                label_selector=label_selector,
                field_selector=field_selector,
                namespace=namespace,
            )
        except NotFoundError:
            return True, []
        except ForbiddenError:
            log.warning(
                "Listing %s in %s is forbidden", kind, namespace or "every namespace"
            )
            return False, []
        return True, listed.to_dict().get("items", [])

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
        """Stream the changes of a kind. Dropped connections are reopened
        from the last seen resourceVersion, and from scratch when that
        version expired.
        """
        watch_manager = watch_manager or Watch()
        handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            handle is not None, f"Cannot watch unknown kind {api_version}/{kind}"
        )

        last_version = [resource_version or 0]
        while True:
            try:
                for event in self._stream(
                    watch_manager, handle, namespace, label_selector, last_version, timeout
                ):
                    yield event
                if timeout:
                    log.debug2("Watch of %s ended after %ss", kind, timeout)
                    return
            except client.exceptions.ApiException as err:
                if err.status != GONE:
                    raise
                log.debug("Version of the %s watch expired, relisting", kind)
                last_version[0] = 0
            except (
                urllib3.exceptions.ReadTimeoutError,
                urllib3.exceptions.ProtocolError,
            ) as err:
                log.debug3("Reopening the %s watch after %s", kind, type(err).__name__)

            if watch_manager._stop:  # pylint: disable=protected-access
                log.debug("Watch of %s stopped", kind)
                return

    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        target = {
            "apiVersion": api_version,
            "kind": kind,
            "metadata": {"name": name, "namespace": namespace},
        }
        return self._for_each_resource([target], self._replace_status, status=status)

    def is_openshift(self) -> bool:
        """Openshift clusters serve Routes. Checked once per deploy manager."""
        if self._is_openshift is None:
            route_handle = self._get_resource_handle(
                constants.OPENSHIFT_ROUTE_KIND, constants.OPENSHIFT_ROUTE_API_VERSION
            )
            self._is_openshift = route_handle is not None
            log.info("Openshift cluster: %s", self._is_openshift)
        return self._is_openshift

    def close(self):
        if self._client is None:
            return
        log.debug("Closing the cluster connection")
        self._client.client.close()
        self._client = None

    ## Connection ##############################################################

    @staticmethod
    def _setup_client() -> DynamicClient:
        """Connect with the service account when running in a pod, otherwise
        with the local kubeconfig
        """
        try:
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)
            log.debug("Using the in-cluster config")
            return DynamicClient(kubernetes.client.ApiClient(kube_config))
        except kubernetes.config.ConfigException:
            log.debug("Not in a cluster, using the kubeconfig")
            return DynamicClient(kubernetes.config.new_client_from_config())

    def _get_resource_handle(
        self, kind: str, api_version: Optional[str]
    ) -> Optional[Resource]:
        try:
            return self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError) as err:
            log.debug2("No single resource handle for %s/%s: %s", api_version, kind, err)
            return None

    ## Watch ###################################################################

    @staticmethod
    def _stream(  # pylint: disable=too-many-arguments
        watch_manager: Watch,
        handle: Resource,
        namespace: Optional[str],
        label_selector: Optional[str],
        last_version: list,
        timeout: Optional[int],
    ) -> Iterator[KubeWatchEvent]:
        """One watch connection. last_version is updated in place so that a
        reopened connection resumes after the last delivered event.
        """
        for event_obj in watch_manager.stream(
            handle.get,
            resource_version=last_version[0],
            namespace=namespace,
            label_selector=label_selector,
            serialize=False,
            timeout_seconds=timeout or SERVER_WATCH_TIMEOUT,
            _request_timeout=CLIENT_WATCH_TIMEOUT,
        ):
            event = KubeWatchEvent.from_stream(event_obj)
            last_version[0] = event.resource.resource_version
            yield event

    ## Writes ##################################################################

    def _for_each_resource(
        self, resource_definitions: List[dict], operation: Callable, **kwargs
    ) -> Tuple[bool, bool]:
        """Run the operation on each resource in order, stopping at the first
        failure since later resources may depend on earlier ones
        """
        assert isinstance(resource_definitions, list), "Expected a list of resources"
        changed = False
        for manifest in resource_definitions:
            try:
                changed = (
                    self._retry_conflicts(operation, copy.deepcopy(manifest), **kwargs)
                    or changed
                )
            except Exception as err:  # pylint: disable=broad-except
                log.warning(
                    "%s failed for %s %s: %s",
                    operation.__name__,
                    manifest.get("kind"),
                    (manifest.get("metadata") or {}).get("name"),
                    err,
                    exc_info=True,
                )
                return False, changed
        return True, changed

    def _retry_conflicts(self, operation: Callable, manifest: dict, **kwargs) -> bool:
        """Run the operation, retrying with the current resourceVersion and a
        linear backoff while it conflicts with other writers
        """
        for attempt in range(config.deploy_retries + 1):
            try:
                return operation(manifest, **kwargs)
            except ConflictError as err:
                if attempt == config.deploy_retries:
                    raise
                backoff = config.retry_backoff_base_seconds * (attempt + 1)
                log.debug2("Conflict (%s), retrying in %ss", err.reason, backoff)
                time.sleep(backoff)
                res_id = ResourceId.from_manifest(manifest, require_api_version=False)
                success, current = self.get_object_current_state(
                    res_id.kind, res_id.name, res_id.namespace, res_id.api_version
                )
                assert_cluster(success, f"Cannot re-read {res_id}")
                if current is None:
                    log.debug("%s was deleted while retrying", res_id)
                    return False
                manifest.setdefault("metadata", {})["resourceVersion"] = current[
                    "metadata"
                ].get("resourceVersion")
        return False

    def _apply(self, manifest: dict) -> bool:
        res_id = ResourceId.from_manifest(manifest)
        success, current = self.get_object_current_state(
            res_id.kind, res_id.name, res_id.namespace, res_id.api_version
        )
        assert_cluster(success, f"Cannot read {res_id}")
        current = current or {}
        if not _differs(current, manifest):
            log.debug2("%s is up to date", res_id)
            return False

        handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        assert_cluster(handle is not None, f"Unknown kind of {res_id}")
        manifest["metadata"]["managedFields"] = None
        log.debug("Applying %s", res_id)
        applied = handle.server_side_apply(
            manifest,
            name=res_id.name,
            namespace=res_id.namespace,
            field_manager=FIELD_MANAGER,
            force_conflicts=True,
        ).to_dict()
        return _differs(current, applied)

    def _delete(self, manifest: dict) -> bool:
        res_id = ResourceId.from_manifest(manifest)
        try:
            handle = self.client.resources.get(
                api_version=res_id.api_version, kind=res_id.kind
            )
            handle.delete(name=res_id.name, namespace=res_id.namespace)
        except (ResourceNotFoundError, NotFoundError):
            log.debug2("%s is already gone", res_id)
            return False
        log.debug("Deleted %s", res_id)
        return True

    def _replace_status(self, manifest: dict, status: dict) -> bool:
        res_id = ResourceId.from_manifest(manifest, require_api_version=False)
        handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        if handle is None:
            return False

        with self._status_lock:
            try:
                content = handle.get(name=res_id.name, namespace=res_id.namespace)
            except NotFoundError:
                log.debug("%s is gone, not setting its status", res_id)
                return False
            content = content.to_dict()
            if content.get("status") == status:
                return False
            content["status"] = status
            try:
                handle.status.replace(body=content)
            except NotFoundError:
                log.debug("%s was deleted before its status was set", res_id)
                return False
        log.debug2("Set the status of %s", res_id)
        return True


def _differs(current: dict, desired: dict) -> bool:
    """Compare two manifests ignoring the volatile metadata"""
    current = copy.deepcopy(current)
    desired = copy.deepcopy(desired)
    for manifest in [current, desired]:
        metadata = manifest.get("metadata") or {}
        for field_name in VOLATILE_METADATA_FIELDS:
            metadata.pop(field_name, None)
    return bool(recursive_diff(current, desired))
