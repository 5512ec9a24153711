"""
The DryRunDeployManager keeps an in-memory cluster instead of talking to a
real one. It backs the dry run mode of the command line and the tests.
"""

# Standard
from datetime import datetime, timedelta
from functools import partial
from queue import Empty, Queue
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
import copy
import itertools
import re
import uuid

# First Party
import alog

# Local
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

# Longest time a watch stream blocks without checking whether it was stopped
WATCH_POLL_SECONDS = 0.2

# Metadata fields owned by the cluster rather than by the deployed manifest
CLUSTER_METADATA_FIELDS = ["resourceVersion", "uid", "creationTimestamp"]

# Shared source of increasing resourceVersions
_RESOURCE_VERSIONS = itertools.count(1)

# (namespace, kind, api_version, name) of a stored resource
ResourceKey = Tuple[Optional[str], str, str, str]

# (api_version, kind, namespace) a callback listens to. A namespace of None
# listens to every namespace.
CallbackKey = Tuple[Optional[str], str, Optional[str]]

ResourceCallback = Callable[[dict], None]


class DryRunDeployManager(DeployManagerBase):
    """Deploy manager holding the cluster content in a dict. Deploys and
    deletes notify the callbacks registered for the kind, which is how
    watch_objects learns about changes.
    """

    def __init__(self, resources: Optional[List[dict]] = None, openshift=False):
        """
        Args:
            resources:  Optional[List[dict]]
                Resources that exist from the start
            openshift:  bool
                The value reported by is_openshift()
        """
        self._openshift = openshift
        self._lock = RLock()
        self._resources: Dict[ResourceKey, dict] = {}
        self._watches: Dict[CallbackKey, List[ResourceCallback]] = {}
        self._finalizers: Dict[CallbackKey, List[ResourceCallback]] = {}

        for resource in resources or []:
            self._store(resource)

    ## Interface ###############################################################

    def deploy(self, resource_definitions: List[dict], **_) -> Tuple[bool, bool]:
        changed = False
        for resource in resource_definitions:
            stored = self._store(resource)
            if stored is None:
                continue
            changed = True
            self._notify(self._watches, stored)
        return True, changed

    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        changed = False
        for resource in resource_definitions:
            key = _resource_key(resource)
            with self._lock:
                removed = self._resources.pop(key, None)
            if removed is None:
                log.debug2("Nothing to delete for %s", key)
                continue
            log.debug("Deleted %s", key)
            changed = True
            self._notify(self._finalizers, removed)
        return True, changed

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        with self._lock:
            matches = [
                resource
                for (res_namespace, res_kind, res_api_version, res_name), resource in (
                    self._resources.items()
                )
                if (res_namespace, res_kind, res_name) == (namespace, kind, name)
                and api_version in [None, res_api_version]
            ]
            # An ambiguous lookup without api_version finds nothing
            content = copy.deepcopy(matches[0]) if len(matches) == 1 else None
        log.debug3("Current state of %s/%s/%s: %s", namespace, kind, name, content)
        return True, content

    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        with self._lock:
            matches = [
                copy.deepcopy(resource)
                for (res_namespace, res_kind, res_api_version, _), resource in (
                    self._resources.items()
                )
                if res_kind == kind
                and namespace in [None, res_namespace]
                and api_version in [None, res_api_version]
                and _matches(resource, label_selector, field_selector)
            ]
        log.debug2(
            "Found %d %s in %s matching [%s]",
            len(matches),
            kind,
            namespace or "every namespace",
            label_selector,
        )
        return True, matches

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
        """Replay the current content as ADDED events, then stream the
        changes fed to the registered callbacks until watch_manager is
        stopped or the timeout passes
        """
        events = Queue()
        seen_uids = set()

        def on_deploy(seen: set, manifest: dict):
            if _matches(manifest, label_selector):
                resource = ManagedObject(manifest)
                event_type = (
                    KubeEventType.MODIFIED
                    if resource.uid in seen
                    else KubeEventType.ADDED
                )
                seen.add(resource.uid)
                events.put(KubeWatchEvent(event_type, resource))

        def on_delete(seen: set, manifest: dict):
            if _matches(manifest, label_selector):
                resource = ManagedObject(manifest)
                seen.discard(resource.uid)
                events.put(KubeWatchEvent(KubeEventType.DELETED, resource))

        # Listen before listing so that no change falls in between
        deploy_callback = partial(on_deploy, seen_uids)
        delete_callback = partial(on_delete, seen_uids)
        self.register_watch(api_version, kind, deploy_callback, namespace=namespace)
        self.register_finalizer(api_version, kind, delete_callback, namespace=namespace)

        deadline = datetime.now() + timedelta(seconds=timeout) if timeout else None
        try:
            _, current = self.filter_objects_current_state(
                kind,
                namespace=namespace,
                api_version=api_version,
                label_selector=label_selector,
            )
            for manifest in current:
                resource = ManagedObject(manifest)
                seen_uids.add(resource.uid)
                yield KubeWatchEvent(KubeEventType.ADDED, resource)

            while not getattr(watch_manager, "_stop", False):
                if deadline is not None and datetime.now() > deadline:
                    log.debug2("Watch of %s timed out", kind)
                    return
                try:
                    yield events.get(timeout=WATCH_POLL_SECONDS)
                except Empty:
                    continue
        finally:
            self.unregister(deploy_callback)
            self.unregister(delete_callback)

    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        # A delete between the read and the write must not bring the resource back
        with self._lock:
            _, content = self.get_object_current_state(
                kind, name, namespace, api_version
            )
            if content is None:
                log.debug("No %s %s/%s to set the status of", kind, namespace, name)
                return True, False
            if content.get("status") == status:
                return True, False
            content["status"] = status
            stored = self._store(content)
        if stored is None:
            return True, False
        self._notify(self._watches, stored)
        return True, True

    def is_openshift(self) -> bool:
        return self._openshift

    ## Callbacks ###############################################################

    def register_watch(
        self,
        api_version: Optional[str],
        kind: str,
        callback: ResourceCallback,
        namespace: Optional[str] = None,
    ):
        """Call back with every resource of the kind that is created or
        changed, in the namespace or in every namespace if None
        """
        with self._lock:
            self._watches.setdefault((api_version, kind, namespace), []).append(
                callback
            )

    def register_finalizer(
        self,
        api_version: Optional[str],
        kind: str,
        callback: ResourceCallback,
        namespace: Optional[str] = None,
    ):
        """Call back with every resource of the kind that is deleted"""
        with self._lock:
            self._finalizers.setdefault((api_version, kind, namespace), []).append(
                callback
            )

    def unregister(self, callback: ResourceCallback):
        """Remove a watch or finalizer callback"""
        with self._lock:
            for callbacks in itertools.chain(
                self._watches.values(), self._finalizers.values()
            ):
                if callback in callbacks:
                    callbacks.remove(callback)

    ## Implementation Details ##################################################

    def _store(self, resource: dict) -> Optional[dict]:
        """Save a resource, keeping the cluster owned metadata of an existing
        version. Returns the stored content or None if nothing changed.
        """
        resource = copy.deepcopy(dict(resource))
        key = _resource_key(resource)
        metadata = resource.setdefault("metadata", {})
        with self._lock:
            current = self._resources.get(key)
            if current is not None and _without_cluster_fields(
                current
            ) == _without_cluster_fields(resource):
                log.debug3("%s is unchanged", key)
                return None

            current_metadata = (current or {}).get("metadata", {})
            metadata["uid"] = current_metadata.get("uid") or str(uuid.uuid4())
            metadata["creationTimestamp"] = current_metadata.get(
                "creationTimestamp"
            ) or datetime.now().isoformat()
            metadata["resourceVersion"] = str(next(_RESOURCE_VERSIONS))
            self._resources[key] = resource
        log.debug("Stored %s at version %s", key, metadata["resourceVersion"])
        return copy.deepcopy(resource)

    def _notify(
        self, callback_map: Dict[CallbackKey, List[ResourceCallback]], resource: dict
    ):
        namespace, kind, api_version, _ = _resource_key(resource)
        # Cluster scoped resources have no namespace, so keys can repeat
        callback_keys = dict.fromkeys(
            [
                (api_version, kind, namespace),
                (api_version, kind, None),
                (None, kind, namespace),
                (None, kind, None),
            ]
        )
        with self._lock:
            callbacks = [
                callback
                for callback_key in callback_keys
                for callback in callback_map.get(callback_key, [])
            ]
        for callback in callbacks:
            callback(copy.deepcopy(resource))


## Helpers #####################################################################


def _resource_key(resource: dict) -> ResourceKey:
    metadata = resource.get("metadata") or {}
    return (
        metadata.get("namespace"),
        resource.get("kind"),
        resource.get("apiVersion"),
        metadata.get("name"),
    )


def _without_cluster_fields(resource: dict) -> dict:
    resource = copy.deepcopy(resource)
    metadata = resource.get("metadata") or {}
    for field_name in CLUSTER_METADATA_FIELDS:
        metadata.pop(field_name, None)
    return resource


def _matches(
    resource: dict,
    label_selector: Optional[str] = None,
    field_selector: Optional[str] = None,
) -> bool:
    labels = (resource.get("metadata") or {}).get("labels") or {}
    if label_selector and not match_selector(labels, label_selector):
        return False
    if field_selector and not match_selector(_flatten(resource), field_selector):
        return False
    return True


## Selectors ###################################################################
#
# Kubernetes selector syntax:
# https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/
##

_SELECTOR_TERM_SPLIT = re.compile(r",(?![^()]*\))")
_SET_TERM = re.compile(r"^([^\s!=(),]+)\s+(in|notin)\s+\((.*)\)$")
_EQUALITY_TERM = re.compile(r"^([^\s!=(),]+)\s*(==|=|!=)\s*([^\s,]*)$")
_EXISTENCE_TERM = re.compile(r"^(!?)\s*([^\s!=(),]+)$")


def match_selector(values: Dict[str, Any], selector: str) -> bool:
    """Check a flat mapping against a selector. Every comma separated term
    must match.

    Args:
        values:  Dict[str, Any]
            The labels, or the dotted fields of a resource
        selector:  str
            The selector, e.g. "app=foo,tier in (web, api),!canary"

    Returns:
        matches:  bool
            True if every term matches
    """
    for term in _SELECTOR_TERM_SPLIT.split(selector):
        term = term.strip()
        if term and not _match_term(values, term):
            log.debug4("Term [%s] does not match %s", term, values)
            return False
    return True


def _match_term(values: Dict[str, Any], term: str) -> bool:
    match = _SET_TERM.match(term)
    if match:
        key, operation, options = match.groups()
        in_options = _as_label(values.get(key)) in [
            option.strip() for option in options.split(",")
        ]
        return in_options if operation == "in" else not in_options

    match = _EQUALITY_TERM.match(term)
    if match:
        key, operation, expected = match.groups()
        equal = _as_label(values.get(key)) == expected
        return not equal if operation == "!=" else equal

    match = _EXISTENCE_TERM.match(term)
    assert match, f"Unsupported selector term [{term}]"
    negated, key = match.groups()
    return (key in values) != bool(negated)


def _as_label(value: Any) -> Optional[str]:
    return None if value is None else str(value).strip()


def _flatten(content: Any, prefix: str = "") -> Dict[str, Any]:
    """Flatten nested dicts to dotted keys, e.g. {a: {b: 1}} -> {a.b: 1}"""
    if not isinstance(content, dict):
        return {prefix: content}
    flat = {}
    for key, val in content.items():
        flat.update(_flatten(val, f"{prefix}.{key}" if prefix else key))
    return flat
