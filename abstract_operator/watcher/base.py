"""The AbstractWatcher is responsible for monitoring the cluster for the
resources of a single operator and dispatching their events to it
"""
# Standard
from collections import deque
from concurrent.futures import Future
from threading import RLock
from typing import Dict, Optional

# Third Party
from kubernetes import watch

# First Party
import alog

# Local
from .. import config
from ..deploy_manager import KubeEventType, KubeWatchEvent
from ..exceptions import WatchEstablishmentError, assert_cluster
from ..managed_object import ManagedObject
from ..threads import ThreadBase
from ..utils import parse_time_delta

log = alog.use_channel("WATCH")

# Forward declaration of Operator
OPERATOR_TYPE = "Operator"


class AbstractWatcher(ThreadBase):  # pylint: disable=too-many-instance-attributes
    """The AbstractWatcher lists the resources of one kind, then follows the
    change stream for that kind. Each event is filtered, converted and handed
    to the operator's on_add, on_delete or on_modify. Events are dispatched
    one at a time and in arrival order.
    """

    def __init__(
        self,
        operator: OPERATOR_TYPE,
        kind: str,
        api_version: str,
        label_selector: Optional[str] = None,
    ):
        """
        Args:
            operator:  Operator
                The operator whose handlers receive the events
            kind:  str
                The kind to watch
            api_version:  str
                The api_version of the kind to watch
            label_selector:  Optional[str]
                Selector restricting the watched resources
        """
        self.operator = operator
        self.kind = kind
        self.api_version = api_version
        self.label_selector = label_selector

        # None lists and watches every namespace
        self.namespace = None if operator.all_namespaces else operator.namespace

        name = f"watch_thread_{self.api_version}_{self.kind}"
        if self.namespace:
            name = name + f"_{self.namespace}"
        super().__init__(name=name, daemon=True)

        self.kubernetes_watch = watch.Watch()
        self._future = Future()

        # Last dispatched resourceVersion of every known resource, by uid
        self._known_versions: Dict[str, str] = {}
        self._resource_version = None

        # Serializes dispatch against full reconciliation passes
        self._dispatch_lock = RLock()
        self._full_reconciliation_run = False
        self._pending_events = deque()

        # Variables for tracking retries
        self.attempts_left = config.watch_retry_count
        self.retry_delay = parse_time_delta(config.watch_retry_delay or "")
        assert self.retry_delay is not None, "Invalid watch_retry_delay"

    ## Public Interface ###################################################

    def watch(self) -> Future:
        """Start the watch thread

        Returns:
            started:  Future
                Future resolving to this watcher once the initial listing
                succeeded, or failing with WatchEstablishmentError
        """
        self.start_thread()
        return self._future

    def close(self):
        """Stop the thread and the kubernetes client's Watch"""
        self.stop_thread()
        self.kubernetes_watch.stop()
        self._future.cancel()

    def set_full_reconciliation_run(self, full_reconciliation_run: bool):
        """While a full reconciliation runs, incoming events are held back.
        Turning it off dispatches the held events in arrival order.
        """
        with self._dispatch_lock:
            log.debug2(
                "Setting full reconciliation run to %s for %s",
                full_reconciliation_run,
                self.operator.name,
            )
            self._full_reconciliation_run = full_reconciliation_run
            if not full_reconciliation_run:
                while self._pending_events:
                    self._dispatch(self._pending_events.popleft())

    @property
    def full_reconciliation_run(self) -> bool:
        return self._full_reconciliation_run

    ## Control Loop ###################################################

    def run(self):
        """List the current resources, then follow the change stream and
        re-establish it when it breaks
        """
        if not self._list_initial_resources():
            return

        while not self.should_stop():
            try:
                for event in self.operator.deploy_manager.watch_objects(
                    self.kind,
                    self.api_version,
                    namespace=self.namespace,
                    label_selector=self.label_selector,
                    resource_version=self._resource_version,
                    timeout=config.watch_timeout,
                    watch_manager=self.kubernetes_watch,
                ):
                    if self.should_stop():
                        log.debug("Watcher for %s stopped", self.operator.name)
                        return
                    self._handle_event(event)
                    self.attempts_left = config.watch_retry_count
            except Exception as exc:  # pylint: disable=broad-except
                if self.should_stop():
                    return
                log.info(
                    "Exception raised when attempting to watch %s",
                    repr(exc),
                    exc_info=exc,
                )
                if self.attempts_left <= 0:
                    log.error(
                        "Unable to re-establish the watch for %s within %d attempts",
                        self.operator.name,
                        config.watch_retry_count,
                    )
                    self.stop_thread()
                    return

                if not self.wait_on_shutdown(self.retry_delay.total_seconds()):
                    return
                self.attempts_left = self.attempts_left - 1
                log.info("Restarting watch with %d attempts left", self.attempts_left)

    ## Implementation Details ###################################################

    def _list_initial_resources(self) -> bool:
        """Dispatch every resource that already exists and resolve the future"""
        try:
            success, manifests = self.operator.deploy_manager.filter_objects_current_state(
                kind=self.kind,
                namespace=self.namespace,
                api_version=self.api_version,
                label_selector=self.label_selector,
            )
            assert_cluster(
                success,
                f"Failed to list {self.api_version}/{self.kind} for {self.operator.name}",
            )
        except Exception as err:  # pylint: disable=broad-except
            watch_error = WatchEstablishmentError(
                f"Failed to start the watch for {self.operator.name}: {err}"
            )
            watch_error.__cause__ = err
            self._future.set_exception(watch_error)
            return False

        log.debug("Watch for %s established", self.operator.name)
        self._future.set_result(self)

        for manifest in manifests:
            self._handle_event(
                KubeWatchEvent(type=KubeEventType.ADDED, resource=ManagedObject(manifest))
            )
        return True

    def _handle_event(self, event: KubeWatchEvent):
        """Dispatch an event or hold it back during a full reconciliation"""
        if event.resource.resource_version:
            self._resource_version = event.resource.resource_version
        with self._dispatch_lock:
            if self._full_reconciliation_run:
                log.debug3("Deferring %s during full reconciliation", event)
                self._pending_events.append(event)
                return
            self._dispatch(event)

    def _dispatch(self, event: KubeWatchEvent):
        """Filter, de-duplicate, convert and hand one event to the operator"""
        resource = event.resource
        if not self.operator.kind.is_supported(resource.definition):
            log.debug2("Skipping unsupported resource %s", resource)
            return

        known_version = self._known_versions.get(resource.uid)
        if event.type == KubeEventType.DELETED:
            action = self.operator.on_delete
        elif known_version is None:
            action = self.operator.on_add
        elif known_version == resource.resource_version:
            log.debug3("Skipping already dispatched %s", event)
            return
        else:
            action = self.operator.on_modify

        # Raises under the fail policy, which breaks the stream
        entity = self.operator.convert_resource(resource.definition)
        if entity is None:
            return

        if event.type == KubeEventType.DELETED:
            self._known_versions.pop(resource.uid, None)
        else:
            self._known_versions[resource.uid] = resource.resource_version

        namespace = resource.namespace if self.operator.all_namespaces else None
        log.debug(
            "Dispatching %s to %s",
            event,
            self.operator.name,
            extra={"operator": self.operator, "resource": resource},
        )
        try:
            action(entity, namespace)
        except Exception as err:  # pylint: disable=broad-except
            log.error(
                "Handler for %s failed on %s: %s",
                self.operator.name,
                resource,
                err,
                exc_info=True,
            )
