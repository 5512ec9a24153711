"""
The Operator coordinates the lifecycle of a single operator: it resolves the
operator's identity, prepares the cluster, starts the watch and forwards the
watched events to the author's OperatorHandler.
"""

# Standard
from concurrent.futures import Future
from enum import Enum
from functools import partial
from typing import Any, Optional, Set
import abc

# First Party
import alog

# Local
from . import config, constants
from .deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from .exceptions import ConversionError, WatchEstablishmentError, assert_config
from .identity import (
    ConversionErrorPolicy,
    OperatorDefinition,
    OperatorIdentity,
    default_prefix_for_module,
    resolve_identity,
)
from .resource_kind import ResourceKind, resource_kind_for

log = alog.use_channel("OPRTR")


class OperatorState(Enum):
    """The lifecycle states of an Operator"""

    CREATED = "Created"
    INITIALIZING = "Initializing"
    WATCHING = "Watching"
    STOPPED = "Stopped"


class OperatorHandler(abc.ABC):
    """Operator authors implement an OperatorHandler to react to the
    lifecycle of their entities. The namespace passed to each handler is the
    namespace the event applies to: the namespace of the resource when the
    operator watches all namespaces, otherwise the operator's namespace.

    A handler class may carry its OperatorDefinition as a class attribute:

        class JobHandler(OperatorHandler):
            definition = OperatorDefinition(info_type=Job, prefix="example.com")
    """

    definition: Optional[OperatorDefinition] = None

    @abc.abstractmethod
    def on_add(self, entity: Any, namespace: str):
        """React to a new entity"""

    @abc.abstractmethod
    def on_delete(self, entity: Any, namespace: str):
        """React to a removed entity"""

    def on_modify(self, entity: Any, namespace: str):
        """React to a changed entity. By default a change is a replacement."""
        self.on_delete(entity, namespace)
        self.on_add(entity, namespace)

    def on_init(self, operator: "Operator"):
        """Called once the identity is checked and before the watch starts"""

    def full_reconciliation(self, operator: "Operator"):
        """Compare operator.get_desired_set() with the managed state and
        correct any drift. Events are held back while this runs.
        """


class Operator:  # pylint: disable=too-many-instance-attributes
    """Coordinator for a single operator"""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        handler: OperatorHandler,
        definition: Optional[OperatorDefinition] = None,
        kind: Optional[ResourceKind] = None,
        deploy_manager: Optional[DeployManagerBase] = None,
        namespace: str = constants.ALL_NAMESPACES,
        is_openshift: bool = False,
    ):
        """
        Args:
            handler:  OperatorHandler
                The author's reactions to the entity lifecycle
            definition:  Optional[OperatorDefinition]
                The operator configuration. Defaults to handler.definition
            kind:  Optional[ResourceKind]
                Where the entities live. Defaults to the kind matching
                definition.crd
            deploy_manager:  Optional[DeployManagerBase]
                The cluster handle this operator owns. Defaults to a dry run
                or openshift deploy manager depending on the dry_run config
            namespace:  str
                The namespace to watch, "*" for all namespaces
            is_openshift:  bool
                Whether the cluster is openshift
        """
        self.handler = handler
        self.definition = definition or getattr(handler, "definition", None)
        assert_config(
            isinstance(self.definition, OperatorDefinition),
            f"No OperatorDefinition for {type(handler).__name__}",
        )
        self.kind = kind or resource_kind_for(self.definition)
        self.deploy_manager = deploy_manager or (
            DryRunDeployManager() if config.dry_run else OpenshiftDeployManager()
        )
        self.namespace = namespace
        self.is_openshift = is_openshift
        self.identity = self._resolve_identity()

        self.watch = None
        self.full_reconciliation_run = False
        self._state = OperatorState.CREATED

    ## Properties ##############################################################

    @property
    def name(self) -> str:
        return self.identity.operator_name

    @property
    def state(self) -> OperatorState:
        return self._state

    @property
    def all_namespaces(self) -> bool:
        return self.namespace == constants.ALL_NAMESPACES

    @property
    def conversion_error_policy(self) -> ConversionErrorPolicy:
        return self.definition.conversion_error_policy or ConversionErrorPolicy(
            config.conversion_error_policy
        )

    def is_enabled(self) -> bool:
        return self.definition.enabled

    ## Lifecycle ###############################################################

    def start(self) -> Future:
        """Check the identity, initialize and start the watch

        Returns:
            started:  Future
                Resolves to the running watch, or to None if the identity is
                incomplete. Fails with WatchEstablishmentError if the watch
                could not be established.
        """
        assert self._state in [
            OperatorState.CREATED,
            OperatorState.STOPPED,
        ], f"Cannot start {self.name} while {self._state.value}"

        result = Future()
        self.identity = self._resolve_identity()
        if not self.kind.check_integrity(self.identity):
            log.warning(
                "Unable to initialize %s, some compulsory fields are missing: %s",
                self.name,
                self.identity,
            )
            self._state = OperatorState.STOPPED
            result.set_result(None)
            return result

        log.info("Starting %s for namespace %s", self.name, self.namespace)
        self._state = OperatorState.INITIALIZING
        try:
            self.kind.on_init(self)
            self.handler.on_init(self)
            watch_started = self.kind.build_watcher(self).watch()
        except Exception as err:  # pylint: disable=broad-except
            self._fail_start(result, self._watch_error(err))
            return result

        watch_started.add_done_callback(partial(self._on_watch_started, result))
        return result

    def stop(self):
        """Close the watch and release the deploy manager"""
        assert self.watch is not None, f"Cannot stop {self.name} without a watch"
        log.info("Stopping %s for namespace %s", self.name, self.namespace)
        self.watch.close()
        self.deploy_manager.close()
        self.watch = None
        self._state = OperatorState.STOPPED

    ## Dispatch ################################################################

    def on_add(self, entity: Any, namespace: Optional[str] = None):
        self.handler.on_add(entity, self._effective_namespace(namespace))

    def on_delete(self, entity: Any, namespace: Optional[str] = None):
        self.handler.on_delete(entity, self._effective_namespace(namespace))

    def on_modify(self, entity: Any, namespace: Optional[str] = None):
        self.handler.on_modify(entity, self._effective_namespace(namespace))

    def convert_resource(self, raw: dict) -> Optional[Any]:
        """Convert a raw resource to an entity according to the conversion
        error policy

        Args:
            raw:  dict
                The resource as read from the cluster

        Returns:
            entity:  Optional[Any]
                The entity, or None if the conversion failed and the policy
                is to skip
        """
        try:
            return self.kind.convert(raw, self.identity.info_type)
        except ConversionError as err:
            error = err
        except Exception as err:  # pylint: disable=broad-except
            error = ConversionError(str(err))
            error.__cause__ = err

        if self.conversion_error_policy == ConversionErrorPolicy.FAIL:
            raise error
        log.warning(
            "Skipping %s/%s for %s: %s",
            (raw.get("metadata") or {}).get("namespace"),
            (raw.get("metadata") or {}).get("name"),
            self.name,
            error,
        )
        return None

    ## Reconciliation ##########################################################

    def full_reconciliation(self):
        """Run the handler's full reconciliation with event dispatch held back"""
        log.info("Running full reconciliation for %s", self.name)
        self.set_full_reconciliation_run(True)
        try:
            self.handler.full_reconciliation(self)
        finally:
            self.set_full_reconciliation_run(False)

    def set_full_reconciliation_run(self, full_reconciliation_run: bool):
        self.full_reconciliation_run = full_reconciliation_run
        if self.watch is not None:
            self.watch.set_full_reconciliation_run(full_reconciliation_run)

    def get_desired_set(self) -> Set:
        return self.kind.get_desired_set(self)

    def set_cr_status(self, status: str, namespace: str, name: str):
        self.kind.set_cr_status(self, status, namespace, name)

    ## Implementation Details ##################################################

    def _resolve_identity(self) -> OperatorIdentity:
        return resolve_identity(
            self.definition,
            default_prefix=default_prefix_for_module(type(self.handler).__module__),
        )

    def _effective_namespace(self, namespace: Optional[str]) -> str:
        if namespace and self.all_namespaces:
            return namespace
        return self.namespace

    def _watch_error(self, err: BaseException) -> WatchEstablishmentError:
        if isinstance(err, WatchEstablishmentError):
            return err
        error = WatchEstablishmentError(f"Failed to start {self.name}: {err}")
        error.__cause__ = err
        return error

    def _fail_start(self, result: Future, error: WatchEstablishmentError):
        log.error(
            "%s failed to start for namespace %s: %s",
            self.name,
            self.namespace,
            error,
            exc_info=error,
        )
        self._state = OperatorState.STOPPED
        result.set_exception(error)

    def _on_watch_started(self, result: Future, watch_started: Future):
        if watch_started.cancelled():
            self._fail_start(
                result, WatchEstablishmentError(f"Watch of {self.name} was cancelled")
            )
            return
        err = watch_started.exception()
        if err is not None:
            self._fail_start(result, self._watch_error(err))
            return

        self.watch = watch_started.result()
        self._state = OperatorState.WATCHING
        log.info("%s running for namespace %s", self.name, self.namespace)
        result.set_result(self.watch)
