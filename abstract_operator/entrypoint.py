"""
The OperatorEntrypoint starts every enabled operator of an application, runs
their periodic full reconciliation and stops them on shutdown
"""

# Standard
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Type
import threading

# First Party
import alog

# Local
from . import config
from .deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from .operator import Operator, OperatorHandler
from .threads import TimerEvent, TimerThread

log = alog.use_channel("ENTRY")

DeployManagerFactory = Callable[[], DeployManagerBase]


def configured_openshift() -> Optional[bool]:
    """The is_openshift config as a bool, or None when the cluster should be
    asked. Command line and env overrides arrive as strings.
    """
    value = config.is_openshift
    if isinstance(value, str):
        return value.strip().lower() in ["true", "yes", "1"]
    return value


def make_deploy_manager_factory(
    resources: Optional[List[dict]] = None,
) -> DeployManagerFactory:
    """Build the factory producing the deploy manager of each operator. In
    dry run, every operator shares one in-memory cluster.

    Args:
        resources:  Optional[List[dict]]
            (dry run) Resources that exist in the cluster from the start

    Returns:
        factory:  DeployManagerFactory
            Callable returning a deploy manager
    """
    if config.dry_run:
        log.info("Running DRY RUN")
        deploy_manager = DryRunDeployManager(
            resources=resources, openshift=bool(configured_openshift())
        )
        return lambda: deploy_manager
    return OpenshiftDeployManager


class OperatorEntrypoint:
    """Runs a set of operators together"""

    def __init__(
        self,
        handler_types: Iterable[Type[OperatorHandler]],
        deploy_manager_factory: Optional[DeployManagerFactory] = None,
        namespace: Optional[str] = None,
    ):
        """
        Args:
            handler_types:  Iterable[Type[OperatorHandler]]
                The handler classes, each carrying its definition
            deploy_manager_factory:  Optional[DeployManagerFactory]
                Factory for the deploy manager owned by each operator
            namespace:  Optional[str]
                The namespace to watch. Defaults to the watch_namespace config
        """
        self.handler_types = list(handler_types)
        self.deploy_manager_factory = (
            deploy_manager_factory or make_deploy_manager_factory()
        )
        self.namespace = namespace or config.watch_namespace
        self.operators: List[Operator] = []
        self.timer_thread = TimerThread(name="full_reconciliation_timer")
        self.shutdown = threading.Event()
        self._reconciliation_event: Optional[TimerEvent] = None

    ## Lifecycle ###############################################################

    def start(self) -> bool:
        """Start every enabled operator and wait for their watches

        Returns:
            all_started:  bool
                True if every enabled operator is watching
        """
        is_openshift = self._detect_openshift()
        log.info(
            "Starting %d operator(s) for namespace %s (openshift: %s)",
            len(self.handler_types),
            self.namespace,
            is_openshift,
        )

        starting = []
        for handler_type in self.handler_types:
            definition = handler_type.definition
            if definition is None or not definition.enabled:
                log.info("Skipping disabled operator %s", handler_type.__name__)
                continue
            operator = Operator(
                handler_type(),
                deploy_manager=self.deploy_manager_factory(),
                namespace=self.namespace,
                is_openshift=is_openshift,
            )
            starting.append((operator, operator.start()))

        all_started = True
        for operator, started in starting:
            try:
                watch = started.result(timeout=config.watch_start_timeout)
            except FutureTimeoutError:
                log.error(
                    "%s did not start within %ss", operator.name, config.watch_start_timeout
                )
                started.add_done_callback(
                    lambda future, operator=operator: self._stop_late_start(
                        operator, future
                    )
                )
                all_started = False
                continue
            except Exception as err:  # pylint: disable=broad-except
                log.error("%s failed to start: %s", operator.name, err)
                all_started = False
                continue

            if watch is None:
                log.warning("%s is not running", operator.name)
                all_started = False
                continue
            self.operators.append(operator)

        self._schedule_full_reconciliation()
        return all_started

    def stop(self):
        """Stop the reconciliation timer and every running operator"""
        log.info("Stopping %d operator(s)", len(self.operators))
        if self._reconciliation_event is not None:
            self._reconciliation_event.cancel()
        self.timer_thread.stop_thread()
        for operator in self.operators:
            try:
                operator.stop()
            except Exception as err:  # pylint: disable=broad-except
                log.error("Failed to stop %s: %s", operator.name, err, exc_info=True)
        self.operators = []
        self.shutdown.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() is called or the timeout expires

        Returns:
            stopped:  bool
                True if the entrypoint was stopped
        """
        return self.shutdown.wait(timeout)

    ## Implementation Details ##################################################

    def _detect_openshift(self) -> bool:
        is_openshift = configured_openshift()
        if is_openshift is not None:
            return is_openshift
        deploy_manager = self.deploy_manager_factory()
        try:
            return deploy_manager.is_openshift()
        finally:
            deploy_manager.close()

    def _schedule_full_reconciliation(self):
        interval = config.full_reconciliation_interval
        if not interval or not self.operators or self.shutdown.is_set():
            log.debug("Not scheduling a full reconciliation")
            return
        self.timer_thread.start_thread()
        self._reconciliation_event = self.timer_thread.put_event(
            datetime.now() + timedelta(seconds=interval),
            self._run_full_reconciliation,
        )

    def _run_full_reconciliation(self):
        for operator in self.operators:
            try:
                operator.full_reconciliation()
            except Exception as err:  # pylint: disable=broad-except
                log.error(
                    "Full reconciliation of %s failed: %s",
                    operator.name,
                    err,
                    exc_info=True,
                )
        self._schedule_full_reconciliation()

    @staticmethod
    def _stop_late_start(operator: Operator, started):
        if not started.cancelled() and started.exception() is None and started.result():
            log.info("Stopping %s which started after the timeout", operator.name)
            operator.stop()
