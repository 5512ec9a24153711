"""
Tests for the OperatorEntrypoint
"""
# Standard
from unittest import mock

# Third Party
import pytest

# Local
from abstract_operator.deploy_manager import DryRunDeployManager
from abstract_operator.entrypoint import (
    OperatorEntrypoint,
    configured_openshift,
    make_deploy_manager_factory,
)
from abstract_operator.identity import OperatorDefinition
from abstract_operator.operator import OperatorState
from abstract_operator.test_helpers.helpers import (
    TEST_NAMESPACE,
    Job,
    RecordingHandler,
    job_definition,
    library_config,
    make_config_map,
    wait_for,
)

## Helpers #####################################################################


class JobHandler(RecordingHandler):
    INSTANCES = []

    def __init__(self):
        super().__init__()
        self.INSTANCES.append(self)


class DisabledHandler(RecordingHandler):
    definition = job_definition(named="Disabled", enabled=False)


class IncompleteHandler(RecordingHandler):
    definition = OperatorDefinition(info_type=None, prefix="example.com")


@pytest.fixture(autouse=True)
def reset_instances():
    JobHandler.INSTANCES.clear()
    yield
    JobHandler.INSTANCES.clear()


def shared_factory(deploy_manager):
    return lambda: deploy_manager


## Deploy Manager Factory ######################################################


@pytest.mark.parametrize(
    ["value", "expected"],
    [(None, None), (True, True), (False, False), ("true", True), ("False", False)],
)
def test_configured_openshift(value, expected):
    with library_config(is_openshift=value):
        assert configured_openshift() == expected


def test_dry_run_factory_shares_cluster():
    with library_config(dry_run=True, is_openshift=True):
        factory = make_deploy_manager_factory(
            resources=[make_config_map("job-a", payload={"image": "x"})]
        )
    first = factory()
    assert isinstance(first, DryRunDeployManager)
    assert first is factory()
    assert first.is_openshift()
    assert first.get_object_current_state("ConfigMap", "job-a", TEST_NAMESPACE)[1]


## Lifecycle ###################################################################


@pytest.mark.timeout(10)
def test_entrypoint_starts_enabled_operators():
    deploy_manager = DryRunDeployManager()
    entrypoint = OperatorEntrypoint(
        [JobHandler, DisabledHandler],
        deploy_manager_factory=shared_factory(deploy_manager),
        namespace=TEST_NAMESPACE,
    )
    with library_config(is_openshift=False):
        assert entrypoint.start()
    try:
        assert len(entrypoint.operators) == 1
        operator = entrypoint.operators[0]
        assert operator.state == OperatorState.WATCHING
        assert operator.namespace == TEST_NAMESPACE
        assert not operator.is_openshift

        deploy_manager.deploy([make_config_map("job-a", payload={"image": "x"})])
        handler = JobHandler.INSTANCES[0]
        assert wait_for(lambda: handler.names() == [("add", "job-a")])
    finally:
        entrypoint.stop()

    assert entrypoint.operators == []
    assert entrypoint.wait(timeout=1)
    assert operator.state == OperatorState.STOPPED


@pytest.mark.timeout(10)
def test_entrypoint_reports_incomplete_operator():
    entrypoint = OperatorEntrypoint(
        [JobHandler, IncompleteHandler],
        deploy_manager_factory=shared_factory(DryRunDeployManager()),
        namespace=TEST_NAMESPACE,
    )
    with library_config(is_openshift=False):
        assert not entrypoint.start()
    try:
        assert len(entrypoint.operators) == 1
    finally:
        entrypoint.stop()


@pytest.mark.timeout(10)
def test_entrypoint_reports_failed_operator():
    deploy_manager = mock.Mock()
    deploy_manager.filter_objects_current_state.return_value = (False, [])
    entrypoint = OperatorEntrypoint(
        [JobHandler],
        deploy_manager_factory=shared_factory(deploy_manager),
        namespace=TEST_NAMESPACE,
    )
    with library_config(is_openshift=False):
        assert not entrypoint.start()
    assert entrypoint.operators == []
    entrypoint.stop()


@pytest.mark.timeout(10)
def test_entrypoint_detects_openshift():
    deploy_manager = DryRunDeployManager(openshift=True)
    entrypoint = OperatorEntrypoint(
        [JobHandler], deploy_manager_factory=shared_factory(deploy_manager)
    )
    with library_config(is_openshift=None, watch_namespace="*"):
        assert entrypoint.start()
    try:
        operator = entrypoint.operators[0]
        assert operator.is_openshift
        assert operator.all_namespaces
    finally:
        entrypoint.stop()


@pytest.mark.timeout(10)
def test_entrypoint_runs_full_reconciliation():
    deploy_manager = DryRunDeployManager(
        resources=[make_config_map("job-a", payload={"image": "x"})]
    )
    entrypoint = OperatorEntrypoint(
        [JobHandler],
        deploy_manager_factory=shared_factory(deploy_manager),
        namespace=TEST_NAMESPACE,
    )
    with library_config(is_openshift=False, full_reconciliation_interval=0.2):
        assert entrypoint.start()
        try:
            handler = JobHandler.INSTANCES[0]
            assert wait_for(lambda: len(handler.reconciliation_calls) >= 2)
            assert {entity.name for entity in handler.reconciliation_calls[0]} == {
                "job-a"
            }
        finally:
            entrypoint.stop()


@pytest.mark.timeout(10)
def test_entrypoint_no_full_reconciliation_when_disabled():
    entrypoint = OperatorEntrypoint(
        [JobHandler],
        deploy_manager_factory=shared_factory(DryRunDeployManager()),
        namespace=TEST_NAMESPACE,
    )
    with library_config(is_openshift=False, full_reconciliation_interval=0):
        assert entrypoint.start()
    try:
        assert not entrypoint.timer_thread.is_alive()
    finally:
        entrypoint.stop()


def test_entrypoint_wait_times_out():
    entrypoint = OperatorEntrypoint(
        [], deploy_manager_factory=shared_factory(DryRunDeployManager())
    )
    assert not entrypoint.wait(timeout=0.1)
