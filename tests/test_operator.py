"""
Tests for the Operator lifecycle and dispatch
"""
# Standard
from unittest import mock

# Third Party
import pytest

# Local
from abstract_operator import operator as operator_module
from abstract_operator.deploy_manager import DryRunDeployManager
from abstract_operator.exceptions import (
    ConfigError,
    ConversionError,
    WatchEstablishmentError,
)
from abstract_operator.identity import (
    ConversionErrorPolicy,
    OperatorDefinition,
    default_prefix_for_module,
)
from abstract_operator.operator import Operator, OperatorHandler, OperatorState
from abstract_operator.resource_kind import ConfigMapKind
from abstract_operator.test_helpers.helpers import (
    SOME_OTHER_NAMESPACE,
    TEST_NAMESPACE,
    Job,
    RecordingHandler,
    job_definition,
    library_config,
    make_config_map,
    make_custom_resource,
    wait_for,
)

## Helpers #####################################################################


class NoPrefixHandler(RecordingHandler):
    definition = OperatorDefinition(info_type=Job)


class MinimalHandler(OperatorHandler):
    definition = job_definition()

    def on_add(self, entity, namespace):
        pass

    def on_delete(self, entity, namespace):
        pass


def make_operator(
    handler=None, deploy_manager=None, namespace=TEST_NAMESPACE, **kwargs
):
    handler = handler or RecordingHandler()
    operator = Operator(
        handler,
        deploy_manager=deploy_manager or DryRunDeployManager(),
        namespace=namespace,
        **kwargs,
    )
    return operator, handler


def job(name, namespace=TEST_NAMESPACE, image="busybox"):
    return Job.from_dict({"image": image}, name=name, namespace=namespace)


## Construction ################################################################


def test_operator_defaults():
    operator, _ = make_operator()
    assert operator.name == "'Job' operator"
    assert operator.state == OperatorState.CREATED
    assert operator.identity.prefix == "example.com/"
    assert operator.identity.entity_name == "Job"
    assert isinstance(operator.kind, ConfigMapKind)
    assert not operator.all_namespaces
    assert operator.is_enabled()
    assert operator.conversion_error_policy == ConversionErrorPolicy.SKIP


def test_operator_requires_definition():
    class NoDefinition(RecordingHandler):
        definition = None

    with pytest.raises(ConfigError):
        Operator(NoDefinition(), deploy_manager=DryRunDeployManager())


def test_operator_explicit_definition_wins():
    operator, _ = make_operator(definition=job_definition(named="Task"))
    assert operator.name == "'Task' operator"


def test_operator_default_prefix_from_handler_module():
    operator, _ = make_operator(NoPrefixHandler())
    prefix = operator.identity.prefix
    assert prefix == default_prefix_for_module(NoPrefixHandler.__module__) + "/"
    assert "_" not in prefix


def test_operator_conversion_policy_from_config():
    with library_config(conversion_error_policy="fail"):
        operator, _ = make_operator()
        assert operator.conversion_error_policy == ConversionErrorPolicy.FAIL


def test_operator_default_deploy_manager_in_dry_run():
    with library_config(dry_run=True):
        operator = Operator(RecordingHandler())
    assert isinstance(operator.deploy_manager, DryRunDeployManager)
    assert operator.all_namespaces


## Dispatch ####################################################################


def test_on_add_uses_operator_namespace():
    operator, handler = make_operator()
    operator.on_add(job("job-a"), SOME_OTHER_NAMESPACE)
    assert handler.calls == [("add", job("job-a"), TEST_NAMESPACE)]


def test_on_add_all_namespaces_uses_event_namespace():
    operator, handler = make_operator(namespace="*")
    operator.on_add(job("job-a", SOME_OTHER_NAMESPACE), SOME_OTHER_NAMESPACE)
    operator.on_delete(job("job-a", SOME_OTHER_NAMESPACE))
    assert [namespace for _, _, namespace in handler.calls] == [
        SOME_OTHER_NAMESPACE,
        "*",
    ]
    assert operator.namespace == "*"


def test_namespace_unchanged_when_handler_fails():
    operator, handler = make_operator(namespace="*")
    handler.fail_on.add("add")
    with pytest.raises(RuntimeError):
        operator.on_add(job("job-a", SOME_OTHER_NAMESPACE), SOME_OTHER_NAMESPACE)
    assert operator.namespace == "*"
    assert handler.calls[0][2] == SOME_OTHER_NAMESPACE


def test_default_on_modify_deletes_then_adds():
    operator, handler = make_operator()
    operator.on_modify(job("job-a"))
    assert handler.names() == [("delete", "job-a"), ("add", "job-a")]


def test_base_handler_hooks_are_no_ops():
    operator, _ = make_operator(MinimalHandler())
    operator.handler.on_init(operator)
    operator.full_reconciliation()
    operator.on_modify(job("job-a"))


def test_convert_resource_skip_and_fail():
    operator, _ = make_operator()
    bad = make_config_map("job-b", raw_config="image: [broken")
    assert operator.convert_resource(bad) is None

    operator, _ = make_operator(
        definition=job_definition(conversion_error_policy=ConversionErrorPolicy.FAIL)
    )
    with pytest.raises(ConversionError):
        operator.convert_resource(bad)


def test_convert_resource_wraps_custom_errors():
    def explode(raw):
        raise KeyError("missing")

    operator, _ = make_operator(
        definition=job_definition(conversion_error_policy=ConversionErrorPolicy.FAIL),
        kind=ConfigMapKind(convert=explode),
    )
    with pytest.raises(ConversionError) as exc_info:
        operator.convert_resource(make_config_map("job-a"))
    assert isinstance(exc_info.value.__cause__, KeyError)


## Lifecycle ###################################################################


@pytest.mark.timeout(10)
def test_config_map_job_lifecycle():
    deploy_manager = DryRunDeployManager()
    operator, handler = make_operator(deploy_manager=deploy_manager)

    watch = operator.start().result(timeout=5)
    try:
        assert watch is operator.watch
        assert operator.state == OperatorState.WATCHING
        assert handler.init_calls == [operator]

        deploy_manager.deploy(
            [make_config_map("job-a", payload={"image": "busybox", "replicas": 2})]
        )
        assert wait_for(lambda: handler.calls_of("add"))
        _, entity, namespace = handler.calls_of("add")[0]
        assert entity.name == "job-a"
        assert entity.image == "busybox"
        assert entity.replicas == 2
        assert namespace == TEST_NAMESPACE

        deploy_manager.disable([make_config_map("job-a")])
        assert wait_for(lambda: handler.calls_of("delete"))
        assert handler.names() == [("add", "job-a"), ("delete", "job-a")]
        assert handler.calls_of("delete")[0][2] == TEST_NAMESPACE
    finally:
        operator.stop()

    assert operator.state == OperatorState.STOPPED
    assert operator.watch is None
    watch.join(timeout=5)
    assert not watch.is_alive()


@pytest.mark.timeout(10)
def test_all_namespaces_lifecycle():
    deploy_manager = DryRunDeployManager()
    operator, handler = make_operator(deploy_manager=deploy_manager, namespace="*")
    operator.start().result(timeout=5)
    try:
        deploy_manager.deploy(
            [
                make_config_map(
                    "job-b", namespace=SOME_OTHER_NAMESPACE, payload={"image": "x"}
                )
            ]
        )
        assert wait_for(lambda: handler.calls_of("add"))
        assert handler.calls_of("add")[0][2] == SOME_OTHER_NAMESPACE
        assert operator.namespace == "*"
    finally:
        operator.stop()


@pytest.mark.timeout(10)
def test_custom_resource_lifecycle():
    deploy_manager = DryRunDeployManager()
    operator, handler = make_operator(
        deploy_manager=deploy_manager, definition=job_definition(crd=True)
    )
    operator.start().result(timeout=5)
    try:
        deploy_manager.deploy([make_custom_resource("job-a", spec={"image": "x"})])
        assert wait_for(lambda: handler.calls_of("add"))
        operator.set_cr_status("Running", TEST_NAMESPACE, "job-a")
        _, content = deploy_manager.get_object_current_state(
            kind="Job", name="job-a", namespace=TEST_NAMESPACE
        )
        assert content["status"]["state"] == "Running"
    finally:
        operator.stop()


def test_start_incomplete_identity():
    operator, handler = make_operator(
        definition=job_definition(prefix="", entity_name="", info_type=None)
    )
    assert operator.start().result(timeout=1) is None
    assert operator.state == OperatorState.STOPPED
    assert handler.init_calls == []
    assert operator.watch is None


def test_start_incomplete_identity_is_not_logged_as_starting():
    operator, _ = make_operator(
        definition=job_definition(prefix="", entity_name="", info_type=None)
    )
    with mock.patch.object(operator_module.log, "info") as info_mock:
        operator.start().result(timeout=1)
    assert not any(
        call.args[0].startswith("Starting") for call in info_mock.call_args_list
    )


@pytest.mark.timeout(10)
def test_start_on_init_failure():
    operator, _ = make_operator()
    with mock.patch.object(operator.kind, "on_init", side_effect=RuntimeError("boom")):
        started = operator.start()
    with pytest.raises(WatchEstablishmentError) as exc_info:
        started.result(timeout=5)
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert operator.state == OperatorState.STOPPED


@pytest.mark.timeout(10)
def test_start_listing_failure():
    deploy_manager = mock.Mock()
    deploy_manager.filter_objects_current_state.return_value = (False, [])
    operator, _ = make_operator(deploy_manager=deploy_manager)
    with pytest.raises(WatchEstablishmentError):
        operator.start().result(timeout=5)
    assert operator.state == OperatorState.STOPPED
    assert operator.watch is None


@pytest.mark.timeout(10)
def test_restart_after_stop():
    operator, _ = make_operator()
    operator.start().result(timeout=5)
    with pytest.raises(AssertionError):
        operator.start()
    operator.stop()
    operator.start().result(timeout=5)
    assert operator.state == OperatorState.WATCHING
    operator.stop()


def test_stop_without_watch():
    operator, _ = make_operator()
    with pytest.raises(AssertionError):
        operator.stop()


## Full Reconciliation #########################################################


@pytest.mark.timeout(10)
def test_full_reconciliation():
    deploy_manager = DryRunDeployManager(
        resources=[
            make_config_map("job-a", payload={"image": "busybox"}),
            make_config_map("job-b", raw_config="image: [broken"),
            make_config_map("job-c", payload={"image": "nginx"}),
        ]
    )
    operator, handler = make_operator(deploy_manager=deploy_manager)
    operator.start().result(timeout=5)
    try:
        operator.full_reconciliation()
        assert len(handler.reconciliation_calls) == 1
        assert {entity.name for entity in handler.reconciliation_calls[0]} == {
            "job-a",
            "job-c",
        }
        assert not operator.full_reconciliation_run
        assert not operator.watch.full_reconciliation_run
    finally:
        operator.stop()


def test_full_reconciliation_resets_flag_on_failure():
    operator, handler = make_operator()
    with mock.patch.object(
        handler, "full_reconciliation", side_effect=RuntimeError("boom")
    ):
        with pytest.raises(RuntimeError):
            operator.full_reconciliation()
    assert not operator.full_reconciliation_run
