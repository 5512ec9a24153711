"""
Tests for the OpenshiftDeployManager against a mocked DynamicClient
"""
# Standard
from unittest import mock

# Third Party
from kubernetes.client.exceptions import ApiException
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
)
import pytest
import urllib3

# Local
from abstract_operator.deploy_manager import KubeEventType, OpenshiftDeployManager
from abstract_operator.deploy_manager.openshift_deploy_manager import FIELD_MANAGER
from abstract_operator.exceptions import ClusterError
from abstract_operator.resource_kind import CustomResourceKind
from abstract_operator.resource_kind.crd import CrdHandle
from abstract_operator.test_helpers.helpers import (
    TEST_NAMESPACE,
    library_config,
    make_custom_resource,
)

## Helpers #####################################################################


def api_error(error_type, status):
    return error_type(ApiException(status=status, reason=error_type.__name__))


def as_result(content):
    result = mock.Mock()
    result.to_dict.return_value = content
    return result


def setup_testable_manager(handle=None, handle_error=None):
    """Build a deploy manager whose client hands out the given resource handle"""
    dynamic_client = mock.Mock()
    if handle_error is not None:
        dynamic_client.resources.get.side_effect = handle_error
    else:
        dynamic_client.resources.get.return_value = handle or mock.Mock()
    deploy_manager = OpenshiftDeployManager()
    deploy_manager._client = dynamic_client
    return deploy_manager, dynamic_client


def stored_job(resource_version="1", **kwargs):
    job = make_custom_resource("job-a", spec={"image": "busybox"}, **kwargs)
    job["metadata"]["resourceVersion"] = resource_version
    job["metadata"]["uid"] = "uid-a"
    return job


def watch_event(event_type, resource_version):
    return {"type": event_type, "object": stored_job(resource_version)}


## Get / Filter ################################################################


def test_get_object_current_state():
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job())
    deploy_manager, _ = setup_testable_manager(handle)
    success, content = deploy_manager.get_object_current_state(
        "Job", "job-a", TEST_NAMESPACE, "example.com/v1"
    )
    assert success
    assert content == stored_job()
    handle.get.assert_called_once_with(name="job-a", namespace=TEST_NAMESPACE)


@pytest.mark.parametrize(
    ["error", "expected"],
    [
        (api_error(NotFoundError, 404), (True, None)),
        (api_error(ForbiddenError, 403), (False, None)),
    ],
)
def test_get_object_current_state_errors(error, expected):
    handle = mock.Mock()
    handle.get.side_effect = error
    deploy_manager, _ = setup_testable_manager(handle)
    assert (
        deploy_manager.get_object_current_state("Job", "job-a", TEST_NAMESPACE)
        == expected
    )


def test_get_object_unknown_kind():
    deploy_manager, _ = setup_testable_manager(
        handle_error=ResourceNotFoundError("no kind")
    )
    assert deploy_manager.get_object_current_state("Job", "job-a") == (True, None)
    assert deploy_manager.filter_objects_current_state("Job") == (True, [])


def test_filter_objects_all_namespaces():
    handle = mock.Mock()
    handle.get.return_value = as_result({"items": [stored_job()]})
    deploy_manager, _ = setup_testable_manager(handle)
    success, items = deploy_manager.filter_objects_current_state(
        "Job", api_version="example.com/v1", label_selector="a=b"
    )
    assert success
    assert items == [stored_job()]
    handle.get.assert_called_once_with(
        label_selector="a=b", field_selector=None, namespace=None
    )


## Deploy / Disable ############################################################


def test_deploy_new_resource():
    handle = mock.Mock()
    handle.get.side_effect = api_error(NotFoundError, 404)
    handle.server_side_apply.return_value = as_result(stored_job())
    deploy_manager, _ = setup_testable_manager(handle)

    assert deploy_manager.deploy(
        [make_custom_resource("job-a", spec={"image": "x"})]
    ) == (True, True)
    _, kwargs = handle.server_side_apply.call_args
    assert kwargs["field_manager"] == FIELD_MANAGER
    assert kwargs["force_conflicts"]
    assert kwargs["namespace"] == TEST_NAMESPACE


def test_deploy_unchanged_resource():
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job())
    deploy_manager, _ = setup_testable_manager(handle)
    assert deploy_manager.deploy(
        [make_custom_resource("job-a", spec={"image": "busybox"})]
    ) == (True, False)
    handle.server_side_apply.assert_not_called()


def test_deploy_retries_conflicts():
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job("7"))
    handle.server_side_apply.side_effect = [
        api_error(ConflictError, 409),
        as_result(stored_job("8", status={"state": "Running"})),
    ]
    deploy_manager, _ = setup_testable_manager(handle)
    with library_config(retry_backoff_base_seconds=0, deploy_retries=2):
        success, changed = deploy_manager.deploy(
            [make_custom_resource("job-a", spec={"image": "nginx"})]
        )
    assert success
    assert changed
    assert handle.server_side_apply.call_count == 2
    retried = handle.server_side_apply.call_args[0][0]
    assert retried["metadata"]["resourceVersion"] == "7"


def test_deploy_conflicts_exhausted():
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job())
    handle.server_side_apply.side_effect = api_error(ConflictError, 409)
    deploy_manager, _ = setup_testable_manager(handle)
    with library_config(retry_backoff_base_seconds=0, deploy_retries=1):
        assert deploy_manager.deploy(
            [make_custom_resource("job-a", spec={"image": "nginx"})]
        ) == (False, False)
    assert handle.server_side_apply.call_count == 2


def test_deploy_empty_list():
    deploy_manager, client = setup_testable_manager()
    assert deploy_manager.deploy([]) == (True, False)
    client.resources.get.assert_not_called()


def test_disable():
    handle = mock.Mock()
    deploy_manager, _ = setup_testable_manager(handle)
    assert deploy_manager.disable([stored_job()]) == (True, True)
    handle.delete.assert_called_once_with(name="job-a", namespace=TEST_NAMESPACE)


def test_disable_missing():
    handle = mock.Mock()
    handle.delete.side_effect = api_error(NotFoundError, 404)
    deploy_manager, _ = setup_testable_manager(handle)
    assert deploy_manager.disable([stored_job()]) == (True, False)


## Status ######################################################################


def test_set_status():
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job())
    deploy_manager, _ = setup_testable_manager(handle)
    status = {"state": "Running", "lastTransitionTime": "2024-01-01T00:00:00Z"}
    assert deploy_manager.set_status(
        "Job", "job-a", TEST_NAMESPACE, status, api_version="example.com/v1"
    ) == (True, True)
    body = handle.status.replace.call_args.kwargs["body"]
    assert body["status"] == status
    assert body["spec"] == {"image": "busybox"}


def test_set_status_unchanged():
    status = {"state": "Running"}
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job(status=status))
    deploy_manager, _ = setup_testable_manager(handle)
    assert deploy_manager.set_status("Job", "job-a", TEST_NAMESPACE, status) == (
        True,
        False,
    )
    handle.status.replace.assert_not_called()


def test_set_status_missing_resource():
    handle = mock.Mock()
    handle.get.side_effect = api_error(NotFoundError, 404)
    deploy_manager, _ = setup_testable_manager(handle)
    assert deploy_manager.set_status(
        "Job", "job-a", TEST_NAMESPACE, {"state": "Running"}
    ) == (True, False)


def test_set_status_resource_deleted_before_write():
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job())
    handle.status.replace.side_effect = api_error(NotFoundError, 404)
    deploy_manager, _ = setup_testable_manager(handle)
    assert deploy_manager.set_status(
        "Job", "job-a", TEST_NAMESPACE, {"state": "Running"}
    ) == (True, False)
    handle.status.replace.assert_called_once()


def test_set_status_resource_deleted_during_conflict_retry():
    handle = mock.Mock()
    handle.get.side_effect = [
        as_result(stored_job()),
        api_error(NotFoundError, 404),
    ]
    handle.status.replace.side_effect = api_error(ConflictError, 409)
    deploy_manager, _ = setup_testable_manager(handle)
    with library_config(retry_backoff_base_seconds=0, deploy_retries=2):
        assert deploy_manager.set_status(
            "Job", "job-a", TEST_NAMESPACE, {"state": "Running"}
        ) == (True, False)
    handle.status.replace.assert_called_once()


def test_custom_resource_status_on_deleted_resource():
    handle = mock.Mock()
    handle.get.return_value = as_result(stored_job())
    handle.status.replace.side_effect = api_error(NotFoundError, 404)
    deploy_manager, _ = setup_testable_manager(handle)
    kind = CustomResourceKind()
    kind.crd_handle = CrdHandle(
        group="example.com", version="v1", kind="Job", plural="jobs"
    )
    operator = mock.Mock(deploy_manager=deploy_manager, kind=kind)
    kind.set_cr_status(operator, "Running", TEST_NAMESPACE, "job-a")


## Watch #######################################################################


def test_watch_objects_until_timeout():
    watch_manager = mock.Mock(_stop=False)
    watch_manager.stream.return_value = iter(
        [watch_event("ADDED", "1"), watch_event("MODIFIED", "2")]
    )
    deploy_manager, _ = setup_testable_manager()
    events = list(
        deploy_manager.watch_objects(
            "Job",
            "example.com/v1",
            namespace=TEST_NAMESPACE,
            timeout=5,
            watch_manager=watch_manager,
        )
    )
    assert [event.type for event in events] == [
        KubeEventType.ADDED,
        KubeEventType.MODIFIED,
    ]
    assert events[1].resource.resource_version == "2"
    _, kwargs = watch_manager.stream.call_args
    assert kwargs["timeout_seconds"] == 5
    assert kwargs["namespace"] == TEST_NAMESPACE


def test_watch_objects_restarts_after_expired_version():
    watch_manager = mock.Mock(_stop=False)
    requested_versions = []

    def stream(*_, **kwargs):
        requested_versions.append(kwargs["resource_version"])
        if len(requested_versions) == 1:
            raise ApiException(status=410, reason="Gone")
        if len(requested_versions) == 2:
            raise urllib3.exceptions.ProtocolError("bad chunk")
        return iter([watch_event("ADDED", "9")])

    watch_manager.stream.side_effect = stream
    deploy_manager, _ = setup_testable_manager()
    events = list(
        deploy_manager.watch_objects(
            "Job", resource_version="5", timeout=5, watch_manager=watch_manager
        )
    )
    assert requested_versions == ["5", 0, 0]
    assert len(events) == 1


def test_watch_objects_stops_with_watch_manager():
    watch_manager = mock.Mock(_stop=True)
    watch_manager.stream.side_effect = urllib3.exceptions.ReadTimeoutError(
        None, None, "timed out"
    )
    deploy_manager, _ = setup_testable_manager()
    assert list(deploy_manager.watch_objects("Job", watch_manager=watch_manager)) == []


def test_watch_objects_raises_api_errors():
    watch_manager = mock.Mock(_stop=False)
    watch_manager.stream.side_effect = ApiException(status=500, reason="boom")
    deploy_manager, _ = setup_testable_manager()
    with pytest.raises(ApiException):
        list(deploy_manager.watch_objects("Job", watch_manager=watch_manager))


def test_watch_objects_unknown_kind():
    deploy_manager, _ = setup_testable_manager(
        handle_error=ResourceNotFoundError("no kind")
    )
    with pytest.raises(ClusterError):
        list(deploy_manager.watch_objects("Job", watch_manager=mock.Mock()))


## Cluster ####################################################################


def test_is_openshift_cached():
    deploy_manager, client = setup_testable_manager()
    assert deploy_manager.is_openshift()
    assert deploy_manager.is_openshift()
    client.resources.get.assert_called_once_with(
        kind="Route", api_version="route.openshift.io/v1"
    )


def test_is_not_openshift():
    deploy_manager, _ = setup_testable_manager(
        handle_error=ResourceNotFoundError("no routes")
    )
    assert not deploy_manager.is_openshift()


def test_close():
    deploy_manager, client = setup_testable_manager()
    deploy_manager.close()
    client.client.close.assert_called_once()
    deploy_manager.close()


def test_setup_client_without_cluster():
    with pytest.raises(RuntimeError):
        OpenshiftDeployManager().client
