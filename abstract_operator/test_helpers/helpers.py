"""
Fixtures and sample operators shared by the abstract_operator tests
"""

# Standard
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional, Tuple
import os
import threading
import time

# Third Party
import yaml

# First Party
import alog

# Local
from abstract_operator.config import library_config as library_config_dict
from abstract_operator.entity import EntityInfo
from abstract_operator.identity import OperatorDefinition, labels_for_kind
from abstract_operator.operator import OperatorHandler

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_NAMESPACE = "ns1"
SOME_OTHER_NAMESPACE = "ns2"
TEST_PREFIX = "example.com/"
TEST_ENTITY_NAME = "Job"


@contextmanager
def library_config(**config_overrides):
    """Temporarily set library config keys. Keys that did not exist before
    are removed again on exit.
    """
    missing = object()
    saved = {key: library_config_dict.get(key, missing) for key in config_overrides}
    for key, val in config_overrides.items():
        library_config_dict[key] = val
    try:
        yield
    finally:
        for key, val in saved.items():
            if val is missing:
                del library_config_dict[key]
            else:
                library_config_dict[key] = val


## Entities ####################################################################


@dataclass(eq=False)
class Job(EntityInfo):
    """Sample entity used throughout the tests"""

    image: str
    replicas: int = 1


def job_definition(**kwargs) -> OperatorDefinition:
    kwargs.setdefault("info_type", Job)
    kwargs.setdefault("prefix", TEST_PREFIX)
    return OperatorDefinition(**kwargs)


## Resources ###################################################################


def make_config_map(
    name: str,
    namespace: str = TEST_NAMESPACE,
    payload=None,
    entity_name: str = TEST_ENTITY_NAME,
    prefix: str = TEST_PREFIX,
    raw_config: Optional[str] = None,
    labels: Optional[dict] = None,
) -> dict:
    """Build a ConfigMap carrying an entity. The payload is dumped as yaml
    under data.config unless raw_config is given.
    """
    data = {}
    if raw_config is not None:
        data["config"] = raw_config
    elif payload is not None:
        data["config"] = yaml.safe_dump(payload)
    all_labels = labels_for_kind(entity_name, prefix)
    all_labels.update(labels or {})
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace, "labels": all_labels},
        "data": data,
    }


def make_custom_resource(
    name: str,
    namespace: str = TEST_NAMESPACE,
    spec=None,
    kind: str = TEST_ENTITY_NAME,
    api_version: str = "example.com/v1",
    status: Optional[dict] = None,
) -> dict:
    """Build an instance of a custom resource"""
    resource = {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace},
    }
    if spec is not None:
        resource["spec"] = spec
    if status is not None:
        resource["status"] = status
    return resource


## Handlers ####################################################################


class RecordingHandler(OperatorHandler):
    """Handler that records every call it receives in order"""

    definition = job_definition()

    def __init__(self):
        self.calls: List[Tuple[str, EntityInfo, str]] = []
        self.init_calls = []
        self.reconciliation_calls = []
        self.fail_on = set()
        self._lock = threading.Lock()

    def _record(self, call: str, entity, namespace):
        with self._lock:
            self.calls.append((call, entity, namespace))
        if call in self.fail_on:
            raise RuntimeError(f"Failing {call} on purpose")

    def on_add(self, entity, namespace):
        self._record("add", entity, namespace)

    def on_delete(self, entity, namespace):
        self._record("delete", entity, namespace)

    def on_init(self, operator):
        self.init_calls.append(operator)

    def full_reconciliation(self, operator):
        self.reconciliation_calls.append(operator.get_desired_set())

    def calls_of(self, call: str) -> list:
        with self._lock:
            return [entry for entry in self.calls if entry[0] == call]

    def names(self) -> List[Tuple[str, str]]:
        with self._lock:
            return [(call, entity.name) for call, entity, _ in self.calls]


def wait_for(condition, timeout: float = 3.0, interval: float = 0.05) -> bool:
    """Poll the condition until it is true or the timeout expires"""
    end_time = time.time() + timeout
    while time.time() < end_time:
        if condition():
            return True
        time.sleep(interval)
    log.debug("Condition still false after %ss", timeout)
    return condition()
