"""
Package exports
"""

# Local
from . import config
from .deploy_manager import DeployManagerBase, DryRunDeployManager
from .entity import EntityInfo
from .entrypoint import OperatorEntrypoint
from .exceptions import (
    ClusterError,
    ConfigError,
    ConversionError,
    WatchEstablishmentError,
    assert_cluster,
    assert_config,
    assert_convertible,
)
from .identity import (
    ConversionErrorPolicy,
    OperatorDefinition,
    OperatorIdentity,
    check_integrity,
    labels_for_kind,
    resolve_identity,
)
from .operator import Operator, OperatorHandler, OperatorState
from .resource_kind import ConfigMapKind, CustomResourceKind, resource_kind_for
