"""
Strategies describing how an operator's entities are stored in the cluster
"""

# Local
from .base import ResourceKind
from .config_map import ConfigMapKind
from .crd import CrdDeployer, CrdHandle
from .custom_resource import CustomResourceKind


def resource_kind_for(definition) -> ResourceKind:
    """Pick the default ResourceKind for an OperatorDefinition"""
    if definition.crd:
        return CustomResourceKind()
    return ConfigMapKind()
