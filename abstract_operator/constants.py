"""
Shared module to hold constant values for the library
"""

# Sentinel namespace meaning that an operator watches every namespace
ALL_NAMESPACES = "*"

# Suffix appended to the operator prefix to build the kind label key, e.g.
# radanalytics.io/kind=SparkCluster
OPERATOR_KIND_LABEL = "kind"

# Key inside a ConfigMap's data section that holds the embedded yaml config
CONFIG_MAP_CONFIG_KEY = "config"

# Suffix every resolved operator name must carry
OPERATOR_NAME_SUFFIX = "operator"

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."

# Resource identifiers used by the resource kinds
CONFIG_MAP_KIND = "ConfigMap"
CONFIG_MAP_API_VERSION = "v1"
CRD_KIND = "CustomResourceDefinition"
CRD_API_VERSION = "apiextensions.k8s.io/v1"
CRD_VERSION = "v1"

# API group whose presence signals an openshift cluster
OPENSHIFT_ROUTE_API_VERSION = "route.openshift.io/v1"
OPENSHIFT_ROUTE_KIND = "Route"

# Timestamp format for status lastTransitionTime values
TRANSITION_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
