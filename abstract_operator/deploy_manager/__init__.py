"""
The DeployManager is the cluster-API handle owned by an operator. It is in
charge of listing, watching, writing and deleting resources in the cluster.
"""

# Local
from .base import DeployManagerBase
from .dry_run_deploy_manager import DryRunDeployManager
from .kube_event import KubeEventType, KubeWatchEvent
from .openshift_deploy_manager import OpenshiftDeployManager
