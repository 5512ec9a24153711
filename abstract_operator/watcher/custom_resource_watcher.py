"""
Watcher for operators whose entities are instances of a custom resource
"""

# Local
from .base import OPERATOR_TYPE, AbstractWatcher

# Forward declaration of CrdHandle
CRD_HANDLE_TYPE = "CrdHandle"


class CustomResourceWatcher(AbstractWatcher):
    """Watch every instance of the kind registered by the operator's CRD"""

    def __init__(self, operator: OPERATOR_TYPE, crd_handle: CRD_HANDLE_TYPE):
        super().__init__(
            operator,
            kind=crd_handle.kind,
            api_version=crd_handle.api_version,
        )
        self.crd_handle = crd_handle
