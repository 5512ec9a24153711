"""
Watcher for operators whose entities are carried in labelled ConfigMaps
"""

# Local
from .. import constants
from ..identity import labels_for_kind
from ..utils import selector_to_str
from .base import OPERATOR_TYPE, AbstractWatcher


class ConfigMapWatcher(AbstractWatcher):
    """Watch the ConfigMaps labelled <prefix>kind=<entity_name>"""

    def __init__(self, operator: OPERATOR_TYPE):
        super().__init__(
            operator,
            kind=constants.CONFIG_MAP_KIND,
            api_version=constants.CONFIG_MAP_API_VERSION,
            label_selector=selector_to_str(
                labels_for_kind(
                    operator.identity.entity_name, operator.identity.prefix
                )
            ),
        )
