"""
ResourceKind for entities carried as yaml in labelled ConfigMaps
"""

# Standard
from typing import Optional, Tuple

# Third Party
import yaml

# First Party
import alog

# Local
from .. import constants
from ..exceptions import ConversionError, assert_convertible
from ..identity import labels_for_kind
from ..utils import selector_to_str
from ..watcher import ConfigMapWatcher
from .base import OPERATOR_TYPE, ResourceKind

log = alog.use_channel("CMKND")


class ConfigMapKind(ResourceKind):
    """Entities live in ConfigMaps labelled <prefix>kind=<entity_name> with
    their yaml payload under data.config
    """

    def build_watcher(self, operator: OPERATOR_TYPE) -> ConfigMapWatcher:
        return ConfigMapWatcher(operator)

    def set_cr_status(
        self, operator: OPERATOR_TYPE, status: str, namespace: str, name: str
    ):
        log.debug(
            "ConfigMaps carry no status. Not setting [%s] on %s/%s",
            status,
            namespace,
            name,
        )

    def _default_convert(self, raw: dict, info_type: type):
        payload = (raw.get("data") or {}).get(constants.CONFIG_MAP_CONFIG_KEY)
        metadata = raw.get("metadata") or {}
        assert_convertible(
            isinstance(payload, str),
            f"No {constants.CONFIG_MAP_CONFIG_KEY} in ConfigMap {metadata.get('name')}",
        )
        try:
            data = yaml.safe_load(payload)
        except yaml.YAMLError as err:
            raise ConversionError(
                f"Invalid yaml in ConfigMap {metadata.get('name')}: {err}"
            ) from err
        assert_convertible(
            isinstance(data, dict),
            f"The {constants.CONFIG_MAP_CONFIG_KEY} of ConfigMap "
            + f"{metadata.get('name')} is not a mapping",
        )
        return self._build_entity(info_type, data, metadata)

    def _list_target(self, operator: OPERATOR_TYPE) -> Tuple[str, str, Optional[str]]:
        return (
            constants.CONFIG_MAP_KIND,
            constants.CONFIG_MAP_API_VERSION,
            selector_to_str(
                labels_for_kind(
                    operator.identity.entity_name, operator.identity.prefix
                )
            ),
        )
