"""Activation of access points through stored or newly created profiles."""

import copy
import logging
import uuid as uuid_lib

from wifi_steer.network.connection_settings import (
    new_wireless_connection,
    normalize_ip6_config,
    set_key_mgmt,
)
from wifi_steer.network.errors import NeedUserEditError
from wifi_steer.network.nm_client import NetworkManagerClient, decode_ssid
from wifi_steer.network.security import (
    SecurityCategory,
    classify_security,
    security_from_settings,
)

logger = logging.getLogger(__name__)


class ConnectionActivator:
    """Activates a (profile, access point, device) triple.

    When the access point's security changed since the profile was saved,
    the profile's key management is fixed up first. Profiles that would
    need EAP credentials are never rewritten automatically.
    """

    def __init__(self, client: NetworkManagerClient) -> None:
        """Initialize the activator.

        Args:
            client: Network-management service client
        """
        self._client = client

    def activate(self, uuid: str, ap_path: str, device_path: str) -> str:
        """Activate an access point on a device.

        Args:
            uuid: Uuid of an existing profile, or "" to create one
            ap_path: Access point object path
            device_path: Wireless device object path

        Returns:
            Active connection object path

        Raises:
            NeedUserEditError: If the access point now needs EAP credentials
            NetworkManagerError: If any service call fails
        """
        logger.debug("Activate access point: uuid=%s, ap=%s, device=%s", uuid, ap_path, device_path)

        props = self._client.get_access_point(ap_path)
        category = classify_security(props.flags, props.wpa_flags, props.rsn_flags)

        if uuid:
            connection_path = self._client.get_connection_by_uuid(uuid)
            self.fix_security_change(connection_path, uuid, category)
            active_path = self._client.activate_connection(connection_path, device_path)
        else:
            uuid = str(uuid_lib.uuid4())
            settings = new_wireless_connection(decode_ssid(props.ssid), uuid, props.ssid, category)
            active_path = self._client.add_and_activate_connection(settings, device_path)

        logger.info("Activated %s on %s as %s", uuid, device_path, active_path)
        return active_path

    def fix_security_change(
        self, connection_path: str, uuid: str, category: SecurityCategory
    ) -> None:
        """Make a stored profile's key management match the live access point.

        Args:
            connection_path: Settings object path of the profile
            uuid: Profile uuid
            category: Live security category of the access point

        Raises:
            NeedUserEditError: If the access point now needs EAP credentials
            NetworkManagerError: If reading or updating the profile fails
        """
        settings = copy.deepcopy(self._client.get_connection_settings(connection_path))

        stored = security_from_settings(settings)
        if stored is None:
            logger.warning("Unknown key management in connection %s, leaving it as is", uuid)
            return
        if stored is category:
            return

        logger.debug("Security of %s changed from %s to %s", uuid, stored.value, category.value)
        if category is SecurityCategory.EAP:
            raise NeedUserEditError(uuid)

        set_key_mgmt(settings, category)
        normalize_ip6_config(settings)
        self._client.update_connection(connection_path, settings)
        logger.info("Updated key management of %s to %s", uuid, category.key_mgmt)
