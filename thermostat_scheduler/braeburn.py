# SPDX-License-Identifier: MPL-2.0
"""
Braeburn BlueLink Smart Connect Thermostat Client

API client for Braeburn Wi-Fi thermostats managed through BlueLink Smart
Connect. Supports logging in, listing devices and updating a device's
weekly program attributes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, cast

import requests

from thermostat_scheduler.schedule import PROGRAM_FIELDS

logger = logging.getLogger(__name__)


@dataclass
class Device:
    """A thermostat registered to the account."""
    uuid: str
    state_data: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        """Create from API response."""
        state_data = data.get("state_data") or {}
        return cls(
            uuid=data["uuid"],
            state_data={str(k): str(v) for k, v in state_data.items()}
        )

    def program_state_data(self) -> Dict[str, Optional[str]]:
        """Return only the weekly program attributes of the device state."""
        return {name: self.state_data.get(name) for name in PROGRAM_FIELDS}


class BraeburnAPIError(Exception):
    """Base exception for Braeburn API errors."""
    pass


class AuthenticationError(BraeburnAPIError):
    """Authentication failed."""
    pass


class BraeburnClient:
    """
    Client for the Braeburn BlueLink Smart Connect API.

    Log in first, then list devices and update their programs. The login
    token is sent with every subsequent request.
    """

    BASE_URL = "https://sd2.bluelinksmartconnect.com/api/v1/braeburn"
    USER_AGENT = "Braeburn/13 CFNetwork/1406.0.4 Darwin/22.4.0"

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = 10
    ):
        """
        Initialize the Braeburn client.

        Args:
            username: Account username (for authentication)
            password: Account password (for authentication)
            token: Authentication key (if already authenticated)
            timeout: Request timeout in seconds
        """
        self.token = token
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json",
        })

        # Authenticate if credentials provided
        if username and password:
            self.login(username, password)

    def __enter__(self) -> "BraeburnClient":
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Token {self.token}"}
        return {}

    def login(self, username: str, password: str) -> None:
        """
        Authenticate and obtain an authentication key.

        Args:
            username: Account username
            password: Account password

        Raises:
            AuthenticationError: If authentication fails
        """
        url = f"{self.BASE_URL}/rest-auth/login/"
        data = {"username": username, "password": password}

        try:
            response = self._session.post(url, json=data, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()

            key = result.get("key") if isinstance(result, dict) else None
            if not key:
                raise AuthenticationError(f"Authentication failed: {result}")

            self.token = key
            logger.debug("Logged in to BlueLink")

        except requests.RequestException as e:
            raise AuthenticationError(f"Authentication request failed: {e}")
        except ValueError as e:
            raise AuthenticationError(f"Invalid authentication response: {e}")

    def list_devices(self) -> List[Device]:
        """
        List all devices associated with the account.

        Returns:
            List of Device objects

        Raises:
            AuthenticationError: If not authenticated
            BraeburnAPIError: If request fails
        """
        self._ensure_authenticated()

        url = f"{self.BASE_URL}/devices/"

        try:
            response = self._session.get(url, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            result = response.json()

            if not isinstance(result, list):
                raise BraeburnAPIError(f"Failed to list devices: unexpected response {result}")

            return [Device.from_dict(device) for device in result]

        except requests.RequestException as e:
            raise BraeburnAPIError(f"Failed to list devices: {e}")
        except (KeyError, ValueError) as e:
            raise BraeburnAPIError(f"Failed to list devices: invalid response: {e}")

    def set_device_attributes(self, device_uuid: str, state_data: Dict[str, str]) -> Device:
        """
        Update state attributes of a device, e.g. its weekly program.

        Args:
            device_uuid: Device identifier
            state_data: Attributes to set, e.g. PGM_01 ... PGM_07

        Returns:
            The updated Device

        Raises:
            AuthenticationError: If not authenticated
            BraeburnAPIError: If request fails
        """
        self._ensure_authenticated()

        url = f"{self.BASE_URL}/manage/{device_uuid}/setstateattr/"

        try:
            response = self._session.post(
                url, json=state_data, headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
            logger.debug(f"Updated attributes of device {device_uuid}")
            return Device.from_dict(cast(Dict[str, Any], result))

        except requests.RequestException as e:
            raise BraeburnAPIError(f"Failed to update device {device_uuid}: {e}")
        except (KeyError, TypeError, ValueError) as e:
            raise BraeburnAPIError(f"Failed to update device {device_uuid}: invalid response: {e}")

    def _ensure_authenticated(self) -> None:
        """Ensure user is authenticated."""
        if not self.token:
            raise AuthenticationError("Not authenticated. Call login() first or provide a token.")
