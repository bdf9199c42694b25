# SPDX-License-Identifier: MPL-2.0
"""Unit tests for the Braeburn BlueLink client."""

from typing import Any, Generator
from unittest.mock import Mock, patch

import pytest
import requests

from thermostat_scheduler.braeburn import (
    AuthenticationError,
    BraeburnAPIError,
    BraeburnClient,
    Device,
)

BASE_URL = "https://sd2.bluelinksmartconnect.com/api/v1/braeburn"

PROGRAM = "0700210" "0900200" "1600210" "2100200" "0700240" "0900240" "1600240" "2100250"


def device_payload(uuid: str = "a1b2c3") -> dict:
    state_data = {f"PGM_0{i}": PROGRAM for i in range(1, 8)}
    state_data["MODE"] = 1
    return {"uuid": uuid, "name": "Thermostat", "state_data": state_data}


class TestDevice:
    """Tests for Device dataclass."""

    def test_from_dict(self) -> None:
        device = Device.from_dict(device_payload())
        assert device.uuid == "a1b2c3"
        assert device.state_data["PGM_03"] == PROGRAM
        assert device.state_data["MODE"] == "1"

    def test_from_dict_without_state(self) -> None:
        device = Device.from_dict({"uuid": "x", "state_data": None})
        assert device.state_data == {}

    def test_program_state_data(self) -> None:
        device = Device.from_dict(device_payload())
        program = device.program_state_data()
        assert list(program) == [f"PGM_0{i}" for i in range(1, 8)]
        assert "MODE" not in program

    def test_program_state_data_missing_days(self) -> None:
        device = Device(uuid="x", state_data={"PGM_01": PROGRAM})
        program = device.program_state_data()
        assert program["PGM_01"] == PROGRAM
        assert program["PGM_07"] is None


class TestBraeburnClient:
    """Tests for BraeburnClient."""

    @pytest.fixture
    def mock_session(self) -> Generator[Any, None, None]:
        """Create a mock session."""
        with patch('thermostat_scheduler.braeburn.requests.Session') as mock:
            session = Mock()
            mock.return_value = session
            yield session

    def test_init_no_auth(self, mock_session: Any) -> None:
        client = BraeburnClient()
        assert client.token is None
        assert client.timeout == 10
        mock_session.post.assert_not_called()
        mock_session.headers.update.assert_called_once_with({
            "User-Agent": BraeburnClient.USER_AGENT,
            "Accept": "application/json",
        })

    def test_init_with_credentials(self, mock_session: Any) -> None:
        """Test initialization logs in with username/password."""
        mock_response = Mock()
        mock_response.json.return_value = {"key": "secret-key"}
        mock_session.post.return_value = mock_response

        client = BraeburnClient(username="user", password="pass")
        assert client.token == "secret-key"

    def test_context_manager(self, mock_session: Any) -> None:
        with BraeburnClient(token="abc") as client:
            assert client.token == "abc"
        mock_session.close.assert_called_once()

    def test_login(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.json.return_value = {"key": "secret-key"}
        mock_session.post.return_value = mock_response

        client = BraeburnClient()
        client.login("user", "pass")

        assert client.token == "secret-key"
        mock_session.post.assert_called_once_with(
            f"{BASE_URL}/rest-auth/login/",
            json={"username": "user", "password": "pass"},
            timeout=10,
        )

    def test_login_without_key(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.json.return_value = {"non_field_errors": ["Unable to log in"]}
        mock_session.post.return_value = mock_response

        client = BraeburnClient()
        with pytest.raises(AuthenticationError, match="Authentication failed"):
            client.login("user", "wrong")
        assert client.token is None

    def test_login_http_error(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.raise_for_status.side_effect = requests.HTTPError("400 Client Error")
        mock_session.post.return_value = mock_response

        client = BraeburnClient()
        with pytest.raises(AuthenticationError, match="400"):
            client.login("user", "wrong")

    def test_login_invalid_json(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.json.side_effect = ValueError("Expecting value")
        mock_session.post.return_value = mock_response

        client = BraeburnClient()
        with pytest.raises(AuthenticationError, match="Invalid authentication response"):
            client.login("user", "pass")

    def test_list_devices_requires_auth(self, mock_session: Any) -> None:
        client = BraeburnClient()
        with pytest.raises(AuthenticationError, match="Not authenticated"):
            client.list_devices()
        mock_session.get.assert_not_called()

    def test_list_devices(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.json.return_value = [device_payload("first"), device_payload("second")]
        mock_session.get.return_value = mock_response

        client = BraeburnClient(token="secret-key")
        devices = client.list_devices()

        assert [d.uuid for d in devices] == ["first", "second"]
        mock_session.get.assert_called_once_with(
            f"{BASE_URL}/devices/",
            headers={"Authorization": "Token secret-key"},
            timeout=10,
        )

    def test_list_devices_unexpected_response(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.json.return_value = {"detail": "Invalid token."}
        mock_session.get.return_value = mock_response

        client = BraeburnClient(token="secret-key")
        with pytest.raises(BraeburnAPIError, match="unexpected response"):
            client.list_devices()

    def test_list_devices_connection_error(self, mock_session: Any) -> None:
        mock_session.get.side_effect = requests.ConnectionError("Connection refused")

        client = BraeburnClient(token="secret-key")
        with pytest.raises(BraeburnAPIError, match="Connection refused"):
            client.list_devices()

    def test_list_devices_missing_uuid(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.json.return_value = [{"state_data": {}}]
        mock_session.get.return_value = mock_response

        client = BraeburnClient(token="secret-key")
        with pytest.raises(BraeburnAPIError, match="invalid response"):
            client.list_devices()

    def test_set_device_attributes(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.json.return_value = device_payload()
        mock_session.post.return_value = mock_response
        state_data = {f"PGM_0{i}": PROGRAM for i in range(1, 8)}

        client = BraeburnClient(token="secret-key")
        device = client.set_device_attributes("a1b2c3", state_data)

        assert device.uuid == "a1b2c3"
        mock_session.post.assert_called_once_with(
            f"{BASE_URL}/manage/a1b2c3/setstateattr/",
            json=state_data,
            headers={"Authorization": "Token secret-key"},
            timeout=10,
        )

    def test_set_device_attributes_requires_auth(self, mock_session: Any) -> None:
        client = BraeburnClient()
        with pytest.raises(AuthenticationError):
            client.set_device_attributes("a1b2c3", {})

    def test_set_device_attributes_http_error(self, mock_session: Any) -> None:
        mock_response = Mock()
        mock_response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_session.post.return_value = mock_response

        client = BraeburnClient(token="secret-key")
        with pytest.raises(BraeburnAPIError, match="Failed to update device a1b2c3"):
            client.set_device_attributes("a1b2c3", {"PGM_01": PROGRAM})
