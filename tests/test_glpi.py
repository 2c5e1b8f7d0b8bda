"""Tests for the GLPI inventory push client."""

import ipaddress
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from inventory_scanner._types import AssetRecord, AssetType
from inventory_scanner.config import GLPIConfig, GLPIOAuthConfig
from inventory_scanner.exceptions import InventoryPushError
from inventory_scanner.inventory import glpi
from inventory_scanner.inventory.glpi import (
    GLPIClient,
    inventory_url,
    oauth_token_url,
    sanitize_base_url,
    to_glpi_inventory,
)


def make_asset(asset_type, **kwargs):
    defaults = {
        "address": ipaddress.ip_address("192.168.1.20"),
        "type": asset_type,
        "mac_address": "AA:BB:CC:DD:EE:FF",
    }
    defaults.update(kwargs)
    return AssetRecord(**defaults)


@pytest.fixture
def client():
    """Client without authentication, with sleeps and POSTs mocked."""
    c = GLPIClient(GLPIConfig(base_url="https://glpi.example.com/apirest.php/"))
    c._post = AsyncMock(return_value=(200, "{}"))
    return c


@pytest.fixture
def no_sleep():
    with patch.object(glpi.asyncio, "sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestUrls:
    """Tests for endpoint URL helpers."""

    def test_sanitize(self):
        assert sanitize_base_url("  https://glpi/apirest.php/ ") == "https://glpi/apirest.php"

    def test_inventory_url_from_legacy_api(self):
        assert inventory_url("https://glpi.example.com/apirest.php") == \
            "https://glpi.example.com/front/inventory.php"

    def test_inventory_url_from_v2_api(self):
        assert inventory_url("https://glpi.example.com/glpi/api.php/v2.1") == \
            "https://glpi.example.com/glpi/front/inventory.php"

    def test_inventory_url_plain_base(self):
        assert inventory_url("https://glpi.example.com") == \
            "https://glpi.example.com/front/inventory.php"

    def test_oauth_token_url(self):
        assert oauth_token_url("https://glpi.example.com/api.php/v2") == \
            "https://glpi.example.com/api.php/token"

    def test_oauth_token_url_requires_api_php(self):
        with pytest.raises(InventoryPushError):
            oauth_token_url("https://glpi.example.com/apirest.php")


class TestToGlpiInventory:
    """Tests for the native inventory payload mapping."""

    def test_computer(self):
        asset = make_asset(
            AssetType.COMPUTER,
            hostname="ws01",
            vendor="Dell",
            os_name="Windows",
            os_version="10",
        )

        doc = to_glpi_inventory(asset)

        assert doc["action"] == "inventory"
        assert doc["itemtype"] == "Computer"
        assert doc["deviceid"] == "AA:BB:CC:DD:EE:FF"
        assert doc["content"]["hardware"]["name"] == "ws01"
        assert doc["content"]["operatingsystem"]["full_name"] == "Windows 10"
        assert doc["content"]["networks"] == [{
            "description": "Primary Network Interface",
            "status": "up",
            "type": "ethernet",
            "macaddr": "AA:BB:CC:DD:EE:FF",
            "ipaddress": "192.168.1.20",
        }]

    def test_computer_without_os(self):
        doc = to_glpi_inventory(make_asset(AssetType.COMPUTER))
        assert "operatingsystem" not in doc["content"]
        # Hostname falls back to the address
        assert doc["content"]["hardware"]["name"] == "192.168.1.20"

    @pytest.mark.parametrize("asset_type", [AssetType.NETWORK_EQUIPMENT, AssetType.ROUTER])
    def test_network_equipment(self, asset_type):
        doc = to_glpi_inventory(make_asset(asset_type, model="C9300"))

        assert doc["itemtype"] == "NetworkEquipment"
        assert doc["content"]["network_device"] == {
            "type": asset_type.value,
            "model": "C9300",
            "mac": "AA:BB:CC:DD:EE:FF",
        }

    def test_printer(self):
        doc = to_glpi_inventory(make_asset(AssetType.PRINTER, hostname="prn1"))

        assert doc["itemtype"] == "Printer"
        assert doc["content"]["printers"] == [{"name": "prn1", "status": "active"}]

    def test_peripheral_with_printer_model(self):
        doc = to_glpi_inventory(make_asset(AssetType.PERIPHERAL, model="Laser Printer 5"))
        assert doc["itemtype"] == "Printer"

    def test_other_peripheral(self):
        doc = to_glpi_inventory(make_asset(AssetType.PERIPHERAL, vendor="Nginx", model="nginx/1.18.0"))

        assert doc["itemtype"] == "Computer"
        assert doc["content"]["hardware"]["chassis_type"] == "Peripheral"
        assert doc["content"]["hardware"]["description"] == "Nginx nginx/1.18.0 - Peripheral"

    def test_device_id_fallbacks(self):
        assert to_glpi_inventory(make_asset(AssetType.COMPUTER, identifier="asset-7"))["deviceid"] == "asset-7"
        assert to_glpi_inventory(make_asset(AssetType.COMPUTER, mac_address=""))["deviceid"] == "192.168.1.20"
        assert to_glpi_inventory(
            AssetRecord(type=AssetType.COMPUTER, serial="SN123")
        )["deviceid"] == "SN123"

    def test_ipv6_network(self):
        doc = to_glpi_inventory(make_asset(
            AssetType.COMPUTER, address=ipaddress.ip_address("2001:db8::9"), mac_address=""
        ))
        assert doc["content"]["networks"][0]["ipaddress6"] == "2001:db8::9"
        assert "ipaddress" not in doc["content"]["networks"][0]

    def test_serializable(self):
        json.dumps(to_glpi_inventory(make_asset(AssetType.PRINTER)))


class TestUpsertAsset:
    """Tests for push retries and error handling."""

    @pytest.mark.asyncio
    async def test_success(self, client):
        await client.upsert_asset(make_asset(AssetType.COMPUTER))

        url, body, headers = client._post.call_args[0]
        assert url == "https://glpi.example.com/front/inventory.php"
        assert json.loads(body)["itemtype"] == "Computer"
        assert headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_not_configured(self):
        c = GLPIClient(GLPIConfig(base_url=""))
        with pytest.raises(InventoryPushError):
            await c.upsert_asset(make_asset(AssetType.COMPUTER))

    @pytest.mark.asyncio
    async def test_client_error_fails_immediately(self, client, no_sleep):
        client._post.return_value = (400, "bad payload")

        with pytest.raises(InventoryPushError) as exc_info:
            await client.upsert_asset(make_asset(AssetType.COMPUTER))

        assert exc_info.value.status == 400
        assert client._post.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_retried_with_backoff(self, client, no_sleep):
        client._post.side_effect = [(500, "oops"), (502, "oops"), (200, "ok")]

        await client.upsert_asset(make_asset(AssetType.COMPUTER))

        assert client._post.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [2, 4]

    @pytest.mark.asyncio
    async def test_gives_up_after_four_attempts(self, client, no_sleep):
        client._post.return_value = (503, "down")

        with pytest.raises(InventoryPushError):
            await client.upsert_asset(make_asset(AssetType.COMPUTER))

        assert client._post.await_count == 4
        assert [c.args[0] for c in no_sleep.await_args_list] == [2, 4, 8]

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, client, no_sleep):
        import aiohttp

        client._post.side_effect = [aiohttp.ClientConnectionError("reset"), (201, "")]

        await client.upsert_asset(make_asset(AssetType.COMPUTER))

        assert client._post.await_count == 2

    @pytest.mark.asyncio
    async def test_unauthorized_clears_token_and_retries(self, no_sleep):
        c = GLPIClient(GLPIConfig(base_url="https://glpi/apirest.php", user_token="u"))
        c._ensure_legacy_session = AsyncMock()
        c._token = "stale"
        c._post = AsyncMock(side_effect=[(401, "expired"), (200, "")])

        async def reauth():
            c._token = "fresh"

        c._ensure_legacy_session.side_effect = reauth

        await c.upsert_asset(make_asset(AssetType.COMPUTER))

        first_headers = c._post.await_args_list[0].args[2]
        second_headers = c._post.await_args_list[1].args[2]
        assert first_headers["Session-Token"] == "fresh"
        assert c._ensure_legacy_session.await_count == 2
        assert second_headers["Session-Token"] == "fresh"

    @pytest.mark.asyncio
    async def test_oauth_bearer_header(self, no_sleep):
        c = GLPIClient(GLPIConfig(
            base_url="https://glpi/api.php/v2",
            oauth=GLPIOAuthConfig(client_id="id", client_secret="secret"),
        ))
        assert c.uses_oauth

        async def fake_token():
            c._token = "tok"

        c._ensure_oauth_token = AsyncMock(side_effect=fake_token)
        c._post = AsyncMock(return_value=(200, ""))

        await c.upsert_asset(make_asset(AssetType.COMPUTER))

        headers = c._post.await_args.args[2]
        assert headers["Authorization"] == "Bearer tok"
        assert c._post.await_args.args[0] == "https://glpi/front/inventory.php"

    @pytest.mark.asyncio
    async def test_auth_failure_retried(self, no_sleep):
        c = GLPIClient(GLPIConfig(base_url="https://glpi/apirest.php", user_token="u"))
        c._ensure_legacy_session = AsyncMock(side_effect=InventoryPushError("no session"))
        c._post = AsyncMock()

        with pytest.raises(InventoryPushError):
            await c.upsert_asset(make_asset(AssetType.COMPUTER))

        c._post.assert_not_awaited()
        assert c._ensure_legacy_session.await_count == 4

    def test_oauth_requires_id_and_secret(self):
        c = GLPIClient(GLPIConfig(base_url="x", oauth=GLPIOAuthConfig(client_id="id")))
        assert not c.uses_oauth


class TestOAuthToken:
    """Tests for the OAuth token request."""

    @staticmethod
    def token_client(oauth):
        response = MagicMock(status=200)
        response.json = AsyncMock(
            return_value={"access_token": "tok", "token_type": "Bearer", "expires_in": 3600}
        )
        session = MagicMock()
        session.post.return_value.__aenter__.return_value = response
        c = GLPIClient(GLPIConfig(base_url="https://glpi/api.php/v2", oauth=oauth))
        c._get_session = AsyncMock(return_value=session)
        return c, session

    @pytest.mark.asyncio
    async def test_client_credentials_grant(self):
        c, session = self.token_client(GLPIOAuthConfig(client_id="id", client_secret="secret"))

        await c._ensure_oauth_token()

        url = session.post.call_args.args[0]
        form = session.post.call_args.kwargs["data"]
        assert url == "https://glpi/api.php/token"
        assert form["grant_type"] == "client_credentials"
        assert "password" not in form
        assert c._token == "tok"

    @pytest.mark.asyncio
    async def test_password_grant_with_user_credentials(self):
        c, session = self.token_client(GLPIOAuthConfig(
            client_id="id", client_secret="secret", username="glpi", password="pw",
        ))

        await c._ensure_oauth_token()

        form = session.post.call_args.kwargs["data"]
        assert form["grant_type"] == "password"
        assert form["username"] == "glpi"
        assert form["password"] == "pw"
        assert form["client_id"] == "id"
