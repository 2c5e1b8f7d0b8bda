"""
GLPI inventory push client.

Converts asset records to the GLPI native inventory format and posts them
to <glpi>/front/inventory.php. Authentication is either an OAuth2
client-credentials bearer token (GLPI 11 high-level API) or a legacy
session token obtained with initSession.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Optional

import aiohttp

from .._types import AssetRecord, AssetType
from ..config import GLPIConfig
from ..exceptions import InventoryPushError

logger = logging.getLogger(__name__)

VERSION_CLIENT = "inventory-scanner-v1.0"

# Refresh OAuth tokens this long before they expire
TOKEN_REFRESH_MARGIN = 30
DEFAULT_TOKEN_LIFETIME = 3600


def sanitize_base_url(raw: str) -> str:
    return raw.strip().rstrip("/")


def inventory_url(api_base_url: str) -> str:
    """Native inventory endpoint for an API base URL."""
    base = api_base_url
    for marker in ("/api.php", "/apirest.php"):
        idx = base.find(marker)
        if idx != -1:
            base = base[:idx]
            break
    return base + "/front/inventory.php"


def oauth_token_url(api_base_url: str) -> str:
    """
    OAuth2 token endpoint for an api.php base URL.

    Raises InventoryPushError if the URL has no api.php component.
    """
    marker = "/api.php"
    idx = api_base_url.find(marker)
    if idx == -1:
        raise InventoryPushError(f"GLPI OAuth requires an api.php endpoint, got {api_base_url}")
    return api_base_url[:idx + len(marker)] + "/token"


def _device_id(asset: AssetRecord) -> str:
    if asset.identifier:
        return asset.identifier
    if asset.mac_address:
        return asset.mac_address
    if asset.address is not None:
        return str(asset.address)
    if asset.serial:
        return asset.serial
    return "inventory-scanner-unknown"


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty values, like omitempty fields."""
    return {k: v for k, v in data.items() if v not in ("", None, [], {})}


def to_glpi_inventory(asset: AssetRecord) -> dict[str, Any]:
    """
    Build a GLPI native inventory document for an asset.

    Computers carry hardware (and operatingsystem when the OS is known),
    network equipment carries network_device, printers carry printers.
    Peripherals that are not printers are sent as Computers with a
    Peripheral chassis type.
    """
    hostname = asset.hostname
    if not hostname and asset.address is not None:
        hostname = str(asset.address)

    asset_type = asset.type.value if isinstance(asset.type, AssetType) else str(asset.type)
    content: dict[str, Any] = {"versionclient": VERSION_CLIENT}

    if asset_type == AssetType.COMPUTER.value:
        item_type = "Computer"
        content["hardware"] = _compact({
            "name": hostname,
            "uuid": asset.serial,
            "description": f"Discovered by inventory-scanner - {asset.vendor}",
        })
        if asset.os_name:
            content["operatingsystem"] = _compact({
                "full_name": f"{asset.os_name} {asset.os_version}".strip(),
                "kernel_version": asset.os_version,
                "fqdn": hostname,
            })
    elif asset_type in (AssetType.NETWORK_EQUIPMENT.value, AssetType.ROUTER.value):
        item_type = "NetworkEquipment"
        content["network_device"] = _compact({
            "type": asset_type,
            "model": asset.model,
            "mac": asset.mac_address,
            "serial": asset.serial,
        })
    elif asset_type in (AssetType.PRINTER.value, AssetType.PERIPHERAL.value) and (
        asset_type == AssetType.PRINTER.value
        or "printer" in asset.model.lower()
        or "printer" in asset.vendor.lower()
    ):
        item_type = "Printer"
        content["printers"] = [_compact({
            "name": hostname,
            "serial": asset.serial,
            "status": "active",
        })]
    elif asset_type == AssetType.PERIPHERAL.value:
        item_type = "Computer"
        content["hardware"] = _compact({
            "name": hostname,
            "uuid": asset.serial,
            "description": f"{asset.vendor} {asset.model} - Peripheral".strip(),
            "chassis_type": "Peripheral",
        })
    else:
        item_type = "Computer"
        content["hardware"] = _compact({
            "name": hostname,
            "uuid": asset.serial,
            "description": f"{asset.vendor} {asset.model}".strip(),
        })

    if asset.address is not None:
        network = {
            "description": "Primary Network Interface",
            "status": "up",
            "type": "ethernet",
            "macaddr": asset.mac_address,
        }
        if asset.address.version == 4:
            network["ipaddress"] = str(asset.address)
        else:
            network["ipaddress6"] = str(asset.address)
        content["networks"] = [_compact(network)]

    return {
        "action": "inventory",
        "deviceid": _device_id(asset),
        "itemtype": item_type,
        "content": content,
    }


class GLPIClient:
    """
    HTTP client for the GLPI inventory endpoint.

    One client is shared by a whole run; the cached token is guarded by a
    lock so concurrent pushes authenticate once.
    """

    def __init__(self, config: GLPIConfig):
        """
        Initialize GLPI client.

        Args:
            config: GLPI connection settings
        """
        self.config = config
        self.base_url = sanitize_base_url(config.base_url)
        self.max_retries = config.max_retries
        self.timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None
        self._token = ""
        self._token_until = 0.0
        self._auth_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"User-Agent": VERSION_CLIENT},
            )
        return self._session

    async def close(self):
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()

    @property
    def uses_oauth(self) -> bool:
        oauth = self.config.oauth
        return oauth is not None and bool(oauth.client_id) and bool(oauth.client_secret)

    def clear_token(self) -> None:
        self._token = ""
        self._token_until = 0.0

    async def _post(self, url: str, body: bytes, headers: dict[str, str]) -> tuple[int, str]:
        """POST a body, returning (status, response text)."""
        session = await self._get_session()
        async with session.post(url, data=body, headers=headers) as response:
            return response.status, await response.text()

    async def _auth_headers(self) -> dict[str, str]:
        if self.uses_oauth:
            await self._ensure_oauth_token()
            return {"Authorization": f"Bearer {self._token}"}
        if self.config.user_token:
            await self._ensure_legacy_session()
            return {"Session-Token": self._token}
        return {}

    async def _ensure_legacy_session(self) -> None:
        async with self._auth_lock:
            if self._token:
                return
            headers = {"Authorization": f"user_token {self.config.user_token}"}
            if self.config.app_token:
                headers["App-Token"] = self.config.app_token

            session = await self._get_session()
            async with session.get(f"{self.base_url}/initSession", headers=headers) as response:
                if response.status >= 300:
                    text = await response.text()
                    raise InventoryPushError(
                        f"GLPI initSession failed ({response.status}): {text}",
                        status=response.status,
                    )
                payload = await response.json(content_type=None)

            token = (payload or {}).get("session_token", "")
            if not token:
                raise InventoryPushError(
                    f"GLPI session token empty: {(payload or {}).get('message', '')}"
                )
            self._token = token
            logger.debug("GLPI legacy session opened")

    async def _ensure_oauth_token(self) -> None:
        async with self._auth_lock:
            if self._token and self._token_until - time.monotonic() > TOKEN_REFRESH_MARGIN:
                return
            oauth = self.config.oauth
            form = {
                "grant_type": "client_credentials",
                "client_id": oauth.client_id,
                "client_secret": oauth.client_secret,
                "scope": oauth.scope or "api",
            }
            if oauth.username and oauth.password:
                form.update(grant_type="password", username=oauth.username, password=oauth.password)

            session = await self._get_session()
            async with session.post(oauth_token_url(self.base_url), data=form) as response:
                if response.status >= 300:
                    text = await response.text()
                    raise InventoryPushError(
                        f"GLPI OAuth token request failed ({response.status}): {text}",
                        status=response.status,
                    )
                payload = await response.json(content_type=None) or {}

            token = payload.get("access_token", "")
            if not token:
                raise InventoryPushError("GLPI OAuth access token empty")
            token_type = payload.get("token_type", "")
            if token_type and token_type.lower() != "bearer":
                raise InventoryPushError(f"GLPI OAuth unexpected token type {token_type!r}")

            expires_in = int(payload.get("expires_in") or 0)
            if expires_in <= 0:
                expires_in = DEFAULT_TOKEN_LIFETIME
            self._token = token
            self._token_until = time.monotonic() + expires_in
            logger.debug(f"GLPI OAuth token acquired, expires in {expires_in}s")

    async def upsert_asset(self, asset: AssetRecord) -> None:
        """
        Send one asset to GLPI.

        Retries transport errors, 5xx responses and a first 401/403 with
        exponential backoff (2s, 4s, 8s). Other 4xx responses fail at once.

        Raises:
            InventoryPushError: the asset could not be delivered
        """
        if not self.base_url:
            raise InventoryPushError("GLPI base url not configured")

        document = to_glpi_inventory(asset)
        body = json.dumps(document).encode()
        url = inventory_url(self.base_url)
        logger.debug(f"Sending inventory for {asset.address} to {url}: {document}")

        last_error: Optional[InventoryPushError] = None
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                await asyncio.sleep(2 ** attempt)

            headers = {"Content-Type": "application/json"}
            try:
                headers.update(await self._auth_headers())
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = InventoryPushError(f"GLPI auth failed: {e}")
                logger.warning(f"GLPI auth failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}")
                continue
            except InventoryPushError as e:
                last_error = e
                logger.warning(f"GLPI auth failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}")
                continue

            try:
                status, text = await self._post(url, body, headers)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = InventoryPushError(f"GLPI request failed: {e}")
                logger.warning(f"GLPI request failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}")
                continue

            if 200 <= status < 300:
                logger.info(f"GLPI accepted inventory for {asset.address} (status {status})")
                return

            last_error = InventoryPushError(
                f"GLPI inventory failed (status {status}): {text}",
                status=status,
            )
            if status in (401, 403):
                self.clear_token()
                if attempt == 0:
                    continue
            elif 400 <= status < 500:
                raise last_error
            logger.warning(f"GLPI inventory for {asset.address} failed with status {status}")

        raise InventoryPushError(
            f"GLPI inventory failed after {self.max_retries + 1} attempts: {last_error}",
            status=last_error.status if last_error else 0,
        )
