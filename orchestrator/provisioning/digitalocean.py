"""DigitalOcean droplet provisioner over the v2 REST API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import httpx

from common.exceptions import (
    CampaignCancelled,
    DestroyError,
    ProvisioningFailure,
    ProvisioningTimeout,
)
from orchestrator.core.interfaces import ProvisionedUnit, Provisioner

logger = logging.getLogger(__name__)

DEFAULT_TAGS = ["selenium-node", "auto-provisioned"]


def public_ipv4(droplet: dict) -> Optional[str]:
    """The droplet's public IPv4 address, if assigned."""
    for net in droplet.get("networks", {}).get("v4", []) or []:
        if net.get("type") == "public" and net.get("ip_address"):
            return net["ip_address"]
    return None


class DigitalOceanProvisioner(Provisioner):
    """Create, poll and delete droplets."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.digitalocean.com/v2",
        image: str = "ubuntu-22-04-x64",
        ssh_key_ids: Optional[list[str]] = None,
        poll_interval: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.image = image
        self.ssh_key_ids = ssh_key_ids or []
        self.poll_interval = poll_interval
        self._client = httpx.AsyncClient(
            base_url=api_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=30.0,
            transport=transport,
        )

    async def __aenter__(self) -> "DigitalOceanProvisioner":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def create(
        self,
        name: str,
        size_class: str,
        region: str,
        *,
        tags: Optional[list[str]] = None,
    ) -> ProvisionedUnit:
        """Create a droplet. Its address is filled in once it is active."""
        request = {
            "name": name,
            "region": region,
            "size": size_class,
            "image": self.image,
            # numeric key ids go over the wire as ints, fingerprints as strings
            "ssh_keys": [int(k) if str(k).isdigit() else k for k in self.ssh_key_ids],
            "tags": tags if tags is not None else DEFAULT_TAGS,
        }
        logger.info(f"Provisioning droplet {name} ({size_class} in {region})")
        try:
            response = await self._client.post("/droplets", json=request)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProvisioningFailure(
                f"Failed to create droplet {name}: {e.response.status_code} {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise ProvisioningFailure(f"Failed to create droplet {name}: {e}") from e

        droplet = response.json()["droplet"]
        unit = ProvisionedUnit(
            id=str(droplet["id"]),
            name=droplet.get("name", name),
            address=public_ipv4(droplet),
        )
        logger.info(f"Droplet {name} created with ID: {unit.id}")
        return unit

    async def get_droplet(self, unit_id: str) -> dict:
        response = await self._client.get(f"/droplets/{unit_id}")
        response.raise_for_status()
        return response.json()["droplet"]

    async def wait_ready(
        self,
        unit_id: str,
        timeout: float,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """Poll until the droplet is active with a public IP."""
        logger.info(f"Waiting for droplet {unit_id} to be ready...")
        deadline = time.monotonic() + timeout

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise CampaignCancelled(f"Cancelled while waiting for droplet {unit_id}")

            try:
                droplet = await self.get_droplet(unit_id)
                address = public_ipv4(droplet)
                if droplet.get("status") == "active" and address:
                    logger.info(f"Droplet {unit_id} is ready at IP: {address}")
                    return address
            except httpx.HTTPError as e:
                logger.error(f"Error checking droplet {unit_id} status: {e}")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProvisioningTimeout(
                    f"Droplet {unit_id} did not become ready within {timeout}s",
                    unit_id=unit_id,
                )

            wait = min(self.poll_interval, remaining)
            if cancel_event is not None:
                try:
                    await asyncio.wait_for(cancel_event.wait(), timeout=wait)
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(wait)

    async def destroy(self, unit_id: str) -> None:
        """Delete a droplet; a missing droplet is logged, not raised."""
        try:
            response = await self._client.delete(f"/droplets/{unit_id}")
        except httpx.HTTPError as e:
            raise DestroyError(f"Failed to delete droplet {unit_id}: {e}", unit_id=unit_id) from e

        if response.status_code == 404:
            logger.info(f"Droplet {unit_id} already gone")
            return
        if response.is_error:
            raise DestroyError(
                f"Failed to delete droplet {unit_id}: {response.status_code} {response.text}",
                unit_id=unit_id,
            )
        logger.info(f"Droplet {unit_id} deleted")

    async def list_by_tag(self, tag: str) -> list[dict]:
        response = await self._client.get("/droplets", params={"tag_name": tag, "per_page": 200})
        response.raise_for_status()
        return response.json().get("droplets", [])

    async def destroy_tagged(self, tags: list[str]) -> tuple[list[str], list[str]]:
        """Delete every droplet carrying any of ``tags``.

        Returns (deleted names, failed names).
        """
        droplets: dict[str, dict] = {}
        for tag in tags:
            for droplet in await self.list_by_tag(tag):
                droplets[str(droplet["id"])] = droplet

        if not droplets:
            logger.info("No tagged droplets found to clean up")
            return [], []

        logger.info(f"Found {len(droplets)} tagged droplets to clean up")
        deleted, failed = [], []
        for droplet_id, droplet in droplets.items():
            name = droplet.get("name", droplet_id)
            try:
                await self.destroy(droplet_id)
                deleted.append(name)
            except DestroyError as e:
                logger.error(f"Failed to delete {name}: {e}")
                failed.append(name)
        return deleted, failed
