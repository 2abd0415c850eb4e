"""Google Cloud resource listing through the ``gcloud`` CLI."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import TYPE_CHECKING, Any

from rigsmith.errors import InventoryError

if TYPE_CHECKING:
    from rigsmith.config import AccountContext

logger = logging.getLogger(__name__)

_COMMANDS: dict[str, list[str]] = {
    "instances": ["compute", "instances", "list"],
    "storage": ["storage", "buckets", "list"],
    "networks": ["compute", "networks", "list"],
    "databases": ["sql", "instances", "list"],
    "load-balancers": ["compute", "forwarding-rules", "list"],
}


def _last_segment(value: Any) -> str:
    """``.../zones/us-central1-a`` -> ``us-central1-a``."""
    if not value:
        return ""
    return str(value).rstrip("/").split("/")[-1]


def _normalize(category: str, raw: dict[str, Any]) -> dict[str, Any]:
    name = raw.get("name") or raw.get("id") or ""
    if category == "instances":
        return {
            "id": raw.get("id") or name,
            "name": name,
            "type": _last_segment(raw.get("machineType")),
            "status": raw.get("status", ""),
            "location": _last_segment(raw.get("zone")),
        }
    if category == "storage":
        return {
            "id": raw.get("id") or name,
            "name": name,
            "type": raw.get("storageClass") or raw.get("default_storage_class") or "bucket",
            "status": "available",
            "location": raw.get("location", ""),
        }
    if category == "databases":
        return {
            "id": name,
            "name": name,
            "type": raw.get("databaseVersion", ""),
            "status": raw.get("state", ""),
            "location": raw.get("region", ""),
        }
    if category == "load-balancers":
        return {
            "id": raw.get("id") or name,
            "name": name,
            "type": raw.get("loadBalancingScheme", ""),
            "status": "active",
            "location": _last_segment(raw.get("region")) or "global",
        }
    return {
        "id": raw.get("id") or name,
        "name": name,
        "type": raw.get("routingConfig", {}).get("routingMode", "") if category == "networks" else "",
        "status": "active",
        "location": "global",
    }


class GcloudLister:
    """List resources by shelling out to ``gcloud ... --format=json``."""

    def __init__(self, executable: str = "gcloud", timeout: float = 30.0) -> None:
        self.executable = executable
        self.timeout = timeout

    def _command(self, context: AccountContext, category: str, region: str | None) -> list[str]:
        try:
            args = _COMMANDS[category]
        except KeyError:
            msg = f"Unknown resource category: {category}"
            raise InventoryError(msg, scope=category) from None
        cmd = [self.executable, *args, "--format=json"]
        if context.project_id:
            cmd.append(f"--project={context.project_id}")
        if region and category == "instances":
            cmd.append(f"--filter=zone ~ {region}")
        if context.account:
            cmd.append(f"--account={context.account}")
        return cmd

    def list_resources(
        self,
        context: AccountContext,
        category: str,
        region: str | None = None,
    ) -> list[dict[str, Any]]:
        cmd = self._command(context, category, region)
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            msg = f"{self.executable} not found on PATH"
            raise InventoryError(msg, scope=category) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"{self.executable} timed out after {self.timeout:.0f}s"
            raise InventoryError(msg, scope=category) from exc

        if result.returncode != 0:
            detail = result.stderr.strip().splitlines()
            msg = detail[-1] if detail else f"exit status {result.returncode}"
            raise InventoryError(msg, scope=category)

        try:
            data = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as exc:
            msg = f"Malformed JSON from {self.executable}: {exc}"
            raise InventoryError(msg, scope=category) from exc

        if not isinstance(data, list):
            msg = f"Unexpected {self.executable} output for {category}"
            raise InventoryError(msg, scope=category)

        return [_normalize(category, item) for item in data if isinstance(item, dict)]
