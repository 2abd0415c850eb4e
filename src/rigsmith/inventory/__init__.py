"""Inventory domain — cloud resource listing."""

from rigsmith.inventory.gcloud import GcloudLister
from rigsmith.inventory.resources import (
    CATEGORIES,
    CloudResource,
    InventorySnapshot,
    ResourceGroup,
    ResourceInventory,
    ResourceLister,
)

__all__ = [
    "CATEGORIES",
    "CloudResource",
    "GcloudLister",
    "InventorySnapshot",
    "ResourceGroup",
    "ResourceInventory",
    "ResourceLister",
]
