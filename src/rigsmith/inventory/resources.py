"""Cloud resource inventory with per-category failure isolation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from rigsmith.errors import InventoryError

if TYPE_CHECKING:
    from rigsmith.config import AccountContext

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = (
    "instances",
    "storage",
    "networks",
    "databases",
    "load-balancers",
)


@dataclass(frozen=True)
class CloudResource:
    """One resource reported by the cloud provider."""

    id: str
    name: str
    type: str = ""
    status: str = ""
    location: str = ""

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> CloudResource:
        name = str(raw.get("name") or raw.get("id") or "")
        return cls(
            id=str(raw.get("id") or name),
            name=name,
            type=str(raw.get("type") or ""),
            status=str(raw.get("status") or ""),
            location=str(raw.get("location") or ""),
        )


@dataclass(frozen=True)
class ResourceGroup:
    """Listing result for one category.  ``error`` is set when listing failed."""

    category: str
    items: tuple[CloudResource, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def count(self) -> int:
        return len(self.items) if self.ok else 0


@dataclass(frozen=True)
class InventorySnapshot:
    """Every category's listing for one account."""

    groups: tuple[ResourceGroup, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        """Resource count over categories that listed successfully."""
        return sum(group.count for group in self.groups)

    @property
    def failed_categories(self) -> list[str]:
        return [group.category for group in self.groups if not group.ok]

    def group(self, category: str) -> ResourceGroup | None:
        for g in self.groups:
            if g.category == category:
                return g
        return None


class ResourceLister(Protocol):
    """Provider-specific listing of one resource category.

    Implementations raise :class:`InventoryError` on failure.
    """

    def list_resources(
        self,
        context: AccountContext,
        category: str,
        region: str | None = None,
    ) -> list[dict[str, Any]]: ...


class ResourceInventory:
    """Query a cloud account for the fixed resource categories."""

    def __init__(self, lister: ResourceLister, categories: tuple[str, ...] = CATEGORIES) -> None:
        self.lister = lister
        self.categories = categories

    def _fetch(
        self,
        context: AccountContext,
        category: str,
        region: str | None,
    ) -> tuple[CloudResource, ...]:
        try:
            raw_items = self.lister.list_resources(context, category, region)
        except InventoryError as exc:
            if exc.scope is None:
                exc.scope = category
            raise
        except (OSError, ValueError) as exc:
            msg = f"Listing {category} failed: {exc}"
            raise InventoryError(msg, scope=category) from exc
        return tuple(CloudResource.from_mapping(item) for item in raw_items)

    def list(
        self,
        context: AccountContext,
        category: str,
        region: str | None = None,
        *,
        silent: bool = False,
    ) -> list[CloudResource]:
        """List one category.

        With ``silent=True`` a failure is logged at debug level and an empty
        list returned; otherwise :class:`InventoryError` propagates.
        """
        try:
            return list(self._fetch(context, category, region))
        except InventoryError as exc:
            if silent:
                logger.debug("Ignoring %s listing failure: %s", category, exc)
                return []
            logger.error("Failed to list %s: %s", category, exc)
            raise

    def list_all(self, context: AccountContext, region: str | None = None) -> InventorySnapshot:
        """List every category; a failing one is recorded, never fatal."""
        groups: list[ResourceGroup] = []
        for category in self.categories:
            try:
                items = self._fetch(context, category, region)
            except InventoryError as exc:
                logger.warning("Inventory category %s unavailable: %s", category, exc)
                groups.append(ResourceGroup(category=category, error=str(exc)))
                continue
            groups.append(ResourceGroup(category=category, items=items))
        return InventorySnapshot(groups=tuple(groups))
