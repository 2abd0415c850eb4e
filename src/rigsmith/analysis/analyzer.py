"""ProjectAnalyzer: build one Analysis from the filesystem and cloud inventory."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from rigsmith.analysis import advice, manifests, ports, services, stack
from rigsmith.analysis.model import Analysis, InfrastructureSummary
from rigsmith.errors import InventoryError

if TYPE_CHECKING:
    from collections.abc import Callable

    from rigsmith.analysis.model import Endpoint
    from rigsmith.analysis.ports import PortProbe
    from rigsmith.config import AccountContext
    from rigsmith.inventory.resources import InventorySnapshot, ResourceInventory

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Rough monthly USD per listed resource.
COST_PER_RESOURCE: dict[str, int] = {
    "instances": 25,
    "storage": 2,
    "databases": 50,
    "networks": 5,
    "load-balancers": 20,
}
DEFAULT_COST_PER_RESOURCE = 10


def estimate_monthly_cost(snapshot: InventorySnapshot) -> int:
    """Sum per-category multipliers over categories that listed successfully."""
    return sum(
        COST_PER_RESOURCE.get(group.category, DEFAULT_COST_PER_RESOURCE) * group.count
        for group in snapshot.groups
    )


def summarize_inventory(provider: str, snapshot: InventorySnapshot) -> InfrastructureSummary | None:
    """Summary of usable resources, or ``None`` when there are none."""
    total = snapshot.total
    if total == 0:
        return None
    return InfrastructureSummary(
        provider=provider.upper(),
        resource_count=total,
        resource_types=tuple(g.category for g in snapshot.groups if g.count > 0),
        estimated_monthly_cost=estimate_monthly_cost(snapshot),
        groups=snapshot.groups,
        failed_categories=tuple(snapshot.failed_categories),
    )


class ProjectAnalyzer:
    """Heuristic multi-source detector for one project directory.

    Every detector runs in isolation: an exception in one is logged and
    treated as "no evidence" so that analysis always completes.

    Parameters
    ----------
    project_root:
        Directory to analyze.
    context:
        Cloud account to query; inventory is skipped unless it is configured.
    inventory:
        Resource inventory, or ``None`` to skip the cloud footprint.
    port_probe:
        Live socket enumeration, or ``None`` to skip probing.
    """

    def __init__(
        self,
        project_root: Path,
        context: AccountContext,
        inventory: ResourceInventory | None = None,
        port_probe: PortProbe | None = ports.probe_listening_ports,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.context = context
        self.inventory = inventory
        self.port_probe = port_probe

    def _detect(self, name: str, detector: Callable[[], T], default: T) -> T:
        try:
            return detector()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Detector %s failed: %s", name, exc)
            return default

    def _infrastructure(self) -> InfrastructureSummary | None:
        if self.inventory is None:
            return None
        if not self.context.configured:
            logger.info("Skipping cloud inventory: no project configured")
            return None
        try:
            snapshot = self.inventory.list_all(self.context, self.context.region)
        except InventoryError as exc:
            logger.warning("Cloud inventory unavailable: %s", exc)
            return None
        return summarize_inventory(self.context.provider, snapshot)

    def _endpoints(self) -> tuple[Endpoint, ...]:
        root = self.project_root
        sources = [
            self._detect("compose-ports", lambda: ports.compose_endpoints(root), []),
            self._detect("script-ports", lambda: ports.script_endpoints(root), []),
            self._detect("dockerfile-ports", lambda: ports.dockerfile_endpoints(root), []),
        ]
        if self.port_probe is not None:
            sources.append(self._detect("port-probe", self.port_probe, []))
        return ports.merge_endpoints(*sources)

    def analyze(self) -> Analysis:
        """Run every detector and return the frozen Analysis."""
        root = self.project_root
        logger.info("Analyzing %s", root)

        dependencies = self._detect("dependencies", lambda: manifests.read_dependencies(root), [])
        stack_report = self._detect(
            "tech-stack", lambda: stack.detect_stack(root, dependencies), stack.StackReport()
        )
        tooling = self._detect("tooling", lambda: stack.detect_tooling(root), stack.ToolingReport())
        orchestrate = self._detect(
            "orchestration-need", lambda: stack.needs_orchestration(root, stack_report), False
        )
        env_keys = self._detect("env-files", lambda: services.read_env_keys(root), [])

        collector = services.ServiceCollector()
        self._detect(
            "dependency-services",
            lambda: services.collect_from_dependencies(collector, dependencies),
            None,
        )
        self._detect(
            "compose-services", lambda: services.collect_from_compose(collector, root), None
        )
        self._detect(
            "env-services", lambda: services.collect_from_env_keys(collector, env_keys), None
        )

        analysis = Analysis(
            project_name=root.name,
            project_root=str(root),
            project_type=stack_report.project_type,
            tech_stack=stack_report.tech_stack,
            package_manager=stack_report.package_manager,
            dependencies=tuple(dependencies),
            has_container_build=tooling.has_container_build,
            has_orchestration=tooling.has_orchestration,
            has_provisioning_code=tooling.has_provisioning_code,
            has_ci=tooling.has_ci,
            needs_orchestration=orchestrate,
            infra_files=tooling.infra_files,
            databases=collector.by_category("database"),
            caches=collector.by_category("cache"),
            queues=collector.by_category("queue"),
            storage=collector.by_category("storage"),
            endpoints=self._endpoints(),
            env_keys=tuple(env_keys),
            infrastructure=self._detect("cloud-inventory", self._infrastructure, None),
        )
        return replace(
            analysis,
            recommendations=self._detect("recommendations", lambda: advice.recommend(analysis), ()),
            suggestions=self._detect("suggestions", lambda: advice.suggest(analysis), ()),
        )
