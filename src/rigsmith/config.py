"""Project configuration: account context, recommender and analysis settings."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import yaml

from rigsmith.errors import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

    from rigsmith.recommender import RecommenderConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = ".rigsmith"
CONFIG_FILE = "config.yml"

PLACEHOLDER_PROJECT_ID = "your-gcp-project-id"
DEFAULT_REGION = "us-central1"
DEFAULT_OUTPUT_DIR = "infrastructure"


@dataclass(frozen=True)
class AccountContext:
    """Cloud account the pipeline works against.

    Passed explicitly to the inventory, the analyzer and the generators
    instead of being read from process-wide state.
    """

    provider: str = "gcp"
    project_id: str | None = None
    region: str = DEFAULT_REGION
    account: str | None = None

    @property
    def configured(self) -> bool:
        """True when a real project id is set."""
        return bool(self.project_id) and self.project_id != PLACEHOLDER_PROJECT_ID

    @property
    def project_label(self) -> str:
        """Project id for generated files, or a placeholder."""
        return self.project_id if self.configured and self.project_id else "your-project-id"


@dataclass(frozen=True)
class RigConfig:
    """Everything read from ``.rigsmith/config.yml`` plus env overrides."""

    context: AccountContext = field(default_factory=AccountContext)
    recommender: RecommenderConfig | None = None
    probe_ports: bool = True
    output_dir: str = DEFAULT_OUTPUT_DIR


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        msg = f"Section '{name}' in {CONFIG_FILE} must be a mapping."
        raise ConfigError(msg)
    return raw


def parse_account_context(
    raw: Mapping[str, Any],
    environ: Mapping[str, str] | None = None,
) -> AccountContext:
    """Build an AccountContext from the ``cloud`` section.

    ``GCP_PROJECT_ID``, ``GCP_REGION`` and ``GCP_ACCOUNT`` override the file.
    """
    env = os.environ if environ is None else environ

    provider = str(raw.get("provider", "gcp")).lower()
    if provider != "gcp":
        msg = f"Unsupported cloud provider: {provider!r}. Only 'gcp' is available."
        raise ConfigError(msg)

    project_id = env.get("GCP_PROJECT_ID") or raw.get("project_id") or None
    region = env.get("GCP_REGION") or raw.get("region") or DEFAULT_REGION
    account = env.get("GCP_ACCOUNT") or raw.get("account") or None

    return AccountContext(
        provider=provider,
        project_id=str(project_id) if project_id else None,
        region=str(region),
        account=str(account) if account else None,
    )


def load_config(
    project_root: Path,
    environ: Mapping[str, str] | None = None,
) -> RigConfig:
    """Load ``.rigsmith/config.yml`` under *project_root*.

    A missing file yields defaults (with env overrides applied).

    Raises
    ------
    ConfigError
        If the file is unreadable, is not valid YAML, or a section is invalid.
    """
    from rigsmith.recommender import parse_recommender_config

    config_path = project_root / CONFIG_DIR / CONFIG_FILE
    data: dict[str, Any] = {}

    if config_path.is_file():
        try:
            with config_path.open("r", encoding="utf-8") as fh:
                loaded = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            msg = f"Cannot read {config_path}: {exc}"
            raise ConfigError(msg) from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            msg = f"{config_path} must contain a mapping at the top level."
            raise ConfigError(msg)
        data = loaded
    else:
        logger.debug("No config file at %s, using defaults", config_path)

    context = parse_account_context(_section(data, "cloud"), environ)

    recommender = None
    recommender_raw = _section(data, "recommender")
    if recommender_raw:
        try:
            recommender = parse_recommender_config(recommender_raw)
        except ValueError as exc:
            raise ConfigError(str(exc), scope="recommender") from exc

    analysis = _section(data, "analysis")
    output = _section(data, "output")

    return RigConfig(
        context=context,
        recommender=recommender,
        probe_ports=bool(analysis.get("probe_ports", True)),
        output_dir=str(output.get("directory", DEFAULT_OUTPUT_DIR)),
    )
