"""Analysis domain — project detection and cloud footprint."""

from rigsmith.analysis.analyzer import ProjectAnalyzer, estimate_monthly_cost
from rigsmith.analysis.model import (
    Analysis,
    Endpoint,
    InfrastructureSummary,
    ServiceEvidence,
    Suggestion,
    analysis_to_dict,
    summarize_for_prompt,
)

__all__ = [
    "Analysis",
    "Endpoint",
    "InfrastructureSummary",
    "ProjectAnalyzer",
    "ServiceEvidence",
    "Suggestion",
    "analysis_to_dict",
    "estimate_monthly_cost",
    "summarize_for_prompt",
]
