"""Decision policies: the interface, the RSI rule and the advisory client."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fxpilot.config import AdvisoryConfig, LoopConfig, PolicyKind
from fxpilot.policy.advisory import AdvisoryPolicy, AdvisoryRequest, AdvisoryResponse
from fxpilot.policy.base import Action, Decision, DecisionPolicy
from fxpilot.policy.threshold import ThresholdPolicy, ThresholdPolicyConfig

if TYPE_CHECKING:
    from fxpilot.metrics import LoopMetrics


def build_policy(
    config: LoopConfig,
    advisory: AdvisoryConfig | None = None,
    metrics: LoopMetrics | None = None,
) -> ThresholdPolicy | AdvisoryPolicy:
    """Instantiate the policy named by ``config.policy``."""
    if config.policy is PolicyKind.ADVISORY:
        return AdvisoryPolicy(advisory or AdvisoryConfig(), ticker=config.symbol, metrics=metrics)
    return ThresholdPolicy()


__all__ = [
    "Action",
    "AdvisoryPolicy",
    "AdvisoryRequest",
    "AdvisoryResponse",
    "Decision",
    "DecisionPolicy",
    "PolicyKind",
    "ThresholdPolicy",
    "ThresholdPolicyConfig",
    "build_policy",
]
