import os
from typing import Dict

# Plans allowed to use SmartAI (graph action, legacy listener and continuation)
PAID_PLANS = {"pro", "enterprise"}

# Flow graph limits per plan, enforced when a flow is saved
PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "free": {
        "max_flow_nodes": 7,
        "max_flow_depth": 7,
    },
    "pro": {
        "max_flow_nodes": 17,
        "max_flow_depth": 17,
    },
    "enterprise": {
        "max_flow_nodes": 30,
        "max_flow_depth": 30,
    },
}

# Per-sender SmartAI quota
AI_RATE_LIMIT_PER_MINUTE = int(os.getenv("AI_RATE_LIMIT_PER_MINUTE", "5"))
DISABLE_RATE_LIMIT = os.getenv("DISABLE_RATE_LIMIT", "false").lower() == "true"

# Most recent chat turns handed to the AI as context
CHAT_HISTORY_WINDOW = int(os.getenv("CHAT_HISTORY_WINDOW", "10"))


def get_plan_limit(plan_tier: str, limit_type: str) -> int:
    """Get the limit value for a specific plan and limit type."""
    return PLAN_LIMITS.get((plan_tier or "free").lower(), PLAN_LIMITS["free"]).get(limit_type, 0)


def is_paid_plan(plan_tier: str) -> bool:
    return (plan_tier or "").lower() in PAID_PLANS
