# trust_safety/config/models/__init__.py
from trust_safety.config.models.core import LoggingConfig
from trust_safety.config.models.security import (
    EscalationStep,
    ModerationConfig,
    default_escalation_steps,
)

__all__ = [
    "EscalationStep",
    "LoggingConfig",
    "ModerationConfig",
    "default_escalation_steps",
]
