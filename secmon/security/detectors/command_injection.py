from secmon.models.rule import ThreatPattern
from secmon.models.security_event import SuspiciousActivityType
from secmon.security.detectors.base import BaseDetector

# trailing spaces are part of the indicators
COMMAND_INJECTION_PATTERN = ThreatPattern(
    id="command_injection_pattern",
    name="Command Injection Pattern",
    description="OS command injection patterns",
    indicators=[
        "; cat ",
        "; ls ",
        "; dir ",
        "| cat ",
        "| ls ",
        "| dir ",
        "&& cat ",
        "&& ls ",
        "&& dir ",
        "`cat ",
        "`ls ",
        "`dir ",
    ],
    risk_score=80,
    auto_block=True,
    activity_type=SuspiciousActivityType.AUTOMATED_SCANNING,
)


class CommandInjectionDetector(BaseDetector):
    @classmethod
    def default_pattern(cls) -> ThreatPattern:
        return COMMAND_INJECTION_PATTERN.model_copy(deep=True)
