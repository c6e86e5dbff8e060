from secmon.models.rule import ThreatPattern
from secmon.models.security_event import SuspiciousActivityType
from secmon.security.detectors.base import BaseDetector

XSS_PATTERN = ThreatPattern(
    id="xss_pattern",
    name="XSS Attack Pattern",
    description="Cross-site scripting attack patterns",
    indicators=[
        "<script>",
        "</script>",
        "javascript:",
        "onload=",
        "onerror=",
        "onclick=",
        "onmouseover=",
        "alert(",
        "document.cookie",
    ],
    risk_score=75,
    auto_block=True,
    activity_type=SuspiciousActivityType.XSS_ATTACK,
)


class XSSDetector(BaseDetector):
    @classmethod
    def default_pattern(cls) -> ThreatPattern:
        return XSS_PATTERN.model_copy(deep=True)
