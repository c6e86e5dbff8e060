from secmon.models.rule import ThreatPattern
from secmon.models.security_event import SuspiciousActivityType
from secmon.security.detectors.base import BaseDetector

PATH_TRAVERSAL_PATTERN = ThreatPattern(
    id="path_traversal_pattern",
    name="Path Traversal Pattern",
    description="Directory traversal attack patterns",
    indicators=[
        "../",
        "..\\",
        "%2e%2e%2f",
        "%2e%2e%5c",
        "....///",
        "/etc/passwd",
        "/etc/shadow",
        "C:\\Windows\\System32",
    ],
    risk_score=70,
    auto_block=True,
    activity_type=SuspiciousActivityType.PATH_TRAVERSAL,
)


class PathTraversalDetector(BaseDetector):
    @classmethod
    def default_pattern(cls) -> ThreatPattern:
        return PATH_TRAVERSAL_PATTERN.model_copy(deep=True)
