from abc import ABC, abstractmethod
from typing import Optional

from secmon.models.rule import ThreatPattern


class BaseDetector(ABC):
    """Case-insensitive substring matcher for one threat pattern."""

    def __init__(self, pattern: Optional[ThreatPattern] = None):
        self.pattern = pattern or self.default_pattern()

    @classmethod
    @abstractmethod
    def default_pattern(cls) -> ThreatPattern:
        pass

    def normalize_payload(self, payload: str) -> str:
        return payload.lower()

    def match(self, normalized: str) -> list[str]:
        """Indicators found in an already lowercased payload, in pattern order."""
        return [
            indicator for indicator in self.pattern.indicators
            if indicator.lower() in normalized
        ]

    def detect(self, payload: str) -> tuple[bool, Optional[str]]:
        matched = self.match(self.normalize_payload(payload))
        if matched:
            return True, f"{self.pattern.name} detected: {', '.join(matched)}"
        return False, None
