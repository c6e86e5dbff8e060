from secmon.models.rule import ThreatPattern
from secmon.models.security_event import SuspiciousActivityType
from secmon.security.detectors.base import BaseDetector

SQL_INJECTION_PATTERN = ThreatPattern(
    id="sql_injection_pattern",
    name="SQL Injection Pattern",
    description="Common SQL injection attack patterns",
    indicators=[
        "' OR '1'='1",
        "' OR 1=1--",
        "'; DROP TABLE",
        "UNION SELECT",
        "' AND 1=1--",
        "' HAVING 1=1--",
        "' ORDER BY",
        "' GROUP BY",
    ],
    risk_score=85,
    auto_block=True,
    activity_type=SuspiciousActivityType.SQL_INJECTION,
)


class SQLInjectionDetector(BaseDetector):
    @classmethod
    def default_pattern(cls) -> ThreatPattern:
        return SQL_INJECTION_PATTERN.model_copy(deep=True)
