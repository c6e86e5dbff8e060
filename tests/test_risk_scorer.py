import pytest
from secmon.models.security_event import SecurityEventType, ThreatLevel, cap_risk_score
from secmon.security.risk_scorer import event_risk_score, severity_of, weighted_score


@pytest.mark.parametrize("score,expected", [
    (0, ThreatLevel.LOW),
    (39, ThreatLevel.LOW),
    (40, ThreatLevel.MEDIUM),
    (59, ThreatLevel.MEDIUM),
    (60, ThreatLevel.HIGH),
    (79, ThreatLevel.HIGH),
    (80, ThreatLevel.CRITICAL),
    (100, ThreatLevel.CRITICAL),
])
def test_severity_boundaries(score, expected):
    assert severity_of(score) == expected


def test_cap_risk_score_clamps_both_ends():
    assert cap_risk_score(-15) == 0
    assert cap_risk_score(250) == 100
    assert cap_risk_score(42.9) == 42


def test_weighted_score_is_capped():
    factors = [(True, 30), (True, 25), (True, 15), (True, 20), (True, 10), (True, 40)]
    assert weighted_score(factors) == 100


def test_weighted_score_ignores_factors_that_did_not_fire():
    assert weighted_score([(True, 30), (False, 25), (True, 10)]) == 40


def test_event_risk_score_from_type():
    assert event_risk_score(SecurityEventType.SQL_INJECTION_ATTEMPT) == 80
    assert event_risk_score(SecurityEventType.AUTHENTICATION_FAILURE) == 20
    assert event_risk_score(SecurityEventType.BLOCK_REMOVED) == 10


def test_event_risk_score_context_modifiers():
    context = {"repeatOffender": True, "adminTarget": True}
    assert event_risk_score(SecurityEventType.AUTHORIZATION_FAILURE, context) == 75


def test_event_risk_score_never_exceeds_100():
    context = {"repeatOffender": True, "multipleAttempts": True, "sensitiveData": True}
    assert event_risk_score(SecurityEventType.DATA_BREACH_ATTEMPT, context) == 100
