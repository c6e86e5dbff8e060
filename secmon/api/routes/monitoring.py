from datetime import timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from secmon.api.dependencies import get_monitor, require_admin
from secmon.core.logger import logger
from secmon.models.security_event import SuspiciousActivity, ThreatLevel
from secmon.schemas.monitoring import (
    ActionResult,
    ClearDataResponse,
    IPAnalysisResponse,
    LastHourSummary,
    MonitoringStats,
    MonitoringStatsResponse,
    RiskEntry,
    RuleStatus,
    RuleUpdate,
    SecurityActionRequest,
    ThreatSummary,
    UserAnalysisResponse,
)
from secmon.schemas.security_event import SecurityEventResponse, SuspiciousActivityResponse
from secmon.security.analysis_engine import describe_ip_risk, describe_user_risk
from secmon.security.monitor import CLEARABLE_DATA_TYPES, SecurityMonitor

router = APIRouter(
    prefix="/api/admin/security-monitoring",
    tags=["security-monitoring"],
    dependencies=[Depends(require_admin)]
)

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

HIGH_RISK_SCORE = 70
TOP_RISK_LIMIT = 10

CLEAR_MESSAGES = {
    "activities": "Suspicious activities cleared",
    "blocked_ips": "Blocked IPs cleared",
    "blocked_users": "Blocked users cleared",
    "all": "All monitoring data cleared",
}


def _top_risk_ips(monitor: SecurityMonitor, activities: list[SuspiciousActivity]) -> list[RiskEntry]:
    entries = []
    for ip_address in {a.ip_address for a in activities}:
        analysis = monitor.get_ip_analysis(ip_address)
        if analysis:
            entries.append(RiskEntry(
                key=ip_address,
                risk_score=analysis.risk_score,
                request_count=analysis.request_count,
                is_blocked=analysis.is_blocked,
            ))
    entries.sort(key=lambda e: (-e.risk_score, e.key))
    return entries[:TOP_RISK_LIMIT]


def _top_risk_users(monitor: SecurityMonitor, activities: list[SuspiciousActivity]) -> list[RiskEntry]:
    entries = []
    for user_id in {a.user_id for a in activities if a.user_id}:
        analysis = monitor.get_user_behavior_analysis(user_id)
        if analysis:
            entries.append(RiskEntry(
                key=user_id,
                risk_score=analysis.risk_score,
                request_count=analysis.request_count,
                is_blocked=analysis.is_blocked,
            ))
    entries.sort(key=lambda e: (-e.risk_score, e.key))
    return entries[:TOP_RISK_LIMIT]


@router.get("", response_model=MonitoringStatsResponse)
async def get_monitoring_overview(
    limit: int = 50,
    time_range: str = Query(default="24h", alias="timeRange"),
    severity: Optional[ThreatLevel] = None,
    type: Optional[str] = None,
    monitor: SecurityMonitor = Depends(get_monitor)
):
    now = monitor.clock()
    window = TIME_RANGES.get(time_range, TIME_RANGES["24h"])

    activities = monitor.get_recent_suspicious_activities(limit)
    if severity:
        activities = [a for a in activities if a.severity == severity]
    if type:
        activities = [a for a in activities if a.type.value == type]
    activities = [a for a in activities if now - a.timestamp < window]

    last_hour = [a for a in activities if now - a.timestamp < timedelta(hours=1)]

    threat_summary = ThreatSummary(
        high_risk_events=sum(1 for a in activities if a.risk_score >= HIGH_RISK_SCORE),
        critical_events=sum(1 for a in activities if a.severity == ThreatLevel.CRITICAL),
        blocked_attempts=sum(1 for a in activities if a.blocked),
        last_hour=LastHourSummary(
            events=len(last_hour),
            unique_ips=len({a.ip_address for a in last_hour}),
            blocked_ips=len({a.ip_address for a in last_hour if a.blocked}),
        ),
    )

    logger.info(
        "admin_monitoring_viewed",
        limit=limit,
        time_range=time_range,
        severity=severity.value if severity else None,
        activity_type=type,
    )

    return MonitoringStatsResponse(
        stats=MonitoringStats(**monitor.get_monitoring_stats()),
        recent_activities=[SuspiciousActivityResponse.model_validate(a) for a in activities],
        top_risk_ips=_top_risk_ips(monitor, activities),
        top_risk_users=_top_risk_users(monitor, activities),
        threat_summary=threat_summary,
    )


@router.post("/actions")
async def perform_security_action(
    action_data: SecurityActionRequest,
    monitor: SecurityMonitor = Depends(get_monitor)
):
    action = action_data.action
    target = (action_data.target or "").strip()
    expected_type = "user" if action.endswith("_user") or action == "get_user_analysis" else "ip"

    if action not in (
        "block_ip", "unblock_ip", "block_user", "unblock_user",
        "get_ip_analysis", "get_user_analysis",
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown action: {action}"
        )

    if not target or action_data.target_type != expected_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid target for {action}"
        )

    if action == "block_ip":
        monitor.block_ip(target, action_data.reason or "Blocked by admin")
        logger.warning("admin_blocked_ip", ip=target, reason=action_data.reason)
        return ActionResult(success=True, message=f"IP {target} has been blocked")

    if action == "unblock_ip":
        monitor.unblock_ip(target, action_data.reason)
        logger.info("admin_unblocked_ip", ip=target, reason=action_data.reason)
        return ActionResult(success=True, message=f"IP {target} has been unblocked")

    if action == "block_user":
        monitor.block_user(target, action_data.reason or "Blocked by admin")
        logger.warning("admin_blocked_user", user_id=target, reason=action_data.reason)
        return ActionResult(success=True, message=f"User {target} has been blocked")

    if action == "unblock_user":
        monitor.unblock_user(target, action_data.reason)
        logger.info("admin_unblocked_user", user_id=target, reason=action_data.reason)
        return ActionResult(success=True, message=f"User {target} has been unblocked")

    if action == "get_ip_analysis":
        ip_analysis = monitor.get_ip_analysis(target)
        if not ip_analysis:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No data found for this IP address"
            )
        risk_factors, recommendations = describe_ip_risk(ip_analysis)
        logger.info("admin_ip_analysis", ip=target, risk_score=ip_analysis.risk_score)
        return IPAnalysisResponse(
            analysis=ip_analysis,
            risk_factors=risk_factors,
            recommendations=recommendations,
        )

    user_analysis = monitor.get_user_behavior_analysis(target)
    if not user_analysis:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No data found for this user"
        )
    risk_factors, recommendations = describe_user_risk(user_analysis)
    logger.info("admin_user_analysis", user_id=target, risk_score=user_analysis.risk_score)
    return UserAnalysisResponse(
        analysis=user_analysis,
        risk_factors=risk_factors,
        recommendations=recommendations,
    )


@router.delete("", response_model=ClearDataResponse)
async def clear_monitoring_data(
    confirm: bool = False,
    type: str = "all",
    monitor: SecurityMonitor = Depends(get_monitor)
):
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Confirmation required for data deletion"
        )

    if type not in CLEARABLE_DATA_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown data type: {type}"
        )

    deleted = monitor.clear_monitoring_data(type)
    return ClearDataResponse(success=True, message=CLEAR_MESSAGES[type], deleted_items=deleted)


@router.get("/events", response_model=list[SecurityEventResponse])
async def get_security_events(
    limit: int = 50,
    high_risk_only: bool = False,
    monitor: SecurityMonitor = Depends(get_monitor)
):
    if high_risk_only:
        return monitor.audit_log.get_high_risk_events()[:max(limit, 0)]
    return monitor.audit_log.get_security_events(limit)


@router.get("/rules", response_model=list[RuleStatus])
async def get_rules(monitor: SecurityMonitor = Depends(get_monitor)):
    return monitor.list_rules()


@router.patch("/rules/{rule_id}", response_model=RuleStatus)
async def update_rule(
    rule_id: str,
    rule_data: RuleUpdate,
    monitor: SecurityMonitor = Depends(get_monitor)
):
    if not monitor.set_rule_enabled(rule_id, rule_data.enabled):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Rule not found"
        )

    for entry in monitor.list_rules():
        if entry["id"] == rule_id:
            return entry
