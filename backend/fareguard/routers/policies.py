"""Policy router: booking policy admin, per-user exceptions, effective policy and compliance checks."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.encoders import jsonable_encoder

from fareguard.dependencies import (
    Identity,
    get_evaluator,
    get_identity,
    get_policy_store,
    get_recorder,
    get_resolver,
    require_admin,
)
from fareguard.schemas.policy import (
    EVENT_TYPES,
    ExceptionCreate,
    PolicyCheckRequest,
    PolicyCreate,
    PolicyExceptionRecord,
    PolicyRecord,
    PolicyUpdate,
    UsageLogFilters,
)
from fareguard.schemas.travel import normalize_cabin
from fareguard.services.audit_recorder import UsageAuditRecorder
from fareguard.services.compliance_evaluator import ComplianceEvaluator
from fareguard.services.policy_resolver import PolicyResolver
from fareguard.services.policy_store import PolicyStore, as_utc

router = APIRouter()


def _cabins(classes: list[str] | None) -> tuple[str, ...] | None:
    if classes is None:
        return None
    return tuple(normalize_cabin(c) for c in classes)


async def _org_policy(store: PolicyStore, policy_id: str, identity: Identity) -> PolicyRecord:
    policy = await store.get_policy(policy_id)
    if policy is None or policy.organization_id != identity.organization_id:
        raise HTTPException(status_code=404, detail="Policy not found")
    return policy


@router.get("")
async def list_policies(
    store: PolicyStore = Depends(get_policy_store),
    identity: Identity = Depends(get_identity),
):
    """List the organization's policies. All authenticated users can view."""
    policies = await store.list_policies(identity.organization_id)
    return {"policies": jsonable_encoder(policies)}


@router.post("", status_code=201)
async def create_policy(
    req: PolicyCreate,
    store: PolicyStore = Depends(get_policy_store),
    identity: Identity = Depends(require_admin),
):
    """Create a new policy (admin only)."""
    data = req.model_dump()
    data["allowed_flight_classes"] = _cabins(req.allowed_flight_classes)
    policy = await store.create_policy(PolicyRecord(
        organization_id=identity.organization_id,
        created_by=identity.user_id,
        **data,
    ))
    return jsonable_encoder(policy)


@router.get("/effective")
async def get_effective_policy(
    resolver: PolicyResolver = Depends(get_resolver),
    identity: Identity = Depends(get_identity),
):
    """The caller's base policy with any currently-valid exception applied."""
    effective = await resolver.resolve_policy(identity.user_id, identity.organization_id)
    if effective is None:
        return {"policy": None, "exception_id": None, "effective_limits": None}
    return {
        "policy": jsonable_encoder(effective.policy),
        "exception_id": effective.exception_id,
        "effective_limits": jsonable_encoder({
            "flight_max_amount": effective.flight_max_amount,
            "hotel_max_amount_per_night": effective.hotel_max_amount_per_night,
            "hotel_max_amount_total": effective.hotel_max_amount_total,
            "monthly_limit": effective.monthly_limit,
            "annual_limit": effective.annual_limit,
        }),
    }


@router.post("/check")
async def check_compliance(
    req: PolicyCheckRequest,
    evaluator: ComplianceEvaluator = Depends(get_evaluator),
    identity: Identity = Depends(get_identity),
):
    verdict = await evaluator.evaluate(identity.user_id, identity.organization_id, req)
    return jsonable_encoder(verdict)


@router.get("/usage-logs")
async def list_usage_logs(
    user_id: str | None = None,
    policy_id: str | None = None,
    event_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    recorder: UsageAuditRecorder = Depends(get_recorder),
    identity: Identity = Depends(require_admin),
):
    """The 100 most recent usage log entries for the organization (admin only)."""
    if event_type and event_type not in EVENT_TYPES:
        raise HTTPException(status_code=400, detail=f"event_type must be one of: {', '.join(EVENT_TYPES)}")
    filters = UsageLogFilters(
        user_id=user_id,
        policy_id=policy_id,
        event_type=event_type,
        start_date=as_utc(start_date),
        end_date=as_utc(end_date),
    )
    logs = await recorder.list_usage_logs(identity.organization_id, filters)
    return {"logs": jsonable_encoder(logs)}


@router.get("/{policy_id}")
async def get_policy(
    policy_id: str,
    store: PolicyStore = Depends(get_policy_store),
    identity: Identity = Depends(get_identity),
):
    policy = await _org_policy(store, policy_id, identity)
    exceptions = await store.list_exceptions(policy.id)
    return {**jsonable_encoder(policy), "exceptions": jsonable_encoder(exceptions)}


@router.put("/{policy_id}")
async def update_policy(
    policy_id: str,
    req: PolicyUpdate,
    store: PolicyStore = Depends(get_policy_store),
    identity: Identity = Depends(require_admin),
):
    """Update a policy (admin only)."""
    await _org_policy(store, policy_id, identity)

    update_data = req.model_dump(exclude_unset=True)
    if "allowed_flight_classes" in update_data:
        update_data["allowed_flight_classes"] = _cabins(update_data["allowed_flight_classes"])

    policy = await store.update_policy(policy_id, update_data)
    return jsonable_encoder(policy)


@router.delete("/{policy_id}", status_code=204)
async def delete_policy(
    policy_id: str,
    store: PolicyStore = Depends(get_policy_store),
    identity: Identity = Depends(require_admin),
):
    """Soft delete a policy (admin only)."""
    await _org_policy(store, policy_id, identity)
    await store.delete_policy(policy_id)
    return Response(status_code=204)


@router.get("/{policy_id}/exceptions")
async def list_exceptions(
    policy_id: str,
    store: PolicyStore = Depends(get_policy_store),
    identity: Identity = Depends(require_admin),
):
    await _org_policy(store, policy_id, identity)
    exceptions = await store.list_exceptions(policy_id)
    return {"exceptions": jsonable_encoder(exceptions)}


@router.post("/{policy_id}/exceptions", status_code=201)
async def create_exception(
    policy_id: str,
    req: ExceptionCreate,
    store: PolicyStore = Depends(get_policy_store),
    identity: Identity = Depends(require_admin),
):
    """Grant a user a time-bounded override of the policy's amount limits (admin only)."""
    await _org_policy(store, policy_id, identity)
    exception = await store.create_exception(PolicyExceptionRecord(
        policy_id=policy_id,
        approved_by=identity.user_id,
        **req.model_dump(),
    ))
    return jsonable_encoder(exception)
