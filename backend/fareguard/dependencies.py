"""Request-scoped dependencies: caller identity from gateway headers and services from app.state."""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

from fareguard.services.audit_recorder import UsageAuditRecorder
from fareguard.services.compliance_evaluator import ComplianceEvaluator
from fareguard.services.policy_resolver import PolicyResolver
from fareguard.services.policy_store import PolicyStore
from fareguard.services.providers.registry import ProviderRegistry

ADMIN_ROLES = ("admin",)


@dataclass(frozen=True)
class Identity:
    user_id: str
    organization_id: str
    role: str | None = None


async def get_identity(
    x_user_id: str = Header(...),
    x_organization_id: str = Header(...),
    x_user_role: str | None = Header(None),
) -> Identity:
    """The gateway authenticates; we only read what it forwards."""
    return Identity(user_id=x_user_id, organization_id=x_organization_id, role=x_user_role)


async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_policy_store(request: Request) -> PolicyStore:
    return request.app.state.policy_store


def get_resolver(request: Request) -> PolicyResolver:
    return request.app.state.resolver


def get_evaluator(request: Request) -> ComplianceEvaluator:
    return request.app.state.evaluator


def get_recorder(request: Request) -> UsageAuditRecorder:
    return request.app.state.recorder
