"""
API dependencies for database access and tenant scoping.

Authentication happens upstream; callers pass their tenant, WhatsApp Business
Account and Meta app identifiers as headers.
"""
import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from flowcraft.core import config
from flowcraft.schemas.flow import TenantScope


def get_tenant_scope(
    x_tenant_id: Optional[str] = Header(None),
    x_business_account_id: Optional[str] = Header(None),
    x_app_id: Optional[str] = Header(None),
) -> TenantScope:
    """
    Resolve the tenant scope of a request.

    Priority:
    1. X-Tenant-Id / X-Business-Account-Id / X-App-Id headers
    2. Configured defaults (single-tenant deployments)
    """
    tenant_id = (x_tenant_id or "").strip() or config.DEFAULT_TENANT_ID
    business_account_id = (x_business_account_id or "").strip() or config.BUSINESS_ACCOUNT_ID
    app_id = (x_app_id or "").strip() or (config.APP_ID or "")

    if not business_account_id or not app_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Business-Account-Id and X-App-Id headers are required",
        )

    return TenantScope(tenant_id=tenant_id, business_account_id=business_account_id, app_id=app_id)


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """User id for audit columns (created_by / approved_by)"""
    return (x_user_id or "").strip() or None


def verify_webhook_secret(x_flow_webhook_secret: Optional[str] = Header(None)):
    """Check the shared secret of inbound flow webhooks when one is configured"""
    if not config.FLOW_WEBHOOK_SECRET:
        return
    if not x_flow_webhook_secret or not hmac.compare_digest(x_flow_webhook_secret, config.FLOW_WEBHOOK_SECRET):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

