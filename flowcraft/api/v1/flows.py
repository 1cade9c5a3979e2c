"""WhatsApp Flow builder API endpoints"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from flowcraft.api.deps import get_tenant_scope, get_user_id
from flowcraft.core import config
from flowcraft.db.session import get_db
from flowcraft.schemas.flow import (
    FlowCloneRequest,
    FlowCreate,
    FlowDeleteResponse,
    FlowListResponse,
    FlowPublishRequest,
    FlowStatusSyncResponse,
    FlowSubmissionResponse,
    FlowTemplateResponse,
    FlowUpdate,
    TenantScope,
)
from flowcraft.services import (
    FlowStatusService,
    FlowSubmissionService,
    FlowTemplateService,
    get_flow_status_service,
    get_flow_submission_service,
    get_flow_template_service,
    get_meta_client,
)

router = APIRouter()


@router.post("/", response_model=FlowTemplateResponse, status_code=201)
def create_flow(
    data: FlowCreate,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    user_id: Optional[str] = Depends(get_user_id),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """
    Create a flow template with its first draft version

    - **name**: Flow name (required)
    - **template_key**: Unique key within the tenant scope (derived from name when omitted)
    - **category**: Business category, e.g. LEAD_GENERATION (required)
    - **screens**: Screen graph with components and actions (at least one screen)
    - **webhook_mapping**: Template applied to submissions (optional)
    """
    return service.create_flow(db, scope, user_id, data)


@router.get("/", response_model=FlowListResponse)
def list_flows(
    status: Optional[str] = Query(None, description="Filter by status (DRAFT, PUBLISHED, ARCHIVED)"),
    category: Optional[str] = Query(None, description="Filter by category"),
    search: Optional[str] = Query(None, description="Search by name, key or description"),
    limit: int = Query(config.DEFAULT_FLOW_LIST_LIMIT, ge=1, le=config.MAX_FLOW_LIST_LIMIT),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """List flow templates, newest first"""
    return service.list_flows(db, scope, status=status, category=category, search=search, limit=limit, offset=offset)


@router.post("/status/sync", response_model=FlowStatusSyncResponse)
def sync_all_flow_statuses(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    status_service: FlowStatusService = Depends(get_flow_status_service),
):
    """Poll WhatsApp for the status of every linked flow in scope"""
    meta = get_meta_client()
    if meta is None:
        raise HTTPException(status_code=503, detail="WhatsApp flows API not configured")
    return status_service.sync_statuses(db, meta, scope=scope, limit=limit, offset=offset)


@router.get("/{flow_id}", response_model=FlowTemplateResponse)
def get_flow(
    flow_id: str,
    version: Optional[int] = Query(None, ge=1, description="Version number (default: current draft)"),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """Get a flow with the full graph of one version"""
    return service.get_flow(db, scope, flow_id, version)


@router.put("/{flow_id}", response_model=FlowTemplateResponse)
def update_flow(
    flow_id: str,
    data: FlowUpdate,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    user_id: Optional[str] = Depends(get_user_id),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """
    Replace the draft graph

    The submitted screens become a new draft version; the previous draft is archived.
    """
    return service.update_flow(db, scope, user_id, flow_id, data)


@router.delete("/{flow_id}", response_model=FlowDeleteResponse)
def delete_flow(
    flow_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    user_id: Optional[str] = Depends(get_user_id),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """Archive a flow (soft delete); the WhatsApp flow is deleted when linked"""
    template = service.archive_flow(db, scope, user_id, flow_id)
    return FlowDeleteResponse(flow_id=template.external_id, deleted=True)


@router.post("/{flow_id}/publish", response_model=FlowTemplateResponse)
def publish_flow(
    flow_id: str,
    data: Optional[FlowPublishRequest] = None,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    user_id: Optional[str] = Depends(get_user_id),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """
    Publish a draft version

    - **version**: Version number to publish (default: current draft)
    - **notes**: Approval notes stored on the version
    """
    data = data or FlowPublishRequest()
    return service.publish_flow(db, scope, user_id, flow_id, data.version, data.notes)


@router.post("/{flow_id}/clone", response_model=FlowTemplateResponse, status_code=201)
def clone_flow(
    flow_id: str,
    data: Optional[FlowCloneRequest] = None,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    user_id: Optional[str] = Depends(get_user_id),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """Clone a flow into a new template with a single draft version"""
    data = data or FlowCloneRequest()
    return service.clone_flow(db, scope, user_id, flow_id, data.name, data.template_key)


@router.post("/{flow_id}/deprecate", response_model=FlowTemplateResponse)
def deprecate_flow(
    flow_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    user_id: Optional[str] = Depends(get_user_id),
    service: FlowTemplateService = Depends(get_flow_template_service),
):
    """Withdraw the published version"""
    return service.deprecate_flow(db, scope, user_id, flow_id)


@router.get("/{flow_id}/flow-json")
def get_flow_json(
    flow_id: str,
    version: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    service: FlowTemplateService = Depends(get_flow_template_service),
) -> Dict[str, Any]:
    """Preview the WhatsApp flow JSON compiled from a version"""
    return service.compile_version(db, scope, flow_id, version)


@router.post("/{flow_id}/status/sync", response_model=FlowStatusSyncResponse)
def sync_flow_status(
    flow_id: str,
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    templates: FlowTemplateService = Depends(get_flow_template_service),
    status_service: FlowStatusService = Depends(get_flow_status_service),
):
    """Fetch this flow's status from WhatsApp and store it"""
    meta = get_meta_client()
    if meta is None:
        raise HTTPException(status_code=503, detail="WhatsApp flows API not configured")

    template = templates.get_template(db, scope, flow_id)
    return status_service.sync_template_status(db, meta, template)


@router.get("/{flow_id}/submissions", response_model=List[FlowSubmissionResponse])
def list_flow_submissions(
    flow_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    scope: TenantScope = Depends(get_tenant_scope),
    service: FlowSubmissionService = Depends(get_flow_submission_service),
):
    """List submissions received for a flow, newest first"""
    return service.list_submissions(db, scope, flow_id, limit=limit, offset=offset)
