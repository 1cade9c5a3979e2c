"""
Inbound flow webhooks: completed flow submissions and Meta flow status events.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from flowcraft.api.deps import verify_webhook_secret
from flowcraft.db.session import get_db
from flowcraft.schemas.flow import FlowStatusEventResponse, FlowSubmissionIn, FlowSubmissionResponse
from flowcraft.services import (
    FlowStatusService,
    FlowSubmissionService,
    get_flow_status_service,
    get_flow_submission_service,
)

log = logging.getLogger("flowcraft.flow_webhooks")

router = APIRouter(dependencies=[Depends(verify_webhook_secret)])


@router.post("/submissions", response_model=FlowSubmissionResponse, status_code=201)
def receive_submission(
    data: FlowSubmissionIn,
    db: Session = Depends(get_db),
    service: FlowSubmissionService = Depends(get_flow_submission_service),
):
    """Store the answers of a completed flow"""
    return service.process_submission(db, data)


@router.post("/status", response_model=FlowStatusEventResponse)
def receive_status_event(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    service: FlowStatusService = Depends(get_flow_status_service),
):
    """Apply a flow status change reported by WhatsApp"""
    log.debug(f"📨 Flow status event: {payload}")
    return service.handle_status_event(db, payload)
