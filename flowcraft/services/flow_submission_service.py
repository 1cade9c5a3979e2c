"""
Flow Submission Service - stores answers from completed WhatsApp flows.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from flowcraft.core.exceptions import FlowErrorCode, FlowNotFoundError, FlowValidationError
from flowcraft.models.flow import (
    FlowComponent, FlowSubmission, FlowTemplate, FlowVersion,
)
from flowcraft.schemas.flow import FlowSubmissionIn, FlowSubmissionResponse, TenantScope
from flowcraft.services.webhook_mapper import apply_webhook_mapping

log = logging.getLogger("flowcraft.flow_submission_service")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, list) and not value:
        return True
    return False


class FlowSubmissionService:
    """Service for flow submission intake and listing"""

    def process_submission(self, db: Session, data: FlowSubmissionIn) -> FlowSubmissionResponse:
        """
        Validate answers against the flow version and store the submission.

        The version is the explicit one when given, else the published one, else
        the draft, else the latest. Required variables must have a non-blank
        answer.
        """
        template = db.query(FlowTemplate).filter(
            FlowTemplate.tenant_id == data.tenant_id,
            FlowTemplate.business_account_id == data.business_account_id,
            FlowTemplate.app_id == data.app_id,
            FlowTemplate.external_id == data.flow_id,
            FlowTemplate.deleted_at.is_(None),
        ).first()
        if not template:
            raise FlowNotFoundError("Flow not found", details={"flow_id": data.flow_id})

        version = self._resolve_version(db, template, data.version)

        required_keys = [
            row.variable_key
            for row in db.query(FlowComponent).filter(
                FlowComponent.version_id == version.id,
                FlowComponent.required.is_(True),
                FlowComponent.variable_key.isnot(None),
            ).order_by(FlowComponent.id).all()
        ]
        missing = [key for key in required_keys if _is_missing(data.answers.get(key))]
        if missing:
            raise FlowValidationError(
                "Missing required flow answers",
                code=FlowErrorCode.FLOW_SUBMISSION_VALIDATION_FAILED,
                details={"missing": missing},
            )

        submitted_at = datetime.utcnow()
        context = {
            "flow": {
                "id": template.external_id,
                "key": template.template_key,
                "name": template.name,
                "version": version.version_number,
                "meta_flow_id": template.meta_flow_id,
            },
            "tenant": {
                "id": template.tenant_id,
                "business_account_id": template.business_account_id,
                "app_id": template.app_id,
            },
            "user_phone": data.user_phone,
            "answers": data.answers,
            "timestamp": submitted_at.isoformat(),
        }

        submission = FlowSubmission(
            tenant_id=template.tenant_id,
            template_id=template.id,
            version_id=version.id,
            version_number=version.version_number,
            business_account_id=template.business_account_id,
            app_id=template.app_id,
            responder_phone=data.user_phone,
            answers=data.answers,
            mapped_response=apply_webhook_mapping(version.webhook_mapping, context),
            status=data.status,
            source=data.source,
            external_reference=data.external_reference,
            submitted_at=submitted_at,
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)

        log.info(
            f"📥 Submission {submission.external_id} for flow '{template.template_key}' "
            f"v{version.version_number} from {data.user_phone}"
        )
        return self._to_response(submission, template)

    def list_submissions(
        self,
        db: Session,
        scope: TenantScope,
        flow_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> List[FlowSubmissionResponse]:
        """Submissions of one flow, newest first."""
        template = db.query(FlowTemplate).filter(
            FlowTemplate.tenant_id == scope.tenant_id,
            FlowTemplate.business_account_id == scope.business_account_id,
            FlowTemplate.app_id == scope.app_id,
            FlowTemplate.external_id == flow_id,
        ).first()
        if not template:
            raise FlowNotFoundError("Flow not found", details={"flow_id": flow_id})

        submissions = db.query(FlowSubmission).filter(
            FlowSubmission.template_id == template.id,
        ).order_by(
            FlowSubmission.submitted_at.desc(), FlowSubmission.id.desc()
        ).offset(max(offset, 0)).limit(min(max(limit, 1), 200)).all()

        return [self._to_response(submission, template) for submission in submissions]

    def _resolve_version(
        self,
        db: Session,
        template: FlowTemplate,
        version_number: Optional[int],
    ) -> FlowVersion:
        versions = db.query(FlowVersion).filter(FlowVersion.template_id == template.id)

        if version_number is not None:
            version = versions.filter(FlowVersion.version_number == version_number).first()
        else:
            version = None
            for version_id in (template.current_published_version_id, template.current_draft_version_id):
                if version_id:
                    version = versions.filter(FlowVersion.id == version_id).first()
                    if version:
                        break
            if version is None:
                version = versions.order_by(FlowVersion.version_number.desc()).first()

        if not version:
            raise FlowNotFoundError(
                "Flow version not found",
                code=FlowErrorCode.FLOW_VERSION_NOT_FOUND,
                details={"flow_id": template.external_id, "version": version_number},
            )
        return version

    def _to_response(self, submission: FlowSubmission, template: FlowTemplate) -> FlowSubmissionResponse:
        data: Dict[str, Any] = {
            "external_id": submission.external_id,
            "flow_id": template.external_id,
            "version_number": submission.version_number,
            "responder_phone": submission.responder_phone,
            "answers": submission.answers,
            "mapped_response": submission.mapped_response,
            "status": submission.status,
            "source": submission.source,
            "external_reference": submission.external_reference,
            "submitted_at": submission.submitted_at,
            "created_at": submission.created_at,
        }
        return FlowSubmissionResponse(**data)
