"""Tests for flow submission intake."""

import pytest

from flowcraft.core.exceptions import FlowNotFoundError, FlowValidationError
from flowcraft.models.flow import FlowSubmission, FlowSubmissionStatus
from flowcraft.schemas.flow import FlowCreate, FlowSubmissionIn
from flowcraft.services.flow_submission_service import FlowSubmissionService
from flowcraft.services.flow_template_service import FlowTemplateService

from tests.helpers import lead_flow_payload


@pytest.fixture
def flow(db, scope):
    return FlowTemplateService().create_flow(db, scope, "user_1", FlowCreate.model_validate(lead_flow_payload()))


def submission(flow, scope, **overrides):
    data = {
        "flow_id": flow.external_id,
        "tenant_id": scope.tenant_id,
        "business_account_id": scope.business_account_id,
        "app_id": scope.app_id,
        "user_phone": "+919876543210",
        "answers": {"full_name": "Ada", "interest": "support"},
    }
    data.update(overrides)
    return FlowSubmissionIn.model_validate(data)


class TestProcessSubmission:
    """Tests for process_submission."""

    def test_stores_mapped_submission(self, db, scope, flow) -> None:
        result = FlowSubmissionService().process_submission(db, submission(flow, scope))

        assert result.flow_id == flow.external_id
        assert result.version_number == 1
        assert result.status is FlowSubmissionStatus.RECEIVED
        assert result.mapped_response == {
            "lead": {"name": "Ada", "phone": "+919876543210", "interest": "support"},
            "source": "flow:lead_capture v1",
        }
        assert db.query(FlowSubmission).count() == 1

    def test_prefers_published_version(self, db, scope, flow) -> None:
        FlowTemplateService().publish_flow(db, scope, "approver", flow.external_id)
        result = FlowSubmissionService().process_submission(db, submission(flow, scope))
        assert result.version_number == 1

    def test_explicit_version(self, db, scope, flow) -> None:
        FlowTemplateService().publish_flow(db, scope, "approver", flow.external_id)
        result = FlowSubmissionService().process_submission(db, submission(flow, scope, version=2))
        assert result.version_number == 2

    @pytest.mark.parametrize("blank", [None, "   ", []])
    def test_missing_required_answers(self, db, scope, flow, blank) -> None:
        data = submission(flow, scope, answers={"full_name": blank})
        with pytest.raises(FlowValidationError) as exc_info:
            FlowSubmissionService().process_submission(db, data)
        assert exc_info.value.code == "FLOW_SUBMISSION_VALIDATION_FAILED"
        assert exc_info.value.details == {"missing": ["full_name", "interest"]}
        assert db.query(FlowSubmission).count() == 0

    def test_unknown_flow(self, db, scope, flow) -> None:
        with pytest.raises(FlowNotFoundError):
            FlowSubmissionService().process_submission(db, submission(flow, scope, app_id="other_app"))

    def test_unknown_version(self, db, scope, flow) -> None:
        with pytest.raises(FlowNotFoundError):
            FlowSubmissionService().process_submission(db, submission(flow, scope, version=7))

    def test_without_mapping_answers_are_kept(self, db, scope) -> None:
        payload = lead_flow_payload(name="Plain", webhook_mapping=None)
        flow = FlowTemplateService().create_flow(db, scope, "user_1", FlowCreate.model_validate(payload))
        result = FlowSubmissionService().process_submission(db, submission(flow, scope))
        assert result.mapped_response == {"full_name": "Ada", "interest": "support"}


class TestListSubmissions:
    """Tests for list_submissions."""

    def test_newest_first(self, db, scope, flow) -> None:
        service = FlowSubmissionService()
        first = service.process_submission(db, submission(flow, scope, external_reference="first"))
        second = service.process_submission(db, submission(flow, scope, external_reference="second"))

        listed = service.list_submissions(db, scope, flow.external_id)
        assert [item.external_id for item in listed] == [second.external_id, first.external_id]
