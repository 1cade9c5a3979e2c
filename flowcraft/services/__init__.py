"""
Service layer initialization.
Provides singleton instances of services.
"""
from typing import Optional

from flowcraft.services.flow_status import FlowStatusService
from flowcraft.services.flow_submission_service import FlowSubmissionService
from flowcraft.services.flow_template_service import FlowTemplateService
from flowcraft.services.meta_flow_client import MetaFlowClient

# Global Meta flows client instance
_meta_client: Optional[MetaFlowClient] = None


def set_meta_flow_client(client: Optional[MetaFlowClient]):
    """Set global Meta flows client instance"""
    global _meta_client
    _meta_client = client


def get_meta_client() -> Optional[MetaFlowClient]:
    """Get global Meta flows client instance"""
    return _meta_client


def get_flow_template_service() -> FlowTemplateService:
    """Get FlowTemplateService instance with Meta client"""
    return FlowTemplateService(_meta_client)


def get_flow_status_service() -> FlowStatusService:
    return FlowStatusService()


def get_flow_submission_service() -> FlowSubmissionService:
    return FlowSubmissionService()


__all__ = [
    'FlowTemplateService',
    'FlowStatusService',
    'FlowSubmissionService',
    'set_meta_flow_client',
    'get_meta_client',
    'get_flow_template_service',
    'get_flow_status_service',
    'get_flow_submission_service',
]
