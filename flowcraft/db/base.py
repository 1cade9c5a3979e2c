"""Import all models for Alembic"""
from flowcraft.models.base import Base

from flowcraft.models.flow import (  # noqa: F401
    FlowTemplate, FlowVersion, FlowScreen, FlowComponent, FlowAction, FlowSubmission,
)

__all__ = ["Base"]
