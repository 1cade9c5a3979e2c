"""
WhatsApp Flow models: versioned screen graphs and their submissions.

A FlowTemplate owns its FlowVersions; a FlowVersion owns its screens, which own
their components and actions. Submissions reference a template/version but are
never deleted with them.
"""
import enum
import uuid

from sqlalchemy import (
    Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, JSON,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from flowcraft.models.base import BaseModel


def _new_external_id() -> str:
    return str(uuid.uuid4())


class FlowCategory(str, enum.Enum):
    """Business-process category of a flow template"""
    LEAD_GENERATION = "LEAD_GENERATION"
    LEAD_QUALIFICATION = "LEAD_QUALIFICATION"
    APPOINTMENT_BOOKING = "APPOINTMENT_BOOKING"
    SLOT_BOOKING = "SLOT_BOOKING"
    ORDER_PLACEMENT = "ORDER_PLACEMENT"
    RE_ORDERING = "RE_ORDERING"
    CUSTOMER_SUPPORT = "CUSTOMER_SUPPORT"
    TICKET_CREATION = "TICKET_CREATION"
    PAYMENTS = "PAYMENTS"
    COLLECTIONS = "COLLECTIONS"
    REGISTRATIONS = "REGISTRATIONS"
    APPLICATIONS = "APPLICATIONS"
    DELIVERY_UPDATES = "DELIVERY_UPDATES"
    ADDRESS_CAPTURE = "ADDRESS_CAPTURE"
    FEEDBACK = "FEEDBACK"
    SURVEYS = "SURVEYS"


class FlowTemplateStatus(str, enum.Enum):
    """Local lifecycle of a template"""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class FlowVersionStatus(str, enum.Enum):
    """Local lifecycle of a version"""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"
    REJECTED = "REJECTED"


class MetaFlowStatus(str, enum.Enum):
    """
    Publication health reported by WhatsApp for a flow.

    Not the same namespace as FlowTemplateStatus / FlowVersionStatus even though
    DRAFT and PUBLISHED appear in both.
    """
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    DEPRECATED = "DEPRECATED"
    THROTTLED = "THROTTLED"
    BLOCKED = "BLOCKED"


class FlowSubmissionStatus(str, enum.Enum):
    RECEIVED = "RECEIVED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class FlowSubmissionSource(str, enum.Enum):
    WHATSAPP = "WHATSAPP"
    WEBHOOK = "WEBHOOK"
    API = "API"


class ComponentType(str, enum.Enum):
    TEXT = "text"
    INPUT = "input"
    TEXTAREA = "textarea"
    NUMBER = "number"
    PHONE = "phone"
    EMAIL = "email"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    FILE = "file"
    SUMMARY = "summary"


OPTION_COMPONENT_TYPES = (ComponentType.SELECT.value, ComponentType.RADIO.value, ComponentType.CHECKBOX.value)


class ActionType(str, enum.Enum):
    NEXT_SCREEN = "next_screen"
    PREVIOUS_SCREEN = "previous_screen"
    SUBMIT = "submit"
    EXTERNAL_API = "external_api"


NAVIGATION_ACTION_TYPES = (ActionType.NEXT_SCREEN.value, ActionType.PREVIOUS_SCREEN.value)


class FlowTemplate(BaseModel):
    """
    Tenant-scoped named flow definition.

    Scoped by (tenant_id, business_account_id, app_id). Never hard-deleted:
    deleted_at marks a soft delete.
    """
    __tablename__ = "flow_templates"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "business_account_id", "app_id", "template_key",
            name="uk_flow_template_tenant_key",
        ),
    )

    external_id = Column(String(36), unique=True, index=True, nullable=False, default=_new_external_id)
    business_account_id = Column(String(64), nullable=False)  # WhatsApp Business Account
    app_id = Column(String(64), nullable=False)  # Meta app
    meta_flow_id = Column(String(64), index=True, nullable=True)  # Flow ID on WhatsApp

    template_key = Column(String(128), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(SQLEnum(FlowCategory), nullable=False)

    status = Column(SQLEnum(FlowTemplateStatus), default=FlowTemplateStatus.DRAFT, nullable=False)
    meta_status = Column(SQLEnum(MetaFlowStatus), nullable=True)
    meta_status_updated_at = Column(DateTime, nullable=True)

    current_draft_version_id = Column(Integer, nullable=True)  # FK to flow_versions
    current_published_version_id = Column(Integer, nullable=True)  # FK to flow_versions

    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    versions = relationship(
        "FlowVersion",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="FlowVersion.version_number",
    )

    def __repr__(self):
        return f"<FlowTemplate {self.template_key} ({self.external_id}) - {self.status}>"


class FlowVersion(BaseModel):
    """Snapshot of a template's screen graph; immutable once published"""
    __tablename__ = "flow_versions"
    __table_args__ = (
        UniqueConstraint("template_id", "version_number", name="uk_flow_version_number"),
    )

    external_id = Column(String(36), unique=True, index=True, nullable=False, default=_new_external_id)
    template_id = Column(Integer, ForeignKey("flow_templates.id", ondelete="CASCADE"), index=True, nullable=False)
    version_number = Column(Integer, nullable=False)
    status = Column(SQLEnum(FlowVersionStatus), default=FlowVersionStatus.DRAFT, nullable=False)

    webhook_mapping = Column(JSON, nullable=True)
    response_schema = Column(JSON, nullable=True)
    approval_notes = Column(Text, nullable=True)
    published_at = Column(DateTime, nullable=True)

    created_by = Column(String(100), nullable=True)
    approved_by = Column(String(100), nullable=True)

    template = relationship("FlowTemplate", back_populates="versions")
    screens = relationship(
        "FlowScreen",
        back_populates="version",
        cascade="all, delete-orphan",
        order_by=lambda: (FlowScreen.order_index, FlowScreen.id),
    )

    def __repr__(self):
        return f"<FlowVersion template={self.template_id} v{self.version_number} - {self.status}>"


class FlowScreen(BaseModel):
    """One page of a flow"""
    __tablename__ = "flow_screens"
    __table_args__ = (
        UniqueConstraint("version_id", "screen_key", name="uk_flow_screen_key"),
    )

    external_id = Column(String(36), unique=True, nullable=False, default=_new_external_id)
    version_id = Column(Integer, ForeignKey("flow_versions.id", ondelete="CASCADE"), index=True, nullable=False)
    screen_key = Column(String(128), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    is_entry_point = Column(Boolean, nullable=False, default=False)
    settings = Column(JSON, nullable=True)

    version = relationship("FlowVersion", back_populates="screens")
    components = relationship(
        "FlowComponent",
        back_populates="screen",
        cascade="all, delete-orphan",
        order_by=lambda: (FlowComponent.order_index, FlowComponent.id),
    )
    actions = relationship(
        "FlowAction",
        back_populates="screen",
        cascade="all, delete-orphan",
        order_by=lambda: (FlowAction.order_index, FlowAction.id),
    )

    def __repr__(self):
        return f"<FlowScreen {self.screen_key} (#{self.order_index})>"


class FlowComponent(BaseModel):
    """Input or display field on a screen"""
    __tablename__ = "flow_components"
    __table_args__ = (
        UniqueConstraint("screen_id", "component_key", name="uk_flow_component_key"),
    )

    external_id = Column(String(36), unique=True, nullable=False, default=_new_external_id)
    version_id = Column(Integer, ForeignKey("flow_versions.id", ondelete="CASCADE"), index=True, nullable=False)
    screen_id = Column(Integer, ForeignKey("flow_screens.id", ondelete="CASCADE"), index=True, nullable=False)
    component_key = Column(String(128), nullable=False)
    component_type = Column(String(64), nullable=False)
    label = Column(String(255), nullable=False)
    variable_key = Column(String(128), nullable=True)  # Answer name; unique per version (validator)
    required = Column(Boolean, nullable=False, default=False)
    placeholder = Column(String(255), nullable=True)
    options = Column(JSON, nullable=True)
    validation_rules = Column(JSON, nullable=True)
    default_value = Column(JSON, nullable=True)
    config = Column(JSON, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    screen = relationship("FlowScreen", back_populates="components")

    def __repr__(self):
        return f"<FlowComponent {self.component_key} ({self.component_type})>"


class FlowAction(BaseModel):
    """Navigation or terminal directive attached to a screen"""
    __tablename__ = "flow_actions"
    __table_args__ = (
        UniqueConstraint("screen_id", "action_key", name="uk_flow_action_key"),
    )

    external_id = Column(String(36), unique=True, nullable=False, default=_new_external_id)
    version_id = Column(Integer, ForeignKey("flow_versions.id", ondelete="CASCADE"), index=True, nullable=False)
    screen_id = Column(Integer, ForeignKey("flow_screens.id", ondelete="CASCADE"), index=True, nullable=False)
    action_key = Column(String(128), nullable=False)
    action_type = Column(String(64), nullable=False)
    label = Column(String(255), nullable=True)
    trigger_component_key = Column(String(128), nullable=True)
    target_screen_key = Column(String(128), nullable=True)
    api_config = Column(JSON, nullable=True)
    payload_mapping = Column(JSON, nullable=True)
    condition = Column(JSON, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    screen = relationship("FlowScreen", back_populates="actions")

    def __repr__(self):
        return f"<FlowAction {self.action_key} ({self.action_type})>"


class FlowSubmission(BaseModel):
    """Audit record of one completed or failed flow run"""
    __tablename__ = "flow_submissions"

    external_id = Column(String(36), unique=True, index=True, nullable=False, default=_new_external_id)
    template_id = Column(Integer, ForeignKey("flow_templates.id"), index=True, nullable=False)
    version_id = Column(Integer, ForeignKey("flow_versions.id"), index=True, nullable=False)
    version_number = Column(Integer, nullable=False)
    business_account_id = Column(String(64), nullable=False)
    app_id = Column(String(64), nullable=False)

    responder_phone = Column(String(32), index=True, nullable=False)
    answers = Column(JSON, nullable=False)
    mapped_response = Column(JSON, nullable=True)

    status = Column(SQLEnum(FlowSubmissionStatus), default=FlowSubmissionStatus.RECEIVED, nullable=False)
    source = Column(SQLEnum(FlowSubmissionSource), default=FlowSubmissionSource.WEBHOOK, nullable=False)
    external_reference = Column(String(128), nullable=True)
    error_message = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<FlowSubmission {self.external_id} from {self.responder_phone} - {self.status}>"
