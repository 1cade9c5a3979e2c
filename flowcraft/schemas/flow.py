"""
Pydantic schemas for the WhatsApp Flow builder API.

Input models normalize keys and check per-type configuration at write time, so
malformed options or action config never reach the stored graph.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from flowcraft.models.flow import (
    ActionType,
    ComponentType,
    FlowCategory,
    FlowSubmissionSource,
    FlowSubmissionStatus,
    FlowTemplateStatus,
    FlowVersionStatus,
    MetaFlowStatus,
    NAVIGATION_ACTION_TYPES,
    OPTION_COMPONENT_TYPES,
)

KEY_MAX_LENGTH = 128
PHONE_PATTERN = r"^\+?[0-9]{8,18}$"
API_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

_KEY_INVALID = re.compile(r"[^a-z0-9_]+")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def normalize_key(value: Any) -> str:
    """Lower-case key made of [a-z0-9_]; runs of anything else become "_"."""
    if value is None:
        return ""
    key = _KEY_INVALID.sub("_", str(value).strip().lower()).strip("_")
    return key[:KEY_MAX_LENGTH]


def slugify(value: Any) -> str:
    if value is None:
        return ""
    slug = _SLUG_INVALID.sub("_", str(value).strip().lower()).strip("_")
    return slug[:KEY_MAX_LENGTH]


def _nullable_key(value: Any) -> Optional[str]:
    return normalize_key(value) or None


def _nullable_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ────────────────────────────────────────────
# Scope
# ────────────────────────────────────────────

class TenantScope(BaseModel):
    """Tenant / WhatsApp Business Account / Meta app triple every flow is scoped by"""
    tenant_id: str
    business_account_id: str
    app_id: str

    class Config:
        frozen = True


# ────────────────────────────────────────────
# Graph input
# ────────────────────────────────────────────

class FlowOption(BaseModel):
    """Choice of a select/radio/checkbox component"""
    label: str = Field(..., min_length=1, max_length=255)
    value: Any


class ApiConfig(BaseModel):
    """Request settings of an external_api action"""
    method: str = "POST"
    url: Optional[str] = Field(None, max_length=1000)
    timeout_ms: int = Field(10000, ge=1, validation_alias=AliasChoices("timeout_ms", "timeoutMs"))
    headers: Dict[str, Any] = Field(default_factory=dict)
    body_template: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("body_template", "bodyTemplate")
    )

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        method = (_nullable_text(v) or "POST").upper()
        if method not in API_METHODS:
            raise ValueError(f"method must be one of: {', '.join(API_METHODS)}")
        return method


class FlowComponentIn(BaseModel):
    """Input or display field on a screen"""
    key: Optional[str] = Field(None, validation_alias=AliasChoices("key", "component_key"))
    type: str = Field(..., validation_alias=AliasChoices("type", "component_type"))
    label: str = Field(..., min_length=1, max_length=255)
    variable_key: Optional[str] = Field(None, validation_alias=AliasChoices("variable_key", "variableKey"))
    required: bool = False
    placeholder: Optional[str] = Field(None, max_length=255)
    options: Optional[List[FlowOption]] = None
    validation_rules: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("validation_rules", "validation")
    )
    default_value: Any = Field(None, validation_alias=AliasChoices("default_value", "defaultValue"))
    config: Optional[Dict[str, Any]] = None
    order: Optional[int] = Field(None, ge=0, validation_alias=AliasChoices("order", "order_index"))

    @field_validator("key", "variable_key", mode="before")
    @classmethod
    def normalize_keys(cls, v):
        return _nullable_key(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        component_type = (_nullable_text(v) or "").lower()
        allowed = [item.value for item in ComponentType]
        if component_type not in allowed:
            raise ValueError(f"Unsupported component type '{component_type}'")
        return component_type

    @field_validator("options", mode="before")
    @classmethod
    def normalize_options(cls, v):
        if v is None:
            return None
        if not isinstance(v, list):
            raise ValueError("options must be a list")
        normalized = []
        for option in v:
            if isinstance(option, (str, int, float)) and not isinstance(option, bool):
                normalized.append({"label": str(option), "value": str(option)})
            elif isinstance(option, dict):
                label = _nullable_text(option.get("label"))
                value = option.get("value")
                if value is None:
                    value = label
                if value is None:
                    raise ValueError("each option needs a label or a value")
                normalized.append({"label": label or str(value), "value": value})
            else:
                raise ValueError("each option must be a string, number or object")
        return normalized

    @model_validator(mode="after")
    def check_options_for_type(self):
        if self.type in OPTION_COMPONENT_TYPES:
            if not self.options:
                raise ValueError(f"Component of type '{self.type}' must include non-empty options")
        elif self.options:
            raise ValueError(f"Component of type '{self.type}' does not accept options")
        return self


class FlowActionIn(BaseModel):
    """Navigation, submit or API directive attached to a screen"""
    key: Optional[str] = Field(None, validation_alias=AliasChoices("key", "action_key"))
    type: str = Field(..., validation_alias=AliasChoices("type", "action_type"))
    label: Optional[str] = Field(None, max_length=255)
    trigger_component_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("trigger_component_key", "triggerComponentKey")
    )
    target_screen_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("target_screen_key", "targetScreenKey")
    )
    api_config: Optional[ApiConfig] = Field(None, validation_alias=AliasChoices("api_config", "apiConfig"))
    payload_mapping: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("payload_mapping", "payloadMapping")
    )
    condition: Optional[Dict[str, Any]] = None
    order: Optional[int] = Field(None, ge=0, validation_alias=AliasChoices("order", "order_index"))

    @field_validator("key", "trigger_component_key", "target_screen_key", mode="before")
    @classmethod
    def normalize_keys(cls, v):
        return _nullable_key(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        action_type = (_nullable_text(v) or "").lower()
        allowed = [item.value for item in ActionType]
        if action_type not in allowed:
            raise ValueError(f"Unsupported action type '{action_type}'")
        return action_type

    @model_validator(mode="after")
    def check_config_for_type(self):
        if self.type in NAVIGATION_ACTION_TYPES and not self.target_screen_key:
            raise ValueError(f"Action of type '{self.type}' must include target_screen_key")
        if self.type == ActionType.EXTERNAL_API.value and not (self.api_config and self.api_config.url):
            raise ValueError("Action of type 'external_api' requires api_config.url")
        return self


class FlowScreenIn(BaseModel):
    """One page of the flow with its components and actions"""
    key: Optional[str] = Field(None, validation_alias=AliasChoices("key", "screen_key"))
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    order: Optional[int] = Field(None, ge=0, validation_alias=AliasChoices("order", "order_index"))
    is_entry_point: Optional[bool] = Field(
        None, validation_alias=AliasChoices("is_entry_point", "isEntryPoint")
    )
    settings: Optional[Dict[str, Any]] = None
    components: List[FlowComponentIn] = Field(default_factory=list)
    actions: List[FlowActionIn] = Field(default_factory=list)

    @field_validator("key", mode="before")
    @classmethod
    def normalize_screen_key(cls, v):
        return _nullable_key(v)

    @model_validator(mode="after")
    def fill_defaults(self):
        for index, component in enumerate(self.components):
            component.key = component.key or f"component_{index + 1}"
            component.order = index if component.order is None else component.order
        for index, action in enumerate(self.actions):
            action.key = action.key or f"action_{index + 1}"
            action.order = index if action.order is None else action.order
        return self


class FlowGraphIn(BaseModel):
    """Screens plus version-level settings"""
    screens: List[FlowScreenIn] = Field(..., min_length=1)
    webhook_mapping: Optional[Any] = Field(
        None, validation_alias=AliasChoices("webhook_mapping", "webhookMapping")
    )
    response_schema: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("response_schema", "responseSchema")
    )

    @model_validator(mode="after")
    def fill_screen_defaults(self):
        for index, screen in enumerate(self.screens):
            screen.key = screen.key or f"screen_{index + 1}"
            screen.order = index if screen.order is None else screen.order
        return self


class FlowCreate(FlowGraphIn):
    """Schema for creating a flow template with its first draft"""
    name: str = Field(..., min_length=1, max_length=255)
    template_key: Optional[str] = Field(None, validation_alias=AliasChoices("template_key", "templateKey"))
    description: Optional[str] = Field(None, max_length=1000)
    category: FlowCategory
    meta_flow_id: Optional[str] = Field(
        None, max_length=64, validation_alias=AliasChoices("meta_flow_id", "flow_id", "flowId")
    )

    @field_validator("template_key", mode="before")
    @classmethod
    def normalize_template_key(cls, v):
        return _nullable_key(v)

    @field_validator("category", mode="before")
    @classmethod
    def upper_category(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @model_validator(mode="after")
    def derive_template_key(self):
        self.template_key = self.template_key or slugify(self.name) or None
        if not self.template_key:
            raise ValueError("template_key is required")
        return self


class FlowUpdate(FlowGraphIn):
    """Schema for replacing the draft graph; omitted template fields are kept"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    template_key: Optional[str] = Field(None, validation_alias=AliasChoices("template_key", "templateKey"))
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[FlowCategory] = None

    @field_validator("template_key", mode="before")
    @classmethod
    def normalize_template_key(cls, v):
        return _nullable_key(v)

    @field_validator("category", mode="before")
    @classmethod
    def upper_category(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class FlowPublishRequest(BaseModel):
    """Publish a version (the current draft when version is omitted)"""
    version: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = Field(None, max_length=1000)


class FlowCloneRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    template_key: Optional[str] = Field(None, validation_alias=AliasChoices("template_key", "templateKey"))

    @field_validator("template_key", mode="before")
    @classmethod
    def normalize_template_key(cls, v):
        return _nullable_key(v)


class FlowSubmissionIn(BaseModel):
    """Completed flow answers delivered by the WhatsApp webhook relay"""
    flow_id: str = Field(..., min_length=1, max_length=36, validation_alias=AliasChoices("flow_id", "flowId"))
    version: Optional[int] = Field(None, ge=1)
    tenant_id: str = Field(..., min_length=1, max_length=100, validation_alias=AliasChoices("tenant_id", "tenantId"))
    business_account_id: str = Field(
        ..., min_length=1, max_length=64,
        validation_alias=AliasChoices("business_account_id", "businessAccountId"),
    )
    app_id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("app_id", "appId"))
    user_phone: str = Field(
        ..., pattern=PHONE_PATTERN, validation_alias=AliasChoices("user_phone", "userPhone")
    )
    answers: Dict[str, Any]
    status: FlowSubmissionStatus = FlowSubmissionStatus.RECEIVED
    source: FlowSubmissionSource = FlowSubmissionSource.WEBHOOK
    external_reference: Optional[str] = Field(
        None, max_length=128, validation_alias=AliasChoices("external_reference", "externalReference")
    )

    @field_validator("user_phone", mode="before")
    @classmethod
    def strip_phone(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("status", "source", mode="before")
    @classmethod
    def upper_enum(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


# ────────────────────────────────────────────
# Responses
# ────────────────────────────────────────────

class FlowComponentResponse(BaseModel):
    component_key: str
    component_type: str
    label: str
    variable_key: Optional[str]
    required: bool
    placeholder: Optional[str]
    options: Optional[List[Dict[str, Any]]]
    validation_rules: Optional[Dict[str, Any]]
    default_value: Any
    config: Optional[Dict[str, Any]]
    order_index: int

    class Config:
        from_attributes = True


class FlowActionResponse(BaseModel):
    action_key: str
    action_type: str
    label: Optional[str]
    trigger_component_key: Optional[str]
    target_screen_key: Optional[str]
    api_config: Optional[Dict[str, Any]]
    payload_mapping: Optional[Dict[str, Any]]
    condition: Optional[Dict[str, Any]]
    order_index: int

    class Config:
        from_attributes = True


class FlowScreenResponse(BaseModel):
    screen_key: str
    title: str
    description: Optional[str]
    order_index: int
    is_entry_point: bool
    settings: Optional[Dict[str, Any]]
    components: List[FlowComponentResponse]
    actions: List[FlowActionResponse]

    class Config:
        from_attributes = True


class FlowVersionSummary(BaseModel):
    external_id: str
    version_number: int
    status: FlowVersionStatus
    approval_notes: Optional[str]
    published_at: Optional[datetime]
    created_by: Optional[str]
    approved_by: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class FlowVersionDetail(FlowVersionSummary):
    webhook_mapping: Optional[Any]
    response_schema: Optional[Dict[str, Any]]
    screens: List[FlowScreenResponse]


class FlowListItem(BaseModel):
    external_id: str
    template_key: str
    name: str
    description: Optional[str]
    category: FlowCategory
    status: FlowTemplateStatus
    meta_flow_id: Optional[str]
    meta_status: Optional[MetaFlowStatus]
    current_draft_version: Optional[int] = None
    current_published_version: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class FlowTemplateResponse(FlowListItem):
    tenant_id: str
    business_account_id: str
    app_id: str
    meta_status_updated_at: Optional[datetime]
    version: FlowVersionDetail
    versions: List[FlowVersionSummary]


class FlowListResponse(BaseModel):
    total: int
    flows: List[FlowListItem]
    limit: int
    offset: int


class FlowSubmissionResponse(BaseModel):
    external_id: str
    flow_id: str
    version_number: int
    responder_phone: str
    answers: Dict[str, Any]
    mapped_response: Optional[Any]
    status: FlowSubmissionStatus
    source: FlowSubmissionSource
    external_reference: Optional[str]
    submitted_at: datetime
    created_at: datetime


class FlowDeleteResponse(BaseModel):
    flow_id: str
    deleted: bool


class FlowStatusSyncResponse(BaseModel):
    checked: int
    updated: int
    unchanged: int
    failed: int


class FlowStatusEventResponse(BaseModel):
    matched: bool
    updated: bool
    meta_flow_id: Optional[str]
    status: Optional[MetaFlowStatus]
