"""
Flow Template Service - versioned storage of flow screen graphs.

A template has at most one DRAFT and at most one PUBLISHED version. Editing a
flow writes a new draft version; publishing freezes the draft, archives the
previous published version and forks a fresh draft from the published graph.
When a Meta client is configured every change is mirrored to WhatsApp.
"""
import copy
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from flowcraft.core import config
from flowcraft.core.exceptions import (
    FlowConflictError, FlowErrorCode, FlowNotFoundError, FlowStateError, FlowValidationError,
)
from flowcraft.models.flow import (
    FlowAction, FlowCategory, FlowComponent, FlowScreen, FlowTemplate, FlowTemplateStatus,
    FlowVersion, FlowVersionStatus,
)
from flowcraft.schemas.flow import (
    FlowCreate, FlowGraphIn, FlowListItem, FlowListResponse, FlowTemplateResponse, FlowUpdate,
    FlowVersionDetail, FlowVersionSummary, TenantScope,
)
from flowcraft.services.flow_compiler import compile_flow_json
from flowcraft.services.flow_validator import assert_valid_graph, ensure_entry_point, validate_publishable

log = logging.getLogger("flowcraft.flow_template_service")


class FlowTemplateService:
    """Service for flow template and version operations"""

    def __init__(self, meta_client=None):
        """
        Initialize service with optional Meta flows client.

        Args:
            meta_client: MetaFlowClient instance; None keeps every change local
        """
        self.meta = meta_client

    # ────────────────────────────────────────────
    # Create / Update
    # ────────────────────────────────────────────

    def create_flow(
        self,
        db: Session,
        scope: TenantScope,
        user_id: Optional[str],
        data: FlowCreate,
    ) -> FlowTemplateResponse:
        """
        Create a template with its first DRAFT version.

        The graph is validated before anything is written locally or remotely.
        """
        screens = self._screens_from_input(data, scope.tenant_id)
        ensure_entry_point(screens)
        assert_valid_graph(screens)

        existing = self._scoped(db, scope).filter(FlowTemplate.template_key == data.template_key).first()
        if existing:
            raise FlowConflictError(
                f"Flow with template_key '{data.template_key}' already exists",
                details={"template_key": data.template_key},
            )

        meta_flow_id = data.meta_flow_id
        if self.meta and not meta_flow_id:
            meta_flow_id = self.meta.create_flow(
                data.name,
                categories=[data.category.value],
                endpoint_uri=config.FLOW_ENDPOINT_URI or None,
            )

        template = FlowTemplate(
            tenant_id=scope.tenant_id,
            business_account_id=scope.business_account_id,
            app_id=scope.app_id,
            meta_flow_id=meta_flow_id,
            template_key=data.template_key,
            name=data.name,
            description=data.description,
            category=data.category,
            status=FlowTemplateStatus.DRAFT,
            created_by=user_id,
            updated_by=user_id,
        )
        version = self._new_version(template, 1, data, user_id)

        db.add(template)
        self._flush_graph(db, version, screens)
        template.current_draft_version_id = version.id

        self._sync_flow_json(db, template, version)
        db.commit()
        db.refresh(template)

        log.info(f"💾 Flow '{template.name}' created ({template.external_id}) v1 draft")
        return self._to_response(template, version)

    def update_flow(
        self,
        db: Session,
        scope: TenantScope,
        user_id: Optional[str],
        flow_id: str,
        data: FlowUpdate,
    ) -> FlowTemplateResponse:
        """
        Replace the draft graph.

        The new graph becomes a new DRAFT version; the draft it replaces is
        archived so the template keeps a single draft.
        """
        screens = self._screens_from_input(data, scope.tenant_id)
        ensure_entry_point(screens)
        assert_valid_graph(screens)

        template = self._get_template(db, scope, flow_id, lock=True)

        if data.template_key and data.template_key != template.template_key:
            clash = self._scoped(db, scope).filter(
                FlowTemplate.template_key == data.template_key,
                FlowTemplate.id != template.id,
            ).first()
            if clash:
                raise FlowConflictError(
                    f"Flow with template_key '{data.template_key}' already exists",
                    details={"template_key": data.template_key},
                )
            template.template_key = data.template_key

        if data.name is not None:
            template.name = data.name
        if data.description is not None:
            template.description = data.description
        if data.category is not None:
            template.category = data.category

        previous_draft = self._current_draft(db, template)
        if previous_draft is not None:
            previous_draft.status = FlowVersionStatus.ARCHIVED

        version = self._new_version(template, self._next_version_number(db, template), data, user_id)
        self._flush_graph(db, version, screens)

        template.current_draft_version_id = version.id
        template.status = FlowTemplateStatus.DRAFT
        template.updated_by = user_id

        self._sync_flow_json(db, template, version)
        db.commit()
        db.refresh(template)

        log.info(f"✅ Flow '{template.name}' updated - draft v{version.version_number}")
        return self._to_response(template, version)

    # ────────────────────────────────────────────
    # Read
    # ────────────────────────────────────────────

    def list_flows(
        self,
        db: Session,
        scope: TenantScope,
        status: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = config.DEFAULT_FLOW_LIST_LIMIT,
        offset: int = 0,
    ) -> FlowListResponse:
        """List templates in scope, newest first; soft-deleted templates are excluded."""
        limit = config.DEFAULT_FLOW_LIST_LIMIT if limit is None else limit
        limit = min(max(limit, 1), config.MAX_FLOW_LIST_LIMIT)
        offset = max(offset or 0, 0)

        query = self._scoped(db, scope).filter(FlowTemplate.deleted_at.is_(None))

        if status:
            try:
                query = query.filter(FlowTemplate.status == FlowTemplateStatus(status.strip().upper()))
            except ValueError:
                raise FlowValidationError(f"Unknown flow status '{status}'")
        if category:
            try:
                query = query.filter(FlowTemplate.category == FlowCategory(category.strip().upper()))
            except ValueError:
                raise FlowValidationError(f"Unknown flow category '{category}'")
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    FlowTemplate.name.ilike(pattern),
                    FlowTemplate.template_key.ilike(pattern),
                    FlowTemplate.description.ilike(pattern),
                )
            )

        total = query.count()
        templates = (
            query.options(selectinload(FlowTemplate.versions))
            .order_by(FlowTemplate.created_at.desc(), FlowTemplate.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

        return FlowListResponse(
            total=total,
            flows=[self._to_list_item(template) for template in templates],
            limit=limit,
            offset=offset,
        )

    def get_flow(
        self,
        db: Session,
        scope: TenantScope,
        flow_id: str,
        version_number: Optional[int] = None,
    ) -> FlowTemplateResponse:
        template = self._get_template(db, scope, flow_id)
        version = self.resolve_version(db, template, version_number)
        return self._to_response(template, self.get_version_graph(db, version.id))

    def get_version_graph(self, db: Session, version_id: int) -> FlowVersion:
        """Load a version with its screens, components and actions attached."""
        version = (
            db.query(FlowVersion)
            .options(
                selectinload(FlowVersion.screens).selectinload(FlowScreen.components),
                selectinload(FlowVersion.screens).selectinload(FlowScreen.actions),
            )
            .filter(FlowVersion.id == version_id)
            .first()
        )
        if not version:
            raise FlowNotFoundError(
                f"Flow version {version_id} not found",
                code=FlowErrorCode.FLOW_VERSION_NOT_FOUND,
            )
        return version

    def compile_version(
        self,
        db: Session,
        scope: TenantScope,
        flow_id: str,
        version_number: Optional[int] = None,
    ) -> dict:
        """Compile a stored version to WhatsApp flow JSON without touching Meta."""
        template = self._get_template(db, scope, flow_id)
        version = self.resolve_version(db, template, version_number)
        return compile_flow_json(template, self.get_version_graph(db, version.id))

    def resolve_version(
        self,
        db: Session,
        template: FlowTemplate,
        version_number: Optional[int] = None,
    ) -> FlowVersion:
        """
        Pick the version a read refers to.

        An explicit number wins; otherwise the current draft, then the current
        published version, then the highest version number.
        """
        if version_number is not None:
            version = db.query(FlowVersion).filter(
                FlowVersion.template_id == template.id,
                FlowVersion.version_number == version_number,
            ).first()
            if not version:
                raise FlowNotFoundError(
                    f"Flow version '{version_number}' not found",
                    code=FlowErrorCode.FLOW_VERSION_NOT_FOUND,
                    details={"flow_id": template.external_id, "version": version_number},
                )
            return version

        for version_id in (template.current_draft_version_id, template.current_published_version_id):
            if version_id:
                version = db.query(FlowVersion).filter(
                    FlowVersion.id == version_id,
                    FlowVersion.template_id == template.id,
                ).first()
                if version:
                    return version

        version = db.query(FlowVersion).filter(
            FlowVersion.template_id == template.id,
        ).order_by(FlowVersion.version_number.desc()).first()
        if not version:
            raise FlowNotFoundError(
                "No versions found for flow",
                code=FlowErrorCode.FLOW_VERSION_NOT_FOUND,
                details={"flow_id": template.external_id},
            )
        return version

    # ────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────

    def publish_flow(
        self,
        db: Session,
        scope: TenantScope,
        user_id: Optional[str],
        flow_id: str,
        version_number: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> FlowTemplateResponse:
        """
        Publish a DRAFT version (the current draft by default).

        The template row is locked for the whole transaction so two concurrent
        publishes cannot both archive and promote. A fresh draft is forked from
        the published graph for further editing.
        """
        template = self._get_template(db, scope, flow_id, lock=True)

        if version_number is not None:
            version = self.resolve_version(db, template, version_number)
        elif template.current_draft_version_id:
            version = self.resolve_version(db, template)
        else:
            raise FlowStateError(
                "Flow has no draft version to publish",
                details={"flow_id": template.external_id},
            )

        if version.status != FlowVersionStatus.DRAFT:
            raise FlowStateError(
                f"Only DRAFT versions can be published (version {version.version_number} is {version.status.value})",
                details={"flow_id": template.external_id, "version": version.version_number},
            )

        graph = self.get_version_graph(db, version.id)
        errors = validate_publishable(graph)
        if errors:
            raise FlowValidationError(
                "Flow version is not publishable",
                code=FlowErrorCode.FLOW_PUBLISH_FAILED,
                details=errors,
            )

        if self.meta:
            if not template.meta_flow_id:
                raise FlowStateError(
                    "Flow is missing Meta flow id and cannot be published to Meta",
                    details={"flow_id": template.external_id},
                )
            try:
                self.meta.update_flow_json(template.meta_flow_id, compile_flow_json(template, graph))
                self.meta.publish_flow(template.meta_flow_id)
            except Exception:
                db.rollback()
                raise
        else:
            log.info(f"Meta client not configured - publishing flow {template.external_id} locally only")

        if template.current_published_version_id and template.current_published_version_id != version.id:
            previous = db.query(FlowVersion).filter(
                FlowVersion.id == template.current_published_version_id,
            ).first()
            if previous and previous.status == FlowVersionStatus.PUBLISHED:
                previous.status = FlowVersionStatus.ARCHIVED

        now = datetime.utcnow()
        version.status = FlowVersionStatus.PUBLISHED
        version.approval_notes = notes
        version.approved_by = user_id
        version.published_at = now

        # Keep editing on a copy; the published graph is frozen
        fork = self._new_version(template, self._next_version_number(db, template), graph, user_id)
        self._flush_graph(db, fork, self._copy_screens(graph, template.tenant_id))

        template.current_published_version_id = version.id
        template.current_draft_version_id = fork.id
        template.status = FlowTemplateStatus.PUBLISHED
        template.updated_by = user_id

        db.commit()
        db.refresh(template)

        log.info(
            f"🚀 Flow '{template.name}' v{version.version_number} published; "
            f"draft v{fork.version_number} forked"
        )
        return self._to_response(template, self.get_version_graph(db, version.id))

    def clone_flow(
        self,
        db: Session,
        scope: TenantScope,
        user_id: Optional[str],
        flow_id: str,
        name: Optional[str] = None,
        template_key: Optional[str] = None,
    ) -> FlowTemplateResponse:
        """Copy the published (else draft, else latest) graph into a new template."""
        source = self._get_template(db, scope, flow_id)

        source_version = None
        for version_id in (source.current_published_version_id, source.current_draft_version_id):
            if version_id:
                source_version = db.query(FlowVersion).filter(FlowVersion.id == version_id).first()
                if source_version:
                    break
        if source_version is None:
            source_version = self.resolve_version(db, source)

        graph = self.get_version_graph(db, source_version.id)
        clone_name = name or f"{source.name} Copy"
        clone_key = template_key or f"{source.template_key}_clone"

        clash = self._scoped(db, scope).filter(FlowTemplate.template_key == clone_key).first()
        if clash:
            raise FlowConflictError(
                "Clone name/template_key conflicts with existing flow",
                details={"template_key": clone_key},
            )

        meta_flow_id = None
        if self.meta:
            meta_flow_id = self.meta.create_flow(
                clone_name,
                categories=[source.category.value],
                endpoint_uri=config.FLOW_ENDPOINT_URI or None,
            )

        clone = FlowTemplate(
            tenant_id=scope.tenant_id,
            business_account_id=scope.business_account_id,
            app_id=scope.app_id,
            meta_flow_id=meta_flow_id,
            template_key=clone_key,
            name=clone_name,
            description=source.description,
            category=source.category,
            status=FlowTemplateStatus.DRAFT,
            created_by=user_id,
            updated_by=user_id,
        )
        version = self._new_version(clone, 1, graph, user_id)

        db.add(clone)
        self._flush_graph(db, version, self._copy_screens(graph, scope.tenant_id))
        clone.current_draft_version_id = version.id

        self._sync_flow_json(db, clone, version)
        db.commit()
        db.refresh(clone)

        log.info(f"📋 Flow '{source.name}' cloned as '{clone.name}' ({clone.external_id})")
        return self._to_response(clone, version)

    def archive_flow(
        self,
        db: Session,
        scope: TenantScope,
        user_id: Optional[str],
        flow_id: str,
    ) -> FlowTemplate:
        """Soft-delete a template; the linked WhatsApp flow is deleted first."""
        template = self._get_template(db, scope, flow_id, lock=True)

        if self.meta and template.meta_flow_id:
            self.meta.delete_flow(template.meta_flow_id)

        template.deleted_at = datetime.utcnow()
        template.status = FlowTemplateStatus.ARCHIVED
        template.updated_by = user_id
        db.commit()

        log.info(f"🗑️  Flow '{template.name}' ({template.external_id}) archived")
        return template

    def deprecate_flow(
        self,
        db: Session,
        scope: TenantScope,
        user_id: Optional[str],
        flow_id: str,
    ) -> FlowTemplateResponse:
        """Withdraw the published version; the draft stays editable."""
        template = self._get_template(db, scope, flow_id, lock=True)

        if not template.current_published_version_id:
            raise FlowStateError(
                "Flow has no published version to deprecate",
                details={"flow_id": template.external_id},
            )

        if self.meta and template.meta_flow_id:
            self.meta.deprecate_flow(template.meta_flow_id)

        published = db.query(FlowVersion).filter(
            FlowVersion.id == template.current_published_version_id,
        ).first()
        if published:
            published.status = FlowVersionStatus.ARCHIVED

        template.current_published_version_id = None
        template.status = FlowTemplateStatus.DRAFT if template.current_draft_version_id else FlowTemplateStatus.ARCHIVED
        template.updated_by = user_id
        db.commit()
        db.refresh(template)

        log.info(f"Flow '{template.name}' ({template.external_id}) deprecated")
        version = self.resolve_version(db, template)
        return self._to_response(template, self.get_version_graph(db, version.id))

    # ────────────────────────────────────────────
    # Helpers
    # ────────────────────────────────────────────

    def get_template(self, db: Session, scope: TenantScope, flow_id: str) -> FlowTemplate:
        return self._get_template(db, scope, flow_id)

    def _scoped(self, db: Session, scope: TenantScope):
        return db.query(FlowTemplate).filter(
            FlowTemplate.tenant_id == scope.tenant_id,
            FlowTemplate.business_account_id == scope.business_account_id,
            FlowTemplate.app_id == scope.app_id,
        )

    def _get_template(self, db: Session, scope: TenantScope, flow_id: str, lock: bool = False) -> FlowTemplate:
        query = self._scoped(db, scope).filter(
            FlowTemplate.external_id == flow_id,
            FlowTemplate.deleted_at.is_(None),
        )
        if lock:
            query = query.with_for_update()

        template = query.first()
        if not template:
            raise FlowNotFoundError("Flow not found", details={"flow_id": flow_id})
        return template

    def _current_draft(self, db: Session, template: FlowTemplate) -> Optional[FlowVersion]:
        if not template.current_draft_version_id:
            return None
        return db.query(FlowVersion).filter(
            FlowVersion.id == template.current_draft_version_id,
            FlowVersion.status == FlowVersionStatus.DRAFT,
        ).first()

    def _next_version_number(self, db: Session, template: FlowTemplate) -> int:
        highest = db.query(func.max(FlowVersion.version_number)).filter(
            FlowVersion.template_id == template.id,
        ).scalar()
        return (highest or 0) + 1

    def _new_version(self, template: FlowTemplate, number: int, source, user_id: Optional[str]) -> FlowVersion:
        """Append a DRAFT version; settings come from an input schema or another version."""
        version = FlowVersion(
            tenant_id=template.tenant_id,
            version_number=number,
            status=FlowVersionStatus.DRAFT,
            webhook_mapping=copy.deepcopy(source.webhook_mapping),
            response_schema=copy.deepcopy(source.response_schema),
            created_by=user_id,
        )
        template.versions.append(version)
        return version

    def _flush_graph(self, db: Session, version: FlowVersion, screens: List[FlowScreen]) -> None:
        """Write a version and its screens; unique key clashes become FlowConflictError."""
        try:
            db.flush()
            for screen in screens:
                for child in list(screen.components) + list(screen.actions):
                    child.version_id = version.id
            version.screens.extend(screens)
            db.flush()
        except IntegrityError as e:
            db.rollback()
            log.warning(f"⚠️ Flow write conflicted: {e.orig}")
            raise FlowConflictError("Flow write conflicts with existing data", details=str(e.orig)) from e

    def _sync_flow_json(self, db: Session, template: FlowTemplate, version: FlowVersion) -> None:
        """Upload the compiled draft to WhatsApp; a rejected upload rolls the write back."""
        if not self.meta or not template.meta_flow_id:
            log.debug(f"Skipping flow JSON sync for {template.external_id} (no Meta link)")
            return
        try:
            self.meta.update_flow_json(template.meta_flow_id, compile_flow_json(template, version))
        except Exception:
            db.rollback()
            raise

    def _screens_from_input(self, data: FlowGraphIn, tenant_id: str) -> List[FlowScreen]:
        screens = []
        for screen_in in data.screens:
            screen = FlowScreen(
                tenant_id=tenant_id,
                screen_key=screen_in.key,
                title=screen_in.title,
                description=screen_in.description,
                order_index=screen_in.order,
                is_entry_point=bool(screen_in.is_entry_point),
                settings=screen_in.settings,
            )
            for component_in in screen_in.components:
                screen.components.append(FlowComponent(
                    tenant_id=tenant_id,
                    component_key=component_in.key,
                    component_type=component_in.type,
                    label=component_in.label,
                    variable_key=component_in.variable_key,
                    required=component_in.required,
                    placeholder=component_in.placeholder,
                    options=[option.model_dump() for option in component_in.options] if component_in.options else None,
                    validation_rules=component_in.validation_rules,
                    default_value=component_in.default_value,
                    config=component_in.config,
                    order_index=component_in.order,
                ))
            for action_in in screen_in.actions:
                screen.actions.append(FlowAction(
                    tenant_id=tenant_id,
                    action_key=action_in.key,
                    action_type=action_in.type,
                    label=action_in.label,
                    trigger_component_key=action_in.trigger_component_key,
                    target_screen_key=action_in.target_screen_key,
                    api_config=action_in.api_config.model_dump() if action_in.api_config else None,
                    payload_mapping=action_in.payload_mapping,
                    condition=action_in.condition,
                    order_index=action_in.order,
                ))
            screens.append(screen)
        return screens

    def _copy_screens(self, version: FlowVersion, tenant_id: str) -> List[FlowScreen]:
        """Deep copy of a loaded graph, detached from any version."""
        screens = []
        for source in version.screens:
            screen = FlowScreen(
                tenant_id=tenant_id,
                screen_key=source.screen_key,
                title=source.title,
                description=source.description,
                order_index=source.order_index,
                is_entry_point=source.is_entry_point,
                settings=copy.deepcopy(source.settings),
            )
            for component in source.components:
                screen.components.append(FlowComponent(
                    tenant_id=tenant_id,
                    component_key=component.component_key,
                    component_type=component.component_type,
                    label=component.label,
                    variable_key=component.variable_key,
                    required=component.required,
                    placeholder=component.placeholder,
                    options=copy.deepcopy(component.options),
                    validation_rules=copy.deepcopy(component.validation_rules),
                    default_value=copy.deepcopy(component.default_value),
                    config=copy.deepcopy(component.config),
                    order_index=component.order_index,
                ))
            for action in source.actions:
                screen.actions.append(FlowAction(
                    tenant_id=tenant_id,
                    action_key=action.action_key,
                    action_type=action.action_type,
                    label=action.label,
                    trigger_component_key=action.trigger_component_key,
                    target_screen_key=action.target_screen_key,
                    api_config=copy.deepcopy(action.api_config),
                    payload_mapping=copy.deepcopy(action.payload_mapping),
                    condition=copy.deepcopy(action.condition),
                    order_index=action.order_index,
                ))
            screens.append(screen)
        return screens

    def _version_numbers(self, template: FlowTemplate) -> Tuple[Optional[int], Optional[int]]:
        numbers = {version.id: version.version_number for version in template.versions}
        return (
            numbers.get(template.current_draft_version_id),
            numbers.get(template.current_published_version_id),
        )

    def _to_list_item(self, template: FlowTemplate) -> FlowListItem:
        draft, published = self._version_numbers(template)
        return FlowListItem(
            external_id=template.external_id,
            template_key=template.template_key,
            name=template.name,
            description=template.description,
            category=template.category,
            status=template.status,
            meta_flow_id=template.meta_flow_id,
            meta_status=template.meta_status,
            current_draft_version=draft,
            current_published_version=published,
            created_at=template.created_at,
            updated_at=template.updated_at,
        )

    def _to_response(self, template: FlowTemplate, version: FlowVersion) -> FlowTemplateResponse:
        return FlowTemplateResponse(
            **self._to_list_item(template).model_dump(),
            tenant_id=template.tenant_id,
            business_account_id=template.business_account_id,
            app_id=template.app_id,
            meta_status_updated_at=template.meta_status_updated_at,
            version=FlowVersionDetail.model_validate(version),
            versions=[FlowVersionSummary.model_validate(item) for item in template.versions],
        )
