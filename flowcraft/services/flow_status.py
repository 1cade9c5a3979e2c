"""
WhatsApp flow status utilities and reconciliation.

normalize_status / extract_status / map_status_to_local are pure lookups over
whatever payload Meta sends. FlowStatusService applies the result to stored
templates with last-write-wins ordering.
"""
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from flowcraft.core.exceptions import FlowError
from flowcraft.models.flow import FlowTemplate, MetaFlowStatus

log = logging.getLogger("flowcraft.flow_status")

STATUS_FIELDS = (
    "status",
    "flow_status",
    "flowStatus",
    "health_status",
    "healthStatus",
)

FLOW_ID_FIELDS = ("flow_id", "flowId", "id")

EVENT_TIME_FIELDS = ("timestamp", "time")


def _empty_counts() -> Dict[str, int]:
    return {"checked": 0, "updated": 0, "unchanged": 0, "failed": 0}


def normalize_status(value: Any) -> Optional[MetaFlowStatus]:
    """Trim and upper-case; return the matching MetaFlowStatus or None."""
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return None
    candidate = str(value).strip().upper()
    if not candidate:
        return None
    try:
        return MetaFlowStatus(candidate)
    except ValueError:
        return None


def _find_status(payload: Mapping) -> Optional[MetaFlowStatus]:
    for field in STATUS_FIELDS:
        status = normalize_status(payload.get(field))
        if status is not None:
            return status
    return None


def extract_status(payload: Any) -> Optional[MetaFlowStatus]:
    """
    Find the flow status in an inbound payload.

    Checks status, flow_status/flowStatus, health_status/healthStatus at the top
    level, then once more inside a nested "data" object. Never goes deeper.
    """
    if not isinstance(payload, Mapping):
        return None

    status = _find_status(payload)
    if status is not None:
        return status

    nested = payload.get("data")
    if isinstance(nested, Mapping):
        return _find_status(nested)

    return None


def map_status_to_local(status: Any) -> Optional[MetaFlowStatus]:
    """
    Map a Meta status to the value stored locally.

    Identity today; kept separate so the two enums can diverge here only.
    """
    return normalize_status(status.value if isinstance(status, MetaFlowStatus) else status)


def extract_flow_id(payload: Any) -> Optional[str]:
    """Find the Meta flow id in a payload (top level, then one level under data)."""
    if not isinstance(payload, Mapping):
        return None
    for source in (payload, payload.get("data")):
        if not isinstance(source, Mapping):
            continue
        for field in FLOW_ID_FIELDS:
            value = source.get(field)
            if value is not None and str(value).strip():
                return str(value).strip()
    return None


def _parse_event_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def extract_event_time(payload: Any) -> Optional[datetime]:
    """
    Find when Meta emitted an event (top level, then one level under data).

    Accepts epoch seconds or ISO 8601 strings; the result is naive UTC to match
    the DateTime columns. None when the payload carries no usable time.
    """
    if not isinstance(payload, Mapping):
        return None
    for source in (payload, payload.get("data")):
        if not isinstance(source, Mapping):
            continue
        for field in EVENT_TIME_FIELDS:
            event_time = _parse_event_time(source.get(field))
            if event_time is not None:
                return event_time
    return None


class FlowStatusService:
    """Reconciles Meta-reported flow status into FlowTemplate.meta_status"""

    def apply_status(
        self,
        db: Session,
        template: FlowTemplate,
        payload: Any,
        observed_at: Optional[datetime] = None,
    ) -> bool:
        """
        Store the status found in payload on the template.

        Returns True when the stored status changed. Events older than the last
        applied one are ignored so a late delivery cannot regress the state.
        """
        status = map_status_to_local(extract_status(payload))
        if status is None:
            log.debug(f"No recognizable status for flow {template.meta_flow_id}: {payload}")
            return False

        observed_at = observed_at or datetime.utcnow()
        last_seen = template.meta_status_updated_at
        if last_seen is not None and observed_at < last_seen:
            log.info(
                f"Ignoring stale status {status.value} for flow {template.meta_flow_id} "
                f"({observed_at.isoformat()} < {last_seen.isoformat()})"
            )
            return False

        changed = template.meta_status != status
        template.meta_status = status
        template.meta_status_updated_at = observed_at
        db.flush()

        if changed:
            log.info(f"🔄 Flow {template.meta_flow_id} status -> {status.value}")
        return changed

    def handle_status_event(
        self,
        db: Session,
        payload: Any,
        observed_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Apply an inbound status event; the flow is identified by its Meta flow id.

        Events are ordered by the time they carry, so a late delivery of an older
        event does not overwrite a newer status. observed_at is used only when
        the payload has no time of its own.
        """
        meta_flow_id = extract_flow_id(payload)
        if not meta_flow_id:
            return {"matched": False, "updated": False, "meta_flow_id": None, "status": None}

        template = db.query(FlowTemplate).filter(
            FlowTemplate.meta_flow_id == meta_flow_id,
            FlowTemplate.deleted_at.is_(None),
        ).first()

        if not template:
            log.warning(f"⚠️ Status event for unknown flow {meta_flow_id}")
            return {"matched": False, "updated": False, "meta_flow_id": meta_flow_id, "status": None}

        event_time = extract_event_time(payload) or observed_at
        updated = self.apply_status(db, template, payload, event_time)
        db.commit()

        return {
            "matched": True,
            "updated": updated,
            "meta_flow_id": meta_flow_id,
            "status": template.meta_status.value if template.meta_status else None,
        }

    def sync_statuses(
        self,
        db: Session,
        meta_client,
        scope=None,
        limit: int = 100,
        offset: int = 0,
    ) -> Dict[str, int]:
        """
        Poll Meta for every linked template and apply the reported status.

        Args:
            scope: optional TenantScope restricting the templates checked
        """
        query = db.query(FlowTemplate).filter(
            FlowTemplate.deleted_at.is_(None),
            FlowTemplate.meta_flow_id.isnot(None),
            FlowTemplate.meta_flow_id != "",
        )
        if scope is not None:
            query = query.filter(
                FlowTemplate.tenant_id == scope.tenant_id,
                FlowTemplate.business_account_id == scope.business_account_id,
                FlowTemplate.app_id == scope.app_id,
            )

        templates = query.order_by(FlowTemplate.id.asc()).offset(max(offset, 0)).limit(max(limit, 1)).all()

        counts = _empty_counts()
        for template in templates:
            self._poll(db, meta_client, template, counts)

        db.commit()
        log.info(f"📊 Flow status sync: {counts}")
        return counts

    def sync_template_status(self, db: Session, meta_client, template: FlowTemplate) -> Dict[str, int]:
        """Poll Meta for one template; unlinked templates are not checked."""
        counts = _empty_counts()
        if template.meta_flow_id:
            self._poll(db, meta_client, template, counts)
            db.commit()
        return counts

    def _poll(self, db: Session, meta_client, template: FlowTemplate, counts: Dict[str, int]) -> None:
        counts["checked"] += 1
        try:
            remote = meta_client.get_flow(template.meta_flow_id)
        except FlowError as e:
            log.error(f"❌ Status sync failed for flow {template.meta_flow_id}: {e}")
            counts["failed"] += 1
            return

        if self.apply_status(db, template, remote):
            counts["updated"] += 1
        else:
            counts["unchanged"] += 1
