"""
Meta Graph API client for WhatsApp Flows.

Covers the flow lifecycle calls the store needs: create, upload flow JSON,
publish, deprecate, delete and read status.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from flowcraft.core import config
from flowcraft.core.exceptions import FlowErrorCode, MetaSyncError
from flowcraft.core.logging_config import get_flow_api_logger, log_api_request, log_api_response
from flowcraft.services.flow_compiler import dump_flow_json

log = logging.getLogger("flowcraft.meta_flow_client")
api_log = get_flow_api_logger()

GRAPH_BASE_URL = "https://graph.facebook.com"
FLOW_FIELDS = "id,name,status,categories,validation_errors,health_status"


class MetaFlowClient:
    """Thin wrapper over the Graph API flow endpoints"""

    def __init__(
        self,
        token: str,
        business_account_id: str,
        api_version: str = "v24.0",
        timeout: float = 30.0,
        http: Optional[httpx.Client] = None,
    ):
        """
        Args:
            token: System user access token with whatsapp_business_management
            business_account_id: WhatsApp Business Account that owns the flows
            http: optional preconfigured httpx client (tests pass a MockTransport)
        """
        self.token = token
        self.business_account_id = business_account_id
        self.base_url = f"{GRAPH_BASE_URL}/{api_version}"
        self.http = http or httpx.Client(timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        headers = {"Authorization": f"Bearer {self.token}"}
        log_api_request(api_log, method, url, data=kwargs.get("data") or kwargs.get("params"), headers=headers)

        try:
            response = self.http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            log_api_response(api_log, 0, error=e)
            raise MetaSyncError(f"Meta API request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}

        if response.status_code >= 400:
            log_api_response(api_log, response.status_code, body, error=Exception(response.text))
            raise MetaSyncError(
                f"Meta API error: {response.status_code}",
                details=body.get("error", body) if isinstance(body, dict) else body,
            )

        log_api_response(api_log, response.status_code, body)
        return body if isinstance(body, dict) else {"data": body}

    # ────────────────────────────────────────────
    # Flow lifecycle
    # ────────────────────────────────────────────

    def create_flow(self, name: str, categories: Optional[List[str]] = None, endpoint_uri: Optional[str] = None) -> str:
        """Create an empty flow on WhatsApp and return its id."""
        data = {"name": name, "categories": json.dumps(categories or ["OTHER"])}
        if endpoint_uri:
            data["endpoint_uri"] = endpoint_uri

        body = self._request("POST", f"{self.business_account_id}/flows", data=data)
        flow_id = body.get("id") or body.get("flow_id") or (body.get("data") or {}).get("id")
        if not flow_id:
            raise MetaSyncError(
                "Meta flow creation did not return a flow id",
                code=FlowErrorCode.FLOW_META_SYNC_FAILED,
                details=body,
            )

        log.info(f"✅ Flow '{name}' created on WhatsApp with ID: {flow_id}")
        return str(flow_id).strip()

    def update_flow_json(self, flow_id: str, flow_json: Dict[str, Any]) -> Dict[str, Any]:
        """Upload compiled flow JSON; raises when Meta reports validation errors."""
        body = self._request(
            "POST",
            f"{flow_id}/assets",
            data={"name": "flow.json", "asset_type": "FLOW_JSON"},
            files={"file": ("flow.json", dump_flow_json(flow_json).encode("utf-8"), "application/json")},
        )

        validation_errors = body.get("validation_errors") or body.get("errors")
        if isinstance(validation_errors, list) and validation_errors:
            raise MetaSyncError(
                "Meta flow json validation failed",
                details={"meta_flow_id": flow_id, "validation_errors": validation_errors},
            )

        log.info(f"✅ Flow JSON uploaded for {flow_id}")
        return body

    def publish_flow(self, flow_id: str) -> Dict[str, Any]:
        body = self._request("POST", f"{flow_id}/publish")
        log.info(f"✅ Flow {flow_id} published on WhatsApp")
        return body

    def deprecate_flow(self, flow_id: str) -> Dict[str, Any]:
        body = self._request("POST", f"{flow_id}/deprecate")
        log.info(f"Flow {flow_id} deprecated on WhatsApp")
        return body

    def delete_flow(self, flow_id: str) -> Dict[str, Any]:
        body = self._request("DELETE", flow_id)
        log.info(f"🗑️ Flow {flow_id} deleted on WhatsApp")
        return body

    def get_flow(self, flow_id: str) -> Dict[str, Any]:
        """Fetch flow details, including status and health_status."""
        return self._request("GET", flow_id, params={"fields": FLOW_FIELDS})


def get_meta_flow_client() -> Optional[MetaFlowClient]:
    """Build a client from configuration; None when WhatsApp is not configured."""
    if not (config.TOKEN and config.BUSINESS_ACCOUNT_ID):
        log.warning("⚠️  WhatsApp flows API not configured - running in local-only mode")
        return None
    return MetaFlowClient(
        token=config.TOKEN,
        business_account_id=config.BUSINESS_ACCOUNT_ID,
        api_version=config.GRAPH_API_VERSION,
        timeout=config.GRAPH_API_TIMEOUT,
    )
