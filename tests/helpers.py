"""Shared payload builders for flow tests."""
import copy

SCOPE_HEADERS = {
    "X-Tenant-Id": "tenant_a",
    "X-Business-Account-Id": "waba_1",
    "X-App-Id": "app_1",
    "X-User-Id": "user_1",
}

LEAD_FLOW = {
    "name": "Lead Capture",
    "category": "lead_generation",
    "webhook_mapping": {
        "lead": {
            "name": "{{answers.full_name}}",
            "phone": "{{user_phone}}",
            "interest": "{{answers.interest}}",
        },
        "source": "flow:{{flow.key}} v{{flow.version}}",
    },
    "screens": [
        {
            "key": "details",
            "title": "Your details",
            "description": "Tell us about yourself",
            "components": [
                {"key": "full_name", "type": "input", "label": "Full name", "variable_key": "full_name", "required": True},
                {"key": "email", "type": "email", "label": "Email", "variable_key": "email"},
                {
                    "key": "interest",
                    "type": "radio",
                    "label": "Interest",
                    "variable_key": "interest",
                    "required": True,
                    "options": ["Sales", {"label": "Support", "value": "support"}],
                },
            ],
            "actions": [
                {"key": "next", "type": "next_screen", "label": "Next", "target_screen_key": "confirm"},
            ],
        },
        {
            "key": "confirm",
            "title": "Confirm",
            "components": [{"key": "summary", "type": "summary", "label": "Check your answers"}],
            "actions": [{"key": "send", "type": "submit", "label": "Send"}],
        },
    ],
}


def lead_flow_payload(**overrides):
    payload = copy.deepcopy(LEAD_FLOW)
    payload.update(overrides)
    return payload
