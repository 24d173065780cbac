# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Action Dispatchers

One handler per action type. Every handler takes the node's resolved
configuration and returns a StepResult.

Failure contract:
    - configuration errors and client (4xx) errors raise FatalStepError
    - transient failures (5xx, network) return StepResult(success=False)
    - unknown action types return StepResult(success=False)
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

import httpx
import pydantic

from hookflow.core.config import get_inbound_api_key, get_inbound_from_email
from .email_client import InboundEmailClient
from .exceptions import FatalStepError
from .models import HttpRequestConfig, SendEmailConfig, StepResult

ActionHandler = Callable[[Dict[str, Any]], Awaitable[StepResult]]

ConfigModel = TypeVar("ConfigModel", bound=pydantic.BaseModel)

HTTP_REQUEST = "HTTP Request"
SEND_EMAIL = "Send Email"


def load_config(model: Type[ConfigModel], config: Dict[str, Any], failure: str) -> ConfigModel:
    """Validate a resolved node config; a malformed value is a fatal configuration error"""
    try:
        return model.model_validate(config)
    except pydantic.ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "config"
        raise FatalStepError(f"{failure}: invalid {field}: {error['msg']}")


# ============================================================================
# HTTP Request
# ============================================================================

def parse_headers(http_headers: Optional[str]) -> Dict[str, str]:
    """Headers come from a JSON string; malformed JSON yields no headers"""
    if not http_headers:
        return {}
    try:
        headers = json.loads(http_headers)
    except ValueError:
        return {}
    if not isinstance(headers, dict):
        return {}
    return {str(key): str(value) for key, value in headers.items()}


def parse_body(http_method: str, http_body: Optional[str]) -> Optional[str]:
    """
    Build the outgoing request body.

    GET never carries a body. JSON that has members (a non-empty object,
    array or string) is re-serialized; empty JSON, numbers and booleans are
    dropped. A JSON null or unparsable non-blank text is sent raw.
    """
    if http_method == "GET" or not http_body:
        return None
    try:
        parsed = json.loads(http_body)
    except ValueError:
        parsed = None
    if parsed is None:
        trimmed = http_body.strip()
        return http_body if trimmed and trimmed != "{}" else None
    if isinstance(parsed, (dict, list, str)):
        return json.dumps(parsed) if parsed else None
    return None


def parse_response(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


class HttpRequestAction:
    """Performs an outbound HTTP request"""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def __call__(self, config: Dict[str, Any]) -> StepResult:
        request = load_config(HttpRequestConfig, config, "HTTP request failed")

        # Configuration errors should not be retried
        if not request.endpoint:
            raise FatalStepError("HTTP request failed: URL is required")

        method = (request.http_method or "POST").upper()

        try:
            response = await self.client.request(
                method,
                request.endpoint,
                headers=parse_headers(request.http_headers),
                content=parse_body(method, request.http_body),
            )
        except httpx.HTTPError as e:
            return StepResult(success=False, error=f"HTTP request failed: {str(e) or type(e).__name__}")

        if response.status_code >= 400:
            message = f"HTTP request failed with status {response.status_code}: {response.text}"
            # 4xx errors are client errors and shouldn't be retried
            if response.status_code < 500:
                raise FatalStepError(message, status_code=response.status_code)
            return StepResult(success=False, error=message, status_code=response.status_code)

        return StepResult(success=True, data=parse_response(response), status_code=response.status_code)


# ============================================================================
# Send Email
# ============================================================================

EmailClientFactory = Callable[[str], Any]


class SendEmailAction:
    """Sends a plain-text email through the configured email provider"""

    def __init__(self, client_factory: EmailClientFactory):
        self.client_factory = client_factory

    async def __call__(self, config: Dict[str, Any]) -> StepResult:
        email = load_config(SendEmailConfig, config, "Send email failed")

        if not email.email_to:
            raise FatalStepError("Send email failed: recipient email (to) is required")
        if not email.email_subject:
            raise FatalStepError("Send email failed: subject is required")

        api_key = get_inbound_api_key()
        if not api_key:
            raise FatalStepError(
                "Send email failed: INBOUND_API_KEY environment variable is not configured"
            )
        from_email = get_inbound_from_email()
        if not from_email:
            raise FatalStepError(
                "Send email failed: INBOUND_FROM_EMAIL environment variable is not configured"
            )

        client = self.client_factory(api_key)
        try:
            response = await client.send(
                from_=from_email,
                to=email.email_to,
                subject=email.email_subject,
                text=email.email_body or "",
            )
        except Exception as e:
            return StepResult(success=False, error=f"Send email failed: {str(e) or type(e).__name__}")

        if response.get("error"):
            raise FatalStepError(f"Send email failed: {response['error']}")

        data = response.get("data") or {}
        return StepResult(
            success=True,
            data={
                "id": data.get("id"),
                "messageId": data.get("messageId"),
                "status": data.get("status") or "sent",
            },
        )


# ============================================================================
# Registry
# ============================================================================

class ActionRegistry:
    """
    Maps action types to their handlers.

    New action types are added with ``register``.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = 30.0,
        email_api_base_url: str = "https://inbound.new/api/v2",
        email_timeout: float = 10.0,
        email_client_factory: Optional[EmailClientFactory] = None
    ):
        self.http_client = http_client or httpx.AsyncClient(timeout=http_timeout, follow_redirects=True)
        self._owns_client = http_client is None
        self._handlers: Dict[str, ActionHandler] = {}

        if email_client_factory is None:
            def email_client_factory(api_key: str) -> InboundEmailClient:
                return InboundEmailClient(
                    api_key, self.http_client, base_url=email_api_base_url, timeout=email_timeout
                )

        self.register(HTTP_REQUEST, HttpRequestAction(self.http_client))
        self.register(SEND_EMAIL, SendEmailAction(email_client_factory))

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Register a handler for an action type"""
        self._handlers[action_type] = handler

    def get(self, action_type: str) -> Optional[ActionHandler]:
        return self._handlers.get(action_type)

    @property
    def action_types(self):
        return list(self._handlers)

    async def execute(self, action_type: str, config: Dict[str, Any]) -> StepResult:
        """
        Run the handler registered for ``action_type``.

        Raises FatalStepError for configuration and client errors.
        """
        handler = self.get(action_type)
        if handler is None:
            return StepResult(success=False, error=f"Unknown action type: {action_type}")
        return await handler(config)

    async def close(self) -> None:
        """Close HTTP client"""
        if self._owns_client:
            await self.http_client.aclose()
