# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Inbound Email Client

Thin async client for the Inbound transactional email API.
"""

from typing import Any, Dict

import httpx


class InboundEmailClient:
    """
    Sends email through the Inbound HTTP API.

    ``send`` returns ``{"data": {...}}`` on success and ``{"error": "..."}``
    when the provider rejects the message. Transport failures raise
    ``httpx.HTTPError``. The caller owns ``client`` and closes it.
    """

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        base_url: str = "https://inbound.new/api/v2",
        timeout: float = 10.0
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client

    async def send(self, from_: str, to: str, subject: str, text: str = "") -> Dict[str, Any]:
        response = await self.client.post(
            f"{self.base_url}/emails",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"from": from_, "to": to, "subject": subject, "text": text},
            timeout=self.timeout,
        )

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.status_code >= 400:
            error = payload.get("error") or payload.get("message") or response.text
            return {"error": error or f"status {response.status_code}"}

        if payload.get("error"):
            return {"error": payload["error"]}

        return {"data": payload.get("data", payload)}
