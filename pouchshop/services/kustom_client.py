"""
HTTP client for the Kustom checkout API
Every call is logged before dispatch and after the response
"""

import json
import time
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from fastapi import Depends

from pouchshop.config import Settings, get_settings
from pouchshop.utils.error_handler import ConfigurationError, KustomAPIError

logger = logging.getLogger(__name__)

ORDERS_PATH = "/checkout/v3/orders"


class KustomClient:
    """Thin Basic-Auth client over the Kustom checkout REST API"""

    def __init__(
        self,
        merchant_id: Optional[str],
        shared_secret: Optional[str],
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.merchant_id = merchant_id
        self.shared_secret = shared_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "KustomClient":
        return cls(
            merchant_id=settings.kustom_merchant_id,
            shared_secret=settings.kustom_shared_secret,
            base_url=settings.kustom_api_base_url,
            timeout=settings.kustom_timeout_seconds,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.merchant_id and self.shared_secret)

    def ensure_configured(self, request_id: str = "-") -> None:
        if not self.configured:
            logger.error(f"[kustom-checkout][{request_id}] missing merchant credentials")
            raise ConfigurationError(
                "KUSTOM_PLAYGROUND_MERCHANT_ID or KUSTOM_PLAYGROUND_SHARED_SECRET is missing"
            )

    async def create_order(self, payload: Dict[str, Any], request_id: str = "-") -> Any:
        """POST /checkout/v3/orders"""
        return await self._request("POST", ORDERS_PATH, request_id, json_body=payload)

    async def get_order(self, kustom_order_id: str, token: Optional[str] = None, request_id: str = "-") -> Any:
        """GET /checkout/v3/orders/{id}, optionally passing the session token"""
        path = f"{ORDERS_PATH}/{quote(kustom_order_id, safe='')}"
        params = {"token": token} if token else None
        return await self._request("GET", path, request_id, params=params)

    async def _request(
        self,
        method: str,
        path: str,
        request_id: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        self.ensure_configured(request_id)

        logger.debug(
            f"[kustom-checkout][{request_id}] outbound request",
            extra={"request_id": request_id, "path": path, "method": method, "has_body": json_body is not None},
        )

        started_at = time.monotonic()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=httpx.BasicAuth(self.merchant_id, self.shared_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=json_body, params=params)
        except httpx.HTTPError as e:
            logger.error(
                f"[kustom-checkout][{request_id}] outbound request error: {e}",
                extra={"request_id": request_id, "path": path, "method": method},
            )
            raise KustomAPIError(f"Kustom API request failed: {str(e) or type(e).__name__}") from e

        raw = response.text
        body = _parse_json(raw)

        if not response.is_success:
            detail = json.dumps(body) if isinstance(body, (dict, list)) else (raw or "No response body")
            logger.error(
                f"[kustom-checkout][{request_id}] outbound request failed",
                extra={"request_id": request_id, "status": response.status_code, "detail": detail},
            )
            raise KustomAPIError(
                f"Kustom API error ({response.status_code}): {detail}",
                upstream_status=response.status_code,
                detail=body if body is not None else raw,
            )

        logger.debug(
            f"[kustom-checkout][{request_id}] outbound response",
            extra={
                "request_id": request_id,
                "path": path,
                "status": response.status_code,
                "took_ms": int((time.monotonic() - started_at) * 1000),
                "body_type": "null" if body is None else type(body).__name__,
            },
        )
        return body


def _parse_json(raw: str) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def get_kustom_client(settings: Settings = Depends(get_settings)) -> KustomClient:
    """FastAPI dependency building a client from the current settings"""
    return KustomClient.from_settings(settings)
