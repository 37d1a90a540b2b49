"""
Typed view over the JSON notes bag stored on every order

The notes column is the only place provider identifiers live. Writers go
through merge_notes so keys they do not know about survive every update.
"""

import json
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

PROCESSOR_TAG = "kustom-playground"


def parse_notes(raw: Optional[str]) -> Dict[str, Any]:
    """Decode the notes column; anything but a JSON object becomes {}"""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Order notes are not valid JSON, treating as empty")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def merge_notes(raw: Optional[str], patch: Dict[str, Any]) -> str:
    """Apply patch on top of the stored notes and return the encoded result"""
    merged = parse_notes(raw)
    merged.update(patch)
    return json.dumps(merged, default=str)


class ProviderMetadata(BaseModel):
    """Known provider fields of the notes bag; unknown keys are kept as extras"""
    model_config = ConfigDict(extra="allow")

    created_at: Optional[str] = None
    processor: Optional[str] = None
    checkout: Optional[Dict[str, Any]] = None
    created_order_id: Optional[Any] = None
    kustom_order_id: Optional[str] = None
    kustom_order_token: Optional[str] = None
    checkout_snippet_created_at: Optional[str] = None
    kustom_last_poll_at: Optional[str] = None
    kustom_status: Optional[str] = None
    kustom_order_payload: Optional[Any] = None
    checkout_failed_at: Optional[str] = None
    checkout_error: Optional[str] = None

    @classmethod
    def from_notes(cls, raw: Optional[str]) -> "ProviderMetadata":
        data = parse_notes(raw)
        # older rows nest the identifiers or use camelCase keys
        legacy = data.get("kustom") if isinstance(data.get("kustom"), dict) else {}
        if not isinstance(data.get("kustom_order_id"), str) or not data.get("kustom_order_id"):
            candidate = legacy.get("order_id") or legacy.get("orderId") or data.get("kustomOrderId")
            data["kustom_order_id"] = candidate if isinstance(candidate, str) and candidate else None
        if not isinstance(data.get("kustom_order_token"), str) or not data.get("kustom_order_token"):
            candidate = legacy.get("order_token") or legacy.get("orderToken") or data.get("kustomOrderToken")
            data["kustom_order_token"] = candidate if isinstance(candidate, str) and candidate else None
        for key in _STRING_FIELDS:
            if data.get(key) is not None and not isinstance(data.get(key), str):
                data[key] = str(data[key])
        if data.get("checkout") is not None and not isinstance(data.get("checkout"), dict):
            data["checkout"] = None
        return cls.model_validate(data)


_STRING_FIELDS = (
    "created_at",
    "processor",
    "checkout_snippet_created_at",
    "kustom_last_poll_at",
    "kustom_status",
    "checkout_failed_at",
    "checkout_error",
)
