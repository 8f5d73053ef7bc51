from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Optional

from src.app.domain.errors import ValidationError


def encode_page_token(last_key: Optional[dict[str, Any]]) -> Optional[str]:
    if not last_key:
        return None
    raw = json.dumps(last_key, sort_keys=True, separators=(",", ":"), default=str)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_page_token(token: Optional[str]) -> Optional[dict[str, Any]]:
    if not token:
        return None
    try:
        decoded = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as error:
        raise ValidationError("page_token", "Invalid page token") from error
    if not isinstance(decoded, dict):
        raise ValidationError("page_token", "Invalid page token")
    return decoded
