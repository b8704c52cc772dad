from __future__ import annotations

import base64
import binascii


def strip_data_url(value: str) -> str:
    """Drop a ``data:<type>;base64,`` prefix if the client sent one."""
    if value.startswith("data:"):
        _, _, value = value.partition(",")
    return value


def decode_base64_payload(value: str) -> bytes:
    try:
        return base64.b64decode(strip_data_url(value).strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Invalid base64 payload") from exc
