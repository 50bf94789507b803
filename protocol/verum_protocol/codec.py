"""
Wire codec for Verum payloads.

Payloads travel as compact JSON encoded to UTF-8 and embedded, hex encoded,
in the script of a transaction output.

Invariants:
    - Encoding is deterministic: same payload, same bytes
    - Decoding never raises; anything that is not a protocol message
      decodes to None
    - A message is ours when it is a JSON object with a string ``verum``
      and a string ``type`` naming a known kind

How to change safely:
    - Changing separators or ``ensure_ascii`` changes payload sizes and
      breaks the size limit the validator enforces
"""

from __future__ import annotations

import binascii
import json
import logging
from typing import Any, Iterable, Mapping, Optional, Union

from .errors import PayloadValidationError
from .payload import ContentPayload
from .validate import PayloadValidator

logger = logging.getLogger(__name__)

PayloadLike = Union[ContentPayload, Mapping[str, Any]]


def encode_payload(payload: PayloadLike) -> bytes:
    """Encode a payload to compact UTF-8 JSON without validating it."""
    wire = payload.to_wire() if isinstance(payload, ContentPayload) else dict(payload)
    return json.dumps(wire, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encode(payload: PayloadLike, validator: Optional[PayloadValidator] = None) -> bytes:
    """Validate then encode a payload.

    Args:
        payload: Payload to encode
        validator: Validator to use (defaults to a wall-clock validator)

    Returns:
        Encoded payload bytes

    Raises:
        PayloadValidationError: If the payload breaks any protocol rule
    """
    issues = (validator or PayloadValidator()).validate(payload)
    if issues:
        raise PayloadValidationError(issues)
    return encode_payload(payload)


def to_script_hex(data: bytes) -> str:
    """Hex form of encoded payload bytes, as carried in an output script."""
    return data.hex()


def decode_bytes(raw: Union[bytes, str, None]) -> Optional[ContentPayload]:
    """Decode payload bytes or a hex script into a payload.

    Args:
        raw: Raw bytes, or a hex string with an optional ``0x`` prefix

    Returns:
        The decoded payload, or None if the data is not a protocol message
    """
    if not raw:
        return None

    if isinstance(raw, str):
        text = raw[2:] if raw.startswith(("0x", "0X")) else raw
        try:
            raw = binascii.unhexlify(text)
        except (binascii.Error, ValueError):
            return None

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None

    if not isinstance(data, dict):
        return None
    if not isinstance(data.get("verum"), str) or not isinstance(data.get("type"), str):
        return None

    return ContentPayload.from_wire(data)


def decode(envelope: Any) -> Optional[ContentPayload]:
    """Decode the first protocol payload found in a transaction's outputs.

    The envelope only needs an ``outputs`` iterable whose items expose a
    ``script`` attribute (hex string or bytes).

    Returns:
        The decoded payload, or None when no output carries one
    """
    outputs: Iterable[Any] = getattr(envelope, "outputs", None) or ()
    for output in outputs:
        payload = decode_bytes(getattr(output, "script", None))
        if payload is not None:
            return payload

    logger.debug(
        "No protocol payload in transaction",
        extra={"tx_id": getattr(envelope, "id", None)},
    )
    return None
