from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema

from .errors import ErrorCode, ProtocolError, StatusCode
from .events import OutboundEvent, normalize_event

SCHEMA_DIR = Path(__file__).parent / "schemas"

# Mapping event -> schema filename (relative to SCHEMA_DIR)
SCHEMA_REGISTRY: Dict[str, str] = {
    OutboundEvent.CONVERSATION_JOIN.value: "conversation.join.json",
    OutboundEvent.CONVERSATION_LEAVE.value: "conversation.leave.json",
    OutboundEvent.MESSAGE_SEND.value: "message.send.json",
    OutboundEvent.MESSAGE_READ.value: "message.read.json",
    OutboundEvent.USER_TYPING.value: "user.typing.json",
}


def _schema_path(event: str) -> Optional[Path]:
    filename = SCHEMA_REGISTRY.get(event)
    if not filename:
        # "message:send" and "message.send" name the same schema
        filename = SCHEMA_REGISTRY.get(event.replace(".", ":"))
        if not filename:
            return None
    path = SCHEMA_DIR / filename
    return path if path.exists() else None


@lru_cache(maxsize=16)
def load_schema(event: Union[str, OutboundEvent]) -> Optional[dict]:
    """Load JSON schema for an outbound event if present."""
    path = _schema_path(normalize_event(event))
    if not path:
        return None
    with path.open("r", encoding="utf-8") as fp:
        return json.load(fp)


def validate_payload(event: Union[str, OutboundEvent], payload: Dict[str, Any], schema: Optional[dict] = None) -> None:
    """Validate an outbound payload against its json-schema."""
    if schema is None:
        schema = load_schema(event)
    if not schema:
        return
    try:
        jsonschema.validate(instance=payload, schema=schema)
    except jsonschema.ValidationError as exc:
        raise ProtocolError(
            StatusCode.BAD_REQUEST,
            ErrorCode.PARAM_MISSING,
            f"Schema validation failed for {normalize_event(event)}: {exc.message}",
        ) from exc


__all__ = ["SCHEMA_REGISTRY", "load_schema", "validate_payload"]
