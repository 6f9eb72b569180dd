"""
Frame decoding for mini ticker payloads.

Combined stream format:
{
    "stream": "btcusdt@miniTicker",
    "data": { ... miniTicker ... }
}

Aggregate stream format (!miniTicker@arr):
{
    "stream": "!miniTicker@arr",
    "data": [ { ... miniTicker ... }, ... ]
}

Direct connections deliver the payload without the envelope.
"""

from __future__ import annotations

import logging
from typing import Any, Union

import orjson
from pydantic import ValidationError

from marketwatch.live.errors import MessageParseError
from marketwatch.live.types import TickerSnapshot

logger = logging.getLogger(__name__)


def decode_frame(raw: Union[str, bytes]) -> list[TickerSnapshot]:
    """
    Decode a text frame into ticker snapshots.

    Entries without a symbol field are ignored. Array entries that fail
    validation are skipped individually.

    Raises:
        MessageParseError: If the frame is not JSON, or a single ticker object
            has missing or malformed fields.
    """
    try:
        msg = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise MessageParseError(
            f"Invalid JSON frame: {e}",
            raw_data=raw if isinstance(raw, str) else raw.decode("utf-8", "replace"),
            expected_type="json",
        ) from e

    payload: Any = msg.get("data", msg) if isinstance(msg, dict) else msg

    if isinstance(payload, list):
        snapshots: list[TickerSnapshot] = []
        for entry in payload:
            if not _has_symbol(entry):
                continue
            try:
                snapshots.append(TickerSnapshot.model_validate(entry))
            except ValidationError as e:
                logger.debug(f"Skipping malformed ticker entry for {entry.get('s')}: {e}")
        return snapshots

    if _has_symbol(payload):
        try:
            return [TickerSnapshot.model_validate(payload)]
        except ValidationError as e:
            raise MessageParseError(
                f"Malformed ticker for {payload.get('s')}: {e.error_count()} invalid field(s)",
                expected_type="miniTicker",
            ) from e

    return []


def _has_symbol(entry: Any) -> bool:
    return isinstance(entry, dict) and bool(entry.get("s"))
