from __future__ import annotations

import base64
import json
from pathlib import Path

from propgrid_offline.core.models import Response
from propgrid_offline.core.utils import format_rfc3339, utc_now
from propgrid_offline.storage.models import CacheEntry, GenerationRecord, SchemaVersion, StorageIndex


def atomic_write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(path)


def read_json(path: Path) -> dict:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got: {type(payload).__name__}")
    return payload


def encode_entry(entry: CacheEntry) -> dict:
    response = entry.response
    return {
        "url": entry.url,
        "stored_at": entry.stored_at,
        "status": response.status,
        "reason": response.reason,
        "headers": dict(response.headers),
        "body": base64.b64encode(response.body).decode("ascii"),
    }


def decode_entry(payload: dict) -> CacheEntry:
    return CacheEntry(
        url=payload["url"],
        stored_at=payload.get("stored_at", ""),
        response=Response(
            status=int(payload["status"]),
            reason=payload.get("reason", ""),
            headers={str(k): str(v) for k, v in payload.get("headers", {}).items()},
            body=base64.b64decode(payload.get("body", "")),
            url=payload["url"],
        ),
    )


def encode_index(index: StorageIndex) -> dict:
    return {
        "schema_version": index.schema_version,
        "generations": [
            {"name": record.name, "directory": record.directory, "created_at": record.created_at}
            for record in index.generations
        ],
    }


def decode_index(payload: dict) -> StorageIndex:
    generations = [
        GenerationRecord(
            name=item["name"],
            directory=item["directory"],
            created_at=item.get("created_at", format_rfc3339(utc_now())),
        )
        for item in payload.get("generations", [])
    ]
    return StorageIndex(
        schema_version=int(payload.get("schema_version", SchemaVersion)),
        generations=generations,
    )
