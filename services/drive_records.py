"""Per-record JSON files in Google Drive ``appDataFolder``."""
from __future__ import annotations

import io
import json
import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from core.errors import AuthExpired
from core.priorities import normalize_priority
from core.settings import REMOTE_SYNC
from datetime_utils import parse_rfc3339, to_rfc3339_utc, utc_now
from models import TaskItem, TodoStatus


logger = logging.getLogger("todolist.drive")


_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
_MAX_RETRIES = 3
_INITIAL_BACKOFF = 0.5
_MAX_BACKOFF = 4.0
_PAGE_SIZE = 100


def item_to_record(item: TaskItem) -> Dict[str, Any]:
    return {
        "id": str(item.id),
        "ownerId": item.owner_id,
        "title": item.title,
        "priority": int(item.priority),
        "isPinned": bool(item.pinned),
        "dueDate": to_rfc3339_utc(item.due_at),
        "note": item.note,
        "status": TodoStatus(item.status).value,
        "createdAt": to_rfc3339_utc(item.created_at),
        "updatedAt": to_rfc3339_utc(item.updated_at),
        "assetId": item.asset_id,
    }


def record_to_item(data: Dict[str, Any]) -> TaskItem:
    """Decode a remote record; raises ``ValueError`` when the id is unusable."""

    if not isinstance(data, dict):
        raise ValueError("record body is not an object")
    item_id = uuid.UUID(str(data.get("id") or ""))
    created = parse_rfc3339(data.get("createdAt")) or utc_now()
    updated = parse_rfc3339(data.get("updatedAt")) or created
    return TaskItem(
        id=item_id,
        owner_id=str(data.get("ownerId") or ""),
        title=str(data.get("title") or ""),
        note=str(data.get("note") or ""),
        priority=normalize_priority(data.get("priority")),
        pinned=bool(data.get("isPinned", False)),
        due_at=parse_rfc3339(data.get("dueDate")),
        status=TodoStatus.from_wire(data.get("status")),
        created_at=created,
        updated_at=max(updated, created),
        asset_id=str(data.get("assetId") or ""),
    )


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveRecordService:
    """One JSON file per record, tagged with ``appProperties`` for queries.

    Raises the API's own exceptions; callers classify them.
    """

    def __init__(
        self,
        auth: Any,
        *,
        record_type: str = REMOTE_SYNC.record_type,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.auth = auth
        self.record_type = record_type
        self._sleep = sleep
        # httplib2 connections are not thread-safe; one client per worker thread.
        self._local = threading.local()
        self._lock = threading.Lock()
        self._file_ids: Dict[uuid.UUID, str] = {}
        self._generation = 0

    def file_name(self, record_id: uuid.UUID) -> str:
        return f"{self.record_type}-{record_id}.json"

    def reset(self) -> None:
        """Forget cached clients and file ids, e.g. after the account changed."""
        with self._lock:
            self._file_ids.clear()
            self._generation += 1

    # ----- operations -----
    def find(self, record_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        with self._lock:
            cached = self._file_ids.get(record_id)
        if cached:
            return {"id": cached, "name": self.file_name(record_id)}
        query = (
            f"name = '{_quote(self.file_name(record_id))}' and trashed = false"
        )
        response = self._call_with_backoff(
            self._service().files().list,
            spaces="appDataFolder",
            q=query,
            fields="files(id, name, appProperties)",
            pageSize=1,
        )
        files = response.get("files") or []
        if not files:
            return None
        meta = files[0]
        self._remember(record_id, meta.get("id"))
        return meta

    def put(self, record: Dict[str, Any], *, file_id: Optional[str] = None) -> str:
        record_id = uuid.UUID(str(record["id"]))
        properties = {
            "recordType": self.record_type,
            "recordName": str(record_id),
            "ownerId": str(record.get("ownerId") or ""),
        }
        media = MediaIoBaseUpload(
            io.BytesIO(self._encode_json(record)),
            mimetype="application/json",
            resumable=False,
        )
        files = self._service().files()
        response: Dict[str, Any] = {}
        if file_id:
            try:
                response = self._call_with_backoff(
                    files.update,
                    fileId=file_id,
                    body={"appProperties": properties},
                    media_body=media,
                    fields="id",
                )
            except HttpError as exc:
                if getattr(getattr(exc, "resp", None), "status", None) != 404:
                    raise
                logger.info("Record file %s vanished; creating it again", file_id)
                with self._lock:
                    self._file_ids.pop(record_id, None)
                file_id = None
        if not file_id:
            body = {
                "name": self.file_name(record_id),
                "parents": ["appDataFolder"],
                "mimeType": "application/json",
                "appProperties": properties,
            }
            response = self._call_with_backoff(
                files.create, body=body, media_body=media, fields="id"
            )
        new_id = response.get("id") or file_id
        self._remember(record_id, new_id)
        return new_id

    def delete(self, record_id: uuid.UUID) -> bool:
        """Remove the record's file; ``False`` when there was nothing to remove."""
        meta = self.find(record_id)
        if meta is None:
            return False
        try:
            self._call_with_backoff(self._service().files().delete, fileId=meta["id"])
        except HttpError as exc:
            if getattr(getattr(exc, "resp", None), "status", None) != 404:
                raise
        with self._lock:
            self._file_ids.pop(record_id, None)
        return True

    def query(self, owner_id: str) -> List[Dict[str, Any]]:
        """Return the bodies of every record owned by ``owner_id``, newest first."""

        q = (
            f"appProperties has {{ key='recordType' and value='{_quote(self.record_type)}' }}"
            f" and appProperties has {{ key='ownerId' and value='{_quote(owner_id)}' }}"
            " and trashed = false"
        )
        records: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            response = self._call_with_backoff(
                self._service().files().list,
                spaces="appDataFolder",
                q=q,
                orderBy="createdTime desc",
                pageSize=_PAGE_SIZE,
                fields="nextPageToken, files(id, name, appProperties)",
                pageToken=page_token,
            )
            for meta in response.get("files", []):
                file_id = meta.get("id")
                if not file_id:
                    continue
                body = self._download_json(file_id)
                if not body:
                    logger.warning("Skipping unreadable record file %s", meta.get("name"))
                    continue
                records.append(body)
                try:
                    self._remember(uuid.UUID(str(body.get("id"))), file_id)
                except ValueError:
                    pass
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return records

    # ----- internal helpers -----
    def _remember(self, record_id: uuid.UUID, file_id: Optional[str]) -> None:
        if not file_id:
            return
        with self._lock:
            self._file_ids[record_id] = file_id

    def _service(self):
        creds = self.auth.get_credentials() if hasattr(self.auth, "get_credentials") else None
        if not creds:
            raise AuthExpired("Drive credentials are unavailable")
        with self._lock:
            generation = self._generation
        cached = getattr(self._local, "service", None)
        if (
            cached is not None
            and getattr(self._local, "creds", None) is creds
            and getattr(self._local, "generation", None) == generation
        ):
            return cached
        service = build("drive", "v3", credentials=creds, cache_discovery=False)
        self._local.service = service
        self._local.creds = creds
        self._local.generation = generation
        return service

    def _download_json(self, file_id: str) -> Dict[str, Any]:
        raw = self._call_with_backoff(self._service().files().get_media, fileId=file_id)
        if not raw:
            return {}
        try:
            data = json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return {}
        return data if isinstance(data, dict) else {}

    def _call_with_backoff(self, method, *args, **kwargs):
        delay = _INITIAL_BACKOFF
        for attempt in range(_MAX_RETRIES):
            try:
                return method(*args, **kwargs).execute()
            except HttpError as exc:
                status = getattr(getattr(exc, "resp", None), "status", None)
                if status not in _RETRYABLE_STATUS or attempt == _MAX_RETRIES - 1:
                    raise
                logger.debug("Drive call failed with %s; retrying in %.1fs", status, delay)
            self._sleep(delay)
            delay = min(delay * 2, _MAX_BACKOFF)
        return {}

    @staticmethod
    def _encode_json(payload: Dict[str, Any]) -> bytes:
        text = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
        return text.encode("utf-8")


__all__ = ["DriveRecordService", "item_to_record", "record_to_item"]
