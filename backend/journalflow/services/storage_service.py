from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from threading import Lock
from typing import Any
from uuid import uuid4

from journalflow.core.errors import NotFound, ValidationError
from journalflow.lib.api_client import supabase_admin

PDF_CONTENT_TYPE = "application/pdf"


def validate_pdf(content: bytes, *, filename: str | None, content_type: str | None, max_bytes: int) -> None:
    """
    只接受 PDF，且不超过配置的大小上限。
    """
    if not content:
        raise ValidationError("Manuscript file is empty")
    if len(content) > max_bytes:
        raise ValidationError(f"Manuscript file exceeds {max_bytes} bytes")
    name_ok = str(filename or "").lower().endswith(".pdf")
    type_ok = str(content_type or "").lower() == PDF_CONTENT_TYPE
    if not (name_ok or type_ok) or not bytes(content[:5]).startswith(b"%PDF-"):
        raise ValidationError("Only PDF manuscripts are accepted")


class ManuscriptStore:
    """
    稿件文件存储：store(bytes) -> reference / fetch(reference) -> bytes。

    reference 对工作流来说是不透明字符串，只保存、不解析。
    """

    def store(self, content: bytes, *, filename: str | None = None, content_type: str = PDF_CONTENT_TYPE) -> str:
        raise NotImplementedError

    def fetch(self, reference: str) -> bytes:
        raise NotImplementedError


class InMemoryManuscriptStore(ManuscriptStore):
    """按内容寻址（sha256）的进程内存储，重复上传同一文件得到同一 reference。"""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = Lock()

    def store(self, content: bytes, *, filename: str | None = None, content_type: str = PDF_CONTENT_TYPE) -> str:
        digest = hashlib.sha256(content).hexdigest()
        reference = f"memory://manuscripts/{digest}"
        with self._lock:
            self._blobs[reference] = bytes(content)
        return reference

    def fetch(self, reference: str) -> bytes:
        with self._lock:
            blob = self._blobs.get(reference)
        if blob is None:
            raise NotFound("Manuscript file not found")
        return blob


class SupabaseManuscriptStore(ManuscriptStore):
    def __init__(self, *, bucket: str = "manuscripts", client: Any = None) -> None:
        self.bucket = bucket
        self.client = client if client is not None else supabase_admin

    def ensure_bucket_exists(self) -> None:
        """
        确保 Storage bucket 存在（开发/演示环境兜底）。

        中文注释:
        - 正式环境建议用 migration / Dashboard 创建 bucket。
        - 但为了减少“缺桶导致 500”的踩坑，这里做一次性兜底创建。
        """
        storage = getattr(self.client, "storage", None)
        if storage is None or not hasattr(storage, "get_bucket") or not hasattr(storage, "create_bucket"):
            return

        try:
            storage.get_bucket(self.bucket)
            return
        except Exception:
            pass

        try:
            storage.create_bucket(self.bucket, options={"public": False})
        except Exception as e:
            text = str(e).lower()
            if "already" in text or "exists" in text or "duplicate" in text:
                return
            raise

    def store(self, content: bytes, *, filename: str | None = None, content_type: str = PDF_CONTENT_TYPE) -> str:
        self.ensure_bucket_exists()
        day = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        path = f"{day}/{uuid4().hex}.pdf"
        # storage3 期望 header value 为字符串；传 bool 会触发 httpx "Header value must be str or bytes"。
        opts = {"content-type": content_type, "upsert": "false"}
        self.client.storage.from_(self.bucket).upload(path, content, opts)
        return f"{self.bucket}/{path}"

    def fetch(self, reference: str) -> bytes:
        bucket, _, path = str(reference or "").partition("/")
        if not path:
            raise NotFound("Manuscript file not found")
        try:
            return self.client.storage.from_(bucket).download(path)
        except Exception as e:
            raise NotFound("Manuscript file not found") from e
