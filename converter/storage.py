# converter/storage.py
import json
import os
import shutil
import time
import logging
from pathlib import Path
from typing import Optional

from botocore.exceptions import ClientError
from pydantic import BaseModel

from .config import (
    TMP_DIR,
    USE_PRESIGNED_URLS,
    PRESIGNED_URL_EXPIRES_SECS,
    get_bucket,
    create_s3_client,
)
from .media import content_type as media_content_type

logger = logging.getLogger(__name__)

META_FILENAME = "meta.json"


class StoredFile(BaseModel):
    file_id: str
    filename: str
    content_type: str
    size: int
    created_at: float
    data: Optional[bytes] = None
    url: Optional[str] = None  # set when the bytes live behind a presigned URL


def _content_type_for(filename: str) -> str:
    return media_content_type(filename.rsplit(".", 1)[-1].lower())


class LocalFileStore:
    """One folder per file id under base_dir, with a meta.json sidecar."""

    def __init__(self, base_dir: Path = TMP_DIR):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _dir(self, file_id: str) -> Path:
        return self.base_dir / file_id

    def put(self, file_id: str, filename: str, data: bytes, content_type: Optional[str] = None) -> StoredFile:
        job_dir = self._dir(file_id)
        job_dir.mkdir(parents=True, exist_ok=True)
        (job_dir / filename).write_bytes(data)

        stored = StoredFile(
            file_id=file_id,
            filename=filename,
            content_type=content_type or _content_type_for(filename),
            size=len(data),
            created_at=time.time(),
        )
        (job_dir / META_FILENAME).write_text(json.dumps(stored.model_dump(exclude={"data", "url"})))
        logger.info(f"[Storage] Stored {filename} ({len(data)} bytes) at {job_dir}")
        return stored

    def get(self, file_id: str) -> Optional[StoredFile]:
        meta_path = self._dir(file_id) / META_FILENAME
        if not meta_path.exists():
            return None
        meta = json.loads(meta_path.read_text())
        data_path = self._dir(file_id) / meta["filename"]
        if not data_path.exists():
            logger.warning(f"[Storage] Metadata without payload for {file_id}")
            return None
        return StoredFile(**meta, data=data_path.read_bytes())

    def delete(self, file_id: str) -> None:
        job_dir = self._dir(file_id)
        if job_dir.exists():
            shutil.rmtree(job_dir, ignore_errors=True)
            logger.info(f"[Storage] Deleted {job_dir}")

    def cleanup_old_files(self, max_age: int) -> int:
        """Delete file folders older than max_age seconds."""
        now = time.time()
        removed = 0
        for path in self.base_dir.iterdir():
            if path.is_dir() and now - path.stat().st_mtime > max_age:
                shutil.rmtree(path, ignore_errors=True)
                removed += 1
                logger.info(f"[Cleanup] Deleted {path}")
        return removed


class S3FileStore:
    """Objects live under outputs/<file_id>/<filename>."""

    prefix = "outputs/"

    def __init__(self, bucket: str, client=None, use_presigned: bool = USE_PRESIGNED_URLS,
                 presign_expires: int = PRESIGNED_URL_EXPIRES_SECS):
        self.bucket = bucket
        self.s3 = client or create_s3_client()
        self.use_presigned = use_presigned
        self.presign_expires = presign_expires

    def _key(self, file_id: str, filename: str) -> str:
        return f"{self.prefix}{file_id}/{filename}"

    def _find(self, file_id: str) -> Optional[dict]:
        resp = self.s3.list_objects_v2(Bucket=self.bucket, Prefix=f"{self.prefix}{file_id}/", MaxKeys=1)
        contents = resp.get("Contents") or []
        return contents[0] if contents else None

    def presign_url(self, key: str, filename: str, ctype: str) -> str:
        """Presigned GET that forces a real file download in browsers."""
        return self.s3.generate_presigned_url(
            ClientMethod="get_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ResponseContentDisposition": f'attachment; filename="{filename}"',
                "ResponseContentType": ctype,
            },
            ExpiresIn=self.presign_expires,
        )

    def put(self, file_id: str, filename: str, data: bytes, content_type: Optional[str] = None) -> StoredFile:
        ctype = content_type or _content_type_for(filename)
        key = self._key(file_id, filename)
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=ctype)
        logger.info(f"[Storage] Uploaded -> s3://{self.bucket}/{key} ({len(data)} bytes)")
        return StoredFile(
            file_id=file_id,
            filename=filename,
            content_type=ctype,
            size=len(data),
            created_at=time.time(),
        )

    def get(self, file_id: str) -> Optional[StoredFile]:
        try:
            obj = self._find(file_id)
        except ClientError as e:
            err = e.response.get("Error", {})
            logger.error(f"[Storage] S3 lookup failed for {file_id}: {err.get('Code')} {err.get('Message')}")
            raise
        if obj is None:
            return None

        key = obj["Key"]
        filename = os.path.basename(key)
        ctype = _content_type_for(filename)
        stored = StoredFile(
            file_id=file_id,
            filename=filename,
            content_type=ctype,
            size=obj.get("Size", 0),
            created_at=obj["LastModified"].timestamp(),
        )
        if self.use_presigned:
            stored.url = self.presign_url(key, filename, ctype)
        else:
            stored.data = self.s3.get_object(Bucket=self.bucket, Key=key)["Body"].read()
        return stored

    def delete(self, file_id: str) -> None:
        obj = self._find(file_id)
        if obj is not None:
            self.s3.delete_object(Bucket=self.bucket, Key=obj["Key"])
            logger.info(f"[Storage] Deleted s3://{self.bucket}/{obj['Key']}")

    def cleanup_old_files(self, max_age: int) -> int:
        cutoff = time.time() - max_age
        removed = 0
        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
            for obj in page.get("Contents") or []:
                if obj["LastModified"].timestamp() < cutoff:
                    self.s3.delete_object(Bucket=self.bucket, Key=obj["Key"])
                    removed += 1
        if removed:
            logger.info(f"[Cleanup] Deleted {removed} expired object(s) from s3://{self.bucket}")
        return removed


def select_file_store():
    bucket = get_bucket()
    if bucket:
        logger.info(f"[Storage] Using S3 bucket {bucket}")
        return S3FileStore(bucket)
    return LocalFileStore(TMP_DIR)
