"""
Pipeline definitions in S3-compatible object storage.

One JSON document per pipeline, keyed `<name>.json`. The gateway only reads
(`fetch`); the administrative helpers back the `pipelines` CLI.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Protocol

import anyio
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from fnkit_gateway.config import StoreSettings
from fnkit_gateway.errors import StoreFailure
from fnkit_gateway.schemas.pipeline import PIPELINE_KEY_SUFFIX, Pipeline, pipeline_key, pipeline_name

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class PipelineStore(Protocol):
    async def fetch(self, name: str) -> bytes: ...


def _error_code(exc: ClientError) -> str:
    return str((exc.response or {}).get("Error", {}).get("Code") or "")


class S3PipelineStore:
    def __init__(self, settings: StoreSettings, *, client: Optional[Any] = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def bucket(self) -> str:
        return self.settings.bucket

    def _s3(self) -> Any:
        if self._client is None:
            s = self.settings
            credentials = {}
            if s.access_key and s.secret_key:
                credentials = {"aws_access_key_id": s.access_key, "aws_secret_access_key": s.secret_key}
            self._client = boto3.client(
                "s3",
                region_name=s.region or None,
                endpoint_url=s.endpoint or None,
                config=Config(s3={"addressing_style": "path"}),
                **credentials,
            )
        return self._client

    def _require_bucket(self) -> str:
        if not self.bucket:
            raise StoreFailure("S3_BUCKET is not configured")
        return self.bucket

    def read(self, name: str) -> bytes:
        bucket = self._require_bucket()
        try:
            result = self._s3().get_object(Bucket=bucket, Key=pipeline_key(name))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise StoreFailure(f"Pipeline not found: {name}") from e
            raise StoreFailure(str(e)) from e
        except BotoCoreError as e:
            raise StoreFailure(str(e)) from e

        body = result.get("Body")
        if body is None:
            raise StoreFailure(f"Pipeline not found: {name}")
        try:
            return body.read()
        finally:
            body.close()

    async def fetch(self, name: str) -> bytes:
        logger.info("fetching pipeline %s from s3://%s/%s", name, self.bucket, pipeline_key(name))
        return await anyio.to_thread.run_sync(self.read, name)

    def put(self, name: str, pipeline: Pipeline) -> None:
        bucket = self._require_bucket()
        doc = json.dumps(pipeline.to_document(), indent=2).encode("utf-8")
        try:
            self._s3().put_object(
                Bucket=bucket,
                Key=pipeline_key(name),
                Body=doc,
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(str(e)) from e

    def delete(self, name: str) -> None:
        bucket = self._require_bucket()
        try:
            self._s3().delete_object(Bucket=bucket, Key=pipeline_key(name))
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(str(e)) from e

    def list_names(self) -> List[str]:
        bucket = self._require_bucket()
        names: List[str] = []
        try:
            paginator = self._s3().get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket):
                for obj in page.get("Contents") or []:
                    key = str(obj.get("Key") or "")
                    # Only top-level documents are pipelines.
                    if key.endswith(PIPELINE_KEY_SUFFIX) and "/" not in key:
                        names.append(pipeline_name(key))
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(str(e)) from e
        return sorted(names)
