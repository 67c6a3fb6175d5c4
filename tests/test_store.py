from __future__ import annotations

import asyncio
import io
import json
from typing import Any, Dict, List

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from fnkit_gateway.config import StoreSettings
from fnkit_gateway.errors import StoreFailure
from fnkit_gateway.pipeline.store import S3PipelineStore
from fnkit_gateway.schemas.pipeline import Pipeline


class StubS3:
    """Minimal stand-in for a boto3 S3 client."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.fail_with: Any = None
        self.calls: List[Dict[str, Any]] = []

    def get_object(self, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(kwargs)
        if self.fail_with is not None:
            raise self.fail_with
        key = kwargs["Key"]
        if key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[key])}

    def put_object(self, **kwargs: Any) -> Dict[str, Any]:
        self.objects[kwargs["Key"]] = kwargs["Body"]
        return {}

    def delete_object(self, **kwargs: Any) -> Dict[str, Any]:
        self.objects.pop(kwargs["Key"], None)
        return {}

    def get_paginator(self, name: str) -> Any:
        objects = self.objects

        class _Paginator:
            def paginate(self, **kwargs: Any):
                yield {"Contents": [{"Key": k} for k in objects]}

        return _Paginator()


@pytest.fixture
def s3() -> StubS3:
    return StubS3()


@pytest.fixture
def s3_store(s3: StubS3) -> S3PipelineStore:
    return S3PipelineStore(StoreSettings(bucket="pipelines"), client=s3)


def test_fetch_reads_name_dot_json(s3, s3_store):
    s3.objects["checkout.json"] = b'{"mode":"sequential","steps":["a"]}'

    raw = asyncio.run(s3_store.fetch("checkout"))

    assert raw == b'{"mode":"sequential","steps":["a"]}'
    assert s3.calls == [{"Bucket": "pipelines", "Key": "checkout.json"}]


def test_missing_object_is_pipeline_not_found(s3_store):
    with pytest.raises(StoreFailure) as exc:
        asyncio.run(s3_store.fetch("nope"))
    assert exc.value.message == "Pipeline not found: nope"


def test_unreachable_store_is_a_store_failure(s3, s3_store):
    s3.fail_with = EndpointConnectionError(endpoint_url="http://minio:9000")
    with pytest.raises(StoreFailure) as exc:
        s3_store.read("p")
    assert "minio" in exc.value.message


def test_bucket_must_be_configured(s3):
    store = S3PipelineStore(StoreSettings(bucket=""), client=s3)
    with pytest.raises(StoreFailure) as exc:
        store.read("p")
    assert exc.value.message == "S3_BUCKET is not configured"
    assert s3.calls == []


def test_admin_helpers(s3, s3_store):
    s3_store.put("fan", Pipeline.model_validate({"mode": "parallel", "steps": ["x", "y"]}))
    s3.objects["notes.txt"] = b"ignored"
    s3.objects["archive/old.json"] = b"{}"

    assert json.loads(s3.objects["fan.json"]) == {"mode": "parallel", "steps": ["x", "y"]}
    assert s3_store.list_names() == ["fan"]

    s3_store.delete("fan")
    assert s3_store.list_names() == []
