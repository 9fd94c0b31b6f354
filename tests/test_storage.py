from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import boto3
import pytest
from botocore.stub import Stubber

from app.config import Settings
from app.errors import StorageError
from app.storage import ObjectStore, build_s3_client


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        endpoint_url="https://account.r2.example.test",
        aws_access_key_id="test-access",
        aws_secret_access_key="test-secret",
        region_name="auto",
    )


def test_put_object_applies_acl_only_when_given(s3_client):
    store = ObjectStore(s3_client, "bucket")
    with Stubber(s3_client) as stub:
        stub.add_response(
            "put_object",
            {},
            {"Bucket": "bucket", "Key": "uploads/1-a.txt", "Body": b"hi", "ContentType": "text/plain", "ACL": "public-read"},
        )
        stub.add_response(
            "put_object",
            {},
            {"Bucket": "bucket", "Key": "private/1-a.txt", "Body": b"hi", "ContentType": "text/plain"},
        )
        store.put_object("uploads/1-a.txt", b"hi", "text/plain", "public-read")
        store.put_object("private/1-a.txt", b"hi", "text/plain")
        stub.assert_no_pending_responses()


def test_put_object_failure_becomes_storage_error(s3_client):
    store = ObjectStore(s3_client, "bucket")
    with Stubber(s3_client) as stub:
        stub.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageError):
            store.put_object("uploads/1-a.txt", b"hi", "text/plain")


def test_list_objects_returns_page_and_cursor(s3_client):
    store = ObjectStore(s3_client, "bucket")
    modified = datetime(2024, 5, 1, tzinfo=timezone.utc)
    with Stubber(s3_client) as stub:
        stub.add_response(
            "list_objects_v2",
            {
                "Contents": [{"Key": "uploads/abc-report.pdf", "Size": 12, "LastModified": modified}],
                "IsTruncated": True,
                "NextContinuationToken": "token-2",
            },
            {"Bucket": "bucket", "Prefix": "uploads/", "MaxKeys": 1},
        )
        stub.add_response(
            "list_objects_v2",
            {"IsTruncated": False},
            {"Bucket": "bucket", "Prefix": "uploads/", "MaxKeys": 1, "ContinuationToken": "token-2"},
        )
        first = store.list_objects("uploads/", limit=1)
        second = store.list_objects("uploads/", limit=1, cursor=first.next_cursor)

    assert [(o.key, o.size, o.last_modified) for o in first.objects] == [("uploads/abc-report.pdf", 12, modified)]
    assert first.next_cursor == "token-2"
    assert second.objects == []
    assert second.next_cursor is None


def test_exists_maps_404_to_false(s3_client):
    store = ObjectStore(s3_client, "bucket")
    with Stubber(s3_client) as stub:
        stub.add_response("head_object", {"ContentLength": 3}, {"Bucket": "bucket", "Key": "private/a"})
        stub.add_client_error("head_object", service_error_code="404", http_status_code=404)
        stub.add_client_error("head_object", service_error_code="InternalError", http_status_code=500)
        assert store.exists("private/a") is True
        assert store.exists("private/b") is False
        with pytest.raises(StorageError):
            store.exists("private/c")


def test_presigned_url_embeds_requested_lifetime(s3_client):
    store = ObjectStore(s3_client, "private-bucket")
    url = store.presign_get("private/abc-report.pdf", 604800)
    query = parse_qs(urlparse(url).query)
    assert query["X-Amz-Expires"] == ["604800"]
    assert "private/abc-report.pdf" in urlparse(url).path


def test_public_url_prefers_configured_base(s3_client):
    assert ObjectStore(s3_client, "bucket", public_base_url="https://cdn.example.test/").public_url(
        "uploads/a.txt"
    ) == "https://cdn.example.test/uploads/a.txt"
    assert ObjectStore(s3_client, "bucket").public_url("uploads/a.txt") == (
        "https://account.r2.example.test/bucket/uploads/a.txt"
    )


def test_build_client_derives_r2_endpoint():
    settings = Settings(storage_account_id="acct123", storage_access_key_id="k", storage_secret_access_key="s")
    client = build_s3_client(settings)
    assert client.meta.endpoint_url == "https://acct123.r2.cloudflarestorage.com"

    override = Settings(storage_endpoint_url="http://localhost:9000/")
    assert override.endpoint_url == "http://localhost:9000"
