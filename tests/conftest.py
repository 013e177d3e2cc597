"""
Pytest configuration and fixtures for the S3 sync engine tests.
"""
import hashlib
import os
import threading
import time
from typing import Dict, Any, List, Optional

import pytest

from s3_sync.clients.s3_manager import S3Object
from s3_sync.services.bucket_resolver import BucketResolver
from s3_sync.services.progress import ProgressSink


class FakeS3Manager:
    """In-memory stand-in for S3Manager that records every call."""

    def __init__(self, delay: float = 0.0):
        self.buckets: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.tags: Dict[str, List[Dict[str, str]]] = {}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, set] = {}
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def add_object(self, bucket: str, key: str, body: bytes, **params):
        self.buckets.setdefault(bucket, {})[key] = {
            'body': body,
            'etag': hashlib.md5(body).hexdigest(),
            'params': params
        }

    def keys(self, bucket: str) -> List[str]:
        return sorted(self.buckets.get(bucket, {}))

    def _enter(self, operation: str, subject: Optional[str] = None):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if subject is not None and subject in self.fail_on.get(operation, set()):
                raise RuntimeError(f"{operation} failed for {subject}")
        finally:
            with self._lock:
                self.in_flight -= 1

    def list_objects(self, bucket: str, prefix: str = '') -> List[S3Object]:
        self.calls.append(('list_objects', bucket, prefix))
        self._enter('list_objects', bucket)
        return [
            S3Object(key=key, size=len(obj['body']), etag=obj['etag'])
            for key, obj in sorted(self.buckets.get(bucket, {}).items())
            if key.startswith(prefix)
        ]

    def put_object(self, bucket, key, file_path, acl, content_type=None, extra_params=None):
        self.calls.append(('put_object', bucket, key))
        self._enter('put_object', key)
        with open(file_path, 'rb') as f:
            body = f.read()
        params = dict(extra_params or {})
        params['ACL'] = acl
        if content_type:
            params['ContentType'] = content_type
        self.add_object(bucket, key, body, **params)
        return {'ETag': f'"{hashlib.md5(body).hexdigest()}"'}

    def delete_objects(self, bucket, keys):
        self.calls.append(('delete_objects', bucket, tuple(keys)))
        for key in keys:
            self._enter('delete_objects', key)
        for key in keys:
            self.buckets.get(bucket, {}).pop(key, None)
        return list(keys)

    def copy_object(self, bucket, key, acl, content_type=None, extra_params=None):
        self.calls.append(('copy_object', bucket, key))
        self._enter('copy_object', key)
        params = dict(extra_params or {})
        params['ACL'] = acl
        if content_type:
            params['ContentType'] = content_type
        # Metadata is replaced, not merged
        self.buckets[bucket][key]['params'] = params
        return {}

    def get_bucket_tags(self, bucket):
        self.calls.append(('get_bucket_tags', bucket))
        self._enter('get_bucket_tags', bucket)
        return [dict(tag) for tag in self.tags.get(bucket, [])]

    def put_bucket_tags(self, bucket, tag_set):
        self.calls.append(('put_bucket_tags', bucket))
        self._enter('put_bucket_tags', bucket)
        self.tags[bucket] = [dict(tag) for tag in tag_set]

    def operations(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class RecordingSink(ProgressSink):
    """Progress sink that keeps every notification."""

    def __init__(self):
        self.updates: List[tuple] = []
        self.results = []

    def update(self, target, phase, percent):
        self.updates.append((target, phase, percent))

    def finished(self, result):
        self.results.append(result)


class FakeOutputResolver:
    """Stack output lookup backed by a dict, counting lookups."""

    def __init__(self, outputs: Dict[str, str]):
        self.outputs = outputs
        self.lookups: List[str] = []

    def resolve_output(self, output_key: str) -> str:
        from s3_sync.exceptions import OutputNotFound

        self.lookups.append(output_key)
        if output_key not in self.outputs:
            raise OutputNotFound(output_key, 'test-stack')
        return self.outputs[output_key]


@pytest.fixture
def fake_s3():
    """Pytest fixture for the in-memory object store."""
    return FakeS3Manager()


@pytest.fixture
def slow_s3():
    """Object store whose calls take long enough to overlap."""
    return FakeS3Manager(delay=0.02)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def outputs():
    """Stack outputs available to bucketNameKey targets."""
    return FakeOutputResolver({'WebsiteBucket': 'resolved-site'})


@pytest.fixture
def resolver(outputs):
    return BucketResolver(outputs)


@pytest.fixture
def make_tree(tmp_path):
    """Create files under tmp_path/dist from a {relative path: content} mapping."""
    def _make(files: Dict[str, str], root_name: str = 'dist'):
        root = tmp_path / root_name
        root.mkdir(exist_ok=True)
        for rel_path, content in files.items():
            path = root / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return root
    return _make


@pytest.fixture(scope="session")
def check_services():
    """Check that the local S3 emulator is running before integration tests."""
    import requests

    endpoint = os.getenv('S3SYNC_TEST_ENDPOINT', 'http://localhost:9000')
    try:
        response = requests.get(f"{endpoint}/minio/health/live", timeout=5)
        if response.status_code != 200:
            pytest.skip(f"MinIO is not responding correctly (status: {response.status_code})")
    except requests.exceptions.RequestException as e:
        pytest.skip(f"MinIO is not accessible: {e}")

    return endpoint
