"""
Tests for bucket tag merging.
"""
import pytest

from s3_sync.exceptions import TagOperationError
from s3_sync.models.config import SyncTarget
from s3_sync.services.bucket_resolver import BucketResolver
from s3_sync.services.tag_merger import TagMerger, merge_tags


EXISTING = [
    {'Key': 'team', 'Value': 'web'},
    {'Key': 'cost-center', 'Value': '42'},
]


class TestMergeTags:
    """Test cases for merge_tags."""

    def test_overwrites_in_place_and_appends(self):
        merged = merge_tags(EXISTING, {'cost-center': '7', 'stage': 'prod'})

        assert merged == [
            {'Key': 'team', 'Value': 'web'},
            {'Key': 'cost-center', 'Value': '7'},
            {'Key': 'stage', 'Value': 'prod'},
        ]

    def test_untouched_keys_preserved(self):
        merged = merge_tags(EXISTING, {'stage': 'prod'})
        values = {tag['Key']: tag['Value'] for tag in merged}

        assert values['team'] == 'web'
        assert values['cost-center'] == '42'

    def test_idempotent(self):
        desired = {'cost-center': '7', 'stage': 'prod'}

        once = merge_tags(EXISTING, desired)
        twice = merge_tags(once, desired)

        assert twice == once

    def test_input_not_modified(self):
        existing = [{'Key': 'team', 'Value': 'web'}]

        merge_tags(existing, {'team': 'api'})

        assert existing == [{'Key': 'team', 'Value': 'web'}]

    def test_empty_existing(self):
        assert merge_tags([], {'a': '1'}) == [{'Key': 'a', 'Value': '1'}]


class TestTagMerger:
    """Test cases for TagMerger."""

    @pytest.mark.asyncio
    async def test_read_merge_write(self, fake_s3, tmp_path):
        fake_s3.tags['site'] = list(EXISTING)
        target = SyncTarget(local_dir=str(tmp_path), bucket_name='site', bucket_tags={'stage': 'prod'})

        result = await TagMerger(fake_s3, BucketResolver()).apply(target)

        assert result.success is True
        assert result.tags_written == 1
        assert fake_s3.tags['site'][-1] == {'Key': 'stage', 'Value': 'prod'}
        assert [c[0] for c in fake_s3.calls] == ['get_bucket_tags', 'put_bucket_tags']

    @pytest.mark.asyncio
    async def test_read_failure(self, fake_s3, tmp_path):
        fake_s3.fail_on['get_bucket_tags'] = {'site'}
        target = SyncTarget(local_dir=str(tmp_path), bucket_name='site', bucket_tags={'stage': 'prod'})

        with pytest.raises(TagOperationError, match='read tags'):
            await TagMerger(fake_s3, BucketResolver()).apply(target)

        assert fake_s3.operations('put_bucket_tags') == []

    @pytest.mark.asyncio
    async def test_write_failure(self, fake_s3, tmp_path):
        fake_s3.fail_on['put_bucket_tags'] = {'site'}
        target = SyncTarget(local_dir=str(tmp_path), bucket_name='site', bucket_tags={'stage': 'prod'})

        with pytest.raises(TagOperationError, match='write tags'):
            await TagMerger(fake_s3, BucketResolver()).apply(target)
