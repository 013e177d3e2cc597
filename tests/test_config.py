"""
Tests for configuration loading and target validation.
"""
import os

import pytest

from s3_sync.exceptions import ConfigurationError
from s3_sync.models.config import AwsConfig, RunConfig, SyncTarget
from s3_sync.services.target_set import SyncTargetSet


class TestSyncTarget:
    """Test cases for SyncTarget.from_dict."""

    def test_defaults(self, tmp_path):
        target = SyncTarget.from_dict({'bucketName': 'site', 'localDir': 'dist'}, str(tmp_path))

        assert target.local_dir == str(tmp_path / 'dist')
        assert target.bucket_prefix == ''
        assert target.acl == 'private'
        assert target.follow_symlinks is False
        assert target.delete_removed is True
        assert target.enabled is True
        assert target.rules == ()
        assert target.bucket_tags == {}

    @pytest.mark.parametrize('raw,expected', [
        ('static/', 'static'),
        ('/static//', '/static'),
        ('a/b', 'a/b'),
        ('', ''),
    ])
    def test_prefix_normalized(self, raw, expected):
        target = SyncTarget.from_dict({'bucketName': 'site', 'localDir': '/d', 'bucketPrefix': raw})

        assert target.bucket_prefix == expected

    def test_key_for(self):
        assert SyncTarget(local_dir='/d', bucket_name='s', bucket_prefix='static').key_for('a/b.js') == 'static/a/b.js'
        assert SyncTarget(local_dir='/d', bucket_name='s').key_for('a/b.js') == 'a/b.js'

    def test_full_descriptor(self):
        target = SyncTarget.from_dict({
            'bucketNameKey': 'WebsiteBucket',
            'localDir': '/srv/dist',
            'acl': 'public-read',
            'followSymlinks': True,
            'deleteRemoved': False,
            'defaultContentType': 'text/html',
            'preCommand': 'npm run build',
            'params': [
                {'index.html': {'CacheControl': 'no-cache'}},
                {'*.js': {'CacheControl': 'max-age=60', 'OnlyForEnv': 'prod'}},
            ],
            'bucketTags': {'stage': 'prod', 'version': 3},
        })

        assert target.identity == 'WebsiteBucket'
        assert target.bucket_name is None
        assert [rule.pattern for rule in target.rules] == ['index.html', '*.js']
        assert target.rules[1].only_for_env == 'prod'
        assert target.bucket_tags == {'stage': 'prod', 'version': '3'}

    @pytest.mark.parametrize('descriptor', [
        {'localDir': 'dist'},
        {'bucketName': 'site'},
        {'bucketName': 'site', 'bucketNameKey': 'Out', 'localDir': 'dist'},
        {'bucketName': 'site', 'localDir': 'dist', 'params': {'*.js': {}}},
        {'bucketName': 'site', 'localDir': 'dist', 'params': [{'*.js': {}, '*.css': {}}]},
        {'bucketName': 'site', 'localDir': 'dist', 'params': [{'*.js': 'max-age=1'}]},
        {'bucketName': 'site', 'localDir': 'dist', 'bucketTags': ['a']},
        {'bucketName': 'site', 'localDir': 'dist', 'params': [{'[z-a].txt': {'CacheControl': 'x'}}]},
        {'bucketName': 'site', 'localDir': 'dist', 'deleteRemoved': 'false'},
        {'bucketName': 'site', 'localDir': 'dist', 'followSymlinks': 1},
        {'bucketName': 'site', 'localDir': 'dist', 'enabled': 'yes'},
        'not-a-mapping',
    ])
    def test_invalid(self, descriptor):
        with pytest.raises(ConfigurationError):
            SyncTarget.from_dict(descriptor)


class TestRunConfig:
    """Test cases for RunConfig."""

    def test_list_shape(self):
        config = RunConfig.from_dict({'s3Sync': [{'bucketName': 'a', 'localDir': 'x'}]})

        assert len(config.targets) == 1
        assert config.no_sync is False

    def test_mapping_shape(self):
        config = RunConfig.from_dict({'custom': {'s3Sync': {
            'buckets': [{'bucketName': 'a', 'localDir': 'x'}],
            'noSync': True,
            'endpoint': 'http://localhost:4569',
        }}})

        assert len(config.targets) == 1
        assert config.no_sync is True
        assert config.effective_aws.endpoint == 'http://localhost:4569'

    def test_missing_section(self):
        assert RunConfig.from_dict({}).targets == []

    def test_invalid_section(self):
        with pytest.raises(ConfigurationError):
            RunConfig.from_dict({'s3Sync': 'nope'})

    def test_no_sync_must_be_boolean(self):
        with pytest.raises(ConfigurationError):
            RunConfig.from_dict({'s3Sync': {'buckets': [], 'noSync': 'false'}})

    def test_env_from_environment(self, monkeypatch):
        monkeypatch.setenv('S3SYNC_ENV', 'staging')

        assert RunConfig.from_dict({}).env == 'staging'

    def test_load_yaml(self, tmp_path):
        config_file = tmp_path / 's3sync.yml'
        config_file.write_text(
            "s3Sync:\n"
            "  - bucketName: site\n"
            "    localDir: dist\n"
            "    params:\n"
            "      - '*.js':\n"
            "          CacheControl: 'public, max-age=31536000'\n"
        )

        config = RunConfig.load(str(config_file))
        target_set = SyncTargetSet.from_config(config.targets, config.service_path)

        assert config.service_path == str(tmp_path)
        assert target_set.enabled()[0].local_dir == os.path.join(str(tmp_path), 'dist')

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            RunConfig.load(str(tmp_path / 'missing.yml'))

    def test_load_invalid_yaml(self, tmp_path):
        config_file = tmp_path / 's3sync.yml'
        config_file.write_text("s3Sync: [unclosed\n")

        with pytest.raises(ConfigurationError):
            RunConfig.load(str(config_file))


class TestAwsConfig:
    """Test cases for AwsConfig."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('S3SYNC_ENDPOINT', 'http://localhost:9000')
        monkeypatch.setenv('S3SYNC_REGION', 'eu-west-1')
        monkeypatch.setenv('S3SYNC_STACK_NAME', 'site-prod')
        monkeypatch.delenv('S3SYNC_ACCESS_KEY', raising=False)

        config = AwsConfig.from_env()

        assert config.endpoint == 'http://localhost:9000'
        assert config.region == 'eu-west-1'
        assert config.stack_name == 'site-prod'
        assert config.access_key is None


class TestSyncTargetSet:
    """Test cases for SyncTargetSet."""

    DESCRIPTORS = [
        {'bucketName': 'site', 'localDir': '/a'},
        {'bucketName': 'assets', 'localDir': '/b', 'enabled': False},
        {'bucketNameKey': 'DocsBucket', 'localDir': '/c'},
        {'bucketName': 'broken'},
    ]

    def test_disabled_targets_dropped(self):
        target_set = SyncTargetSet.from_config(self.DESCRIPTORS)

        assert [t.identity for t in target_set] == ['site', 'DocsBucket']
        assert len(target_set) == 2

    def test_invalid_kept_aside(self):
        target_set = SyncTargetSet.from_config(self.DESCRIPTORS)

        assert [label for label, _ in target_set.invalid] == ['broken']

    def test_malformed_glob_reported_at_load(self):
        target_set = SyncTargetSet.from_config([
            {'bucketName': 'site', 'localDir': '/a', 'params': [{'[z-a].js': {'CacheControl': 'no-cache'}}]},
            {'bucketName': 'docs', 'localDir': '/b', 'params': [{'a[]b': {'CacheControl': 'no-cache'}}]},
        ])

        assert [label for label, _ in target_set.invalid] == ['site']
        assert [t.identity for t in target_set] == ['docs']

    def test_disabled_invalid_target_ignored(self):
        target_set = SyncTargetSet.from_config([{'bucketName': 'x', 'enabled': False}])

        assert len(target_set) == 0
        assert target_set.invalid == []

    def test_select(self):
        target_set = SyncTargetSet.from_config(self.DESCRIPTORS)

        assert [t.identity for t in target_set.select('DocsBucket')] == ['DocsBucket']
        assert len(target_set.select('assets')) == 0
        assert target_set.select(None) is target_set
        assert target_set.select('site').invalid == []
