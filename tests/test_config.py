"""Tests for config.py - argument scanning and environment overrides."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from config import (
    DEFAULT_MANIFEST_FILE,
    ConfigError,
    PollSettings,
    PushConfig,
    get_cf_home,
)


class TestPushConfigFlags:
    """Test PushConfig.from_args() flag scanning."""

    def test_defaults(self):
        """No flags: default manifest, push enabled."""
        config = PushConfig.from_args([], env={})

        assert config.manifest_path == Path(DEFAULT_MANIFEST_FILE)
        assert config.push is True
        assert config.deploy_args == ()
        assert config.debug is False

    def test_service_manifest_overrides_default(self):
        config = PushConfig.from_args(['--service-manifest', 'custom.yml'], env={})

        assert config.manifest_path == Path('custom.yml')

    def test_no_service_manifest_disables(self):
        config = PushConfig.from_args(['--no-service-manifest'], env={})

        assert config.manifest_path is None

    def test_first_manifest_flag_wins(self):
        """The leftmost of --service-manifest/--no-service-manifest applies."""
        config = PushConfig.from_args(
            ['--no-service-manifest', '--service-manifest', 'custom.yml'], env={})
        assert config.manifest_path is None

        config = PushConfig.from_args(
            ['--service-manifest', 'a.yml', '--no-service-manifest', '--service-manifest', 'b.yml'],
            env={})
        assert config.manifest_path == Path('a.yml')

    def test_no_push(self):
        config = PushConfig.from_args(['myapp', '--no-push'], env={})

        assert config.push is False

    def test_no_push_independent_of_manifest_flags(self):
        config = PushConfig.from_args(['--no-push', '--no-service-manifest'], env={})

        assert config.push is False
        assert config.manifest_path is None

    def test_deploy_args_exclude_own_flags(self):
        """Our flags and the manifest path are not forwarded to cf push."""
        config = PushConfig.from_args(
            ['myapp', '--service-manifest', 'svc.yml', '-i', '2', '--no-push', '-m', '1G'],
            env={})

        assert config.deploy_args == ('myapp', '-i', '2', '-m', '1G')

    def test_service_manifest_requires_value(self):
        with pytest.raises(ConfigError, match='requires a file path'):
            PushConfig.from_args(['myapp', '--service-manifest'], env={})

    def test_debug_from_env(self):
        assert PushConfig.from_args([], env={'DEBUG': '1'}).debug is True
        assert PushConfig.from_args([], env={'DEBUG': ''}).debug is False

    def test_cf_binary_from_env(self):
        config = PushConfig.from_args([], env={'CF_BINARY': '/usr/local/bin/cf8'})

        assert config.cf_binary == '/usr/local/bin/cf8'

    def test_config_is_frozen(self):
        config = PushConfig.from_args([], env={})

        with pytest.raises(AttributeError):
            config.push = False  # type: ignore[misc]


class TestPollSettings:
    """Test PollSettings environment overrides and validation."""

    def test_defaults(self):
        settings = PollSettings.from_env({})

        assert settings.interval == 2.0
        assert settings.max_interval == 15.0
        assert settings.backoff == 1.5
        assert settings.timeout == 1800.0

    def test_overrides(self):
        settings = PollSettings.from_env({
            'CSP_POLL_INTERVAL': '1',
            'CSP_POLL_MAX_INTERVAL': '4',
            'CSP_POLL_BACKOFF': '2',
            'CSP_POLL_TIMEOUT': '60',
        })

        assert settings == PollSettings(interval=1.0, max_interval=4.0, backoff=2.0, timeout=60.0)

    def test_invalid_number(self):
        with pytest.raises(ConfigError, match='CSP_POLL_TIMEOUT must be a number'):
            PollSettings.from_env({'CSP_POLL_TIMEOUT': 'soon'})

    def test_non_positive(self):
        with pytest.raises(ConfigError, match='greater than zero'):
            PollSettings.from_env({'CSP_POLL_INTERVAL': '0'})

    def test_backoff_below_one(self):
        with pytest.raises(ConfigError, match='backoff must be at least 1'):
            PollSettings(backoff=0.5)

    def test_max_interval_below_interval(self):
        with pytest.raises(ConfigError, match='shorter than'):
            PollSettings(interval=10.0, max_interval=5.0)

    def test_long_interval_raises_default_max(self):
        """A slow interval alone is not in conflict with the default maximum."""
        settings = PollSettings.from_env({'CSP_POLL_INTERVAL': '30'})

        assert settings.interval == 30.0
        assert settings.max_interval == 30.0

    def test_explicit_max_below_interval_rejected(self):
        with pytest.raises(ConfigError, match='shorter than'):
            PollSettings.from_env({'CSP_POLL_INTERVAL': '30', 'CSP_POLL_MAX_INTERVAL': '10'})

    def test_push_config_surfaces_poll_errors(self):
        with pytest.raises(ConfigError):
            PushConfig.from_args([], env={'CSP_POLL_BACKOFF': 'x'})


class TestGetCfHome:
    """Test get_cf_home() resolution."""

    def test_env_var(self, tmp_path):
        assert get_cf_home({'CF_HOME': str(tmp_path)}) == tmp_path

    def test_defaults_to_home(self):
        assert get_cf_home({}) == Path.home()
