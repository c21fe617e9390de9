# tests/test_config.py - Tests for configuration management
"""
Unit tests for the Config class.
"""

import pytest

from zfs_sampler.utils.config import Config


class TestConfig:
    """Test cases for Config"""

    def test_defaults(self):
        """Built-in defaults apply without a file"""
        cfg = Config()

        assert cfg.get('sampler.interval') == 60
        assert cfg.get('sampler.max_intervals') == 50
        assert cfg.get('output.socket') == '/var/run/collectd-unixsock'
        assert cfg.get('output.transport_override') is None
        assert cfg.get('missing.key', 'fallback') == 'fallback'

    def test_instances_do_not_share_defaults(self):
        """Changing one config leaves the defaults untouched"""
        first = Config()
        first.set('sampler.interval', 5)

        assert Config().get('sampler.interval') == 60

    def test_load_from_file_merges(self, tmp_path):
        """YAML values override defaults; siblings survive"""
        path = tmp_path / 'sampler.yaml'
        path.write_text("sampler:\n  interval: 10\noutput:\n  format: table\n")

        cfg = Config(str(path))

        assert cfg.get('sampler.interval') == 10
        assert cfg.get('sampler.max_intervals') == 50
        assert cfg.get('output.format') == 'table'

    def test_missing_file_keeps_defaults(self, tmp_path):
        """A missing file is a warning, not an error"""
        cfg = Config(str(tmp_path / 'absent.yaml'))

        assert cfg.get('sampler.interval') == 60

    def test_empty_file(self, tmp_path):
        """An empty YAML file changes nothing"""
        path = tmp_path / 'empty.yaml'
        path.write_text('')

        assert Config(str(path)).get('sampler.interval') == 60

    def test_env_overrides_file(self, tmp_path):
        """Environment beats the YAML file"""
        path = tmp_path / 'sampler.yaml'
        path.write_text("sampler:\n  interval: 10\n")
        cfg = Config(str(path))

        cfg.load_from_env({
            'ZFS_SAMPLER_INTERVAL': '30',
            'ZFS_SAMPLER_NODE_NAME': 'nas01',
            'ZFS_SAMPLER_TRANSPORT_OVERRIDE': 'stdout',
            'ZFS_SAMPLER_SOCKET': '',
        })

        assert cfg.get('sampler.interval') == 30
        assert cfg.get('sampler.node_name') == 'nas01'
        assert cfg.get('output.transport_override') == 'stdout'
        assert cfg.get('output.socket') == '/var/run/collectd-unixsock'

    def test_invalid_env_value(self):
        """Non-numeric interval is rejected"""
        with pytest.raises(ValueError, match='ZFS_SAMPLER_INTERVAL'):
            Config().load_from_env({'ZFS_SAMPLER_INTERVAL': 'soon'})

    def test_save_to_file(self, tmp_path):
        """Saved configuration loads back"""
        cfg = Config()
        cfg.set('output.format', 'prometheus')
        path = tmp_path / 'saved.yaml'

        cfg.save_to_file(str(path))

        assert Config(str(path)).get('output.format') == 'prometheus'
