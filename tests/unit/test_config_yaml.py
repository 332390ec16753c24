"""Tests for YAML config loading, env precedence, and the derived policy."""

import pytest
import yaml

from sandshell.config import (
    CONFIG_KEYS,
    Settings,
    _load_yaml_config,
    get_config_path,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point SANDSHELL_CONFIG at a fresh file in tmp_path."""
    path = tmp_path / "sandshell.yaml"
    monkeypatch.setenv("SANDSHELL_CONFIG", str(path))
    for key in CONFIG_KEYS - {"log_level"}:
        monkeypatch.delenv(key.upper(), raising=False)
    return path


class TestYamlConfig:
    def test_missing_file_returns_empty(self, config_file):
        assert _load_yaml_config(config_file) == {}

    def test_load_known_keys(self, config_file):
        config_file.write_text(yaml.dump({"port": 9000, "sandbox_image": "alpine:3.20"}))
        loaded = _load_yaml_config(config_file)
        assert loaded == {"port": 9000, "sandbox_image": "alpine:3.20"}

    def test_unknown_keys_are_dropped(self, config_file):
        config_file.write_text(yaml.dump({"port": 9000, "vault_path": "/tmp"}))
        assert _load_yaml_config(config_file) == {"port": 9000}

    def test_load_invalid_yaml_returns_empty(self, config_file):
        config_file.write_text("[ invalid yaml {{{")
        assert _load_yaml_config(config_file) == {}

    def test_load_non_dict_yaml_returns_empty(self, config_file):
        config_file.write_text("- just\n- a\n- list\n")
        assert _load_yaml_config(config_file) == {}

    def test_config_path_from_env(self, config_file):
        assert get_config_path() == config_file.resolve()

    def test_config_path_default(self, monkeypatch, tmp_path):
        monkeypatch.delenv("SANDSHELL_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        assert get_config_path() == tmp_path / "sandshell.yaml"


class TestSettingsPrecedence:
    def test_defaults(self, config_file):
        settings = Settings()
        assert settings.port == 8080
        assert settings.mem_bytes == 536870912
        assert settings.cpu_quota == 50000
        assert settings.cpu_period == 100000
        assert settings.pids_limit == 128
        assert settings.sandbox_image == "ubuntu:22.04"
        assert settings.idle_timeout == 0

    def test_yaml_overrides_defaults(self, config_file):
        config_file.write_text(yaml.dump({"port": 9000, "pids_limit": 64}))
        settings = Settings()
        assert settings.port == 9000
        assert settings.pids_limit == 64

    def test_env_overrides_yaml(self, config_file, monkeypatch):
        config_file.write_text(yaml.dump({"port": 9000}))
        monkeypatch.setenv("PORT", "9999")
        assert Settings().port == 9999

    def test_explicit_args_override_yaml(self, config_file):
        config_file.write_text(yaml.dump({"port": 9000}))
        assert Settings(port=7000).port == 7000

    def test_rejects_non_positive_limits(self, config_file):
        with pytest.raises(ValueError):
            Settings(mem_bytes=0)


class TestDerivedValues:
    def test_socket_path_becomes_unix_url(self, config_file):
        settings = Settings(docker_socket="/run/user/1000/docker.sock")
        assert settings.docker_base_url == "unix:///run/user/1000/docker.sock"

    def test_url_passes_through(self, config_file):
        settings = Settings(docker_socket="tcp://10.0.0.5:2375")
        assert settings.docker_base_url == "tcp://10.0.0.5:2375"

    def test_policy_reflects_settings(self, config_file):
        settings = Settings(
            mem_bytes=256 * 1024 * 1024,
            cpu_quota=25000,
            pids_limit=32,
            sandbox_image="alpine:3.20",
            tmpfs_size="16m",
        )
        policy = settings.policy()
        assert policy.image == "alpine:3.20"
        assert policy.memory_bytes == 256 * 1024 * 1024
        assert policy.memory_swap_bytes == policy.memory_bytes
        assert policy.cpus == pytest.approx(0.25)
        assert policy.pids_limit == 32
        assert policy.network_disabled is True
        assert policy.cap_drop == ("ALL",)
        assert policy.tmpfs == {"/tmp": "rw,noexec,nosuid,size=16m"}
