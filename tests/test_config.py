"""
Tests for configuration loading and board wiring.
"""
import pytest

from taskboard.app import build_board
from taskboard.config import Config, configure_logging
from taskboard.controller import BoardController
from taskboard.errors import ConfigError
from taskboard.remote import HttpRemoteSync, InMemoryRemoteSync
from taskboard.schema import Status


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TASKBOARD_API_URL", raising=False)
    monkeypatch.delenv("TASKBOARD_LOG_LEVEL", raising=False)


class TestConfigLoad:

    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg = Config.load()
        assert cfg.api_base_url == "http://localhost:3000"
        assert cfg.request_timeout == 10.0
        assert cfg.transition_table() is None

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "board.yaml"
        path.write_text(
            "api_base_url: https://pm.example.com\n"
            "request_timeout: 3\n"
            "workflow_transitions:\n"
            "  todo: [inProgress]\n"
        )
        cfg = Config.load(str(path))
        assert cfg.api_base_url == "https://pm.example.com"
        assert cfg.request_timeout == 3
        assert cfg.transition_table() == {Status.TODO: frozenset({Status.IN_PROGRESS})}

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "board.yaml"
        path.write_text("log_level: DEBUG\ntelegram_token: abc\n")
        assert Config.load(str(path)).log_level == "DEBUG"

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "board.yaml"
        path.write_text("")
        assert Config.load(str(path)).log_level == "INFO"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "board.yaml"
        path.write_text("api_base_url: https://file.example.com\n")
        monkeypatch.setenv("TASKBOARD_API_URL", "https://env.example.com")
        monkeypatch.setenv("TASKBOARD_LOG_LEVEL", "WARNING")
        cfg = Config.load(str(path))
        assert cfg.api_base_url == "https://env.example.com"
        assert cfg.log_level == "WARNING"

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(ConfigError):
            Config.load(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "board.yaml"
        path.write_text("api_base_url: [unclosed\n")
        with pytest.raises(ConfigError):
            Config.load(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "board.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            Config.load(str(path))

    def test_bad_transition_table(self):
        cfg = Config(workflow_transitions={"todo": ["review"]})
        with pytest.raises(ConfigError):
            cfg.transition_table()


def test_unknown_log_level():
    with pytest.raises(ConfigError):
        configure_logging("CHATTY")


class TestBuildBoard:

    def test_uses_injected_remote(self):
        remote = InMemoryRemoteSync()
        controller = build_board(config=Config(notification_history=5), remote=remote, setup_logging=False)
        assert isinstance(controller, BoardController)
        assert controller.remote is remote
        assert controller.notifier.history.maxlen == 5

    def test_builds_http_remote_from_config(self):
        cfg = Config(api_base_url="https://pm.example.com/", request_timeout=2)
        controller = build_board(config=cfg, setup_logging=False)
        assert isinstance(controller.remote, HttpRemoteSync)
        assert controller.remote.base_url == "https://pm.example.com"
        assert controller.remote.timeout == 2

    def test_transition_table_wired(self):
        cfg = Config(workflow_transitions={"backlog": ["todo"]})
        controller = build_board(config=cfg, remote=InMemoryRemoteSync(), setup_logging=False)
        assert controller.transitions == {Status.BACKLOG: frozenset({Status.TODO})}
