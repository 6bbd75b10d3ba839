"""
Tests for printfix.config — config loading.
"""

from printfix.config import DEFAULTS, load_config


class TestLoadConfig:
    def test_missing_file_returns_defaults(self, tmp_path):
        missing = tmp_path / "nonexistent" / "config.toml"
        assert load_config(path=missing) == DEFAULTS

    def test_top_level_keys(self, tmp_path):
        cfg = tmp_path / "config.toml"
        cfg.write_text(
            "external_timeout = 30\n"
            "session_timeout = 120.5\n"
            'pwsh_path = "C:/Tools/pwsh.exe"\n'
            "history_limit = 5\n"
        )
        result = load_config(path=cfg)
        assert result["external_timeout"] == 30.0
        assert result["session_timeout"] == 120.5
        assert result["pwsh_path"] == "C:/Tools/pwsh.exe"
        assert result["history_limit"] == 5
        assert result["powershell_path"] is None

    def test_engine_table(self, tmp_path):
        cfg = tmp_path / "config.toml"
        cfg.write_text("[engine]\nexternal_timeout = 10\n")
        assert load_config(path=cfg)["external_timeout"] == 10.0

    def test_malformed_toml_returns_defaults(self, tmp_path):
        cfg = tmp_path / "config.toml"
        cfg.write_text("external_timeout = [not valid toml\n")
        assert load_config(path=cfg) == DEFAULTS

    def test_bad_values_fall_back_per_key(self, tmp_path):
        cfg = tmp_path / "config.toml"
        cfg.write_text(
            'external_timeout = "fast"\n'
            "session_timeout = -5\n"
            "history_limit = true\n"
            'powershell_path = "   "\n'
            "pwsh_path = \"pwsh\"\n"
        )
        result = load_config(path=cfg)
        assert result["external_timeout"] == DEFAULTS["external_timeout"]
        assert result["session_timeout"] == DEFAULTS["session_timeout"]
        assert result["history_limit"] == DEFAULTS["history_limit"]
        assert result["powershell_path"] is None
        assert result["pwsh_path"] == "pwsh"

    def test_unknown_keys_ignored(self, tmp_path):
        cfg = tmp_path / "config.toml"
        cfg.write_text('colour = "blue"\n')
        assert load_config(path=cfg) == DEFAULTS

    def test_defaults_not_mutated(self, tmp_path):
        cfg = tmp_path / "config.toml"
        cfg.write_text("history_limit = 3\n")
        load_config(path=cfg)
        assert DEFAULTS["history_limit"] == 50
