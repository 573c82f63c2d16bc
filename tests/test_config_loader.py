"""Tests for board_sync.config_loader: hierarchical config loading."""

import logging
import textwrap

import pytest
import yaml

from board_sync.config_loader import (
    _interpolate_recursive,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
    load_yaml_file,
)


@pytest.fixture
def isolated_fs(tmp_path, monkeypatch):
    """Point CWD and HOME at an empty temp tree with no env override."""
    monkeypatch.delenv("BOARD_SYNC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def _global_config(root):
    path = root / "home" / ".config" / "board_sync" / "config.yml"
    path.parent.mkdir(parents=True)
    return path


def _project_config(root):
    path = root / ".board_sync" / "config.yml"
    path.parent.mkdir(parents=True)
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("BOARD_HOST", "api.example.com")
        assert interpolate_env_vars("${BOARD_HOST}") == "api.example.com"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("BOARD_PARALLEL", "4")
        assert interpolate_env_vars("${BOARD_PARALLEL:-1}") == "4"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_multiple_vars_in_one_string(self, monkeypatch):
        monkeypatch.setenv("HOST_A", "board.local")
        monkeypatch.setenv("PORT_A", "8443")
        assert interpolate_env_vars("https://${HOST_A}:${PORT_A}/1") == (
            "https://board.local:8443/1"
        )

    def test_unterminated_reference_left_untouched(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("TOKEN_VAL", "t0k")
        data = {"board": {"api_token": "${TOKEN_VAL}", "max": 3}, "l": ["${TOKEN_VAL}", 1]}
        assert _interpolate_recursive(data) == {
            "board": {"api_token": "t0k", "max": 3},
            "l": ["t0k", 1],
        }

    def test_non_string_values_untouched(self):
        data = {"count": 42, "enabled": True, "items": [1, 2, 3]}
        assert _interpolate_recursive(data) == data


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for !include YAML loading via the ConfigLoader subclass."""

    def test_include_relative_file(self, tmp_path):
        (tmp_path / "secrets.yml").write_text("api_token: secret123\n")
        main = tmp_path / "config.yml"
        main.write_text("board: !include secrets.yml\n")

        assert load_yaml_file(main) == {"board": {"api_token": "secret123"}}

    def test_include_absolute_path(self, tmp_path):
        secrets = tmp_path / "abs.yml"
        secrets.write_text("api_key: abc\n")
        main = tmp_path / "config.yml"
        main.write_text(f"board: !include {secrets}\n")

        assert load_yaml_file(main) == {"board": {"api_key": "abc"}}

    def test_include_nonexistent_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("board: !include missing.yml\n")

        with pytest.raises(FileNotFoundError, match="Include file not found"):
            load_yaml_file(main)

    def test_circular_include_raises(self, tmp_path):
        (tmp_path / "a.yml").write_text("x: !include b.yml\n")
        (tmp_path / "b.yml").write_text("y: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include detected"):
            load_yaml_file(tmp_path / "a.yml")

    def test_self_include_raises(self, tmp_path):
        (tmp_path / "a.yml").write_text("x: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include detected"):
            load_yaml_file(tmp_path / "a.yml")

    def test_nested_includes(self, tmp_path):
        (tmp_path / "c.yml").write_text("val: deep\n")
        (tmp_path / "b.yml").write_text("inner: !include c.yml\n")
        (tmp_path / "a.yml").write_text("outer: !include b.yml\n")

        assert load_yaml_file(tmp_path / "a.yml") == {
            "outer": {"inner": {"val": "deep"}}
        }

    def test_global_safe_loader_not_polluted(self, tmp_path):
        cfg = tmp_path / "test.yml"
        cfg.write_text("x: !include other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Convention-based file discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_empty_filesystem_returns_empty(self, isolated_fs):
        assert discover_config_files() == []

    def test_env_var_takes_highest_precedence(self, isolated_fs, monkeypatch):
        custom = isolated_fs / "custom.yml"
        custom.write_text("sync: {}\n")
        _project_config(isolated_fs).write_text("sync: {}\n")
        monkeypatch.setenv("BOARD_SYNC_CONFIG", str(custom))

        result = discover_config_files()
        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated_fs):
        proj = _project_config(isolated_fs)
        proj.write_text("project: true\n")
        glob = _global_config(isolated_fs)
        glob.write_text("global: true\n")

        assert discover_config_files() == [proj, glob]

    def test_missing_env_path_excluded(self, isolated_fs, monkeypatch):
        monkeypatch.setenv("BOARD_SYNC_CONFIG", str(isolated_fs / "nope.yml"))
        assert discover_config_files() == []


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config() merge and interpolation."""

    def test_zero_config_returns_empty_dict(self, isolated_fs):
        assert load_hierarchical_config() == {}

    def test_global_only_loaded(self, isolated_fs):
        _global_config(isolated_fs).write_text(
            textwrap.dedent("""\
            board:
              api_url: https://global.example.com/1
            """)
        )
        result = load_hierarchical_config()
        assert result["board"]["api_url"] == "https://global.example.com/1"

    def test_project_overrides_global_at_section_level(self, isolated_fs):
        _global_config(isolated_fs).write_text(
            textwrap.dedent("""\
            board:
              api_url: https://global.example.com/1
              api_key: globalkey
            sync:
              synchronous: true
            """)
        )
        _project_config(isolated_fs).write_text(
            textwrap.dedent("""\
            board:
              api_url: https://project.example.com/1
            """)
        )

        result = load_hierarchical_config()
        assert result["board"] == {"api_url": "https://project.example.com/1"}
        assert result["sync"] == {"synchronous": True}

    def test_env_var_interpolation_after_merge(self, isolated_fs, monkeypatch):
        monkeypatch.setenv("MY_TOKEN", "s3cret")
        _project_config(isolated_fs).write_text(
            'board:\n  api_token: "${MY_TOKEN}"\n'
        )
        assert load_hierarchical_config()["board"]["api_token"] == "s3cret"

    def test_include_within_merged_config(self, isolated_fs):
        proj = _project_config(isolated_fs)
        (proj.parent / "secrets.yml").write_text("api_key: key123\n")
        proj.write_text("board: !include secrets.yml\n")

        assert load_hierarchical_config() == {"board": {"api_key": "key123"}}

    def test_non_dict_root_skipped(self, isolated_fs, monkeypatch, caplog):
        custom = isolated_fs / "bad.yml"
        custom.write_text("- item1\n- item2\n")
        monkeypatch.setenv("BOARD_SYNC_CONFIG", str(custom))

        with caplog.at_level(logging.WARNING, logger="board_sync.config_loader"):
            result = load_hierarchical_config()

        assert result == {}
        assert "non-dict root" in caplog.text

    def test_broken_include_propagates(self, isolated_fs):
        _project_config(isolated_fs).write_text("board: !include gone.yml\n")
        with pytest.raises(FileNotFoundError):
            load_hierarchical_config()
