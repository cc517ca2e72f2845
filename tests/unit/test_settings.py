"""Unit tests for settings discovery and permission list loading."""

import json
from pathlib import Path

import pytest

from gatekeeper import settings


class TestEnvironment:
    """Tests for the environment-driven switches."""

    def test_log_path_default(self, fake_home):
        assert settings.log_path({}, fake_home) == fake_home / ".claude" / "gatekeeper.log"

    def test_log_path_override(self, tmp_path):
        target = tmp_path / "custom.log"
        assert settings.log_path({"GATEKEEPER_LOG_PATH": str(target)}) == target

    @pytest.mark.parametrize("value,expected", [("1", True), ("0", False), ("", False), ("true", False)])
    def test_debug_flag(self, value, expected):
        assert settings.debug_enabled({"GATEKEEPER_DEBUG": value}) is expected

    def test_test_mode_flag(self):
        assert settings.is_test_mode({"GATEKEEPER_TEST_MODE": "1"}) is True
        assert settings.is_test_mode({}) is False

    def test_reads_os_environ_by_default(self, clean_env):
        clean_env.setenv("GATEKEEPER_DEBUG", "1")
        assert settings.debug_enabled() is True

    def test_project_dir_prefers_env(self):
        env = {"CLAUDE_PROJECT_DIR": "/repo"}
        assert settings.project_dir("/elsewhere", env) == Path("/repo")

    def test_project_dir_falls_back_to_cwd(self):
        assert settings.project_dir("/work", {}) == Path("/work")
        assert settings.project_dir(None, {}) is None


class TestSettingsFiles:
    """Tests for which files are read, and in which order."""

    def test_order(self, fake_home, tmp_path):
        project = tmp_path / "proj"
        files = settings.settings_files(project, fake_home)
        assert files == [
            fake_home / ".claude" / "settings.json",
            fake_home / ".claude" / "settings.local.json",
            project / ".claude" / "settings.json",
            project / ".claude" / "settings.local.json",
        ]

    def test_without_project(self, fake_home):
        assert len(settings.settings_files(None, fake_home)) == 2

    def test_project_is_home(self, fake_home):
        assert len(settings.settings_files(fake_home, fake_home)) == 2


class TestLoadPermissionList:
    """Tests for reading one settings file."""

    def test_reads_list(self, tmp_path, write_settings):
        path = write_settings(tmp_path / "s.json", allow=["Bash(ls:*)"], deny=["Read(.env)"])
        assert settings.load_permission_list(path, "allow") == ["Bash(ls:*)"]
        assert settings.load_permission_list(path, "deny") == ["Read(.env)"]

    def test_missing_file(self, tmp_path):
        assert settings.load_permission_list(tmp_path / "nope.json", "allow") == []

    def test_invalid_json(self, tmp_path, write_settings):
        path = write_settings(tmp_path / "s.json", raw="{not json")
        assert settings.load_permission_list(path, "allow") == []

    @pytest.mark.parametrize("raw", [
        "[]",
        '{"permissions": []}',
        '{"permissions": {"allow": "Bash(ls:*)"}}',
        '{"other": 1}',
    ])
    def test_wrong_shapes(self, tmp_path, write_settings, raw):
        path = write_settings(tmp_path / "s.json", raw=raw)
        assert settings.load_permission_list(path, "allow") == []

    def test_non_string_entries_dropped(self, tmp_path, write_settings):
        path = write_settings(tmp_path / "s.json", raw=json.dumps(
            {"permissions": {"allow": ["Bash(ls:*)", 3, None, {"x": 1}]}}
        ))
        assert settings.load_permission_list(path, "allow") == ["Bash(ls:*)"]


class TestLoadPermissionLists:
    """Tests for merging all settings files."""

    def test_merges_user_and_project(self, fake_home, tmp_path, write_settings):
        project = tmp_path / "proj"
        write_settings(fake_home / ".claude" / "settings.json", allow=["Bash(ls:*)"])
        write_settings(project / ".claude" / "settings.local.json",
                       allow=["Bash(ls:*)", "Read(src/**)"], deny=["Bash(rm:*)"])
        allow, deny = settings.load_permission_lists(str(project), environ={}, home=fake_home)
        assert allow == ["Bash(ls:*)", "Read(src/**)"]
        assert deny == ["Bash(rm:*)"]

    def test_project_dir_env_wins(self, fake_home, tmp_path, write_settings):
        project = tmp_path / "proj"
        write_settings(project / ".claude" / "settings.json", allow=["Bash(make:*)"])
        env = {"CLAUDE_PROJECT_DIR": str(project)}
        allow, _ = settings.load_permission_lists(str(tmp_path / "sub"), environ=env, home=fake_home)
        assert allow == ["Bash(make:*)"]

    def test_filtered_by_tool(self, fake_home, tmp_path, write_settings):
        write_settings(fake_home / ".claude" / "settings.json",
                       allow=["Bash(ls:*)", "Read(**)", "Edit(src/**)"])
        allow, _ = settings.load_permission_lists(str(tmp_path), "Read", {}, fake_home)
        assert allow == ["Read(**)"]
        allow, _ = settings.load_permission_lists(str(tmp_path), "Bash", {}, fake_home)
        assert allow == ["Bash(ls:*)", "Edit(src/**)"]

    def test_test_mode_ignores_files(self, fake_home, tmp_path, write_settings):
        write_settings(fake_home / ".claude" / "settings.json", allow=["Bash(ls:*)"])
        env = {
            "GATEKEEPER_TEST_MODE": "1",
            "GATEKEEPER_TEST_ALLOW": json.dumps(["Bash(git status:*)"]),
            "GATEKEEPER_TEST_DENY": json.dumps(["Bash(rm:*)"]),
        }
        allow, deny = settings.load_permission_lists(str(tmp_path), "Bash", env, fake_home)
        assert allow == ["Bash(git status:*)"]
        assert deny == ["Bash(rm:*)"]

    @pytest.mark.parametrize("raw", ["", "not json", '{"a": 1}'])
    def test_test_mode_bad_values(self, fake_home, tmp_path, raw):
        env = {"GATEKEEPER_TEST_MODE": "1", "GATEKEEPER_TEST_ALLOW": raw}
        allow, deny = settings.load_permission_lists(str(tmp_path), None, env, fake_home)
        assert allow == []
        assert deny == []


class TestFilterForTool:
    """Tests for narrowing a list to one tool."""

    def test_bash_keeps_edit_patterns(self):
        patterns = ["Bash(ls:*)", "Edit(src/**)", "MultiEdit(**)", "Write(**)"]
        assert settings.filter_for_tool(patterns, "Bash") == ["Bash(ls:*)", "Edit(src/**)", "MultiEdit(**)"]

    def test_edit_does_not_keep_bash(self):
        assert settings.filter_for_tool(["Bash(ls:*)", "Edit(**)"], "Edit") == ["Edit(**)"]

    def test_bare_tool_kept(self):
        assert settings.filter_for_tool(["WebFetch", "Read(**)"], "WebFetch") == ["WebFetch"]


class TestBuildContext:
    """Tests for assembling an EvaluationContext."""

    def test_context(self, fake_home, tmp_path, write_settings):
        project = tmp_path / "proj"
        write_settings(project / ".claude" / "settings.json", allow=["Read(**)"], deny=["Read(.env)"])
        ctx = settings.build_context(str(project), "Read", {}, fake_home)
        assert ctx.cwd == str(project)
        assert ctx.home_dir == str(fake_home)
        assert ctx.allow_list == ("Read(**)",)
        assert ctx.deny_list == ("Read(.env)",)
        assert ctx.workspace_dir is None

    def test_workspace_override(self, fake_home, tmp_path):
        env = {"GATEKEEPER_WORKSPACE_DIR": "/srv/ws"}
        ctx = settings.build_context(str(tmp_path), None, env, fake_home)
        assert ctx.workspace_dir == "/srv/ws"
        assert ctx.workspace == "/srv/ws"
