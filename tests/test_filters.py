"""
Tests for the directory filter applied to generated suggestions.
"""

import posixpath

import pytest

from shellsense.pipeline.filters import DirectoryFilter
from shellsense.pipeline.models import CommandSuggestion, ProjectType


def _commands(suggestions):
    return [s.command for s in suggestions]


def _make(*commands):
    return [CommandSuggestion(command=c, reason="r") for c in commands]


class TestDirectoryFilter:

    def setup_method(self):
        self.existing = {"/home/u", "/home/u/project/package.json", "/home/u/project/src", "/etc/hosts"}
        self.filter = DirectoryFilter(home="/home/u", path_exists=lambda p: posixpath.normpath(p) in self.existing)

    @pytest.mark.parametrize("command", [
        "cd /home/u/project",
        "cd /home/u/project/",
        "cd .",
        "cd ./",
        "cd ../project",
    ])
    def test_cd_into_current_directory_dropped(self, command):
        assert self.filter.filter(_make(command), "/home/u/project") == []

    @pytest.mark.parametrize("command", ["cd", "cd ~", "cd ~/"])
    def test_cd_home_dropped_when_already_home(self, command):
        assert self.filter.filter(_make(command), "/home/u") == []

    def test_cd_elsewhere_kept(self):
        kept = self.filter.filter(_make("cd ..", "cd src", "cd ~"), "/home/u/project")

        assert _commands(kept) == ["cd ..", "cd src", "cd ~"]

    def test_project_commands_dropped_in_bare_home(self):
        kept = self.filter.filter(_make("npm install", "cargo build", "git status", "pytest"), "/home/u")

        assert _commands(kept) == ["git status"]

    def test_project_commands_kept_in_detected_project(self):
        kept = self.filter.filter(_make("npm install"), "/home/u", ProjectType.NODE)

        assert _commands(kept) == ["npm install"]

    def test_missing_path_reference_dropped(self):
        kept = self.filter.filter(
            _make("cat package.json", "cat missing.txt", "ls ./src", "cat /etc/hosts"),
            "/home/u/project",
        )

        assert _commands(kept) == ["cat package.json", "ls ./src", "cat /etc/hosts"]

    def test_file_creating_commands_may_name_new_paths(self):
        kept = self.filter.filter(_make("touch notes.md", "mkdir build/out"), "/home/u/project")

        assert len(kept) == 2

    def test_flags_urls_and_variables_not_treated_as_paths(self):
        kept = self.filter.filter(
            _make("git log --format=%h.%s", "curl https://example.com/x.sh", "echo $PATH.bak", "git status -s"),
            "/home/u/project",
        )

        assert len(kept) == 4

    def test_resolve_cd_target(self):
        assert self.filter.resolve_cd_target(".", "/a/b") is None
        assert self.filter.resolve_cd_target("..", "/a/b/") == "/a"
        assert self.filter.resolve_cd_target("~/code", "/a") == "/home/u/code"
        assert self.filter.resolve_cd_target("c/../d", "/a") == "/a/d"
