"""
Tests for the read-only local research tools.
"""

import pytest

from shellsense.pipeline.tools import (
    MAX_READ_LINES,
    LocalResearchTools,
    extract_file_insight,
)


@pytest.fixture
def project(tmp_path):
    (tmp_path / "package.json").write_text('{\n  "name": "web",\n  "scripts": {"dev": "vite"}\n}\n')
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.py").write_text("print('hi')\n")
    (tmp_path / "src" / "util.py").write_text("\n".join(f"line {i}" for i in range(1, 401)))
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.py").write_text("")
    return tmp_path


class TestLocalResearchTools:

    def setup_method(self):
        self.tools = LocalResearchTools()

    def test_schemas(self):
        assert self.tools.tool_names == ["read_file", "list_dir", "search_files"]
        assert [s.name for s in self.tools.schemas] == self.tools.tool_names

    @pytest.mark.asyncio
    async def test_read_file_relative_to_cwd(self, project):
        result = await self.tools.execute("read_file", {"path": "package.json"}, str(project))

        assert result.success
        assert '"scripts"' in result.output

    @pytest.mark.asyncio
    async def test_read_file_is_capped(self, project):
        result = await self.tools.execute("read_file", {"path": "src/util.py"}, str(project))

        lines = result.output.splitlines()
        assert len(lines) == MAX_READ_LINES
        assert lines[0] == "line 1"

    @pytest.mark.asyncio
    async def test_read_file_line_range(self, project):
        result = await self.tools.execute(
            "read_file", {"path": "src/util.py", "start_line": "10", "end_line": "12"}, str(project)
        )

        assert result.output == "line 10\nline 11\nline 12"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, project):
        result = await self.tools.execute("read_file", {"path": "nope.txt"}, str(project))

        assert not result.success
        assert "File not found" in result.error

    @pytest.mark.asyncio
    async def test_list_dir_marks_directories(self, project):
        result = await self.tools.execute("list_dir", {"path": "."}, str(project))

        assert result.output.splitlines() == ["node_modules/", "package.json", "src/"]

    @pytest.mark.asyncio
    async def test_search_skips_vendor_dirs(self, project):
        result = await self.tools.execute("search_files", {"pattern": "*.py"}, str(project))

        assert sorted(result.output.splitlines()) == ["src/main.py", "src/util.py"]

    @pytest.mark.asyncio
    async def test_search_without_matches(self, project):
        result = await self.tools.execute("search_files", {"pattern": "*.rs"}, str(project))

        assert result.success
        assert result.output == "No matches"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, project):
        result = await self.tools.execute("run_shell", {"command": "rm -rf /"}, str(project))

        assert not result.success
        assert result.error == "Unknown tool: run_shell"


class TestFileInsight:

    def test_package_json_with_scripts(self):
        assert extract_file_insight('{"scripts": {}}', "web/package.json") == \
            "Node.js project with 1 lines, has scripts defined"

    def test_makefile_targets(self):
        content = "build:\n\tgo build\ntest: build\n\tgo test\n# note: ignored\n"

        assert extract_file_insight(content, "Makefile") == "Makefile with ~2 targets"

    def test_generic_sizes(self):
        assert extract_file_insight("", "empty.txt") == "Empty or binary file"
        assert extract_file_insight("a\n" * 150, "big.txt") == "Large file (150 lines)"
