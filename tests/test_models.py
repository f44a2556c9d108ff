"""
Tests for pipeline data model helpers.
"""

from shellsense.pipeline.models import (
    CommandSuggestion,
    GatheredContext,
    GitInfo,
    PipelinePhase,
    ProjectType,
    ResearchFindings,
    SessionContext,
    SuggestionSource,
    TerminalContext,
    FileInsight,
    environment_summary,
)


class TestCacheKey:

    def test_same_situation_same_key(self):
        a = TerminalContext(cwd="/p", last_output="error: x", last_exit_code=1, git_info=GitInfo("main"))
        b = TerminalContext(cwd="/p", last_output="error: x", last_exit_code=1, git_info=GitInfo("main"),
                            recent_commands=["ls"])

        assert a.cache_key == b.cache_key

    def test_components(self):
        key = TerminalContext(cwd="/p", last_exit_code=127, git_info=GitInfo("dev", is_dirty=True)).cache_key

        assert key.startswith("/p|dev:True|err127|")

    def test_no_git_and_success(self):
        assert TerminalContext(cwd="/p").cache_key.startswith("/p|nogit|ok|")

    def test_output_beyond_prefix_is_ignored(self):
        prefix = "x" * 100
        a = TerminalContext(cwd="/p", last_output=prefix + "first")
        b = TerminalContext(cwd="/p", last_output=prefix + "second")
        c = TerminalContext(cwd="/p", last_output="y" + prefix)

        assert a.cache_key == b.cache_key
        assert a.cache_key != c.cache_key


class TestSuggestions:

    def test_equality_by_command(self):
        a = CommandSuggestion("git push", "push it", confidence=0.9)
        b = CommandSuggestion("git push", "different reason", source=SuggestionSource.GIT_STATUS)

        assert a == b
        assert len({a, b}) == 1

    def test_source_parsing(self):
        assert SuggestionSource.parse("errorAnalysis") == SuggestionSource.ERROR_ANALYSIS
        assert SuggestionSource.parse("git_status") == SuggestionSource.GIT_STATUS
        assert SuggestionSource.parse("bogus") == SuggestionSource.GENERAL_CONTEXT
        assert SuggestionSource.parse(None) == SuggestionSource.GENERAL_CONTEXT


class TestSessionContext:

    def test_bounded_history(self):
        session = SessionContext()
        for index in range(25):
            session.add(f"cmd{index}", "/p")

        assert len(session.commands) == SessionContext.MAX_COMMANDS
        assert session.commands[0].command == "cmd5"

    def test_exit_code_markers(self):
        session = SessionContext()
        session.add("make", "/p")
        session.update_last_exit_code(2)
        session.add("make clean", "/p")
        session.update_last_exit_code(0)
        session.add("make", "/p")

        assert session.recent_command_strings() == ["make ✗(2)", "make clean ✓", "make"]


class TestPhase:

    def test_descriptions(self):
        assert PipelinePhase.idle().is_active is False
        assert PipelinePhase.researching("read_file: go.mod", 2).description == "Step 2: read_file: go.mod"
        assert PipelinePhase.researching("", 3).description == "Researching (step 3)..."
        assert PipelinePhase.planning().label == "Planning"


class TestPromptFormatting:

    def test_findings_empty(self):
        assert ResearchFindings().formatted_for_prompt() == ""

    def test_findings_sections(self):
        findings = ResearchFindings(
            discoveries=["Uses pnpm"],
            file_insights=[FileInsight("package.json", "Node.js project with 40 lines, has scripts defined")],
        )

        text = findings.formatted_for_prompt()

        assert "=== Research Discoveries ===\nUses pnpm" in text
        assert "• package.json: Node.js project" in text

    def test_gathered_context_truncates_output(self):
        gathered = GatheredContext(cwd="/p", terminal_output="z" * 900)

        assert gathered.formatted_for_prompt().endswith("z" * 500)
        assert "z" * 501 not in gathered.formatted_for_prompt()

    def test_environment_summary(self):
        context = TerminalContext(cwd="/p", project_type=ProjectType.RUST,
                                  git_info=GitInfo("main", ahead=2))

        assert environment_summary(context) == ["CWD: /p", "Project type: rust", "Git: branch=main, 2 to push"]
