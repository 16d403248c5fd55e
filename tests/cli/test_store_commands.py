"""Tests for reeves search, dump, stats, remove, rebuild-index and textindex."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from reeves.cli.main import cli
from reeves.signature import CrateId
from reeves.store import SignatureStore
from reeves.text import TextIndex

runner = CliRunner()

PARSE = "fn Header::parse(&self, &[u8]) -> Option<Header>"
SPLIT = "fn split(&Header, u8) -> Vec<Header>"


def invoke(db: Path, *args: str) -> Result:
    return runner.invoke(cli, ["--db", str(db), *args])


class TestSearchCommand:
    """reeves search command tests."""

    def test_given_seeded_store_when_search_json_then_prints_structural_hits(
        self, seeded_db: Path
    ) -> None:
        # Given / When
        result = invoke(seeded_db, "search", "--json", "Header", "u8")

        # Then
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [h["signature"] for h in data["hits"]] == [PARSE, SPLIT]

    def test_given_seeded_store_when_search_then_prints_signature_and_crate(
        self, seeded_db: Path
    ) -> None:
        result = invoke(seeded_db, "search", "Option")

        assert result.exit_code == 0
        assert PARSE in result.output
        assert "demo@0.1.0" in result.output

    def test_given_limit_when_search_then_reports_remaining(self, seeded_db: Path) -> None:
        result = invoke(seeded_db, "search", "--limit", "1", "Header")

        assert result.exit_code == 0
        assert "2 more structural matches" in result.output

    def test_given_unknown_type_when_search_then_no_matches(self, seeded_db: Path) -> None:
        result = invoke(seeded_db, "search", "Token")

        assert result.exit_code == 0
        assert "No matches" in result.output

    def test_given_bad_query_when_search_then_fails_with_parse_error(
        self, seeded_db: Path
    ) -> None:
        result = invoke(seeded_db, "search", "Header", "Vec<")

        assert result.exit_code == 1
        assert "QUERY_PARSE_ERROR" in result.output

    def test_given_text_index_when_search_then_appends_text_hits(
        self, seeded_db: Path, tmp_path: Path
    ) -> None:
        """Text hits follow structural hits once the text index exists."""
        # Given
        index_path = tmp_path / "cwd" / "reeves.tantivy"
        assert invoke(seeded_db, "textindex", "--index", str(index_path)).exit_code == 0

        # When
        result = invoke(seeded_db, "search", "--json", "checksum")

        # Then
        data = json.loads(result.stdout)
        assert [(h["fn_key"], h["source"]) for h in data["hits"]] == [("demo@0.1.0#2", "text")]

    def test_given_no_text_flag_when_search_then_text_index_unused(
        self, seeded_db: Path, tmp_path: Path
    ) -> None:
        invoke(seeded_db, "textindex", "--index", str(tmp_path / "cwd" / "reeves.tantivy"))

        result = invoke(seeded_db, "search", "--json", "--no-text", "checksum")

        assert json.loads(result.stdout)["hits"] == []


class TestDumpCommand:
    def test_given_seeded_store_when_dump_then_lists_crates_and_functions(
        self, seeded_db: Path
    ) -> None:
        result = invoke(seeded_db, "dump")

        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0] == "crate demo@0.1.0 import=demo fns=3"
        assert "  other@1.0.0#0 fn split(&Header, u8) -> Vec<Header>" in lines


class TestStatsCommand:
    """reeves stats command tests."""

    def test_given_seeded_store_when_stats_json_then_counts(self, seeded_db: Path) -> None:
        result = invoke(seeded_db, "stats", "--json", "--crates")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["crates"] == 2
        assert data["functions"] == 4
        assert [c["crate"] for c in data["stored"]] == ["demo@0.1.0", "other@1.0.0"]
        assert data["stored"][0]["functions"] == 3

    def test_given_seeded_store_when_stats_then_prints_summary(self, seeded_db: Path) -> None:
        result = invoke(seeded_db, "stats")

        assert result.exit_code == 0
        assert "Crates:        2" in result.output
        assert "Functions:     4" in result.output


class TestRemoveCommand:
    """reeves remove command tests."""

    def test_given_stored_crate_when_remove_then_gone_from_store_and_text(
        self, seeded_db: Path, tmp_path: Path
    ) -> None:
        # Given
        index_path = tmp_path / "cwd" / "reeves.tantivy"
        invoke(seeded_db, "textindex", "--index", str(index_path))

        # When
        result = invoke(seeded_db, "remove", "other@1.0.0")

        # Then
        assert result.exit_code == 0, result.output
        assert "other@1.0.0: removed" in result.output
        with SignatureStore(seeded_db) as store:
            assert store.get_crate(CrateId("other", "1.0.0")) is None
            assert store.get_crate(CrateId("demo", "0.1.0")) is not None
        assert TextIndex(index_path).search("split") == []

    def test_given_missing_crate_when_remove_then_exits_1(self, seeded_db: Path) -> None:
        result = invoke(seeded_db, "remove", "absent@9.9.9")

        assert result.exit_code == 1
        assert "absent@9.9.9: not stored" in result.output

    def test_given_malformed_crate_when_remove_then_usage_error(self, seeded_db: Path) -> None:
        result = invoke(seeded_db, "remove", "no-version")
        assert result.exit_code == 2


class TestRebuildIndexCommand:
    def test_given_seeded_store_when_rebuild_then_reports_entries(self, seeded_db: Path) -> None:
        with SignatureStore(seeded_db) as store:
            expected = store.stats().type_mentions

        result = invoke(seeded_db, "rebuild-index")

        assert result.exit_code == 0
        assert f"Type index rebuilt: {expected} entries" in result.output


class TestTextindexCommand:
    def test_given_seeded_store_when_textindex_then_loads_every_function(
        self, seeded_db: Path, tmp_path: Path
    ) -> None:
        index_path = tmp_path / "text"

        result = invoke(seeded_db, "textindex", "--index", str(index_path))

        assert result.exit_code == 0, result.output
        assert "Indexed 4 functions" in result.output
        assert TextIndex(index_path).doc_count() == 4


class TestConfigErrors:
    def test_given_missing_config_file_when_invoked_then_fails(self, db_path: Path) -> None:
        result = runner.invoke(cli, ["--config", "missing.yaml", "--db", str(db_path), "stats"])

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_given_invalid_env_value_when_invoked_then_fails(
        self, db_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("REEVES__STORE__PAGE_SIZE", "0")

        result = runner.invoke(cli, ["--db", str(db_path), "stats"])

        assert result.exit_code == 1
        assert "page_size" in result.output
