"""Tests for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from payfinder.cli import app, _ensure_db_parent, _setup_logging
from payfinder.errors import PersistenceError
from payfinder.index.storage import SQLitePayrollStore


runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console():
    """Render tables wide enough that cells are not wrapped."""
    with patch("payfinder.cli.console", Console(width=200)):
        yield


@pytest.fixture
def loaded_db(tmp_path: Path, sample_csv: Path) -> Path:
    db_path = tmp_path / "payroll.db"
    result = runner.invoke(app, ["load", str(sample_csv), "--db", str(db_path)])
    assert result.exit_code == 0
    return db_path


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("payfinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("payfinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestEnsureDbParent:
    """Tests for _ensure_db_parent helper."""

    def test_ensure_db_parent_creates_directory(self, tmp_path: Path) -> None:
        """Creates parent directory if it doesn't exist."""
        db_path = tmp_path / "subdir" / "test.db"
        assert not db_path.parent.exists()
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()


class TestLoadCommand:
    """Tests for the load command."""

    def test_load_populates_database(self, tmp_path: Path, sample_csv: Path) -> None:
        """Loads every record and reports the totals."""
        db_path = tmp_path / "nested" / "payroll.db"

        result = runner.invoke(app, ["load", str(sample_csv), "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Loaded: 4" in result.stdout
        with SQLitePayrollStore(db_path) as store:
            assert store.record_count() == 4

    def test_load_skips_populated_database(self, loaded_db: Path, sample_csv: Path) -> None:
        """Leaves an already populated database untouched."""
        result = runner.invoke(app, ["load", str(sample_csv), "--db", str(loaded_db)])

        assert result.exit_code == 0
        assert "already populated" in result.stdout
        with SQLitePayrollStore(loaded_db) as store:
            assert store.record_count() == 4

    def test_load_force_reloads(self, loaded_db: Path, sample_csv: Path) -> None:
        """Drops existing rows when --force is given."""
        result = runner.invoke(app, ["load", str(sample_csv), "--db", str(loaded_db), "--force", "-v"])

        assert result.exit_code == 0
        with SQLitePayrollStore(loaded_db) as store:
            assert store.record_count() == 4

    def test_load_missing_source(self, tmp_path: Path) -> None:
        """Exits with an error when the export cannot be read."""
        result = runner.invoke(
            app, ["load", str(tmp_path / "missing.csv"), "--db", str(tmp_path / "payroll.db")]
        )

        assert result.exit_code == 1
        assert "Load failed" in result.stdout

    @patch("payfinder.cli.SQLitePayrollStore")
    def test_load_persistence_failure(
        self, mock_store_class: MagicMock, tmp_path: Path, sample_csv: Path
    ) -> None:
        """Exits with an error when batches could not be stored."""
        mock_store = MagicMock()
        mock_store.load_if_empty.side_effect = PersistenceError("1 of 1 batches failed")
        mock_store_class.return_value = mock_store

        result = runner.invoke(app, ["load", str(sample_csv), "--db", str(tmp_path / "payroll.db")])

        assert result.exit_code == 1
        assert "not stored" in result.stdout
        mock_store.close.assert_called_once()


class TestSearchCommand:
    """Tests for the search command."""

    def test_search_database_not_found(self, tmp_path: Path) -> None:
        """Raises error when database doesn't exist."""
        db_path = tmp_path / "nonexistent.db"
        result = runner.invoke(app, ["search", "JUAN", "--db", str(db_path)])
        assert result.exit_code != 0

    def test_search_no_results(self, loaded_db: Path) -> None:
        """Shows message when no results found."""
        result = runner.invoke(app, ["search", "NADIE", "--db", str(loaded_db)])
        assert result.exit_code == 0
        assert "No matches found" in result.stdout

    def test_search_with_results(self, loaded_db: Path) -> None:
        """Displays results in a table."""
        result = runner.invoke(app, ["search", "MAGO", "--db", str(loaded_db)])

        assert result.exit_code == 0
        assert "MAGO750505BBB" in result.stdout
        assert "Maria Garcia Orozco" in result.stdout
        assert "$15,000.00" in result.stdout

    @patch("payfinder.cli.SQLitePayrollStore")
    def test_search_passes_limit(self, mock_store_class: MagicMock, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        db_path.touch()
        mock_store = MagicMock()
        mock_store.search.return_value = []
        mock_store_class.return_value = mock_store

        runner.invoke(app, ["search", "JUAN", "--db", str(db_path), "--limit", "5"])

        assert mock_store.search.call_args.kwargs["limit"] == 5


class TestLookupCommand:
    """Tests for the in-memory lookup command."""

    def test_lookup_by_rfc(self, sample_csv: Path) -> None:
        result = runner.invoke(app, ["lookup", "ZUTA900101CCC", "--source", str(sample_csv)])

        assert result.exit_code == 0
        assert "Ana Perez Zuniga" in result.stdout

    def test_lookup_by_name(self, sample_csv: Path) -> None:
        result = runner.invoke(app, ["lookup", "garcia", "--source", str(sample_csv), "--by", "name"])

        assert result.exit_code == 0
        assert "MAGO750505BBB" in result.stdout

    def test_lookup_no_results(self, sample_csv: Path) -> None:
        result = runner.invoke(app, ["lookup", "ZZZZ", "--source", str(sample_csv), "--by", "rfc"])

        assert result.exit_code == 0
        assert "No matches found" in result.stdout

    def test_lookup_invalid_mode(self, sample_csv: Path) -> None:
        result = runner.invoke(app, ["lookup", "JUAN", "--source", str(sample_csv), "--by", "cct"])
        assert result.exit_code != 0

    def test_lookup_missing_source(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["lookup", "JUAN", "--source", str(tmp_path / "missing.csv")])

        assert result.exit_code == 1
        assert "Load failed" in result.stdout


class TestCountCommand:
    """Tests for the count command."""

    def test_count_database_not_found(self, tmp_path: Path) -> None:
        """Shows message when database doesn't exist."""
        result = runner.invoke(app, ["count", "--db", str(tmp_path / "nonexistent.db")])
        assert result.exit_code == 0
        assert "Database not found" in result.stdout

    def test_count(self, loaded_db: Path) -> None:
        result = runner.invoke(app, ["count", "--db", str(loaded_db)])
        assert result.exit_code == 0
        assert "Records: 4" in result.stdout


class TestServeCommand:
    """Tests for the serve command."""

    def test_serve_starts_server(self, tmp_path: Path) -> None:
        """Starts uvicorn server with correct parameters."""
        db_path = tmp_path / "test.db"
        db_path.touch()

        with patch("uvicorn.run") as mock_uvicorn_run, patch("payfinder.web.app.configure") as mock_configure:
            result = runner.invoke(
                app, ["serve", "--host", "0.0.0.0", "--port", "9000", "--db", str(db_path)]
            )
            assert result.exit_code == 0
            mock_uvicorn_run.assert_called_once()
            call_kwargs = mock_uvicorn_run.call_args[1]
            assert call_kwargs["host"] == "0.0.0.0"
            assert call_kwargs["port"] == 9000
            assert mock_configure.call_args.args[0].db_path == db_path

    def test_serve_warns_missing_database(self, tmp_path: Path) -> None:
        """Shows warning when database doesn't exist."""
        db_path = tmp_path / "nonexistent.db"
        with patch("uvicorn.run"), patch("payfinder.web.app.configure"):
            result = runner.invoke(app, ["serve", "--db", str(db_path)])
            assert result.exit_code == 0
            assert "database not found" in result.stdout.lower()
