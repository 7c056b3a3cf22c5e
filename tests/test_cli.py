"""Tests for the command-line interface."""

import pytest
from click.testing import CliRunner

from newsclipper.cli import TIMEOUT_EXIT_CODE, main


@pytest.fixture
def runner(monkeypatch):
    for key in ("NEWSCLIPPER_HANDLER_LOCATIONS", "NEWSCLIPPER_CACHE_DIR", "NEWSCLIPPER_STATE_FILE"):
        monkeypatch.delenv(key, raising=False)
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "newsclipper.cfg"
    path.write_text(
        f'HANDLER_LOCATIONS="{tmp_path / "handlers"}"\n'
        f'CACHE_DIR="{tmp_path / "cache"}"\n'
        f'STATE_FILE="{tmp_path / "state.json"}"\n'
        'REGISTRY_URL="http://registry.test/cgi-bin"\n'
        'AUTO_DOWNLOAD_BUGFIX_UPDATES="no"\n'
        'INTERACTIVE="no"\n'
    )
    return path


class TestDue:
    """Tests for the due command."""

    def test_last_due(self, runner):
        result = runner.invoke(main, ["-q", "due", "20", "--now", "2024-03-07T00:00:00+00:00"])
        assert result.exit_code == 0
        assert "Last due: 2024-03-06T04:00:00+00:00" in result.output

    def test_always(self, runner):
        result = runner.invoke(main, ["-q", "due", "always"])
        assert result.exit_code == 0
        assert "Always refreshed" in result.output

    def test_invalid(self, runner):
        result = runner.invoke(main, ["-q", "due", "someday"])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestCache:
    """Tests for the cache command."""

    def test_empty(self, runner, config_file):
        result = runner.invoke(main, ["-q", "-c", str(config_file), "cache"])
        assert result.exit_code == 0
        assert "0 entries" in result.output

    def test_clear(self, runner, config_file):
        result = runner.invoke(main, ["-q", "-c", str(config_file), "cache", "--clear"])
        assert result.exit_code == 0
        assert "Removed 0 cache entries" in result.output

    def test_corrupt_registry(self, runner, tmp_path, config_file):
        """Test a damaged registry is reported and --clear recovers."""
        cache_dir = tmp_path / "cache"
        cache_dir.mkdir()
        (cache_dir / "registry.txt").write_text("http://a 0123.html 60\n")
        (cache_dir / "0123.html").write_bytes(b"a" * 60)

        result = runner.invoke(main, ["-q", "-c", str(config_file), "cache"])
        assert result.exit_code == 1
        assert "--clear" in result.output

        result = runner.invoke(main, ["-q", "-c", str(config_file), "cache", "--clear"])
        assert result.exit_code == 0
        assert "Removed 1 cache entries" in result.output
        assert list(cache_dir.iterdir()) == []


class TestRun:
    """Tests for the run command."""

    @pytest.fixture
    def document(self, tmp_path, handler_code, install_handler):
        root = tmp_path / "handlers"
        install_handler(root, "clitest", handler_code(class_name="CliTest"))
        source = tmp_path / "page.tmpl"
        source.write_text("<!--newsclipper <input name=clitest> <output name=clitest> -->")
        return source

    def test_run(self, runner, tmp_path, config_file, document):
        output = tmp_path / "page.html"
        result = runner.invoke(
            main, ["-q", "-c", str(config_file), "run", "-i", str(document), "-o", str(output)]
        )
        assert result.exit_code == 0, result.output
        assert output.read_text() == "hello"
        assert "Wrote" in result.output

    def test_mismatched_documents(self, runner, tmp_path, config_file, document):
        result = runner.invoke(
            main, ["-q", "-c", str(config_file), "run", "-i", str(document), "-i", str(document),
                   "-o", str(tmp_path / "a.html")]
        )
        assert result.exit_code == 1

    def test_timeout_exit_code(self, runner, tmp_path, config_file, document, monkeypatch):
        monkeypatch.setattr("newsclipper.runner.Deadline.expired", property(lambda self: True))
        output = tmp_path / "page.html"

        result = runner.invoke(
            main, ["-q", "-c", str(config_file), "run", "-i", str(document), "-o", str(output)]
        )
        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert not output.exists()

    def test_seat_limit(self, runner, tmp_path, config_file, document, handler_code, install_handler):
        install_handler(tmp_path / "handlers", "other", handler_code(class_name="Other"))
        output = tmp_path / "page.html"

        result = runner.invoke(
            main, ["-q", "-c", str(config_file), "run", "--max-handlers", "1",
                   "-i", str(document), "-o", str(output)]
        )
        assert result.exit_code == 0
        assert "more than the allowed number" in output.read_text()
