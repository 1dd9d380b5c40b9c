"""Unit tests for the model-sync command line."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
import pytest
from click.testing import CliRunner

from model_sync import __version__
from model_sync.cli import EXIT_SYSTEM_ERROR, EXIT_USER_ERROR, build_config, cli
from model_sync.config import CachePolicy
from model_sync.digest import compute_digest
from model_sync.synchronizer import ArtifactSynchronizer

BASE_ENDPOINT = "https://models.example.com/v1/classifier"
TEST_TOKEN = "test-bearer-token"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def routed(monkeypatch: pytest.MonkeyPatch, remote: Any) -> Any:
    """Route every synchronizer HTTP client to the fake remote."""
    monkeypatch.delenv("MODEL_SYNC_TOKEN", raising=False)
    monkeypatch.setattr(
        ArtifactSynchronizer,
        "_http_client",
        lambda self: httpx.AsyncClient(transport=httpx.MockTransport(remote.handler)),
    )
    return remote


def _sync_args(artifact_dir: Path) -> list[str]:
    return [
        "--endpoint",
        BASE_ENDPOINT,
        "--token",
        TEST_TOKEN,
        "--artifact-dir",
        str(artifact_dir),
    ]


class TestCliGroup:
    """Tests for the top-level group."""

    def test_version(self, cli_runner: CliRunner) -> None:
        """Test --version prints the package version."""
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, cli_runner: CliRunner) -> None:
        """Test --help lists every command."""
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("sync", "check", "digest"):
            assert command in result.output


class TestDigestCommand:
    """Tests for the digest command."""

    def test_prints_hex_digest(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        """Test the bare hex digest is printed."""
        model = tmp_path / "model.mlmodel"
        model.write_bytes(b"weights")

        result = cli_runner.invoke(cli, ["digest", str(model)])

        assert result.exit_code == 0
        assert result.output.strip() == compute_digest(b"weights")

    def test_prefixed(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        """Test --prefixed adds the algorithm tag."""
        model = tmp_path / "model.mlmodel"
        model.write_bytes(b"weights")

        result = cli_runner.invoke(cli, ["digest", "--prefixed", str(model)])

        assert result.exit_code == 0
        assert result.output.strip() == f"md5:{compute_digest(b'weights')}"

    def test_missing_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        """Test a missing file is a usage error."""
        result = cli_runner.invoke(cli, ["digest", str(tmp_path / "nope.mlmodel")])
        assert result.exit_code == 2


class TestSyncCommand:
    """Tests for the sync command."""

    def test_first_run_downloads(
        self, cli_runner: CliRunner, routed: Any, artifact_dir: Path
    ) -> None:
        """Test a first run downloads, compiles and reports progress."""
        result = cli_runner.invoke(cli, ["sync", *_sync_args(artifact_dir)])

        assert result.exit_code == 0, result.output
        assert "retrieving" in result.output
        assert "downloaded" in result.output
        assert (artifact_dir / "model.mlmodel").read_bytes() == b"model-v1"
        assert (artifact_dir / "model.mlmodelc").exists()
        assert routed.digest_count == 0

    def test_second_run_is_up_to_date(
        self, cli_runner: CliRunner, routed: Any, artifact_dir: Path
    ) -> None:
        """Test a repeated run does not download again."""
        cli_runner.invoke(cli, ["sync", *_sync_args(artifact_dir)])

        result = cli_runner.invoke(cli, ["sync", *_sync_args(artifact_dir)])

        assert result.exit_code == 0, result.output
        assert "up to date" in result.output
        assert routed.download_count == 1

    def test_rejected_token(
        self, cli_runner: CliRunner, routed: Any, artifact_dir: Path
    ) -> None:
        """Test a rejected token exits with a user error and a hint."""
        routed.download_status = 401

        result = cli_runner.invoke(cli, ["sync", *_sync_args(artifact_dir)])

        assert result.exit_code == EXIT_USER_ERROR
        assert "Refresh the token" in result.output
        assert TEST_TOKEN not in result.output

    def test_server_failure(
        self, cli_runner: CliRunner, routed: Any, artifact_dir: Path
    ) -> None:
        """Test an unavailable download endpoint exits with a system error."""
        routed.download_status = 503

        result = cli_runner.invoke(cli, ["sync", *_sync_args(artifact_dir)])

        assert result.exit_code == EXIT_SYSTEM_ERROR
        assert not (artifact_dir / "model.mlmodel").exists()

    def test_missing_token(
        self, cli_runner: CliRunner, routed: Any, artifact_dir: Path
    ) -> None:
        """Test a missing token is reported as invalid configuration."""
        result = cli_runner.invoke(
            cli, ["sync", "--endpoint", BASE_ENDPOINT, "--artifact-dir", str(artifact_dir)]
        )

        assert result.exit_code == EXIT_USER_ERROR
        assert "token" in result.output

    def test_missing_config_file(
        self, cli_runner: CliRunner, routed: Any, tmp_path: Path
    ) -> None:
        """Test a missing config file exits with a system error."""
        result = cli_runner.invoke(cli, ["sync", "-c", str(tmp_path / "absent.yaml")])

        assert result.exit_code == EXIT_SYSTEM_ERROR
        assert "not found" in result.output.lower()


class TestCheckCommand:
    """Tests for the check command."""

    def test_update_available(
        self, cli_runner: CliRunner, routed: Any, artifact_dir: Path
    ) -> None:
        """Test check reports a stale artifact without downloading."""
        cli_runner.invoke(cli, ["sync", *_sync_args(artifact_dir)])
        routed.publish(b"model-v2")

        result = cli_runner.invoke(cli, ["check", *_sync_args(artifact_dir)])

        assert result.exit_code == 0, result.output
        assert "Update available" in result.output
        assert routed.download_count == 1
        assert (artifact_dir / "model.mlmodel").read_bytes() == b"model-v1"

    def test_up_to_date(self, cli_runner: CliRunner, routed: Any, artifact_dir: Path) -> None:
        """Test check reports a current artifact."""
        cli_runner.invoke(cli, ["sync", *_sync_args(artifact_dir)])

        result = cli_runner.invoke(cli, ["check", *_sync_args(artifact_dir)])

        assert result.exit_code == 0, result.output
        assert "up to date" in result.output


class TestBuildConfig:
    """Tests for build_config()."""

    def test_file_values_overridden_by_flags(self, tmp_path: Path) -> None:
        """Test command line values take precedence over the config file."""
        config_file = tmp_path / "model-sync.yaml"
        config_file.write_text(
            f"endpoint: {BASE_ENDPOINT}\n"
            "token: from-file\n"
            f"artifact_dir: {tmp_path}\n"
            "artifact_name: from-file.mlmodel\n"
        )

        config = build_config(
            config_file=config_file,
            endpoint=None,
            digest_endpoint=None,
            download_endpoint=None,
            token=None,
            artifact_dir=None,
            artifact_name="from-flag.mlmodel",
            cache_policy=CachePolicy.RECOMPILE_ONLY_IF_CACHE_ABSENT.value,
            timeout=5.0,
        )

        assert config.digest_endpoint == f"{BASE_ENDPOINT}/latest"
        assert config.token.get_secret_value() == "from-file"
        assert config.artifact_path == tmp_path / "from-flag.mlmodel"
        assert config.cache_policy is CachePolicy.RECOMPILE_ONLY_IF_CACHE_ABSENT
        assert config.timeout_seconds == 5.0
