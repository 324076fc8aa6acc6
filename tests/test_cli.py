"""
Tests for the command line interface.
"""

from typer.testing import CliRunner

from shared.crypto_utils import KeyPair
from client.cli import app

runner = CliRunner()


class TestKeygen:
    """Tests for the keygen command."""

    def test_keygen_writes_key(self, tmp_path):
        out = tmp_path / "consumer.key"
        result = runner.invoke(app, ["keygen", "--out", str(out)])

        assert result.exit_code == 0
        assert KeyPair.load(out).public_key_b64 in result.output

    def test_keygen_refuses_overwrite(self, tmp_path):
        """Test that an existing key is kept without --force."""
        out = tmp_path / "consumer.key"
        runner.invoke(app, ["keygen", "--out", str(out)])
        original = out.read_bytes()

        result = runner.invoke(app, ["keygen", "--out", str(out)])

        assert result.exit_code == 1
        assert out.read_bytes() == original


class TestInputErrors:
    """Tests for errors reported before contacting any service."""

    def test_upload_missing_file(self, tmp_path):
        result = runner.invoke(app, ["upload", str(tmp_path / "missing.bin")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_upload_bad_tag(self, tmp_path):
        file = tmp_path / "data.bin"
        file.write_bytes(b"data")

        result = runner.invoke(app, ["upload", str(file), "--tag", "{not json"])

        assert result.exit_code == 1
        assert "Invalid --tag JSON" in result.output

    def test_submit_missing_key(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("poll_interval: 0.5\n")

        result = runner.invoke(app, [
            "--config", str(config),
            "submit", "data-1", "--key", str(tmp_path / "none.key"),
            "--wallet", str(tmp_path / "wallet.key"),
        ])

        assert result.exit_code == 1
        assert "Key file not found" in result.output

    def test_invalid_config(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("poll_interval: -1\n")

        result = runner.invoke(app, [
            "--config", str(config), "submit", "data-1", "--key", str(tmp_path / "k"),
        ])

        assert result.exit_code == 1
