"""Tests for HTTP downloads."""
from unittest.mock import MagicMock

import pytest
import requests

from piprov.core.download import download_file, fetch_text
from piprov.core.errors import PrerequisiteError


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("piprov.core.retry.time.sleep", lambda seconds: None)


def _response(text="", chunks=()):
    response = MagicMock()
    response.text = text
    response.iter_content.return_value = list(chunks)
    response.__enter__.return_value = response
    return response


class TestFetchText:
    """Test small text downloads."""

    def test_returns_body(self, monkeypatch):
        get = MagicMock(return_value=_response(text="-----BEGIN PGP PUBLIC KEY BLOCK-----"))
        monkeypatch.setattr("piprov.core.download.requests.get", get)

        assert fetch_text("https://example.com/gpg").startswith("-----BEGIN PGP")
        assert get.call_args.kwargs["timeout"] == 60

    def test_retries_then_fails(self, monkeypatch):
        get = MagicMock(side_effect=requests.ConnectionError("down"))
        monkeypatch.setattr("piprov.core.download.requests.get", get)

        with pytest.raises(PrerequisiteError, match="Failed to download"):
            fetch_text("https://example.com/gpg")
        assert get.call_count == 3


class TestDownloadFile:
    """Test streamed downloads."""

    def test_writes_chunks(self, tmp_path, monkeypatch):
        monkeypatch.setattr("piprov.core.download.requests.get",
                            MagicMock(return_value=_response(chunks=[b"abc", b"", b"def"])))
        dest = tmp_path / "runner.tar.gz"

        assert download_file("https://example.com/runner.tar.gz", dest) == dest
        assert dest.read_bytes() == b"abcdef"
        assert not (tmp_path / "runner.tar.gz.part").exists()

    def test_failure_leaves_nothing(self, tmp_path, monkeypatch):
        monkeypatch.setattr("piprov.core.download.requests.get",
                            MagicMock(side_effect=requests.Timeout("slow")))
        dest = tmp_path / "runner.tar.gz"

        with pytest.raises(PrerequisiteError):
            download_file("https://example.com/runner.tar.gz", dest)
        assert list(tmp_path.iterdir()) == []

    def test_write_error_removes_partial_file(self, tmp_path, monkeypatch):
        def chunks(chunk_size):
            yield b"abc"
            raise OSError(28, "No space left on device")

        response = _response()
        response.iter_content.side_effect = chunks
        monkeypatch.setattr("piprov.core.download.requests.get", MagicMock(return_value=response))
        dest = tmp_path / "runner.tar.gz"

        with pytest.raises(PrerequisiteError, match="No space left on device"):
            download_file("https://example.com/runner.tar.gz", dest)
        assert list(tmp_path.iterdir()) == []
