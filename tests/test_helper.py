"""
Tests for helpers, configuration and data models.
"""

import json
import re

import pytest

from ghvault.utils.config import Session, StoreConfig
from ghvault.utils.dataModels import MetadataRecord, records_from_bytes, records_to_bytes
from ghvault.utils.errors import FormatError
from ghvault.utils.helper import (
    display_name,
    file_category,
    format_size,
    generate_file_password,
    guess_mime_type,
    iso_now,
    stored_path_for,
)


class TestNames:

    def test_stored_path(self):
        assert stored_path_for("files", "a b.txt", False, millis=1700000000000) == "files/1700000000000_a b.txt"
        assert stored_path_for("files/", "a.txt", True, millis=1) == "files/1_a.txt.encrypted"
        assert re.fullmatch(r"files/\d{13}_x", stored_path_for("files", "x", False))

    def test_display_name(self):
        assert display_name("files/1700000000000_report.pdf.encrypted") == "report.pdf"
        assert display_name("files/notes.txt") == "notes.txt"
        assert display_name("12_short.txt") == "12_short.txt"

    @pytest.mark.parametrize("name,category", [
        ("photo.JPG", "image"),
        ("report.pdf", "document"),
        ("sheet.csv", "spreadsheet"),
        ("files/1700000000000_song.mp3.encrypted", "audio"),
        ("README", "unknown"),
    ])
    def test_file_category(self, name, category):
        assert file_category(name) == category

    def test_guess_mime_type(self):
        assert guess_mime_type("a.txt") == "text/plain"
        assert guess_mime_type("files/1700000000000_a.png.encrypted") == "image/png"
        assert guess_mime_type("noext") == "application/octet-stream"


class TestFormatting:

    @pytest.mark.parametrize("n,text", [
        (0, "0 Bytes"),
        (500, "500 Bytes"),
        (1536, "1.5 KB"),
        (50 * 1024 * 1024, "50 MB"),
        (3 * 1024 ** 3, "3 GB"),
    ])
    def test_format_size(self, n, text):
        assert format_size(n) == text

    def test_iso_now_is_utc(self):
        assert iso_now().endswith("Z")

    def test_generated_passwords(self):
        a, b = generate_file_password(), generate_file_password()
        assert len(a) == 32 and a != b
        assert len(generate_file_password(12)) == 12


class TestConfig:

    def test_from_env_with_overrides(self, monkeypatch):
        monkeypatch.setenv("GHVAULT_OWNER", "env-owner")
        monkeypatch.setenv("GHVAULT_REPO", "env-repo")
        monkeypatch.delenv("GHVAULT_BRANCH", raising=False)
        config = StoreConfig.from_env(repo_name="cli-repo", branch=None)
        assert config.owner == "env-owner"
        assert config.repo_name == "cli-repo"
        assert config.branch == "main"
        assert config.repo_url == "https://api.github.com/repos/env-owner/cli-repo"
        assert config.max_object_size == 50 * 1024 * 1024

    def test_unconfigured(self, monkeypatch):
        monkeypatch.delenv("GHVAULT_OWNER", raising=False)
        monkeypatch.delenv("GHVAULT_REPO", raising=False)
        assert not StoreConfig.from_env().is_valid

    def test_session_hides_token(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_secret")
        session = Session.from_env()
        assert session.bearer_token == "ghp_secret"
        assert "ghp_secret" not in repr(session)


class TestRecords:

    def test_round_trip_keeps_unknown_keys(self):
        raw = json.dumps([{
            "fileName": "a.txt", "fileType": "text/plain", "fileSize": 3, "timestamp": 1,
            "path": "files/1_a.txt", "encrypted": False, "downloadUrl": "https://raw/x",
        }]).encode()
        (rec,) = records_from_bytes(raw)
        (again,) = json.loads(records_to_bytes([rec]))
        assert again["downloadUrl"] == "https://raw/x"
        assert again["path"] == "files/1_a.txt"

    def test_missing_fields_get_defaults(self):
        rec = MetadataRecord.from_dict({"path": "files/1_x.bin.encrypted"})
        assert rec.file_name == "1_x.bin.encrypted"
        assert rec.encrypted is True
        assert rec.password_hint is None

    @pytest.mark.parametrize("flag,path,expected", [
        ("false", "files/1_x.bin.encrypted", True),
        ("true", "files/1_x.bin", False),
        (0, "files/1_x.bin.encrypted", True),
        (False, "files/1_x.bin.encrypted", False),
        (True, "files/1_x.bin", True),
    ])
    def test_encrypted_flag_must_be_a_boolean(self, flag, path, expected):
        rec = MetadataRecord.from_dict({"path": path, "encrypted": flag})
        assert rec.encrypted is expected

    @pytest.mark.parametrize("raw", [b"{}", b"[1]", b"[{\"fileName\": \"no path\"}]", b"nope"])
    def test_bad_documents(self, raw):
        with pytest.raises(FormatError):
            records_from_bytes(raw)

    def test_blank_document_is_empty(self):
        assert records_from_bytes(b"  \n") == []
