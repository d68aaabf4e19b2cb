"""Tests for CLI commands and argument parsing."""

import json
from unittest.mock import MagicMock, patch

import pytest

from secrets_vault.config import Config
from secrets_vault.main import build_parser, format_value, main
from secrets_vault.store import SecretsStore

from conftest import FAST_ITERATIONS, TEST_PASSWORD


def read_tree(path, password=TEST_PASSWORD):
    store = SecretsStore(path=path, config=Config(kdf_iterations=FAST_ITERATIONS))
    return store.read(password).tree


@pytest.fixture
def with_password(cli_env, monkeypatch):
    monkeypatch.setenv("SECRETS_PASSWORD", TEST_PASSWORD)
    return cli_env


@pytest.fixture
def populated(with_password):
    main(["write", "bitso/prod", "{key: abc, secret: def}"])
    return with_password


class TestParser:
    """Tests for argument parsing."""

    def test_file_after_subcommand(self):
        args = build_parser().parse_args(["read", "a/b", "--file", "x.json"])
        assert args.file == "x.json"

    def test_file_before_subcommand_survives(self):
        args = build_parser().parse_args(["--file", "x.json", "read", "a/b"])
        assert args.file == "x.json"

    def test_no_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1
        assert "usage" in capsys.readouterr().out


class TestWriteRead:
    """Tests for write, read and inspect."""

    def test_write_creates_file(self, with_password, capsys):
        main(["write", "bitso/prod/key", "abc"])
        assert read_tree(with_password) == {"bitso": {"prod": {"key": "abc"}}}
        assert f"bytes to {with_password}." in capsys.readouterr().out

    def test_read_leaf(self, populated, capsys):
        capsys.readouterr()
        main(["read", "bitso/prod/key"])
        assert capsys.readouterr().out == "abc\n"

    def test_read_branch(self, populated, capsys):
        capsys.readouterr()
        main(["read", "[bitso, prod]"])
        assert capsys.readouterr().out == "key: abc\nsecret: def\n"

    def test_read_missing(self, populated, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["read", "bitso/dev"])
        assert exc.value.code == 1
        assert "Entry not found: bitso/dev" in capsys.readouterr().err

    def test_inspect_masks_values(self, populated, capsys):
        capsys.readouterr()
        main(["inspect"])
        out = capsys.readouterr().out
        assert "abc" not in out
        assert "key: '***'" in out

    def test_typed_values(self, with_password, capsys):
        main(["write", "[svc, 1]", "8080"])
        assert read_tree(with_password) == {"svc": {1: 8080}}
        capsys.readouterr()
        main(["read", "[svc, 1]"])
        assert capsys.readouterr().out == "8080\n"

    def test_values_keep_their_text(self, with_password, capsys):
        main(["write", "svc/pin", "0123"])
        main(["write", "svc/enabled", "yes"])
        main(["write", "svc/window", "12:30"])
        assert read_tree(with_password) == {"svc": {"pin": "0123", "enabled": "yes", "window": "12:30"}}
        capsys.readouterr()
        main(["read", "svc/pin"])
        assert capsys.readouterr().out == "0123\n"

    def test_explicit_file_flag(self, with_password, temp_vault_dir):
        other = temp_vault_dir / "other.json"
        main(["write", "a", "1", "--file", str(other)])
        assert read_tree(other) == {"a": 1}
        assert not with_password.exists()


class TestMergeDelete:
    """Tests for merge and delete."""

    def test_merge(self, populated):
        main(["merge", "bitso/prod", '{"client_id": 123}'])
        assert read_tree(populated)["bitso"]["prod"] == {"key": "abc", "secret": "def", "client_id": 123}

    def test_merge_rejects_non_mapping(self, populated, capsys):
        with pytest.raises(SystemExit):
            main(["merge", "bitso/prod", "[1, 2]"])
        assert "Error executing merge" in capsys.readouterr().err

    def test_delete_prunes(self, populated):
        main(["delete", "bitso/prod/key"])
        assert read_tree(populated) == {"bitso": {"prod": {"secret": "def"}}}
        main(["delete", "bitso/prod/secret"])
        assert read_tree(populated) == {}


class TestErrors:
    """Tests for error reporting."""

    def test_wrong_override_fails_once(self, populated, monkeypatch, capsys):
        monkeypatch.setenv("SECRETS_PASSWORD", "wrong")
        with pytest.raises(SystemExit) as exc:
            main(["read", "bitso"])
        assert exc.value.code == 1
        assert "Error executing read: passphrase incorrect" in capsys.readouterr().err

    def test_malformed_path(self, with_password, capsys):
        with pytest.raises(SystemExit):
            main(["write", "a//b", "1"])
        assert "Error executing write" in capsys.readouterr().err
        assert not with_password.exists()

    def test_retries_interactive_prompt(self, populated, monkeypatch, capsys):
        monkeypatch.delenv("SECRETS_PASSWORD")
        answers = iter(["nope", TEST_PASSWORD])
        capsys.readouterr()
        with patch("secrets_vault.main.read_password", side_effect=lambda prompt: next(answers)):
            main(["read", "bitso/prod/secret"])
        captured = capsys.readouterr()
        assert "try again" in captured.err
        assert captured.out == "def\n"

    def test_gives_up_after_three_attempts(self, populated, monkeypatch, capsys):
        monkeypatch.delenv("SECRETS_PASSWORD")
        with patch("secrets_vault.main.read_password", return_value="nope") as mock_read:
            with pytest.raises(SystemExit):
                main(["inspect"])
        assert mock_read.call_count == 3


class TestEditPasswd:
    """Tests for edit and passwd."""

    def test_edit_existing(self, populated, monkeypatch):
        monkeypatch.setattr("secrets_vault.main.confirm", lambda prompt: False)
        with patch("secrets_vault.main.edit_tree", return_value={"edited": True}) as mock_edit:
            main(["edit", "--editor", "ed"])
        mock_edit.assert_called_once_with({"bitso": {"prod": {"key": "abc", "secret": "def"}}}, "ed")
        assert read_tree(populated) == {"edited": True}

    def test_edit_new_file_sets_password(self, cli_env):
        with patch("secrets_vault.main.read_new_password", return_value="brand new") as mock_new, \
                patch("secrets_vault.main.edit_tree", return_value={"a": 1}):
            main(["edit"])
        mock_new.assert_called_once()
        assert read_tree(cli_env, "brand new") == {"a": 1}

    def test_edit_failure_keeps_file(self, populated, monkeypatch, capsys):
        from secrets_vault.errors import EditorFailure

        monkeypatch.setattr("secrets_vault.main.confirm", lambda prompt: False)
        before = populated.read_bytes()
        with patch("secrets_vault.main.edit_tree", side_effect=EditorFailure("Editor 'ed' exited with status 1")):
            with pytest.raises(SystemExit):
                main(["edit"])
        assert populated.read_bytes() == before
        assert "exited with status 1" in capsys.readouterr().err

    def test_passwd(self, populated):
        with patch("secrets_vault.main.read_new_password", return_value="rotated"):
            main(["passwd"])
        assert read_tree(populated, "rotated")["bitso"]["prod"]["key"] == "abc"

    def test_passwd_asks_old_passphrase_once(self, populated, monkeypatch):
        monkeypatch.delenv("SECRETS_PASSWORD")
        with patch("secrets_vault.main.read_password", return_value=TEST_PASSWORD) as mock_read, \
                patch("secrets_vault.main.read_new_password", return_value="rotated") as mock_new:
            main(["passwd"])
        assert mock_read.call_count == 1
        mock_new.assert_called_once_with(f"New password for {populated}: ")
        assert read_tree(populated, "rotated")["bitso"]["prod"]["secret"] == "def"


class TestWithEnv:
    """Tests for with-env."""

    @patch("secrets_vault.env_inject.subprocess.run")
    def test_with_env(self, mock_run, populated):
        mock_run.return_value = MagicMock(returncode=0)
        with pytest.raises(SystemExit) as exc:
            main(["with-env", json.dumps({"BITSO_KEY": "bitso/prod/key"}), "--", "env"])
        assert exc.value.code == 0
        args, kwargs = mock_run.call_args
        assert args[0] == ["env"]
        assert kwargs["env"]["BITSO_KEY"] == "abc"


class TestFormatValue:
    """Tests for format_value."""

    def test_string(self):
        assert format_value("abc") == "abc"

    def test_scalar(self):
        assert format_value(123) == "123"
        assert format_value(True) == "true"

    def test_mapping(self):
        assert format_value({"a": 1}) == "a: 1"
