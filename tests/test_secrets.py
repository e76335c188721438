"""Tests for switchboard.secrets module."""

from unittest.mock import patch

import pytest
from keyring.errors import KeyringError

from switchboard import secrets


def test_get_secret_fallback_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """When keyring returns None, fall back to os.environ."""
    monkeypatch.setenv("SB_TEST_SECRET_ENV", "from-env")
    with patch("switchboard.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = None
        assert secrets.get_secret("SB_TEST_SECRET_ENV") == "from-env"


def test_get_secret_prefers_keyring(monkeypatch: pytest.MonkeyPatch) -> None:
    """When keyring has value, it takes precedence over env."""
    monkeypatch.setenv("SB_TEST_SECRET_BOTH", "from-env")
    with patch("switchboard.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = "from-keyring"
        assert secrets.get_secret("SB_TEST_SECRET_BOTH") == "from-keyring"
        mock_kr.get_password.assert_called_once_with("switchboard", "SB_TEST_SECRET_BOTH")


def test_get_secret_keyring_error_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    """When keyring raises KeyringError, fall back to env."""
    monkeypatch.setenv("SB_TEST_SECRET_ERR", "from-env")
    with patch("switchboard.secrets.keyring") as mock_kr:
        mock_kr.get_password.side_effect = KeyringError("fail")
        assert secrets.get_secret("SB_TEST_SECRET_ERR") == "from-env"


def test_get_secret_missing_everywhere(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SB_TEST_SECRET_NONE", raising=False)
    with patch("switchboard.secrets.keyring") as mock_kr:
        mock_kr.get_password.return_value = None
        assert secrets.get_secret("SB_TEST_SECRET_NONE") is None


def test_set_secret_writes_to_keyring() -> None:
    with patch("switchboard.secrets.keyring") as mock_kr:
        secrets.set_secret("SB_API_TOKEN", "tok")
        mock_kr.set_password.assert_called_once_with("switchboard", "SB_API_TOKEN", "tok")
