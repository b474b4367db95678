"""
Test suite for configuration loading.
"""

import pytest
from pydantic import ValidationError

from txsigner import config as config_module
from txsigner.config import SignerConfig, get_config, set_config


class TestSignerConfig:
    """Tests for the settings model."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TXSIGNER_RPC_URL", raising=False)
        config = SignerConfig(_env_file=None)

        assert config.close_delay_seconds == 3.0
        assert config.receipt_timeout_seconds is None
        assert config.query_rpc_url == config.wallet_rpc_url

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("TXSIGNER_WALLET_RPC_URL", "http://wallet:8545")
        monkeypatch.setenv("TXSIGNER_RPC_URL", "http://node:8545")
        monkeypatch.setenv("TXSIGNER_CLOSE_DELAY_SECONDS", "1.5")
        monkeypatch.setenv("TXSIGNER_RECEIPT_TIMEOUT_SECONDS", "120")
        monkeypatch.setenv("TXSIGNER_CHAIN_ID", "5")

        config = SignerConfig(_env_file=None)

        assert config.wallet_rpc_url == "http://wallet:8545"
        assert config.query_rpc_url == "http://node:8545"
        assert config.close_delay_seconds == 1.5
        assert config.receipt_timeout_seconds == 120
        assert config.chain_id == 5

    @pytest.mark.parametrize("field,value", [
        ("close_delay_seconds", 0),
        ("receipt_timeout_seconds", -1),
        ("chain_id", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            SignerConfig(_env_file=None, **{field: value})


class TestGlobalConfig:
    """Tests for the process-wide configuration."""

    def test_set_and_get(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)
        config = SignerConfig(_env_file=None, close_delay_seconds=0.5)

        set_config(config)

        assert get_config() is config

    def test_created_on_first_use(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config", None)

        assert get_config() is get_config()
