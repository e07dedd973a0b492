"""Tests for environment settings and key loading."""

import json

import base58
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from tokenmill.config import DEFAULT_PROGRAM_ID, DEFAULT_RPC_URL, Settings
from tokenmill.pda import derive_config_pda
from tokenmill.signing import load_keypair

WALLET = Keypair.from_seed(bytes([1] * 32))
AUTHORITY = Keypair.from_seed(bytes([2] * 32))


def _env(**overrides):
    env = {
        "WALLET_PRIVATE_KEY": base58.b58encode(bytes(WALLET)).decode(),
        "SWAP_AUTHORITY_KEY": json.dumps(list(bytes(AUTHORITY))),
    }
    env.update(overrides)
    return env


class TestSettingsFromEnv:
    def test_loads_both_key_formats(self):
        """Base58 and JSON byte-array secrets both load."""
        settings = Settings.from_env(_env())
        assert settings.wallet.pubkey() == WALLET.pubkey()
        assert settings.swap_authority.pubkey() == AUTHORITY.pubkey()

    def test_defaults(self):
        settings = Settings.from_env(_env())
        assert settings.rpc_url == DEFAULT_RPC_URL
        assert settings.program_id == Pubkey.from_string(DEFAULT_PROGRAM_ID)
        assert settings.api_port == 3000
        assert settings.commitment == "confirmed"

    def test_config_defaults_to_pda(self):
        settings = Settings.from_env(_env())
        assert settings.config_address is None
        assert settings.signing_context().config == derive_config_pda(settings.program_id)

    def test_explicit_config(self):
        config = Keypair.from_seed(bytes([3] * 32)).pubkey()
        settings = Settings.from_env(_env(TOKEN_MILL_CONFIG_PDA=str(config)))
        assert settings.signing_context().config == config

    def test_rpc_url_fallback(self):
        assert Settings.from_env(_env(RPC_URL="http://localhost:8899")).rpc_url == "http://localhost:8899"
        settings = Settings.from_env(_env(RPC_URL="http://a", SOLANA_RPC_URL="http://b"))
        assert settings.rpc_url == "http://b"

    @pytest.mark.parametrize("missing", ["WALLET_PRIVATE_KEY", "SWAP_AUTHORITY_KEY"])
    def test_missing_required(self, missing):
        env = _env()
        del env[missing]
        with pytest.raises(ValueError) as exc_info:
            Settings.from_env(env)
        assert missing in str(exc_info.value)

    def test_invalid_key_not_echoed(self):
        with pytest.raises(ValueError) as exc_info:
            Settings.from_env(_env(WALLET_PRIVATE_KEY="s3cr3t!!"))
        assert "Invalid key material" in str(exc_info.value)
        assert "s3cr3t" not in str(exc_info.value)

    def test_invalid_program_id(self):
        with pytest.raises(ValueError):
            Settings.from_env(_env(TOKEN_MILL_PROGRAM_ID="nope"))

    def test_summary_has_no_secrets(self):
        summary = Settings.from_env(_env()).summary()
        assert summary["wallet"] == str(WALLET.pubkey())
        assert _env()["WALLET_PRIVATE_KEY"] not in json.dumps(summary)


class TestLoadKeypair:
    def test_from_json_file(self, tmp_path):
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(bytes(WALLET))))
        assert load_keypair(str(path)).pubkey() == WALLET.pubkey()

    def test_from_byte_list(self):
        assert load_keypair(list(bytes(WALLET))).pubkey() == WALLET.pubkey()

    def test_empty(self):
        with pytest.raises(ValueError):
            load_keypair("   ")
