"""Tests for environment-driven configuration."""

from decimal import Decimal

import pytest

from core.config import BSC_CHAIN_ID, POLYGON_CHAIN_ID, load_config


class TestLoadConfig:
    def test_defaults_with_empty_environment(self) -> None:
        config = load_config({})

        assert config.loop_interval_seconds == 3.5
        assert config.queue_capacity == 5
        assert config.database_url is None
        assert config.settlement.private_key == ""
        assert config.settlement.enabled_chains == frozenset({BSC_CHAIN_ID})
        assert config.settlement.rpc_url(BSC_CHAIN_ID) == ""
        assert config.settlement.cooldown_seconds == 30
        assert config.settlement.balance_haircut == Decimal("0.995")

    def test_reads_secrets_and_endpoints(self) -> None:
        env = {
            "TRADER_PRIVATE_KEY": "0xabc",
            "TRADER_ADDRESS": "0x1111111111111111111111111111111111111111",
            "RPC_URL_BSC": "https://bsc.example",
            "RPC_URL_POLYGON": "https://polygon.example",
            "KV_REST_API_URL": "https://kv.example",
            "KV_REST_API_TOKEN": "secret",
            "DATABASE_URL": "sqlite:///ledger.db",
            "BOT_LOOP_MS": "1500",
        }

        config = load_config(env)

        assert config.settlement.private_key == "0xabc"
        assert config.settlement.trader_address == env["TRADER_ADDRESS"]
        assert config.settlement.rpc_url(BSC_CHAIN_ID) == "https://bsc.example"
        assert config.settlement.rpc_url(POLYGON_CHAIN_ID) == "https://polygon.example"
        assert config.settlement.kv_rest_url == "https://kv.example"
        assert config.settlement.kv_rest_token == "secret"
        assert config.database_url == "sqlite:///ledger.db"
        assert config.loop_interval_seconds == 1.5

    def test_execution_key_and_upstash_fallbacks(self) -> None:
        env = {
            "EXECUTION_PRIVATE_KEY": "0xdef",
            "UPSTASH_REDIS_REST_URL": "https://upstash.example",
            "UPSTASH_REDIS_REST_TOKEN": "tok",
        }

        config = load_config(env)

        assert config.settlement.private_key == "0xdef"
        assert config.settlement.kv_rest_url == "https://upstash.example"
        assert config.settlement.kv_rest_token == "tok"

    @pytest.mark.parametrize(
        "env,expected",
        [
            ({"ENABLE_POLYGON": "true"}, {BSC_CHAIN_ID, POLYGON_CHAIN_ID}),
            ({"ENABLE_BSC": "0", "ENABLE_POLYGON": "1"}, {POLYGON_CHAIN_ID}),
            ({"ENABLE_BSC": "false"}, set()),
        ],
    )
    def test_chain_toggles(self, env, expected) -> None:
        assert load_config(env).settlement.enabled_chains == frozenset(expected)
