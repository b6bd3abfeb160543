import pytest

from core.tokens import TokenRegistry, is_stablecoin, normalize_symbol
from core.types import NATIVE_TOKEN_ADDRESS, TokenInfo


@pytest.mark.parametrize(
    "raw,expected",
    [("bnb", "BNB"), (" usdt ", "USDT"), ("ASTR", "ASTER"), ("matic", "POL"), ("WMATIC", "POL"), ("", "")],
)
def test_normalize_symbol(raw, expected) -> None:
    assert normalize_symbol(raw) == expected


def test_stablecoin_detection() -> None:
    assert is_stablecoin("usdt") is True
    assert is_stablecoin("USD1") is True
    assert is_stablecoin("BNB") is False


class TestTokenRegistry:
    def test_resolves_case_insensitively_with_aliases(self, registry) -> None:
        assert registry.resolve(56, "usdt").decimals == 18
        assert registry.resolve(137, "USDT").decimals == 6
        assert registry.resolve(56, "astr").symbol == "ASTER"
        assert registry.resolve(137, "MATIC").symbol == "POL"

    def test_unknown_chain_or_symbol(self, registry) -> None:
        assert registry.resolve(1, "ETH") is None
        assert registry.resolve(56, "DOGE") is None
        assert registry.is_supported_chain(56) is True
        assert registry.is_supported_chain(1) is False

    def test_native_token(self, registry) -> None:
        assert registry.native_token(56).symbol == "BNB"
        assert registry.native_token(137).symbol == "POL"
        assert registry.native_token(137).address == NATIVE_TOKEN_ADDRESS
        assert registry.native_token(1) is None

    def test_custom_token_table(self) -> None:
        registry = TokenRegistry({10: {"op": TokenInfo("OP", "0x4200000000000000000000000000000000000042", 18)}})

        assert registry.resolve(10, "op").symbol == "OP"
        assert registry.resolve(10, "OP").is_native is False
        assert registry.resolve(56, "BNB") is None
