import pytest

from amazon_transactions.config import Config, ConfigError, is_supported_transactions_url


def test_load_from_env_defaults() -> None:
    loaded = Config.load_from_env({})

    assert loaded.max_transactions == 200
    assert loaded.scroll_wait_ms == 900
    assert loaded.stall_limit == 8
    assert loaded.detail_fetch_delay_ms == 150
    assert loaded.headless is False
    assert loaded.transactions_url == "https://www.amazon.com/cpe/yourpayments/transactions"


def test_load_from_env_overrides() -> None:
    loaded = Config.load_from_env(
        {
            "AMAZON_BASE_URL": "https://www.amazon.de/",
            "MAX_TRANSACTIONS": "50",
            "STALL_LIMIT": " 3 ",
            "HEADLESS": "yes",
            "JSON_LOG_FILE": "  ",
        }
    )

    assert loaded.amazon_base_url == "https://www.amazon.de"
    assert loaded.max_transactions == 50
    assert loaded.stall_limit == 3
    assert loaded.headless is True
    assert loaded.json_log_file == ""


@pytest.mark.parametrize(
    ("env", "match"),
    [
        ({"MAX_TRANSACTIONS": "lots"}, "must be an integer"),
        ({"MAX_TRANSACTIONS": "0"}, "must be >= 1"),
        ({"STALL_LIMIT": "0"}, "must be >= 1"),
        ({"SCROLL_WAIT_MS": "-1"}, "must be >= 0"),
        ({"HEADLESS": "maybe"}, "must be a boolean"),
        ({"AMAZON_BASE_URL": "amazon.com"}, "absolute http"),
        ({"AMAZON_TRANSACTIONS_PATH": "cpe/x"}, "must start with"),
    ],
)
def test_load_from_env_rejects_bad_values(env, match) -> None:
    with pytest.raises(ConfigError, match=match):
        Config.load_from_env(env)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.amazon.co.uk/cpe/yourpayments/transactions", True),
        ("https://www.amazon.co.jp/cpe/yourpayments/transactions?ref=x", True),
        ("https://smile.amazon.com/cpe/yourpayments/transactions", True),
        ("https://www.amazon.com/your-orders/orders", False),
        ("https://www.notamazon.com/cpe/yourpayments/transactions", False),
        ("https://www.amazon.com.br/cpe/yourpayments/transactions", False),
        ("", False),
    ],
)
def test_is_supported_transactions_url(url: str, expected: bool) -> None:
    assert is_supported_transactions_url(url) is expected
