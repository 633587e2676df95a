from bundlecart.core.config import Settings
from bundlecart.core.logging import _orjson_dumps
from decimal import Decimal


def test_settings_normalise_currency_and_decimals() -> None:
    settings = Settings(STORE_CURRENCY=' eur ', PRICE_DECIMALS=9, DB_NAME='shop_test')

    assert settings.store_currency == 'EUR'
    assert settings.price_decimals == 2
    assert Settings(PRICE_DECIMALS=3).price_decimals == 2
    assert Settings(PRICE_DECIMALS=1).price_decimals == 1
    assert settings.db_async_url.startswith('mysql+asyncmy://')
    assert settings.db_sync_url.endswith('/shop_test')
    assert Settings(PRICE_DECIMALS=-1).price_decimals == 0


def test_log_serializer_handles_decimal_amounts() -> None:
    assert _orjson_dumps({'total': Decimal('40.00')}) == '{"total":"40.00"}'
