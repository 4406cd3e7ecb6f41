"""Payment configuration defaults and normalizers.

Values arrive as strings from the environment (or as numbers from test overrides);
normalizers raise ValueError so a bad deployment fails at startup, not mid-payment.
"""
DEFAULT_COMMISSION_RATE = 20
DEFAULT_GATEWAY_TIMEOUT_SECONDS = 10
DEFAULT_WEBHOOK_TOLERANCE_SECONDS = 300
DEFAULT_CURRENCY = 'usd'
MAX_GATEWAY_TIMEOUT_SECONDS = 60


def normalize_timeout(raw) -> float:
    try:
        timeout = float(raw) if raw not in (None, '') else float(DEFAULT_GATEWAY_TIMEOUT_SECONDS)
    except (TypeError, ValueError):
        raise ValueError('GATEWAY_TIMEOUT_SECONDS must be numeric')
    if timeout <= 0 or timeout > MAX_GATEWAY_TIMEOUT_SECONDS:
        raise ValueError(f'GATEWAY_TIMEOUT_SECONDS must be in (0, {MAX_GATEWAY_TIMEOUT_SECONDS}]')
    return timeout


def normalize_tolerance(raw) -> int:
    try:
        tolerance = int(raw) if raw not in (None, '') else DEFAULT_WEBHOOK_TOLERANCE_SECONDS
    except (TypeError, ValueError):
        raise ValueError('WEBHOOK_TOLERANCE_SECONDS must be int')
    if tolerance <= 0:
        raise ValueError('WEBHOOK_TOLERANCE_SECONDS must be positive')
    return tolerance


def normalize_currency(raw) -> str:
    currency = (raw or DEFAULT_CURRENCY).strip().lower()
    if len(currency) != 3 or not currency.isalpha():
        raise ValueError('PAYMENT_CURRENCY must be a 3-letter ISO code')
    return currency
