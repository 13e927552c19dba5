"""Shared constants and defaults."""

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

DEFAULT_TOKEN_X_DECIMALS = 9
DEFAULT_TOKEN_Y_DECIMALS = 6

BASIS_POINT_DIVISOR = 10_000

# Price feed
PRICE_CACHE_TTL_SECONDS = 10.0
PRICE_RESPONSE_KEYS = ("price", "current_price", "price_usd")

# Hedge trigger
ACCRUAL_EPSILON_PERCENT = 0.001
HEDGE_HISTORY_LIMIT = 100
MAX_SWAP_AMOUNT_UNITS = 10**15

# Range interval (bins on each side of the active bin)
RANGE_INTERVAL_MIN = 1
RANGE_INTERVAL_MAX = 100

# Pool stats defaults when the API omits a field
DEFAULT_POOL_FEE_BPS = 5.0

# Retry
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 1.0
RETRY_BACKOFF_MULTIPLIER = 2.0

MONITOR_JOB_ID = "monitor"
CONFIG_RELOAD_JOB_ID = "admin_config_reload"
CONFIG_RELOAD_INTERVAL_SECONDS = 15
