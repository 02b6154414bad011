"""REST endpoints for the supported venues."""

COINBASE_EXCHANGE_URL = "https://api.exchange.coinbase.com"
COINBASE_EXCHANGE_SANDBOX_URL = "https://api-public.sandbox.exchange.coinbase.com"

COINBASE_ADVANCED_URL = "https://api.coinbase.com/api/v3/brokerage"
COINBASE_V2_URL = "https://api.coinbase.com/v2"
COINBASE_V2_API_VERSION = "2015-07-22"

GEMINI_URL = "https://api.gemini.com"
GEMINI_SANDBOX_URL = "https://api.sandbox.gemini.com"

FTX_URL = "https://ftx.com/api"
FTX_US_URL = "https://ftx.us/api"

ACH_PAYMENT_METHOD_TYPES = frozenset({"ach_bank_account"})
