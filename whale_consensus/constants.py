LAMPORTS_PER_SOL = 1_000_000_000

WSOL_MINT = "So11111111111111111111111111111111111111112"

# Public mainnet endpoints, used when RPC_URLS is not set
DEFAULT_RPC_URLS = (
    "https://api.mainnet-beta.solana.com",
    "https://rpc.ankr.com/solana",
    "https://solana-mainnet.rpc.quiknode.pro/",
)

HELIUS_RPC_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={api_key}"

# SOL/USD price sources, tried in order
COINGECKO_SOL_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
BINANCE_SOL_PRICE_URL = "https://api.binance.com/api/v3/ticker/price"
COINBASE_SOL_RATES_URL = "https://api.coinbase.com/v2/exchange-rates"
KRAKEN_SOL_TICKER_URL = "https://api.kraken.com/0/public/Ticker"

DEXSCREENER_API_BASE = "https://api.dexscreener.com"
COINGECKO_API_BASE = "https://api.coingecko.com/api/v3"

# Links rendered in alerts
LINK_DEXSCREENER = "https://dexscreener.com/solana/{mint}"
LINK_PUMPFUN = "https://pump.fun/{mint}"
LINK_SOLSCAN_TOKEN = "https://solscan.io/token/{mint}"
LINK_SOLSCAN_TX = "https://solscan.io/tx/{signature}"

DEFAULT_SOL_PRICE_USD = 200.0
