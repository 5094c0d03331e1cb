# constants.py

# Browser session
TARGET_URL = "https://app.uniswap.org/swap"
PROFILE_DIR = "profiles/chrome"
RECORDINGS_DIR = "recordings"
VIEWPORT = {'width': 1366, 'height': 768}
NAVIGATION_TIMEOUT = 60000

# Smart wait (all values in ms)
ELEMENT_WAIT_TIMEOUT = 5000
CLICKABLE_WAIT_TIMEOUT = 5000
CLICKABLE_POLL_INTERVAL = 100
ANIMATION_WAIT_CAP = 1000
STABILITY_DELAY = 100
POPUP_WAIT_TIMEOUT = 5000
POPUP_SETTLE_DELAY = 500
POPUP_IMAGE_TIMEOUT = 3000
LOADING_WAIT_TIMEOUT = 10000
WALLET_POPUP_TIMEOUT = 3000
WALLET_SETTLE_DELAY = 1000
NAVIGATION_WAIT_TIMEOUT = 5000
NETWORK_LOAD_TIMEOUT = 3000
NETWORK_SETTLE_WINDOW = 500
NETWORK_IDLE_CEILING = 3000
WAIT_OVERHEAD = 250

# Frame tracking
FRAME_WAIT_TIMEOUT = 5000
FRAME_POLL_INTERVAL = 100

# Session
STOP_POLL_INTERVAL = 500
STOP_SETTLE_DELAY = 500
MEMORY_CHECK_INTERVAL = 30000
MEMORY_TRIM_AGE = 300000
MAX_BUFFERED_ACTIONS = 10000
MAX_BUFFERED_REQUESTS = 5000
ACTION_TRIM_THRESHOLD = 5000
ACTION_TRIM_KEEP = 3000
REQUEST_TRIM_THRESHOLD = 3000
REQUEST_TRIM_KEEP = 2000
MAX_ERRORS = 10
LISTENER_RETRY_DELAY = 2000

# Page markers shared with dom_script.py
BINDING_NAME = '__swapRecorderEmit'
STOP_FLAG = '__swapRecorderStopped'
UI_ROOT_ID = 'swap-recorder-ui'
CONSOLE_TAG = '[SwapRecorder]'

POPUP_SELECTOR = '[role="dialog"], .modal, .popup, [class*="modal"], [class*="popup"]'
LOADING_SELECTOR = '.loading, .spinner, [class*="loading"], [class*="spinner"], [aria-busy="true"]'
WALLET_PROMPT_SELECTOR = '[class*="metamask"], [id*="metamask"], .metamask-popup'
WALLET_POPUP_URL_MARKERS = ('notification.html', 'popup.html')

# Network relevance
API_KEYWORDS = (
    '/api/', '/swap', '/quote', '/transaction', '/token', '/price',
    '/liquidity', '/pool', '.json', '/v1/', '/v2/', '/v3/',
)
RESPONSE_KEYWORDS = ('/api/', '/swap', '/quote', '/transaction')
MUTATING_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')
STATIC_ASSET_EXTENSIONS = (
    '.png', '.jpg', '.jpeg', '.gif', '.svg', '.webp', '.ico',
    '.css', '.js', '.mjs', '.map',
    '.woff', '.woff2', '.ttf', '.otf', '.eot',
)
STATIC_ASSET_MARKERS = ('font', 'favicon')
IMPORTANT_HEADERS = ('content-type', 'authorization', 'x-api-key', 'referer')
SECRET_HEADERS = ('authorization', 'x-api-key')
MASKED_VALUE = '***MASKED***'

# Optimizer
DUPLICATE_WINDOW = 1000
AMOUNT_MERGE_WINDOW = 2000
DIRECTION_WINDOW = 5
COMPRESSION_SENTINEL = 0.0

TOKEN_SYMBOLS = (
    'ETH', 'BTC', 'USDT', 'USDC', 'DAI', 'WETH', 'BNB', 'MATIC', 'SOL', 'ADA',
    'DOT', 'LINK', 'UNI', 'AAVE', 'COMP', 'MKR', 'YFI', 'CRV', 'BAL', 'SUSHI',
)
TOKEN_TEXT_KEYWORDS = ('select token', 'choose token', 'token')
TOKEN_CLASS_KEYWORDS = ('token-select', 'token-button')
TOKEN_MARKUP_KEYWORDS = ('token-symbol', 'token-address')
TOKEN_ATTRIBUTE_KEYWORDS = ('token', 'symbol', 'address')
FROM_CUES = ('from', 'pay', 'sell')
TO_CUES = ('to', 'receive', 'buy')

AMOUNT_PLACEHOLDER_KEYWORDS = ('amount', '0.0', 'enter amount')
AMOUNT_NAME_KEYWORDS = ('amount', 'quantity')
AMOUNT_CLASS_KEYWORDS = ('amount-input', 'swap-input')
NUMERIC_INPUT_TYPES = ('number',)
NUMERIC_INPUT_MODES = ('decimal', 'numeric')

SWAP_KEYWORDS = ('swap', 'exchange', 'trade', 'convert', 'execute', 'proceed')
APPROVE_KEYWORDS = ('approve', 'allow', 'enable', 'unlock', 'permit', 'authorize')
CONFIRM_KEYWORDS = ('confirm', 'execute', 'proceed', 'continue', 'submit', 'finalize')

# (name, url keywords, api keywords, complexity, success rate %, risk)
DEX_PROFILES = (
    ('Uniswap', ('uniswap',), ('uniswap',), 'complex', 95, 'high'),
    ('PancakeSwap', ('pancakeswap',), ('pancake',), 'medium', 90, 'medium'),
    ('SushiSwap', ('sushiswap',), ('sushi',), 'medium', 85, 'medium'),
    ('1inch', ('1inch',), ('1inch',), 'simple', 98, 'low'),
    ('Jupiter', ('jupiter',), ('jupiter',), 'complex', 92, 'high'),
    ('Raydium', ('raydium',), ('raydium',), 'complex', 93, 'high'),
)
UNKNOWN_DEX = 'Unknown DEX'

CHAIN_NAMES = {
    '0x1': 'Ethereum Mainnet',
    '0x5': 'Goerli Testnet',
    '0xaa36a7': 'Sepolia Testnet',
    '0x89': 'Polygon Mainnet',
    '0x13881': 'Mumbai Testnet',
    '0xa': 'Optimism',
    '0xa4b1': 'Arbitrum One',
    '0xa4ec': 'Celo Mainnet',
    '0x38': 'BSC Mainnet',
    '0x61': 'BSC Testnet',
    '0x2105': 'Base',
    '0x1a4': 'Optimism Goerli',
    '0x66eed': 'Arbitrum Goerli',
}

# Endpoint purpose by path keyword, first match wins
ENDPOINT_PURPOSE_KEYWORDS = (
    ('quote', ('/quote', '/price', '/rate')),
    ('swap', ('/swap', '/execute', '/trade')),
    ('approve', ('/approve', '/allowance', '/permit')),
    ('token_list', ('/token', '/list', '/pairs')),
    ('balance', ('/balance', '/account')),
    ('gas', ('/gas', '/estimate')),
)

SELECTOR_ROLES = (
    ('SELECT_FROM', 'fromTokenButton'),
    ('SELECT_TO', 'toTokenButton'),
    ('INPUT_AMOUNT', 'amountInput'),
    ('CLICK_SWAP', 'swapButton'),
    ('APPROVE', 'approveButton'),
)
