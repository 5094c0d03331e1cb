# probes.py
import logging
from typing import Optional

from playwright.async_api import Page, Error as PlaywrightError

from .constants import CHAIN_NAMES
from .models import WalletProbe, WalletCapability, ChainInfo, BalanceInfo, SwapSettings
from .utils import now_ms

logger = logging.getLogger(__name__)

WALLET_SCRIPT = '''async () => {
    const ethereum = window.ethereum;
    if (typeof ethereum === 'undefined') return { capability: 'absent' };
    try {
        const chainId = await ethereum.request({ method: 'eth_chainId' });
        return { capability: 'present', isMetaMask: !!ethereum.isMetaMask, chainId };
    } catch (err) {
        return { capability: 'failed', isMetaMask: !!ethereum.isMetaMask, error: String((err && err.message) || err) };
    }
}'''

CHAIN_SCRIPT = '''async () => {
    const ethereum = window.ethereum;
    if (typeof ethereum === 'undefined') return null;
    const chainId = ethereum.chainId || await ethereum.request({ method: 'eth_chainId' });
    let gasPrice = '0x0';
    try {
        gasPrice = await ethereum.request({ method: 'eth_gasPrice' });
    } catch (err) {
        console.warn('[SwapRecorder]', 'gas price unavailable', String(err));
    }
    return { chainId, gasPrice };
}'''

BALANCE_SCRIPT = '''async () => {
    const ethereum = window.ethereum;
    if (typeof ethereum === 'undefined') return null;
    const accounts = await ethereum.request({ method: 'eth_accounts' });
    if (!accounts || accounts.length === 0) return null;
    const balance = await ethereum.request({ method: 'eth_getBalance', params: [accounts[0], 'latest'] });
    return { address: accounts[0], balance };
}'''

SETTINGS_SCRIPT = '''() => {
    const slippageInput = document.querySelector('[data-testid="slippage-input"], [placeholder*="slippage"], [name*="slippage"]');
    const gasInput = document.querySelector('[data-testid="gas-input"], [placeholder*="gas"], [name*="gas"]');
    return {
        slippage: slippageInput && slippageInput.value ? slippageInput.value : '0.5',
        gasLimit: gasInput && gasInput.value ? gasInput.value : 'auto'
    };
}'''


def hex_to_int(value) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        return int(text, 16) if text.lower().startswith('0x') else int(text)
    except ValueError:
        return 0


def wei_to_eth(wei) -> str:
    return f"{hex_to_int(wei) / 10 ** 18:.6f}"


def network_name(chain_id: str) -> str:
    return CHAIN_NAMES.get(str(chain_id).lower(), f"Unknown Network ({chain_id})")


async def probe_wallet(page: Page) -> WalletProbe:
    try:
        data = await page.evaluate(WALLET_SCRIPT) or {}
    except PlaywrightError as e:
        logger.warning(f"Wallet probe failed: {e}")
        return WalletProbe(capability=WalletCapability.FAILED, error=str(e))
    probe = WalletProbe(
        capability=WalletCapability(data.get('capability', 'absent')),
        is_metamask=bool(data.get('isMetaMask', False)),
        chain_id=data.get('chainId'),
        error=data.get('error'),
    )
    if probe.capability == WalletCapability.PRESENT:
        logger.info(f"Wallet detected{' (MetaMask)' if probe.is_metamask else ''} on chain {probe.chain_id}")
    elif probe.capability == WalletCapability.FAILED:
        logger.warning(f"Wallet present but not responding: {probe.error}")
    else:
        logger.warning("No wallet provider found on page")
    return probe


async def detect_chain_info(page: Page) -> Optional[ChainInfo]:
    try:
        data = await page.evaluate(CHAIN_SCRIPT)
    except PlaywrightError as e:
        logger.warning(f"Chain detection failed: {e}")
        return None
    if not data or not data.get('chainId'):
        return None
    chain_id = str(data['chainId']).lower()
    info = ChainInfo(
        chain_id=chain_id,
        network=network_name(chain_id),
        gas_price=str(hex_to_int(data.get('gasPrice'))),
    )
    logger.info(f"Chain detected: {info.network} ({info.chain_id})")
    return info


async def get_balance_info(page: Page) -> Optional[BalanceInfo]:
    try:
        data = await page.evaluate(BALANCE_SCRIPT)
    except PlaywrightError as e:
        logger.warning(f"Balance lookup failed: {e}")
        return None
    if not data:
        logger.warning("Wallet not connected or balance not accessible")
        return None
    info = BalanceInfo(
        address=data.get('address', ''),
        native_balance=str(data.get('balance') or '0x0'),
        native_balance_eth=wei_to_eth(data.get('balance')),
        timestamp=now_ms(),
    )
    logger.info(f"Balance: {info.native_balance_eth} ETH")
    return info


async def get_swap_settings(page: Page) -> Optional[SwapSettings]:
    try:
        data = await page.evaluate(SETTINGS_SCRIPT) or {}
    except PlaywrightError as e:
        logger.warning(f"Swap settings lookup failed: {e}")
        return None
    settings = SwapSettings(slippage=str(data.get('slippage', '0.5')), gas_limit=str(data.get('gasLimit', 'auto')))
    logger.info(f"Swap settings: slippage {settings.slippage}%, gas {settings.gas_limit}")
    return settings
