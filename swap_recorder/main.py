# main.py
import asyncio
import argparse
import logging
import sys

from .browser import BrowserSession
from .constants import TARGET_URL, PROFILE_DIR, RECORDINGS_DIR
from .engine import RecorderEngine
from .exceptions import RecorderError
from .models import StopReason
from .optimizer import DataOptimizer, format_report
from .storage import RecordingStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Record and optimize DEX swap interactions')
    parser.add_argument('--url', default=TARGET_URL, help='DEX page to record')
    parser.add_argument('--name', default='swap', help='Recording name')
    parser.add_argument('--profile', default=PROFILE_DIR, help='Persistent browser profile directory')
    parser.add_argument('--extension', help='Unpacked wallet extension to load')
    parser.add_argument('--headless', action='store_true', help='Run the browser without a window')
    parser.add_argument('--output', default=RECORDINGS_DIR, help='Recordings directory')
    parser.add_argument('--format', choices=['json', 'yaml'], default='json', help='Recording file format')
    parser.add_argument('--no-smart-wait', action='store_true', help='Disable smart waits')
    parser.add_argument('--debug', action='store_true', help='Verbose logging')
    parser.add_argument('--list', action='store_true', help='List saved recordings and exit')
    parser.add_argument('--optimize', metavar='FILE', help='Optimize a saved recording and exit')
    return parser


async def record(config, store: RecordingStore) -> int:
    async with BrowserSession(config) as browser:
        engine = RecorderEngine(browser.page, config)
        try:
            await engine.start(config['name'], config['target_url'])
        except RecorderError as e:
            logger.error(str(e))
            return 1
        reason = await engine.wait_for_stop()
        if reason != StopReason.OPERATOR:
            logger.warning(f"Session ended early: {reason.value}")
        recording = await engine.stop()

    identifier = store.save(recording, config['name'])
    store.export_optimized(engine.optimized, recording)
    logger.info(f"Saved as {identifier}")
    return 0 if reason == StopReason.OPERATOR else 2


def optimize_file(path: str, store: RecordingStore) -> int:
    try:
        recording = store.load(path)
    except RecorderError as e:
        logger.error(f"Could not load {path}: {e}")
        return 1
    optimized = DataOptimizer(recording).optimize()
    logger.info(format_report(optimized))
    store.export_optimized(optimized, recording)
    return 0


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format='%(asctime)s %(levelname)-5s %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

    config = {
        'target_url': args.url,
        'name': args.name,
        'profile': args.profile,
        'extension': args.extension,
        'headless': args.headless,
        'output': args.output,
        'format': args.format,
        'smart_wait': not args.no_smart_wait,
    }
    store = RecordingStore(config['output'], config['format'])

    if args.list:
        for identifier in store.list():
            print(identifier)
        return 0
    if args.optimize:
        return optimize_file(args.optimize, store)
    return await record(config, store)


def run():
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    run()
