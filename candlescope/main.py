import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import PATTERN_FILTER_KEYS, get_config
from .errors import CandlescopeError
from .feed import load_candles
from .pipeline import analyze
from .utils import format_result, get_market_summary
from .window import CandleWindow

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="candlescope",
        description="Detect candlestick patterns and score a directional prediction for OHLCV candles")
    parser.add_argument("path", help="CSV or JSON file with OHLCV candles")
    parser.add_argument("--limit", type=int, default=None,
                        help="Only analyze the last N candles (default: window size)")
    parser.add_argument("--disable", nargs="+", default=[], metavar="KEY",
                        help=f"Pattern filters to switch off, e.g. 'Doji' 'SMC'. Known: {', '.join(PATTERN_FILTER_KEYS)}")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--log-level", default=None, help="Logging level (default from configuration)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {"pattern_filters": {key: False for key in args.disable}}
    config = get_config(overrides)
    setup_logging(args.log_level or config["log_level"])

    try:
        candles = load_candles(args.path)
    except (OSError, ValueError, CandlescopeError) as e:
        logger.error(f"Could not load candles from {args.path}: {str(e)}")
        return 1

    window_size = args.limit if args.limit and args.limit > 0 else config["window_size"]
    window = CandleWindow(max_size=window_size)
    try:
        window.extend(candles)
    except CandlescopeError as e:
        logger.error(f"Candles in {args.path} are not time-ordered: {str(e)}")
        return 1

    logger.info(f"Loaded {len(candles)} candles, analyzing the last {len(window)}")
    snapshot = window.snapshot()
    result = analyze(snapshot, config, sequence=1)
    summary = get_market_summary(snapshot)

    if args.json:
        print(json.dumps({**result.to_dict(), "summary": summary}, indent=2))
    else:
        print(format_result(result, summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
