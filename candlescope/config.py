import os
import logging
from typing import Dict, Any, Mapping, Optional

logger = logging.getLogger(__name__)

# Pattern filter keys understood by the classifier and marker emitter
PATTERN_FILTER_KEYS = (
    "Bullish Engulfing",
    "Bearish Engulfing",
    "Doji",
    "Hammer",
    "Shooting Star",
    "Double Top",
    "Double Bottom",
    "Head & Shoulders",
    "SMC",
    "Bull Prediction",
    "Bear Prediction",
    "Range Prediction",
    "Breakout Prediction",
    "Reversal Prediction",
)

VOLUME_POLICIES = ("skip", "exclude")

# Default configuration
DEFAULT_CONFIG = {
    # Window
    "window_size": 500,
    "min_candles": 20,
    "max_markers": 50,

    # Moving averages
    "prediction_ma_periods": (9, 20),
    "trend_ma_periods": (25, 99),
    "ma_types": ("sma", "ema"),
    "trend_ma_type": "sma",

    # Oscillator
    "rsi_period": 14,
    "rsi_epsilon": 1e-3,

    # Pattern thresholds
    "doji_threshold": 0.1,
    "double_pattern_tolerance": 0.02,
    "volume_spike_multiplier": 1.5,
    "smc_body_ratio": 0.3,
    "level_lookback": 20,

    # Candles without volume: "skip" the candle or "exclude" volume rules entirely
    "volume_policy": "skip",

    # Scheduler
    "debounce_seconds": 1.0,

    "log_level": "INFO",

    "pattern_filters": {key: True for key in PATTERN_FILTER_KEYS},
}

# Environment overrides: variable name -> (config key, parser)
ENV_OVERRIDES = {
    "CANDLESCOPE_WINDOW_SIZE": ("window_size", int),
    "CANDLESCOPE_MIN_CANDLES": ("min_candles", int),
    "CANDLESCOPE_MAX_MARKERS": ("max_markers", int),
    "CANDLESCOPE_RSI_PERIOD": ("rsi_period", int),
    "CANDLESCOPE_TREND_MA_TYPE": ("trend_ma_type", str),
    "CANDLESCOPE_VOLUME_POLICY": ("volume_policy", str),
    "CANDLESCOPE_DEBOUNCE_SECONDS": ("debounce_seconds", float),
    "CANDLESCOPE_LOG_LEVEL": ("log_level", str),
}


def resolve_filters(filters: Optional[Mapping[str, Any]] = None) -> Dict[str, bool]:
    """
    Build the full pattern filter map.

    Every known key defaults to enabled; keys we do not know are ignored.

    Args:
        filters: Mapping of pattern name to enable flag (may be partial)

    Returns:
        Dictionary with every known filter key mapped to a bool
    """
    resolved = {key: True for key in PATTERN_FILTER_KEYS}
    if not filters:
        return resolved

    for key, value in filters.items():
        if key in resolved:
            resolved[key] = bool(value)
        else:
            logger.debug(f"Ignoring unknown pattern filter '{key}'")

    return resolved


def get_config(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Get the analysis configuration.

    Defaults are merged with CANDLESCOPE_* environment variables and then with
    the explicit overrides, which win.
    """
    env_config = {}
    for var, (key, parser) in ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if raw is None:
            continue
        try:
            env_config[key] = parser(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid value for {var}: {raw!r}")

    if env_config:
        logger.info(f"Configuration overridden from environment: {', '.join(sorted(env_config))}")

    config = {**DEFAULT_CONFIG, **env_config, **dict(overrides or {})}
    config["pattern_filters"] = resolve_filters(config.get("pattern_filters"))

    if config["volume_policy"] not in VOLUME_POLICIES:
        logger.warning(f"Unknown volume_policy {config['volume_policy']!r}, falling back to 'skip'")
        config["volume_policy"] = "skip"

    if config["trend_ma_type"] not in ("sma", "ema"):
        logger.warning(f"Unknown trend_ma_type {config['trend_ma_type']!r}, falling back to 'sma'")
        config["trend_ma_type"] = "sma"

    return config
