"""
candlescope: candlestick pattern detection and heuristic trend prediction
for a single instrument's OHLCV candles.
"""
from .config import DEFAULT_CONFIG, get_config
from .errors import CandlescopeError, InvalidCandleError, OutOfOrderCandleError
from .models import AnalysisResult, Candle, PatternMarker, Prediction
from .pipeline import AnalysisScheduler, analyze
from .window import CandleWindow

__version__ = "0.1.0"
