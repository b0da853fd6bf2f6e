import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .models import AnalysisResult, Candle, PatternMarker, Prediction

# Configure logging
logger = logging.getLogger(__name__)

def format_timestamp(timestamp) -> str:
    """Format a timestamp for display"""
    if timestamp is None:
        return "N/A"

    if isinstance(timestamp, (int, float)):
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    return str(timestamp)

def format_price(value: Optional[float], decimals: int = 2) -> str:
    """Format a price value for display"""
    if value is None:
        return "N/A"

    return f"{value:.{decimals}f}"

def format_percentage(value: Optional[float]) -> str:
    """Format a percentage value for display"""
    if value is None:
        return "N/A"

    return f"{value:.2f}%"

def get_market_summary(candles: Sequence[Candle]) -> Dict[str, Any]:
    """
    Get a summary of the given candles

    Args:
        candles: Candles, oldest first

    Returns:
        Dictionary with market summary data
    """
    if not candles:
        logger.warning("No candles to summarize")
        return {'error': "No candles to summarize"}

    current_price = candles[-1].close
    open_price = candles[0].open
    high_price = max(c.high for c in candles)
    low_price = min(c.low for c in candles)

    price_change = current_price - open_price
    price_change_pct = (price_change / open_price) * 100 if open_price > 0 else 0

    # Volatility is the standard deviation of close-to-close returns
    prices = np.array([c.close for c in candles], dtype=float)
    returns = prices[1:] / prices[:-1] - 1 if len(prices) > 1 else np.array([])
    volatility = float(np.std(returns) * 100) if len(returns) else 0.0

    volumes = [c.volume for c in candles if c.volume is not None]
    total_volume = float(np.nansum(volumes)) if volumes else 0.0

    return {
        'candles': len(candles),
        'current_price': current_price,
        'open_price': open_price,
        'high_price': high_price,
        'low_price': low_price,
        'price_change': price_change,
        'price_change_pct': price_change_pct,
        'volatility': volatility,
        'total_volume': total_volume,
        'timestamp': candles[-1].time,
    }

def format_prediction(prediction: Optional[Prediction]) -> List[str]:
    """Human-readable lines describing a prediction"""
    if prediction is None:
        return ["Prediction: N/A (not enough candles)"]

    lines = [
        f"Prediction: {prediction.direction.value} {format_percentage(prediction.confidence)} "
        f"({prediction.pattern_label.value})",
        f"  Price:      {format_price(prediction.current_price)} at {format_timestamp(prediction.time)}",
        f"  Target:     {format_price(prediction.target_price)}",
        f"  Stop loss:  {format_price(prediction.stop_loss)}",
        f"  Support:    {format_price(prediction.support_level)}",
        f"  Resistance: {format_price(prediction.resistance_level)}",
        f"  SMA:        {format_price(prediction.sma_short)} / {format_price(prediction.sma_long)}",
        f"  RSI:        {format_price(prediction.rsi)}",
        f"  Trend:      {prediction.trend.value}",
    ]
    if prediction.signals:
        lines.append(f"  Signals:    {', '.join(s.value for s in prediction.signals)}")
    return lines

def format_summary(summary: Dict[str, Any]) -> List[str]:
    """Human-readable lines for a market summary"""
    if 'error' in summary:
        return [f"Summary: {summary['error']}"]

    return [
        f"Price: {format_price(summary['current_price'])} "
        f"({format_percentage(summary['price_change_pct'])} since {format_price(summary['open_price'])})",
        f"Range: {format_price(summary['low_price'])} - {format_price(summary['high_price'])}, "
        f"volatility {format_percentage(summary['volatility'])}, volume {format_price(summary['total_volume'])}",
    ]

def format_marker(marker: PatternMarker) -> str:
    return f"{format_timestamp(marker.time)}  {marker.position.value:<5}  {marker.label}"

def format_result(result: AnalysisResult, summary: Optional[Dict[str, Any]] = None) -> str:
    """Render an analysis result, with an optional market summary, as plain text"""
    lines = [f"Candles analyzed: {result.candle_count}"]
    if summary is not None:
        lines.extend(format_summary(summary))
    if result.trend is not None:
        lines.append(f"Trend: {result.trend.trend.value} ({result.trend.strength}%), "
                     f"structure {result.trend.structure.value}")
    lines.extend(format_prediction(result.prediction))
    lines.append(f"Markers ({len(result.markers)}):")
    lines.extend(f"  {format_marker(m)}" for m in result.markers)
    return "\n".join(lines)
