"""
Conversion of exchange payloads and tabular data into candles.

Accepts kline rows ``[time, open, high, low, close, volume]`` as returned by
exchange REST endpoints, stream kline payloads (``{"t", "o", "h", "l", "c",
"v", "x"}``) and OHLCV DataFrames. Timestamps in milliseconds are converted to
seconds. Rows that fail validation are logged and skipped.
"""
import json
import logging
import os
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from .errors import InvalidCandleError
from .models import Candle

logger = logging.getLogger(__name__)

# Anything above this is a millisecond timestamp (10^11 s is the year 5138)
MS_THRESHOLD = 10 ** 11


def normalize_time(value: Any) -> int:
    """Convert a Unix timestamp to whole seconds, accepting milliseconds"""
    value = float(value)
    if value > MS_THRESHOLD:
        value = value / 1000
    return int(value)


def _volume(value: Any) -> Optional[float]:
    if value is None:
        return None
    volume = float(value)
    if pd.isna(volume):
        return None
    return volume


def candle_from_row(row: Sequence[Any], is_closed: bool = True) -> Candle:
    """
    Build a candle from a kline row.

    Args:
        row: [time, open, high, low, close] with an optional volume column
        is_closed: Whether the bar is finished

    Raises:
        InvalidCandleError: if the row is malformed or violates OHLC invariants
    """
    if len(row) < 5:
        raise InvalidCandleError(f"Kline row needs at least 5 fields, got {len(row)}")
    try:
        return Candle(
            time=normalize_time(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=_volume(row[5]) if len(row) > 5 else None,
            is_closed=is_closed,
        )
    except InvalidCandleError:
        raise
    except (TypeError, ValueError) as e:
        raise InvalidCandleError(f"Malformed kline row {row!r}: {str(e)}") from e


def candle_from_kline(kline: Mapping[str, Any]) -> Candle:
    """
    Build a candle from a stream kline payload.

    The ``x`` field marks a closed bar; without it the bar counts as in progress.

    Raises:
        InvalidCandleError: if fields are missing or violate OHLC invariants
    """
    try:
        return Candle(
            time=normalize_time(kline["t"]),
            open=float(kline["o"]),
            high=float(kline["h"]),
            low=float(kline["l"]),
            close=float(kline["c"]),
            volume=_volume(kline.get("v")),
            is_closed=bool(kline.get("x", False)),
        )
    except KeyError as e:
        raise InvalidCandleError(f"Kline payload missing field {e}") from e
    except InvalidCandleError:
        raise
    except (TypeError, ValueError) as e:
        raise InvalidCandleError(f"Malformed kline payload: {str(e)}") from e


def _time_column(df: pd.DataFrame) -> pd.Series:
    column = "timestamp" if "timestamp" in df.columns else "time"
    times = df[column]

    if pd.api.types.is_datetime64_any_dtype(times):
        times = pd.to_datetime(times, utc=True)
        epoch = pd.Timestamp("1970-01-01", tz="UTC")
        return (times - epoch) // pd.Timedelta(seconds=1)

    return times


def candles_from_dataframe(df: pd.DataFrame) -> List[Candle]:
    """
    Convert an OHLCV DataFrame into candles.

    Args:
        df: DataFrame with a timestamp (or time) column, open, high, low and
            close columns and an optional volume column. Timestamps may be
            datetimes or Unix seconds/milliseconds.

    Returns:
        List of valid candles in row order
    """
    if df is None or df.empty:
        logger.warning("Empty DataFrame provided, no candles created")
        return []

    required = ["open", "high", "low", "close"]
    missing = [col for col in required if col not in df.columns]
    if "timestamp" not in df.columns and "time" not in df.columns:
        missing.insert(0, "timestamp")
    if missing:
        raise InvalidCandleError(f"DataFrame is missing required columns: {', '.join(missing)}")

    times = _time_column(df)
    has_volume = "volume" in df.columns

    candles = []
    for position, (index, row) in enumerate(df.iterrows()):
        try:
            candles.append(Candle(
                time=normalize_time(times.iloc[position]),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=_volume(row["volume"]) if has_volume else None,
            ))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping row {index}: {str(e)}")

    logger.debug(f"Converted {len(candles)} of {len(df)} rows to candles")
    return candles


def candles_from_rows(rows: Iterable[Any]) -> List[Candle]:
    """Convert kline rows or kline payloads, skipping invalid entries"""
    candles = []
    for i, row in enumerate(rows):
        try:
            if isinstance(row, Mapping):
                candles.append(candle_from_kline({"x": True, **row}))
            else:
                candles.append(candle_from_row(row))
        except InvalidCandleError as e:
            logger.warning(f"Skipping entry {i}: {str(e)}")
    return candles


def load_candles(path: str) -> List[Candle]:
    """
    Load candles from a CSV or JSON file.

    CSV files are read with pandas and need the DataFrame columns described in
    candles_from_dataframe. JSON files hold either a list of kline rows, a list
    of kline payloads or a list of OHLCV records.

    Raises:
        FileNotFoundError: if the file does not exist
        InvalidCandleError: if the file layout is not understood
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Candle file not found: {path}")

    if path.lower().endswith(".json"):
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise InvalidCandleError(f"Expected a JSON list of candles in {path}")
        if data and isinstance(data[0], Mapping) and "t" not in data[0]:
            return candles_from_dataframe(pd.DataFrame(data))
        return candles_from_rows(data)

    df = pd.read_csv(path)
    df.columns = [str(col).strip().lower() for col in df.columns]
    return candles_from_dataframe(df)
