"""
Indicator Library - numpy implementations of the per-timeframe indicators.

Handles:
- EMA (SMA-seeded)
- RSI, ATR and ADX with Wilder smoothing
- MACD (line, signal, histogram)
- Supertrend (ATR band flip)
- Bollinger bands and volume metrics

Every function returns None when the input is too short for a meaningful
value, so callers can treat a missing indicator as "check not applicable".
"""

from dataclasses import dataclass
from typing import Optional
import logging

import numpy as np

from src.data.candles import CandleSeries


logger = logging.getLogger(__name__)


# =============================================================================
# PRIMITIVES
# =============================================================================

def ema_series(data: np.ndarray, period: int) -> Optional[np.ndarray]:
    """EMA over the whole array; entries before the seed are NaN."""
    if period <= 0 or len(data) < period:
        return None

    out = np.full(len(data), np.nan)
    multiplier = 2.0 / (period + 1)
    ema = float(np.mean(data[:period]))  # Start with SMA
    out[period - 1] = ema

    for i in range(period, len(data)):
        ema = (data[i] - ema) * multiplier + ema
        out[i] = ema

    return out


def calc_ema(data: np.ndarray, period: int) -> Optional[float]:
    """Latest EMA value."""
    series = ema_series(np.asarray(data, dtype=float), period)
    return None if series is None else float(series[-1])


def calc_rsi(closes: np.ndarray, period: int = 14) -> Optional[float]:
    """Latest RSI (Wilder)."""
    closes = np.asarray(closes, dtype=float)
    if len(closes) < period + 1:
        return None

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = np.mean(gains[:period])
    avg_loss = np.mean(losses[:period])

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period

    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0

    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))


def true_range(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    """True range per bar (first bar uses high-low)."""
    tr = np.zeros(len(closes))
    if len(closes) == 0:
        return tr

    tr[0] = highs[0] - lows[0]
    prev_close = closes[:-1]
    tr[1:] = np.maximum.reduce([
        highs[1:] - lows[1:],
        np.abs(highs[1:] - prev_close),
        np.abs(lows[1:] - prev_close),
    ])
    return tr


def atr_series(
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    period: int = 14,
) -> Optional[np.ndarray]:
    """Wilder ATR over the whole array; entries before the seed are NaN."""
    if len(closes) < period + 1:
        return None

    tr = true_range(highs, lows, closes)
    out = np.full(len(tr), np.nan)
    atr = float(np.mean(tr[:period]))
    out[period - 1] = atr

    for i in range(period, len(tr)):
        atr = (atr * (period - 1) + tr[i]) / period
        out[i] = atr

    return out


def calc_atr(highs, lows, closes, period: int = 14) -> Optional[float]:
    """Latest ATR (Wilder)."""
    series = atr_series(
        np.asarray(highs, dtype=float),
        np.asarray(lows, dtype=float),
        np.asarray(closes, dtype=float),
        period,
    )
    return None if series is None else float(series[-1])


def calc_adx(highs, lows, closes, period: int = 14) -> Optional[float]:
    """
    Latest ADX.

    +DM/-DM and TR are Wilder-smoothed, DX is computed per bar and ADX is the
    Wilder average of DX.
    """
    highs = np.asarray(highs, dtype=float)
    lows = np.asarray(lows, dtype=float)
    closes = np.asarray(closes, dtype=float)

    if len(closes) < 2 * period + 1:
        return None

    up_move = highs[1:] - highs[:-1]
    down_move = lows[:-1] - lows[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)
    tr = true_range(highs, lows, closes)[1:]

    smoothed_tr = np.sum(tr[:period])
    smoothed_plus = np.sum(plus_dm[:period])
    smoothed_minus = np.sum(minus_dm[:period])

    dx_values = []
    for i in range(period, len(tr) + 1):
        if i > period:
            smoothed_tr = smoothed_tr - smoothed_tr / period + tr[i - 1]
            smoothed_plus = smoothed_plus - smoothed_plus / period + plus_dm[i - 1]
            smoothed_minus = smoothed_minus - smoothed_minus / period + minus_dm[i - 1]

        if smoothed_tr == 0:
            dx_values.append(0.0)
            continue

        plus_di = 100 * smoothed_plus / smoothed_tr
        minus_di = 100 * smoothed_minus / smoothed_tr
        di_sum = plus_di + minus_di
        dx_values.append(0.0 if di_sum == 0 else 100 * abs(plus_di - minus_di) / di_sum)

    if len(dx_values) < period:
        return None

    adx = float(np.mean(dx_values[:period]))
    for dx in dx_values[period:]:
        adx = (adx * (period - 1) + dx) / period

    return adx


# =============================================================================
# COMPOSITES
# =============================================================================

@dataclass(frozen=True)
class MACD:
    line: float
    signal: float
    histogram: float

    @property
    def is_bullish(self) -> bool:
        return self.line > self.signal


def calc_macd(closes, fast: int = 12, slow: int = 26, signal: int = 9) -> Optional[MACD]:
    """MACD line, signal and histogram for the latest bar."""
    closes = np.asarray(closes, dtype=float)
    if len(closes) < slow + signal:
        return None

    fast_ema = ema_series(closes, fast)
    slow_ema = ema_series(closes, slow)
    macd_line = (fast_ema - slow_ema)[slow - 1:]

    signal_line = ema_series(macd_line, signal)
    if signal_line is None:
        return None

    line = float(macd_line[-1])
    sig = float(signal_line[-1])
    return MACD(line=line, signal=sig, histogram=line - sig)


@dataclass(frozen=True)
class Supertrend:
    value: float
    direction: str  # "bullish" / "bearish"

    @property
    def is_bullish(self) -> bool:
        return self.direction == "bullish"


SUPERTREND_MIN_BARS = 50


def calc_supertrend(
    highs,
    lows,
    closes,
    period: int = 10,
    multiplier: float = 3.0,
) -> Optional[Supertrend]:
    """
    Supertrend using final upper/lower bands around hl2 +/- multiplier x ATR.

    Direction flips when the close crosses the active band.
    """
    highs = np.asarray(highs, dtype=float)
    lows = np.asarray(lows, dtype=float)
    closes = np.asarray(closes, dtype=float)

    if len(closes) < max(SUPERTREND_MIN_BARS, period + 1):
        return None

    atr = atr_series(highs, lows, closes, period)
    hl2 = (highs + lows) / 2

    start = period - 1
    final_upper = hl2[start] + multiplier * atr[start]
    final_lower = hl2[start] - multiplier * atr[start]
    bullish = closes[start] >= hl2[start]

    for i in range(start + 1, len(closes)):
        basic_upper = hl2[i] + multiplier * atr[i]
        basic_lower = hl2[i] - multiplier * atr[i]

        final_upper = basic_upper if (basic_upper < final_upper or closes[i - 1] > final_upper) else final_upper
        final_lower = basic_lower if (basic_lower > final_lower or closes[i - 1] < final_lower) else final_lower

        if bullish and closes[i] < final_lower:
            bullish = False
        elif not bullish and closes[i] > final_upper:
            bullish = True

    return Supertrend(
        value=float(final_lower if bullish else final_upper),
        direction="bullish" if bullish else "bearish",
    )


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


def calc_bollinger(closes, period: int = 20, num_std: float = 2.0) -> Optional[BollingerBands]:
    closes = np.asarray(closes, dtype=float)
    if len(closes) < period:
        return None

    window = closes[-period:]
    middle = float(np.mean(window))
    std = float(np.std(window))
    return BollingerBands(upper=middle + num_std * std, middle=middle, lower=middle - num_std * std)


@dataclass(frozen=True)
class VolumeMetrics:
    latest: float
    average: float
    spike_ratio: float


def calc_volume_metrics(volumes) -> Optional[VolumeMetrics]:
    volumes = np.asarray(volumes, dtype=float)
    if len(volumes) == 0:
        return None

    latest = float(volumes[-1])
    average = float(np.mean(volumes))
    return VolumeMetrics(
        latest=latest,
        average=average,
        spike_ratio=latest / average if average > 0 else 0.0,
    )


# =============================================================================
# SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class IndicatorSnapshot:
    """Latest indicator values for one timeframe. Missing values are None."""
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    ema200: Optional[float] = None
    rsi: Optional[float] = None
    adx: Optional[float] = None
    atr: Optional[float] = None
    macd: Optional[MACD] = None
    supertrend: Optional[Supertrend] = None
    bollinger: Optional[BollingerBands] = None
    volume: Optional[VolumeMetrics] = None
    latest_close: Optional[float] = None

    def to_dict(self) -> dict:
        """Flat dictionary used for trade facts and audit output."""
        return {
            "ema20": self.ema20,
            "ema50": self.ema50,
            "ema200": self.ema200,
            "rsi": self.rsi,
            "adx": self.adx,
            "atr": self.atr,
            "macd": (
                [self.macd.line, self.macd.signal, self.macd.histogram]
                if self.macd else None
            ),
            "supertrend": (
                {"value": self.supertrend.value, "direction": self.supertrend.direction}
                if self.supertrend else None
            ),
            "bollinger_bands": (
                {
                    "upper": self.bollinger.upper,
                    "middle": self.bollinger.middle,
                    "lower": self.bollinger.lower,
                }
                if self.bollinger else None
            ),
            "volume": (
                {
                    "latest": self.volume.latest,
                    "average": self.volume.average,
                    "spike_ratio": self.volume.spike_ratio,
                }
                if self.volume else None
            ),
            "latest_close": self.latest_close,
        }


def compute_indicators(
    series: CandleSeries,
    supertrend_period: int = 10,
    supertrend_multiplier: float = 3.0,
) -> IndicatorSnapshot:
    """Compute the full indicator snapshot for a series."""
    closes = series.closes
    highs = series.highs
    lows = series.lows

    snapshot = IndicatorSnapshot(
        ema20=calc_ema(closes, 20),
        ema50=calc_ema(closes, 50),
        ema200=calc_ema(closes, 200),
        rsi=calc_rsi(closes, 14),
        adx=calc_adx(highs, lows, closes, 14),
        atr=calc_atr(highs, lows, closes, 14),
        macd=calc_macd(closes, 12, 26, 9),
        supertrend=calc_supertrend(highs, lows, closes, supertrend_period, supertrend_multiplier),
        bollinger=calc_bollinger(closes, 20),
        volume=calc_volume_metrics(series.volumes),
        latest_close=series.latest_close,
    )

    logger.debug(
        f"Indicators {series.symbol}/{series.interval}: "
        f"rsi={snapshot.rsi} adx={snapshot.adx} atr={snapshot.atr}"
    )
    return snapshot
