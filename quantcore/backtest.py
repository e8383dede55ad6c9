"""Mean-reversion backtest on a Z-scored spread.

The strategy is an explicit state machine over three directions:

    FLAT         no position
    LONG_SPREAD  entered when Z < lower threshold (spread expected to rise)
    SHORT_SPREAD entered when Z > upper threshold (spread expected to fall)

Each bar is processed by a pure transition, `BacktestEngine.step`, which
takes the current `PositionState` and a `Bar` and returns the next state
plus the trade closed on that bar, if any. Exits are checked before
entries, so a position closed on a bar can be replaced on the same bar.

Legs are sized from spread weights: a pair uses (1, -β), a basket uses
1 for the dependent leg and -coef for the others. Going long the spread
buys positive-weight legs and sells negative-weight legs.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252


class Direction(str, Enum):
    """Spread position direction."""

    FLAT = "flat"
    LONG_SPREAD = "long_spread"
    SHORT_SPREAD = "short_spread"


class ExitReason(str, Enum):
    """Why a position was closed. Checked in declaration order."""

    EXIT_THRESHOLD = "exit_threshold"
    STOP_LOSS = "stop_loss"
    TRAILING_STOP = "trailing_stop"
    MAX_HOLDING = "max_holding"


@dataclass(frozen=True)
class BacktestConfig:
    """Strategy parameters. None disables the optional rules.

    Attributes:
        entry_threshold_upper: Z above which the spread is shorted
        entry_threshold_lower: Z below which the spread is bought
        exit_threshold: Z level that closes a position
        stop_loss_percent: Close when PnL% falls to -stop_loss_percent
        trailing_stop_percent: Close when PnL% falls this far below its peak
        capital_per_leg: Notional allocated per unit of leg weight
        rolling_window: Bars for rolling Z-score (None = full history)
        max_holding_period: Close after this many bars in a position
        initial_capital: Starting equity
    """

    entry_threshold_upper: float = 2.0
    entry_threshold_lower: float = -2.0
    exit_threshold: float = 0.0
    stop_loss_percent: float | None = None
    trailing_stop_percent: float | None = None
    capital_per_leg: float = 1000.0
    rolling_window: int | None = None
    max_holding_period: int | None = None
    initial_capital: float = 10000.0

    def __post_init__(self):
        if not self.entry_threshold_upper > self.exit_threshold > self.entry_threshold_lower:
            raise ValueError(
                "Thresholds must satisfy upper > exit > lower, got "
                f"{self.entry_threshold_upper} / {self.exit_threshold} / {self.entry_threshold_lower}"
            )
        if self.capital_per_leg <= 0:
            raise ValueError("capital_per_leg must be positive")
        if self.initial_capital <= 0:
            raise ValueError("initial_capital must be positive")
        for name in ("stop_loss_percent", "trailing_stop_percent"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive or None")
        for name in ("rolling_window", "max_holding_period"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be a positive integer or None")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entry_threshold_upper": self.entry_threshold_upper,
            "entry_threshold_lower": self.entry_threshold_lower,
            "exit_threshold": self.exit_threshold,
            "stop_loss_percent": self.stop_loss_percent,
            "trailing_stop_percent": self.trailing_stop_percent,
            "capital_per_leg": self.capital_per_leg,
            "rolling_window": self.rolling_window,
            "max_holding_period": self.max_holding_period,
            "initial_capital": self.initial_capital,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestConfig":
        """Create from dictionary; missing keys take their defaults."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_preset(cls, name: str) -> "BacktestConfig":
        """Look up a named strategy preset."""
        try:
            return STRATEGY_PRESETS[name]
        except KeyError:
            raise ValueError(
                f"Unknown preset {name!r}, expected one of {sorted(STRATEGY_PRESETS)}"
            )


STRATEGY_PRESETS: dict[str, BacktestConfig] = {
    "default": BacktestConfig(),
    "conservative": BacktestConfig(
        entry_threshold_upper=2.5,
        entry_threshold_lower=-2.5,
        exit_threshold=0.0,
        stop_loss_percent=8,
        trailing_stop_percent=5,
        capital_per_leg=500,
        rolling_window=60,
        max_holding_period=30,
    ),
    "moderate": BacktestConfig(
        entry_threshold_upper=2.0,
        entry_threshold_lower=-2.0,
        exit_threshold=0.0,
        stop_loss_percent=12,
        capital_per_leg=1000,
        rolling_window=40,
        max_holding_period=60,
    ),
    "aggressive": BacktestConfig(
        entry_threshold_upper=1.5,
        entry_threshold_lower=-1.5,
        exit_threshold=0.2,
        stop_loss_percent=20,
        capital_per_leg=2000,
        rolling_window=20,
    ),
}


@dataclass(frozen=True)
class Bar:
    """One observation fed to the state machine."""

    index: int
    date: str
    z: float
    prices: tuple[float, ...]


@dataclass(frozen=True)
class PositionState:
    """Open position (or FLAT). Replaced, never mutated, on every bar."""

    direction: Direction = Direction.FLAT
    entry_prices: tuple[float, ...] = ()
    entry_shares: tuple[float, ...] = ()
    entry_index: int = -1
    entry_date: str | None = None
    entry_z: float = 0.0
    peak_pnl_percent: float = 0.0

    @property
    def is_flat(self) -> bool:
        return self.direction == Direction.FLAT


@dataclass(frozen=True)
class TradeLeg:
    """One instrument of a closed trade."""

    symbol: str
    side: str  # 'long' or 'short'
    shares: float
    entry_price: float
    exit_price: float
    pnl: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side,
            "shares": self.shares,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "pnl": self.pnl,
        }


@dataclass(frozen=True)
class Trade:
    """A round trip from entry to exit."""

    direction: Direction
    entry_date: str
    exit_date: str
    entry_index: int
    exit_index: int
    entry_z: float
    exit_z: float
    pnl: float
    legs: tuple[TradeLeg, ...]
    exit_reason: ExitReason

    @property
    def holding_period(self) -> int:
        return self.exit_index - self.entry_index

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "entry_date": self.entry_date,
            "exit_date": self.exit_date,
            "entry_index": self.entry_index,
            "exit_index": self.exit_index,
            "entry_z": self.entry_z,
            "exit_z": self.exit_z,
            "pnl": self.pnl,
            "legs": [leg.to_dict() for leg in self.legs],
            "exit_reason": self.exit_reason.value,
        }


@dataclass
class BacktestResult:
    """Backtest outcome.

    Attributes:
        equity_curve: Realised equity, one value per input bar
        trades: Number of closed trades
        win_rate: Fraction of closed trades with positive PnL
        total_return: (final - initial) / initial
        max_drawdown: Largest peak-to-trough fall of realised equity (fraction)
        sharpe_ratio: Annualised Sharpe of bar-over-bar equity returns
        history: Closed trades in exit order
    """

    equity_curve: NDArray[np.float64]
    trades: int
    win_rate: float
    total_return: float
    max_drawdown: float
    sharpe_ratio: float
    history: list[Trade] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "equity_curve": self.equity_curve.tolist(),
            "trades": self.trades,
            "win_rate": self.win_rate,
            "total_return": self.total_return,
            "max_drawdown": self.max_drawdown,
            "sharpe_ratio": self.sharpe_ratio,
            "history": [t.to_dict() for t in self.history],
        }


class BacktestEngine:
    """Runs the FLAT / LONG_SPREAD / SHORT_SPREAD state machine.

    Example:
        >>> engine = BacktestEngine(BacktestConfig(), weights=[1.0, -0.8], symbols=["A", "B"])
        >>> result = engine.run(z_scores, prices, dates)
        >>> print(f"{result.trades} trades, return {result.total_return:.2%}")
    """

    def __init__(
        self,
        config: BacktestConfig,
        weights: Sequence[float],
        symbols: Sequence[str],
    ):
        """Initialize the engine.

        Args:
            config: Strategy parameters
            weights: Spread weight per leg
            symbols: Leg names, same order as weights
        """
        if len(weights) != len(symbols):
            raise ValueError("weights and symbols must have same length")
        if len(weights) < 2:
            raise ValueError("A spread needs at least 2 legs")
        if not np.all(np.isfinite(weights)):
            raise ValueError("Spread weights must be finite")

        self.config = config
        self.weights = np.asarray(weights, dtype=np.float64)
        self.symbols = tuple(symbols)
        # +1 long / -1 short per leg when long the spread
        self._long_sides = np.where(self.weights >= 0, 1.0, -1.0)

    def _sides(self, direction: Direction) -> NDArray[np.float64]:
        return self._long_sides if direction == Direction.LONG_SPREAD else -self._long_sides

    def _open_pnl(self, state: PositionState, prices: tuple[float, ...]) -> tuple[NDArray[np.float64], float]:
        """Per-leg PnL and PnL% of the entry notional."""
        shares = np.array(state.entry_shares)
        entry = np.array(state.entry_prices)
        leg_pnl = shares * self._sides(state.direction) * (np.array(prices) - entry)

        notional = float(np.sum(shares * entry))
        pnl_percent = 100 * float(leg_pnl.sum()) / notional if notional > 0 else 0.0
        return leg_pnl, pnl_percent

    def _exit_reason(
        self,
        state: PositionState,
        bar: Bar,
        pnl_percent: float,
        peak: float,
    ) -> ExitReason | None:
        cfg = self.config

        if state.direction == Direction.LONG_SPREAD and bar.z >= cfg.exit_threshold:
            return ExitReason.EXIT_THRESHOLD
        if state.direction == Direction.SHORT_SPREAD and bar.z <= cfg.exit_threshold:
            return ExitReason.EXIT_THRESHOLD
        if cfg.stop_loss_percent is not None and pnl_percent <= -cfg.stop_loss_percent:
            return ExitReason.STOP_LOSS
        if (
            cfg.trailing_stop_percent is not None
            and peak > 0
            and pnl_percent <= peak - cfg.trailing_stop_percent
        ):
            return ExitReason.TRAILING_STOP
        if (
            cfg.max_holding_period is not None
            and bar.index - state.entry_index >= cfg.max_holding_period
        ):
            return ExitReason.MAX_HOLDING
        return None

    def _close(
        self,
        state: PositionState,
        bar: Bar,
        leg_pnl: NDArray[np.float64],
        reason: ExitReason,
    ) -> Trade:
        sides = self._sides(state.direction)
        legs = tuple(
            TradeLeg(
                symbol=symbol,
                side="long" if side > 0 else "short",
                shares=shares,
                entry_price=entry,
                exit_price=exit_price,
                pnl=float(pnl),
            )
            for symbol, side, shares, entry, exit_price, pnl in zip(
                self.symbols, sides, state.entry_shares, state.entry_prices, bar.prices, leg_pnl
            )
        )
        return Trade(
            direction=state.direction,
            entry_date=state.entry_date,
            exit_date=bar.date,
            entry_index=state.entry_index,
            exit_index=bar.index,
            entry_z=state.entry_z,
            exit_z=bar.z,
            pnl=float(leg_pnl.sum()),
            legs=legs,
            exit_reason=reason,
        )

    def _open(self, bar: Bar) -> PositionState:
        cfg = self.config

        if bar.z > cfg.entry_threshold_upper:
            direction = Direction.SHORT_SPREAD
        elif bar.z < cfg.entry_threshold_lower:
            direction = Direction.LONG_SPREAD
        else:
            return PositionState()

        shares = tuple(
            float(cfg.capital_per_leg * abs(w) / p) for w, p in zip(self.weights, bar.prices)
        )
        return PositionState(
            direction=direction,
            entry_prices=tuple(float(p) for p in bar.prices),
            entry_shares=shares,
            entry_index=bar.index,
            entry_date=bar.date,
            entry_z=bar.z,
        )

    def step(self, state: PositionState, bar: Bar) -> tuple[PositionState, Trade | None]:
        """Advance the state machine by one bar.

        Args:
            state: Position before the bar
            bar: Current observation

        Returns:
            (next state, trade closed on this bar or None)
        """
        trade = None

        if not state.is_flat:
            leg_pnl, pnl_percent = self._open_pnl(state, bar.prices)
            peak = max(state.peak_pnl_percent, pnl_percent)
            reason = self._exit_reason(state, bar, pnl_percent, peak)

            if reason is None:
                return replace(state, peak_pnl_percent=peak), None

            trade = self._close(state, bar, leg_pnl, reason)
            state = PositionState()

        return self._open(bar), trade

    def run(
        self,
        z_scores: ArrayLike,
        prices: ArrayLike,
        dates: Sequence[str],
    ) -> BacktestResult:
        """Step the state machine through every bar from index 1.

        Args:
            z_scores: Spread Z-score per bar
            prices: Leg prices, shape (n_bars, n_legs)
            dates: Bar labels

        Returns:
            BacktestResult with one equity value per bar
        """
        z = np.asarray(z_scores, dtype=np.float64)
        px = np.asarray(prices, dtype=np.float64)

        if px.ndim != 2 or px.shape[1] != len(self.weights):
            raise ValueError(f"prices must have shape (n_bars, {len(self.weights)})")
        if not (len(z) == len(px) == len(dates)):
            raise ValueError("z_scores, prices and dates must have same length")
        if len(z) == 0:
            raise ValueError("Cannot backtest an empty series")

        state = PositionState()
        equity = [self.config.initial_capital]
        history: list[Trade] = []

        for i in range(1, len(z)):
            bar = Bar(index=i, date=str(dates[i]), z=float(z[i]), prices=tuple(px[i]))
            state, trade = self.step(state, bar)
            if trade is not None:
                history.append(trade)
                equity.append(equity[-1] + trade.pnl)
            else:
                equity.append(equity[-1])

        if not state.is_flat:
            logger.debug(
                f"Position still open at end of series ({state.direction.value} "
                f"since bar {state.entry_index})"
            )

        return summarize(np.array(equity), history, self.config.initial_capital)


def max_drawdown(equity_curve: NDArray[np.float64]) -> float:
    """Largest fractional fall from a running peak."""
    peaks = np.maximum.accumulate(equity_curve)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - equity_curve) / peaks, 0.0)
    return float(drawdowns.max()) if len(drawdowns) else 0.0


def sharpe_ratio(equity_curve: NDArray[np.float64]) -> float:
    """Annualised Sharpe of bar-over-bar returns (population std, zero rate)."""
    if len(equity_curve) < 2:
        return 0.0
    # Returns off a non-positive base are undefined; those bars are dropped
    prev = equity_curve[:-1]
    live = prev > 0
    if not live.any():
        return 0.0
    rets = np.diff(equity_curve)[live] / prev[live]
    sd = float(np.std(rets, ddof=0))
    if sd == 0:
        return 0.0
    ratio = float(np.mean(rets) / sd * np.sqrt(TRADING_DAYS_PER_YEAR))
    return ratio if math.isfinite(ratio) else 0.0


def summarize(
    equity_curve: NDArray[np.float64],
    history: list[Trade],
    initial_capital: float,
) -> BacktestResult:
    """Build performance statistics from an equity curve and trade list."""
    wins = sum(1 for t in history if t.pnl > 0)
    final = float(equity_curve[-1])

    return BacktestResult(
        equity_curve=equity_curve,
        trades=len(history),
        win_rate=wins / len(history) if history else 0.0,
        total_return=(final - initial_capital) / initial_capital,
        max_drawdown=max_drawdown(equity_curve),
        sharpe_ratio=sharpe_ratio(equity_curve),
        history=history,
    )
