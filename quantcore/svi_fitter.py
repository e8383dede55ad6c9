"""SVI (Stochastic Volatility Inspired) model for volatility surface fitting.

The SVI parameterization models total variance w(k) as a function of log-moneyness k:
    w(k) = a + b * [ρ*(k-m) + sqrt((k-m)² + σ²)]

Where:
    - k = log(K/S) is log-moneyness
    - a = level of variance (vertical shift)
    - b = slope magnitude (controls wing steepness)
    - ρ = rotation parameter (-1 to 1, controls skew direction)
    - m = translation (horizontal shift of the smile)
    - σ = smoothness (controls ATM curvature)

Each expiry slice is fitted independently with a coarse grid search over
(a, b, ρ, σ) followed by projected gradient descent on all five
parameters. Slices that pass the goodness-of-fit gate are combined into a
regular strike x expiry grid for display.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import reduce
from itertools import product
from typing import Iterable, Sequence

import numpy as np
from numpy.typing import NDArray

from quantcore.surface import SurfacePoint

logger = logging.getLogger(__name__)

PARAM_NAMES = ("a", "b", "rho", "m", "sigma")


@dataclass(frozen=True)
class SVIParams:
    """SVI model parameters for one expiry slice.

    Attributes:
        a: Level of variance (vertical shift)
        b: Slope magnitude (wing steepness)
        rho: Rotation parameter (-1 to 1, skew direction)
        m: Translation (horizontal shift)
        sigma: Smoothness (ATM curvature)
    """

    a: float
    b: float
    rho: float
    m: float
    sigma: float

    def total_variance(self, k: NDArray[np.float64] | float) -> NDArray[np.float64]:
        """Total implied variance w(k)."""
        return SVIFitter.svi_total_variance(
            np.asarray(k, dtype=np.float64), self.a, self.b, self.rho, self.m, self.sigma
        )

    def implied_vol(self, k: NDArray[np.float64] | float, expiry_years: float) -> NDArray[np.float64]:
        """Implied volatility sqrt(w/T); zero where the variance is not positive."""
        return SVIFitter.svi_implied_vol(
            np.asarray(k, dtype=np.float64),
            self.a, self.b, self.rho, self.m, self.sigma,
            expiry_years,
        )

    def is_arbitrage_free(self) -> bool:
        """Check the minimum-variance floor: a + b*σ*sqrt(1-ρ²) >= 0.

        This is reported, never enforced: a fitted slice may violate it
        even at an acceptable R².
        """
        if abs(self.rho) >= 1:
            return False
        return self.a + self.b * self.sigma * np.sqrt(1 - self.rho**2) >= 0

    def to_array(self) -> NDArray[np.float64]:
        return np.array([self.a, self.b, self.rho, self.m, self.sigma], dtype=np.float64)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "SVIParams":
        return cls(**{name: float(v) for name, v in zip(PARAM_NAMES, values)})

    def to_dict(self) -> dict[str, float]:
        """Convert parameters to dictionary."""
        return {name: getattr(self, name) for name in PARAM_NAMES}

    @classmethod
    def from_dict(cls, data: dict) -> "SVIParams":
        """Create SVIParams from dictionary."""
        return cls(
            a=data["a"],
            b=data["b"],
            rho=data["rho"],
            m=data["m"],
            sigma=data["sigma"],
        )


@dataclass
class SVIFitResult:
    """Fitted slice with goodness-of-fit statistics.

    Attributes:
        params: Fitted SVI parameters
        expiry_years: Time to expiry the slice was fitted at
        rmse: Root mean squared error in total variance
        r2: Coefficient of determination, clamped to [0, 1]
        fitted_points: (moneyness, observed iv, fitted iv) per input point
        arbitrage_free: Whether the minimum-variance floor holds
    """

    params: SVIParams
    expiry_years: float
    rmse: float
    r2: float
    fitted_points: list[tuple[float, float, float]] = field(default_factory=list)
    arbitrage_free: bool = True

    def to_dict(self) -> dict:
        return {
            "params": self.params.to_dict(),
            "expiry_years": self.expiry_years,
            "rmse": self.rmse,
            "r2": self.r2,
            "fitted_points": [
                {"moneyness": k, "iv": iv, "fitted_iv": fitted}
                for k, iv, fitted in self.fitted_points
            ],
            "arbitrage_free": self.arbitrage_free,
        }


class SVIFitter:
    """Fits the SVI model to one expiry slice of implied volatilities.

    Uses a two-stage optimization:
    1. Coarse 4x4x4x4 grid search over (a, b, rho, sigma) with m = 0
    2. Projected gradient descent with forward-difference gradients

    Example:
        >>> fitter = SVIFitter()
        >>> k = np.array([-0.2, -0.1, 0, 0.1, 0.2])
        >>> w = np.array([0.08, 0.05, 0.04, 0.05, 0.07])
        >>> result = fitter.fit(k, w, expiry_years=0.25)
        >>> print(f"R²: {result.r2:.3f}")
    """

    # Grid search candidates (a is scaled by the mean observed variance)
    A_MULTIPLIERS = (0.5, 0.7, 0.9, 1.0)
    B_VALUES = (0.01, 0.1, 0.2, 0.4)
    RHO_VALUES = (-0.5, -0.3, -0.1, 0.1)
    SIGMA_VALUES = (0.05, 0.1, 0.2, 0.3)

    # Box constraints applied after every descent step
    A_MIN = 0.001
    B_BOUNDS = (0.01, 1.0)
    RHO_BOUNDS = (-0.99, 0.99)
    SIGMA_MIN = 0.01

    # rho and m move 10x slower than the other parameters
    STEP_SCALE = np.array([1.0, 1.0, 0.1, 0.1, 1.0])

    def __init__(
        self,
        learning_rate: float = 0.001,
        iterations: int = 500,
        gradient_step: float = 1e-4,
        min_points: int = 5,
    ):
        """Initialize the SVI fitter.

        Args:
            learning_rate: Gradient descent step size
            iterations: Number of gradient descent iterations
            gradient_step: Forward-difference bump for numerical gradients
            min_points: Minimum observations required to fit a slice
        """
        self.learning_rate = learning_rate
        self.iterations = iterations
        self.gradient_step = gradient_step
        self.min_points = min_points

    @staticmethod
    def svi_total_variance(
        k: NDArray[np.float64],
        a: float,
        b: float,
        rho: float,
        m: float,
        sigma: float,
    ) -> NDArray[np.float64]:
        """Calculate SVI total variance for given log-moneyness.

        The SVI formula:
            w(k) = a + b * [ρ*(k-m) + sqrt((k-m)² + σ²)]

        Example:
            >>> k = np.array([-0.1, 0, 0.1])
            >>> w = SVIFitter.svi_total_variance(k, 0.04, 0.1, -0.3, 0, 0.1)
        """
        k_shifted = k - m
        return a + b * (rho * k_shifted + np.sqrt(k_shifted**2 + sigma**2))

    @staticmethod
    def svi_implied_vol(
        k: NDArray[np.float64],
        a: float,
        b: float,
        rho: float,
        m: float,
        sigma: float,
        expiry_years: float,
    ) -> NDArray[np.float64]:
        """Calculate implied volatility from SVI parameters.

        Implied volatility is sqrt(total_variance / T). Points where the
        fitted variance is not positive return 0 so callers can detect
        them and fall back to raw data.
        """
        w = SVIFitter.svi_total_variance(k, a, b, rho, m, sigma)
        positive = w > 0
        return np.where(positive, np.sqrt(np.where(positive, w, 0.0) / expiry_years), 0.0)

    @staticmethod
    def _sse(params: NDArray[np.float64], k: NDArray[np.float64], w: NDArray[np.float64]) -> float:
        a, b, rho, m, sigma = params
        fitted = SVIFitter.svi_total_variance(k, a, b, rho, m, sigma)
        return float(np.sum((w - fitted) ** 2))

    def _gradient(
        self,
        params: NDArray[np.float64],
        k: NDArray[np.float64],
        w: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Forward-difference gradient of the SSE."""
        h = self.gradient_step
        base = self._sse(params, k, w)
        grad = np.zeros(len(params))
        for i in range(len(params)):
            bumped = params.copy()
            bumped[i] += h
            grad[i] = (self._sse(bumped, k, w) - base) / h
        return grad

    def _project(self, params: NDArray[np.float64]) -> NDArray[np.float64]:
        a, b, rho, m, sigma = params
        return np.array([
            max(self.A_MIN, a),
            min(max(b, self.B_BOUNDS[0]), self.B_BOUNDS[1]),
            min(max(rho, self.RHO_BOUNDS[0]), self.RHO_BOUNDS[1]),
            m,
            max(self.SIGMA_MIN, sigma),
        ])

    def _grid_search(self, k: NDArray[np.float64], w: NDArray[np.float64]) -> NDArray[np.float64]:
        """Best (a, b, rho, sigma) on the coarse grid, m fixed at 0."""
        avg_w = float(np.mean(w))
        candidates = product(
            (avg_w * mult for mult in self.A_MULTIPLIERS),
            self.B_VALUES,
            self.RHO_VALUES,
            self.SIGMA_VALUES,
        )
        best = min(
            (np.array([a, b, rho, 0.0, sigma]) for a, b, rho, sigma in candidates),
            key=lambda p: self._sse(p, k, w),
        )
        logger.debug(f"Grid search start: {dict(zip(PARAM_NAMES, best.round(4)))}")
        return best

    def _descend(
        self,
        start: NDArray[np.float64],
        k: NDArray[np.float64],
        w: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Projected gradient descent, expressed as a fold over iterations."""
        # Keep the level step stable for dense slices: d²SSE/da² = 2n
        lr = min(self.learning_rate, 0.5 / len(k))

        def step(params: NDArray[np.float64], _: int) -> NDArray[np.float64]:
            grad = self._gradient(params, k, w)
            return self._project(params - lr * self.STEP_SCALE * grad)

        return reduce(step, range(self.iterations), start)

    @staticmethod
    def _r_squared(sse: float, w: NDArray[np.float64]) -> float:
        tss = float(np.sum((w - w.mean()) ** 2))
        if tss < 1e-14:
            # Constant observations: measure against the level instead of the mean
            tss = float(np.sum(w**2))
            if tss == 0.0:
                return 0.0
        r2 = 1 - sse / tss
        return float(max(0.0, min(1.0, r2)))

    def fit(
        self,
        log_moneyness: NDArray[np.float64],
        total_variance: NDArray[np.float64],
        expiry_years: float,
    ) -> SVIFitResult:
        """Fit SVI model to one slice of market data.

        Args:
            log_moneyness: Log-moneyness values k = log(K/S)
            total_variance: Market total variance w = σ²*T
            expiry_years: Time to expiry in years

        Returns:
            SVIFitResult with fitted parameters, RMSE and R²

        Raises:
            ValueError: On mismatched inputs or fewer than min_points points
        """
        if len(log_moneyness) != len(total_variance):
            raise ValueError("log_moneyness and total_variance must have same length")

        if len(log_moneyness) < self.min_points:
            raise ValueError(f"Need at least {self.min_points} data points to fit SVI model")

        if expiry_years <= 0:
            raise ValueError("expiry_years must be positive")

        k = np.asarray(log_moneyness, dtype=np.float64)
        w = np.asarray(total_variance, dtype=np.float64)

        start = self._grid_search(k, w)
        best = self._descend(start, k, w)

        sse = self._sse(best, k, w)
        rmse = float(np.sqrt(sse / len(k)))
        r2 = self._r_squared(sse, w)
        params = SVIParams.from_array(best)

        fitted_iv = params.implied_vol(k, expiry_years)
        observed_iv = np.sqrt(np.maximum(w, 0.0) / expiry_years)

        logger.debug(
            f"SVI fit complete: a={params.a:.4f}, b={params.b:.4f}, rho={params.rho:.4f}, "
            f"m={params.m:.4f}, sigma={params.sigma:.4f}, RMSE={rmse:.6f}, R²={r2:.3f}"
        )

        return SVIFitResult(
            params=params,
            expiry_years=expiry_years,
            rmse=rmse,
            r2=r2,
            fitted_points=[
                (float(ki), float(iv), float(fi))
                for ki, iv, fi in zip(k, observed_iv, fitted_iv)
            ],
            arbitrage_free=bool(params.is_arbitrage_free()),
        )


def fit_svi_slice(
    points: Iterable[tuple[float, float]],
    expiry_years: float,
    min_points: int = 5,
) -> SVIFitResult | None:
    """Fit one expiry slice from (moneyness, iv) pairs.

    Returns None instead of raising when the slice has too few points.
    """
    points = list(points)
    if len(points) < min_points:
        return None

    k = np.array([p[0] for p in points], dtype=np.float64)
    iv = np.array([p[1] for p in points], dtype=np.float64)

    fitter = SVIFitter(min_points=min_points)
    return fitter.fit(k, iv**2 * expiry_years, expiry_years)


@dataclass
class SVISurfaceGrid:
    """Regular strike x expiry grid of implied volatilities.

    Attributes:
        strikes: Strike axis, length resolution + 1
        expiries: Expiry axis in days, length resolution + 1
        iv_grid: Implied vols, shape (len(expiries), len(strikes)); NaN
            where neither an SVI fit nor raw data covers the cell
        svi_fits: Accepted slice fits keyed by days to expiry
    """

    strikes: NDArray[np.float64]
    expiries: NDArray[np.float64]
    iv_grid: NDArray[np.float64]
    svi_fits: dict[int, SVIFitResult]

    def to_dict(self) -> dict:
        return {
            "strikes": self.strikes.tolist(),
            "expiries": self.expiries.tolist(),
            # NaN is not valid JSON
            "iv_grid": [
                [None if np.isnan(v) else float(v) for v in row] for row in self.iv_grid
            ],
            "svi_fits": {days: fit.to_dict() for days, fit in self.svi_fits.items()},
        }


def _point_iv(point: SurfacePoint) -> float | None:
    return point.call_iv if point.call_iv is not None else point.put_iv


def _bracket(days: float, available: Sequence[int]) -> tuple[int | None, int | None]:
    """Nearest entries at-or-below and at-or-above `days` in a sorted sequence."""
    lower = next((d for d in reversed(available) if d <= days), None)
    upper = next((d for d in available if d >= days), None)
    return lower, upper


def _interpolate_raw_iv(
    strike: float,
    days: float,
    raw_iv_by_expiry: dict[int, dict[float, float]],
    expiry_days: Sequence[int],
) -> float:
    """Bilinear interpolation over raw (strike, expiry) IV observations.

    Returns 0 when no observation brackets the cell in either dimension.
    """

    def at_expiry(exp_days: int) -> float | None:
        strike_map = raw_iv_by_expiry.get(exp_days)
        if not strike_map:
            return None

        lower, upper = _bracket(strike, sorted(strike_map))
        if lower is None and upper is None:
            return None
        if lower is None:
            return strike_map[upper]
        if upper is None or lower == upper:
            return strike_map[lower]

        weight = (strike - lower) / (upper - lower)
        return strike_map[lower] * (1 - weight) + strike_map[upper] * weight

    lower_exp, upper_exp = _bracket(days, expiry_days)
    lower_iv = at_expiry(lower_exp) if lower_exp is not None else None
    upper_iv = at_expiry(upper_exp) if upper_exp is not None else None

    if lower_iv is None and upper_iv is None:
        return 0.0
    if lower_iv is None:
        return upper_iv
    if upper_iv is None or lower_exp == upper_exp:
        return lower_iv

    weight = (days - lower_exp) / (upper_exp - lower_exp)
    return lower_iv * (1 - weight) + upper_iv * weight


def generate_svi_surface(
    surface_points: Sequence[SurfacePoint],
    spot_price: float,
    strike_range: tuple[float, float],
    expiry_range: tuple[float, float],
    resolution: int = 30,
    min_r2: float = 0.3,
    min_slice_points: int = 4,
    max_workers: int | None = None,
) -> SVISurfaceGrid:
    """Generate a smooth implied volatility grid from surface points.

    Fits SVI per expiry (slices with at least `min_slice_points` valid IVs),
    keeps fits with R² > min_r2, then evaluates every grid cell from the
    nearest accepted fits around its expiry, linearly weighted in days.
    Cells with no accepted fit fall back to bilinear interpolation of the
    raw observations.

    Args:
        surface_points: Points from the IV pass over an option chain
        spot_price: Underlying price for log-moneyness
        strike_range: (min, max) strike of the grid
        expiry_range: (min, max) days to expiry of the grid
        resolution: Steps per axis; the grid has resolution + 1 nodes per axis
        min_r2: Goodness-of-fit gate for accepting a slice
        min_slice_points: Minimum valid IVs to attempt a slice fit
        max_workers: Fit slices in a thread pool when set

    Returns:
        SVISurfaceGrid with axes, IV grid and accepted fits
    """
    if resolution < 1:
        raise ValueError("resolution must be at least 1")
    if spot_price <= 0:
        raise ValueError("spot_price must be positive")

    by_expiry: dict[int, list[SurfacePoint]] = {}
    for p in surface_points:
        by_expiry.setdefault(p.days_to_expiry, []).append(p)

    raw_iv_by_expiry: dict[int, dict[float, float]] = {}
    slice_data: dict[int, list[tuple[float, float]]] = {}
    for days, points in by_expiry.items():
        valid = [(p, _point_iv(p)) for p in points if _point_iv(p) is not None]
        raw_iv_by_expiry[days] = {p.strike: iv for p, iv in valid}
        if len(valid) >= min_slice_points:
            slice_data[days] = [(p.moneyness, iv) for p, iv in valid]

    def fit_one(days: int) -> tuple[int, SVIFitResult | None]:
        return days, fit_svi_slice(slice_data[days], days / 365, min_points=min_slice_points)

    if max_workers:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(fit_one, slice_data))
    else:
        results = [fit_one(days) for days in slice_data]

    svi_fits: dict[int, SVIFitResult] = {}
    for days, fit in results:
        if fit is not None and fit.r2 > min_r2:
            svi_fits[days] = fit
        else:
            logger.debug(f"Rejected SVI slice at {days}d (R²={fit.r2 if fit else 'n/a'})")

    strikes = np.linspace(strike_range[0], strike_range[1], resolution + 1)
    expiries = np.linspace(expiry_range[0], expiry_range[1], resolution + 1)
    log_moneyness = np.log(strikes / spot_price)

    expiry_days = sorted(by_expiry)
    fitted_days = sorted(svi_fits)
    iv_grid = np.full((len(expiries), len(strikes)), np.nan)

    for ei, days in enumerate(expiries):
        lower, upper = _bracket(days, fitted_days)

        if lower is not None and upper is not None and upper != lower:
            lower_iv = svi_fits[lower].params.implied_vol(log_moneyness, lower / 365)
            upper_iv = svi_fits[upper].params.implied_vol(log_moneyness, upper / 365)
            weight = (days - lower) / (upper - lower)
            row = lower_iv * (1 - weight) + upper_iv * weight
        elif lower is not None or upper is not None:
            nearest = lower if lower is not None else upper
            row = svi_fits[nearest].params.implied_vol(log_moneyness, nearest / 365)
        else:
            row = np.zeros(len(strikes))

        for si, strike in enumerate(strikes):
            iv = float(row[si])
            if not iv > 0:
                iv = _interpolate_raw_iv(strike, days, raw_iv_by_expiry, expiry_days)
            if iv > 0:
                iv_grid[ei, si] = iv

    logger.info(
        f"SVI surface: {len(svi_fits)}/{len(by_expiry)} slices accepted, "
        f"{int(np.isnan(iv_grid).sum())} empty cells"
    )

    return SVISurfaceGrid(
        strikes=strikes,
        expiries=expiries,
        iv_grid=iv_grid,
        svi_fits=svi_fits,
    )


def interpolate_svi_surface(
    fits: Sequence[SVIFitResult],
    target_expiry: float,
    log_moneyness: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Interpolate implied volatility at an arbitrary expiry.

    Uses linear interpolation of SVI parameters in the time dimension and
    flat extrapolation of the parameters beyond the fitted range.

    Args:
        fits: Fitted slices at various expiries
        target_expiry: Target expiry time in years
        log_moneyness: Log-moneyness values for which to compute IV

    Returns:
        Interpolated implied volatility at target expiry
    """
    if len(fits) < 2:
        raise ValueError("Need at least 2 expiries for interpolation")

    ordered = sorted(fits, key=lambda f: f.expiry_years)
    expiries = np.array([f.expiry_years for f in ordered])
    k = np.asarray(log_moneyness, dtype=np.float64)

    if target_expiry <= expiries[0]:
        return ordered[0].params.implied_vol(k, target_expiry)
    if target_expiry >= expiries[-1]:
        return ordered[-1].params.implied_vol(k, target_expiry)

    idx = int(np.searchsorted(expiries, target_expiry))
    t1, t2 = expiries[idx - 1], expiries[idx]
    p1 = ordered[idx - 1].params.to_array()
    p2 = ordered[idx].params.to_array()

    weight = (target_expiry - t1) / (t2 - t1)
    params = SVIParams.from_array(p1 + weight * (p2 - p1))
    return params.implied_vol(k, target_expiry)
