"""
Statistical analysis of Monte Carlo samples
Summary statistics and equal-width histograms over damage and casualty arrays
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

Samples = Union[Sequence[float], np.ndarray]

DEFAULT_HISTOGRAM_BINS = 20


@dataclass(frozen=True)
class HistogramBin:
    """Values in [lower_bound, upper_bound); the last bin of a histogram also holds its upper bound"""
    lower_bound: float
    upper_bound: float
    count: int

    @property
    def midpoint(self) -> float:
        return (self.lower_bound + self.upper_bound) / 2.0

    @property
    def width(self) -> float:
        return self.upper_bound - self.lower_bound


@dataclass(frozen=True)
class Histogram:
    bins: List[HistogramBin]

    @property
    def total_count(self) -> int:
        return sum(b.count for b in self.bins)

    @property
    def peak_bin(self) -> Optional[HistogramBin]:
        """Bin with the highest count, the first one on ties"""
        if not self.bins:
            return None
        return max(self.bins, key=lambda b: b.count)

    def to_frame(self) -> pd.DataFrame:
        """One row per bin, for charting"""
        return pd.DataFrame(
            [
                {
                    'lower_bound': b.lower_bound,
                    'upper_bound': b.upper_bound,
                    'midpoint': b.midpoint,
                    'count': b.count,
                }
                for b in self.bins
            ],
            columns=['lower_bound', 'upper_bound', 'midpoint', 'count'],
        )


@dataclass(frozen=True)
class SimulationStatistics:
    """Summary of one sampled distribution"""
    mean: float
    median: float
    mode: float
    standard_deviation: float
    minimum: float
    maximum: float
    percentile_25: float
    percentile_75: float
    percentile_90: float
    percentile_95: float
    percentile_99: float

    @property
    def interquartile_range(self) -> float:
        return self.percentile_75 - self.percentile_25

    @property
    def coefficient_of_variation(self) -> float:
        """Standard deviation relative to the mean, 0 when the mean is not positive"""
        if self.mean <= 0:
            return 0.0
        return self.standard_deviation / self.mean

    @classmethod
    def empty(cls) -> 'SimulationStatistics':
        return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    def to_dict(self) -> dict:
        return {
            'mean': self.mean,
            'median': self.median,
            'mode': self.mode,
            'std_dev': self.standard_deviation,
            'min': self.minimum,
            'max': self.maximum,
            'p25': self.percentile_25,
            'p75': self.percentile_75,
            'p90': self.percentile_90,
            'p95': self.percentile_95,
            'p99': self.percentile_99,
            'iqr': self.interquartile_range,
            'cv': self.coefficient_of_variation,
        }


def _as_array(data: Samples) -> np.ndarray:
    return np.asarray(data, dtype=np.float64).ravel()


def calculate_mean(data: Samples) -> float:
    values = _as_array(data)
    if values.size == 0:
        return 0.0
    return float(values.mean())


def calculate_median(data: Samples) -> float:
    """Middle value, or the average of the two middle values for an even count"""
    values = _as_array(data)
    if values.size == 0:
        return 0.0
    return float(np.median(values))


def calculate_mode(data: Samples) -> float:
    """
    Most frequent value.

    Integral data uses exact frequencies (smallest value wins a tie); anything
    else uses the midpoint of the peak bin of a 20-bin histogram.
    """
    values = _as_array(data)
    if values.size == 0:
        return 0.0

    if np.all(values == np.round(values)):
        unique, counts = np.unique(values, return_counts=True)
        return float(unique[np.argmax(counts)])

    peak = create_histogram(values, DEFAULT_HISTOGRAM_BINS).peak_bin
    return peak.midpoint if peak is not None else 0.0


def calculate_standard_deviation(data: Samples) -> float:
    """Sample standard deviation (n - 1 divisor), 0 below two samples"""
    values = _as_array(data)
    if values.size < 2:
        return 0.0
    return float(values.std(ddof=1))


def calculate_percentile(data: Samples, percentile: float) -> float:
    """
    Value at percentile (0.0 to 1.0), interpolating linearly between ranks.

    Returns 0 for empty data or a percentile outside [0, 1].
    """
    values = _as_array(data)
    if values.size == 0:
        return 0.0
    if percentile < 0.0 or percentile > 1.0:
        return 0.0
    return float(np.percentile(values, percentile * 100.0))


def create_histogram(data: Samples, bin_count: int = DEFAULT_HISTOGRAM_BINS) -> Histogram:
    """
    Equal-width histogram spanning the data's min and max.

    A constant sample gives a single bin [value, value + 1) holding every sample.
    """
    values = _as_array(data)
    if values.size == 0:
        return Histogram(bins=[])

    low = float(values.min())
    high = float(values.max())

    if low >= high:
        return Histogram(bins=[HistogramBin(low, low + 1.0, int(values.size))])

    bin_count = max(int(bin_count), 1)
    width = (high - low) / bin_count
    edges = low + np.arange(bin_count + 1) * width

    # The maximum (and anything rounding past the last edge) falls in the last bin
    indices = np.clip(np.searchsorted(edges, values, side='right') - 1, 0, bin_count - 1)
    counts = np.bincount(indices, minlength=bin_count)

    return Histogram(bins=[
        HistogramBin(float(edges[i]), float(edges[i + 1]), int(counts[i]))
        for i in range(bin_count)
    ])


def analyze(data: Samples) -> SimulationStatistics:
    """Calculate the full set of summary statistics for one sample"""
    values = _as_array(data)
    if values.size == 0:
        return SimulationStatistics.empty()

    return SimulationStatistics(
        mean=calculate_mean(values),
        median=calculate_median(values),
        mode=calculate_mode(values),
        standard_deviation=calculate_standard_deviation(values),
        minimum=float(values.min()),
        maximum=float(values.max()),
        percentile_25=calculate_percentile(values, 0.25),
        percentile_75=calculate_percentile(values, 0.75),
        percentile_90=calculate_percentile(values, 0.90),
        percentile_95=calculate_percentile(values, 0.95),
        percentile_99=calculate_percentile(values, 0.99),
    )
