"""Statistics used to condense ping samples into reported metrics.

All functions are pure: they never modify the sequence they are given.
"""

import logging
import math
from typing import Sequence

from pingwatch.models import Stats, StdDevType

logger = logging.getLogger(__name__)


def _check_numeric(samples: Sequence[float]) -> None:
    for value in samples:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"samples contain a non-numeric item: {value!r}")


def compute_stats(
    samples: Sequence[float], dev_type: StdDevType = StdDevType.SAMPLE
) -> Stats:
    """Compute mean, standard deviation, median, min and max of samples.

    Mean and variance use Welford's single-pass update over the samples
    sorted in ascending order. The standard deviation divides by
    ``n - offset`` where the offset is 0 for population data and 1 for a
    sample; it is NaN when there are not more than ``offset`` samples.

    The median is the sorted value at ``floor(n / 2)``, i.e. the upper
    middle value for an even count, not the interpolated median. An
    empty input has median 0.

    Raises:
        TypeError: samples contain non-numeric items or dev_type is not a
            StdDevType.
    """
    _check_numeric(samples)
    if not isinstance(dev_type, StdDevType):
        raise TypeError(f"dev_type is not a StdDevType: {dev_type!r}")

    ordered = sorted(samples)

    mean = 0.0
    s = 0.0
    lowest = math.inf
    highest = -math.inf
    for index, value in enumerate(ordered):
        last_mean = mean
        mean += (value - mean) / (index + 1)
        s += (value - mean) * (value - last_mean)
        lowest = min(lowest, value)
        highest = max(highest, value)

    offset = dev_type.value
    size = len(ordered)
    stddev = math.sqrt(s / (size - offset)) if size > offset else math.nan

    median_index = size // 2
    median = ordered[median_index] if size > median_index else 0.0

    result = Stats(mean=mean, stddev=stddev, median=median, min=lowest, max=highest, size=size)
    logger.debug("Stats report: %s", result)
    return result


def compute_jitter(samples: Sequence[float]) -> float:
    """Mean absolute difference between consecutive samples.

    Samples are taken in the given order, so the result reflects
    variation over time rather than spread. A single sample has jitter 0.

    Raises:
        ValueError: samples is empty.
        TypeError: samples contain non-numeric items.
    """
    if len(samples) == 0:
        raise ValueError("jitter requires at least one sample")
    _check_numeric(samples)

    if len(samples) == 1:
        return 0.0

    total = sum(abs(samples[i] - samples[i - 1]) for i in range(1, len(samples)))
    return total / (len(samples) - 1)


def compute_avt(buffer: Sequence[float]) -> float:
    """Antonyan-Vardan Transform: median after discarding outliers.

    Samples further than one population standard deviation from the
    unfiltered median are dropped, and the median of the remainder is
    returned. An empty buffer yields 0.
    """
    stats = compute_stats(buffer, StdDevType.POPULATION)
    if math.isnan(stats.stddev):
        return stats.median

    low = stats.median - stats.stddev
    high = stats.median + stats.stddev
    kept = [value for value in buffer if low <= value <= high]
    return compute_stats(kept, StdDevType.POPULATION).median
