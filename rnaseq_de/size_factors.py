import logging

import numpy as np
from pydeseq2.preprocessing import deseq2_norm

logger = logging.getLogger(__name__)


def estimate_size_factors(counts):
    """
    Median-of-ratios size factors for a genes x samples count matrix.

    Parameters
    ----------
    counts : np.ndarray or pd.DataFrame
        Raw counts (genes x samples).

    Returns
    -------
    np.ndarray
        One factor per sample.

    Raises
    ------
    ValueError
        When every gene has a zero in some sample, so no geometric mean is
        usable. A full fit falls back to iterative size factors in that case.
    """
    if hasattr(counts, "values"):
        counts = counts.values
    counts = np.asarray(counts, dtype=float)

    if not (counts > 0).all(axis=1).any():
        raise ValueError("every gene contains at least one zero; cannot compute "
                         "median-of-ratios size factors")

    _, size_factors = deseq2_norm(counts.T)
    size_factors = np.asarray(size_factors, dtype=float)
    logger.debug("size factors: %s", np.round(size_factors, 4))
    return size_factors
