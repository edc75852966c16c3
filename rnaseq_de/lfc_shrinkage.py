"""
Log fold change shrinkage.

Genes with low counts or high dispersion have noisy fold change estimates.
Shrinking them toward zero gives effect sizes that are easier to rank and
plot. pydeseq2 implements the apeglm approach: a heavy-tailed Cauchy prior
whose scale is estimated from the data, so small estimates are pulled
strongly to zero while large ones are preserved.

Only the point estimate and its standard error change; the test statistics
and p-values of a results table are left as they were.

References:
    - Zhu A, Ibrahim JG, Love MI (2019). Heavy-tailed prior distributions
      for sequence count data: removing the noise and preserving large
      differences. Bioinformatics 35(12):2084-2092
"""

import copy
import logging

import numpy as np
from pydeseq2.ds import DeseqStats

from .errors import DesignError
from .results import contrast_for
from .results import results as extract_results

logger = logging.getLogger(__name__)


def shrinkage_coefficient(fit, vector):
    """
    Engine column that ``vector`` selects.

    Shrinkage acts on one model coefficient at a time, so the contrast must
    be exactly one coefficient of the fitted model.
    """
    engine_vec = fit.engine_contrast(vector)
    nonzero = np.flatnonzero(np.abs(engine_vec) > 1e-10)
    if len(nonzero) != 1 or not np.isclose(engine_vec[nonzero[0]], 1.0):
        raise DesignError(
            "Shrinkage needs a contrast equal to a single coefficient of the model; "
            "relevel the factor so the denominator is the reference level")
    return fit.engine_columns[nonzero[0]], engine_vec


def shrink_results(fit, name=None, contrast=None, alpha=0.1, lfc_threshold=0.0,
                   alt_hypothesis="greaterAbs", independent_filtering=True,
                   cooks_cutoff=True):
    """
    Results table with shrunken log2 fold changes.

    Parameters
    ----------
    fit : DESeqFit
    name, contrast
        Coefficient to shrink, as for :func:`rnaseq_de.results.results`.
        A level-pair contrast must have the reference level as denominator.
    alpha, lfc_threshold, alt_hypothesis, independent_filtering, cooks_cutoff
        Passed to the unshrunken test.

    Returns
    -------
    pd.DataFrame
        ``log2FoldChange`` is the posterior mode and ``lfcSE`` its posterior
        standard deviation; ``stat``, ``pvalue`` and ``padj`` are those of the
        unshrunken test. ``attrs["shrinkage"]`` is ``"apeglm"``.

    Raises
    ------
    DesignError
        If the contrast is not a single model coefficient.
    """
    vec, _ = contrast_for(fit.design, name=name, contrast=contrast)
    coeff, engine_vec = shrinkage_coefficient(fit, vec)

    res = extract_results(fit, name=name, contrast=contrast, alpha=alpha,
                          lfc_threshold=lfc_threshold, alt_hypothesis=alt_hypothesis,
                          independent_filtering=independent_filtering,
                          cooks_cutoff=cooks_cutoff)

    logger.info("Shrinking log fold changes of %s", coeff)
    # lfc_shrink writes into the dataset it was given
    ds = DeseqStats(copy.deepcopy(fit.dds), contrast=engine_vec, alpha=alpha,
                    inference=fit.inference, quiet=True)
    ds.summary()
    ds.lfc_shrink(coeff=coeff)

    shrunk = ds.results_df
    res["log2FoldChange"] = shrunk["log2FoldChange"].to_numpy(dtype=float)
    res["lfcSE"] = shrunk["lfcSE"].to_numpy(dtype=float)
    res.loc[fit.all_zero, ["log2FoldChange", "lfcSE"]] = np.nan
    res.attrs["shrinkage"] = "apeglm"
    return res
