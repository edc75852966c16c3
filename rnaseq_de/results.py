"""
Results tables: Wald tests of single coefficients and contrasts.

A results table has one row per gene and the columns ``baseMean``,
``log2FoldChange``, ``lfcSE``, ``stat``, ``pvalue`` and ``padj``. Genes with
only zero counts carry NaN in every statistic; genes flagged by Cook's
distance carry NaN p-values; genes removed by independent filtering carry a
NaN ``padj``.

Wald and threshold tests are computed by pydeseq2's ``DeseqStats``. The
filtering and adjustment helpers below serve tables built from other
statistics, such as the likelihood ratio test.

References:
    - Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
      and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
    - Bourgon R, Gentleman R, Huber W (2010). Independent filtering
      increases detection power for high-throughput experiments.
      PNAS 107(21):9546-9551
"""

import logging

import numpy as np
import pandas as pd
from pydeseq2.ds import DeseqStats
from scipy.stats import f as f_dist
from statsmodels.stats.multitest import multipletests

from .config import check_alt_hypothesis
from .errors import DesignError

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]


def benjamini_hochberg(pvals):
    """
    Benjamini-Hochberg adjusted p-values.

    NaN p-values stay NaN and do not count towards the number of tests.
    """
    pvals = np.asarray(pvals, dtype=float)
    padj = np.full_like(pvals, np.nan)
    valid = np.isfinite(pvals)
    if valid.any():
        padj[valid] = multipletests(pvals[valid], method="fdr_bh")[1]
    return padj


def max_cooks(cooks, design_matrix, min_replicates=3):
    """
    Per-gene maximum Cook's distance over samples in well-replicated cells.

    Only samples whose design row occurs at least ``min_replicates`` times
    contribute; with no such sample the result is NaN for every gene.
    """
    X = np.asarray(design_matrix, dtype=float)
    _, inverse, per_row = np.unique(X, axis=0, return_inverse=True, return_counts=True)
    use = per_row[np.ravel(inverse)] >= min_replicates
    out = np.full(cooks.shape[0], np.nan)
    if not use.any():
        return out
    sub = cooks[:, use]
    has_value = np.isfinite(sub).any(axis=1)
    out[has_value] = np.nanmax(sub[has_value], axis=1)
    return out


def default_cooks_cutoff(n_samples, n_params, percentile=0.99):
    """99% quantile of F(p, m - p), DESeq2's default outlier cutoff."""
    return f_dist.ppf(percentile, n_params, max(n_samples - n_params, 1))


def find_optimal_threshold(base_means, pvalues, alpha=0.1, n_bins=50):
    """
    Find the baseMean filtering threshold that maximizes discoveries.

    Thresholds are quantiles of ``base_means`` from the fraction of
    zero-mean genes up to the 95th percentile.

    Returns
    -------
    float
        Genes with ``base_means`` strictly greater than this are kept.
    int
        Number of rejections at that threshold.

    Notes
    -----
    The threshold with the most raw rejections wins; ties go to the lowest
    threshold. DESeq2 (and the Wald path through ``DeseqStats``) instead
    smooths the rejection curve with lowess and takes the first threshold
    within one residual standard deviation of the smoothed maximum, which
    usually filters less aggressively on noisy curves.
    """
    base_means = np.asarray(base_means, dtype=float)
    pvalues = np.asarray(pvalues, dtype=float)

    lower = np.mean(base_means == 0)
    upper = 0.95 if lower < 0.95 else 1.0
    thetas = np.linspace(lower, upper, n_bins)
    thresholds = np.quantile(base_means, thetas)

    best_rej = -1
    best_threshold = 0.0
    for thresh in thresholds:
        mask = base_means > thresh if thresh > 0 else base_means > 0
        padj = benjamini_hochberg(np.where(mask, pvalues, np.nan))
        n_rej = int(np.sum(padj < alpha))
        if n_rej > best_rej:
            best_rej = n_rej
            best_threshold = thresh

    return best_threshold, best_rej


def independent_filtering(base_means, pvalues, alpha=0.1, theta=None):
    """
    Filter genes by mean normalized count before BH adjustment.

    Parameters
    ----------
    base_means : np.ndarray
        Mean normalized counts per gene (filter criterion).
    pvalues : np.ndarray
        Raw p-values per gene.
    alpha : float
        FDR level used to choose the threshold.
    theta : float, optional
        Fixed baseMean threshold; skips the search.

    Returns
    -------
    dict
        - 'padj': adjusted p-values, NaN for filtered genes
        - 'filter': boolean mask of genes passing the filter
        - 'threshold': baseMean threshold used
        - 'n_filtered': number of genes removed
    """
    base_means = np.asarray(base_means, dtype=float)
    pvalues = np.asarray(pvalues, dtype=float)

    if theta is not None:
        threshold = theta
    elif np.isfinite(pvalues).sum() == 0:
        threshold = 0.0
    else:
        threshold, _ = find_optimal_threshold(base_means, pvalues, alpha)

    filter_mask = (base_means > threshold) & (base_means > 0)
    padj = benjamini_hochberg(np.where(filter_mask, pvalues, np.nan))

    logger.debug("independent filtering: baseMean > %.4g keeps %d of %d genes",
                 threshold, int(filter_mask.sum()), len(base_means))

    return {
        "padj": padj,
        "filter": filter_mask,
        "threshold": threshold,
        "n_filtered": int((~filter_mask).sum()),
    }


# results() takes a flag of the same name
_independent_filtering = independent_filtering


def _contrast_description(design, name, contrast, idx):
    if contrast is not None:
        if isinstance(contrast, (list, tuple)) and len(contrast) == 3 \
                and all(isinstance(x, str) for x in contrast):
            factor, num, den = contrast
            return f"{factor} {num} vs {den}"
        return f"contrast {list(np.asarray(contrast, dtype=float))}"
    return design.results_names[idx] if name is None else name


def contrast_for(design, name=None, contrast=None):
    """
    Contrast vector over ``design`` columns for a coefficient name or contrast.

    Returns
    -------
    np.ndarray
        The contrast vector.
    int or None
        Index of the tested coefficient when ``contrast`` is not given.
    """
    if name is not None and contrast is not None:
        raise DesignError("Specify either name or contrast, not both")
    if contrast is not None:
        return design.contrast_vector(contrast), None
    idx = design.n_coefs - 1 if name is None else design.coef_index(name)
    vec = np.zeros(design.n_coefs)
    vec[idx] = 1.0
    return vec, idx


def wald_stats(fit, vector, alpha=0.1, lfc_threshold=0.0, alt_hypothesis="greaterAbs",
               independent_filtering=True, cooks_filter=True):
    """
    Run pydeseq2's Wald test for ``vector . beta`` and return the ``DeseqStats``.

    ``vector`` weights the coefficients of ``fit.design``; it is mapped onto
    the engine's own model columns first.
    """
    check_alt_hypothesis(alt_hypothesis)
    if lfc_threshold < 0:
        raise ValueError("lfc_threshold must be non-negative")
    if alt_hypothesis == "lessAbs" and lfc_threshold == 0:
        raise ValueError("alt_hypothesis='lessAbs' requires a positive lfc_threshold")

    plain = lfc_threshold == 0 and alt_hypothesis == "greaterAbs"
    ds = DeseqStats(fit.dds, contrast=fit.engine_contrast(vector), alpha=alpha,
                    cooks_filter=cooks_filter, independent_filter=independent_filtering,
                    lfc_null=lfc_threshold, alt_hypothesis=None if plain else alt_hypothesis,
                    inference=fit.inference, quiet=True)
    ds.summary()
    return ds


def results(fit, name=None, contrast=None, alpha=0.1, lfc_threshold=0.0,
            alt_hypothesis="greaterAbs", independent_filtering=True,
            cooks_cutoff=True):
    """
    Extract a results table from a fitted model.

    Parameters
    ----------
    fit : DESeqFit
        Output of :meth:`DESeqDataSet.deseq2`.
    name : str, optional
        Coefficient to test, by DESeq2-style name (see
        ``fit.results_names``) or patsy column name. Defaults to the last
        coefficient of the design.
    contrast : list or np.ndarray, optional
        ``[factor, numerator, denominator]`` or a numeric vector with one
        weight per coefficient. Mutually exclusive with ``name``.
    alpha : float, default 0.1
        FDR level used by independent filtering.
    lfc_threshold : float, default 0.0
        Log2 fold change threshold tested under ``alt_hypothesis``.
    alt_hypothesis : str, default 'greaterAbs'
        One of 'greaterAbs', 'lessAbs', 'greater', 'less'.
    independent_filtering : bool, default True
    cooks_cutoff : bool or float, default True
        True uses the 99% quantile of F(p, m - p); False disables outlier
        flagging; a number is used as the cutoff.

    Returns
    -------
    pd.DataFrame
        Indexed by gene, with columns baseMean, log2FoldChange, lfcSE,
        stat, pvalue, padj. ``attrs`` records the contrast description and
        the settings used.

    Examples
    --------
    >>> res = fit.results(contrast=['status', 'pregnant', 'virgin'])
    >>> res = fit.results(name='cell_type_luminal_vs_basal', lfc_threshold=1.0)
    """
    check_alt_hypothesis(alt_hypothesis)
    design = fit.design
    vec, idx = contrast_for(design, name=name, contrast=contrast)

    custom_cutoff = not isinstance(cooks_cutoff, bool)
    ds = wald_stats(fit, vec, alpha=alpha, lfc_threshold=lfc_threshold,
                    alt_hypothesis=alt_hypothesis,
                    independent_filtering=independent_filtering,
                    cooks_filter=cooks_cutoff is True)
    res = _table(fit, ds.results_df)

    if custom_cutoff:
        res["pvalue"] = _flag_outliers(fit, res["pvalue"].values, cooks_cutoff)
        res["padj"] = _adjust(res["baseMean"].values, res["pvalue"].values, alpha,
                              independent_filtering)

    res.loc[fit.all_zero, RESULT_COLUMNS[1:]] = np.nan
    res.attrs["alpha"] = alpha
    res.attrs["contrast"] = _contrast_description(design, name, contrast, idx)
    res.attrs["lfc_threshold"] = lfc_threshold
    res.attrs["alt_hypothesis"] = alt_hypothesis
    res.attrs["test"] = "Wald"
    return res


def _table(fit, frame):
    return pd.DataFrame(frame[RESULT_COLUMNS].to_numpy(dtype=float), columns=RESULT_COLUMNS,
                        index=pd.Index(fit.gene_names, name="gene"))


def _flag_outliers(fit, pvalue, cooks_cutoff):
    cutoff = (default_cooks_cutoff(fit.design.n_samples, fit.design.n_coefs)
              if cooks_cutoff is True else float(cooks_cutoff))
    with np.errstate(invalid="ignore"):
        outlier = fit.max_cooks > cutoff
    if outlier.any():
        logger.info("%d genes flagged by Cook's distance (cutoff %.3f); "
                    "p-values set to NA", int(outlier.sum()), cutoff)
    return np.where(outlier, np.nan, pvalue)


def _adjust(base_means, pvalue, alpha, independent_filtering):
    if independent_filtering:
        return _independent_filtering(base_means, pvalue, alpha=alpha)["padj"]
    return benjamini_hochberg(np.where(base_means > 0, pvalue, np.nan))


def build_results_table(fit, lfc, se, stat, pvalue, alpha=0.1,
                        independent_filtering=True, cooks_cutoff=True):
    """
    Assemble a results table from per-gene statistics computed outside
    ``DeseqStats``, such as the likelihood ratio test.

    Applies the Cook's distance cutoff to ``pvalue``, adjusts p-values
    (with or without independent filtering) and blanks all-zero genes.
    """
    if cooks_cutoff is not False:
        pvalue = _flag_outliers(fit, pvalue, cooks_cutoff)

    base_means = fit.base_means
    res = pd.DataFrame({
        "baseMean": base_means,
        "log2FoldChange": lfc,
        "lfcSE": se,
        "stat": stat,
        "pvalue": pvalue,
        "padj": _adjust(base_means, pvalue, alpha, independent_filtering),
    }, index=pd.Index(fit.gene_names, name="gene"))

    res.loc[fit.all_zero, RESULT_COLUMNS[1:]] = np.nan
    res.attrs["alpha"] = alpha
    return res


def top_genes(res, n=100):
    """First ``n`` genes ordered by padj (NaN last); ties keep input order."""
    return res.sort_values("padj", kind="mergesort", na_position="last").head(n)


def summary(res, alpha=None):
    """
    Count genes called up or down at FDR ``alpha``.

    Parameters
    ----------
    res : pd.DataFrame
        Results table.
    alpha : float, optional
        Defaults to the alpha the table was built with.

    Returns
    -------
    dict
    """
    if alpha is None:
        alpha = res.attrs.get("alpha", 0.1)
    padj = res["padj"].values
    lfc = res["log2FoldChange"].values

    valid = np.isfinite(padj)
    significant = valid & (padj < alpha)
    out = {
        "total_genes": len(res),
        "genes_tested": int(valid.sum()),
        "significant": int(significant.sum()),
        "upregulated": int((significant & (lfc > 0)).sum()),
        "downregulated": int((significant & (lfc < 0)).sum()),
        "outliers": int((np.isfinite(res["lfcSE"].values) & ~np.isfinite(res["pvalue"].values)).sum()),
        "low_counts": int((np.isfinite(res["pvalue"].values) & ~valid).sum()),
        "alpha": alpha,
    }

    logger.info("%s: %d of %d genes with padj < %g (%d up, %d down)",
                res.attrs.get("contrast", "results"), out["significant"],
                out["total_genes"], alpha, out["upregulated"], out["downregulated"])
    return out
