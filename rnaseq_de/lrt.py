"""
Likelihood ratio test for comparing nested models.

The full and reduced formulas are resolved against the same sample
metadata. Size factors and dispersions come from the full model's fit; each
gene is then refit under both designs with pydeseq2's IRLS solver and the
statistic

    LRT = 2 * (logLik_full - logLik_reduced)

is referred to a chi-squared distribution with ``p_full - p_reduced``
degrees of freedom. This is the ANOVA-like test for factors with more than
two levels.

References:
    - Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
      and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
"""

import logging

import numpy as np
from pydeseq2.utils import irls_solver, nb_nll
from scipy.stats import chi2

from .design import Design
from .errors import NestedDesignError
from .results import build_results_table, wald_stats

logger = logging.getLogger(__name__)


def lrt_statistic(loglik_full, loglik_reduced, df):
    """
    Chi-squared statistic and p-value from paired log-likelihoods.

    The statistic is clipped at zero. With ``df == 0`` the two models are
    the same and every gene with a finite statistic gets p = 1.
    """
    ll_f = np.asarray(loglik_full, dtype=float)
    ll_r = np.asarray(loglik_reduced, dtype=float)
    stat = np.maximum(2.0 * (ll_f - ll_r), 0.0)
    if df == 0:
        pvalue = np.where(np.isfinite(stat), 1.0, np.nan)
    else:
        pvalue = chi2.sf(stat, df)
    return stat, pvalue


def nb_log_likelihoods(counts, size_factors, dispersions, design_matrix, maxiter=100):
    """
    Negative binomial log-likelihood of every gene at its fitted means.

    Parameters
    ----------
    counts : (G, S) array
    size_factors : (S,) array
    dispersions : (G,) array
        Held fixed during the fit.
    design_matrix : (S, P) array
    maxiter : int

    Returns
    -------
    np.ndarray
        (G,) log-likelihoods; NaN for all-zero genes and genes without a
        usable dispersion.
    """
    Y = np.asarray(counts, dtype=float)
    sf = np.asarray(size_factors, dtype=float)
    disp = np.asarray(dispersions, dtype=float)
    X = np.asarray(design_matrix, dtype=float)

    loglik = np.full(Y.shape[0], np.nan)
    with np.errstate(invalid="ignore"):
        usable = (Y.sum(axis=1) > 0) & np.isfinite(disp) & (disp > 0)

    n_noconv = 0
    for g in np.flatnonzero(usable):
        _, mu, _, converged = irls_solver(Y[g], sf, X, disp[g], maxiter=maxiter)
        loglik[g] = -nb_nll(Y[g], mu, disp[g])
        n_noconv += not converged
    if n_noconv:
        logger.info("%d genes did not converge within %d IRLS iterations", n_noconv, maxiter)
    return loglik


def likelihood_ratio_test(data, full, reduced, alpha=0.1,
                          independent_filtering=True, cooks_cutoff=True):
    """
    Compare a full and a reduced design for every gene.

    Parameters
    ----------
    data : DESeqDataSet or DESeqFit
        A dataset is fit under ``full`` first. A fit whose design differs
        from ``full`` is refit under ``full`` with the same configuration.
    full : str
        Full model formula, e.g. ``"~ cell_type + status"``.
    reduced : str
        Reduced model formula, e.g. ``"~ cell_type"``. Its coefficients must
        all appear in the full model.
    alpha : float
        FDR target used by independent filtering.
    independent_filtering : bool
    cooks_cutoff : bool or float

    Returns
    -------
    pd.DataFrame
        Results table. ``log2FoldChange`` and ``lfcSE`` belong to the last
        coefficient of the full model; ``stat`` and ``pvalue`` are the LRT.
        ``attrs["df"]`` holds the degrees of freedom.

    Raises
    ------
    NestedDesignError
        When the reduced model is not contained in the full one. Raised
        before any model is fit.

    Examples
    --------
    >>> res = likelihood_ratio_test(dds, "~ cell_type + status", "~ cell_type")
    >>> res.attrs["df"]
    2
    """
    dataset = data.dataset if hasattr(data, "dataset") else data
    full_design = Design(dataset.coldata, full)
    reduced_design = Design(dataset.coldata, reduced)
    if not reduced_design.is_nested_in(full_design):
        extra = sorted(set(reduced_design.results_names) - set(full_design.results_names))
        raise NestedDesignError(
            f"Reduced design {reduced_design.formula!r} is not nested in "
            f"{full_design.formula!r}; coefficients not in the full model: {extra}")

    df = full_design.n_coefs - reduced_design.n_coefs

    if hasattr(data, "dataset") and data.design.columns == full_design.columns:
        fit = data
    else:
        config = getattr(data, "config", None)
        fit = dataset.with_design(full_design.formula).deseq2(config=config)

    logger.info("Likelihood ratio test: %s vs %s (df=%d)",
                full_design.formula, reduced_design.formula, df)
    args = (dataset.counts_raw, fit.size_factors, fit.dispersions)
    ll_full = nb_log_likelihoods(*args, full_design.values, maxiter=fit.config.max_iter)
    ll_reduced = nb_log_likelihoods(*args, reduced_design.values, maxiter=fit.config.max_iter)
    stat, pvalue = lrt_statistic(ll_full, ll_reduced, df)

    last = full_design.n_coefs - 1
    unit = np.zeros(full_design.n_coefs)
    unit[last] = 1.0
    wald = wald_stats(fit, unit, alpha=alpha, independent_filtering=False,
                      cooks_filter=False).results_df

    res = build_results_table(fit, wald["log2FoldChange"].to_numpy(dtype=float),
                              wald["lfcSE"].to_numpy(dtype=float), stat, pvalue,
                              alpha=alpha, independent_filtering=independent_filtering,
                              cooks_cutoff=cooks_cutoff)
    res.attrs["df"] = df
    res.attrs["full"] = full_design.formula
    res.attrs["reduced"] = reduced_design.formula
    res.attrs["contrast"] = full_design.results_names[last]
    res.attrs["test"] = "LRT"
    return res


compare_models = likelihood_ratio_test
