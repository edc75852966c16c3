"""
Variance stabilizing transformations and PCA for RNA-seq count data.

The VST maps normalized counts through the integral of ``1 / sqrt(v(mu))``
where ``v(mu) = mu + disp(mu) * mu**2`` is the fitted mean-variance
relation. pydeseq2 evaluates the closed form of that integral for parametric
and mean dispersion trends. Values are on roughly the log2 scale for
well-expressed genes.

References:
    - Anders S, Huber W (2010). Differential expression analysis for sequence
      count data. Genome Biology 11:R106
    - Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
      and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
"""

import logging

import numpy as np
import pandas as pd

from .config import AnalysisConfig
from .engine import build_deseq_dataset
from .size_factors import estimate_size_factors

logger = logging.getLogger(__name__)


def _as_matrix(counts):
    if isinstance(counts, pd.DataFrame):
        return counts.values.astype(float), counts.index, counts.columns
    return np.asarray(counts, dtype=float), None, None


def _wrap(values, index, columns):
    if index is None:
        return values
    return pd.DataFrame(values, index=index, columns=columns)


def variance_stabilizing_transformation(counts, coldata=None, design="~ 1", blind=True,
                                        fit_type=None, config=None):
    """
    VST straight from raw counts.

    Size factors and a dispersion trend are estimated on a fresh engine
    dataset, so an existing fit is never touched. With ``blind=True`` or
    without ``coldata`` the trend is fit under an intercept-only design so
    the experimental groups cannot influence the result.

    Parameters
    ----------
    counts : np.ndarray or pd.DataFrame
        Raw count matrix (genes x samples).
    coldata : pd.DataFrame, optional
        Sample metadata in column order of ``counts``.
    design : str, default "~ 1"
        Used only when ``blind=False``.
    blind : bool, default True
    fit_type : {'parametric', 'mean'}, optional
        Overrides ``config.fit_type``.
    config : AnalysisConfig, optional

    Returns
    -------
    np.ndarray or pd.DataFrame
        Same shape (and labels) as ``counts``.
    """
    config = AnalysisConfig() if config is None else config
    if fit_type is not None:
        config = config.replace(fit_type=fit_type)

    values, index, columns = _as_matrix(counts)
    G, S = values.shape
    genes = [f"gene_{i}" for i in range(G)] if index is None else [str(g) for g in index]
    samples = [f"sample_{j}" for j in range(S)] if columns is None else [str(s) for s in columns]
    frame = pd.DataFrame(values, index=genes, columns=samples)

    use_design = not blind and coldata is not None
    if coldata is None:
        coldata, design = pd.DataFrame({"batch": ["all"] * S}, index=samples), "~ 1"
    else:
        coldata = coldata.copy()
        coldata.index = samples

    dds = build_deseq_dataset(frame, coldata, design if use_design else "~ 1", config)
    logger.info("VST using a %s dispersion trend (%s design)", config.fit_type,
                design if use_design else "blind")
    dds.vst(use_design=use_design)
    transformed = np.asarray(dds.layers["vst_counts"], dtype=float).T
    return _wrap(transformed, index, columns)


varianceStabilizingTransformation = variance_stabilizing_transformation
vst = variance_stabilizing_transformation


def norm_transform(counts, size_factors=None, pseudocount=1.0):
    """
    ``log2(normalized counts + pseudocount)``.

    Examples
    --------
    >>> counts = np.array([[100, 200], [50, 100]])
    >>> norm_transform(counts, size_factors=np.array([1.0, 2.0]))
    array([[6.658..., 6.658...],
           [5.672..., 5.672...]])
    """
    values, index, columns = _as_matrix(counts)
    if size_factors is None:
        size_factors = estimate_size_factors(values)
    transformed = np.log2(values / np.asarray(size_factors, dtype=float) + pseudocount)
    return _wrap(transformed, index, columns)


def pca(transformed, coldata=None, intgroup=None, ntop=500):
    """
    Principal components of samples from the most variable genes.

    Parameters
    ----------
    transformed : np.ndarray or pd.DataFrame
        Transformed expression values (genes x samples), e.g. from :func:`vst`.
    coldata : pd.DataFrame, optional
        Sample metadata, one row per column of ``transformed``.
    intgroup : str or list of str, optional
        Metadata columns to carry into the output. A ``group`` column joins
        them with ``":"``.
    ntop : int, default 500
        Number of genes with the highest row variance to use.

    Returns
    -------
    pd.DataFrame
        One row per sample with ``PC1``, ``PC2`` and the grouping columns.
        ``attrs["percent_var"]`` holds the fraction of variance explained
        by the two components.
    """
    values, _, columns = _as_matrix(transformed)
    G, S = values.shape
    if S < 2:
        raise ValueError("PCA needs at least two samples")

    row_var = np.var(values, axis=1, ddof=1)
    order = np.argsort(-row_var, kind="mergesort")[:min(ntop, G)]
    data = values[order].T
    data = data - data.mean(axis=0)

    U, sing, _ = np.linalg.svd(data, full_matrices=False)
    scores = U * sing
    percent_var = sing ** 2 / np.sum(sing ** 2)

    if columns is None:
        columns = coldata.index if coldata is not None else [f"sample_{i}" for i in range(S)]
    out = pd.DataFrame({"PC1": scores[:, 0],
                        "PC2": scores[:, 1] if scores.shape[1] > 1 else np.zeros(S)},
                       index=pd.Index(columns, name="sample"))

    if intgroup is not None:
        if coldata is None:
            raise ValueError("intgroup requires coldata")
        groups = [intgroup] if isinstance(intgroup, str) else list(intgroup)
        missing = [g for g in groups if g not in coldata.columns]
        if missing:
            raise ValueError(f"intgroup columns not in coldata: {missing}")
        for g in groups:
            out[g] = coldata[g].values
        out["group"] = coldata[groups].astype(str).agg(":".join, axis=1).values

    out.attrs["percent_var"] = [float(percent_var[0]),
                                float(percent_var[1]) if percent_var.size > 1 else 0.0]
    return out
