"""
DESeqDataSet and DESeqFit: the objects a user works with.

A :class:`DESeqDataSet` holds validated counts, sample metadata and a
resolved design. Calling :meth:`DESeqDataSet.deseq2` runs size factor
estimation, dispersion estimation and the per-gene GLM fit through pydeseq2
and returns a new :class:`DESeqFit`. Neither object is modified afterwards;
changing the design or a reference level produces a new dataset, and fitting
it produces a new, independent fit.

References:
    - Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
      and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
    - Muzellec B, Telenczuk M, Cabeli V, Andreux M (2023). PyDESeq2: a python
      package for bulk RNA-seq differential expression analysis.
      Bioinformatics 39(9):btad547
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .config import AnalysisConfig
from .design import Design, coefficient_map, prepare_coldata, relevel
from .engine import build_deseq_dataset, design_frame, make_inference, run_deseq
from .errors import CountDataError, SampleMismatchError
from .io import align_samples, validate_counts
from .lfc_shrinkage import shrink_results
from .results import max_cooks
from .results import results as extract_results
from .results import summary as summarize_results
from .transformations import pca, variance_stabilizing_transformation

logger = logging.getLogger(__name__)


@dataclass
class DispersionEstimates:
    """Per-gene dispersion estimates of a fit, in gene order."""

    base_means: np.ndarray
    genewise: np.ndarray
    trend_values: np.ndarray
    map: np.ndarray
    final: np.ndarray
    all_zero: np.ndarray
    fit_type: str
    #: (a1, a0) of ``a1 / mu + a0`` for parametric trends
    trend_coeffs: tuple = (np.nan, np.nan)

    @classmethod
    def from_dds(cls, dds, base_means, all_zero):
        var = dds.var

        def column(key):
            return var[key].to_numpy(dtype=float) if key in var else np.full(len(var), np.nan)

        coeffs = dds.uns.get("trend_coeffs")
        coeffs = (np.nan, np.nan) if coeffs is None else tuple(
            float(c) for c in np.asarray(coeffs, dtype=float)[[1, 0]])
        return cls(base_means=base_means,
                   genewise=column("genewise_dispersions"),
                   trend_values=column("fitted_dispersions"),
                   map=column("MAP_dispersions"),
                   final=column("dispersions"),
                   all_zero=all_zero,
                   fit_type=dds.fit_type,
                   trend_coeffs=coeffs)


class DESeqDataSet:
    """
    Counts, sample metadata and a design, ready to be fit.

    Parameters
    ----------
    counts : pd.DataFrame or np.ndarray
        Raw count matrix (genes x samples). A DataFrame's columns are matched
        to ``coldata.index`` by identifier and reordered to metadata row
        order; an array must already be in that order.
    coldata : pd.DataFrame
        Sample metadata, one row per sample, indexed by sample id. String
        columns are factors; numeric columns are continuous covariates.
    design : str, default "~ condition"
        Formula over ``coldata`` columns.
    config : AnalysisConfig, optional
        Default settings for :meth:`deseq2` and result extraction.

    Attributes
    ----------
    counts_raw : np.ndarray
        (G, S) float counts.
    gene_names, sample_names : np.ndarray
    coldata : pd.DataFrame
    design : Design

    Examples
    --------
    >>> dds = DESeqDataSet(counts_df, coldata, design="~ cell_type + status")
    >>> fit = dds.deseq2()
    >>> res = fit.results(contrast=["status", "pregnant", "virgin"])
    """

    def __init__(self, counts, coldata, design="~ condition", config=None):
        if not isinstance(coldata, pd.DataFrame):
            raise TypeError("coldata must be a pandas DataFrame")
        coldata = coldata.copy()
        coldata.index = coldata.index.astype(str)
        dup = coldata.index[coldata.index.duplicated()].unique().tolist()
        if dup:
            raise SampleMismatchError(f"Duplicate sample identifiers in metadata: {dup}")

        if isinstance(counts, pd.DataFrame):
            counts, coldata = align_samples(validate_counts(counts), coldata)
            self.gene_names = np.array(counts.index.astype(str))
            self.counts_raw = counts.values.astype(float)
        else:
            values = np.asarray(counts, dtype=float)
            if values.ndim != 2:
                raise CountDataError("counts must be a 2-d genes x samples matrix")
            if values.shape[1] != len(coldata):
                raise SampleMismatchError(
                    f"Number of samples in coldata ({len(coldata)}) "
                    f"doesn't match counts ({values.shape[1]})")
            if np.isnan(values).any() or (values < 0).any() \
                    or not np.all(values == np.round(values)):
                raise CountDataError("counts must be non-negative integers")
            self.counts_raw = values
            self.gene_names = np.array([f"gene_{i}" for i in range(values.shape[0])])

        self.coldata = prepare_coldata(coldata)
        self.sample_names = np.array(self.coldata.index)
        self.design = Design(self.coldata, design)
        self.config = AnalysisConfig() if config is None else config

    @property
    def n_genes(self):
        return self.counts_raw.shape[0]

    @property
    def n_samples(self):
        return self.counts_raw.shape[1]

    def _derive(self, coldata=None, design=None):
        return DESeqDataSet(
            pd.DataFrame(self.counts_raw.astype(np.int64), index=self.gene_names,
                         columns=self.sample_names),
            self.coldata if coldata is None else coldata,
            design=self.design.formula if design is None else design,
            config=self.config)

    def relevel(self, factor, ref):
        """New dataset with ``ref`` as the reference level of ``factor``."""
        return self._derive(coldata=relevel(self.coldata, factor, ref))

    def with_design(self, design):
        """New dataset with the same data and a different formula."""
        return self._derive(design=design)

    def counts(self):
        return pd.DataFrame(self.counts_raw, index=self.gene_names, columns=self.sample_names)

    def deseq2(self, fit_type=None, config=None):
        """
        Estimate size factors, dispersions and coefficients.

        Parameters
        ----------
        fit_type : {'parametric', 'mean'}, optional
            Overrides ``config.fit_type``.
        config : AnalysisConfig, optional
            Defaults to the dataset's config.

        Returns
        -------
        DESeqFit
        """
        config = self.config if config is None else config
        if fit_type is not None:
            config = config.replace(fit_type=fit_type)

        logger.info("Running DESeq2 (%s, %d genes x %d samples)",
                    self.design.formula, self.n_genes, self.n_samples)
        inference = make_inference(config)
        dds = build_deseq_dataset(self.counts(), self.coldata, self.design.formula,
                                  config, inference=inference)
        run_deseq(dds)
        return DESeqFit(self, config, dds, inference)

    def vst(self, blind=True, fit_type=None):
        """Variance stabilized counts without fitting the full model."""
        config = self.config if fit_type is None else self.config.replace(fit_type=fit_type)
        return variance_stabilizing_transformation(
            self.counts(), coldata=self.coldata, design=self.design.formula,
            blind=blind, config=config)

    def __repr__(self):
        return (f"DESeqDataSet with {self.n_genes} genes and {self.n_samples} samples "
                f"(design {self.design.formula})")


class DESeqFit:
    """
    Result of :meth:`DESeqDataSet.deseq2`.

    Attributes
    ----------
    dataset : DESeqDataSet
    config : AnalysisConfig
    design : Design
    dds : pydeseq2.dds.DeseqDataSet
        The fitted engine object. Treat it as read-only.
    inference : pydeseq2.default_inference.DefaultInference
    coef_map : np.ndarray
        ``T`` with ``X_engine = X_design @ T``; maps engine coefficients onto
        the design's coefficients and design contrasts onto the engine's.
    size_factors : np.ndarray
    dispersion_fit : DispersionEstimates
    cooks : np.ndarray
        (G, S) Cook's distances.
    max_cooks : np.ndarray
        Per-gene maximum over samples in cells with at least three replicates.
    """

    def __init__(self, dataset, config, dds, inference):
        self.dataset = dataset
        self.config = config
        self.design = dataset.design
        self.dds = dds
        self.inference = inference
        self.coef_map = coefficient_map(self.design, design_frame(dds).values)

        self.size_factors = dds.obs["size_factors"].to_numpy(dtype=float)
        all_zero = dataset.counts_raw.sum(axis=1) == 0
        base_means = np.mean(dataset.counts_raw / self.size_factors, axis=1)
        self.dispersion_fit = DispersionEstimates.from_dds(dds, base_means, all_zero)

        self.cooks = np.asarray(dds.layers["cooks"], dtype=float).T
        self.max_cooks = max_cooks(self.cooks, self.design.values)

    @property
    def gene_names(self):
        return self.dataset.gene_names

    @property
    def base_means(self):
        return self.dispersion_fit.base_means

    @property
    def dispersions(self):
        return self.dispersion_fit.final

    @property
    def all_zero(self):
        return self.dispersion_fit.all_zero

    @property
    def results_names(self):
        return list(self.design.results_names)

    @property
    def engine_columns(self):
        return list(design_frame(self.dds).columns)

    @property
    def coefficients(self):
        """Coefficients on the log2 scale, genes x results names."""
        lfc = self.dds.varm["LFC"]
        lfc = np.asarray(lfc.values if hasattr(lfc, "values") else lfc, dtype=float)
        return pd.DataFrame(lfc @ self.coef_map.T / np.log(2),
                            index=pd.Index(self.gene_names, name="gene"),
                            columns=self.results_names)

    def engine_contrast(self, vector):
        """Express a contrast over the design's coefficients in engine coordinates."""
        return self.coef_map.T @ np.asarray(vector, dtype=float)

    def counts(self, normalized=False):
        data = self.dataset.counts_raw
        if normalized:
            data = data / self.size_factors
        return pd.DataFrame(data, index=self.gene_names, columns=self.dataset.sample_names)

    def _defaults(self, kwargs):
        for key in ("alpha", "lfc_threshold", "alt_hypothesis",
                    "independent_filtering", "cooks_cutoff"):
            if kwargs.get(key) is None:
                kwargs[key] = getattr(self.config, key)
        return kwargs

    def results(self, name=None, contrast=None, alpha=None, lfc_threshold=None,
                alt_hypothesis=None, independent_filtering=None, cooks_cutoff=None):
        """
        Wald test results for a coefficient or contrast.

        Unset keyword arguments take their value from the fit's config. See
        :func:`rnaseq_de.results.results` for the parameters.
        """
        kwargs = self._defaults(dict(alpha=alpha, lfc_threshold=lfc_threshold,
                                     alt_hypothesis=alt_hypothesis,
                                     independent_filtering=independent_filtering,
                                     cooks_cutoff=cooks_cutoff))
        return extract_results(self, name=name, contrast=contrast, **kwargs)

    def lfc_shrink(self, name=None, contrast=None, **kwargs):
        """
        Results table with apeglm-style shrunken log2 fold changes.

        ``stat``, ``pvalue`` and ``padj`` are those of the unshrunken test.
        """
        return shrink_results(self, name=name, contrast=contrast,
                              **self._defaults(dict(kwargs)))

    def lrt(self, reduced, full=None, **kwargs):
        """Likelihood ratio test of ``reduced`` against this fit's design."""
        from .lrt import likelihood_ratio_test

        kwargs.setdefault("alpha", self.config.alpha)
        kwargs.setdefault("independent_filtering", self.config.independent_filtering)
        kwargs.setdefault("cooks_cutoff", self.config.cooks_cutoff)
        return likelihood_ratio_test(self, self.design.formula if full is None else full,
                                     reduced, **kwargs)

    def vst(self, blind=True):
        """
        Variance stabilized counts.

        With ``blind=True`` the dispersion trend is re-estimated under an
        intercept-only design; otherwise under this fit's design.
        """
        return variance_stabilizing_transformation(
            self.dataset.counts(), coldata=self.dataset.coldata,
            design=self.design.formula, blind=blind, config=self.config)

    def pca(self, intgroup=None, ntop=None, blind=True):
        ntop = self.config.ntop if ntop is None else ntop
        return pca(self.vst(blind=blind), self.dataset.coldata, intgroup=intgroup, ntop=ntop)

    def plot_pca(self, intgroup=None, ntop=None, blind=True, ax=None, **kwargs):
        from .plotting import plotPCA

        return plotPCA(self.pca(intgroup=intgroup, ntop=ntop, blind=blind),
                       color_by="group" if intgroup is not None else None, ax=ax, **kwargs)

    def plot_dispersions(self, ax=None, **kwargs):
        from .plotting import plotDispEsts

        d = self.dispersion_fit
        return plotDispEsts(d.base_means, d.genewise, d.trend_values, d.final, ax=ax, **kwargs)

    def summary(self, res=None, alpha=None):
        """Summary counts of ``res`` (default: :meth:`results` with default settings)."""
        res = self.results() if res is None else res
        return summarize_results(res, alpha=alpha)

    def __repr__(self):
        return (f"DESeqFit with {len(self.gene_names)} genes and "
                f"{len(self.dataset.sample_names)} samples "
                f"(design {self.design.formula}, fit_type {self.dispersion_fit.fit_type})")
