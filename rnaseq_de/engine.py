"""
Thin adapter around the pydeseq2 engine.

pydeseq2 works on AnnData-style samples x genes tables and names model
columns with formulaic (``condition[T.B]``). The rest of the package keeps
genes x samples tables and DESeq2-style coefficient names; this module is the
only place that converts between the two.
"""

import logging

import numpy as np
from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference

logger = logging.getLogger(__name__)


def make_inference(config):
    """Inference backend for ``config.n_cpus`` worker processes."""
    return DefaultInference(n_cpus=config.n_cpus)


def build_deseq_dataset(counts, coldata, formula, config, inference=None):
    """
    Wrap counts and metadata in an unfitted pydeseq2 ``DeseqDataSet``.

    Parameters
    ----------
    counts : pd.DataFrame
        Raw counts, genes x samples, columns in ``coldata`` row order.
    coldata : pd.DataFrame
    formula : str
    config : AnalysisConfig
        Supplies ``fit_type``, ``min_disp`` and ``refit_cooks``.
    inference : DefaultInference, optional

    Returns
    -------
    pydeseq2.dds.DeseqDataSet
    """
    return DeseqDataSet(
        counts=counts.T.astype(np.int64),
        metadata=coldata,
        design=formula,
        fit_type=config.fit_type,
        min_disp=config.min_disp,
        refit_cooks=config.refit_cooks,
        inference=make_inference(config) if inference is None else inference,
        quiet=True,
    )


def run_deseq(dds):
    """Run every fitting step of ``dds`` in place, logging each stage."""
    logger.info("Estimating size factors")
    dds.fit_size_factors()

    logger.info("Estimating dispersions (%s trend)", dds.fit_type)
    dds.fit_genewise_dispersions()
    dds.fit_dispersion_trend()
    dds.fit_dispersion_prior()
    dds.fit_MAP_dispersions()

    logger.info("Fitting model")
    dds.fit_LFC()
    dds.calculate_cooks()
    if dds.refit_cooks:
        dds.refit()
    return dds


def design_frame(dds):
    """The fitted model matrix (samples x formulaic columns) as a DataFrame."""
    return dds.obsm["design_matrix"]
