"""
Negative binomial differential expression analysis for RNA-seq counts.

A DESeq2-style workflow: load counts and sample metadata, build a design
from a formula, estimate size factors, dispersions and per-gene GLM
coefficients, then extract Wald contrasts, compare nested models with a
likelihood ratio test and explore variance stabilized data with PCA.

Main Classes:
    DESeqDataSet : Counts, metadata and design, ready to fit
    DESeqFit : Fitted model returned by ``DESeqDataSet.deseq2()``
    AnalysisConfig : Settings for one run

Main Functions:
    load_dataset : Load, align and filter count and metadata files
    results : Wald test of a coefficient or contrast
    likelihood_ratio_test : Compare a full and a reduced design
    variance_stabilizing_transformation, pca : Exploratory transforms
    plotMA, plotPCA, plotVolcano : Plots

References:
    Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
    and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
"""

# Configuration and errors
from .config import AnalysisConfig, ALT_HYPOTHESES
from .errors import (
    DESeqError,
    SampleMismatchError,
    CountDataError,
    DesignError,
    NestedDesignError,
    AltHypothesisError
)

# Data loading
from .io import (
    load_sample_metadata,
    load_counts,
    align_samples,
    filter_low_counts,
    load_dataset
)

# Design matrices
from .design import (
    Design,
    create_design_matrix,
    model_matrix,
    relevel,
    get_contrast_vector
)

# Core pipeline
from .dataset import DESeqDataSet, DESeqFit, DispersionEstimates
from .size_factors import estimate_size_factors

# Statistical tests
from .results import (
    results,
    benjamini_hochberg,
    independent_filtering,
    summary,
    top_genes
)
from .lrt import likelihood_ratio_test

# LFC shrinkage
from .lfc_shrinkage import shrink_results

# Transformations
from .transformations import (
    vst,
    variance_stabilizing_transformation,
    norm_transform,
    pca
)

# Plotting
from .plotting import plotMA, plotVolcano, plotDispEsts, plotPCA, plotCounts

from .simulate import simulate_counts

__version__ = "0.3.0"

__all__ = [
    'AnalysisConfig',
    'ALT_HYPOTHESES',

    'DESeqError',
    'SampleMismatchError',
    'CountDataError',
    'DesignError',
    'NestedDesignError',
    'AltHypothesisError',

    'load_sample_metadata',
    'load_counts',
    'align_samples',
    'filter_low_counts',
    'load_dataset',

    'Design',
    'create_design_matrix',
    'model_matrix',
    'relevel',
    'get_contrast_vector',

    'DESeqDataSet',
    'DESeqFit',
    'estimate_size_factors',
    'DispersionEstimates',

    'results',
    'benjamini_hochberg',
    'independent_filtering',
    'summary',
    'top_genes',
    'likelihood_ratio_test',

    'shrink_results',

    'vst',
    'variance_stabilizing_transformation',
    'norm_transform',
    'pca',

    'plotMA',
    'plotVolcano',
    'plotDispEsts',
    'plotPCA',
    'plotCounts',

    'simulate_counts',
]
