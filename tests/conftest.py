"""
Shared fixtures: a seeded simulation of the 2 cell types x 3 statuses x
2 replicates layout, and models fit to it once per session.
"""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from rnaseq_de import DESeqDataSet, filter_low_counts, simulate_counts


@pytest.fixture(scope="session")
def simulated():
    """Raw counts (including three all-zero genes) and sample metadata."""
    return simulate_counts(n_genes=300, n_status_de=30, n_cell_type_de=30,
                           n_zero=3, seed=1)


@pytest.fixture(scope="session")
def coldata(simulated):
    return simulated[1]


@pytest.fixture(scope="session")
def filtered_counts(simulated):
    counts, _ = simulated
    return filter_low_counts(counts, min_total=5)


@pytest.fixture(scope="session")
def dds(filtered_counts, coldata):
    return DESeqDataSet(filtered_counts, coldata, design="~ cell_type + status")


@pytest.fixture(scope="session")
def fit(dds):
    return dds.deseq2()


@pytest.fixture(scope="session")
def unfiltered_fit(simulated):
    counts, coldata = simulated
    return DESeqDataSet(counts, coldata, design="~ cell_type + status").deseq2()


@pytest.fixture
def small_coldata():
    return pd.DataFrame(
        {"condition": ["ctrl", "ctrl", "ctrl", "treat", "treat", "treat"],
         "batch": ["a", "b", "a", "b", "a", "b"]},
        index=[f"S{i}" for i in range(1, 7)])


@pytest.fixture
def small_counts(small_coldata):
    rng = np.random.default_rng(7)
    counts = rng.negative_binomial(10, 0.1, size=(40, 6))
    counts[:5, 3:] *= 4
    return pd.DataFrame(counts, index=[f"g{i}" for i in range(40)],
                        columns=small_coldata.index)
