"""
Simulated count data for the cell type x status walkthrough.

Counts are negative binomial with a mean-dispersion trend of
``4 / mean + 0.05`` plus log-normal gene-to-gene scatter, and size factors
drawn around 1. A block of genes responds to status and a second block to
cell type; the rest are null.
"""

import numpy as np
import pandas as pd

CELL_TYPES = ("basal", "luminal")
STATUSES = ("virgin", "pregnant", "lactate")


def simulate_coldata(cell_types=CELL_TYPES, statuses=STATUSES, n_replicates=2):
    """Sample metadata for every cell_type x status x replicate combination."""
    rows = []
    for cell_type in cell_types:
        for status in statuses:
            for rep in range(1, n_replicates + 1):
                rows.append({"sample": f"{cell_type}_{status}_{rep}",
                             "cell_type": cell_type, "status": status})
    coldata = pd.DataFrame(rows).set_index("sample")
    coldata["cell_type"] = pd.Categorical(coldata["cell_type"], categories=sorted(cell_types))
    coldata["status"] = pd.Categorical(coldata["status"], categories=sorted(statuses))
    return coldata


def simulate_counts(n_genes=2000, cell_types=CELL_TYPES, statuses=STATUSES,
                    n_replicates=2, n_status_de=100, n_cell_type_de=100,
                    lfc=2.0, n_zero=0, seed=0):
    """
    Simulate a raw count table and matching metadata.

    Parameters
    ----------
    n_genes : int
    cell_types, statuses : sequence of str
    n_replicates : int
        Samples per cell_type x status cell.
    n_status_de : int
        Genes whose mean changes with status (the first block of genes).
    n_cell_type_de : int
        Genes whose mean changes with cell type (the next block).
    lfc : float
        Magnitude of planted log2 fold changes.
    n_zero : int
        Trailing genes with all-zero counts.
    seed : int

    Returns
    -------
    counts : pd.DataFrame
        Integer counts, genes x samples. ``attrs`` lists the planted genes
        under ``"status_de"`` and ``"cell_type_de"``.
    coldata : pd.DataFrame
    """
    if n_status_de + n_cell_type_de + n_zero > n_genes:
        raise ValueError("more planted genes than genes")
    rng = np.random.default_rng(seed)
    coldata = simulate_coldata(cell_types, statuses, n_replicates)
    S = len(coldata)

    base = np.exp(rng.normal(np.log(200), 1.5, n_genes))
    log2_effect = np.zeros((n_genes, S))

    status_codes = coldata["status"].cat.codes.values
    n_status = len(statuses)
    status_block = slice(0, n_status_de)
    signs = rng.choice([-1.0, 1.0], size=n_status_de)
    for k in range(1, n_status):
        log2_effect[status_block, status_codes == k] = (signs * lfc * k / (n_status - 1))[:, None]

    ct_codes = coldata["cell_type"].cat.codes.values
    ct_block = slice(n_status_de, n_status_de + n_cell_type_de)
    signs = rng.choice([-1.0, 1.0], size=n_cell_type_de)
    log2_effect[ct_block, ct_codes == 1] = (signs * lfc)[:, None]

    size_factors = np.exp(rng.normal(0.0, 0.2, S))
    mu = base[:, None] * 2.0 ** log2_effect * size_factors
    disp = (4.0 / base + 0.05) * np.exp(rng.normal(0.0, 0.5, n_genes))

    # NB as a gamma-Poisson mixture
    shape = 1.0 / disp[:, None]
    lam = rng.gamma(shape, mu / shape)
    counts = rng.poisson(lam)
    if n_zero:
        counts[-n_zero:] = 0

    width = len(str(n_genes))
    gene_ids = [f"gene{i:0{width}d}" for i in range(n_genes)]
    table = pd.DataFrame(counts.astype(np.int64), index=pd.Index(gene_ids, name="gene"),
                         columns=coldata.index)
    table.attrs["status_de"] = gene_ids[status_block]
    table.attrs["cell_type_de"] = gene_ids[ct_block]
    return table, coldata
