"""
Loading and aligning count tables and sample metadata.

Counts are read as a genes x samples table whose first column holds gene
identifiers; metadata as a samples x covariates table whose first column
holds sample identifiers. Both are tab separated by default and may carry
``#`` comment lines (featureCounts headers, for example).
"""

import logging

import numpy as np
import pandas as pd

from .config import AnalysisConfig
from .design import prepare_coldata
from .errors import CountDataError, DesignError, SampleMismatchError

logger = logging.getLogger(__name__)


def load_sample_metadata(path, sample_col=None, sep="\t", numeric_cols=None):
    """
    Read sample metadata into a DataFrame indexed by sample id.

    Parameters
    ----------
    path : str or path-like
    sample_col : str, optional
        Column holding sample ids. Defaults to the first column.
    sep : str, default "\\t"
    numeric_cols : list of str, optional
        Columns to read as continuous covariates. Every other column is a
        factor, including integer-coded ones such as ``status = 0, 1, 2``.

    Returns
    -------
    pd.DataFrame
        Factor columns are categoricals with sorted levels.

    Raises
    ------
    SampleMismatchError
        If a sample id occurs more than once.
    DesignError
        If a ``numeric_cols`` entry is missing or holds non-numeric values.
    """
    coldata = pd.read_csv(path, sep=sep, comment="#", dtype=str)
    if coldata.empty:
        raise SampleMismatchError(f"No samples found in metadata file {path}")
    sample_col = coldata.columns[0] if sample_col is None else sample_col
    if sample_col not in coldata.columns:
        raise SampleMismatchError(f"Sample column {sample_col!r} not found in {path}")

    coldata = coldata.set_index(sample_col)
    coldata.index = coldata.index.astype(str).str.strip()
    dup = coldata.index[coldata.index.duplicated()].unique().tolist()
    if dup:
        raise SampleMismatchError(f"Duplicate sample identifiers in metadata: {dup}")

    for col in numeric_cols or ():
        if col not in coldata.columns:
            raise DesignError(f"Numeric column {col!r} not found in {path}")
        converted = pd.to_numeric(coldata[col], errors="coerce")
        bad = coldata.index[converted.isna()].tolist()
        if bad:
            raise DesignError(f"Column {col!r} has non-numeric values for samples {bad}")
        coldata[col] = converted

    logger.info("Loaded metadata for %d samples (%s)", len(coldata),
                ", ".join(map(str, coldata.columns)))
    return prepare_coldata(coldata)


def load_counts(path, gene_col=None, sep="\t", comment="#"):
    """
    Read a raw count table (genes x samples).

    Parameters
    ----------
    path : str or path-like
    gene_col : str, optional
        Column holding gene ids. Defaults to the first column.
    sep : str, default "\\t"
    comment : str, default "#"
        Lines starting with this character are skipped.

    Returns
    -------
    pd.DataFrame
        Integer counts indexed by gene id.

    Raises
    ------
    CountDataError
        On missing, negative or non-integer values, non-numeric columns or
        duplicate gene ids.
    """
    table = pd.read_csv(path, sep=sep, comment=comment)
    if table.shape[1] < 2:
        raise CountDataError(f"Count table {path} needs a gene column and at least one sample")
    gene_col = table.columns[0] if gene_col is None else gene_col
    if gene_col not in table.columns:
        raise CountDataError(f"Gene column {gene_col!r} not found in {path}")

    table = table.set_index(gene_col)
    table.index = table.index.astype(str)
    table.columns = table.columns.astype(str).str.strip()
    return validate_counts(table)


def validate_counts(counts):
    """Check a count table and return it with an integer dtype."""
    if not isinstance(counts, pd.DataFrame):
        raise CountDataError("counts must be a pandas DataFrame")
    non_numeric = [c for c in counts.columns
                   if not pd.api.types.is_numeric_dtype(counts[c])]
    if non_numeric:
        raise CountDataError(f"Non-numeric sample columns in count table: {non_numeric}")

    values = counts.values.astype(float)
    if np.isnan(values).any():
        raise CountDataError("Count table contains missing values")
    if (values < 0).any():
        raise CountDataError("Count table contains negative values")
    if not np.all(values == np.round(values)):
        raise CountDataError("Count table contains non-integer values")

    dup = counts.index[counts.index.duplicated()].unique().tolist()
    if dup:
        raise CountDataError(f"Duplicate gene identifiers in count table: {dup[:10]}")
    dup = counts.columns[counts.columns.duplicated()].unique().tolist()
    if dup:
        raise SampleMismatchError(f"Duplicate sample identifiers in count table: {dup}")

    return counts.astype(np.int64)


def align_samples(counts, coldata):
    """
    Put count columns in metadata row order.

    Returns
    -------
    counts, coldata : pd.DataFrame
        ``coldata`` is returned as given; only count columns move.

    Raises
    ------
    SampleMismatchError
        If a sample appears in only one of the two tables. The error names
        the identifiers missing on each side.
    """
    count_ids = [str(c) for c in counts.columns]
    meta_ids = [str(s) for s in coldata.index]
    missing_in_counts = [s for s in meta_ids if s not in set(count_ids)]
    missing_in_metadata = [s for s in count_ids if s not in set(meta_ids)]
    if missing_in_counts or missing_in_metadata:
        parts = []
        if missing_in_counts:
            parts.append(f"in metadata but not in counts: {missing_in_counts}")
        if missing_in_metadata:
            parts.append(f"in counts but not in metadata: {missing_in_metadata}")
        raise SampleMismatchError("Sample identifiers do not match; " + "; ".join(parts),
                                  missing_in_counts=missing_in_counts,
                                  missing_in_metadata=missing_in_metadata)

    counts = counts.copy()
    counts.columns = count_ids
    return counts[meta_ids], coldata


def filter_low_counts(counts, min_total=5, return_mask=False):
    """
    Keep genes whose total count across samples is strictly above ``min_total``.

    Examples
    --------
    >>> counts = pd.DataFrame({'a': [0, 3, 10], 'b': [0, 3, 0]}, index=['g1', 'g2', 'g3'])
    >>> filter_low_counts(counts).index.tolist()
    ['g2', 'g3']
    """
    keep = np.asarray(counts.sum(axis=1) > min_total)
    logger.info("Keeping %d of %d genes with total count > %s",
                int(keep.sum()), len(keep), min_total)
    filtered = counts[keep] if isinstance(counts, pd.DataFrame) else np.asarray(counts)[keep]
    if return_mask:
        return filtered, keep
    return filtered


def load_dataset(counts_path, metadata_path, design, config=None, numeric_cols=None):
    """
    Load, align and pre-filter a dataset in one call.

    Returns
    -------
    DESeqDataSet
    """
    from .dataset import DESeqDataSet

    config = AnalysisConfig() if config is None else config
    coldata = load_sample_metadata(metadata_path, numeric_cols=numeric_cols)
    counts = load_counts(counts_path)
    counts, coldata = align_samples(counts, coldata)
    counts = filter_low_counts(counts, min_total=config.min_total_count)
    return DESeqDataSet(counts, coldata, design=design, config=config)
