"""
Design matrix construction for negative binomial GLMs.

Formulas are resolved by patsy using treatment coding: the first level of
every categorical covariate is the reference and is absorbed into the
intercept. Which level comes first is controlled by the order of the
``pandas.Categorical`` categories, so :func:`relevel` is the only thing
needed to change the reference. Sample rows are never reordered or dropped.

References:
    - Wilkinson GN, Rogers CE (1973). Symbolic description of factorial
      models for analysis of variance. Applied Statistics 22:392-399
    - Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
      and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
"""

import re

import numpy as np
import pandas as pd
from patsy import PatsyError, dmatrix

from .errors import DesignError

_TREATMENT_RE = re.compile(r"^(?P<factor>.+)\[T\.(?P<level>.+)\]$")
_FULL_RE = re.compile(r"^(?P<factor>.+)\[(?P<level>.+)\]$")


def prepare_coldata(coldata):
    """
    Return a copy of ``coldata`` with string columns turned into categoricals.

    Categories are sorted, so the alphabetically first level is the
    reference, matching R's default factor ordering. Columns that are
    already categorical keep their category order.
    """
    if not isinstance(coldata, pd.DataFrame):
        raise TypeError("coldata must be a pandas DataFrame")

    coldata = coldata.copy()
    for col in coldata.columns:
        series = coldata[col]
        if isinstance(series.dtype, pd.CategoricalDtype):
            coldata[col] = series.cat.remove_unused_categories()
        elif series.dtype == object or pd.api.types.is_string_dtype(series) \
                or pd.api.types.is_bool_dtype(series):
            coldata[col] = pd.Categorical(series.astype(str))
    return coldata


def relevel(coldata, factor, ref):
    """
    Make ``ref`` the reference level of ``factor``.

    Parameters
    ----------
    coldata : pd.DataFrame
        Sample metadata.
    factor : str
        Column to relevel.
    ref : str
        Level that should become the reference.

    Returns
    -------
    pd.DataFrame
        Copy of ``coldata``; row order is unchanged and the remaining levels
        keep their relative order.

    Examples
    --------
    >>> coldata = pd.DataFrame({'status': ['virgin', 'pregnant', 'lactate']})
    >>> relevel(coldata, 'status', 'virgin')['status'].cat.categories.tolist()
    ['virgin', 'lactate', 'pregnant']
    """
    if factor not in coldata.columns:
        raise DesignError(f"Unknown factor {factor!r}; available: {list(coldata.columns)}")

    coldata = prepare_coldata(coldata)
    series = coldata[factor]
    if not isinstance(series.dtype, pd.CategoricalDtype):
        series = pd.Categorical(series.astype(str))
        levels = list(series.categories)
    else:
        levels = list(series.cat.categories)

    if ref not in levels:
        raise DesignError(f"Level {ref!r} not found in factor {factor!r}; levels: {levels}")

    new_levels = [ref] + [lvl for lvl in levels if lvl != ref]
    coldata[factor] = pd.Categorical(np.asarray(series, dtype=object),
                                     categories=new_levels)
    return coldata


def _bare_factor_name(name):
    # "C(cell_type)" / "C(cell_type, Treatment('x'))" -> "cell_type"
    if name.startswith("C(") and name.endswith(")"):
        return name[2:-1].split(",")[0].strip()
    return name


def _parse_column(column):
    """Split a patsy column name into (factor, level or None, coded) pieces."""
    pieces = []
    for part in column.split(":"):
        m = _TREATMENT_RE.match(part)
        if m:
            pieces.append((_bare_factor_name(m.group("factor")), m.group("level"), True))
            continue
        m = _FULL_RE.match(part)
        if m:
            pieces.append((_bare_factor_name(m.group("factor")), m.group("level"), False))
            continue
        pieces.append((part, None, False))
    return pieces


class Design:
    """
    A resolved design: numeric matrix plus the bookkeeping needed to name
    coefficients and build contrasts.

    Parameters
    ----------
    coldata : pd.DataFrame
        Sample metadata, one row per sample.
    formula : str
        patsy/R-style formula such as ``"~ cell_type + status"``.

    Attributes
    ----------
    formula : str
    matrix : pd.DataFrame
        Samples x coefficients, indexed like ``coldata``.
    columns : list of str
        patsy column names, e.g. ``cell_type[T.luminal]``.
    results_names : list of str
        DESeq2-style names, e.g. ``cell_type_luminal_vs_basal``.
    factors : dict
        Categorical covariate name -> list of levels (reference first).
    """

    def __init__(self, coldata, formula="~ condition"):
        coldata = prepare_coldata(coldata)
        formula = formula.strip()
        if not formula.startswith("~"):
            formula = "~ " + formula

        try:
            dm = dmatrix(formula, data=coldata, return_type="dataframe",
                         NA_action="raise")
        except PatsyError as e:
            raise DesignError(f"Could not build design from {formula!r}: {e}") from e

        self.formula = formula
        self.matrix = dm
        self.matrix.index = coldata.index
        self.columns = list(dm.columns)
        self.design_info = dm.design_info

        self.factors = {}
        for factor, info in self.design_info.factor_infos.items():
            if info.type == "categorical":
                self.factors[_bare_factor_name(factor.name())] = [str(c) for c in info.categories]

        self.results_names = [self._friendly_name(col) for col in self.columns]

        if not check_full_rank(self.values):
            raise DesignError(
                f"Design {formula!r} is not full rank: some coefficients are linear "
                f"combinations of others (columns: {self.columns})")

    @property
    def values(self):
        return self.matrix.values.astype(float)

    @property
    def n_coefs(self):
        return self.matrix.shape[1]

    @property
    def n_samples(self):
        return self.matrix.shape[0]

    def _friendly_name(self, column):
        if column == "Intercept":
            return column
        pieces = _parse_column(column)
        if len(pieces) == 1:
            factor, level, coded = pieces[0]
            if level is None:
                return factor
            if coded and factor in self.factors:
                return f"{factor}_{level}_vs_{self.factors[factor][0]}"
            return f"{factor}{level}"
        return ".".join(f"{f}{lvl}" if lvl is not None else f for f, lvl, _ in pieces)

    def coef_index(self, name):
        """Position of a coefficient given its DESeq2-style or patsy name."""
        if name in self.results_names:
            return self.results_names.index(name)
        if name in self.columns:
            return self.columns.index(name)
        raise DesignError(f"Coefficient {name!r} not in design; "
                          f"available: {self.results_names}")

    def main_effect_column(self, factor, level):
        """Index of the main-effect column coding ``level`` of ``factor``, or None."""
        for i, col in enumerate(self.columns):
            pieces = _parse_column(col)
            if len(pieces) == 1 and pieces[0][0] == factor and pieces[0][1] == level:
                return i
        return None

    def contrast_vector(self, contrast):
        """Numeric contrast vector; see :func:`get_contrast_vector`."""
        return get_contrast_vector(self, contrast)

    def is_cell_means(self):
        """True when the number of distinct design rows equals the number of coefficients."""
        return np.unique(self.values, axis=0).shape[0] == self.n_coefs

    def is_nested_in(self, other):
        """True when every coefficient of this design also appears in ``other``."""
        return is_nested(self.columns, other.columns)

    def __repr__(self):
        return f"Design({self.formula!r}, {self.n_samples} samples x {self.n_coefs} coefficients)"


def create_design_matrix(coldata, formula="~ condition"):
    """
    Create a design matrix from sample metadata and a formula.

    Parameters
    ----------
    coldata : pd.DataFrame
        Sample metadata with experimental variables as columns.
    formula : str, default "~ condition"
        R-style formula specifying the model.

    Returns
    -------
    np.ndarray
        Design matrix (samples x parameters).
    list
        Column names for the design matrix.

    Examples
    --------
    >>> coldata = pd.DataFrame({
    ...     'condition': ['ctrl', 'ctrl', 'treat', 'treat'],
    ...     'batch': ['A', 'B', 'A', 'B']
    ... })
    >>> X, names = create_design_matrix(coldata, "~ condition + batch")
    >>> names
    ['Intercept', 'condition[T.treat]', 'batch[T.B]']
    """
    design = Design(coldata, formula)
    return design.values, list(design.columns)


def model_matrix(coldata, formula="~ condition", return_dataframe=False):
    """
    Create a model matrix from sample metadata.

    Alias for :func:`create_design_matrix` that can return a DataFrame.
    """
    design = Design(coldata, formula)
    if return_dataframe:
        return design.matrix.copy()
    return design.values


def results_names(coldata, formula):
    return Design(coldata, formula).results_names


def get_contrast_vector(design, contrast):
    """
    Create a numeric contrast vector from a contrast specification.

    Parameters
    ----------
    design : Design
        Resolved design.
    contrast : list or tuple or np.ndarray
        Either ``[factor, numerator, denominator]`` comparing two levels of
        one covariate, or a numeric vector with one weight per coefficient.

    Returns
    -------
    np.ndarray

    Notes
    -----
    Either level may be the reference. When neither is, the vector is
    +1 for the numerator's coefficient and -1 for the denominator's.
    """
    if isinstance(contrast, np.ndarray) or (
            isinstance(contrast, (list, tuple)) and len(contrast) > 0
            and all(isinstance(x, (int, float, np.number)) and not isinstance(x, bool)
                    for x in contrast)):
        vec = np.asarray(contrast, dtype=float)
        if vec.shape != (design.n_coefs,):
            raise DesignError(f"Contrast vector length ({vec.size}) must match "
                              f"number of design matrix columns ({design.n_coefs})")
        if not np.any(vec != 0):
            raise DesignError("Numeric contrast must have at least one non-zero weight")
        return vec

    if not (isinstance(contrast, (list, tuple)) and len(contrast) == 3):
        raise DesignError(f"Invalid contrast specification: {contrast!r}; expected "
                          f"[factor, numerator, denominator] or a numeric vector")

    factor, numerator, denominator = (str(x) for x in contrast)
    if factor not in design.factors:
        raise DesignError(f"Factor {factor!r} is not a categorical term of {design.formula!r}")
    levels = design.factors[factor]
    for level in (numerator, denominator):
        if level not in levels:
            raise DesignError(f"Level {level!r} not in factor {factor!r}; levels: {levels}")
    if numerator == denominator:
        raise DesignError("Contrast numerator and denominator must differ")

    vec = np.zeros(design.n_coefs, dtype=float)
    for level, weight in ((numerator, 1.0), (denominator, -1.0)):
        idx = design.main_effect_column(factor, level)
        if idx is None:
            if level == levels[0] and "Intercept" in design.columns:
                continue
            raise DesignError(f"No main-effect coefficient for {factor}={level} in "
                              f"{design.formula!r}")
        vec[idx] = weight
    return vec


def is_nested(reduced_columns, full_columns):
    """True when the reduced coefficient set is contained in the full one."""
    return set(reduced_columns) <= set(full_columns)


def check_full_rank(X):
    """
    Check if a design matrix is full column rank.

    Examples
    --------
    >>> X = np.array([[1, 0], [1, 0], [1, 1], [1, 1]])
    >>> check_full_rank(X)
    True
    """
    X = np.asarray(X, dtype=float)
    return np.linalg.matrix_rank(X) == X.shape[1]


def coefficient_map(design, other):
    """
    Linear map between two parametrisations of the same column space.

    Parameters
    ----------
    design : Design
    other : array-like or pd.DataFrame
        (samples x P) design matrix built from the same formula by another
        formula engine, rows in the same sample order.

    Returns
    -------
    np.ndarray
        (P, P) matrix ``T`` with ``other = design.values @ T``. Coefficients
        convert as ``beta_design = T @ beta_other`` and a contrast ``c``
        over ``design`` columns becomes ``T.T @ c`` over ``other`` columns.

    Raises
    ------
    DesignError
        If the two matrices do not span the same space.
    """
    X = design.values
    Z = np.asarray(other, dtype=float)
    if Z.shape != X.shape:
        raise DesignError(f"Design matrices disagree in shape: {X.shape} vs {Z.shape}")
    T, *_ = np.linalg.lstsq(X, Z, rcond=None)
    if not np.allclose(X @ T, Z, atol=1e-8):
        raise DesignError(f"Design {design.formula!r} does not match the fitted model matrix")
    T[np.abs(T) < 1e-10] = 0.0
    return T
