import numpy as np
import pandas as pd
import pytest

from rnaseq_de.design import (Design, check_full_rank, coefficient_map,
                              create_design_matrix, get_contrast_vector, is_nested,
                              prepare_coldata, relevel)
from rnaseq_de.errors import DesignError


@pytest.mark.parametrize("formula, n_cols", [
    ("~ 1", 1),
    ("~ cell_type", 2),
    ("~ status", 3),
    ("~ cell_type + status", 1 + 1 + 2),
    ("~ cell_type * status", 1 + 1 + 2 + 1 * 2),
])
def test_design_shape(coldata, formula, n_cols):
    design = Design(coldata, formula)
    assert design.matrix.shape == (len(coldata), n_cols)
    assert len(design.results_names) == n_cols


def test_results_names(coldata):
    design = Design(coldata, "~ cell_type + status")
    assert design.results_names == ["Intercept",
                                    "cell_type_luminal_vs_basal",
                                    "status_pregnant_vs_lactate",
                                    "status_virgin_vs_lactate"]
    assert design.factors["status"] == ["lactate", "pregnant", "virgin"]


def test_interaction_names(coldata):
    design = Design(coldata, "~ cell_type * status")
    assert "cell_typeluminal.statusvirgin" in design.results_names


def test_formula_without_tilde(coldata):
    assert Design(coldata, "cell_type").formula == "~ cell_type"


def test_relevel_changes_reference_not_rows(coldata):
    releveled = relevel(coldata, "status", "virgin")
    assert list(releveled["status"].cat.categories) == ["virgin", "lactate", "pregnant"]
    assert list(releveled.index) == list(coldata.index)
    assert list(releveled["status"].astype(str)) == list(coldata["status"].astype(str))

    design = Design(releveled, "~ cell_type + status")
    assert "status_lactate_vs_virgin" in design.results_names
    assert list(design.matrix.index) == list(coldata.index)


def test_relevel_does_not_modify_input(coldata):
    before = list(coldata["status"].cat.categories)
    relevel(coldata, "status", "virgin")
    assert list(coldata["status"].cat.categories) == before


def test_relevel_unknown_factor_or_level(coldata):
    with pytest.raises(DesignError, match="Unknown factor"):
        relevel(coldata, "tissue", "x")
    with pytest.raises(DesignError, match="not found"):
        relevel(coldata, "status", "weaned")


def test_prepare_coldata_sorts_string_levels():
    coldata = prepare_coldata(pd.DataFrame({"cond": ["treat", "ctrl", "treat"]}))
    assert list(coldata["cond"].cat.categories) == ["ctrl", "treat"]


def test_create_design_matrix_docstring_example():
    coldata = pd.DataFrame({"condition": ["ctrl", "ctrl", "treat", "treat"],
                            "batch": ["A", "B", "A", "B"]})
    X, names = create_design_matrix(coldata, "~ condition + batch")
    assert names == ["Intercept", "condition[T.treat]", "batch[T.B]"]
    np.testing.assert_array_equal(X[:, 1], [0, 0, 1, 1])


def test_unknown_column_raises(coldata):
    with pytest.raises(DesignError):
        Design(coldata, "~ tissue")


def test_rank_deficient_design_raises():
    coldata = pd.DataFrame({"a": ["x", "x", "y", "y"], "b": ["p", "p", "q", "q"]})
    with pytest.raises(DesignError, match="not full rank"):
        Design(coldata, "~ a + b")


def test_contrast_vector_level_pair(coldata):
    design = Design(coldata, "~ cell_type + status")
    np.testing.assert_array_equal(
        get_contrast_vector(design, ["status", "virgin", "lactate"]), [0, 0, 0, 1])
    np.testing.assert_array_equal(
        get_contrast_vector(design, ["status", "lactate", "virgin"]), [0, 0, 0, -1])
    np.testing.assert_array_equal(
        get_contrast_vector(design, ["status", "virgin", "pregnant"]), [0, 0, -1, 1])


def test_contrast_vector_errors(coldata):
    design = Design(coldata, "~ cell_type + status")
    with pytest.raises(DesignError):
        get_contrast_vector(design, ["status", "virgin", "virgin"])
    with pytest.raises(DesignError):
        get_contrast_vector(design, ["tissue", "a", "b"])
    with pytest.raises(DesignError):
        get_contrast_vector(design, [0, 1])
    with pytest.raises(DesignError):
        get_contrast_vector(design, [0, 0, 0, 0])


def test_coef_index_accepts_both_names(coldata):
    design = Design(coldata, "~ cell_type + status")
    assert design.coef_index("cell_type_luminal_vs_basal") == 1
    assert design.coef_index("cell_type[T.luminal]") == 1
    with pytest.raises(DesignError, match="available"):
        design.coef_index("nope")


def test_nesting(coldata):
    full = Design(coldata, "~ cell_type + status")
    assert Design(coldata, "~ cell_type").is_nested_in(full)
    assert Design(coldata, "~ 1").is_nested_in(full)
    assert not Design(coldata, "~ cell_type * status").is_nested_in(full)
    assert is_nested(["Intercept"], ["Intercept", "x"])


def test_check_full_rank():
    assert check_full_rank(np.array([[1, 0], [1, 0], [1, 1], [1, 1]]))
    assert not check_full_rank(np.array([[1, 1], [1, 1], [1, 1]]))


def test_coefficient_map_between_parametrisations(coldata):
    design = Design(coldata, "~ cell_type + status")
    other = Design(relevel(coldata, "status", "virgin"), "~ cell_type + status")
    T = coefficient_map(design, other.values)
    np.testing.assert_allclose(design.values @ T, other.values, atol=1e-10)
    with pytest.raises(DesignError, match="does not match"):
        coefficient_map(design, np.eye(12)[:, :4])
