import numpy as np
import pytest

from rnaseq_de import DesignError


def test_shrunk_table_keeps_test_statistics(fit):
    res = fit.results(name="cell_type_luminal_vs_basal")
    shrunk = fit.lfc_shrink(name="cell_type_luminal_vs_basal")
    assert shrunk.attrs["shrinkage"] == "apeglm"
    for col in ("baseMean", "stat", "pvalue", "padj"):
        np.testing.assert_array_equal(shrunk[col].values, res[col].values)


def test_shrinkage_pulls_towards_zero(fit):
    res = fit.results(name="cell_type_luminal_vs_basal")
    shrunk = fit.lfc_shrink(name="cell_type_luminal_vs_basal")
    ok = np.isfinite(res["log2FoldChange"]).values
    assert np.isfinite(shrunk.loc[ok, "log2FoldChange"]).all()
    assert np.abs(shrunk.loc[ok, "log2FoldChange"]).median() \
        < np.abs(res.loc[ok, "log2FoldChange"]).median()


def test_shrinkage_does_not_touch_the_fit(fit):
    before = fit.coefficients.copy()
    fit.lfc_shrink(name="cell_type_luminal_vs_basal")
    np.testing.assert_array_equal(fit.coefficients.values, before.values)


def test_level_pair_with_reference_denominator(fit):
    by_pair = fit.lfc_shrink(contrast=["status", "virgin", "lactate"])
    by_name = fit.lfc_shrink(name="status_virgin_vs_lactate")
    np.testing.assert_allclose(by_pair["log2FoldChange"], by_name["log2FoldChange"])


def test_contrast_between_two_non_reference_levels_is_rejected(fit):
    with pytest.raises(DesignError, match="single coefficient"):
        fit.lfc_shrink(contrast=["status", "virgin", "pregnant"])
