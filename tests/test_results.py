import numpy as np
import pytest
from scipy.stats import norm

from rnaseq_de import DESeqDataSet
from rnaseq_de.config import ALT_HYPOTHESES
from rnaseq_de.errors import AltHypothesisError, DesignError
from rnaseq_de.results import (RESULT_COLUMNS, benjamini_hochberg, find_optimal_threshold,
                               independent_filtering, summary, top_genes)


def test_results_table_layout(fit):
    res = fit.results()
    assert list(res.columns) == RESULT_COLUMNS
    assert list(res.index) == list(fit.gene_names)
    assert res.attrs["contrast"] == "status_virgin_vs_lactate"
    assert res.attrs["test"] == "Wald"
    padj = res["padj"].dropna()
    assert ((padj >= 0) & (padj <= 1)).all()


def test_name_and_level_pair_agree(fit):
    by_name = fit.results(name="cell_type_luminal_vs_basal")
    by_pair = fit.results(contrast=["cell_type", "luminal", "basal"])
    for col in RESULT_COLUMNS:
        np.testing.assert_allclose(by_name[col].values, by_pair[col].values)


def test_reversed_pair_flips_sign(fit):
    fwd = fit.results(contrast=["status", "virgin", "pregnant"])
    rev = fit.results(contrast=["status", "pregnant", "virgin"])
    np.testing.assert_allclose(fwd["log2FoldChange"], -rev["log2FoldChange"])
    np.testing.assert_allclose(fwd["pvalue"], rev["pvalue"])


def test_non_reference_pair_is_coefficient_difference(fit):
    res = fit.results(contrast=["status", "virgin", "pregnant"])
    coefs = fit.coefficients
    expected = coefs["status_virgin_vs_lactate"] - coefs["status_pregnant_vs_lactate"]
    np.testing.assert_allclose(res["log2FoldChange"], expected, rtol=1e-6, atol=1e-8)


def test_coefficients_match_wald_estimates(fit):
    res = fit.results(name="cell_type_luminal_vs_basal")
    np.testing.assert_allclose(res["log2FoldChange"],
                               fit.coefficients["cell_type_luminal_vs_basal"],
                               rtol=1e-6, atol=1e-8)


def test_numeric_contrast_matches_name(fit):
    by_name = fit.results(name="status_pregnant_vs_lactate")
    by_vec = fit.results(contrast=[0, 0, 1, 0])
    np.testing.assert_allclose(by_name["pvalue"].values, by_vec["pvalue"].values)


def test_name_and_contrast_are_exclusive(fit):
    with pytest.raises(DesignError):
        fit.results(name="cell_type_luminal_vs_basal", contrast=["status", "virgin", "lactate"])


def test_unknown_alt_hypothesis_lists_options(fit):
    with pytest.raises(AltHypothesisError) as excinfo:
        fit.results(alt_hypothesis="notEqual")
    assert all(opt in str(excinfo.value) for opt in ALT_HYPOTHESES)


def test_less_abs_needs_threshold(fit):
    with pytest.raises(ValueError, match="lessAbs"):
        fit.results(alt_hypothesis="lessAbs", lfc_threshold=0.0)


def test_negative_threshold_rejected(fit):
    with pytest.raises(ValueError, match="non-negative"):
        fit.results(lfc_threshold=-1.0)


def test_threshold_changes_statistics(fit):
    plain = fit.results()
    thresh = fit.results(lfc_threshold=1.0)
    np.testing.assert_allclose(plain["log2FoldChange"].values,
                               thresh["log2FoldChange"].values)
    both = plain["pvalue"].notna() & thresh["pvalue"].notna()
    assert (thresh["pvalue"][both] >= plain["pvalue"][both] - 1e-12).all()
    assert not np.allclose(thresh["stat"][both], plain["stat"][both])


def test_greater_abs_threshold_pvalues(fit):
    T = 1.0
    res = fit.results(name="cell_type_luminal_vs_basal", lfc_threshold=T)
    ok = res["pvalue"].notna()
    lfc, se = res.loc[ok, "log2FoldChange"], res.loc[ok, "lfcSE"]
    expected = np.minimum(1, 2 * norm.sf((np.abs(lfc) - T) / se))
    np.testing.assert_allclose(res.loc[ok, "pvalue"], expected, rtol=1e-6, atol=1e-12)


@pytest.mark.parametrize("alt", ["lessAbs", "greater", "less"])
def test_directional_alternatives(fit, alt):
    res = fit.results(name="cell_type_luminal_vs_basal", lfc_threshold=0.5,
                      alt_hypothesis=alt)
    assert res.attrs["alt_hypothesis"] == alt
    p = res["pvalue"].dropna()
    assert len(p) > 0
    assert ((p >= 0) & (p <= 1)).all()
    lfc = res.loc[p.index, "log2FoldChange"]
    if alt == "greater":
        assert (p[lfc < 0.5] >= 0.5 - 1e-12).all()
    elif alt == "less":
        assert (p[lfc > -0.5] >= 0.5 - 1e-12).all()
    else:
        assert (p[lfc.abs() > 0.5] >= 0.5 - 1e-12).all()


def test_all_zero_genes_are_missing(unfiltered_fit):
    res = unfiltered_fit.results()
    zero = res.iloc[-3:]
    assert (zero["baseMean"] == 0).all()
    assert zero[RESULT_COLUMNS[1:]].isna().all().all()
    assert (res.iloc[:-3]["baseMean"] > 0).all()


def test_gene_silent_in_one_group_is_finite_and_significant(filtered_counts, coldata):
    counts = filtered_counts.copy()
    gene = counts.sum(axis=1).idxmax()
    basal = coldata.index[coldata["cell_type"] == "basal"]
    counts.loc[gene, basal] = 0

    fit = DESeqDataSet(counts, coldata, design="~ cell_type + status").deseq2()
    res = fit.results(name="cell_type_luminal_vs_basal")
    row = res.loc[gene]
    assert np.isfinite(row["log2FoldChange"]) and row["log2FoldChange"] > 0
    assert np.isfinite(row["lfcSE"])
    assert row["log2FoldChange"] < 30 / np.log(2)
    assert row["padj"] < 0.1


def test_benjamini_hochberg_skips_nan():
    padj = benjamini_hochberg([0.01, np.nan, 0.04, 0.03])
    assert np.isnan(padj[1])
    np.testing.assert_allclose(padj[[0, 2, 3]], [0.03, 0.04, 0.04])


def test_independent_filtering_drops_low_means():
    rng = np.random.default_rng(2)
    base_means = np.concatenate([rng.uniform(0.1, 2, 500), rng.uniform(50, 500, 500)])
    pvalues = np.concatenate([rng.uniform(0, 1, 500),
                              np.concatenate([rng.uniform(0, 1e-4, 100),
                                              rng.uniform(0, 1, 400)])])
    out = independent_filtering(base_means, pvalues, alpha=0.1)
    assert out["threshold"] > 0
    assert np.isnan(out["padj"][~out["filter"]]).all()
    assert out["n_filtered"] == int((~out["filter"]).sum())
    assert np.nanmax(out["padj"]) <= 1


def test_optimal_threshold_takes_the_raw_maximum():
    rng = np.random.default_rng(5)
    base_means = rng.uniform(0, 100, 400)
    pvalues = np.where(base_means > 60, rng.uniform(0, 1e-3, 400), rng.uniform(0, 1, 400))
    threshold, n_rej = find_optimal_threshold(base_means, pvalues, alpha=0.1)

    grid = np.quantile(base_means, np.linspace(0, 0.95, 50))
    counts = [int(np.sum(benjamini_hochberg(np.where(base_means > t, pvalues, np.nan)) < 0.1))
              for t in grid]
    assert n_rej == max(counts)
    assert threshold == grid[counts.index(max(counts))]


def test_independent_filtering_off_uses_plain_bh(fit):
    res = fit.results(independent_filtering=False)
    assert res["padj"].notna().sum() == res["pvalue"].notna().sum()


def test_top_genes_reproducible(fit):
    first = top_genes(fit.results(), 100)
    second = top_genes(fit.results(), 100)
    assert list(first.index) == list(second.index)
    assert first["padj"].dropna().is_monotonic_increasing


def test_summary_counts(fit):
    res = fit.results()
    out = summary(res)
    assert out["total_genes"] == len(res)
    assert out["upregulated"] + out["downregulated"] == out["significant"]
    assert out["significant"] == int((res["padj"] < res.attrs["alpha"]).sum())


