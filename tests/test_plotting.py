import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pytest

from rnaseq_de.plotting import plotCounts, plotDispEsts, plotMA, plotPCA, plotVolcano


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_plot_ma(fit):
    res = fit.results()
    ax = plotMA(res, ylim=(-2, 2))
    assert ax.get_xscale() == "log"
    assert ax.get_ylim() == (-2, 2)


def test_plot_volcano(fit):
    ax = plotVolcano(fit.results(), lfc_threshold=1.0)
    assert ax.get_xlabel() == "Log2 Fold Change"


def test_plot_disp_ests(fit):
    d = fit.dispersion_fit
    ax = plotDispEsts(d.base_means, d.genewise, d.trend_values, d.final)
    assert ax.get_yscale() == "log"
    assert len(ax.lines) == 1


def test_plot_pca(fit):
    ax = fit.plot_pca(intgroup=["cell_type", "status"])
    assert ax.get_xlabel().startswith("PC1:")
    assert ax.get_legend() is not None
    labels = [t.get_text() for t in ax.get_legend().get_texts()]
    assert "basal:virgin" in labels


def test_plot_pca_unknown_column(fit):
    with pytest.raises(ValueError):
        plotPCA(fit.pca(), color_by="tissue")


def test_plot_counts(fit):
    gene = fit.gene_names[0]
    ax = plotCounts(fit, gene, "status")
    assert [t.get_text() for t in ax.get_xticklabels()] == ["lactate", "pregnant", "virgin"]
    with pytest.raises(KeyError):
        plotCounts(fit, "no_such_gene", "status")
