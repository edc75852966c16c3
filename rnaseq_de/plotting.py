"""
Diagnostic plots for a differential expression analysis.

Every function draws on the given ``ax`` (or a new figure) and returns the
Axes, so the caller decides whether to show or save the figure.

References:
    - Love MI, Huber W, Anders S (2014). Moderated estimation of fold change
      and dispersion for RNA-seq data with DESeq2. Genome Biology 15:550
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt


def _new_axes(ax, figsize=(8, 6)):
    if ax is None:
        _, ax = plt.subplots(figsize=figsize)
    return ax


def plotMA(res, alpha=None, ylim=None, main="MA Plot", point_size=5, point_alpha=0.5,
           show_legend=True, colSig="red", colNonSig="gray", ax=None):
    """
    MA plot: log2 fold change against mean of normalized counts.

    Parameters
    ----------
    res : pd.DataFrame
        Results table with 'baseMean', 'log2FoldChange' and 'padj'.
    alpha : float, optional
        Genes with padj below this are highlighted. Defaults to the alpha
        the table was built with.
    ylim : tuple, optional
        Points outside are drawn at the limit as triangles.
    ax : matplotlib.axes.Axes, optional

    Returns
    -------
    matplotlib.axes.Axes
    """
    alpha = res.attrs.get("alpha", 0.1) if alpha is None else alpha
    base_mean = res["baseMean"].values
    log2_fc = res["log2FoldChange"].values
    padj = res["padj"].values

    ax = _new_axes(ax)
    significant = np.isfinite(padj) & (padj < alpha)
    valid = (base_mean > 0) & np.isfinite(log2_fc)

    y = log2_fc.copy()
    clipped = np.zeros_like(valid)
    if ylim is not None:
        clipped = valid & ((y < ylim[0]) | (y > ylim[1]))
        y = np.clip(y, ylim[0], ylim[1])

    for mask, colour, label in ((valid & ~significant, colNonSig, "NS"),
                                (valid & significant, colSig, f"padj < {alpha}")):
        inside = mask & ~clipped
        ax.scatter(base_mean[inside], y[inside], c=colour, s=point_size,
                   alpha=point_alpha, label=label)
        if clipped[mask].any():
            ax.scatter(base_mean[mask & clipped], y[mask & clipped], c=colour,
                       s=point_size * 2, marker="^", alpha=point_alpha)

    ax.set_xscale("log")
    ax.axhline(y=0, color="blue", linestyle="--", linewidth=0.5)
    ax.set_xlabel("Mean of Normalized Counts")
    ax.set_ylabel("Log2 Fold Change")
    ax.set_title(main)
    if ylim is not None:
        ax.set_ylim(ylim)
    if show_legend:
        ax.legend(loc="upper right")
    return ax


def plotVolcano(res, alpha=None, lfc_threshold=1.0, main="Volcano Plot",
                point_size=5, point_alpha=0.5, ax=None,
                colUp="red", colDown="blue", colNS="gray"):
    """
    Volcano plot: -log10(p-value) against log2 fold change.

    Genes with padj < ``alpha`` and |log2FoldChange| > ``lfc_threshold`` are
    coloured by direction.
    """
    alpha = res.attrs.get("alpha", 0.1) if alpha is None else alpha
    log2_fc = res["log2FoldChange"].values
    pvalue = res["pvalue"].values
    padj = res["padj"].values

    ax = _new_axes(ax)
    with np.errstate(divide="ignore", invalid="ignore"):
        neg_log10_p = np.clip(-np.log10(pvalue), 0, 300)

    significant = np.isfinite(padj) & (padj < alpha)
    up = significant & (log2_fc > lfc_threshold)
    down = significant & (log2_fc < -lfc_threshold)
    valid = np.isfinite(log2_fc) & np.isfinite(neg_log10_p)

    for mask, colour, label in ((~(up | down), colNS, "NS"),
                                (up, colUp, "Up"), (down, colDown, "Down")):
        ax.scatter(log2_fc[valid & mask], neg_log10_p[valid & mask],
                   c=colour, s=point_size, alpha=point_alpha, label=label)

    ax.axvline(x=lfc_threshold, color="gray", linestyle="--", linewidth=0.5)
    ax.axvline(x=-lfc_threshold, color="gray", linestyle="--", linewidth=0.5)
    ax.set_xlabel("Log2 Fold Change")
    ax.set_ylabel("-Log10(p-value)")
    ax.set_title(main)
    ax.legend(loc="upper right")
    return ax


def plotDispEsts(base_means, disp_gw, disp_trend=None, disp_final=None,
                 main="Dispersion Estimates", ax=None, show_legend=True):
    """
    Gene-wise (black), final (blue) and trend (red) dispersions against mean.

    Returns
    -------
    matplotlib.axes.Axes
    """
    base_means = np.asarray(base_means, dtype=float)
    disp_gw = np.asarray(disp_gw, dtype=float)
    ax = _new_axes(ax)

    valid = (base_means > 0) & np.isfinite(disp_gw) & (disp_gw > 1e-10)
    ax.scatter(base_means[valid], disp_gw[valid], c="black", s=2, alpha=0.3,
               label="Gene-wise")

    if disp_final is not None:
        disp_final = np.asarray(disp_final, dtype=float)
        valid_f = valid & np.isfinite(disp_final) & (disp_final > 1e-10)
        ax.scatter(base_means[valid_f], disp_final[valid_f], c="dodgerblue",
                   s=2, alpha=0.5, label="Final")

    if disp_trend is not None:
        disp_trend = np.asarray(disp_trend, dtype=float)
        valid_t = valid & np.isfinite(disp_trend)
        order = np.argsort(base_means[valid_t])
        ax.plot(base_means[valid_t][order], disp_trend[valid_t][order],
                c="red", linewidth=2, label="Trend")

    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlabel("Mean of Normalized Counts")
    ax.set_ylabel("Dispersion")
    ax.set_title(main)
    if show_legend:
        ax.legend(loc="upper right")
    return ax


def plotPCA(pca_data, color_by=None, main="PCA Plot", ax=None, point_size=50,
            label_points=False):
    """
    Scatter of the first two principal components.

    Parameters
    ----------
    pca_data : pd.DataFrame
        Output of :func:`rnaseq_de.transformations.pca`; axis labels use its
        ``attrs["percent_var"]``.
    color_by : str, optional
        Column of ``pca_data`` to colour by (e.g. ``"group"``).
    label_points : bool, default False
        Annotate each point with its sample id.

    Returns
    -------
    matplotlib.axes.Axes

    Examples
    --------
    >>> from rnaseq_de.transformations import pca
    >>> df = pca(vst_data, coldata, intgroup=["cell_type", "status"])
    >>> plotPCA(df, color_by="group")
    """
    ax = _new_axes(ax)
    pc1 = pca_data["PC1"].values
    pc2 = pca_data["PC2"].values

    if color_by is not None:
        if color_by not in pca_data.columns:
            raise ValueError(f"{color_by!r} is not a column of the PCA table")
        factor = pca_data[color_by].astype(str).values
        levels = list(pd.unique(factor))
        colours = plt.cm.tab10(np.arange(len(levels)) % 10)
        for colour, level in zip(colours, levels):
            mask = factor == level
            ax.scatter(pc1[mask], pc2[mask], color=colour, s=point_size,
                       label=level, alpha=0.8)
        ax.legend(title=color_by, fontsize="small")
    else:
        ax.scatter(pc1, pc2, s=point_size, alpha=0.8)

    if label_points:
        for name, x, y in zip(pca_data.index, pc1, pc2):
            ax.annotate(str(name), (x, y), fontsize=7, xytext=(3, 3),
                        textcoords="offset points")

    var_pc1, var_pc2 = (100 * v for v in pca_data.attrs.get("percent_var", [np.nan, np.nan]))
    ax.set_xlabel(f"PC1: {var_pc1:.0f}% variance")
    ax.set_ylabel(f"PC2: {var_pc2:.0f}% variance")
    ax.set_title(main)
    ax.axhline(y=0, color="gray", linestyle="--", linewidth=0.5)
    ax.axvline(x=0, color="gray", linestyle="--", linewidth=0.5)
    return ax


def plotCounts(fit, gene, intgroup, normalized=True, main=None, ax=None,
               jitter=0.1, pseudocount=0.5):
    """
    Counts of one gene, grouped by a metadata column.

    Parameters
    ----------
    fit : DESeqFit
    gene : str or int
        Gene id, or row position.
    intgroup : str
        Metadata column to group samples by.
    normalized : bool, default True
    pseudocount : float, default 0.5
        Added before plotting on the log scale.

    Returns
    -------
    matplotlib.axes.Axes
    """
    table = fit.counts(normalized=normalized)
    if isinstance(gene, str):
        if gene not in table.index:
            raise KeyError(f"Gene {gene!r} not found")
        values = table.loc[gene].values
    else:
        values = table.iloc[gene].values
        gene = table.index[gene]

    coldata = fit.dataset.coldata
    if intgroup not in coldata.columns:
        raise ValueError(f"{intgroup!r} is not a metadata column")
    groups = coldata[intgroup]
    levels = list(groups.cat.categories) if hasattr(groups, "cat") else list(pd.unique(groups))

    ax = _new_axes(ax, figsize=(6, 5))
    rng = np.random.default_rng(0)
    group_values = groups.astype(str).values
    for i, level in enumerate(levels):
        mask = group_values == str(level)
        x = i + rng.uniform(-jitter, jitter, mask.sum())
        ax.scatter(x, values[mask] + pseudocount, s=40, alpha=0.7, label=str(level))

    ax.set_yscale("log")
    ax.set_xticks(range(len(levels)))
    ax.set_xticklabels([str(lvl) for lvl in levels])
    ax.set_xlabel(intgroup)
    ax.set_ylabel("Normalized Counts" if normalized else "Raw Counts")
    ax.set_title(f"Counts: {gene}" if main is None else main)
    return ax
