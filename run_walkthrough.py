"""
End-to-end differential expression walkthrough.

Loads a count table and sample metadata (or simulates the 2 cell types x
3 statuses x 2 replicates layout), fits ``~ cell_type + status``, extracts
a few contrasts, tests status with a likelihood ratio test and saves
PCA, MA and dispersion plots.

Usage::

    python run_walkthrough.py --counts counts.tsv --metadata samples.tsv -o out/
    python run_walkthrough.py --simulate -o out/ --verbose
"""

import argparse
import logging
import os
import time

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from rnaseq_de import (AnalysisConfig, DESeqDataSet, filter_low_counts, load_dataset,
                       plotDispEsts, plotMA, simulate_counts, top_genes)

logger = logging.getLogger("walkthrough")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Negative binomial differential expression walkthrough")
    parser.add_argument("--counts", help="Tab-separated count table (genes x samples)")
    parser.add_argument("--metadata", help="Tab-separated sample metadata")
    parser.add_argument("--simulate", action="store_true",
                        help="Use simulated counts instead of files")
    parser.add_argument("--design", default="~ cell_type + status")
    parser.add_argument("--reduced", default="~ cell_type",
                        help="Reduced design for the likelihood ratio test")
    parser.add_argument("--output", "-o", default="walkthrough_output")
    parser.add_argument("--min-count", type=int, default=5,
                        help="Drop genes with total count <= this")
    parser.add_argument("--fit-type", default="parametric",
                        choices=["parametric", "mean"])
    parser.add_argument("--alpha", type=float, default=0.1)
    parser.add_argument("--lfc-threshold", type=float, default=0.0)
    parser.add_argument("--alt-hypothesis", default="greaterAbs",
                        choices=["greaterAbs", "lessAbs", "greater", "less"])
    parser.add_argument("--numeric-cols", nargs="*", default=None,
                        help="Metadata columns to treat as continuous covariates")
    parser.add_argument("--n-cpus", type=int, default=1)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)
    if not args.simulate and not (args.counts and args.metadata):
        parser.error("give --counts and --metadata, or --simulate")
    return args


def build_config(args):
    return AnalysisConfig(min_total_count=args.min_count, fit_type=args.fit_type,
                          alpha=args.alpha, lfc_threshold=args.lfc_threshold,
                          alt_hypothesis=args.alt_hypothesis, n_cpus=args.n_cpus)


def load(args, config):
    if args.simulate:
        counts, coldata = simulate_counts(seed=args.seed)
        counts = filter_low_counts(counts, min_total=config.min_total_count)
        return DESeqDataSet(counts, coldata, design=args.design, config=config)
    return load_dataset(args.counts, args.metadata, args.design, config=config,
                        numeric_cols=args.numeric_cols)


def save_table(res, path):
    res.to_csv(path, sep="\t", na_rep="NA")
    logger.info("Wrote %s", path)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    os.makedirs(args.output, exist_ok=True)
    config = build_config(args)

    dds = load(args, config)
    logger.info("%r", dds)

    start = time.time()
    fit = dds.deseq2()
    logger.info("Fit in %.1f seconds; coefficients: %s", time.time() - start,
                ", ".join(fit.results_names))

    # default contrast: last coefficient
    res = fit.results()
    fit.summary(res)
    save_table(res, os.path.join(args.output, "results_default.tsv"))
    save_table(top_genes(res, 100), os.path.join(args.output, "top100_default.tsv"))

    if "status" in dds.coldata.columns:
        levels = list(dds.coldata["status"].cat.categories)
        for numerator in levels[1:]:
            res_pair = fit.results(contrast=["status", numerator, levels[0]])
            fit.summary(res_pair)
            save_table(res_pair, os.path.join(
                args.output, f"results_status_{numerator}_vs_{levels[0]}.tsv"))

    shrunk = fit.lfc_shrink()
    save_table(shrunk, os.path.join(args.output, "results_default_shrunk.tsv"))

    lrt = fit.lrt(args.reduced)
    logger.info("LRT %s vs %s: %d genes with padj < %s", lrt.attrs["full"],
                lrt.attrs["reduced"], int((lrt["padj"] < config.alpha).sum()), config.alpha)
    save_table(lrt, os.path.join(args.output, "results_lrt.tsv"))

    intgroup = [c for c in ("cell_type", "status") if c in dds.coldata.columns] or None
    for blind in (True, False):
        ax = fit.plot_pca(intgroup=intgroup, blind=blind,
                          main=f"PCA ({'blind' if blind else 'design-aware'} VST)")
        path = os.path.join(args.output, f"pca_{'blind' if blind else 'design'}.png")
        ax.figure.savefig(path, dpi=120, bbox_inches="tight")
        plt.close(ax.figure)
        logger.info("Wrote %s", path)

    ax = plotMA(res, ylim=(-5, 5), main=res.attrs["contrast"])
    ax.figure.savefig(os.path.join(args.output, "ma_default.png"), dpi=120)
    plt.close(ax.figure)

    d = fit.dispersion_fit
    ax = plotDispEsts(d.base_means, d.genewise, d.trend_values, d.final)
    ax.figure.savefig(os.path.join(args.output, "dispersions.png"), dpi=120)
    plt.close(ax.figure)


if __name__ == "__main__":
    main()
