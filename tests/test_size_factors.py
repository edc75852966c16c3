import numpy as np
import pytest

from rnaseq_de.size_factors import estimate_size_factors


def test_median_of_ratios_simple():
    counts = np.array([[1, 2], [4, 8]])
    sf = estimate_size_factors(counts)
    np.testing.assert_allclose(sf, [1 / np.sqrt(2), np.sqrt(2)])


def test_scaled_samples_recover_scale():
    rng = np.random.default_rng(3)
    base = rng.integers(5, 500, size=200)
    counts = np.column_stack([base, 2 * base, 4 * base])
    sf = estimate_size_factors(counts)
    np.testing.assert_allclose(sf / sf[0], [1, 2, 4])


def test_genes_with_zero_are_ignored():
    counts = np.array([[0, 10], [5, 10], [10, 20]])
    np.testing.assert_allclose(estimate_size_factors(counts),
                               estimate_size_factors(counts[1:]))


def test_fails_when_every_gene_has_a_zero():
    counts = np.array([[0, 3], [4, 0]])
    with pytest.raises(ValueError, match="at least one zero"):
        estimate_size_factors(counts)


def test_dataframe_input(filtered_counts):
    sf_df = estimate_size_factors(filtered_counts)
    sf_np = estimate_size_factors(filtered_counts.values)
    np.testing.assert_array_equal(sf_df, sf_np)
    assert sf_df.shape == (filtered_counts.shape[1],)


def test_fit_uses_the_same_size_factors(fit, filtered_counts):
    np.testing.assert_allclose(fit.size_factors, estimate_size_factors(filtered_counts),
                               rtol=1e-8)
