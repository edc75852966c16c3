import dataclasses

import pytest

from rnaseq_de.config import ALT_HYPOTHESES, AnalysisConfig, check_alt_hypothesis
from rnaseq_de.errors import AltHypothesisError


def test_defaults():
    config = AnalysisConfig()
    assert config.min_total_count == 5
    assert config.fit_type == "parametric"
    assert config.alpha == 0.1
    assert config.alt_hypothesis == "greaterAbs"


def test_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        AnalysisConfig().alpha = 0.05


def test_replace_and_round_trip():
    config = AnalysisConfig().replace(alpha=0.05, fit_type="mean")
    assert config.alpha == 0.05
    assert AnalysisConfig.from_mapping(config.to_dict()) == config


def test_from_mapping_rejects_unknown_keys():
    with pytest.raises(ValueError, match="fdr"):
        AnalysisConfig.from_mapping({"fdr": 0.1})


@pytest.mark.parametrize("kwargs", [
    {"fit_type": "spline"},
    {"fit_type": "local"},
    {"n_cpus": 0},
    {"alpha": 1.5},
    {"lfc_threshold": -1},
    {"min_disp": 0},
])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        AnalysisConfig(**kwargs)


def test_alt_hypothesis_error_lists_options():
    with pytest.raises(AltHypothesisError) as excinfo:
        check_alt_hypothesis("twoSided")
    for option in ALT_HYPOTHESES:
        assert option in str(excinfo.value)
    with pytest.raises(AltHypothesisError):
        AnalysisConfig(alt_hypothesis="twoSided")
