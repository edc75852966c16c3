"""
Analysis settings shared by the loader, fitter and result extraction.
"""

import dataclasses
from dataclasses import dataclass

from .errors import AltHypothesisError


ALT_HYPOTHESES = ("greaterAbs", "lessAbs", "greater", "less")
FIT_TYPES = ("parametric", "mean")


def check_alt_hypothesis(alt_hypothesis):
    if alt_hypothesis not in ALT_HYPOTHESES:
        raise AltHypothesisError(
            f"Unsupported alt_hypothesis {alt_hypothesis!r}; "
            f"choose one of: {', '.join(ALT_HYPOTHESES)}")
    return alt_hypothesis


@dataclass(frozen=True)
class AnalysisConfig:
    """Knobs for one run of the pipeline.

    Every field has the value DESeq2 uses by default, except
    ``min_total_count`` which is the row-sum pre-filter applied when the
    count table is loaded, and ``n_cpus`` which is handed to pydeseq2's
    inference backend.
    """

    #: genes whose total count is not strictly above this are dropped on load
    min_total_count: int = 5
    fit_type: str = "parametric"
    min_disp: float = 1e-8
    #: IRLS iteration limit for the likelihood ratio test refits
    max_iter: int = 100
    refit_cooks: bool = True
    alpha: float = 0.1
    lfc_threshold: float = 0.0
    alt_hypothesis: str = "greaterAbs"
    independent_filtering: bool = True
    cooks_cutoff: bool = True
    #: number of most variable genes used for PCA
    ntop: int = 500
    n_cpus: int = 1

    def __post_init__(self):
        if self.fit_type not in FIT_TYPES:
            raise ValueError(f"fit_type must be one of {FIT_TYPES}, got {self.fit_type!r}")
        check_alt_hypothesis(self.alt_hypothesis)
        if not 0 < self.alpha < 1:
            raise ValueError("alpha must be in (0, 1)")
        if self.lfc_threshold < 0:
            raise ValueError("lfc_threshold must be non-negative")
        if self.min_disp <= 0:
            raise ValueError("min_disp must be positive")
        if self.n_cpus < 1:
            raise ValueError("n_cpus must be at least 1")

    @classmethod
    def from_mapping(cls, mapping):
        """Build a config from a plain dict, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**mapping)

    def replace(self, **changes):
        return dataclasses.replace(self, **changes)

    def to_dict(self):
        return dataclasses.asdict(self)
