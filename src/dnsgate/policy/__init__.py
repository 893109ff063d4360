"""Whitelist/blacklist policy: membership stores, classifier and query filter."""

from .classifier import Classifier, Mode, Verdict
from .hosts import HostSet, Origin, normalize_domain
from .loader import PolicySource, build_classifier, load_policy_file
from .patterns import PatternSet
from .query_filter import QueryFilter

__all__ = [
    "Classifier",
    "HostSet",
    "Mode",
    "Origin",
    "PatternSet",
    "PolicySource",
    "QueryFilter",
    "Verdict",
    "build_classifier",
    "load_policy_file",
    "normalize_domain",
]
