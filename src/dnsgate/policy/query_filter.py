from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from dnslib import QTYPE, DNSQuestion

from .classifier import Classifier, Verdict

logger = logging.getLogger(__name__)


class QueryFilter:
    """Drop questions whose names the classifier denies, keeping order."""

    __slots__ = ("_classifier",)

    def __init__(self, classifier: Classifier) -> None:
        self._classifier = classifier

    @property
    def classifier(self) -> Classifier:
        return self._classifier

    def filter(self, questions: Iterable[DNSQuestion]) -> List[DNSQuestion]:
        """
        Inputs:
          - questions: question section of an inbound query, in order.

        Outputs:
          - list of the allowed questions, same objects, same relative order.
            An empty list means nothing is left to resolve.
        """
        kept: List[DNSQuestion] = []
        for q in questions:
            qname = str(q.qname)
            if self._classifier.decide(qname) is Verdict.ALLOW:
                kept.append(q)
            else:
                logger.info("Filtered %s %s", qname, _qtype_name(q))
        return kept

    def __call__(self, questions: Sequence[DNSQuestion]) -> List[DNSQuestion]:
        return self.filter(questions)


def _qtype_name(q: DNSQuestion) -> str:
    return QTYPE.get(q.qtype, str(q.qtype))
