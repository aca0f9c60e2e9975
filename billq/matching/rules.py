"""
Rule-based customer/project matcher.

Stage 1 of suggestion generation. Free and fast: runs before the LLM so a
confident domain match can skip the model call entirely.

Order:
1. Participant email domain equals a known customer domain -> 0.9
   (other matching customers become alternatives at 0.8)
2. Keyword overlap with known projects -> min(0.8, count/5)
   (runners-up become alternatives at min(0.7, count/5))
3. Nothing -> no match, confidence 0
"""

from __future__ import annotations

import re

from billq.activities.models import Activity
from billq.config import (
    RULE_DOMAIN_ALTERNATIVE_CONFIDENCE,
    RULE_DOMAIN_CONFIDENCE,
    RULE_KEYWORD_ALTERNATIVE_MAX_CONFIDENCE,
    RULE_KEYWORD_DIVISOR,
    RULE_KEYWORD_MAX_CONFIDENCE,
    RULE_MAX_CANDIDATES,
)
from billq.matching.models import (
    KnownCustomer,
    KnownProject,
    MatchCandidate,
    MatchKind,
    MatchResult,
)
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter
from billq.utils.email import extract_domain_only

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> set[str]:
    return set(_TOKEN_RE.findall(text.lower()))


class RuleBasedMatcher:
    """
    Match an activity to a known customer or project without calling the LLM.

    Customers and projects are kept in the order given; for projects that
    order breaks ties between equal keyword counts.
    """

    def __init__(
        self,
        customers: list[KnownCustomer] | None = None,
        projects: list[KnownProject] | None = None,
    ):
        self.customers = list(customers or [])
        self.projects = list(projects or [])

    def match(self, activity: Activity) -> MatchResult:
        result = self._match_domain(activity)
        if result is None:
            result = self._match_keywords(activity)
        if result is None:
            result = MatchResult.no_match()

        counter(f"matcher.{result.kind.value}")
        return result

    def _match_domain(self, activity: Activity) -> MatchResult | None:
        domains = {extract_domain_only(p) for p in activity.participants} - {""}
        if not domains:
            return None

        matches = [c for c in self.customers if c.domain and c.domain in domains]
        if not matches:
            return None

        best, *others = matches
        return MatchResult(
            kind=MatchKind.CUSTOMER,
            best=MatchCandidate(name=best.name, confidence=RULE_DOMAIN_CONFIDENCE),
            alternatives=[
                MatchCandidate(name=c.name, confidence=RULE_DOMAIN_ALTERNATIVE_CONFIDENCE)
                for c in others
            ],
            reason=f"participant domain matches customer domain {best.domain}",
        )

    def _match_keywords(self, activity: Activity) -> MatchResult | None:
        text = f"{activity.title} {activity.description or ''}".lower()
        tokens = tokenize(text)
        if not tokens:
            return None

        scored: list[tuple[int, KnownProject]] = []
        for project in self.projects:
            count = sum(
                1
                for keyword in project.keywords
                if keyword in tokens or (" " in keyword and keyword in text)
            )
            if count > 0:
                scored.append((count, project))

        if not scored:
            return None

        # sort() is stable, so equal counts keep project insertion order
        scored.sort(key=lambda item: item[0], reverse=True)
        top = scored[:RULE_MAX_CANDIDATES]

        (best_count, best), *others = top
        return MatchResult(
            kind=MatchKind.PROJECT,
            best=MatchCandidate(
                name=best.name,
                confidence=min(RULE_KEYWORD_MAX_CONFIDENCE, best_count / RULE_KEYWORD_DIVISOR),
                customer_name=best.customer_name,
            ),
            alternatives=[
                MatchCandidate(
                    name=project.name,
                    confidence=min(
                        RULE_KEYWORD_ALTERNATIVE_MAX_CONFIDENCE, count / RULE_KEYWORD_DIVISOR
                    ),
                    customer_name=project.customer_name,
                )
                for count, project in others
            ],
            reason=f"{best_count} keyword(s) match project",
        )
