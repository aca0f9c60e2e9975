"""
Classification prompt for the suggestion engine.

The system instruction carries the static policy (categories, confidence
guidelines, inclusion/exclusion rules, output format); the per-call prompt
carries one activity plus the company context. Activity text is sanitized
and participants are reduced to their domains before leaving the process.
"""

from __future__ import annotations

import json

from billq.activities.models import Activity
from billq.config import LLM_CONTENT_TRUNCATION
from billq.matching.models import KnownCustomer, KnownProject, MatchResult
from billq.suggestions.taxonomy import ClassificationPolicy
from billq.utils.email import extract_domain_only
from billq.utils.redaction import sanitize_for_prompt


def build_system_instruction(policy: ClassificationPolicy) -> str:
    guidelines = "\n".join(
        f"| {g.kind} | {g.min:.2f}-{g.max:.2f} |" for g in policy.guidelines
    )
    include = "\n".join(f"- {rule}" for rule in policy.include)
    exclude = "\n".join(f"- {rule}" for rule in policy.exclude)

    return f"""You review one workplace activity and decide whether it represents billable work.

INCLUDE:
{include}

EXCLUDE:
{exclude}

CONFIDENCE GUIDELINES (how certain you are that this is real billable work):
| Activity kind | Confidence |
|---|---|
{guidelines}

Use exactly one category from: {", ".join(policy.categories)}, or "promotional" for marketing.

Return ONLY a JSON array. Return [] when the activity is not work.
Otherwise return one element:
[{{"description": "<what was done>", "duration_minutes": <integer>, "category": "<category>", "confidence": <0.0-1.0>, "customer_name": "<customer or null>"}}]
"""


def build_prompt(
    activity: Activity,
    policy: ClassificationPolicy,
    match: MatchResult | None = None,
    customers: list[KnownCustomer] | None = None,
    projects: list[KnownProject] | None = None,
    description_length: str = "standard",
) -> str:
    payload = {
        "type": activity.type,
        "title": sanitize_for_prompt(activity.title, max_length=300),
        "description": sanitize_for_prompt(activity.description, max_length=LLM_CONTENT_TRUNCATION),
        "start_time": activity.start_time.isoformat(),
        "duration_minutes": activity.duration_minutes,
        "participant_domains": sorted(
            {extract_domain_only(p) for p in activity.participants} - {""}
        ),
        "participant_count": len(activity.participants),
        "source": activity.source,
    }

    context_lines = []
    if customers:
        context_lines.append(
            "Known customers: "
            + ", ".join(f"{c.name} ({c.domain})" if c.domain else c.name for c in customers)
        )
    if projects:
        context_lines.append("Known projects: " + ", ".join(p.name for p in projects))
    if match is not None and match.best is not None:
        context_lines.append(
            f"Rule hint: possible {match.kind.value} '{match.best.name}' "
            f"(confidence {match.confidence:.2f})"
        )

    length_rule = policy.description_length.get(description_length, "one sentence")
    context = "\n".join(context_lines) or "No company context."

    return f"""COMPANY CONTEXT:
{context}

ACTIVITY:
{json.dumps(payload, indent=2)}

Description length: {length_rule}.
Classify this activity now."""
