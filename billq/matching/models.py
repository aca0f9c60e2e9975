"""
Directory and match result models.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class KnownCustomer(BaseModel):
    """A customer of the company, optionally identified by an email domain."""

    name: str
    domain: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("customer name cannot be empty")
        return v.strip()

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower().lstrip("@")
        return v or None

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> KnownCustomer:
        return cls(name=row["name"], domain=row.get("domain"))


class KnownProject(BaseModel):
    """A project with the keywords that identify work on it."""

    name: str
    customer_name: str | None = None
    keywords: list[str] = Field(default_factory=list)

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        return [k.strip().lower() for k in v if k and k.strip()]

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> KnownProject:
        return cls(
            name=row["name"],
            customer_name=row.get("customer_name"),
            keywords=json.loads(row["keywords"]) if row.get("keywords") else [],
        )


class MatchKind(str, Enum):
    CUSTOMER = "customer"
    PROJECT = "project"
    NONE = "none"


@dataclass(frozen=True)
class MatchCandidate:
    name: str
    confidence: float
    customer_name: str | None = None


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of rule-based matching.

    `best` is None for a no-match result, whose confidence is always 0.
    """

    kind: MatchKind
    best: MatchCandidate | None = None
    alternatives: list[MatchCandidate] = field(default_factory=list)
    reason: str = ""

    @property
    def confidence(self) -> float:
        return self.best.confidence if self.best else 0.0

    @property
    def customer_name(self) -> str | None:
        if self.best is None:
            return None
        if self.kind == MatchKind.CUSTOMER:
            return self.best.name
        return self.best.customer_name

    @property
    def project_name(self) -> str | None:
        if self.best is not None and self.kind == MatchKind.PROJECT:
            return self.best.name
        return None

    @classmethod
    def no_match(cls) -> MatchResult:
        return cls(kind=MatchKind.NONE, reason="no domain or keyword match")
