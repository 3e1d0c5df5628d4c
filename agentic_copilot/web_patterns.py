"""
Web vocabulary for the planner.

Holds the keyword data the planner uses to recognise entities, named web
patterns and site-specific behaviour. Everything here is plain data so new
sites can be described in JSON instead of code.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


@dataclass
class Suggestion:
    """An adaptive, site-specific task suggestion."""

    description: str
    confidence: float
    tools: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "description": self.description,
            "confidence": self.confidence,
            "tools": list(self.tools),
        }


@dataclass
class SuggestionRule:
    """Suggest a task when the objective mentions trigger words.

    `triggers` needs any one word present; `requires` needs any one of its
    words too (empty means no extra condition).
    """

    description: str
    confidence: float
    tools: list[str] = field(default_factory=list)
    triggers: list[str] = field(default_factory=list)
    requires: list[str] = field(default_factory=list)

    def matches(self, objective_lower: str) -> bool:
        if self.triggers and not any(t in objective_lower for t in self.triggers):
            return False
        if self.requires and not any(r in objective_lower for r in self.requires):
            return False
        return True


@dataclass
class DomainProfile:
    """What the planner knows about one family of sites.

    Attributes:
        match: Hostname fragments identifying the site (any one suffices)
        pattern_name: Key under which the site's keywords are learned
        keywords: Navigation vocabulary learned when the site is visited
        suggestions: Adaptive suggestions offered on this site
    """

    match: list[str]
    pattern_name: str
    keywords: list[str] = field(default_factory=list)
    suggestions: list[SuggestionRule] = field(default_factory=list)

    def matches_host(self, hostname: str) -> bool:
        return any(fragment in hostname for fragment in self.match)


@dataclass
class EntityVocabulary:
    """Known entity names the planner extracts before falling back to keywords."""

    companies: list[str] = field(default_factory=list)
    job_titles: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)
    # Objective words that trigger a role filter task
    role_triggers: list[str] = field(default_factory=list)
    default_role: str = "software engineer"

    def _compile(self, terms: list[str]) -> Optional[re.Pattern]:
        if not terms:
            return None
        # Allow flexible whitespace inside multi-word terms
        alternatives = [r"\s*".join(re.escape(p) for p in t.split()) for t in terms]
        return re.compile(r"\b(" + "|".join(alternatives) + r")\b", re.IGNORECASE)

    def __post_init__(self):
        self._company_re = self._compile(self.companies)
        self._job_re = self._compile(self.job_titles)
        self._location_re = self._compile(self.locations)

    @staticmethod
    def _find(pattern: Optional[re.Pattern], text: str) -> list[str]:
        if pattern is None:
            return []
        return [m.group(0) for m in pattern.finditer(text)]

    def find_companies(self, text: str) -> list[str]:
        return self._find(self._company_re, text)

    def find_job_titles(self, text: str) -> list[str]:
        return self._find(self._job_re, text)

    def find_locations(self, text: str) -> list[str]:
        return self._find(self._location_re, text)


DEFAULT_WEB_PATTERNS: dict[str, list[str]] = {
    "job_search": [
        "careers", "jobs", "opportunities", "positions", "employment", "work-with-us",
    ],
    "company_search": [
        "about", "company", "organization", "who-we-are", "our-company",
    ],
    "location_filter": [
        "location", "country", "city", "region", "office", "remote",
    ],
    "job_type_filter": [
        "software", "engineer", "developer", "programmer", "technical", "technology",
    ],
}

DEFAULT_ENTITY_VOCABULARY = {
    "companies": [
        "jp morgan", "jpmorgan", "google", "microsoft", "amazon", "facebook",
        "linkedin", "indeed",
    ],
    # Longest first so "software engineer" wins over "engineer"
    "job_titles": ["software engineer", "developer", "programmer", "engineer", "analyst"],
    "locations": ["india", "bangalore", "mumbai", "delhi", "hyderabad", "remote"],
    "role_triggers": ["software", "engineer"],
    "default_role": "software engineer",
}

DEFAULT_DOMAIN_PROFILES: list[dict[str, Any]] = [
    {
        "match": ["linkedin"],
        "pattern_name": "linkedin_job_search",
        "keywords": ["jobs", "search", "location", "experience-level"],
    },
    {
        "match": ["indeed"],
        "pattern_name": "indeed_job_search",
        "keywords": ["job-search", "where", "salary", "job-type"],
    },
    {
        "match": ["jpmorganchase", "jpmorgan"],
        "pattern_name": "jpmorgan_careers",
        "keywords": ["careers", "search-jobs", "locations", "job-family"],
        "suggestions": [
            {
                "description": "Use JP Morgan specific job search interface",
                "confidence": 0.9,
                "tools": ["clickElement", "fillInput", "waitForElement"],
                "triggers": ["job", "career"],
            },
            {
                "description": "Filter by India office locations (Mumbai, Bangalore, Hyderabad)",
                "confidence": 0.85,
                "tools": ["fillInput", "clickElement"],
                "triggers": ["job", "career"],
                "requires": ["india"],
            },
        ],
    },
]


class WebPatternTable:
    """Named keyword sets, entity vocabulary and domain profiles.

    The planner reads from and learns into one instance; it is never shared
    between planners implicitly.
    """

    def __init__(
        self,
        patterns: Optional[dict[str, list[str]]] = None,
        vocabulary: Optional[EntityVocabulary] = None,
        profiles: Optional[list[DomainProfile]] = None,
    ):
        self.patterns: dict[str, list[str]] = {
            name: list(words) for name, words in (patterns or {}).items()
        }
        self.vocabulary = vocabulary or EntityVocabulary()
        self.profiles: list[DomainProfile] = list(profiles or [])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebPatternTable":
        """Build a table from plain data (the JSON file format)."""
        profiles = []
        for raw in data.get("profiles", []):
            rules = [SuggestionRule(**rule) for rule in raw.get("suggestions", [])]
            profiles.append(DomainProfile(
                match=list(raw["match"]),
                pattern_name=raw["pattern_name"],
                keywords=list(raw.get("keywords", [])),
                suggestions=rules,
            ))
        return cls(
            patterns=data.get("patterns", {}),
            vocabulary=EntityVocabulary(**data.get("vocabulary", {})),
            profiles=profiles,
        )

    @classmethod
    def from_file(cls, path: Path) -> "WebPatternTable":
        """Load a table from a JSON file."""
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))

    @classmethod
    def default(cls) -> "WebPatternTable":
        """The built-in vocabulary."""
        return cls.from_dict({
            "patterns": DEFAULT_WEB_PATTERNS,
            "vocabulary": DEFAULT_ENTITY_VOCABULARY,
            "profiles": DEFAULT_DOMAIN_PROFILES,
        })

    def get(self, name: str) -> list[str]:
        return list(self.patterns.get(name, []))

    def learn(self, name: str, keywords: list[str]) -> None:
        self.patterns[name] = list(keywords)

    def profiles_for_host(self, hostname: str) -> list[DomainProfile]:
        return [p for p in self.profiles if p.matches_host(hostname)]
