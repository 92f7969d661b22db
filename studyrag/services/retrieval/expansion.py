"""Query expansion: the probe rule table and the retrieval presets.

Embedding a narrow question ("who is the author") rarely ranks the one
passage that states a document-identity fact ("Written by Jane Doe")
highly.  The retrieval aggregator therefore issues a handful of short
lexical *probes* alongside the primary query.  Which probes are issued is
decided by an :class:`ExpansionPolicy`:

1. **Core probes** -- always issued (``title``, ``chapter``, ...).
2. **Rule probes** -- each :class:`ExpansionRule` whose keywords appear in
   the query (whole-word, case-insensitive) contributes its probes, in
   rule order.  A probe may contain ``{terms}``, replaced by the query's
   key terms; such probes are skipped when the query has none.
3. **Key-term probe** -- the key terms themselves, joined by spaces.

The combined list is de-duplicated and capped (8 by default), so the
probe set stays bounded however many rules fire.

The rule table is data: :func:`policy_from_config` builds a policy from
the ``retrieval`` section of ``config/config.yaml``.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TERMS_PLACEHOLDER = "{terms}"
MAX_KEY_TERMS = 5
DEFAULT_MAX_PROBES = 8

STOP_WORDS = frozenset({
    "what", "how", "why", "when", "where", "who", "which",
    "can", "could", "would", "should",
    "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did",
    "will", "shall", "may", "might", "must", "ought",
    "the", "a", "an", "and", "or", "but",
    "in", "on", "at", "to", "for", "of", "with", "by", "about",
    "tell", "me", "explain", "describe", "define",
})

_NON_WORD_RE = re.compile(r"[^\w\s]")


def extract_key_terms(query: str, limit: int = MAX_KEY_TERMS) -> list[str]:
    """Return up to *limit* content words of *query*, in order.

    Punctuation is dropped, stop words and words of two characters or
    fewer are removed.
    """
    words = _NON_WORD_RE.sub(" ", query.lower()).split()
    terms = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    return terms[:limit]


# ---------------------------------------------------------------------------
# ExpansionRule -- (keywords in query) -> (extra probes).
# ---------------------------------------------------------------------------
class ExpansionRule(BaseModel):
    """A conditional probe set, triggered by keywords in the query."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Identifier used in logs and config.")
    keywords: tuple[str, ...] = Field(description="Whole words that trigger the rule.")
    probes: tuple[str, ...] = Field(
        description="Probes added when triggered; may contain ``{terms}``."
    )

    def matches(self, query: str) -> bool:
        lowered = query.lower()
        return any(
            re.search(rf"\b{re.escape(keyword.lower())}\b", lowered)
            for keyword in self.keywords
        )

    def render(self, key_terms: list[str]) -> list[str]:
        """Fill ``{terms}`` placeholders; drop templated probes without terms."""
        joined = " ".join(key_terms)
        rendered: list[str] = []
        for probe in self.probes:
            if TERMS_PLACEHOLDER in probe:
                if not joined:
                    continue
                probe = probe.replace(TERMS_PLACEHOLDER, joined)
            rendered.append(probe.strip())
        return rendered


# ---------------------------------------------------------------------------
# ExpansionPolicy -- which probes accompany a query.
# ---------------------------------------------------------------------------
class ExpansionPolicy(BaseModel):
    """Ordered probe generator used by the retrieval aggregator."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Preset name, e.g. chat, quiz, summary.")
    core_probes: tuple[str, ...] = Field(default=(), description="Always-issued probes.")
    rules: tuple[ExpansionRule, ...] = Field(default=(), description="Evaluated in order.")
    include_key_terms: bool = Field(
        default=False, description="Append the query's key terms as a final probe."
    )

    def probes_for(self, query: str, max_probes: int = DEFAULT_MAX_PROBES) -> list[str]:
        """Return at most *max_probes* distinct probes for *query*.

        The primary query itself is never repeated as a probe.
        """
        key_terms = extract_key_terms(query)

        candidates: list[str] = list(self.core_probes)
        for rule in self.rules:
            if rule.matches(query):
                candidates.extend(rule.render(key_terms))
        if self.include_key_terms and key_terms:
            candidates.append(" ".join(key_terms))

        seen = {query.strip().lower()}
        probes: list[str] = []
        for probe in candidates:
            key = probe.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            probes.append(probe.strip())
        return probes[: max(0, max_probes)]


DEFAULT_CORE_PROBES: tuple[str, ...] = ("title", "chapter", "summary", "key concept")

DEFAULT_RULES: tuple[ExpansionRule, ...] = (
    ExpansionRule(
        name="author",
        keywords=("author", "wrote", "written", "writer"),
        probes=("written by", "publisher"),
    ),
    ExpansionRule(
        name="title",
        keywords=("title", "called", "named"),
        probes=("book title", "title page"),
    ),
    ExpansionRule(
        name="date",
        keywords=("when", "date", "year", "published"),
        probes=("published", "copyright"),
    ),
    ExpansionRule(
        name="how",
        keywords=("how",),
        probes=("process {terms}", "steps {terms}"),
    ),
    ExpansionRule(
        name="what",
        keywords=("what", "define", "definition", "meaning"),
        probes=("definition {terms}", "concept {terms}"),
    ),
    ExpansionRule(
        name="why",
        keywords=("why", "reason", "cause"),
        probes=("reason {terms}", "cause {terms}"),
    ),
)

CHAT_POLICY = ExpansionPolicy(
    name="chat",
    core_probes=DEFAULT_CORE_PROBES,
    rules=DEFAULT_RULES,
    include_key_terms=True,
)

QUIZ_POLICY = ExpansionPolicy(
    name="quiz",
    core_probes=(
        "key concepts and definitions",
        "important principles and theories",
        "main ideas and explanations",
        "examples and applications",
        "processes and procedures",
    ),
)

SUMMARY_POLICY = ExpansionPolicy(
    name="summary",
    core_probes=(
        "introduction overview main points",
        "key concepts important ideas",
        "methods approach techniques",
        "results findings conclusions",
        "summary key takeaways",
        "definitions terminology concepts",
        "examples case studies",
        "recommendations implications",
    ),
)

PRESETS: dict[str, ExpansionPolicy] = {
    policy.name: policy for policy in (CHAT_POLICY, QUIZ_POLICY, SUMMARY_POLICY)
}


def get_policy(name: str) -> ExpansionPolicy:
    """Return the preset called *name* (``chat``, ``quiz`` or ``summary``)."""
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown expansion policy {name!r}; expected one of {', '.join(PRESETS)}"
        ) from None


def policy_from_config(config: dict[str, Any], base: ExpansionPolicy = CHAT_POLICY) -> ExpansionPolicy:
    """Build a chat-style policy from the ``retrieval`` config section.

    Keys missing from the config keep *base*'s values.

    Args:
        config: Resolved configuration from :func:`load_config`.
        base: Policy whose values fill in anything the config omits.

    Returns:
        The configured policy.
    """
    section = config.get("retrieval") or {}
    update: dict[str, Any] = {}

    if "core_probes" in section:
        update["core_probes"] = tuple(str(p) for p in section["core_probes"] or ())
    if "expansion_rules" in section:
        update["rules"] = tuple(
            ExpansionRule(
                name=str(rule.get("name", f"rule_{i}")),
                keywords=tuple(rule.get("keywords") or ()),
                probes=tuple(rule.get("probes") or ()),
            )
            for i, rule in enumerate(section["expansion_rules"] or ())
        )
    if "include_key_terms" in section:
        update["include_key_terms"] = bool(section["include_key_terms"])

    return base.model_copy(update=update) if update else base
