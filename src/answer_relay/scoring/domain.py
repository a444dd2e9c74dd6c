"""Lexical domain-relevance heuristic.

Queries are tokenized, stop-words and tokens of two characters or fewer are
dropped, and the surviving tokens are compared with a curated vocabulary:

- `keyword_fraction`: share of tokens that are in-domain keywords.
- `other_domain_score`: summed weights of out-of-domain indicators, capped at 1.
- `relevance = keyword_fraction * (1 - other_domain_score)`.

Matching uses a light suffix stemmer applied to both sides, so "symptoms"
matches "symptom" and "therapies" matches "therapy".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_TOKEN_PATTERN = re.compile(r"[a-z0-9']+")

STOP_WORDS = frozenset(
    """
    a about above after again against all also am an and any are aren't as at be
    because been before being below between both but by can can't cannot could
    did do does doing don't down during each few for from further get gets had has
    have having he her here hers herself him himself his how i if in into is isn't
    it it's its itself just let's like me more most much must my myself no nor not
    now of off on once only or other ought our ours ourselves out over own same
    she should so some such than that that's the their theirs them themselves then
    there there's these they this those through to too under until up very was we
    were what what's when where which while who whom why will with would you your
    yours yourself yourselves
    """.split()
)


def stem(token: str) -> str:
    if len(token) > 4 and token.endswith("ies"):
        return token[:-3] + "y"
    if len(token) > 4 and token.endswith("s") and not token.endswith(("ss", "us", "is")):
        return token[:-1]
    return token


def tokenize(text: str) -> list[str]:
    """Lowercase content tokens with stop-words and short tokens removed."""
    return [
        stem(token)
        for token in _TOKEN_PATTERN.findall(text.lower())
        if len(token) > 2 and token not in STOP_WORDS
    ]


@dataclass(slots=True, frozen=True)
class DomainVocabulary:
    """Curated keyword sets for one supported subject domain."""

    keywords: frozenset[str]
    topical: frozenset[str]
    other_domain_weights: dict[str, float] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        keywords: str,
        topical: str,
        other_domain_weights: dict[str, float],
    ) -> "DomainVocabulary":
        topical_terms = frozenset(stem(word) for word in topical.split())
        return cls(
            keywords=frozenset(stem(word) for word in keywords.split()) | topical_terms,
            topical=topical_terms,
            other_domain_weights={stem(word): weight for word, weight in other_domain_weights.items()},
        )


@dataclass(slots=True, frozen=True)
class DomainRelevance:
    keyword_fraction: float
    other_domain_score: float

    @property
    def relevance(self) -> float:
        return self.keyword_fraction * (1.0 - self.other_domain_score)


HEALTH_VOCABULARY = DomainVocabulary.build(
    keywords="""
    health healthy medical medicine medication doctor physician nurse hospital clinic
    patient disease illness condition disorder syndrome infection virus bacteria
    vaccine vaccination diagnosis prescription drug dose blood heart lung liver
    kidney brain skin bone muscle cancer tumor diabetes insulin asthma allergy
    pregnancy pregnant birth baby child pediatric elderly aging nutrition diet
    vitamin exercise weight obesity sleep insomnia mental psychological psychology
    psychiatrist therapist counseling anxiety depression stress trauma addiction
    alcohol smoking opioid suicide wellbeing wellness emotional behavior legal law
    lawyer attorney rights custody divorce guardianship disability benefit benefits
    medicaid medicare insurance welfare social caregiver caregiving housing
    homeless assistance eligibility veteran veterans abuse neglect consent privacy
    hipaa care surgery emergency injury wound fracture concussion dementia
    alzheimer stroke arthritis hypertension cholesterol covid flu cold fever cough
    headache migraine dental teeth eye vision hearing
    """,
    topical="""
    symptom sign pain ache fatigue nausea vomiting dizziness rash swelling
    bleeding itching numbness thirst fever cough headache treatment treat therapy
    cure remedy medication surgery dose dosage side effect risk cause causes
    prevention prevent diagnosis test screening chronic acute infection
    diabetes asthma cancer depression anxiety hypertension dementia arthritis
    migraine insomnia allergy pregnancy stroke obesity addiction
    """,
    other_domain_weights={
        "stock": 0.6,
        "stocks": 0.6,
        "invest": 0.5,
        "investment": 0.5,
        "investing": 0.5,
        "crypto": 0.6,
        "bitcoin": 0.6,
        "trading": 0.5,
        "portfolio": 0.4,
        "dividend": 0.5,
        "market": 0.3,
        "buy": 0.3,
        "sell": 0.3,
        "price": 0.3,
        "mortgage": 0.3,
        "recipe": 0.4,
        "cooking": 0.4,
        "football": 0.5,
        "soccer": 0.5,
        "basketball": 0.5,
        "movie": 0.4,
        "music": 0.3,
        "game": 0.3,
        "weather": 0.4,
        "travel": 0.3,
        "vacation": 0.3,
        "car": 0.3,
        "programming": 0.5,
        "python": 0.5,
        "javascript": 0.5,
        "software": 0.4,
        "computer": 0.3,
        "politics": 0.4,
        "election": 0.4,
    },
)

VOCABULARIES: dict[str, DomainVocabulary] = {"health": HEALTH_VOCABULARY}


def vocabulary_for(domain_tag: str) -> DomainVocabulary:
    return VOCABULARIES.get(domain_tag, HEALTH_VOCABULARY)


def domain_relevance(text: str, vocabulary: DomainVocabulary) -> DomainRelevance:
    tokens = tokenize(text)
    if not tokens:
        return DomainRelevance(keyword_fraction=0.0, other_domain_score=0.0)
    matched = sum(1 for token in tokens if token in vocabulary.keywords)
    other = sum(vocabulary.other_domain_weights.get(token, 0.0) for token in set(tokens))
    return DomainRelevance(
        keyword_fraction=matched / len(tokens),
        other_domain_score=min(1.0, other),
    )


def shared_topical_terms(query: str, candidate_text: str, vocabulary: DomainVocabulary) -> set[str]:
    query_topics = set(tokenize(query)) & vocabulary.topical
    if not query_topics:
        return set()
    return query_topics & set(tokenize(candidate_text))
