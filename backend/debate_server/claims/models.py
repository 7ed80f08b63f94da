from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum


class Verdict(str, Enum):
    TRUE = "True"
    FALSE = "False"
    MISLEADING = "Misleading"
    UNCERTAIN = "Uncertain"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


class ClaimConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Verdicts the analyzer is allowed to produce; the rest are synthetic.
ANALYZED_VERDICTS = (Verdict.TRUE, Verdict.FALSE, Verdict.MISLEADING, Verdict.UNCERTAIN)

DEFAULT_DEVIATION_SCORE = 0.5
DEFAULT_SOURCE_CONFIDENCE = 0.0


@dataclass(frozen=True)
class ClaimCandidate:
    claim: str
    reason: str = ""
    confidence: str = ClaimConfidence.LOW.value

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ClaimVerdict:
    claim: str
    verdict: str
    topic_deviation_score: float
    topic_deviation_reasoning: str
    fact_deviation_score: float
    fact_deviation_reasoning: str
    fact: str
    source: str
    source_url: str | None
    source_confidence: float

    def to_payload(self) -> dict:
        return {
            "claim": self.claim,
            "verdict": self.verdict,
            "topicDeviationScore": self.topic_deviation_score,
            "topicDeviationReasoning": self.topic_deviation_reasoning,
            "factDeviationScore": self.fact_deviation_score,
            "factDeviationReasoning": self.fact_deviation_reasoning,
            "fact": self.fact,
            "source": self.source,
            "sourceUrl": self.source_url,
            "sourceConfidence": self.source_confidence,
        }


def synthetic_verdict(claim_text: str, verdict: Verdict, explanation: str) -> ClaimVerdict:
    """Verdict-shaped record for outcomes that never reached the analyzer."""
    return ClaimVerdict(
        claim=str(claim_text or ""),
        verdict=verdict.value,
        topic_deviation_score=DEFAULT_DEVIATION_SCORE,
        topic_deviation_reasoning=explanation,
        fact_deviation_score=DEFAULT_DEVIATION_SCORE,
        fact_deviation_reasoning=explanation,
        fact=explanation,
        source="N/A",
        source_url=None,
        source_confidence=DEFAULT_SOURCE_CONFIDENCE,
    )
