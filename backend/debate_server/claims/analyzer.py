from __future__ import annotations

import logging

from debate_server.ai.llm import TextGenerator
from debate_server.ai.prompts import build_analysis_prompt
from debate_server.claims.models import ClaimCandidate, ClaimVerdict
from debate_server.claims.parsing import parse_analysis_response
from debate_server.core import config

logger = logging.getLogger("debate_server.claims.analyzer")


class ClaimAnalyzer:
    def __init__(self, generator: TextGenerator, model: str | None = None):
        self.generator = generator
        self.model = model or config.ANALYZE_MODEL

    async def analyze(self, claims: list[ClaimCandidate], topic: str) -> list[ClaimVerdict]:
        if not claims:
            return []

        prompt = build_analysis_prompt([c.to_dict() for c in claims], topic)
        raw_text = await self.generator.generate(prompt, self.model)
        logger.debug("Analyzer raw response | %s", raw_text)

        return parse_analysis_response(raw_text, claims)
