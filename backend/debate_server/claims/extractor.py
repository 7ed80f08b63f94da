from __future__ import annotations

import logging

from debate_server.ai.llm import TextGenerator
from debate_server.ai.prompts import build_extraction_prompt
from debate_server.claims.models import ClaimCandidate
from debate_server.claims.parsing import parse_claim_candidates
from debate_server.core import config

logger = logging.getLogger("debate_server.claims.extractor")


class ClaimExtractor:
    def __init__(self, generator: TextGenerator, model: str | None = None):
        self.generator = generator
        self.model = model or config.EXTRACT_MODEL

    async def extract(self, transcript: str) -> list[ClaimCandidate]:
        if not str(transcript or "").strip():
            return []

        raw_text = await self.generator.generate(build_extraction_prompt(transcript), self.model)

        try:
            claims = parse_claim_candidates(raw_text)
        except (ValueError, RecursionError) as exc:
            # Unparsable extraction output counts as "no claims"
            logger.warning("Claim extraction returned non-JSON output | err=%s", exc)
            return []

        logger.info("Claims extracted | count=%s", len(claims))
        return claims
