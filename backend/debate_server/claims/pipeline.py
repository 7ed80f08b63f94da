from __future__ import annotations

from dataclasses import dataclass

from debate_server.ai.llm import TextGenerator, build_text_generator
from debate_server.claims.analyzer import ClaimAnalyzer
from debate_server.claims.extractor import ClaimExtractor
from debate_server.claims.models import ClaimVerdict


@dataclass
class AnalysisPipeline:
    extractor: ClaimExtractor
    analyzer: ClaimAnalyzer

    @classmethod
    def from_generator(cls, generator: TextGenerator) -> "AnalysisPipeline":
        return cls(extractor=ClaimExtractor(generator), analyzer=ClaimAnalyzer(generator))

    @classmethod
    def from_config(cls) -> "AnalysisPipeline":
        # Raises ConfigurationError when the credential is missing
        return cls.from_generator(build_text_generator())

    async def run(self, transcript: str, topic: str) -> list[ClaimVerdict]:
        claims = await self.extractor.extract(transcript)
        if not claims:
            return []
        return await self.analyzer.analyze(claims, topic)
