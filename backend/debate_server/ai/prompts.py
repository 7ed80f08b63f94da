import json


def build_extraction_prompt(transcript: str) -> str:
    return f"""
You are a fact-checking assistant.

Extract ONLY objectively fact-checkable claims.
Ignore opinions, comparisons, and subjective statements.

Transcript:
"{transcript}"

Return ONLY valid JSON:
[
  {{
    "claim": "exact claim text",
    "reason": "why this needs fact-checking",
    "confidence": "high|medium|low"
  }}
]
"""


def build_analysis_prompt(claims: list[dict], topic: str) -> str:
    return f"""
You are a real-time debate fact-checking and moderation assistant.

You will receive:
- The CURRENT DEBATE TOPIC
- A list of fact-checkable claims extracted from a debater's statement

Your tasks:
1. Evaluate the factual accuracy of each claim.
2. Measure how far each claim deviates from established facts.
3. Measure how far each claim deviates from the debate topic.
4. Provide reliable citations whenever possible.
5. Remain strictly neutral and evidence-based.

Scoring definitions:
- topicDeviationScore (0 to 1):
  0 = fully on-topic
  1 = completely off-topic

- factDeviationScore (0 to 1):
  0 = factually accurate
  1 = factually false
  Values between indicate misleading or partially incorrect claims.

CURRENT TOPIC:
"{topic or "No topic provided"}"

CLAIMS:
{json.dumps(claims, indent=2, ensure_ascii=False)}

Return ONLY valid JSON in this structure:
[
  {{
    "claim": "Exact claim text",
    "verdict": "True | False | Misleading | Uncertain",

    "topicDeviationScore": 0.0,
    "topicDeviationReasoning": "Short explanation",

    "factDeviationScore": 0.0,
    "factDeviationReasoning": "Short explanation",

    "fact": "Correct factual information",
    "source": "Source name (e.g. WHO, World Bank)",
    "sourceUrl": "https://...",
    "sourceConfidence": 0.95
  }}
]
"""
