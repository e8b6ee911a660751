"""
Discrepancy analyzer: asks a local LLM (Ollama) to compare a stored record with fetched text.

The model's output is evidence, not ground truth. The same inputs can give
different suggestions on repeated calls.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import ollama

from ..core.config import (
    ANALYZER_MAX_CONTEXT_CHARS,
    LLM_MAX_TOKENS,
    LLM_TIMEOUT_SEC,
    OLLAMA_HOST,
    OLLAMA_MODEL,
)
from ..core.schema import FOUNDRY_FIELDS, FoundryRecord, Suggestion
from util.logging import logger

ANALYSIS_PARSE_FAILURE = "analysis_parse_failure"
GENERATION_FAILED = "generation_failed"

# Record fields shown to the model, in prompt order
PROMPT_FIELDS = [
    ("Name", "name"),
    ("Website", "url"),
    ("Location City", "location_city"),
    ("Location Country", "location_country"),
    ("Founder", "founder"),
    ("Founded", "founded"),
    ("Notable Typefaces (array)", "notable_typefaces"),
    ("Style Tags (array)", "style"),
    ("Notes", "notes"),
]

SYSTEM_PROMPT = "You are a careful data validation assistant. You respond with JSON only."

PROMPT_TEMPLATE = """You are a data validation assistant for a type foundry directory. I'll provide you with:
1. The current database record for a foundry
2. Content gathered from the foundry's website and other sources

Cross-reference the sources with our record and identify discrepancies or errors.

## Current Database Record:
{record}

## Source Data:
{context}

## Instructions:
1. ISSUES: clear factual errors where the sources contradict our record.
2. SUGGESTIONS: field corrections with a confidence level.
   - HIGH: confirmed by 2+ sources, or stated explicitly on the foundry's own website
   - MEDIUM: mentioned in one source with supporting context
   - LOW: inferred or uncertain
   Use record field names (e.g. founder, founded, location_city, notable_typefaces).
   For notable_typefaces, only remove a typeface if there is evidence it belongs to a different foundry.
3. VERIFIED: fields confirmed by the sources.

Array fields (notable_typefaces, style) MUST be JSON arrays. Numbers (founded) MUST be integers.

Respond in this exact JSON format:
{{
  "issues": ["list of clear errors that need fixing"],
  "suggestions": {{
    "field_name": {{
      "current": <current value>,
      "suggested": <suggested value>,
      "confidence": "high|medium|low",
      "reasoning": "which sources support this change"
    }}
  }},
  "verified": ["list of fields confirmed by sources"]
}}"""


@dataclass
class AnalysisResult:
    issues: List[str] = field(default_factory=list)
    suggestions: Dict[str, Suggestion] = field(default_factory=dict)
    verified: List[str] = field(default_factory=list)
    unrecognized_fields: List[str] = field(default_factory=list)
    success: bool = True


@dataclass
class AnalysisFailure:
    kind: str
    error: str
    raw_response: Optional[str] = None
    success: bool = False


AnalysisOutcome = Union[AnalysisResult, AnalysisFailure]


def _render_value(value: Any) -> str:
    if isinstance(value, list):
        return json.dumps(value)
    if value is None or value == "":
        return "None"
    return str(value)


def build_prompt(record: FoundryRecord, fetched_text: str, max_chars: int = ANALYZER_MAX_CONTEXT_CHARS) -> str:
    """Deterministic prompt for one record. Same inputs give the same string."""
    lines = [f"- {label}: {_render_value(record.get(key))}" for label, key in PROMPT_FIELDS]
    return PROMPT_TEMPLATE.format(record="\n".join(lines), context=(fetched_text or "")[:max_chars])


def extract_json_object(text: str) -> Optional[str]:
    """First balanced {...} object in free text. Braces inside JSON strings are ignored."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from here; try the next opening brace
        start = text.find("{", start + 1)
    return None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def parse_analysis_response(raw: str) -> AnalysisOutcome:
    """Strict JSON first, then the first balanced object. Never an empty success."""
    raw = raw or ""
    try:
        data = json.loads(raw)
    except ValueError:
        candidate = extract_json_object(raw)
        if candidate is None:
            return AnalysisFailure(kind=ANALYSIS_PARSE_FAILURE, error="No JSON object in response", raw_response=raw)
        try:
            data = json.loads(candidate)
        except ValueError as e:
            return AnalysisFailure(kind=ANALYSIS_PARSE_FAILURE, error=f"Invalid JSON: {e}", raw_response=raw)

    if not isinstance(data, dict):
        return AnalysisFailure(kind=ANALYSIS_PARSE_FAILURE, error="Response JSON is not an object", raw_response=raw)

    suggestions = {}
    raw_suggestions = data.get("suggestions") or {}
    if isinstance(raw_suggestions, dict):
        for name, body in raw_suggestions.items():
            if isinstance(body, dict):
                suggestions[name] = Suggestion.from_dict(body)

    return AnalysisResult(
        issues=_string_list(data.get("issues")),
        suggestions=suggestions,
        verified=_string_list(data.get("verified")),
        unrecognized_fields=[name for name in suggestions if name not in FOUNDRY_FIELDS],
    )


class DiscrepancyAnalyzer:
    """One text-generation call per record, parsed into a tagged result."""

    def __init__(self, model: str = OLLAMA_MODEL, host: Optional[str] = OLLAMA_HOST,
                 timeout: float = LLM_TIMEOUT_SEC, client: Optional[ollama.Client] = None):
        self.model = model
        self.client = client or ollama.Client(host=host, timeout=timeout)

    def analyze(self, record: FoundryRecord, fetched_text: str) -> AnalysisOutcome:
        prompt = build_prompt(record, fetched_text)

        try:
            response = self.client.chat(
                model=self.model,
                messages=[
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user', 'content': prompt},
                ],
                options={
                    'temperature': 0.1,
                    'num_predict': LLM_MAX_TOKENS,
                }
            )
            content = response['message']['content']
        except ollama.ResponseError as e:
            logger.log_analysis(record.slug, "failed", {"error": str(e)[:200]})
            return AnalysisFailure(kind=GENERATION_FAILED, error=f"Ollama model error: {e}")
        except Exception as e:  # connection errors and timeouts from the HTTP layer
            logger.log_analysis(record.slug, "failed", {"error": str(e)[:200]})
            return AnalysisFailure(kind=GENERATION_FAILED, error=f"Text generation failed: {e}")

        outcome = parse_analysis_response(content)
        if isinstance(outcome, AnalysisFailure):
            logger.log_analysis(record.slug, "parse_failed", {"error": outcome.error})
        else:
            details = {"issues": len(outcome.issues), "suggestions": len(outcome.suggestions)}
            if outcome.unrecognized_fields:
                details["unrecognized_fields"] = outcome.unrecognized_fields
            logger.log_analysis(record.slug, "success", details)
        return outcome
