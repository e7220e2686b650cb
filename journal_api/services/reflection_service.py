# reflection service - langchain + gemini reflection generation
# turns one journal entry into a schema-valid Reflection
#
# generation pipeline:
#   1. system instruction (schema contract + guidelines) + entry text as the only human turn
#   2. gemini call with json output at a fixed temperature
#   3. strip code fences, parse json, validate against the reflection schema
#   4. on the first failure only: one repair call carrying the invalid output and the error
#   5. a second failure raises GenerationFailure - there is no third attempt
#
# transport errors and timeouts are never retried, they surface as GenerationFailure
# with the original exception chained.

import asyncio
import json
import logging
from typing import Optional

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import StrOutputParser
from langchain_core.runnables import Runnable

from journal_api.config import settings
from journal_api.errors import GenerationFailure, SchemaViolation
from journal_api.models.reflection import Reflection, validate_reflection

logger = logging.getLogger(__name__)


def get_llm() -> ChatGoogleGenerativeAI:
    """create a gemini llm instance that answers in json"""
    return ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL,
        google_api_key=settings.GEMINI_API_KEY,
        temperature=settings.LLM_TEMPERATURE,
        max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
        response_mime_type="application/json",
        timeout=settings.LLM_TIMEOUT_SECONDS,
        # one attempt per call, the repair loop below is the only retry
        max_retries=1,
    )


# system instruction - schema contract and authoring guidelines

SYSTEM_PROMPT = """You are a compassionate journaling assistant that helps users reflect on their thoughts and emotions.

Your task is to analyze a journal entry and return a structured JSON reflection that follows this EXACT schema:

{{
  "mood_tags": ["string"],           // 0-5 short mood descriptors (e.g. "anxious", "hopeful", "frustrated")
  "key_themes": ["string"],          // 0-5 main themes or topics in the entry
  "reflection_prompts": ["string"],  // 2-5 thoughtful questions to help the user reflect deeper (at least 2)
  "micro_action": {{
    "title": "string",               // a short, actionable title
    "duration_minutes": 5,           // whole number of minutes, 1-60
    "steps": ["string"]              // 1-5 simple, concrete steps
  }},
  "reframe": "string",               // a compassionate reframing, max 200 characters
  "mantra": "string",                // optional short affirmation, max 100 characters
  "safety_note": "string"            // REQUIRED if the entry mentions self-harm, crisis, or severe distress
}}

GUIDELINES:
- Be empathetic and non-judgmental
- Reflection prompts should be open-ended and thought-provoking
- Micro-actions should be simple, specific, and achievable
- Reframes should validate feelings while offering perspective
- If the entry mentions self-harm, suicidal thoughts, or severe crisis, ALWAYS include a non-empty safety_note with crisis helpline information (for example: call or text 988 in the US, or contact local emergency services)

Return ONLY valid JSON, no other text."""

REPAIR_INSTRUCTION = """Your previous response did not match the required schema. Error: {error}

Please fix the JSON to match the exact schema provided. Ensure all required fields are present, have the correct types, and stay within the stated limits. Return ONLY the corrected JSON."""

REFLECTION_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", "{entry_text}"),
])

# repair turn reuses the first attempt's raw output, no extra model call to recover it
REPAIR_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", "{entry_text}"),
    ("ai", "{previous_output}"),
    ("human", REPAIR_INSTRUCTION),
])


def _strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_reflection(raw: Optional[str]) -> Reflection:
    """parse raw model text and validate it. parse errors count as schema violations."""
    text = _strip_code_fences(raw or "")
    if not text:
        raise SchemaViolation("model returned an empty response")
    try:
        candidate = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaViolation(
            f"response is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})"
        ) from e
    return validate_reflection(candidate)


class ReflectionGenerator:
    """prompt -> model -> validate, with a single repair retry"""

    def __init__(self, llm: Optional[Runnable] = None, timeout: Optional[float] = None):
        llm = llm if llm is not None else get_llm()
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self._chain = REFLECTION_PROMPT | llm | StrOutputParser()
        self._repair_chain = REPAIR_PROMPT | llm | StrOutputParser()

    async def generate(self, entry_text: str) -> Reflection:
        raw = await self._invoke(self._chain, {"entry_text": entry_text})
        try:
            return parse_reflection(raw)
        except SchemaViolation as first_error:
            logger.warning(f"Reflection attempt 1 failed validation, retrying with repair prompt: {first_error}")
            error = first_error

        repaired = await self._invoke(self._repair_chain, {
            "entry_text": entry_text,
            "previous_output": raw,
            "error": str(error),
        })
        try:
            reflection = parse_reflection(repaired)
        except SchemaViolation as e:
            logger.error(f"Failed to generate valid reflection after 2 attempts: {e}")
            raise GenerationFailure("Unable to generate a valid reflection. Please try again.") from e

        logger.info("Reflection validated successfully on retry")
        return reflection

    async def _invoke(self, chain: Runnable, inputs: dict) -> str:
        try:
            return await asyncio.wait_for(chain.ainvoke(inputs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Model call timed out after {self.timeout}s")
            raise GenerationFailure(f"Model call timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"Model call failed: {e}")
            raise GenerationFailure(f"Model call failed: {e}") from e


# singleton generator (gemini client is created once)
_generator: Optional[ReflectionGenerator] = None


def get_reflection_generator() -> ReflectionGenerator:
    """dependency injection for reflection generation"""
    global _generator
    if _generator is None:
        _generator = ReflectionGenerator()
    return _generator
