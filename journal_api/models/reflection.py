# reflection models - the structured output the llm produces for an entry
# plus the interactive (user-editable) shape stored after the first edit
#
# Reflection            = raw model output, steps are plain strings
# InteractiveReflection = steps carry completed/notes, prompts carry responses
#
# stored outputs carry format_version (1 = plain, 2 = interactive).
# documents written before the tag existed are told apart by shape.

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from journal_api.config import settings
from journal_api.errors import SchemaViolation

FORMAT_PLAIN = 1
FORMAT_INTERACTIVE = 2


class MicroAction(BaseModel):
    title: str
    duration_minutes: int = Field(..., ge=1, le=60)
    steps: list[str] = Field(..., min_length=1, max_length=5)


class Reflection(BaseModel):
    """structured reflection generated for one journal entry"""
    mood_tags: list[str] = Field(..., max_length=5)
    key_themes: list[str] = Field(..., max_length=5)
    reflection_prompts: list[str] = Field(..., min_length=2, max_length=5)
    micro_action: MicroAction
    reframe: str = Field(..., max_length=200)
    mantra: Optional[str] = Field(None, max_length=100)
    safety_note: Optional[str] = None


class InteractiveStep(BaseModel):
    text: str
    completed: bool = False
    notes: str = ""


class InteractiveMicroAction(BaseModel):
    title: str
    duration_minutes: int = Field(..., ge=1, le=60)
    steps: list[InteractiveStep] = Field(..., min_length=1, max_length=5)


class InteractiveReflection(Reflection):
    """reflection with per-step progress and free-text answers to the prompts"""
    micro_action: InteractiveMicroAction
    prompt_responses: dict[int, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_prompt_responses(self):
        prompt_count = len(self.reflection_prompts)
        for position, response in self.prompt_responses.items():
            if position < 0 or position >= prompt_count:
                raise ValueError(
                    f"prompt_responses has a response for prompt {position}, "
                    f"but there are only {prompt_count} prompts"
                )
            if len(response) > settings.PROMPT_RESPONSE_MAX_LENGTH:
                raise ValueError(
                    f"prompt_responses.{position} is longer than "
                    f"{settings.PROMPT_RESPONSE_MAX_LENGTH} characters"
                )
        return self


# validation

def _plural(count: Any, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _describe_error(error: dict) -> str:
    """turn one pydantic error into 'field + violated constraint'"""
    field = ".".join(str(part) for part in error.get("loc", ())) or "reflection"
    ctx = error.get("ctx") or {}
    kind = error.get("type", "")

    if kind == "missing":
        return f"{field} is required"
    if kind == "too_short":
        return f"{field} has {_plural(ctx.get('actual_length'), 'element')}, minimum is {ctx.get('min_length')}"
    if kind == "too_long":
        return f"{field} has {_plural(ctx.get('actual_length'), 'element')}, maximum is {ctx.get('max_length')}"
    if kind == "string_too_long":
        return f"{field} is longer than {ctx.get('max_length')} characters"
    if kind == "greater_than_equal":
        return f"{field} must be at least {ctx.get('ge')}"
    if kind == "less_than_equal":
        return f"{field} must be at most {ctx.get('le')}"
    if kind == "value_error" and "error" in ctx:
        return str(ctx["error"])
    return f"{field}: {error.get('msg', 'invalid value')}"


def _as_data(candidate: Any) -> Any:
    if isinstance(candidate, BaseModel):
        return candidate.model_dump()
    return candidate


def _validate(model: type[BaseModel], candidate: Any):
    try:
        return model.model_validate(_as_data(candidate))
    except PydanticValidationError as e:
        errors = e.errors(include_url=False)
        violation = SchemaViolation("; ".join(_describe_error(err) for err in errors))
        violation.errors = errors
        raise violation from e


def validate_reflection(candidate: Any) -> Reflection:
    """check a candidate (model output or dict) against the reflection bounds"""
    return _validate(Reflection, candidate)


def validate_interactive_reflection(candidate: Any) -> InteractiveReflection:
    """check a client-submitted edit against the interactive reflection bounds"""
    return _validate(InteractiveReflection, candidate)


# interactive upgrade

def is_interactive_reflection(candidate: Any) -> bool:
    """structural check: prompt_responses present and steps are {text, ...} objects"""
    if isinstance(candidate, InteractiveReflection):
        return True
    candidate = _as_data(candidate)
    if not isinstance(candidate, dict) or "prompt_responses" not in candidate:
        return False
    micro_action = candidate.get("micro_action")
    if not isinstance(micro_action, dict):
        return False
    steps = micro_action.get("steps")
    # no first step to inspect, so the shape reads as plain and fails validation there
    if not isinstance(steps, list) or not steps:
        return False
    return isinstance(steps[0], dict) and "text" in steps[0]


def upgrade_to_interactive(reflection: Any) -> InteractiveReflection:
    """convert a plain reflection into the interactive shape.
    already-interactive input comes back with the same content."""
    if is_interactive_reflection(reflection):
        return validate_interactive_reflection(reflection)

    data = validate_reflection(reflection).model_dump()
    data["micro_action"]["steps"] = [
        {"text": step, "completed": False, "notes": ""}
        for step in data["micro_action"]["steps"]
    ]
    data["prompt_responses"] = {i: "" for i in range(len(data["reflection_prompts"]))}
    return InteractiveReflection.model_validate(data)


def load_stored_output(payload: Any, format_version: Optional[int] = None) -> InteractiveReflection:
    """read a stored output payload into the interactive shape.
    untagged documents fall back to the structural check."""
    if format_version == FORMAT_INTERACTIVE:
        return validate_interactive_reflection(payload)
    if format_version == FORMAT_PLAIN:
        return upgrade_to_interactive(validate_reflection(payload))
    return upgrade_to_interactive(payload)


def reflection_to_document(reflection: Reflection) -> dict:
    """serialize for mongodb (string keys, unset optionals dropped)"""
    return reflection.model_dump(mode="json", exclude_none=True)
