"""Prompt shaping for name generation.

``optimize_prompt`` is pure and deterministic: the same inputs always give the
same string, which keeps memoization keys stable.
"""

from enum import Enum
from typing import Any, Dict, Union


class GenerationMode(str, Enum):
    CREATIVE = "creative"
    PROFESSIONAL = "professional"
    BRANDABLE = "brandable"
    TECH_FOCUSED = "tech-focused"


SYSTEM_PROMPT = (
    "You are a naming expert. Reply with one business name per line as a numbered list, "
    "without explanations."
)

MODE_INSTRUCTIONS: Dict[str, str] = {
    GenerationMode.CREATIVE.value: "Focus on unique, creative, and memorable names.",
    GenerationMode.PROFESSIONAL.value: "Focus on professional, corporate, and trustworthy names.",
    GenerationMode.BRANDABLE.value: "Focus on brandable, catchy, and marketable names.",
    GenerationMode.TECH_FOCUSED.value: "Focus on technical, developer-friendly, and modern names.",
}

DEEP_THINKING_INSTRUCTION = (
    "Take your time to think deeply about each name. Consider multiple angles and ensure high quality."
)

MODEL_INSTRUCTIONS: Dict[str, str] = {
    "gpt-4": "Generate 10 unique business names.",
    "claude-3.5-sonnet": "Think step by step and generate 10 creative business names.",
    "gemini-1.5-pro": "Analyze the business concept and generate 10 innovative names.",
    "grok-beta": "Be creative and generate 10 cutting-edge business names.",
}

# Sampling defaults per mode; callers' parameters override these
MODE_PARAMETERS: Dict[str, Dict[str, Any]] = {
    GenerationMode.CREATIVE.value: {"temperature": 0.9, "max_tokens": 500},
    GenerationMode.PROFESSIONAL.value: {"temperature": 0.5, "max_tokens": 500},
    GenerationMode.BRANDABLE.value: {"temperature": 0.8, "max_tokens": 500},
    GenerationMode.TECH_FOCUSED.value: {"temperature": 0.6, "max_tokens": 500},
}

_DEFAULT_PARAMETERS: Dict[str, Any] = {"temperature": 0.7, "max_tokens": 500}


def _mode_value(mode: Union[GenerationMode, str, None]) -> str:
    if isinstance(mode, GenerationMode):
        return mode.value
    return mode or ""


def optimize_prompt(
    base_prompt: str,
    mode: Union[GenerationMode, str, None],
    deep_thinking: bool,
    model_id: str,
) -> str:
    """Append mode, deep-thinking and model-specific instructions to a prompt."""
    sections = [base_prompt]

    mode_instruction = MODE_INSTRUCTIONS.get(_mode_value(mode))
    if mode_instruction:
        sections.append(mode_instruction)

    if deep_thinking:
        sections.append(DEEP_THINKING_INSTRUCTION)

    model_instruction = MODEL_INSTRUCTIONS.get(model_id)
    if model_instruction:
        sections.append(model_instruction)

    return "\n\n".join(sections)


def mode_parameters(mode: Union[GenerationMode, str, None]) -> Dict[str, Any]:
    return dict(MODE_PARAMETERS.get(_mode_value(mode), _DEFAULT_PARAMETERS))
