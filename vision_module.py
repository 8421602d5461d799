"""Vision module (plant image diagnosis).

Sends the image to a vision-capable OpenAI model and normalizes whatever comes
back into an ``AnalysisResult``. The model is asked for JSON; when it answers
with something else the text is split into lines and recovered on a best-effort
basis (see ``fallback_analysis``). That recovery is approximate and only
assumes the answer lists the primary language first.
"""
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from openai import OpenAI, OpenAIError

import config
from errors import UpstreamCredentialError, UpstreamGeneric, classify_upstream_error
from schemas import AnalysisResult, LocalizedDiagnosis

logger = logging.getLogger(__name__)


GUIDING_QUESTIONS: Dict[str, List[str]] = {
    "Hausa": [
        "Menene matsalar da kake gani a wannan shuka?",
        "Yaya kake tabbatar da wannan matsalar (confidence 0-100)?",
        "Menene shawarar da zaka bawa manomi don magance wannan matsala?",
        "Ta yaya za'a kare wannan matsala daga sake faruwa?",
    ],
    "English": [
        "What plant disease or issue do you identify in this image?",
        "How confident are you in this diagnosis (0-100)?",
        "What recommendations would you give to address this issue?",
        "How can this issue be prevented in the future?",
    ],
}


def _questions_for(language: str) -> List[str]:
    if language in GUIDING_QUESTIONS:
        return GUIDING_QUESTIONS[language]
    return [f"{q} (answer in {language})" for q in GUIDING_QUESTIONS["English"]]


def build_analysis_prompt() -> str:
    primary, secondary = config.PRIMARY_LANGUAGE, config.SECONDARY_LANGUAGE
    schema = (
        "{\n"
        '  "primaryLanguage": {\n'
        f'    "diagnosis": "Description of the identified issue, in {primary}",\n'
        '    "confidence": number (0-100),\n'
        f'    "recommendations": ["Steps to address the issue, in {primary}"]\n'
        "  },\n"
        '  "secondaryLanguage": {\n'
        f'    "diagnosis": "Description of the identified issue, in {secondary}",\n'
        '    "confidence": number (0-100),\n'
        f'    "recommendations": ["Steps to address the issue, in {secondary}"]\n'
        "  }\n"
        "}"
    )
    sections = []
    for language in (primary, secondary):
        lines = [f"For {language}:"]
        lines += [f"{i}. {q}" for i, q in enumerate(_questions_for(language), 1)]
        sections.append("\n".join(lines))

    return (
        f"Analyze this plant image and provide diagnosis in both {primary} and {secondary}.\n\n"
        "Please format your response as a JSON object with the following structure:\n"
        f"{schema}\n\n" + "\n\n".join(sections)
    )


@dataclass(frozen=True)
class Parsed:
    data: Dict[str, Any]


@dataclass(frozen=True)
class Unparseable:
    raw_text: str


def parse_analysis(text: str) -> Union[Parsed, Unparseable]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return Unparseable(text)
    if not isinstance(data, dict):
        return Unparseable(text)
    return Parsed(data)


def _coerce_confidence(value: Any) -> Union[int, float]:
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return 0
    if not isinstance(value, (int, float)) or math.isnan(value):
        return 0
    return min(max(value, 0), 100)


def _coerce_recommendations(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def _localized(section: Any, no_description: str) -> LocalizedDiagnosis:
    if not isinstance(section, dict):
        section = {}
    diagnosis = section.get("diagnosis")
    if not isinstance(diagnosis, str) or not diagnosis.strip():
        diagnosis = no_description
    return LocalizedDiagnosis(
        diagnosis=diagnosis,
        confidence=_coerce_confidence(section.get("confidence")),
        recommendations=_coerce_recommendations(section.get("recommendations")),
    )


def normalize_analysis(data: Dict[str, Any]) -> AnalysisResult:
    """Fill any missing or malformed field with its documented default."""
    return AnalysisResult(
        primary_language=_localized(data.get("primaryLanguage"), config.PRIMARY_NO_DESCRIPTION),
        secondary_language=_localized(data.get("secondaryLanguage"), config.SECONDARY_NO_DESCRIPTION),
    )


def fallback_analysis(text: str) -> AnalysisResult:
    """Recover a result from free text: first half of the lines is the primary
    language (diagnosis line, then recommendations), second half the secondary.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    half = math.ceil(len(lines) / 2)

    return AnalysisResult(
        primary_language=LocalizedDiagnosis(
            diagnosis=lines[0] if lines else config.PRIMARY_NO_DESCRIPTION,
            confidence=config.FALLBACK_CONFIDENCE,
            recommendations=lines[1:half],
        ),
        secondary_language=LocalizedDiagnosis(
            diagnosis=lines[half] if half < len(lines) else config.SECONDARY_NO_DESCRIPTION,
            confidence=config.FALLBACK_CONFIDENCE,
            recommendations=lines[half + 1:],
        ),
    )


def to_analysis_result(text: str) -> AnalysisResult:
    outcome = parse_analysis(text)
    if isinstance(outcome, Parsed):
        return normalize_analysis(outcome.data)
    logger.warning("Model response is not a JSON object; using line-based recovery")
    return fallback_analysis(outcome.raw_text)


def analyze_image(image_b64: str, mime_type: str = "image/jpeg", client: Optional[OpenAI] = None) -> AnalysisResult:
    if client is None:
        raise UpstreamCredentialError(details="OpenAI API key not configured")

    logger.info("Starting image analysis with %s", config.OPENAI_MODEL_VISION)
    try:
        response = client.chat.completions.create(
            model=config.OPENAI_MODEL_VISION,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_analysis_prompt()},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{image_b64}"},
                        },
                    ],
                }
            ],
            max_tokens=config.ANALYSIS_MAX_TOKENS,
            temperature=config.ANALYSIS_TEMPERATURE,
        )
    except OpenAIError as e:
        logger.error("OpenAI API error during analysis: %s", e)
        raise classify_upstream_error(e) from e

    content = response.choices[0].message.content if response.choices else None
    if not content or not content.strip():
        raise UpstreamGeneric(details="No analysis received from OpenAI")

    logger.debug("OpenAI response: %s", content)
    return to_analysis_result(content)
