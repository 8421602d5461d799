from typing import Any, Dict, List, Optional
from dataclasses import dataclass
import logging

from openai import OpenAI

import config
from errors import ChatFailure
from schemas import AnalysisResult, ConversationTurn

logger = logging.getLogger(__name__)


def build_system_prompt() -> str:
    primary, secondary = config.PRIMARY_LANGUAGE, config.SECONDARY_LANGUAGE
    return (
        f"You are a bilingual ({primary} and {secondary}) plant disease expert. "
        "You have analyzed a plant image and provided initial diagnosis and recommendations. "
        f"Always provide responses in both {primary} and {secondary}, clearly separated. "
        "Format your responses as:\n\n"
        f"{primary.upper()}:\n[Your {primary} response here]\n\n"
        f"{secondary.upper()}:\n[Your {secondary} response here]\n\n"
        "Use the initial analysis as context for answering follow-up questions."
    )


def render_grounding(analysis: AnalysisResult) -> str:
    primary, secondary = analysis.primary_language, analysis.secondary_language
    return (
        "Initial plant analysis:\n"
        f"{config.PRIMARY_LANGUAGE}: {primary.diagnosis}\n"
        f"{config.SECONDARY_LANGUAGE}: {secondary.diagnosis}\n\n"
        "Recommendations:\n"
        f"{config.PRIMARY_LANGUAGE}: {', '.join(primary.recommendations)}\n"
        f"{config.SECONDARY_LANGUAGE}: {', '.join(secondary.recommendations)}"
    )


def build_chat_messages(
    turns: List[ConversationTurn], analysis: Optional[AnalysisResult] = None
) -> List[Dict[str, Any]]:
    """Full message list for one stateless call: system prompt, then history.

    Turns carrying an analysis are replaced by its text rendering. If no turn
    carries one, the request-level analysis is injected as the first turn.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": build_system_prompt()}]

    grounded = any(turn.analysis is not None for turn in turns)
    if not grounded and analysis is not None:
        messages.append({"role": "assistant", "content": render_grounding(analysis)})

    for turn in turns:
        content = render_grounding(turn.analysis) if turn.analysis is not None else turn.content
        messages.append({"role": turn.role, "content": content})
    return messages


@dataclass
class PlantDoctorAgent:
    """Answers follow-up questions about a diagnosis.

    Holds no conversation memory: the caller resends the whole history.
    """
    client: Optional[OpenAI]

    def ask(self, turns: List[ConversationTurn], analysis: Optional[AnalysisResult] = None) -> str:
        if self.client is None:
            raise ChatFailure(details="OpenAI API key not configured")

        messages = build_chat_messages(turns, analysis)
        try:
            response = self.client.chat.completions.create(
                model=config.OPENAI_MODEL_CHAT,
                messages=messages,
                temperature=config.CHAT_TEMPERATURE,
                max_tokens=config.CHAT_MAX_TOKENS,
            )
            answer = response.choices[0].message.content
        except Exception as e:
            logger.error("Chat API error: %s", e)
            raise ChatFailure(details=str(e)) from e

        if not answer:
            raise ChatFailure(details="No response received from OpenAI")
        return answer
