"""Contextual prompt assembly.

Renders a bounded instruction string from a MemoryContext for the downstream
language-model call. Only the last few turns and a handful of learned
behaviors are included, so the prompt size does not grow with history.
"""

from __future__ import annotations

from .config import PromptConfig
from .core.models import CommunicationStyle, MemoryContext

_FORMALITY_DIRECTIVES = {
    "formal": "Maintain a professional and formal tone.",
    "casual": "Use a friendly and casual tone.",
}

_VERBOSITY_DIRECTIVES = {
    "concise": "Keep responses brief and to the point.",
    "detailed": "Provide comprehensive and detailed explanations.",
}


class PromptBuilder:
    """Builds the deterministic contextual prompt.

    Sections, in order: framing, user name, style directives, current
    topic, recent turns, interests, effective behaviors, the new message.
    Empty sections are skipped.
    """

    def __init__(self, config: PromptConfig | None = None):
        self.config = config or PromptConfig()

    def build(self, context: MemoryContext, user_message: str) -> str:
        parts = [self.config.system_framing + " "]

        name = context.user_profile.name
        if name:
            parts.append(f"You are talking to {name}. ")

        parts.extend(self._style_directives(context.user_profile.communication_style))

        topic = context.contextual_memory.current_topic
        if topic:
            parts.append(f"Current topic: {topic}. ")

        recent = self._recent_turns(context)
        if recent:
            parts.append("Recent conversation:\n")
            parts.extend(f"{role}: {content}\n" for role, content in recent)

        interests = context.user_profile.interests
        if interests:
            parts.append(f"User interests: {', '.join(interests)}. ")

        behaviors = self._effective_behaviors(context)
        if behaviors:
            parts.append(f"Effective approaches: {', '.join(behaviors)}. ")

        parts.append(f"\nUser message: {user_message}")
        return "".join(parts)

    @staticmethod
    def _style_directives(style: CommunicationStyle) -> list[str]:
        directives = []
        if style.formality in _FORMALITY_DIRECTIVES:
            directives.append(_FORMALITY_DIRECTIVES[style.formality] + " ")
        if style.verbosity in _VERBOSITY_DIRECTIVES:
            directives.append(_VERBOSITY_DIRECTIVES[style.verbosity] + " ")
        return directives

    def _recent_turns(self, context: MemoryContext) -> list[tuple[str, str]]:
        count = self.config.recent_turns
        if count <= 0:
            return []
        return [
            (message.role.value, message.content)
            for message in context.conversation_history[-count:]
        ]

    def _effective_behaviors(self, context: MemoryContext) -> list[str]:
        effective = [
            behavior.description
            for behavior in context.learned_behaviors
            if behavior.effectiveness > self.config.behavior_threshold
        ]
        return effective[: self.config.max_behaviors]
