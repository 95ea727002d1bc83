"""Context assembly: turns recent pain observations into a system instruction.

The instruction is built from a ``ContextTemplate``. Persona, safety and
formatting directives are separate fields so each can be swapped without
touching ``ContextAssembler.build``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timezone
from typing import Optional, Sequence

from physiofit.protocols import Observation

DEFAULT_PERSONA = (
    'You are an empathetic, professional AI physiotherapy coach in the project "Physio-Fit-AI".\n'
    "Your job is to help the user make sense of their physical complaints and to give "
    "gentle, general advice."
)

DEFAULT_SAFETY_DIRECTIVE = (
    "Never make a medical diagnosis. For acute pain, always advise the user to see a "
    "doctor in person."
)

DEFAULT_FORMATTING_DIRECTIVE = (
    "Always answer in English, be encouraging, and write in short, readable paragraphs. "
    "Avoid Markdown special characters where possible."
)

DEFAULT_REFERENCE_DIRECTIVE = (
    "Refer to this diary data naturally and proactively in your answers "
    '(e.g. "I can see your back was at level 7 yesterday...").'
)

NO_OBSERVATIONS_TEXT = "The user has no observations recorded yet."

OBSERVATION_LINE = "On {date}: pain level {level}/10 at '{location}'."

INSTRUCTION_LAYOUT = """{persona}

HERE IS THE USER'S CURRENT PAIN DATA (from their tracking diary):
{observations}

IMPORTANT RULES:
1. {reference}
2. {safety}
3. {formatting}"""


@dataclass(frozen=True)
class ContextTemplate:
    """Configurable pieces of the coach's system instruction."""

    persona: str = DEFAULT_PERSONA
    safety_directive: str = DEFAULT_SAFETY_DIRECTIVE
    formatting_directive: str = DEFAULT_FORMATTING_DIRECTIVE
    reference_directive: str = DEFAULT_REFERENCE_DIRECTIVE
    empty_text: str = NO_OBSERVATIONS_TEXT
    line_format: str = OBSERVATION_LINE
    date_format: str = "%Y-%m-%d"

    def with_overrides(
        self,
        *,
        persona: Optional[str] = None,
        safety_directive: Optional[str] = None,
        formatting_directive: Optional[str] = None,
    ) -> "ContextTemplate":
        """Return a copy with any non-empty override applied."""
        changes = {
            name: value
            for name, value in (
                ("persona", persona),
                ("safety_directive", safety_directive),
                ("formatting_directive", formatting_directive),
            )
            if value
        }
        return replace(self, **changes) if changes else self


class ContextAssembler:
    """Builds the system instruction for one chat turn.

    ``build`` is pure: the same ordered observations always produce the
    same text. Observations are rendered in the order given.
    """

    def __init__(self, template: Optional[ContextTemplate] = None) -> None:
        self.template = template or ContextTemplate()

    def build(self, observations: Sequence[Observation]) -> str:
        t = self.template
        if observations:
            body = "\n".join(self.render_line(obs) for obs in observations)
        else:
            body = t.empty_text
        return INSTRUCTION_LAYOUT.format(
            persona=t.persona,
            observations=body,
            reference=t.reference_directive,
            safety=t.safety_directive,
            formatting=t.formatting_directive,
        )

    def render_line(self, observation: Observation) -> str:
        created = observation.created_at
        if created.tzinfo is not None:
            created = created.astimezone(timezone.utc)
        return self.template.line_format.format(
            date=created.strftime(self.template.date_format),
            level=observation.level,
            location=observation.location,
        )
