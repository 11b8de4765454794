"""Instruction template wrapping user prompts for the image editor model.

Every generation edits the same base character.  The user only describes the
situation; this module turns that description into an instruction that keeps
the character recognisable (the purple hat must survive every edit) while
leaving pose, clothing and surroundings free to change.

Template Structure::

    [Fixed: editor role + hat preservation rule]

    Instructions:
    1-4. [Fixed: what may and may not change]
    5.   Place the character in the new situation described: <prompt>
    6.   [Fixed: hat visibility rule]

    Situation to create: <prompt>

The user text is embedded verbatim twice.  Beyond rejecting an empty prompt
no validation or sanitisation happens here; escaping for HTML output is the
share page renderer's job.

Usage
-----
::

    instruction = compose_prompt("riding a skateboard through Tokyo")
"""

from __future__ import annotations

from degenify.core.errors import EmptyPromptError

# ---------------------------------------------------------------------------
# Fixed instruction sections.
# The preserved feature is part of the product identity, so it is a constant
# rather than configuration.
# ---------------------------------------------------------------------------

PRESERVED_FEATURE = "purple hat"

_ROLE_PREAMBLE = (
    "You are an image editor. You must ALWAYS preserve the "
    f"{PRESERVED_FEATURE} from the base image character."
)

_INSTRUCTION_TEMPLATE = """Instructions:
1. Keep the distinctive PURPLE HAT from the base image character
2. The character can change poses, expressions, and clothing to fit the situation
3. The character can be dressed differently for the new context
4. Only modify the background, setting, or environment around the character
5. Place the character in the new situation described: {prompt}
6. The purple hat must remain visible and distinctive"""

_SITUATION_TEMPLATE = "Situation to create: {prompt}"


def compose_prompt(prompt: str | None) -> str:
    """Wrap a user prompt in the fixed image-editing instruction.

    Args:
        prompt: Free-text situation supplied by the user.

    Returns:
        The instruction string sent to the generation model.

    Raises:
        EmptyPromptError: If ``prompt`` is ``None``, empty, or whitespace.
    """
    if prompt is None or not prompt.strip():
        raise EmptyPromptError()

    # str.replace rather than str.format: user text may contain braces.
    sections = [
        _ROLE_PREAMBLE,
        _INSTRUCTION_TEMPLATE.replace("{prompt}", prompt),
        _SITUATION_TEMPLATE.replace("{prompt}", prompt),
    ]
    return "\n\n".join(sections)
