"""Instruction templates sent to the vision model for each category and phase."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Tuple

from .models import Category, ContextSummary, Phase

IMAGE_CLASSES = """Classify the image as one of:
1. decorative: adds visual appeal but conveys no information of its own. Removing it loses
   nothing because accompanying text carries the meaning. Spacers, borders, background
   textures, and icons next to a visible text label (a magnifying glass beside "Search").
2. simple_informative: conveys specific meaning essential to the content that fits in a
   short phrase or sentence. Product photos, a headshot of a person named in the text,
   a photo illustrating an event.
3. complex_informative: charts, graphs, diagrams, maps or infographics whose data or
   relationships need more than a short description."""

SYSTEM_PROMPTS: Dict[Tuple[Category, Phase], str] = {
    (Category.IMAGE, Phase.GENERATE): (
        "You are a web accessibility expert specializing in generating alt text for images."
    ),
    (Category.IMAGE, Phase.ANALYZE): (
        "You are a web accessibility expert who evaluates alt text quality."
    ),
    (Category.FORM_FIELD, Phase.GENERATE): (
        "You are a web accessibility expert who generates helpful form field labels and guidance."
    ),
    (Category.FORM_FIELD, Phase.ANALYZE): (
        "You are a web accessibility expert who evaluates form field accessibility."
    ),
    (Category.LINK, Phase.GENERATE): (
        "You are a web accessibility expert who generates descriptive link text."
    ),
    (Category.LINK, Phase.ANALYZE): (
        "You are a web accessibility expert who evaluates link text accessibility."
    ),
}

INSTRUCTIONS: Dict[Tuple[Category, Phase], str] = {
    (Category.IMAGE, Phase.GENERATE): f"""Generate alt text for an image that has none.

Steps:
1. Use the page context to understand the purpose of the page, its themes and audience.
2. Use the surrounding context to understand the role of the image (a search icon used as
   an input label, a logo in navigation, an image inside a button).
3. {IMAGE_CLASSES}
4. Write the alt text:
   - Never add or remove information based on beliefs about real-world accuracy.
   - When the context is ambiguous prefer a more generic description.
   - simple_informative: at most 2 sentences, 140 characters preferred, including any
     text visible inside the image.
   - complex_informative: a concise summary of what is shown, followed by "A more complete
     alternative exists below this image."
   - decorative: an empty string.""",
    (Category.IMAGE, Phase.ANALYZE): f"""Evaluate how well the existing alt text describes this image and serves
screen reader users. Do not write new alt text.

Steps:
1. Use the page context to understand the purpose of the page.
2. Use the surrounding context to understand the role of the image.
3. {IMAGE_CLASSES}
4. Judge the alt text: decorative images need empty alt text; informative images need an
   accurate description at the right level of detail that does not repeat nearby text;
   complex images also need a pointer to a fuller alternative.""",
    (Category.FORM_FIELD, Phase.GENERATE): """Generate a visible label and an aria-label for a form field that has no
accessible name.

Steps:
1. Work out what data the form collects.
2. Use the field's position and neighbours to find its specific purpose.
3. Decide what kind of value it expects (text, email, password, date, select...).
4. For a select, base the label on its options.

Good labels: "Email address", "Name (first and last)", "Phone number (with area code)",
"Password (at least 8 characters)", "Date of birth (MM/DD/YYYY)", "Shipping address",
"Search", "Select your country".""",
    (Category.FORM_FIELD, Phase.ANALYZE): """Evaluate how accessible this form field is for users with disabilities,
particularly screen reader users.

Steps:
1. Evaluate the current labeling (visible label, aria-label).
2. Assess whether the placeholder is used as an example rather than as a label.
3. Check for guidance on complex or constrained input.
4. Rate overall accessibility and list concrete improvements.""",
    (Category.LINK, Phase.GENERATE): """Generate descriptive link text that tells users exactly where the link goes
or what it does, replacing vague phrases such as "click here", "read more" or "learn more".

Guidelines:
- Include the destination or action in the text.
- Keep it concise, ideally 2 to 8 words.
- Provide an aria-label that adds context for screen reader users.

Example: instead of 'To read an article about microbes <a>click here</a>' use
'Read an article about the <a>resident microbes in the human body</a>'.""",
    (Category.LINK, Phase.ANALYZE): """Evaluate whether this link's text makes its destination or action clear when
read out of context, as screen reader users navigating a list of links hear it.

Steps:
1. Judge how clear the text is on its own (text_clarity).
2. Judge how well it conveys where the link goes or what it does (purpose_clarity).
3. Rate overall accessibility and list concrete improvements.""",
}

IMAGE_ORDER_NOTE = (
    "The first image shows the element alone; the second shows it with its "
    "surroundings, outlined."
)


def system_prompt(category: Category, phase: Phase) -> str:
    return SYSTEM_PROMPTS[(category, phase)]


def build_instruction(
    category: Category,
    phase: Phase,
    context: ContextSummary,
    subject: Optional[Mapping[str, str]] = None,
) -> str:
    """Render the user instruction embedding the node's current state and context."""
    sections: List[str] = [INSTRUCTIONS[(category, phase)]]
    if subject:
        lines = [f'- {label}: "{value}"' for label, value in subject.items()]
        sections.append("Current element:\n" + "\n".join(lines))
    if context.text:
        sections.append(f"Context: {context.text}")
    sections.append(IMAGE_ORDER_NOTE)
    return "\n\n".join(sections)
