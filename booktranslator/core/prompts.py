"""
Prompt builders for glossary extraction and segment translation.
"""
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from booktranslator.config import (
    CONTEXT_TAG_IN,
    CONTEXT_TAG_OUT,
    TRANSLATE_TAG_IN,
    TRANSLATE_TAG_OUT,
    language_name,
)
from booktranslator.core.llm.base import ChatMessage


class PromptPair(NamedTuple):
    """A pair of system and user prompts for one backend request."""
    system: str
    user: str

    def to_messages(self) -> List[ChatMessage]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


# ============================================================================
# SHARED PROMPT SECTIONS
# ============================================================================

def build_glossary_section(entries: Sequence[Tuple[str, str]]) -> str:
    """
    Render glossary entries the model must follow.

    Args:
        entries: (source, target) pairs, already ordered longest source first

    Returns:
        str: The section, or an empty string when there are no entries
    """
    if not entries:
        return ""
    lines = "\n".join(f'  "{source}" → "{target}"' for source, target in entries)
    return f"\n\n**GLOSSARY (MUST use these exact translations):**\n{lines}\n"


def build_context_section(context: Optional[Sequence[str]]) -> str:
    """Preceding segments, given for continuity only."""
    if not context:
        return ""
    joined = "\n".join(context)
    return f"{CONTEXT_TAG_IN}\n{joined}\n{CONTEXT_TAG_OUT}\n\n"


# ============================================================================
# PROMPTS
# ============================================================================

def generate_glossary_prompt(sample_text: str, source_language: str,
                             target_language: str) -> PromptPair:
    """
    Ask for a JSON object mapping every proper noun of the sample to one
    consistent rendering in the target language.
    """
    source = language_name(source_language)
    target = language_name(target_language)

    system = f"""You are a literary translator building a glossary of proper nouns.

Find EVERY proper noun in the {source} text (people, places, organisations, titles,
invented terms) and give the {target} rendering to use consistently across the book.

# OUTPUT FORMAT
Return ONLY a JSON object whose keys are the proper nouns exactly as written in the
text and whose values are their {target} translations.
Example: {{"Whymper": "温珀", "Mr. Whymper": "温珀先生"}}"""

    user = f"""List the proper nouns with their {target} translations. Reply with JSON only.

Text:
{sample_text}"""

    return PromptPair(system=system, user=user)


def generate_translation_prompt(text: str, source_language: str, target_language: str,
                                glossary_entries: Sequence[Tuple[str, str]] = (),
                                context: Optional[Sequence[str]] = None) -> PromptPair:
    """
    Build the prompt translating one segment.

    Args:
        text: Segment plain text
        source_language: Source language code or name
        target_language: Target language code or name
        glossary_entries: Relevant glossary pairs, longest source first
        context: Plain text of the preceding segments

    Returns:
        PromptPair: system and user prompts
    """
    source = language_name(source_language)
    target = language_name(target_language)

    system = f"""You are a professional literary translator. Translate {source} text into {target}.

**CRITICAL RULES:**
1. Translate ONLY the text between {TRANSLATE_TAG_IN} and {TRANSLATE_TAG_OUT}.
2. Text between {CONTEXT_TAG_IN} and {CONTEXT_TAG_OUT} is there for continuity; never translate it.
3. Keep the style, tone and punctuation of the original.
4. Do NOT add quotes, notes or explanations the source does not have.
5. Proper nouns listed in the glossary MUST use the glossary translation.
6. Output ONLY the translated text.{build_glossary_section(glossary_entries)}"""

    user = f"{build_context_section(context)}{TRANSLATE_TAG_IN}\n{text}\n{TRANSLATE_TAG_OUT}"

    return PromptPair(system=system, user=user)


def relevant_glossary_entries(text: str, glossary: Dict[str, str]) -> List[Tuple[str, str]]:
    """
    Glossary entries whose key occurs in the text (case-insensitive).

    Longest keys come first so that "Mr. Whymper" wins over "Whymper".
    """
    lowered = text.lower()
    matches = [(key, value) for key, value in glossary.items()
               if key and key.lower() in lowered]
    matches.sort(key=lambda item: (-len(item[0]), item[0]))
    return matches
