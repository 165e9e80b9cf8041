"""
Persona, voice and language catalogs.

These are fixed option sets; the control panel can only ever select values
from them. Defaults can be overridden through the environment
(DEFAULT_PERSONA, DEFAULT_VOICE, DEFAULT_LANGUAGE); an invalid override is
reverted to the hardcoded fallback with a warning when the catalogs load.
"""

import os
from dataclasses import dataclass
from typing import Dict, Generic, Iterator, Optional, Tuple, TypeVar

from src.config.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Persona:
    """
    An OpenAI Assistant the bot can speak as.

    Attributes:
        key: Catalog key used in custom ids and select values
        assistant_id: OpenAI assistant id (asst_...)
        friendly_name: Name shown on buttons and in the modal title
    """
    key: str
    assistant_id: str
    friendly_name: str


class Catalog(Generic[T]):
    """
    Ordered, fixed set of options with a validated default.

    Lookup is a linear scan/dict hit over a handful of entries.
    """

    def __init__(self, name: str, options: Dict[str, T], default: str, fallback: str):
        if fallback not in options:
            raise ValueError(f"{name} fallback '{fallback}' is not a catalog option")

        self.name = name
        self._options = dict(options)

        if default not in self._options:
            logger.warning(f"⚠️ Selected {name} '{default}' is not valid. Reverting to default '{fallback}'.")
            default = fallback
        self.default = default

    def __contains__(self, key: object) -> bool:
        return key in self._options

    def __iter__(self) -> Iterator[str]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def get(self, key: str) -> Optional[T]:
        return self._options.get(key)

    def __getitem__(self, key: str) -> T:
        return self._options[key]

    def items(self) -> Iterator[Tuple[str, T]]:
        return iter(self._options.items())


PERSONA_FALLBACK = "Ricktea"
VOICE_FALLBACK = "onyx"
LANGUAGE_FALLBACK = "en"


def _build_personas() -> Dict[str, Persona]:
    return {
        "Ricktea": Persona(
            key="Ricktea",
            assistant_id=os.getenv("OPENAI_ASSISTANT_ID_RICKTEA", "asst_jCrgR5TyJefrRW87lCmsySDA"),
            friendly_name="RickTea",
        ),
        "Dimi": Persona(
            key="Dimi",
            assistant_id=os.getenv("OPENAI_ASSISTANT_ID_DIMI", "asst_CRgLdnen02iFj1iKdrKn0r4p"),
            friendly_name="Dimi",
        ),
        "Jason": Persona(
            key="Jason",
            assistant_id=os.getenv("OPENAI_ASSISTANT_ID_JASON", "asst_q6I5xue8EWQ5low54tehHBhh"),
            friendly_name="Jason",
        ),
    }


# OpenAI speech voice id → label shown in the panel
VOICE_LABELS = {
    "onyx": "Ricky",
    "alloy": "Alloy",
    "echo": "Echo",
    "fable": "Fable",
    "nova": "Nova",
    "shimmer": "Shimmer",
}

# Language code → display name (also used in the reply instruction)
LANGUAGE_LABELS = {
    "en": "English",
    "af": "Afrikaans",
    "el": "Greek",
    "it": "Italian",
}


@dataclass(frozen=True)
class Catalogs:
    personas: Catalog[Persona]
    voices: Catalog[str]
    languages: Catalog[str]

    def persona_by_assistant_id(self, assistant_id: str) -> Optional[Persona]:
        for _, persona in self.personas.items():
            if persona.assistant_id == assistant_id:
                return persona
        return None


def load_catalogs() -> Catalogs:
    """
    Build the catalogs, applying and validating environment default overrides.

    Environment Variables:
        OPENAI_ASSISTANT_ID_RICKTEA / _DIMI / _JASON: assistant ids
        DEFAULT_PERSONA: default persona key (default: Ricktea)
        DEFAULT_VOICE: default voice id (default: onyx)
        DEFAULT_LANGUAGE: default language code (default: en)
    """
    catalogs = Catalogs(
        personas=Catalog("assistant", _build_personas(), os.getenv("DEFAULT_PERSONA", PERSONA_FALLBACK), PERSONA_FALLBACK),
        voices=Catalog("voice", VOICE_LABELS, os.getenv("DEFAULT_VOICE", VOICE_FALLBACK), VOICE_FALLBACK),
        languages=Catalog("language", LANGUAGE_LABELS, os.getenv("DEFAULT_LANGUAGE", LANGUAGE_FALLBACK), LANGUAGE_FALLBACK),
    )
    logger.info("🥝 Configuration validated successfully.")
    return catalogs


_catalogs: Optional[Catalogs] = None


def get_catalogs() -> Catalogs:
    """Get the catalogs singleton (validated on first call)."""
    global _catalogs
    if _catalogs is None:
        _catalogs = load_catalogs()
    return _catalogs
