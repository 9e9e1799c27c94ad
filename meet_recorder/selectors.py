"""
Google Meet selector configuration.

Every list here is ordered: strategies are tried in priority order and the
first one that matches wins. The lists are plain data so they can be updated
when the Meet UI changes without touching the detection code.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")

# Participant tiles (one element per attendee)
PARTICIPANT_SELECTORS = [
    "div[data-participant-id]",
    "[data-requested-participant-id]",
    'div[jsname="E2KThb"]',
    "div[data-self-name]",
]

# Style-state tokens toggled on tiles while someone talks
SPEAKING_CLASS_NAMES = [
    "Oaajhc",
    "HX2H7",
    "wEsLMd",
    "OgVli",
]

SILENCE_CLASS_NAMES = [
    "gjg47c",
]

# Dedicated, authoritative speaking indicators (animated sound bars)
SPEAKING_INDICATOR_SELECTORS = [
    '[data-audio-level]:not([data-audio-level="0"])',
    "div.DYfzY.cYKTje.gjg47c",
    '[jsname="QgSmzd"]',
]

# Short label inside a tile
SHORT_LABEL_SELECTOR = "span.notranslate"

# Fallback name labels, in order
NAME_SELECTORS = [
    "[data-self-name]",
    ".zWGUib",
    ".cS7aqe.N2K3jd",
    ".XWGOtd",
    "[aria-label]",
]

# Opening the People panel stabilizes tile markup
PEOPLE_BUTTON_SELECTORS = [
    '[aria-label="Show everyone"]',
    '[aria-label="People"]',
    '[data-tooltip="Show everyone"]',
    '[role="button"][aria-label*="People" i]',
]

# Join/leave controls (use stable aria/role attributes only)
NAME_INPUT_SELECTOR = 'input[aria-label="Your name"], input[placeholder*="name"]'
JOIN_BUTTON_SELECTOR = (
    'button:has-text("Join now"), button:has-text("Ask to join"), '
    'div[role="button"]:has-text("Join now"), div[role="button"]:has-text("Ask to join")'
)
LEAVE_BUTTON_SELECTOR = '[aria-label*="Leave call"], [aria-label*="Leave"], [data-tooltip*="Leave"]'


@dataclass(frozen=True)
class DetectorSelectors:
    """Selector lists handed to the page-side observer script."""

    participant_selectors: list[str] = field(default_factory=lambda: list(PARTICIPANT_SELECTORS))
    speaking_classes: list[str] = field(default_factory=lambda: list(SPEAKING_CLASS_NAMES))
    silence_classes: list[str] = field(default_factory=lambda: list(SILENCE_CLASS_NAMES))
    speaking_indicators: list[str] = field(default_factory=lambda: list(SPEAKING_INDICATOR_SELECTORS))
    short_label: str = SHORT_LABEL_SELECTOR
    name_selectors: list[str] = field(default_factory=lambda: list(NAME_SELECTORS))
    people_button_selectors: list[str] = field(default_factory=lambda: list(PEOPLE_BUTTON_SELECTORS))

    def to_page_args(self) -> dict:
        return {
            "participantSelectors": self.participant_selectors,
            "speakingClasses": self.speaking_classes,
            "silenceClasses": self.silence_classes,
            "speakingIndicators": self.speaking_indicators,
            "shortLabel": self.short_label,
            "nameSelectors": self.name_selectors,
            "peopleButtonSelectors": self.people_button_selectors,
        }


def first_match(
    candidates: Iterable[T],
    resolve: Callable[[T], Optional[R]],
) -> Optional[R]:
    """Apply resolve to each candidate in order; return the first usable result.

    None and empty strings count as "no match".
    """
    for candidate in candidates:
        result = resolve(candidate)
        if result is None or result == "":
            continue
        return result
    return None
