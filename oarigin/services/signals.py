"""
Service: signals.py
Rôle :
- Lire les signaux de contrôle cachés dans la narration brute (joueur courant
  mort, fin de partie) et renvoyer le texte à afficher sans les jetons.
- Séparer la prose des options numérotées en mode multiple_choice.

Modes de détection :
- `TokenSignalClassifier` : `[PLAYER_DEATH]` / `[GAME_ENDED]`, insensible à la casse.
- `PhraseSignalClassifier` : phrases de mort en texte libre ("you have died", ...),
  la première trouvée l'emporte. Les jetons restent honorés et retirés.

Les deux signaux sont indépendants ; l'appelant applique la mort, puis la fin.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

DEATH_TOKEN = "[PLAYER_DEATH]"
END_TOKEN = "[GAME_ENDED]"

_TOKEN_RE = re.compile(r"\[(?:PLAYER_DEATH|GAME_ENDED)\]", re.IGNORECASE)

DEATH_PHRASES: tuple[str, ...] = (
    "you have died",
    "death claims you",
    "you are dead",
    "you die",
    "you perish",
    "your life ends",
    "you breathe your last",
)


@dataclass(frozen=True)
class NarrationSignals:
    player_died: bool = False
    game_ended: bool = False
    # jeton/phrase ayant déclenché le signal de mort (diagnostic)
    death_match: Optional[str] = None


class SignalClassifier(Protocol):
    def classify(self, raw_text: str) -> NarrationSignals:
        ...


def strip_tokens(text: str) -> str:
    """Retire tous les jetons de contrôle et nettoie les espaces laissés."""
    cleaned = _TOKEN_RE.sub("", text or "")
    cleaned = re.sub(r"[ \t]+\n", "\n", cleaned)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    return cleaned.strip()


class TokenSignalClassifier:
    def classify(self, raw_text: str) -> NarrationSignals:
        low = (raw_text or "").lower()
        died = DEATH_TOKEN.lower() in low
        return NarrationSignals(
            player_died=died,
            game_ended=END_TOKEN.lower() in low,
            death_match=DEATH_TOKEN if died else None,
        )


class PhraseSignalClassifier:
    def __init__(self, phrases: Sequence[str] = DEATH_PHRASES) -> None:
        self.phrases = tuple(p.lower() for p in phrases)

    def classify(self, raw_text: str) -> NarrationSignals:
        low = (raw_text or "").lower()
        match: Optional[str] = DEATH_TOKEN if DEATH_TOKEN.lower() in low else None
        if match is None:
            match = next((p for p in self.phrases if p in low), None)
        return NarrationSignals(
            player_died=match is not None,
            game_ended=END_TOKEN.lower() in low,
            death_match=match,
        )


def get_classifier(mode: str) -> SignalClassifier:
    if (mode or "").strip().lower() == "phrases":
        return PhraseSignalClassifier()
    return TokenSignalClassifier()


_CHOICES_HEADER_RE = re.compile(r"^\s*\**\s*choices\s*:?\s*\**\s*$", re.IGNORECASE)
_CHOICE_LINE_RE = re.compile(r"^\s*\d+[.)]\s*(.+)$")


def extract_choices(text: str) -> Tuple[str, List[str]]:
    """
    Sépare la prose des options numérotées (mode multiple_choice).
    - Avec une ligne "Choices:", la prose s'arrête à cette ligne.
    - Sans en-tête, toute ligne "1. ..." / "1) ..." est une option.
    Renvoie (prose, options); aucune option -> texte inchangé.
    """
    lines = (text or "").splitlines()
    header = next((i for i, line in enumerate(lines) if _CHOICES_HEADER_RE.match(line)), None)
    choices: List[str] = []
    prose: List[str] = []
    for i, line in enumerate(lines):
        if header is not None and i == header:
            continue
        match = _CHOICE_LINE_RE.match(line)
        if match and (header is None or i > header):
            choices.append(match.group(1).strip())
        elif header is None or i < header:
            prose.append(line)
    if not choices:
        return (text or "").strip(), []
    return "\n".join(prose).strip(), choices
