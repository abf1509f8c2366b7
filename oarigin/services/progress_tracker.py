"""
Service: progress_tracker.py
Rôle :
- Dérive des compteurs de progression par genre à partir du texte narré.

Comportement :
- Heuristique par mots-clés (sous-chaîne, insensible à la casse), volontairement approximative.
- `update()` est pure : elle renvoie un delta et ne touche jamais `previous`.
- La même narration fournie deux fois compte deux fois ; le contrôleur
  applique chaque narration exactement une fois.
- Le classifieur est interchangeable (`ProgressClassifier`) : un narrateur à
  sortie structurée peut remplacer les règles sans toucher la machine d'état.
"""
from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Protocol, Tuple

from oarigin.models.room import GameGenre, GameProgress

PROGRESS_FIELDS = (
    "daysSurvived",
    "milesTraveled",
    "artifactsFound",
    "cluesFound",
    "nodesDisabled",
    "distanceCovered",
)

# genre -> [(mots-clés, compteur, incrément)]
KEYWORD_RULES: Dict[GameGenre, list[Tuple[Tuple[str, ...], str, int]]] = {
    GameGenre.SURVIVAL: [
        (("you travel", "miles"), "milesTraveled", 1),
        (("day passes", "another day"), "daysSurvived", 1),
    ],
    GameGenre.FANTASY: [(("artifact", "relic"), "artifactsFound", 1)],
    GameGenre.HORROR: [(("clue", "evidence"), "cluesFound", 1)],
    GameGenre.MYSTERY: [(("clue", "evidence"), "cluesFound", 1)],
    GameGenre.SCI_FI: [(("node", "disabled"), "nodesDisabled", 1)],
    GameGenre.ADVENTURE: [(("you progress", "closer to"), "distanceCovered", 10)],
}


def normalize_genre(genre: GameGenre | str | None) -> Optional[GameGenre]:
    """Accepte un membre de l'enum, une valeur ("Sci-Fi") ou une graphie libre ("sci_fi")."""
    if genre is None:
        return None
    if isinstance(genre, GameGenre):
        return genre
    key = str(genre).strip().lower().replace("_", "-")
    for member in GameGenre:
        if member.value.lower() == key or member.name.lower().replace("_", "-") == key:
            return member
    return None


class ProgressClassifier(Protocol):
    def classify(self, genre: GameGenre | str, text: str) -> GameProgress:
        ...


class KeywordProgressClassifier:
    def __init__(self, rules: Mapping[GameGenre, Iterable[Tuple[Tuple[str, ...], str, int]]] = KEYWORD_RULES) -> None:
        self.rules = rules

    def classify(self, genre: GameGenre | str, text: str) -> GameProgress:
        member = normalize_genre(genre)
        if member is None or not text:
            return {}
        low = text.lower()
        delta: GameProgress = {}
        for keywords, counter, step in self.rules.get(member, []):
            if any(k in low for k in keywords):
                delta[counter] = delta.get(counter, 0) + step
        return delta


DEFAULT_CLASSIFIER = KeywordProgressClassifier()


def update(
    genre: GameGenre | str,
    previous: Mapping[str, int] | None,
    narration_text: str,
    classifier: ProgressClassifier = DEFAULT_CLASSIFIER,
) -> GameProgress:
    """Delta de progression produit par une narration (vide sinon)."""
    delta = classifier.classify(genre, narration_text)
    # les compteurs ne font qu'avancer
    return {k: v for k, v in delta.items() if v > 0}


def apply(previous: Mapping[str, int] | None, delta: Mapping[str, int]) -> GameProgress:
    """Fusionne un delta dans une progression (nouveau dict, creux)."""
    merged: GameProgress = dict(previous or {})
    for key, value in delta.items():
        merged[key] = max(0, merged.get(key, 0)) + max(0, int(value))
    return merged
