"""
Service: story_log.py
Rôle :
- Séquence append-only des segments finalisés : la source de vérité de
  "ce qui s'est passé".
- Vues dérivées : fenêtre de prompt glissante et transcript texte.

Règles :
- Un segment n'est jamais modifié, supprimé ni réordonné.
- `created_at` est strictement croissant ; une égalité ou un décalage d'horloge est repoussé.
- Les segments encore animés côté client ne concernent pas le journal.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

from oarigin.models.room import StorySegment

TRANSCRIPT_TITLE = "OARigin Adventure Transcript"
_TICK = 1e-6


@dataclass
class StoryLog:
    _segments: List[StorySegment] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self):
        return iter(tuple(self._segments))

    @property
    def segments(self) -> tuple[StorySegment, ...]:
        return tuple(self._segments)

    def last(self) -> StorySegment | None:
        return self._segments[-1] if self._segments else None

    def append(self, segment: StorySegment) -> StorySegment:
        """Ajoute un segment finalisé ; renvoie la copie stockée."""
        stored = segment.model_copy(deep=True)
        last = self.last()
        if last is not None and stored.created_at <= last.created_at:
            stored.created_at = last.created_at + _TICK
        self._segments.append(stored)
        return stored

    def trailing_window(self, n: int) -> List[str]:
        """Les n derniers segments en lignes de prompt, du plus ancien au plus récent."""
        if n <= 0:
            return []
        lines: List[str] = []
        for seg in self._segments[-n:]:
            if seg.player_input:
                lines.append(f'Player input: "{seg.player_input}" | Narration: {seg.narration_text}')
            else:
                lines.append(seg.narration_text)
        return lines

    def export_transcript(self, title: str = TRANSCRIPT_TITLE) -> str:
        """Transcript texte : titre, puis par segment `> entrée` et narration."""
        parts = [f"# {title}"]
        for seg in self._segments:
            if seg.player_input:
                parts.append(f"> {seg.player_input}")
            parts.append(seg.narration_text)
        return "\n\n".join(parts) + "\n"

    @classmethod
    def from_segments(cls, segments: Iterable[StorySegment]) -> "StoryLog":
        log = cls()
        for seg in sorted(segments, key=lambda s: s.created_at):
            log.append(seg)
        return log
