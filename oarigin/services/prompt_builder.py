"""
Service: prompt_builder.py
Rôle :
- Transformer un `NarrationContext` (situation de jeu) en l'unique prompt
  envoyé au service de narration.

Règles appliquées par `build_prompt` :
- la voix dépend du nombre de joueurs vivants (0 / 1 / 2 / 3+) ;
- la mort la plus récente est reconnue dans le récit ;
- les nouveaux venus sont introduits dans la scène ;
- une entrée joueur non vide doit guider la suite, sinon l'environnement
  produit le prochain événement ;
- `free_text` demande de la prose seule, `multiple_choice` une liste `Choices:` ;
- les continuations visent 50 à 100 mots.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from oarigin.models.room import GameGenre, GameMode
from oarigin.services.signals import DEATH_TOKEN, END_TOKEN

PHASE_OPENING = "opening"
PHASE_RISING = "rising"
PHASE_CLIMAX = "climax"
PHASE_RESOLUTION = "resolution"

PACING_GOALS: Dict[str, str] = {
    PHASE_OPENING: "establish the setting, the stakes and an immediate hook",
    PHASE_RISING: "escalate tension and complicate the party's situation",
    PHASE_CLIMAX: "force a decisive confrontation with real consequences",
    PHASE_RESOLUTION: "steer the story toward a satisfying conclusion",
}

DEFAULT_TONES: Dict[GameGenre, str] = {
    GameGenre.FANTASY: "wondrous and perilous",
    GameGenre.SCI_FI: "tense and cold",
    GameGenre.MYSTERY: "brooding and suspicious",
    GameGenre.HORROR: "dreadful and claustrophobic",
    GameGenre.ADVENTURE: "bold and urgent",
    GameGenre.SURVIVAL: "harsh and desperate",
}

SETTING_SEEDS = (
    "a submerged city only visible at dusk",
    "a cursed forest frozen mid-thunderstorm",
    "a spiraling tower that bleeds light",
    "a mirror world trapped inside a library",
    "a ghost town built entirely from salt",
)

BANNED_NAMES = (
    "Eldoria", "Ironwood", "Ravensreach", "Arcanvale", "Veloria",
    "Drakmor", "Mythglen", "Shadowfen", "Stormhold",
)


def story_phase(segment_count: int) -> str:
    if segment_count < 3:
        return PHASE_OPENING
    if segment_count < 6:
        return PHASE_RISING
    if segment_count < 9:
        return PHASE_CLIMAX
    return PHASE_RESOLUTION


@dataclass
class NarrationContext:
    genre: GameGenre | str
    alive_players: List[str] = field(default_factory=list)
    # ordre des morts, dernier = plus récent
    dead_players: List[str] = field(default_factory=list)
    new_players: List[str] = field(default_factory=list)
    story_log: List[str] = field(default_factory=list)
    current_player: str = ""
    player_input: str = ""
    mode: GameMode = GameMode.FREE_TEXT
    tone: Optional[str] = None
    phase: str = PHASE_OPENING
    pacing_goal: Optional[str] = None
    progress: Dict[str, int] = field(default_factory=dict)

    @property
    def genre_label(self) -> str:
        return self.genre.value if isinstance(self.genre, GameGenre) else str(self.genre)

    def resolved_tone(self) -> str:
        if self.tone:
            return self.tone
        if isinstance(self.genre, GameGenre):
            return DEFAULT_TONES.get(self.genre, "immersive")
        return "immersive"

    def resolved_pacing(self) -> str:
        return self.pacing_goal or PACING_GOALS.get(self.phase, PACING_GOALS[PHASE_RISING])


def _names(names: List[str]) -> str:
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + f" and {names[-1]}"


def voice_instruction(ctx: NarrationContext) -> str:
    alive = ctx.alive_players
    if not alive:
        return (
            "No one is left alive: narrate a conclusion to the story, closing every "
            f"thread, and append {END_TOKEN} at the very end."
        )
    if len(alive) == 1:
        return f'Use intimate second-person singular narration ("you") addressed to {alive[0]}.'
    if len(alive) == 2:
        return f'Address the pair as "you both" or by name ({_names(alive)}).'
    return f'Address the party as a group ("your group", "you all") and by name: {_names(alive)}.'


def format_instruction(mode: GameMode | str) -> str:
    if GameMode(mode) == GameMode.MULTIPLE_CHOICE:
        return (
            "Write the narration as prose, then a line containing exactly 'Choices:' "
            "followed by 3 to 5 numbered options (1., 2., 3., ...), one per line."
        )
    return "Write prose only. Do not list, number or enumerate options for the players."


def build_prompt(ctx: NarrationContext) -> str:
    """Prompt de continuation (ou de présentation quand l'entrée est vide)."""
    lines: List[str] = [
        f"Genre: {ctx.genre_label}",
        f"Tone: {ctx.resolved_tone()}",
        f"Story phase: {ctx.phase} (goal: {ctx.resolved_pacing()})",
        "",
        f"Alive players: {', '.join(ctx.alive_players) or 'None'}",
        f"Dead players: {', '.join(ctx.dead_players) or 'None'}",
        f"New players: {', '.join(ctx.new_players) or 'None'}",
    ]
    if ctx.progress:
        counters = ", ".join(f"{k}={v}" for k, v in sorted(ctx.progress.items()))
        lines.append(f"Progress: {counters}")
    lines += [
        "",
        "Story so far:",
        "\n".join(f"{i + 1}. {entry}" for i, entry in enumerate(ctx.story_log)) or "No prior story.",
        "",
        f"Current player: {ctx.current_player or 'None'}",
        f'Player input: "{ctx.player_input}"',
        "",
        "Narration instructions:",
        f"- {voice_instruction(ctx)}",
    ]
    if ctx.dead_players:
        lines.append(
            f"- Acknowledge in the narrative that {ctx.dead_players[-1]} has died. "
            "Dead players never act again."
        )
    if ctx.new_players:
        lines.append(
            f"- Introduce {_names(ctx.new_players)} into the scene as newly arrived companions."
        )
    if ctx.player_input.strip():
        who = ctx.current_player or "the current player"
        lines.append(
            f'- Mandatory: the narration must directly build on {who}\'s action: "{ctx.player_input.strip()}".'
        )
    else:
        lines.append("- No player action this time: let the environment drive a new event.")
    lines += [
        f"- Pace the scene to {ctx.resolved_pacing()}.",
        f"- {format_instruction(ctx.mode)}",
        "- Keep it to roughly 50-100 words.",
        f"- If the current player dies, narrate it clearly and append {DEATH_TOKEN}.",
        f"- If the story reaches its end, append {END_TOKEN}.",
        "",
        "Continue from the narrator's perspective.",
    ]
    return "\n".join(lines).strip()


def build_opening_prompt(ctx: NarrationContext, rng: random.Random | None = None) -> str:
    """Prompt de la première scène d'une room (pas encore d'histoire)."""
    rng = rng or random.Random()
    party = ctx.alive_players or ctx.new_players
    size = len(party)
    if size <= 1:
        voice = 'Use second-person perspective ("You").'
    elif size == 2:
        voice = 'Refer to them collectively as "you both" or by name.'
    else:
        voice = 'Refer to them as "your group", "you all", or by name.'
    plural = "s" if size != 1 else ""
    lines = [
        f"Start a new {ctx.genre_label} adventure for {size} player{plural}: {', '.join(party) or 'a lone wanderer'}.",
        voice,
        f"Tone: {ctx.resolved_tone()}.",
        f"The story begins in {rng.choice(SETTING_SEEDS)}.",
        "",
        "Do NOT use generic or common fantasy place names.",
        f"Specifically avoid: {', '.join(BANNED_NAMES)}.",
        "Invent new, vivid locations, people, and threats. Prioritize originality.",
        "",
        "Begin with tension, awe, or urgency. Pull the players in with immediate stakes or danger.",
        "Make the world react to the size of the party and acknowledge their presence naturally.",
        f"- Pace the scene to {ctx.resolved_pacing()}.",
        f"- {format_instruction(ctx.mode)}",
        "- Keep it to roughly 50-100 words.",
    ]
    return "\n".join(lines).strip()
