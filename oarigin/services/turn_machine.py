"""
Service: turn_machine.py
Rôle :
- À qui le tour, qui est vivant ou mort, et le cycle de vie de la partie
  (LOBBY -> PLAYING -> ENDED).

Invariants :
- Tant qu'au moins un joueur est vivant et que la partie est PLAYING, `index`
  pointe sur un joueur vivant.
- Le statut passe de vivant à mort uniquement ; rien ici ne ressuscite un joueur.
- Quand plus personne n'est vivant la machine est ENDED et le reste jusqu'à `start()`.
- Une mort signalée par le narrateur s'applique par id (`kill_player_by_id`).

La liste du roster est partagée avec le synchroniseur de membership (mêmes
objets) : les nouveaux venus entrent dans la rotation par lui, jamais par cette classe.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from oarigin.models.room import GamePhase, Player, PlayerStatus

logger = logging.getLogger(__name__)


@dataclass
class TurnMachine:
    roster: List[Player] = field(default_factory=list)
    phase: GamePhase = GamePhase.LOBBY
    index: int = 0
    # pseudos dans l'ordre des morts (dernier = plus récent)
    dead_players: List[str] = field(default_factory=list)

    # -----------------------------
    # Vues
    # -----------------------------
    def alive_players(self) -> List[Player]:
        return [p for p in self.roster if p.alive]

    def alive_count(self) -> int:
        return sum(1 for p in self.roster if p.alive)

    def current_player(self) -> Optional[Player]:
        """Joueur qui a la main, None quand le pointeur n'a pas de sens."""
        if self.phase != GamePhase.PLAYING or not self.roster:
            return None
        if not 0 <= self.index < len(self.roster):
            return None
        player = self.roster[self.index]
        return player if player.alive else None

    def is_turn_of(self, player_id: str) -> bool:
        current = self.current_player()
        return current is not None and current.id == player_id

    # -----------------------------
    # Transitions
    # -----------------------------
    def start(self) -> None:
        """LOBBY/ENDED -> PLAYING, pointeur sur le premier joueur vivant."""
        self.phase = GamePhase.PLAYING
        self.dead_players = []
        self.index = 0
        first = self._next_alive_from(-1)
        if first is None:
            logger.info("Game started without alive players, ending")
            self._end()
            return
        self.index = first

    def advance_turn(self) -> Optional[Player]:
        """Déplace le pointeur sur le prochain joueur vivant (parcours cyclique)."""
        if self.phase != GamePhase.PLAYING:
            return None
        if self.alive_count() == 0:
            self._end()
            return None
        nxt = self._next_alive_from(self.index)
        if nxt is not None:
            self.index = nxt
        return self.current_player()

    def kill_player(self, name: str) -> bool:
        """Tue le joueur nommé `name` (premier homonyme). False si inconnu ou déjà mort."""
        return self._kill(self._find_by_name(name))

    def kill_player_by_id(self, player_id: str) -> bool:
        """Tue le joueur d'identifiant `player_id` (les pseudos ne sont pas uniques)."""
        return self._kill(next((p for p in self.roster if p.id == player_id), None))

    def _kill(self, player: Optional[Player]) -> bool:
        if player is None or not player.alive:
            return False
        player.status = PlayerStatus.DEAD
        if player.username not in self.dead_players:
            self.dead_players.append(player.username)
        logger.info("Player died", extra={"player": player.username})
        if self.alive_count() == 0:
            self._end()
        return True

    def check_end(self) -> bool:
        """Force ENDED quand plus personne n'est vivant. Sans risque après toute mutation."""
        if self.phase == GamePhase.PLAYING and self.alive_count() == 0:
            self._end()
        return self.phase == GamePhase.ENDED

    def end(self) -> None:
        """Fin explicite (action de l'hôte ou signal du narrateur)."""
        self._end()

    def on_player_removed(self, removed_index: int) -> None:
        """Répare le pointeur après un départ explicite qui a retiré `removed_index`."""
        if removed_index < self.index:
            self.index -= 1
        if not self.roster:
            self.index = 0
            self.check_end()
            return
        if self.index >= len(self.roster):
            self.index = 0
        if self.phase == GamePhase.PLAYING and not self.roster[self.index].alive:
            # parcours depuis la case précédente pour considérer le joueur désormais en place
            nxt = self._next_alive_from(self.index - 1)
            if nxt is not None:
                self.index = nxt
        self.check_end()

    # -----------------------------
    # Interne
    # -----------------------------
    def _end(self) -> None:
        self.phase = GamePhase.ENDED
        if self.alive_count() == 0:
            self.index = 0

    def _next_alive_from(self, start: int) -> Optional[int]:
        """Premier index vivant strictement après `start`, en bouclant ; `start` en dernier."""
        size = len(self.roster)
        if size == 0:
            return None
        for step in range(1, size + 1):
            candidate = (start + step) % size
            if self.roster[candidate].alive:
                return candidate
        return None

    def _find_by_name(self, name: str) -> Optional[Player]:
        target = (name or "").strip().lower()
        for player in self.roster:
            if player.username.strip().lower() == target:
                return player
        return None

    # -----------------------------
    # Sérialisation
    # -----------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {"phase": self.phase.value, "index": self.index, "dead_players": list(self.dead_players)}

    def load_dict(self, data: Dict[str, Any] | None) -> None:
        data = data or {}
        self.phase = GamePhase(data.get("phase", GamePhase.LOBBY.value))
        self.index = int(data.get("index", 0))
        self.dead_players = list(data.get("dead_players", []))
