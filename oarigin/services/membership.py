"""
Service: membership.py
Rôle :
- Réconcilie le roster connu avec l'instantané de présence d'une room (qui
  détient une session active à cet instant).
- Met en file les nouveaux venus jusqu'à ce que le narrateur les présente.

Règles :
- Nouveau venu = présent dans l'instantané, absent du roster connu.
- Les statuts suivent l'id: un joueur mort qui se reconnecte reste mort.
- Un joueur absent de l'instantané est conservé; seul `leave()` le retire.
- `leave()` garde le dernier statut du joueur: un mort qui revient reste mort
  et n'est pas présenté à nouveau.
- Un instantané dupliqué est sans effet (livraison au moins une fois).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from oarigin.models.room import Player, PlayerStatus


@dataclass
class ReconcileResult:
    roster: List[Player]
    newly_joined: List[Player]


@dataclass
class MembershipSynchronizer:
    roster: List[Player] = field(default_factory=list)
    # ids en attente d'une présentation narrative, par ordre d'arrivée
    pending_intro: List[str] = field(default_factory=list)
    # id -> dernier statut des joueurs partis
    departed: Dict[str, PlayerStatus] = field(default_factory=dict)

    def get(self, player_id: str) -> Optional[Player]:
        for player in self.roster:
            if player.id == player_id:
                return player
        return None

    def reconcile(self, snapshot: Iterable[Mapping[str, Any] | Player]) -> ReconcileResult:
        """Fusionne un instantané de présence dans le roster (en place, ordre conservé)."""
        newly_joined: List[Player] = []
        seen: set[str] = set()
        for entry in snapshot:
            pid, username = entry_identity(entry)
            if not pid or pid in seen:
                continue
            seen.add(pid)
            known = self.get(pid)
            if known is not None:
                # pseudo seulement, le statut appartient à la machine de tours
                if username and known.username != username:
                    known.username = username
                continue
            status = self.departed.pop(pid, PlayerStatus.ALIVE)
            player = Player(id=pid, username=username or f"Player-{pid[:5]}", status=status)
            self.roster.append(player)
            newly_joined.append(player)
            if player.alive:
                self.pending_intro.append(pid)
        return ReconcileResult(roster=self.roster, newly_joined=newly_joined)

    def add(self, player_id: str, username: str) -> Optional[Player]:
        """Arrivée unitaire (création de room, route join). Renvoie le joueur créé ou None."""
        result = self.reconcile([{"id": player_id, "username": username}])
        return result.newly_joined[0] if result.newly_joined else None

    def leave(self, player_id: str) -> Optional[int]:
        """Retrait explicite. Renvoie l'index retiré (None si inconnu)."""
        for idx, player in enumerate(self.roster):
            if player.id == player_id:
                del self.roster[idx]
                self.departed[player_id] = player.status
                if player_id in self.pending_intro:
                    self.pending_intro.remove(player_id)
                return idx
        return None

    def new_players(self) -> List[Player]:
        return [p for p in (self.get(pid) for pid in self.pending_intro) if p is not None]

    def clear_new_players(self, player_ids: Iterable[str] | None = None) -> None:
        """Retire les joueurs présentés de la file (tous si ids vaut None)."""
        if player_ids is None:
            self.pending_intro = []
            return
        done = set(player_ids)
        self.pending_intro = [pid for pid in self.pending_intro if pid not in done]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roster": [p.model_dump(mode="json") for p in self.roster],
            "pending_intro": list(self.pending_intro),
            "departed": {pid: status.value for pid, status in self.departed.items()},
        }

    def load_dict(self, data: Dict[str, Any] | None) -> None:
        data = data or {}
        # mutation en place: la machine de tours partage la même liste
        self.roster[:] = [Player.model_validate(p) for p in data.get("roster", [])]
        self.pending_intro = list(data.get("pending_intro", []))
        self.departed = {pid: PlayerStatus(s) for pid, s in (data.get("departed") or {}).items()}


def entry_identity(entry: Mapping[str, Any] | Player) -> tuple[str, str]:
    """(id, pseudo) d'une entrée d'instantané: `Player` ou mapping id/player_id, username/display_name."""
    if isinstance(entry, Player):
        return entry.id, entry.username
    pid = str(entry.get("id") or entry.get("player_id") or "").strip()
    username = str(entry.get("username") or entry.get("display_name") or "").strip()
    return pid, username
