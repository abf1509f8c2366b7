"""
Service: session_controller.py
Rôle :
- Orchestration de la partie, room par room : décide quand le narrateur est
  appelé, applique ses résultats à l'état de la room et publie le nouvel état.

Déclencheurs (exclusifs, une seule narration en vol par room) :
- (a) démarrage avec une histoire vide          -> narration d'ouverture
- (b) nouveaux venus détectés, rien en attente  -> narration de présentation
- (c) le joueur vivant courant soumet une entrée -> continuation, puis mort,
      fin, progression, ajout, passage du tour, re-vérification de fin

Chaque déclencheur prend le drapeau busy et le bail de génération de la room
avant l'appel de narration, et les relâche dans un bloc `finally`.

Les événements temps réel entrants (instantané de présence, changement de la
fiche de room) passent par `handle_event()`, qui re-dérive l'état.

Notes :
- Les nouveaux venus arrivés pendant une narration restent en file ; la file
  est revue une fois le déclencheur en cours terminé. Une continuation présente
  aussi tous les nouveaux venus en file au moment de la demande.
- La mort signalée vise le joueur qui a agi, par id.
- Si ce joueur quitte la room pendant sa narration, le tour a déjà été passé
  par le départ : la continuation ne l'avance pas une seconde fois.
- En mode multiple_choice, les options numérotées sont séparées de la prose
  (`StorySegment.choices`).
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import anyio

from oarigin.config.settings import settings
from oarigin.models.event import RoomEvent
from oarigin.models.room import GameGenre, GameMode, GamePhase, Player, RoomStatus, StorySegment
from oarigin.services import progress_tracker
from oarigin.services.errors import (
    GameNotActiveError,
    GenerationPendingError,
    InvalidInputError,
    NotHostError,
    NotYourTurnError,
    PlayerNotFoundError,
    RoomFullError,
    RoomLockedError,
)
from oarigin.services.membership import ReconcileResult, entry_identity
from oarigin.services.narration_client import NarrationClient, NarrationResult
from oarigin.services.prompt_builder import NarrationContext, story_phase
from oarigin.services.room_state import RoomState
from oarigin.services.signals import extract_choices

logger = logging.getLogger(__name__)

Publisher = Callable[[RoomEvent], Awaitable[Any]]

MAX_INPUT_LENGTH = 500


@dataclass
class TurnOutcome:
    segment: StorySegment
    degraded: bool
    player_died: bool
    game_ended: bool
    progress_delta: Dict[str, int]
    next_player_id: Optional[str]
    choices: List[str] = field(default_factory=list)


class GameSessionController:
    def __init__(
        self,
        state: RoomState,
        *,
        client: Optional[NarrationClient] = None,
        publisher: Optional[Publisher] = None,
        progress_classifier: Optional[progress_tracker.ProgressClassifier] = None,
        story_window: Optional[int] = None,
        party_size_cap: Optional[int] = None,
        autostart_delay_s: Optional[float] = None,
        lease_ttl_s: Optional[float] = None,
    ) -> None:
        if client is None:
            from oarigin.services.narration_client import CLIENT as client
        if publisher is None:
            from oarigin.services.ws_manager import publish as publisher
        self.state = state
        self.client = client
        self.publisher = publisher
        self.progress_classifier = progress_classifier or progress_tracker.DEFAULT_CLASSIFIER
        self.story_window = story_window if story_window is not None else settings.STORY_WINDOW
        self.party_size_cap = party_size_cap if party_size_cap is not None else settings.PARTY_SIZE_CAP
        self.autostart_delay_s = autostart_delay_s if autostart_delay_s is not None else settings.AUTOSTART_DELAY_S
        self.lease_ttl_s = lease_ttl_s if lease_ttl_s is not None else settings.GENERATION_LEASE_TTL_S
        self.busy = False
        self._autostart_task: Optional[asyncio.Task] = None
        self._countdown_task: Optional[asyncio.Task] = None

    @property
    def room_id(self) -> str:
        return self.state.room_id

    @property
    def phase(self) -> GamePhase:
        return self.state.turns.phase

    # ------------------------------------------------------------------
    # Vues
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        snap = self.state.snapshot()
        snap["generating"] = self.busy or snap["generating"]
        snap["countdown_pending"] = bool(self._countdown_task and not self._countdown_task.done())
        return snap

    def _require_host(self, actor_id: Optional[str]) -> None:
        if actor_id is not None and actor_id != self.state.room.host_id:
            raise NotHostError()

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------
    async def _publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        event = RoomEvent(type=event_type, room_id=self.room_id, payload=payload)
        try:
            await self.publisher(event)
        except Exception:
            # un canal cassé ne doit pas casser l'état de jeu
            logger.exception("Room publish failed", extra={"room_id": self.room_id, "event_type": event_type})

    async def _publish_state(self) -> None:
        await self._publish("room_state", self.snapshot())

    # ------------------------------------------------------------------
    # Plomberie de narration
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _generation(self, kind: str):
        """Drapeau busy + bail de room autour d'un appel de narration."""
        if self.busy:
            raise GenerationPendingError()
        token = self.state.acquire_lease(self.lease_ttl_s)
        if token is None:
            raise GenerationPendingError()
        self.busy = True
        logger.debug("Generation start", extra={"room_id": self.room_id, "kind": kind})
        try:
            yield
        finally:
            self.busy = False
            self.state.release_lease(token)
            logger.debug("Generation done", extra={"room_id": self.room_id, "kind": kind})

    def _context(
        self,
        *,
        current: Optional[Player] = None,
        player_input: str = "",
        new_players: Optional[List[Player]] = None,
    ) -> NarrationContext:
        turns = self.state.turns
        room = self.state.room
        roster = self.state.membership.roster
        return NarrationContext(
            genre=room.genre,
            alive_players=[p.username for p in turns.alive_players()],
            dead_players=list(turns.dead_players) or [p.username for p in roster if not p.alive],
            new_players=[p.username for p in (new_players or [])],
            story_log=self.state.story.trailing_window(self.story_window),
            current_player=current.username if current else "",
            player_input=player_input,
            mode=room.mode,
            phase=story_phase(len(self.state.story)),
            progress=dict(self.state.progress),
        )

    async def _narrate(self, fn: Callable[[NarrationContext], NarrationResult], ctx: NarrationContext) -> NarrationResult:
        # client HTTP bloquant, hors de la boucle d'événements
        return await anyio.to_thread.run_sync(fn, ctx)

    def _split_choices(self, text: str) -> Tuple[str, List[str]]:
        if self.state.room.mode != GameMode.MULTIPLE_CHOICE:
            return text, []
        return extract_choices(text)

    def _apply_progress(self, text: str) -> Dict[str, int]:
        delta = progress_tracker.update(
            self.state.room.genre, self.state.progress, text, classifier=self.progress_classifier
        )
        if delta:
            self.state.progress = progress_tracker.apply(self.state.progress, delta)
        return delta

    async def _close_if_ended(self, reason: str) -> bool:
        if self.phase != GamePhase.ENDED or self.state.room.status == RoomStatus.CLOSED:
            return False
        self.state.room.status = RoomStatus.CLOSED
        self._cancel_timers()
        self.state.log_event("game_ended", {"reason": reason})
        logger.info("Game ended", extra={"room_id": self.room_id, "reason": reason})
        await self._publish("game_ended", {"reason": reason, "progress": dict(self.state.progress)})
        return True

    # ------------------------------------------------------------------
    # Cycle de vie
    # ------------------------------------------------------------------
    async def start_game(self, actor_id: Optional[str] = None) -> Dict[str, Any]:
        """LOBBY/ENDED -> PLAYING, puis la narration d'ouverture si l'histoire est vide."""
        self._require_host(actor_id)
        if self.phase == GamePhase.PLAYING:
            return self.snapshot()
        self._cancel_timers()
        turns = self.state.turns
        turns.start()
        self.state.progress = {}
        self.state.room.status = RoomStatus.IN_PROGRESS
        self.state.log_event("game_started", {"players": [p.id for p in self.state.membership.roster]})
        logger.info("Game started", extra={"room_id": self.room_id})
        if not await self._close_if_ended("no_alive_players"):
            await self._publish("turn", self._turn_payload())
        self.state.save()
        await self._publish_state()

        if self.phase == GamePhase.PLAYING:
            if len(self.state.story) == 0:
                await self.generate_opening()
            else:
                await self.introduce_new_players()
        return self.snapshot()

    async def generate_opening(self) -> Optional[StorySegment]:
        """Déclencheur (a) : première scène de la room."""
        if self.phase != GamePhase.PLAYING or len(self.state.story) > 0 or self.busy:
            return None
        try:
            async with self._generation("opening"):
                introduced = self.state.membership.new_players()
                ctx = self._context(current=self.state.turns.current_player(), new_players=introduced)
                result = await self._narrate(self.client.generate_opening, ctx)
                segment = self._finish_system_segment(result, introduced)
        except GenerationPendingError:
            logger.info("Opening skipped, generation pending", extra={"room_id": self.room_id})
            return None
        await self._after_system_segment(segment, result)
        return segment

    async def introduce_new_players(self) -> Optional[StorySegment]:
        """Déclencheur (b) : une narration qui fait entrer en scène les nouveaux venus en file."""
        membership = self.state.membership
        if (
            self.phase != GamePhase.PLAYING
            or len(self.state.story) == 0
            or not membership.pending_intro
            or self.busy
        ):
            return None
        try:
            async with self._generation("introduction"):
                introduced = membership.new_players()
                ctx = self._context(current=self.state.turns.current_player(), new_players=introduced)
                result = await self._narrate(self.client.generate, ctx)
                segment = self._finish_system_segment(result, introduced)
        except GenerationPendingError:
            return None
        await self._after_system_segment(segment, result)
        return segment

    def _finish_system_segment(self, result: NarrationResult, introduced: List[Player]) -> StorySegment:
        # personne n'a agi : un jeton de mort ne vise personne, seule la fin est honorée
        if result.signals.game_ended and self.phase == GamePhase.PLAYING:
            self.state.turns.end()
        self._apply_progress(result.text)
        text, choices = self._split_choices(result.text)
        segment = self.state.append_segment(
            StorySegment(room_id=self.room_id, narration_text=text, choices=choices)
        )
        self.state.membership.clear_new_players(p.id for p in introduced)
        self.state.save()
        return segment

    async def _after_system_segment(self, segment: StorySegment, result: NarrationResult) -> None:
        self.state.log_event("segment", {"segment_id": segment.id, "degraded": result.degraded})
        await self._publish("segment", {"segment": segment.model_dump(mode="json"), "degraded": result.degraded})
        await self._close_if_ended("narrator")
        self.state.save()
        await self._publish_state()
        # nouveaux venus arrivés entre-temps
        await self.introduce_new_players()

    async def submit_input(self, player_id: str, text: str) -> TurnOutcome:
        """Déclencheur (c) : l'action du joueur courant, narrée puis appliquée."""
        if self.phase != GamePhase.PLAYING:
            raise GameNotActiveError()
        player = self.state.membership.get(player_id)
        if player is None:
            raise PlayerNotFoundError()
        if not self.state.turns.is_turn_of(player_id):
            raise NotYourTurnError()
        action = (text or "").strip()
        if not action or len(action) > MAX_INPUT_LENGTH:
            raise InvalidInputError()

        turns = self.state.turns
        async with self._generation("continuation"):
            introduced = self.state.membership.new_players()
            ctx = self._context(current=player, player_input=action, new_players=introduced)
            result = await self._narrate(self.client.generate, ctx)
            # un départ pendant la narration a déjà déplacé le pointeur
            holds_turn = turns.is_turn_of(player.id)

            died = False
            if result.signals.player_died and self.phase == GamePhase.PLAYING:
                died = turns.kill_player_by_id(player.id)
            if result.signals.game_ended and self.phase == GamePhase.PLAYING:
                turns.end()
            delta = self._apply_progress(result.text)
            text, choices = self._split_choices(result.text)
            segment = self.state.append_segment(
                StorySegment(
                    room_id=self.room_id,
                    player_id=player.id,
                    player_input=action,
                    narration_text=text,
                    choices=choices,
                )
            )
            self.state.membership.clear_new_players(p.id for p in introduced)
            if holds_turn:
                turns.advance_turn()
            turns.check_end()
            self.state.save()

        current = turns.current_player()
        outcome = TurnOutcome(
            segment=segment,
            degraded=result.degraded,
            player_died=died,
            game_ended=self.phase == GamePhase.ENDED,
            progress_delta=delta,
            next_player_id=current.id if current else None,
            choices=list(segment.choices),
        )
        self.state.log_event(
            "turn",
            {
                "player_id": player.id,
                "segment_id": segment.id,
                "died": died,
                "degraded": result.degraded,
                "progress_delta": delta,
            },
        )
        await self._publish("segment", {"segment": segment.model_dump(mode="json"), "degraded": result.degraded})
        if died:
            await self._publish("turn", {"died": player.id, **self._turn_payload()})
        else:
            await self._publish("turn", self._turn_payload())
        await self._close_if_ended("all_dead" if turns.alive_count() == 0 else "narrator")
        self.state.save()
        await self._publish_state()
        await self.introduce_new_players()
        return outcome

    def _turn_payload(self) -> Dict[str, Any]:
        current = self.state.turns.current_player()
        return {
            "phase": self.phase.value,
            "current_player_id": current.id if current else None,
            "current_player_index": self.state.turns.index,
        }

    async def end_game(self, actor_id: Optional[str] = None) -> Dict[str, Any]:
        """Fin explicite (hôte)."""
        self._require_host(actor_id)
        self.state.turns.end()
        await self._close_if_ended("host")
        self.state.save()
        await self._publish_state()
        return self.snapshot()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    async def join(self, player_id: str, username: str) -> Dict[str, Any]:
        """Ouvre une session pour un joueur et réconcilie le roster avec elle."""
        known = self.state.membership.get(player_id) is not None
        if not known and len(self.state.membership.roster) >= self.party_size_cap:
            raise RoomFullError()
        if not known and self.state.room.status == RoomStatus.CLOSED:
            raise GameNotActiveError()
        self.state.set_session(player_id, username, True)
        self.state.save()
        await self.handle_event(
            RoomEvent(type="membership", room_id=self.room_id, payload={"players": self.state.presence_snapshot()})
        )
        return self.snapshot()

    async def set_presence(self, player_id: str, active: bool) -> None:
        """Connexion/déconnexion websocket. Ne retire jamais personne du roster."""
        player = self.state.membership.get(player_id)
        username = player.username if player else self.state.sessions.get(player_id, {}).get("username", "")
        if not self.state.set_session(player_id, username, active):
            return
        self.state.save()
        await self.handle_event(
            RoomEvent(type="membership", room_id=self.room_id, payload={"players": self.state.presence_snapshot()})
        )

    async def leave(self, player_id: str) -> Dict[str, Any]:
        """Départ explicite : seule sortie du roster."""
        membership = self.state.membership
        removed = membership.leave(player_id)
        if removed is None:
            raise PlayerNotFoundError()
        self.state.drop_session(player_id)
        self.state.turns.on_player_removed(removed)
        room = self.state.room
        if room.host_id == player_id and membership.roster:
            room.host_id = membership.roster[0].id
        if not membership.roster:
            self.state.turns.end()
        self.state.log_event("player_left", {"player_id": player_id, "host_id": room.host_id})
        if not await self._close_if_ended("all_left" if not membership.roster else "all_dead"):
            if self.phase == GamePhase.PLAYING:
                await self._publish("turn", self._turn_payload())
        self.state.save()
        await self._publish_state()
        return self.snapshot()

    async def handle_event(self, event: RoomEvent) -> Optional[ReconcileResult]:
        """Événement temps réel entrant -> re-dérivation de l'état."""
        if event.type == "membership":
            return await self._on_membership(event.payload.get("players") or [])
        if event.type == "room":
            await self._on_room_change(event.payload)
        return None

    async def _on_membership(self, snapshot: List[Dict[str, Any]]) -> ReconcileResult:
        membership = self.state.membership
        result = membership.reconcile(snapshot)
        if result.newly_joined:
            self.state.log_event("players_joined", {"players": [p.id for p in result.newly_joined]})
            logger.info(
                "Players joined",
                extra={"room_id": self.room_id, "players": [p.username for p in result.newly_joined]},
            )
        self.state.save()
        await self._publish_state()

        if self.phase == GamePhase.LOBBY and self.state.room.status == RoomStatus.OPEN:
            host_present = any(entry_identity(entry)[0] == self.state.room.host_id for entry in snapshot)
            if len(membership.roster) >= self.party_size_cap and host_present:
                self._schedule_autostart()
        elif self.phase == GamePhase.PLAYING and result.newly_joined:
            await self.introduce_new_players()
        return result

    async def _on_room_change(self, payload: Dict[str, Any]) -> None:
        changes = {k: payload[k] for k in ("genre", "mode", "is_public") if k in payload}
        if changes and self.state.room.status == RoomStatus.OPEN:
            self._apply_settings(**changes)
            self.state.save()
            await self._publish_state()
        status = payload.get("status")
        if status == RoomStatus.IN_PROGRESS.value and self.phase != GamePhase.PLAYING:
            await self.start_game()
        elif status == RoomStatus.CLOSED.value and self.state.room.status != RoomStatus.CLOSED:
            await self.end_game()

    # ------------------------------------------------------------------
    # Réglages & planification du démarrage
    # ------------------------------------------------------------------
    def _apply_settings(self, genre: Any = None, mode: Any = None, is_public: Any = None) -> None:
        room = self.state.room
        if genre is not None:
            room.genre = progress_tracker.normalize_genre(genre) or GameGenre(genre)
        if mode is not None:
            room.mode = GameMode(mode)
        if is_public is not None:
            room.is_public = bool(is_public)

    async def update_settings(
        self,
        actor_id: Optional[str],
        *,
        genre: Optional[GameGenre] = None,
        mode: Optional[GameMode] = None,
        is_public: Optional[bool] = None,
    ) -> Dict[str, Any]:
        self._require_host(actor_id)
        if self.state.room.status != RoomStatus.OPEN:
            raise RoomLockedError()
        self._apply_settings(genre=genre, mode=mode, is_public=is_public)
        self.state.log_event("settings", {"genre": self.state.room.genre.value, "mode": self.state.room.mode.value})
        self.state.save()
        await self._publish_state()
        return self.snapshot()

    async def schedule_start(self, actor_id: Optional[str], countdown_s: Optional[int] = None) -> Dict[str, Any]:
        """Démarrage par l'hôte avec un décompte diffusé seconde par seconde."""
        self._require_host(actor_id)
        if self.phase == GamePhase.PLAYING:
            raise RoomLockedError()
        seconds = settings.START_COUNTDOWN_S if countdown_s is None else max(0, int(countdown_s))
        if seconds == 0:
            return await self.start_game()
        self._cancel_timers()

        async def _runner():
            try:
                for remaining in range(seconds, 0, -1):
                    await self._publish("countdown", {"remaining": remaining})
                    await asyncio.sleep(1)
                await self.start_game()
            except asyncio.CancelledError:
                return

        self._countdown_task = asyncio.create_task(_runner())
        return self.snapshot()

    def _schedule_autostart(self) -> None:
        """Démarrage différé une fois le groupe complet (chaque nouvel événement relance la fenêtre)."""
        if self._autostart_task and not self._autostart_task.done():
            self._autostart_task.cancel()

        async def _runner():
            try:
                await asyncio.sleep(self.autostart_delay_s)
                if (
                    self.phase == GamePhase.LOBBY
                    and len(self.state.membership.roster) >= self.party_size_cap
                ):
                    logger.info("Party full, auto-starting", extra={"room_id": self.room_id})
                    await self.start_game()
            except asyncio.CancelledError:
                return

        self._autostart_task = asyncio.create_task(_runner())

    def _cancel_timers(self) -> None:
        current = asyncio.current_task() if _loop_running() else None
        for task in (self._autostart_task, self._countdown_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    async def shutdown(self) -> None:
        """Annule les timers en attente (room abandonnée)."""
        self._cancel_timers()
        for task in (self._autostart_task, self._countdown_task):
            if task is not None and task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
        return True
    except RuntimeError:
        return False
