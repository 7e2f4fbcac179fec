from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import AlreadyActive
from .lifecycle import Game, check_participants, participant_id, player_label
from .registry import ActiveGameRegistry
from .rules import Rules, get_rules
from .scheduling import AsyncioScheduler, Scheduler, TimerHandle

LOGGER = logging.getLogger(__name__)

DEFAULT_CHALLENGE_TIMEOUT = 120.0


class ChallengeOutcome(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class Challenge:
    """A pending invitation; resolves once, to whichever outcome lands first."""

    def __init__(
        self,
        negotiator: "ChallengeNegotiator",
        channel_id: Any,
        challenger: Any,
        opponent: Any,
        rules: Rules,
    ):
        self.channel_id = channel_id
        self.challenger = challenger
        self.opponent = opponent
        self.rules = rules
        self.outcome: Optional[ChallengeOutcome] = None
        self.game: Optional[Game] = None
        self._negotiator = negotiator
        self._timer: TimerHandle | None = None
        self._resolved = asyncio.Event()

    @property
    def is_resolved(self) -> bool:
        return self.outcome is not None

    def is_for(self, user: Any) -> bool:
        return participant_id(user) == participant_id(self.opponent)

    def respond(self, user: Any, accept: bool) -> bool:
        """Apply the opponent's answer; presses by anyone else are ignored."""
        if not self.is_for(user) or self.is_resolved:
            return False
        if accept:
            self.game = self._negotiator._start_game(self)
            return self._resolve(ChallengeOutcome.ACCEPTED)
        return self._resolve(ChallengeOutcome.DECLINED)

    async def wait(self) -> Optional[ChallengeOutcome]:
        await self._resolved.wait()
        return self.outcome

    def _arm(self, scheduler: Scheduler, timeout: float) -> None:
        self._timer = scheduler.call_later(timeout, self._on_expired)

    def _on_expired(self) -> None:
        self._timer = None
        self._resolve(ChallengeOutcome.EXPIRED)

    def _resolve(self, outcome: ChallengeOutcome) -> bool:
        if self.is_resolved:
            return False
        self.outcome = outcome
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._negotiator._forget(self)
        LOGGER.info(
            "%s challenge in channel %s by %s to %s: %s",
            self.rules.title,
            self.channel_id,
            player_label(self.challenger),
            player_label(self.opponent),
            outcome.value,
        )
        self._resolved.set()
        return True


class ChallengeNegotiator:
    def __init__(
        self,
        registry: ActiveGameRegistry,
        scheduler: Optional[Scheduler] = None,
        challenge_timeout: float = DEFAULT_CHALLENGE_TIMEOUT,
        idle_timeouts: Optional[Dict[str, float]] = None,
    ):
        self.registry = registry
        self.scheduler = scheduler or AsyncioScheduler()
        self.challenge_timeout = challenge_timeout
        self.idle_timeouts = dict(idle_timeouts or {})
        self._pending: Dict[Any, Challenge] = {}

    def pending(self, channel_id: Any) -> Optional[Challenge]:
        return self._pending.get(channel_id)

    def open_challenge(
        self, channel_id: Any, challenger: Any, opponent: Any, variant: str | Rules
    ) -> Challenge:
        if channel_id in self.registry or channel_id in self._pending:
            raise AlreadyActive()
        check_participants(challenger, opponent)
        rules = get_rules(variant) if isinstance(variant, str) else variant
        challenge = Challenge(self, channel_id, challenger, opponent, rules)
        self._pending[channel_id] = challenge
        challenge._arm(self.scheduler, self.challenge_timeout)
        return challenge

    async def propose_challenge(
        self,
        channel_id: Any,
        challenger: Any,
        opponent: Any,
        variant: str | Rules,
        present: Optional[Callable[[Challenge], Awaitable[None]]] = None,
    ) -> Challenge:
        challenge = self.open_challenge(channel_id, challenger, opponent, variant)
        if present is not None:
            try:
                await present(challenge)
            except Exception:
                challenge._resolve(ChallengeOutcome.EXPIRED)
                raise
        await challenge.wait()
        return challenge

    def _start_game(self, challenge: Challenge) -> Game:
        game = Game(
            challenge.channel_id,
            (challenge.challenger, challenge.opponent),
            challenge.rules,
            self.registry,
            self.scheduler,
            idle_timeout=self.idle_timeouts.get(challenge.rules.name),
        )
        self.registry.register(challenge.channel_id, game)
        game.start()
        return game

    def expire_all(self) -> int:
        challenges = list(self._pending.values())
        for challenge in challenges:
            challenge._resolve(ChallengeOutcome.EXPIRED)
        return len(challenges)

    def _forget(self, challenge: Challenge) -> None:
        if self._pending.get(challenge.channel_id) is challenge:
            del self._pending[challenge.channel_id]
