"""
Crisis State Machine

Escalation and de-escalation lifecycle entered whenever the final tier
reaches Crisis.

SAFETY-CRITICAL:
- Every status change goes through one lock-guarded _transition
- A crisis can only be resolved from RECHECK, by the user reporting
  they feel more stable
- Re-entering a live crisis never resets its countdown or escalation flag,
  including across process restarts

Lifecycle:
    ACTIVE --(countdown)--> RECHECK --stable--> RESOLVED
                              |  ^
                         same |  | (countdown)
                              v  |
                           STABILIZING
    RECHECK --worse--> escalation (status stays RECHECK)
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from sentinel.config.logging_config import get_logger
from sentinel.config.settings import CrisisSettings
from sentinel.domain.models.crisis_session import (
    CrisisEpisode,
    CrisisSession,
    CrisisStatus,
    RecheckResponse,
)
from sentinel.domain.models.longitudinal_state import utc_now
from sentinel.infrastructure.metrics import CRISIS_ESCALATIONS_TOTAL, track_crisis_transition
from sentinel.infrastructure.storage import (
    CRISIS_HISTORY_KEY,
    CRISIS_START_KEY,
    CrisisHistoryRecord,
    CrisisStartRecord,
    JsonDocumentStore,
)

logger = get_logger(__name__)


CrisisListener = Callable[[CrisisSession], None]
EscalationCallback = Callable[[CrisisSession], Awaitable[None]]


class InvalidCrisisTransition(Exception):
    """Raised when an action is not legal in the current crisis status."""

    def __init__(self, message: str, status: Optional[CrisisStatus] = None, action: str = ""):
        self.status = status
        self.action = action
        super().__init__(message)


class CrisisStateMachine:
    """
    Crisis lifecycle with persisted state.

    Usage:
        machine = CrisisStateMachine(documents, on_escalation=notify_contact)
        session = await machine.enter_crisis()
        countdown = asyncio.create_task(machine.run_countdown())
        ...
        await machine.handle_recheck(RecheckResponse.SAME)
    """

    ALLOWED_TRANSITIONS: dict[CrisisStatus, frozenset[CrisisStatus]] = {
        CrisisStatus.ACTIVE: frozenset({CrisisStatus.RECHECK}),
        CrisisStatus.RECHECK: frozenset({CrisisStatus.STABILIZING, CrisisStatus.RESOLVED}),
        CrisisStatus.STABILIZING: frozenset({CrisisStatus.RECHECK}),
        CrisisStatus.RESOLVED: frozenset(),
    }

    COUNTDOWN_STATUSES: frozenset[CrisisStatus] = frozenset({
        CrisisStatus.ACTIVE,
        CrisisStatus.STABILIZING,
    })

    def __init__(
        self,
        documents: JsonDocumentStore,
        settings: Optional[CrisisSettings] = None,
        on_escalation: Optional[EscalationCallback] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._documents = documents
        self._settings = settings or CrisisSettings()
        self._on_escalation = on_escalation
        self._clock = clock
        self._lock = asyncio.Lock()
        self._session: Optional[CrisisSession] = None
        self._listeners: list[CrisisListener] = []

    @property
    def session(self) -> Optional[CrisisSession]:
        """Current (or last resolved) session."""
        return self._session

    @property
    def countdown(self) -> timedelta:
        return timedelta(seconds=self._settings.recheck_countdown_seconds)

    def add_listener(self, listener: CrisisListener) -> None:
        """Register a callback invoked after every status change."""
        self._listeners.append(listener)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def enter_crisis(self, now: Optional[datetime] = None) -> CrisisSession:
        """
        Enter crisis, or return the live session.

        Idempotent: while a session is live (in memory or persisted from
        an earlier process) it is returned unchanged. A restored session
        whose countdown expired while the process was down moves to
        RECHECK immediately.

        Returns:
            The live CrisisSession
        """
        now = now or self._clock()

        async with self._lock:
            if self._session is not None and self._session.is_live:
                logger.info("Crisis already active", session_id=str(self._session.session_id))
                return self._session

            restored = self._load_persisted()
            if restored is not None:
                self._session = restored
                logger.info(
                    "Crisis restored from storage",
                    session_id=str(restored.session_id),
                    status=restored.status.value,
                    seconds_remaining=round(restored.seconds_remaining(now)),
                )
                if restored.status in self.COUNTDOWN_STATUSES and restored.seconds_remaining(now) <= 0:
                    self._transition(CrisisStatus.RECHECK, now)
                return self._session

            self._session = CrisisSession(entered_at=now, deadline=now + self.countdown)
            self._persist()
            track_crisis_transition("none", CrisisStatus.ACTIVE.value)
            logger.warning("Crisis entered", **self._session.to_audit_log())
            self._notify()
            return self._session

    async def tick(self, now: Optional[datetime] = None) -> Optional[CrisisStatus]:
        """
        Request the deadline transition if the countdown has expired.

        Returns:
            The new status if a transition happened, otherwise None
        """
        now = now or self._clock()

        async with self._lock:
            session = self._session
            if session is None or session.status not in self.COUNTDOWN_STATUSES:
                return None
            if session.seconds_remaining(now) > 0:
                return None
            self._transition(CrisisStatus.RECHECK, now)
            return CrisisStatus.RECHECK

    async def run_countdown(self) -> Optional[CrisisStatus]:
        """
        Tick on the configured interval until the session is resolved.

        Intended to run as a background task; cancel it to stop early.

        Returns:
            Final status of the session
        """
        interval = self._settings.tick_interval_seconds
        while self._session is not None and self._session.is_live:
            await self.tick()
            await asyncio.sleep(interval)
        return self._session.status if self._session is not None else None

    async def handle_recheck(
        self,
        response: RecheckResponse,
        now: Optional[datetime] = None,
    ) -> CrisisSession:
        """
        Apply the user's answer to "How are you feeling?".

        - stable: RESOLVED, episode recorded, persisted start cleared
        - same: STABILIZING with a fresh countdown
        - worse: escalation flag set and emergency-contact callback
          invoked; status stays RECHECK until dismiss_escalation()

        Raises:
            InvalidCrisisTransition: If the session is not in RECHECK
        """
        now = now or self._clock()
        escalate = False

        async with self._lock:
            session = self._require_status(CrisisStatus.RECHECK, f"recheck:{response.value}")

            if response == RecheckResponse.STABLE:
                self._transition(CrisisStatus.RESOLVED, now)
            elif response == RecheckResponse.SAME:
                self._transition(CrisisStatus.STABILIZING, now)
            else:
                self._session = replace(session, escalated=True)
                self._persist()
                CRISIS_ESCALATIONS_TOTAL.inc()
                logger.critical("Crisis escalated", session_id=str(session.session_id))
                escalate = True

            result = self._session

        if escalate and self._on_escalation is not None:
            await self._on_escalation(result)

        return result

    async def dismiss_escalation(self, now: Optional[datetime] = None) -> CrisisSession:
        """
        Clear the escalation after the emergency contact step.

        The session moves to STABILIZING with a fresh countdown so the
        user is rechecked again.

        Raises:
            InvalidCrisisTransition: If no escalation is pending
        """
        now = now or self._clock()

        async with self._lock:
            session = self._require_status(CrisisStatus.RECHECK, "dismiss_escalation")
            if not session.escalated:
                raise InvalidCrisisTransition(
                    "No escalation to dismiss",
                    status=session.status,
                    action="dismiss_escalation",
                )
            self._session = replace(session, escalated=False)
            self._transition(CrisisStatus.STABILIZING, now)
            return self._session

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def crisis_history(self, now: Optional[datetime] = None) -> list[CrisisEpisode]:
        """Resolved episodes within the retention window."""
        now = now or self._clock()
        data = self._documents.read(CRISIS_HISTORY_KEY)
        if data is None:
            return []
        try:
            episodes = CrisisHistoryRecord.model_validate(data).to_domain()
        except ValidationError:
            logger.error("Crisis history invalid, ignoring")
            return []
        return self._within_retention(episodes, now)

    def crisis_count_last_24h(self, now: Optional[datetime] = None) -> int:
        """Resolved episodes that started in the last 24 hours."""
        now = now or self._clock()
        cutoff = now - timedelta(hours=24)
        return sum(1 for e in self.crisis_history(now) if e.started_at > cutoff)

    def mandatory_checkin_at(self) -> Optional[datetime]:
        """Mandatory follow-up check-in time for the live session."""
        if self._session is None or not self._session.is_live:
            return None
        return self._session.mandatory_checkin_at(self._settings.mandatory_checkin_hours)

    def _within_retention(self, episodes: list[CrisisEpisode], now: datetime) -> list[CrisisEpisode]:
        cutoff = now - timedelta(days=self._settings.history_retention_days)
        return [e for e in episodes if e.started_at > cutoff]

    def _record_episode(self, session: CrisisSession, now: datetime) -> None:
        episodes = self.crisis_history(now)
        episodes.append(CrisisEpisode(started_at=session.entered_at, resolved_at=now))
        self._documents.write(
            CRISIS_HISTORY_KEY,
            CrisisHistoryRecord.from_domain(episodes).model_dump(mode="json"),
        )

    # -------------------------------------------------------------------------
    # Internals (caller holds the lock)
    # -------------------------------------------------------------------------

    def _transition(self, target: CrisisStatus, now: datetime) -> None:
        """Single chokepoint for status changes."""
        session = self._session
        if session is None:
            raise InvalidCrisisTransition("No crisis session", action=target.value)

        source = session.status
        if target not in self.ALLOWED_TRANSITIONS[source]:
            raise InvalidCrisisTransition(
                f"Illegal crisis transition {source.value} -> {target.value}",
                status=source,
                action=target.value,
            )

        if target == CrisisStatus.STABILIZING:
            session = replace(session, status=target, deadline=now + self.countdown)
        elif target == CrisisStatus.RESOLVED:
            session = replace(session, status=target, deadline=None, resolved_at=now, escalated=False)
        else:
            session = replace(session, status=target)
        self._session = session

        if target == CrisisStatus.RESOLVED:
            self._record_episode(session, now)
            self._documents.delete(CRISIS_START_KEY)
        else:
            self._persist()

        track_crisis_transition(source.value, target.value)
        logger.info(
            "Crisis status changed",
            from_status=source.value,
            to_status=target.value,
            session_id=str(session.session_id),
        )
        self._notify()

    def _require_status(self, status: CrisisStatus, action: str) -> CrisisSession:
        session = self._session
        if session is None or session.status != status:
            current = session.status if session is not None else None
            raise InvalidCrisisTransition(
                f"'{action}' requires {status.value}, current status is "
                f"{current.value if current else 'none'}",
                status=current,
                action=action,
            )
        return session

    def _persist(self) -> None:
        if self._session is None:
            return
        self._documents.write(CRISIS_START_KEY, CrisisStartRecord.from_domain(self._session).model_dump(mode="json"))

    def _load_persisted(self) -> Optional[CrisisSession]:
        data = self._documents.read(CRISIS_START_KEY)
        if data is None:
            return None
        try:
            session = CrisisStartRecord.model_validate(data).to_domain()
        except ValidationError:
            logger.error("Persisted crisis start invalid, ignoring")
            return None
        return session if session.is_live else None

    def _notify(self) -> None:
        if self._session is None:
            return
        for listener in self._listeners:
            listener(self._session)
