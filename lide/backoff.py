"""Delayed corrective Enter keystrokes for pasted input awaiting confirmation.

Long input pasted into the CLI is collapsed into a ``[Pasted text #N +M
lines]`` placeholder that needs an extra Enter. After each ``input`` the
scheduler arms a campaign of timers; each one re-reads the session state
when it fires and only sends Enter while the state is still
``waiting_confirm`` or ``unknown``.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import structlog

from lide.models import CliState

logger = structlog.get_logger(__name__)

RETRY_STATES = frozenset({CliState.WAITING_CONFIRM, CliState.UNKNOWN})


class BackoffCampaign:
    """The timers armed by one ``schedule`` call for one session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.handles: list[asyncio.TimerHandle] = []
        self.fired = 0
        self.cancelled = False

    @property
    def pending(self) -> int:
        if self.cancelled:
            return 0
        return len(self.handles) - self.fired

    def cancel(self) -> None:
        self.cancelled = True
        for handle in self.handles:
            handle.cancel()
        self.handles.clear()


class BackoffScheduler:
    """Holds at most one campaign per session; re-arming replaces it.

    Args:
        state_of: Returns the current state of a session, or None if the
            session no longer exists.
        send_enter: Writes a single Enter into the session's process.
        delays: Ascending delays in seconds, measured from ``schedule``.
    """

    def __init__(
        self,
        state_of: Callable[[str], CliState | None],
        send_enter: Callable[[str], None],
        delays: tuple[float, ...],
    ) -> None:
        self._state_of = state_of
        self._send_enter = send_enter
        self.delays = tuple(sorted(delays))
        self._campaigns: dict[str, BackoffCampaign] = {}

    def schedule(self, session_id: str) -> BackoffCampaign:
        self.cancel(session_id)
        loop = asyncio.get_running_loop()
        campaign = BackoffCampaign(session_id)
        for attempt, delay in enumerate(self.delays, start=1):
            campaign.handles.append(
                loop.call_later(delay, self._fire, campaign, attempt, delay)
            )
        self._campaigns[session_id] = campaign
        logger.debug("Armed paste confirmation", session_id=session_id, delays=self.delays)
        return campaign

    def cancel(self, session_id: str) -> None:
        campaign = self._campaigns.pop(session_id, None)
        if campaign is not None:
            campaign.cancel()

    def cancel_all(self) -> None:
        for session_id in list(self._campaigns):
            self.cancel(session_id)

    def pending(self, session_id: str) -> int:
        campaign = self._campaigns.get(session_id)
        return campaign.pending if campaign else 0

    def _fire(self, campaign: BackoffCampaign, attempt: int, delay: float) -> None:
        if campaign.cancelled or self._campaigns.get(campaign.session_id) is not campaign:
            return
        session_id = campaign.session_id
        campaign.fired += 1
        if campaign.pending == 0:
            self._campaigns.pop(session_id, None)
        state = self._state_of(session_id)
        if state not in RETRY_STATES:
            return
        logger.info(
            "Sending paste confirmation Enter",
            session_id=session_id,
            attempt=attempt,
            delay=delay,
            state=state.value,
        )
        try:
            self._send_enter(session_id)
        except Exception:
            logger.warning("Paste confirmation Enter failed", session_id=session_id, exc_info=True)
