"""Mission claim protocol shared with other scheduler processes.

Each scheduler stamps missions it owns with a ``session_key`` carrying its
prefix. Taking ownership is one conditional store write; the loser sees no
row and backs off until the next tick.
"""

from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass

from missionctl.errors import StoreError
from missionctl.protocol.models import CLAIMABLE_MISSION_STATUSES, Mission, iso_from_ms
from missionctl.store.base import MissionStore

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits


def owns_session(session_key: str | None, prefix: str) -> bool:
    return bool(session_key) and session_key.startswith(f"{prefix}:")  # type: ignore[union-attr]


def new_session_key(prefix: str, now_ms: float, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    suffix = "".join(rng.choice(_ALPHABET) for _ in range(6))
    return f"{prefix}:{int(now_ms)}:{suffix}"


@dataclass(slots=True)
class ClaimResult:
    claimed: bool
    mission: Mission | None = None
    reason: str = ""


async def claim_mission(
    store: MissionStore,
    mission: Mission,
    *,
    prefix: str,
    now_ms: float,
) -> ClaimResult:
    """Claim *mission* for this process.

    Past the claimable statuses (in_progress, pending_review, terminal) only
    ownership counts, with no write. Otherwise one conditional store write
    decides the race; a foreign session key is never overwritten and our own
    key is reused.
    """
    existing = mission.session_key or ""
    if mission.status not in CLAIMABLE_MISSION_STATUSES:
        if owns_session(existing, prefix):
            return ClaimResult(True, mission)
        return ClaimResult(False, reason=f"mission is {mission.status} under another scheduler")
    if existing and not owns_session(existing, prefix):
        return ClaimResult(False, reason=f"mission held by session {existing.split(':', 1)[0]}")

    session_key = existing or new_session_key(prefix, now_ms)
    try:
        claimed = await store.claim_mission(
            mission.id,
            session_key=session_key,
            started_at=mission.started_at or iso_from_ms(now_ms),
            origin=prefix,
        )
    except StoreError as exc:
        logger.error("failed claiming mission %s: %s", mission.id, exc)
        return ClaimResult(False, reason=str(exc))
    if claimed is None:
        return ClaimResult(False, reason="conditional update matched no row")
    logger.debug("claimed mission %s with %s", mission.id, session_key)
    return ClaimResult(True, claimed)
