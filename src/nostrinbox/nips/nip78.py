"""NIP-78 application data mirror for the follower baseline.

The baseline snapshot is published as a parameterized replaceable
kind 30078 event tagged ``d=nostrinbox:follower-baseline``, with the JSON
payload NIP-04 encrypted to the local identity itself. Only the owner can
read it back, and relays keep the latest version only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from nostrinbox.models.baseline import FollowerBaselineSnapshot
from nostrinbox.models.constants import EventKind
from nostrinbox.models.filter import EventFilter


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nostrinbox.models.event import Event
    from nostrinbox.utils.keys import KeyStore


logger = logging.getLogger(__name__)

BASELINE_D_TAG = "nostrinbox:follower-baseline"


def baseline_filter(pubkey: str) -> EventFilter:
    """Filter selecting the mirrored baseline of *pubkey*."""
    return EventFilter(
        kinds=(EventKind.APP_DATA,),
        authors=(pubkey,),
        tags={"d": (BASELINE_D_TAG,)},
        limit=1,
    )


async def build_baseline_event(
    key_store: KeyStore, snapshot: FollowerBaselineSnapshot
) -> Event:
    """Encrypt *snapshot* to self and sign the app-data event."""
    me = key_store.public_key()
    ciphertext = await key_store.nip04_encrypt(me, snapshot.to_bytes().decode("utf-8"))
    return await key_store.sign_event(EventKind.APP_DATA, ciphertext, [["d", BASELINE_D_TAG]])


async def parse_baseline_event(
    key_store: KeyStore, event: Event
) -> FollowerBaselineSnapshot | None:
    """Decrypt a mirrored baseline, or None when it is not ours or unreadable."""
    me = key_store.public_key()
    if (
        event.event_kind is not EventKind.APP_DATA
        or event.pubkey != me
        or event.first_tag("d") != BASELINE_D_TAG
    ):
        return None
    try:
        plaintext = await key_store.nip04_decrypt(me, event.content)
    except asyncio.CancelledError:
        raise
    except Exception as e:  # noqa: BLE001  # crypto backends raise arbitrary types
        logger.warning("baseline_mirror_decrypt_failed id=%s error=%s", event.id, e)
        return None
    try:
        return FollowerBaselineSnapshot.from_bytes(plaintext.encode("utf-8"))
    except ValueError as e:
        logger.warning("baseline_mirror_invalid id=%s error=%s", event.id, e)
        return None


async def latest_baseline(
    key_store: KeyStore, events: Iterable[Event]
) -> FollowerBaselineSnapshot | None:
    """Parse the newest readable mirrored baseline among *events*."""
    for event in sorted(events, key=lambda e: (e.created_at, e.id), reverse=True):
        snapshot = await parse_baseline_event(key_store, event)
        if snapshot is not None:
            return snapshot
    return None
