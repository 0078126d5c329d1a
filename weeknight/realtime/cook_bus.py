import json
import logging

from weeknight.infra.redis_client import get_redis

logger = logging.getLogger("weeknight.bus")


def channel_for_session(session_id: str) -> str:
    return f"weeknight:cook:session:{session_id}"


async def publish_event(session_id: str, event: str, payload: dict):
    """Mirror one cook event onto the session's Redis channel."""
    r = await get_redis()
    message = {"type": event, "session_id": session_id, "data": payload}
    await r.publish(channel_for_session(session_id), json.dumps(message, default=str))


async def subscribe_session(session_id: str):
    r = await get_redis()
    pubsub = r.pubsub()
    await pubsub.subscribe(channel_for_session(session_id))
    return pubsub
