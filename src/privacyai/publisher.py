"""
Publisher — sends an envelope on a named topic.
"""

import logging

from privacyai.connection import ConnectionManager
from privacyai.models.envelope import Envelope
from privacyai.transport.envelope import encode_envelope

logger = logging.getLogger(__name__)


class Publisher:
    def __init__(self, connection: ConnectionManager):
        self._connection = connection

    async def publish(self, topic: str, envelope: Envelope) -> bool:
        """Publish ``envelope`` on ``topic``. Returns False instead of raising; no retry."""
        if not self._connection.connected:
            logger.error(f"Cannot publish to {topic}: status is {self._connection.status.value}")
            return False

        payload = encode_envelope(envelope)

        peers = self._connection.peer_count()
        if peers == 0:
            logger.warning(f"No peers available for {topic}; not sending")
            return False

        logger.info(
            f"Publishing {envelope.kind.value} to {topic}: session={envelope.session_id} "
            f"message={envelope.message_id} content={envelope.content[:50]!r} peers={peers}"
        )
        try:
            ok = await self._connection.transport.publish(topic, payload)
        except Exception as e:
            logger.error(f"Publish to {topic} failed: {e}")
            return False

        if ok:
            logger.info(f"Message {envelope.message_id} acknowledged on {topic}")
        else:
            logger.error(f"Message {envelope.message_id} was not acknowledged by any peer")
        return ok
