"""
Redis status publishing

Daemons report their counters to a Redis hash for monitoring, and accepted
notices are appended to a capped Redis stream. Without a client (dry run)
both calls only log at debug level.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from gcn_alerts.schema import NoticeRecord

NOTICE_STREAM = "gcn:notices"
STREAM_MAXLEN = 10000


class StatusPublisher:
    """Writes daemon status and accepted notices to Redis"""

    def __init__(
        self,
        redis_client=None,
        status_key: str = "gcn:script_starter:status",
        stream_name: str = NOTICE_STREAM,
        logger: Optional[logging.Logger] = None
    ):
        self.redis = redis_client
        self.status_key = status_key
        self.stream_name = stream_name
        self.logger = logger or logging.getLogger(__name__)
        self.notices_published = 0
        self.errors = 0

    async def update_status(self, status: Dict):
        """Write the status hash, stamping last_update"""
        mapping = {k: (str(v) if isinstance(v, bool) else v) for k, v in status.items()}
        mapping["last_update"] = datetime.now(timezone.utc).isoformat()

        if self.redis is None:
            self.logger.debug(f"Would update {self.status_key}: {mapping}")
            return

        try:
            await self.redis.hset(self.status_key, mapping=mapping)
        except Exception as e:
            self.logger.error(f"Error updating status: {e}")
            self.errors += 1

    async def publish_notice(self, record: NoticeRecord):
        """Append an accepted notice to the notice stream"""
        if self.redis is None:
            self.logger.debug(f"Would publish: {record.mission.label} "
                              f"trigger={record.trigger_number} seq={record.sequence_number}")
            return

        try:
            await self.redis.xadd(self.stream_name, record.to_redis_dict(), maxlen=STREAM_MAXLEN)
            self.notices_published += 1
        except Exception as e:
            self.logger.error(f"Error publishing to Redis: {e}")
            self.errors += 1


async def connect_redis(url: str, logger: Optional[logging.Logger] = None):
    """
    Connect and ping a Redis server.

    Returns:
        The client, or None when the server is unreachable (dry-run mode)
    """
    import redis.asyncio as redis

    logger = logger or logging.getLogger(__name__)
    client = redis.from_url(url)
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Could not connect to Redis: {e}, running in dry-run mode")
        await client.close()
        return None
    logger.info(f"Connected to Redis at {url}")
    return client
