"""
Message Broker Client for Publishing Events
Using Redis Pub/Sub for simplicity
"""
import json
import redis
from typing import Any
from bridge.core.config import settings


class MessageBroker:
    """Redis-based message broker for asynchronous communication."""

    def __init__(self, host: str = settings.redis_host, port: int = settings.redis_port):
        self.redis_client = redis.Redis(
            host=host,
            port=port,
            db=0,
            decode_responses=True
        )

    def publish(self, channel: str, message: dict[str, Any]) -> None:
        """
        Publish a message to a channel.

        Args:
            channel: Channel name (e.g., 'bridge.transactions')
            message: Message data as dictionary
        """
        self.redis_client.publish(channel, json.dumps(message, default=str))

    def close(self):
        """Close the connection."""
        self.redis_client.close()


# Global instance
message_broker = MessageBroker()
