"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between the order service and its consumers

Wraps nats-py with the Event envelope used on every topic.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import nats
from nats.aio.client import Client as NATS
from nats.aio.msg import Msg
from nats.js import JetStreamContext
from nats.js.errors import APIError


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that keeps Decimal precision"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Topics carried on the order lifecycle channel"""

    # Order Events
    ORDER_CREATED = "order.created"
    ORDER_STATUS_UPDATED = "order.status.updated"
    ORDER_CANCELLED = "order.cancelled"

    # Payment Events
    PAYMENT_PROCESSED = "payment.processed"


class ServiceSource(Enum):
    """Components that publish events"""

    ORDER_SERVICE = "order_service"
    PAYMENT_SERVICE = "payment_service"


class Event:
    """Event envelope"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), cls=DecimalEncoder).encode()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id") or str(uuid.uuid4())
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event

    @classmethod
    def from_json(cls, raw: bytes) -> "Event":
        return cls.from_dict(json.loads(raw.decode()))


EventHandler = Callable[[Event], Awaitable[Any]]


class NATSEventBus:
    """
    NATS JetStream event bus.

    Publishing is fire-and-forget from the caller's point of view. Inbound
    messages are dispatched on their own tasks, bounded by a semaphore that
    acts as the worker pool; handlers for different messages may overlap.
    """

    def __init__(
        self,
        service_name: str,
        servers: str = "nats://localhost:4222",
        max_workers: int = 10,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (connection name)
            servers: NATS server URL(s), comma separated
            max_workers: Maximum number of messages handled concurrently
        """
        self.service_name = service_name
        self.servers = [s.strip() for s in servers.split(",") if s.strip()]

        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._subscriptions: Dict[str, Any] = {}
        self._known_streams: Set[str] = set()
        self._workers = asyncio.Semaphore(max_workers)
        self._inflight: Set[asyncio.Task] = set()
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {', '.join(self.servers)}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(servers=self.servers, name=self.service_name)
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to JetStream.

        The subject is the event type (e.g. "order.created"); the stream is
        derived from its first segment.

        Returns:
            True when JetStream acknowledged the message
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            stream_name = self._get_stream_name_for_event(event.type)
            await self._ensure_stream(stream_name, event.type)

            ack = await self._js.publish(event.type, event.to_json(), stream=stream_name)
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id} ({event.type}): {e}")
            return False

    async def subscribe_to_events(
        self, pattern: str, handler: EventHandler, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to a subject with a durable JetStream push consumer.

        Args:
            pattern: Subject to subscribe to (e.g. "order.created")
            handler: Async callback receiving the decoded Event
            durable: Durable consumer name

        Returns:
            The durable name (or pattern) on success, None otherwise
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return None

        stream_name = self._get_stream_name_for_event(pattern)
        consumer_name = durable or f"{pattern.replace('.', '-')}-consumer"

        async def _on_message(msg: Msg):
            await self._workers.acquire()
            task = asyncio.create_task(self._dispatch(msg, handler))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

        try:
            await self._ensure_stream(stream_name, pattern)
            sub = await self._js.subscribe(
                pattern,
                durable=consumer_name,
                stream=stream_name,
                cb=_on_message,
                manual_ack=True,
            )
            self._subscriptions[pattern] = sub
            logger.info(f"Subscribed to {pattern} (stream={stream_name}, consumer={consumer_name})")
            return consumer_name

        except Exception as e:
            logger.error(f"Error subscribing to {pattern}: {e}")
            return None

    async def _dispatch(self, msg: Msg, handler: EventHandler):
        """Decode one message, run its handler and acknowledge it"""
        try:
            event = Event.from_json(msg.data)
            if not event.type:
                event.type = msg.subject
            await handler(event)
        except Exception as e:
            # No dead-letter queue: the message is dropped after logging
            logger.error(f"Error processing message on {msg.subject}: {e}", exc_info=True)
        finally:
            self._workers.release()
            try:
                await msg.ack()
            except Exception as ack_error:
                logger.warning(f"Failed to ack message on {msg.subject}: {ack_error}")

    async def _ensure_stream(self, stream_name: str, subject: str):
        if stream_name in self._known_streams:
            return
        prefix = subject.split('.')[0]
        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"])
        except APIError as e:
            logger.debug(f"Stream creation note for {stream_name}: {e}")
        self._known_streams.add(stream_name)

    def _get_stream_name_for_event(self, event_type: str) -> str:
        """
        Determine the JetStream stream name based on event type.

        - order.* -> order-stream
        - payment.* -> payment-stream
        """
        prefix = event_type.split('.')[0]
        return f"{prefix}-stream"

    async def unsubscribe(self, pattern: str) -> bool:
        """Stop delivering a subject to its handler"""
        sub = self._subscriptions.pop(pattern, None)
        if sub is None:
            return False
        await sub.unsubscribe()
        logger.info(f"Unsubscribed from {pattern}")
        return True

    async def close(self):
        """Drain subscriptions and close the connection"""
        for pattern in list(self._subscriptions.keys()):
            await self.unsubscribe(pattern)

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

        if self._nc:
            await self._nc.drain()
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    servers: str = "nats://localhost:4222",
    max_workers: int = 10,
) -> NATSEventBus:
    """
    Get or create event bus instance.

    Args:
        service_name: Name of the service using the event bus
        servers: NATS server URL(s)
        max_workers: Worker pool size for inbound messages

    Returns:
        Connected NATSEventBus instance
    """
    global _event_bus

    if _event_bus is None:
        _event_bus = NATSEventBus(
            service_name=service_name,
            servers=servers,
            max_workers=max_workers,
        )
        await _event_bus.connect()

    return _event_bus


def create_event(
    event_type: EventType,
    source: ServiceSource,
    data: Dict[str, Any],
    subject: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> Event:
    """Create an Event instance"""
    return Event(
        event_type=event_type,
        source=source,
        data=data,
        subject=subject,
        metadata=metadata,
    )
