"""
Kafka Broker

Producer, admin and consumer plumbing over aiokafka.

The producer is idempotent (acks=all) and publish calls are bounded by a
semaphore so broker-side retries cannot duplicate or reorder records within
a partition. ``ready`` only becomes true after producer connect, admin
connect and topic provisioning have all completed.
"""
import asyncio
import json
from typing import Awaitable, Callable, Iterable

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.errors import KafkaError, TopicAlreadyExistsError

from notifyhub.config import Settings
from notifyhub.errors import BrokerNotReadyError, ShutdownRequested
from notifyhub.logging_config import get_logger
from notifyhub.models.message import NotificationMessage

log = get_logger(component="broker")


def serialize_value(value: dict) -> bytes:
    return json.dumps(value).encode("utf-8")


def serialize_key(key: str) -> bytes:
    return key.encode("utf-8")


class KafkaBroker:
    """Owns one idempotent producer and the admin client used at startup."""

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str,
        topics: Iterable[str],
        partitions: int = 3,
        replication_factor: int = 1,
        max_in_flight: int = 5,
        connect_retries: int = 10,
        initial_retry_delay: float = 0.3,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.topics = list(topics)
        self.partitions = partitions
        self.replication_factor = replication_factor
        self.connect_retries = connect_retries
        self.initial_retry_delay = initial_retry_delay
        self._publish_slots = asyncio.Semaphore(max_in_flight)

        self.producer: AIOKafkaProducer | None = None
        self.producer_connected = False
        self.admin_connected = False
        self.topics_ready = False

    @classmethod
    def from_settings(cls, settings: Settings, client_id: str | None = None) -> "KafkaBroker":
        return cls(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            client_id=client_id or settings.KAFKA_CLIENT_ID,
            topics=[settings.NOTIFICATION_TOPIC, settings.RETRY_TOPIC],
            partitions=settings.KAFKA_TOPIC_PARTITIONS,
            replication_factor=settings.KAFKA_REPLICATION_FACTOR,
            max_in_flight=settings.KAFKA_MAX_IN_FLIGHT,
            connect_retries=settings.BROKER_CONNECT_RETRIES,
        )

    @property
    def ready(self) -> bool:
        return self.producer_connected and self.admin_connected and self.topics_ready

    async def start(self) -> None:
        """
        Connect the producer, then the admin client, then provision topics.

        Each step is retried with exponential backoff. Raises KafkaError when
        the retries are exhausted.
        """
        await self._with_retries("producer_connect", self._connect_producer)
        self.producer_connected = True
        log.info("kafka_producer_connected")

        await self._with_retries("topic_provisioning", self._ensure_topics)
        self.topics_ready = True
        log.info("kafka_broker_ready", topics=self.topics)

    async def stop(self) -> None:
        self.topics_ready = False
        self.admin_connected = False
        self.producer_connected = False
        if self.producer is not None:
            await self.producer.stop()
            self.producer = None

    async def _with_retries(self, step: str, fn: Callable[[], Awaitable[None]]) -> None:
        delay = self.initial_retry_delay
        for attempt in range(1, self.connect_retries + 1):
            try:
                await fn()
                return
            except (KafkaError, OSError) as e:
                if attempt == self.connect_retries:
                    log.error("kafka_startup_failed", step=step, attempts=attempt, error=str(e))
                    raise
                log.warning("kafka_startup_retry", step=step, attempt=attempt, error=str(e))
                await asyncio.sleep(delay)
                delay = min(delay * 2, 30)

    async def _connect_producer(self) -> None:
        producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            client_id=self.client_id,
            acks="all",
            enable_idempotence=True,
            value_serializer=serialize_value,
            key_serializer=serialize_key,
        )
        try:
            await producer.start()
        except BaseException:
            await producer.stop()
            raise
        self.producer = producer

    async def _ensure_topics(self) -> None:
        admin = AIOKafkaAdminClient(
            bootstrap_servers=self.bootstrap_servers,
            client_id=f"{self.client_id}-admin",
        )
        await admin.start()
        self.admin_connected = True
        log.info("kafka_admin_connected")
        try:
            existing = set(await admin.list_topics())
            missing = [t for t in self.topics if t not in existing]
            if missing:
                try:
                    await admin.create_topics([
                        NewTopic(
                            name=topic,
                            num_partitions=self.partitions,
                            replication_factor=self.replication_factor,
                        )
                        for topic in missing
                    ])
                    log.info("kafka_topics_created", topics=missing)
                except TopicAlreadyExistsError:
                    # Another instance created them first
                    pass
        finally:
            await admin.close()

    async def publish_batch(self, topic: str, messages: list[NotificationMessage]) -> None:
        """
        Publish messages keyed by request id and wait for every ack.

        Raises:
            BrokerNotReadyError: if startup has not completed
            KafkaError: if any record could not be delivered
        """
        if not self.ready or self.producer is None:
            raise BrokerNotReadyError()
        if not messages:
            return

        async with self._publish_slots:
            futures = [
                await self.producer.send(topic, value=message.to_payload(), key=message.key)
                for message in messages
            ]
            await asyncio.gather(*futures)

    async def publish(self, topic: str, message: NotificationMessage) -> None:
        await self.publish_batch(topic, [message])

    def create_consumer(self, topic: str, group_id: str) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            topic,
            bootstrap_servers=self.bootstrap_servers,
            client_id=f"{self.client_id}-{topic}",
            group_id=group_id,
            enable_auto_commit=False,
            auto_offset_reset="latest",
        )

    async def consume(
        self,
        topic: str,
        group_id: str,
        handler: Callable[[bytes], Awaitable[None]],
        stop_event: asyncio.Event,
    ) -> None:
        """
        Run a consumer-group loop, committing each offset after its handler returns.

        The handler must not raise for business-level failures. A
        ShutdownRequested from the handler leaves that record uncommitted so it
        is redelivered to the next owner of the partition.
        """
        consumer = self.create_consumer(topic, group_id)
        await consumer.start()
        log.info("kafka_consumer_started", topic=topic, group_id=group_id)
        try:
            while not stop_event.is_set():
                batches = await consumer.getmany(timeout_ms=1000)
                for tp, records in batches.items():
                    for record in records:
                        if stop_event.is_set():
                            return
                        try:
                            await handler(record.value)
                        except ShutdownRequested:
                            return
                        await consumer.commit({tp: record.offset + 1})
        finally:
            await consumer.stop()
            log.info("kafka_consumer_stopped", topic=topic)
