"""
Kafka client factory for the transaction producer.

Translates `Settings` into a librdkafka configuration dictionary and builds
`confluent_kafka.Producer` instances from it. Construction does not contact
the brokers; unreachable brokers surface later as delivery failures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict

from confluent_kafka import KafkaException, Producer

from txn_producer.errors import SinkInitError
from txn_producer.utils.logging import get_logger

if TYPE_CHECKING:
    from txn_producer.config import Settings

log = get_logger(__name__)

# Local queue sized a few batches deep; BufferError is raised beyond it.
QUEUE_BATCHES = 20


@dataclass(frozen=True)
class KafkaProducerConfig:
    """
    Producer tuning derived from settings.

    Attributes
    ----------
    bootstrap_servers : str
        Comma-separated ``host:port`` list.
    compression_type : str
        ``none``, ``snappy``, ``gzip``, ``lz4`` or ``zstd``.
    batch_num_messages : int
        Messages per broker batch.
    linger_ms : int
        Maximum time a message waits for its batch to fill.
    """

    bootstrap_servers: str
    compression_type: str = "snappy"
    batch_num_messages: int = 5_000
    linger_ms: int = 100
    acks: str = "1"
    retries: int = 3
    retry_backoff_ms: int = 100
    client_id: str = "txn-producer"

    @classmethod
    def from_settings(cls, settings: "Settings") -> "KafkaProducerConfig":
        return cls(
            bootstrap_servers=",".join(settings.kafka_broker_list),
            compression_type=settings.kafka_compression,
            batch_num_messages=settings.kafka_batch_size,
            linger_ms=settings.kafka_flush_frequency,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Render as a librdkafka configuration dictionary."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "client.id": self.client_id,
            "compression.type": self.compression_type,
            "batch.num.messages": self.batch_num_messages,
            "linger.ms": self.linger_ms,
            "queue.buffering.max.messages": max(
                100_000, self.batch_num_messages * QUEUE_BATCHES
            ),
            "acks": self.acks,
            "retries": self.retries,
            "retry.backoff.ms": self.retry_backoff_ms,
        }


def create_producer(config: KafkaProducerConfig) -> Producer:
    """
    Build a `confluent_kafka.Producer`.

    Raises
    ------
    SinkInitError
        If librdkafka rejects the configuration.
    """
    try:
        producer = Producer(config.to_dict())
    except (KafkaException, ValueError, TypeError) as exc:
        raise SinkInitError("kafka", f"invalid producer configuration: {exc}") from exc
    log.info(
        "Kafka producer created",
        extra={
            "brokers": config.bootstrap_servers,
            "compression": config.compression_type,
            "batch_num_messages": config.batch_num_messages,
            "linger_ms": config.linger_ms,
        },
    )
    return producer


__all__ = ["KafkaProducerConfig", "create_producer"]
