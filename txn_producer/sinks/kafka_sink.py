"""
Kafka sink.

Publishes each transaction as a JSON object keyed by its ID. The producer
client batches and compresses on its own; this sink hands records over one
at a time, and a background poller thread serves the delivery callbacks that
count acknowledged and failed messages. Delivery failures are logged and
counted, never raised.
"""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Any, Iterable, Optional, Tuple

from confluent_kafka import KafkaError, KafkaException, Message
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
)

from txn_producer.domain.models import TRANSACTION_FIELDS, Transaction
from txn_producer.infrastructure.kafka_factory import KafkaProducerConfig, create_producer
from txn_producer.sinks.abstract import AbstractSink
from txn_producer.utils.logging import get_logger

if TYPE_CHECKING:
    from confluent_kafka import Producer

    from txn_producer.config import Settings
    from txn_producer.metrics import MetricsAggregator

log = get_logger(__name__)

PRODUCE_ATTEMPTS = 5
# Seconds to serve callbacks while the local queue is full.
QUEUE_FULL_POLL = 1.0


def _cancelled(retry_state: RetryCallState) -> bool:
    return retry_state.args[0].cancelled


def _serve_delivery_reports(retry_state: RetryCallState) -> None:
    sink: KafkaSink = retry_state.args[0]
    log.warning(
        "Kafka local queue full, polling before retry",
        extra={"attempt": retry_state.attempt_number, "topic": sink.topic},
    )
    sink.producer.poll(QUEUE_FULL_POLL)


class KafkaSink(AbstractSink):
    """
    Streaming sink backed by `confluent_kafka.Producer`.

    Parameters
    ----------
    topic : str
        Destination topic.
    producer : confluent_kafka.Producer
        Configured client; see `KafkaSink.from_settings`.
    async_mode : bool
        When False, the client is flushed after every message. Once the sink is
        cancelled the per-message flush is skipped and a full local queue is
        no longer retried, so draining a stalled sink stays bounded.
    metrics : MetricsAggregator, optional
        Receives acknowledged/error counts from the delivery callback.
    close_timeout : float
        Seconds `close` waits for outstanding deliveries.
    poll_interval : float
        Poller thread's ``poll`` timeout.
    """

    name = "kafka"
    io_errors = (OSError, KafkaException)

    def __init__(
        self,
        topic: str,
        producer: "Producer",
        async_mode: bool = True,
        metrics: Optional["MetricsAggregator"] = None,
        close_timeout: float = 30.0,
        poll_interval: float = 0.1,
    ) -> None:
        super().__init__(buffer_size=1, metrics=metrics)
        self.topic = topic
        self.producer = producer
        self.async_mode = async_mode
        self.close_timeout = close_timeout
        self.poll_interval = poll_interval
        self._stop_polling = threading.Event()
        self._poller = threading.Thread(
            target=self._poll_loop, name="kafka-poller", daemon=True
        )
        self._poller.start()

    @classmethod
    def from_settings(
        cls, settings: "Settings", metrics: Optional["MetricsAggregator"] = None
    ) -> "KafkaSink":
        producer = create_producer(KafkaProducerConfig.from_settings(settings))
        log.info(
            "Kafka sink opened",
            extra={"topic": settings.kafka_topic, "async": settings.kafka_async},
        )
        return cls(
            settings.kafka_topic,
            producer,
            async_mode=settings.kafka_async,
            metrics=metrics,
        )

    def _poll_loop(self) -> None:
        while not self._stop_polling.is_set():
            self.producer.poll(self.poll_interval)

    def _on_delivery(self, err: Optional[KafkaError], msg: Message) -> None:
        if err is not None:
            self._record_error()
            key = msg.key() if msg is not None else None
            log.error(
                "Kafka delivery failed",
                extra={
                    "topic": self.topic,
                    "key": key.decode("utf-8", "replace") if key else None,
                    "error": str(err),
                },
            )
        else:
            self._record_written(1)

    def _encode(self, record: Transaction) -> Tuple[bytes, bytes]:
        payload = dict(zip(TRANSACTION_FIELDS, record.to_row()))
        return record.id.encode("utf-8"), json.dumps(payload).encode("utf-8")

    @retry(
        retry=retry_if_exception_type(BufferError),
        stop=stop_any(stop_after_attempt(PRODUCE_ATTEMPTS), _cancelled),
        before_sleep=_serve_delivery_reports,
        reraise=True,
    )
    def _produce(self, key: bytes, value: bytes) -> None:
        self.producer.produce(self.topic, key=key, value=value, on_delivery=self._on_delivery)

    def _publish(self, key: bytes, value: bytes) -> None:
        try:
            self._produce(key, value)
        except (BufferError, KafkaException) as exc:
            self._record_error()
            log.error(
                "Kafka produce failed",
                extra={"topic": self.topic, "key": key.decode("utf-8"), "error": str(exc)},
            )
            return
        if not self.async_mode and not self.cancelled:
            self.producer.flush(self.close_timeout)

    def write(self, records: Iterable[Transaction]) -> None:
        for record in records:
            ok, encoded = self._encode_or_skip(record)
            if ok:
                self._publish(*encoded)

    def _flush_batch(self, batch: Any) -> int:
        """Unused: `write` publishes each record directly, so nothing is buffered."""
        return 0

    def _release(self) -> None:
        self._stop_polling.set()
        self._poller.join()
        pending = self.producer.flush(self.close_timeout)
        if pending:
            self._record_error(pending)
            log.warning(
                "Kafka messages undelivered at close",
                extra={"topic": self.topic, "pending": pending},
            )
        log.info(
            "Kafka sink closed",
            extra={"topic": self.topic, "acknowledged": self.count(), "errors": self.errors()},
        )


__all__ = ["KafkaSink"]
