"""
Infrastructure package for the transaction producer.

Centralizes external client construction (the Kafka producer). Keep this
layer focused on I/O client setup, decoupled from generation and sink logic.
"""

from txn_producer.infrastructure.kafka_factory import KafkaProducerConfig, create_producer

__all__ = ["KafkaProducerConfig", "create_producer"]
