import json
import logging
import time

import pika
from pika.exceptions import AMQPError

from .. import config

logger = logging.getLogger(__name__)


class NullPublisher:
    """Publisher used when order events are disabled."""

    def publish(self, routing_key, message):
        logger.debug("Events disabled, dropping '%s'", routing_key)

    def close(self):
        pass


class RabbitMQProducer:
    """
    Publishes order lifecycle events to a durable topic exchange.

    The connection is opened lazily on the first publish. A failed publish is
    logged and dropped: events never fail the order operation that emits them.
    """

    def __init__(self, host=None, exchange_name=None, exchange_type="topic", connect_attempts=3):
        self.host = host or config.RABBITMQ_HOST
        self.exchange_name = exchange_name or config.EVENTS_EXCHANGE
        self.exchange_type = exchange_type
        self.connect_attempts = connect_attempts
        self.connection = None
        self.channel = None

    def connect(self):
        """Establishes a connection to RabbitMQ, retrying while the broker boots."""
        for attempt in range(1, self.connect_attempts + 1):
            try:
                parameters = pika.ConnectionParameters(
                    host=self.host, heartbeat=600, blocked_connection_timeout=300
                )
                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()
                # Declare the exchange (durable ensures it survives restarts)
                self.channel.exchange_declare(
                    exchange=self.exchange_name, exchange_type=self.exchange_type, durable=True
                )
                logger.info("Connected to RabbitMQ exchange '%s'", self.exchange_name)
                return
            except AMQPError as e:
                logger.warning("RabbitMQ not ready (attempt %d/%d): %s", attempt, self.connect_attempts, e)
                if attempt < self.connect_attempts:
                    time.sleep(1)
        raise ConnectionError(f"Could not connect to RabbitMQ at {self.host}")

    def publish(self, routing_key, message):
        """
        Publishes a message to the exchange with a specific routing key.

        Args:
            routing_key (str): The topic key (e.g., 'order.created').
            message (dict): The JSON serializable payload.
        """
        try:
            # Reconnect if the connection was lost
            if not self.connection or self.connection.is_closed:
                self.connect()
            self.channel.basic_publish(
                exchange=self.exchange_name,
                routing_key=routing_key,
                body=json.dumps(message, default=str),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type="application/json",
                ),
            )
            logger.info("Sent event '%s' for order %s", routing_key, message.get("order_number"))
        except (AMQPError, ConnectionError) as e:
            logger.error("Failed to publish '%s': %s", routing_key, e)

    def close(self):
        """Closes the connection cleanly."""
        if self.connection and not self.connection.is_closed:
            self.connection.close()


def create_publisher():
    if config.EVENTS_ENABLED:
        return RabbitMQProducer()
    return NullPublisher()
