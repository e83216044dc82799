"""
Backbone Module

Publish/subscribe backbone adapters, one instance per bridging session.

Components:
- BackboneAdapter: Abstract interface for backbone implementations
- InMemoryBackboneAdapter: Development/testing implementation
- RedisBackboneAdapter: Redis pub/sub implementation
- RabbitMQBackboneAdapter: RabbitMQ topic exchange implementation

Environment Variables:
- BRIDGE_BACKBONE: Backbone backend (memory, redis, rabbitmq)
- REDIS_URL: Redis connection URL
- RABBITMQ_URL: RabbitMQ connection URL
"""

from wsbridge.backbone.ports import (
    BackboneAdapter,
    BackboneClosedError,
    BackboneError,
    BackboneFactory,
    BackboneMessage,
    MessageHandler,
    PublishError,
    SubscribeError,
)
from wsbridge.backbone.memory import InMemoryBackboneAdapter, InMemoryBroker
from wsbridge.backbone.factory import create_backbone_factory, get_available_backends

__all__ = [
    # Port interfaces
    "BackboneAdapter",
    "BackboneFactory",
    "BackboneMessage",
    "MessageHandler",
    "BackboneError",
    "PublishError",
    "SubscribeError",
    "BackboneClosedError",
    # Implementations (always available)
    "InMemoryBackboneAdapter",
    "InMemoryBroker",
    # Factory
    "create_backbone_factory",
    "get_available_backends",
]
