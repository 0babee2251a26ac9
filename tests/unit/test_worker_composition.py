import asyncio

import pytest

from relay_worker.app.composition import create_worker_dependencies, delivery_policy_from_settings
from relay_worker.app.config.settings import Settings
from relay_worker.app.domain.models import DeliveryPolicy
from relay_worker.app.infrastructure.messaging.factory import create_message_consumer
from relay_worker.app.infrastructure.messaging.inmemory.in_memory_queue import (
    InMemoryConsumer,
    InMemoryDeadLetterSink,
)
from relay_worker.app.infrastructure.persistence.factory import create_dead_letter_sink
from relay_worker.app.ports.upstream_client import UpstreamConfigurationError

BASE_ENV = {
    "BROKER_HOST": "localhost",
    "BROKER_PORT": "5672",
    "BROKER_USER": "guest",
    "BROKER_PASSWORD": "guest",
    "QUEUE_NAME": "subscribers",
    "QUEUE_MAX_LENGTH": "1000",
    "MAILCHIMP_API_KEY": "abc123-us21",
    "MAILCHIMP_LIST_ID": "list42",
    "CONSUMER_BACKEND": "inmemory",
    "DEAD_LETTER_BACKEND": "inmemory",
}


@pytest.fixture()
def env(monkeypatch):
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def test_defaults_give_documented_policy(env):
    policy = delivery_policy_from_settings(Settings(_env_file=None))

    assert policy == DeliveryPolicy(
        group_size=10,
        inter_group_pause_seconds=0.25,
        max_attempts=5,
        backoff_base_seconds=30.0,
        backoff_max_seconds=300.0,
    )


def test_policy_overrides_from_environment(env):
    env.setenv("GROUP_SIZE", "4")
    env.setenv("INTER_GROUP_PAUSE_MS", "1000")
    env.setenv("MAX_ATTEMPTS_BEFORE_DEAD_LETTER", "3")

    policy = delivery_policy_from_settings(Settings(_env_file=None))

    assert policy.group_size == 4
    assert policy.inter_group_pause_seconds == 1.0
    assert policy.max_attempts == 3


def test_invalid_policy_is_rejected(env):
    env.setenv("GROUP_SIZE", "0")
    with pytest.raises(ValueError):
        delivery_policy_from_settings(Settings(_env_file=None))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"inter_group_pause_seconds": -1},
        {"backoff_base_seconds": 60, "backoff_max_seconds": 30},
    ],
)
def test_delivery_policy_validation(kwargs):
    with pytest.raises(ValueError):
        DeliveryPolicy(**kwargs)


def test_dead_letter_queue_name_defaults_from_queue(env):
    assert Settings(_env_file=None).resolved_dead_letter_queue_name == "subscribers.dlq"
    env.setenv("DEAD_LETTER_QUEUE_NAME", "custom.dlq")
    assert Settings(_env_file=None).resolved_dead_letter_queue_name == "custom.dlq"


def test_factories_select_in_memory_backends(env):
    settings = Settings(_env_file=None)

    assert isinstance(create_message_consumer(settings), InMemoryConsumer)
    assert isinstance(asyncio.run(create_dead_letter_sink(settings)), InMemoryDeadLetterSink)


def test_unknown_backend_is_rejected(env):
    env.setenv("CONSUMER_BACKEND", "kafka")
    with pytest.raises(ValueError):
        create_message_consumer(Settings(_env_file=None))


def test_connect_wires_dispatcher(env):
    deps = create_worker_dependencies(Settings(_env_file=None))

    async def run():
        await deps.connect()
        try:
            return deps.dispatcher
        finally:
            await deps.close()

    assert asyncio.run(run()) is not None
    with pytest.raises(RuntimeError):
        _ = deps.dispatcher


def test_connect_fails_fast_on_bad_api_key(env):
    env.setenv("MAILCHIMP_API_KEY", "no-suffix-")
    deps = create_worker_dependencies(Settings(_env_file=None))

    async def run():
        try:
            await deps.connect()
        finally:
            await deps.close()

    with pytest.raises(UpstreamConfigurationError):
        asyncio.run(run())
