"""Aiven services (Kafka, OpenSearch) and their settings."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

OPEN_SEARCH_ACCESSES = ["read", "write", "readwrite", "admin"]


class OpenSearchAccess(enum.Enum):
    """Access level granted to an OpenSearch instance."""

    READ = 0
    WRITE = 1
    READ_WRITE = 2
    ADMIN = 3

    def __str__(self) -> str:
        return OPEN_SEARCH_ACCESSES[self.value]


def open_search_access_from_string(access: str) -> OpenSearchAccess:
    """Parse an access level name, case-insensitively."""
    try:
        index = OPEN_SEARCH_ACCESSES.index(access.lower())
    except ValueError:
        raise ValueError(f"unknown access: {access}") from None
    return OpenSearchAccess(index)


def kafka_pool_from_string(pool: str) -> str:
    """Validate a Kafka pool name, which must hold tenant and environment."""
    if "-" not in pool:
        raise ValueError(f"invalid pool: {pool}")
    return pool


class SecretGenerator(Protocol):
    def create_kafka_configs(self) -> None: ...

    def create_open_search_configs(self) -> None: ...


@dataclass
class ServiceSetup:
    """Per-service settings taken from the command line."""

    instance: str = ""
    pool: str = ""
    access: OpenSearchAccess = OpenSearchAccess.READ


class Service(abc.ABC):
    """An Aiven service that an AivenApplication can request."""

    name: ClassVar[str]

    @abc.abstractmethod
    def setup(self, setup: ServiceSetup) -> None:
        """Take the settings relevant to this service."""

    @abc.abstractmethod
    def apply(self, spec: dict[str, Any], namespace: str) -> None:
        """Write this service's part of an AivenApplication spec."""

    @abc.abstractmethod
    def generate(self, generator: SecretGenerator) -> None:
        """Generate local configuration files for this service."""

    def is_same(self, other: Service) -> bool:
        return self.name == other.name


class Kafka(Service):
    name = "kafka"

    def __init__(self) -> None:
        self.pool = ""

    def setup(self, setup: ServiceSetup) -> None:
        self.pool = setup.pool

    def apply(self, spec: dict[str, Any], namespace: str) -> None:
        spec["kafka"] = {"pool": self.pool}

    def generate(self, generator: SecretGenerator) -> None:
        generator.create_kafka_configs()


class OpenSearch(Service):
    name = "opensearch"

    def __init__(self) -> None:
        self.instance = ""
        self.access = OpenSearchAccess.READ

    def setup(self, setup: ServiceSetup) -> None:
        self.instance = setup.instance
        self.access = setup.access

    def apply(self, spec: dict[str, Any], namespace: str) -> None:
        spec["openSearch"] = {
            "instance": f"opensearch-{namespace}-{self.instance}",
            "access": str(self.access),
        }

    def generate(self, generator: SecretGenerator) -> None:
        generator.create_open_search_configs()


_SERVICES: dict[str, type[Service]] = {cls.name: cls for cls in (Kafka, OpenSearch)}


def from_string(service: str) -> Service:
    """Return a new service for the given name, case-insensitively."""
    cls = _SERVICES.get(service.lower())
    if cls is None:
        raise ValueError(f"unknown service: {service}")
    return cls()