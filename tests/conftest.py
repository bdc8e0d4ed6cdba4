"""Shared fixtures: a fresh bus and set of stores wired into the app per test."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.domain.bus import EventBus
from app.domain.handlers import HandlerRegistry
from app.main import app, get_bus, get_repositories
from app.repos.memory import Repositories


@pytest.fixture()
def repos() -> Repositories:
    return Repositories()


@pytest.fixture()
def bus(repos: Repositories) -> EventBus:
    bus = EventBus()
    HandlerRegistry(bus=bus, repos=repos)
    return bus


@pytest.fixture()
def client(repos: Repositories, bus: EventBus):
    app.dependency_overrides[get_repositories] = lambda: repos
    app.dependency_overrides[get_bus] = lambda: bus
    yield TestClient(app)
    app.dependency_overrides.clear()
