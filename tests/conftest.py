"""Shared fixtures: a Truffle-style artifact set and an in-memory ledger."""
from __future__ import annotations

import pytest

from fakes import FakeLedger, library_payload, logic_payload, proxy_payload
from proxy_bootstrap.artifacts import ArtifactResolver


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def resolver() -> ArtifactResolver:
    return ArtifactResolver.from_payloads([library_payload(), logic_payload(), proxy_payload()])
