"""Shared fixtures: in-memory stores, a small validator pool."""

import pytest

from esla.engine.domain import EvidenceInfo, SlaLevel, Validator
from esla.engine.policy import default_policy_table
from esla.engine.service import ValidationService
from esla.storage.memory import MemoryAssignmentStore, MemoryEvidenceCatalog, MemoryValidatorRegistry


@pytest.fixture
def store():
    return MemoryAssignmentStore()


@pytest.fixture
def registry(store):
    return MemoryValidatorRegistry(
        store,
        [
            Validator(id="val-alice", specializations=("fitness",), rating=4.8),
            Validator(id="val-bob", specializations=("fitness",), rating=4.5),
            Validator(id="val-carol", specializations=("fitness", "finance"), rating=4.2),
            Validator(id="val-dave", specializations=("finance",), rating=4.9),
        ],
    )


@pytest.fixture
def catalog():
    return MemoryEvidenceCatalog(
        [
            EvidenceInfo(evidence_id="ev-1", challenge_id="ch-run", user_id="user-1", required_specialization="fitness"),
            EvidenceInfo(evidence_id="ev-2", challenge_id="ch-run", user_id="user-2", required_specialization="fitness"),
            EvidenceInfo(
                evidence_id="ev-3",
                challenge_id="ch-save",
                user_id="user-3",
                required_specialization="finance",
                priority=SlaLevel.URGENT,
            ),
            EvidenceInfo(evidence_id="ev-4", challenge_id="ch-yoga", user_id="user-4", required_specialization="yoga"),
        ]
    )


@pytest.fixture
def policy():
    return default_policy_table()


@pytest.fixture
def service(store, registry, catalog, policy):
    return ValidationService(store, registry, catalog, policy)
