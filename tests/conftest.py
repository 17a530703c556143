"""Shared fixtures for the ledgersync test suite."""

from __future__ import annotations

import base64
import hashlib
import hmac

import pytest

from ledgersync.config import Settings
from ledgersync.models import ORGANIZATIONS_TABLE
from ledgersync.reconcile import ReconciliationEngine
from ledgersync.store import InMemoryRecordStore
from ledgersync.vault import CredentialVault

ORG_ID = "org-1"
SHOPIFY_SECRET = "shopify-test-secret"
BIGCOMMERCE_SECRET = "bigcommerce-test-secret"
CLOVER_SECRET = "clover-test-secret"


def shopify_signature(body: bytes, secret: str = SHOPIFY_SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def bigcommerce_signature(body: bytes, secret: str = BIGCOMMERCE_SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def clover_signature(body: bytes, secret: str = CLOVER_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture()
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        encryption_key="test-master-secret",
        shopify_webhook_secret=SHOPIFY_SECRET,
        bigcommerce_webhook_secret=BIGCOMMERCE_SECRET,
        clover_webhook_secret=CLOVER_SECRET,
        redis_url="",
        database_url="",
        api_token="",
    )


@pytest.fixture()
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def engine(store) -> ReconciliationEngine:
    return ReconciliationEngine(store)


@pytest.fixture()
def vault(settings) -> CredentialVault:
    return CredentialVault(settings.encryption_key)


@pytest.fixture()
def org(store, vault) -> dict:
    """A tenant connected to every platform, tokens encrypted at rest."""
    return store.insert(
        ORGANIZATIONS_TABLE,
        {
            "id": ORG_ID,
            "name": "Test Org",
            "shopify_store_domain": "teststore.myshopify.com",
            "shopify_access_token": vault.encrypt_token("shpat_test"),
            "bigcommerce_store_hash": "abc123",
            "bigcommerce_client_id": "client-1",
            "bigcommerce_access_token": vault.encrypt_token("bc-token"),
            "clover_merchant_id": "MERCHANT1",
            "clover_access_token": vault.encrypt_token("clover-token"),
            "clover_environment": "us",
        },
    )
