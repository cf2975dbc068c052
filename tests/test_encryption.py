"""Tests for encryption utilities and encrypted credential storage."""
import json

import pytest
from sqlalchemy import text

from examforge.models.integration import Integration
from examforge.security.encryption import EncryptionService, encryption_service


def test_encrypt_decrypt_roundtrip():
    """EncryptionService should round-trip plaintext without loss."""
    plaintext = "sensitive-secret"
    token = encryption_service.encrypt_text(plaintext)

    assert token != plaintext
    assert isinstance(token, str)

    decrypted = encryption_service.decrypt_text(token)
    assert decrypted == plaintext


def test_encrypt_credentials_roundtrip():
    credentials = {"access_token": "ya29.abc", "refresh_token": "1//xyz"}
    token = encryption_service.encrypt_credentials(credentials)

    assert "ya29.abc" not in token
    assert encryption_service.decrypt_credentials(token) == credentials


def test_invalid_key_rejected():
    with pytest.raises(ValueError):
        EncryptionService("too-short")


@pytest.mark.asyncio
async def test_credentials_column_is_encrypted_at_rest(db_session, session_factory, make_integration):
    """The ORM sees plain credentials while the stored column holds a Fernet token."""
    integration = await make_integration(credentials={"secret": "whsec-plain-value"})

    result = await db_session.execute(
        text("SELECT credentials FROM integrations WHERE id = :id"), {"id": str(integration.id)}
    )
    raw = result.scalar_one()
    assert "whsec-plain-value" not in raw
    assert encryption_service.decrypt_credentials(raw) == {"secret": "whsec-plain-value"}

    async with session_factory() as session:
        loaded = await session.get(Integration, integration.id)
        assert loaded.credentials == {"secret": "whsec-plain-value"}


@pytest.mark.asyncio
async def test_plain_json_credentials_still_readable(db_session, session_factory, make_integration):
    integration = await make_integration()
    await db_session.execute(
        text("UPDATE integrations SET credentials = :raw WHERE id = :id"),
        {"raw": json.dumps({"secret": "legacy"}), "id": str(integration.id)},
    )
    await db_session.commit()

    async with session_factory() as session:
        loaded = await session.get(Integration, integration.id)
        assert loaded.credentials == {"secret": "legacy"}
