"""Custom SQLAlchemy column types."""
from __future__ import annotations

import json
import logging
import uuid

from cryptography.fernet import InvalidToken
from sqlalchemy import Text
from sqlalchemy.dialects.postgresql import JSONB as PGJSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON
from sqlalchemy.types import String, TypeDecorator

from examforge.security.encryption import encryption_service

logger = logging.getLogger(__name__)


class EncryptedJSON(TypeDecorator):
    """Store a JSON object encrypted with Fernet."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return encryption_service.encrypt_credentials(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        try:
            return encryption_service.decrypt_credentials(value)
        except InvalidToken:
            # Rows written before encryption was enabled hold plain JSON
            logger.warning("Credential column is not encrypted, reading as plain JSON")
            return json.loads(value)


def JSONBType(**kwargs):
    """Return a JSONB column type compatible with SQLite for tests."""
    pg_jsonb = PGJSONB(**kwargs)
    return pg_jsonb.with_variant(SQLiteJSON(), "sqlite")


class GUID(TypeDecorator):
    """Platform-independent GUID/UUID type."""

    impl = PGUUID
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(36))
        return dialect.type_descriptor(PGUUID(as_uuid=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return uuid.UUID(str(value))
