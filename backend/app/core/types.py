"""Custom SQLAlchemy types for cross-database compatibility"""
from sqlalchemy import TypeDecorator, String
import uuid


def generate_uuid():
    """Generate an id in the same form the studio client uses (32 hex chars)"""
    return uuid.uuid4().hex


class GUID(TypeDecorator):
    """
    Identifier stored as VARCHAR(36).

    Accepts client-supplied string ids as well as uuid.UUID values; UUIDs
    are stored in their hex form so both kinds compare equal as text.
    """
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value.hex
        return str(value)

    def process_result_value(self, value, dialect):
        if value is not None:
            return str(value)
        return value
