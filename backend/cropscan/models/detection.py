import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")
# SQLite only auto-increments INTEGER PRIMARY KEY columns.
SEQ_TYPE = BigInteger().with_variant(Integer, "sqlite")


class CropDetection(Base):
    """One persisted crop analysis. Rows are inserted once and never changed."""

    __tablename__ = "crop_detections"

    seq = Column(SEQ_TYPE, primary_key=True, autoincrement=True)
    id = Column(
        UUID_TYPE,
        nullable=False,
        unique=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    crop_type = Column(Text, nullable=False)
    defects = Column(JSON_TYPE, nullable=False)
    severity = Column(Text, nullable=False)
    confidence_score = Column(Numeric(5, 2), nullable=False)
    # Reserved for image archival; nothing writes it yet.
    image_url = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_crop_detections_created_at", created_at.desc()),
    )
