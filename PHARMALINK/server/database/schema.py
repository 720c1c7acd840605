from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

from PHARMALINK.server.utils.constants import KEY_VALUE_TABLE


Base = declarative_base()


###############################################################################
class KeyValueEntry(Base):
    __tablename__ = KEY_VALUE_TABLE
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime)
    __table_args__ = (UniqueConstraint("key"),)
