"""
Data models for the Speaker Store

This module defines the document shape used to persist speaker records, with
validation and conversion to and from the MongoDB representation.
"""

import re
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Dict, Any, Optional

from speaker_discovery.core.data_models import DeviceRecord


IPV4_PATTERN = re.compile(r'^\d{1,3}(\.\d{1,3}){3}$')


@dataclass
class SpeakerDocument:
    """
    Persisted form of a speaker record.

    The identity key doubles as the MongoDB ``_id`` so an upsert by key can
    never create a second document for the same speaker.

    Attributes:
        identity_key: Parsed MAC or synthesized key
        name: Display name
        ip: Last known IPv4 address
        model: Device model string
        connected: Result of the last observation or status check
        last_seen: Time of the last observation or successful status check
    """
    identity_key: str
    name: str
    ip: str
    model: str
    connected: bool = False
    last_seen: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate the speaker document after initialization."""
        self._validate()

    def _validate(self) -> None:
        """
        Validate the speaker document fields.

        Raises:
            ValueError: If any field is invalid
        """
        if not self.identity_key or not isinstance(self.identity_key, str):
            raise ValueError("identity_key must be a non-empty string")

        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("name must be a non-empty string")

        if not isinstance(self.ip, str) or not IPV4_PATTERN.match(self.ip):
            raise ValueError("ip must be a dotted IPv4 address")

        if not isinstance(self.model, str) or not self.model.strip():
            raise ValueError("model must be a non-empty string")

        if not isinstance(self.connected, bool):
            raise ValueError("connected must be a boolean")

        if self.last_seen is not None and not isinstance(self.last_seen, datetime):
            raise ValueError("last_seen must be a datetime or None")

    @classmethod
    def from_record(cls, record: DeviceRecord) -> "SpeakerDocument":
        return cls(
            identity_key=record.identity_key,
            name=record.name,
            ip=record.ip,
            model=record.model,
            connected=record.connected,
            last_seen=record.last_seen,
        )

    def to_record(self) -> DeviceRecord:
        return DeviceRecord(
            identity_key=self.identity_key,
            name=self.name,
            ip=self.ip,
            model=self.model,
            connected=self.connected,
            last_seen=self.last_seen,
        )

    def to_mongo_dict(self) -> Dict[str, Any]:
        """
        Convert the speaker document to MongoDB format.

        Returns:
            Dictionary formatted for MongoDB collection insertion
        """
        return {
            "_id": self.identity_key,
            "identity_key": self.identity_key,
            "name": self.name,
            "ip": self.ip,
            "model": self.model,
            "connected": self.connected,
            "last_seen": self.last_seen,
        }

    @classmethod
    def from_mongo_dict(cls, doc: Dict[str, Any]) -> "SpeakerDocument":
        """
        Build a document from a MongoDB result.

        Naive timestamps are read back as UTC.

        Raises:
            ValueError: If the stored document is incomplete or invalid
        """
        try:
            last_seen = doc.get("last_seen")
            if isinstance(last_seen, datetime) and last_seen.tzinfo is None:
                last_seen = last_seen.replace(tzinfo=UTC)

            return cls(
                identity_key=doc.get("identity_key") or doc["_id"],
                name=doc["name"],
                ip=doc["ip"],
                model=doc["model"],
                connected=bool(doc.get("connected", False)),
                last_seen=last_seen,
            )
        except KeyError as e:
            raise ValueError(f"stored speaker document is missing field {e}") from e
