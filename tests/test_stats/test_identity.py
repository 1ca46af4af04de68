"""Tests for job identity resolution."""

import os
import pickle
from types import SimpleNamespace

import pytest

from jobstats.capability import CollectsStats
from jobstats.errors import IdentityResolutionFailure
from jobstats.identity import JobIdentityResolver, assign_uuid, serialize_handler


class ResizeImage(CollectsStats):
    def __init__(self, path: str) -> None:
        self.path = path


class ExportCsv(CollectsStats):
    def __init__(self, table: str) -> None:
        self.table = table


class Exploit:
    """Payload that would run a command if an open-ended unpickler loaded it."""

    def __reduce__(self):
        return (os.system, ("echo pwned",))


def _job(handler_type: type, payload: bytes | None = None, uuid: str | None = None) -> SimpleNamespace:
    return SimpleNamespace(handler_type=handler_type, payload=payload, uuid=uuid)


@pytest.fixture
def resolver() -> JobIdentityResolver:
    return JobIdentityResolver()


class TestAssignUuid:
    """Tests for assign_uuid."""

    def test_assigns_new_uuid(self):
        handler = ResizeImage("a.png")

        uuid = assign_uuid(handler)

        assert handler.uuid == uuid
        assert len(uuid) == 36

    def test_keeps_existing_uuid(self):
        handler = ResizeImage("a.png")
        handler.uuid = "existing"

        assert assign_uuid(handler) == "existing"


class TestResolve:
    """Tests for JobIdentityResolver.resolve."""

    def test_prefers_explicit_uuid(self, resolver):
        """An identity carried on the event needs no decoding."""
        job = _job(ResizeImage, payload=b"garbage", uuid="explicit-uuid")

        assert resolver.resolve(job) == "explicit-uuid"

    def test_decodes_declared_handler(self, resolver):
        handler = ResizeImage("a.png")
        handler.uuid = "from-payload"

        assert resolver.resolve(_job(ResizeImage, serialize_handler(handler))) == "from-payload"

    def test_rejects_other_handler_type(self, resolver):
        """A payload for another class is refused even if it is opted in too."""
        handler = ExportCsv("users")
        handler.uuid = "other"

        with pytest.raises(IdentityResolutionFailure):
            resolver.resolve(_job(ResizeImage, serialize_handler(handler)))

    def test_rejects_foreign_globals(self, resolver):
        """Decoding never resolves globals outside the declared type."""
        payload = pickle.dumps(Exploit())

        with pytest.raises(IdentityResolutionFailure, match="forbidden"):
            resolver.resolve(_job(ResizeImage, payload))

    def test_rejects_malformed_payload(self, resolver):
        with pytest.raises(IdentityResolutionFailure):
            resolver.resolve(_job(ResizeImage, b"\x80\x05not a pickle"))

    def test_rejects_missing_payload(self, resolver):
        with pytest.raises(IdentityResolutionFailure):
            resolver.resolve(_job(ResizeImage))

    def test_rejects_oversized_payload(self):
        handler = ResizeImage("a.png")
        handler.uuid = "u"

        with pytest.raises(IdentityResolutionFailure, match="exceeds"):
            JobIdentityResolver(max_payload_bytes=8).resolve(_job(ResizeImage, serialize_handler(handler)))

    def test_rejects_handler_without_uuid(self, resolver):
        payload = serialize_handler(ResizeImage("a.png"))

        with pytest.raises(IdentityResolutionFailure, match="no uuid"):
            resolver.resolve(_job(ResizeImage, payload))

    def test_rejects_non_string_uuid(self, resolver):
        with pytest.raises(IdentityResolutionFailure):
            resolver.resolve(_job(ResizeImage, uuid=12345))  # type: ignore[arg-type]

    def test_rejects_missing_handler_type(self, resolver):
        with pytest.raises(IdentityResolutionFailure):
            resolver.resolve(_job("ResizeImage", b"payload"))  # type: ignore[arg-type]
