"""
Job identity resolution.

The uuid is taken from the event's job when the engine carries it. Otherwise
the serialized handler is decoded, and decoding only ever admits the exact
handler class the event already declares: payloads naming any other global
are rejected before anything is constructed.
"""

import io
import pickle
from typing import Any
from uuid import uuid4

from jobstats.errors import IdentityResolutionFailure
from jobstats.events import QueueJob

# Engine payloads are produced by serialize_handler; cap what we will read
MAX_PAYLOAD_BYTES = 1024 * 1024


class _RestrictedUnpickler(pickle.Unpickler):
    """Unpickler whose only resolvable global is one allowed class."""

    def __init__(self, file: io.BytesIO, allowed: type) -> None:
        super().__init__(file)
        self._allowed = allowed

    def find_class(self, module: str, name: str) -> Any:
        if module == self._allowed.__module__ and name == self._allowed.__qualname__:
            return self._allowed
        raise pickle.UnpicklingError(f"global '{module}.{name}' is forbidden")


def serialize_handler(handler: object) -> bytes:
    """Serialize a handler the way the resolver expects to decode it."""
    return pickle.dumps(handler, protocol=pickle.HIGHEST_PROTOCOL)


def assign_uuid(handler: object) -> str:
    """Give a handler a uuid if it has none, and return it."""
    existing = getattr(handler, "uuid", None)
    if isinstance(existing, str) and existing:
        return existing
    value = str(uuid4())
    handler.uuid = value  # type: ignore[attr-defined]
    return value


class JobIdentityResolver:
    """Recovers the stable uuid of the job behind a lifecycle event."""

    def __init__(self, max_payload_bytes: int = MAX_PAYLOAD_BYTES) -> None:
        self.max_payload_bytes = max_payload_bytes

    def resolve(self, job: QueueJob) -> str:
        """
        Return the job uuid.

        Raises:
            IdentityResolutionFailure: no explicit uuid and the payload is
                missing, oversized, malformed, of another type, or has no uuid
        """
        explicit = getattr(job, "uuid", None)
        if explicit:
            if not isinstance(explicit, str):
                raise IdentityResolutionFailure(f"Job uuid must be a string, got {type(explicit).__name__}")
            return explicit

        handler = self.decode_handler(job)
        uuid = getattr(handler, "uuid", None)
        if not isinstance(uuid, str) or not uuid:
            raise IdentityResolutionFailure(f"Handler {type(handler).__qualname__} carries no uuid")
        return uuid

    def decode_handler(self, job: QueueJob) -> object:
        """Decode the job payload, admitting only the declared handler type."""
        handler_type = getattr(job, "handler_type", None)
        if not isinstance(handler_type, type):
            raise IdentityResolutionFailure("Event does not declare a handler type")

        payload = getattr(job, "payload", None)
        if not isinstance(payload, bytes | bytearray) or not payload:
            raise IdentityResolutionFailure("Job has neither a uuid nor a payload")
        if len(payload) > self.max_payload_bytes:
            raise IdentityResolutionFailure(
                f"Payload of {len(payload)} bytes exceeds {self.max_payload_bytes}"
            )

        try:
            handler = _RestrictedUnpickler(io.BytesIO(payload), handler_type).load()
        except Exception as e:
            # Anything the unpickler raises on hostile or corrupt input is a rejection
            raise IdentityResolutionFailure(f"Payload rejected: {e}") from e

        if type(handler) is not handler_type:
            raise IdentityResolutionFailure(
                f"Payload decoded to {type(handler).__qualname__}, expected {handler_type.__qualname__}"
            )
        return handler
