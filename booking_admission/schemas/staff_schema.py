"""Staff identity models."""

from typing import Optional

from pydantic import BaseModel


class VerifiedIdentity(BaseModel):
    """Staff identity confirmed by the identity provider.

    Only the identity provider adapters construct these; holding one is
    the proof of authentication the status transition gate requires.
    """
    subject_id: str
    email: Optional[str] = None
