from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class IdentityContext:
    """Authenticated actor resolved from the bearer credential.

    Produced once per request by the identity dependency and passed into
    every authorization decision.

        user_id: account id (JWT ``sub``)
        email: account email
        profile_id: the profile the actor is acting as, if one was chosen
        role: platform role snapshot (TEACHER, STUDENT, ADMIN, ...)
    """

    user_id: int
    email: str
    profile_id: int | None = None
    role: str | None = None
