from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Profile:
    id: int
    user_id: int
    name: str
    role: str  # platform role: TEACHER|STUDENT|PARENT|ADMIN
