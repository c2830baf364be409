from __future__ import annotations

from itertools import count
from typing import Protocol

from orgauthz.models.profile import Profile


class ProfileRepo(Protocol):
    async def get_by_id(self, profile_id: int) -> Profile | None: ...
    async def get_many(self, profile_ids: set[int]) -> dict[int, Profile]: ...
    async def create(self, *, user_id: int, name: str, role: str) -> Profile: ...


class InMemoryProfileRepo:
    def __init__(self) -> None:
        self._by_id: dict[int, Profile] = {}
        self._ids = count(1)

    async def get_by_id(self, profile_id: int) -> Profile | None:
        return self._by_id.get(profile_id)

    async def get_many(self, profile_ids: set[int]) -> dict[int, Profile]:
        return {i: self._by_id[i] for i in profile_ids if i in self._by_id}

    async def create(self, *, user_id: int, name: str, role: str) -> Profile:
        profile = Profile(id=next(self._ids), user_id=user_id, name=name, role=role)
        self._by_id[profile.id] = profile
        return profile

    def add(self, profile: Profile) -> None:
        """Seed a profile with a fixed id (tests, fixtures)."""
        self._by_id[profile.id] = profile

    def clear(self) -> None:
        self._by_id.clear()
        self._ids = count(1)
