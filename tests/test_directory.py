"""
Tests for the directory resolver.

Tests cover:
- Display name rules
- Raw-id fallback cached for the TTL
- TTL expiry driven by the injected clock
- Coalescing of concurrent lookups
"""

import asyncio

import pytest

from content_dashboard.core.errors import TransientRepositoryError
from content_dashboard.repository.memory import InMemoryContentRepository
from content_dashboard.services.directory import UNKNOWN_AUTHOR, DirectoryResolver
from factories import make_user


class TestDisplayName:
    """Tests for DirectoryUser.display_name."""

    def test_first_and_last(self):
        assert make_user("u1", first="Ada", last="Lovelace", email="ada@example.com").display_name == "Ada Lovelace"

    def test_email_when_name_incomplete(self):
        assert make_user("u1", first="Ada", email="ada@example.com").display_name == "ada@example.com"

    def test_raw_id_last(self):
        assert make_user("u1").display_name == "u1"


class TestResolveName:
    """Tests for resolve_name."""

    @pytest.mark.asyncio
    async def test_resolves_and_memoizes(self, clock):
        repo = InMemoryContentRepository(users=[make_user("u1", first="Ada", last="Lovelace")])
        resolver = DirectoryResolver(repo, clock)

        assert await resolver.resolve_name("u1") == "Ada Lovelace"
        assert await resolver.resolve_name("u1") == "Ada Lovelace"
        assert repo.calls["fetch_user"] == 1

    @pytest.mark.asyncio
    async def test_missing_user_returns_raw_id_once(self, clock):
        """Unknown ids resolve to themselves and are not looked up again within the TTL."""
        repo = InMemoryContentRepository()
        resolver = DirectoryResolver(repo, clock)

        first = await resolver.resolve_name("ghost")
        second = await resolver.resolve_name("ghost")

        assert first == "ghost"
        assert second == "ghost"
        assert repo.calls["fetch_user"] == 1

    @pytest.mark.asyncio
    async def test_transient_failure_falls_back(self, clock):
        repo = InMemoryContentRepository(users=[make_user("u1", email="a@example.com")])
        repo.fail_with(TransientRepositoryError("rate limited", status_code=429))
        resolver = DirectoryResolver(repo, clock)

        assert await resolver.resolve_name("u1") == "u1"

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self, clock):
        repo = InMemoryContentRepository()
        resolver = DirectoryResolver(repo, clock, ttl_seconds=300)

        await resolver.resolve_name("ghost")
        clock.advance(seconds=299)
        await resolver.resolve_name("ghost")
        assert repo.calls["fetch_user"] == 1

        clock.advance(seconds=2)
        repo.users["ghost"] = make_user("ghost", email="found@example.com")
        assert await resolver.resolve_name("ghost") == "found@example.com"
        assert repo.calls["fetch_user"] == 2

    @pytest.mark.asyncio
    async def test_empty_id_is_unknown(self, clock):
        repo = InMemoryContentRepository()
        resolver = DirectoryResolver(repo, clock)

        assert await resolver.resolve_name("") == UNKNOWN_AUTHOR
        assert await resolver.resolve_name(None) == UNKNOWN_AUTHOR
        assert repo.total_calls == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates_and_clears_pending(self, clock):
        repo = InMemoryContentRepository()
        repo.fail_with(RuntimeError("bug"))
        resolver = DirectoryResolver(repo, clock)

        with pytest.raises(RuntimeError):
            await resolver.resolve_name("u1")
        await asyncio.sleep(0)

        assert resolver.pending_count == 0


class TestCoalescing:
    """Concurrent lookups for one id share a single directory call."""

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_call(self, clock):
        repo = InMemoryContentRepository(users=[make_user("u1", first="Ada", last="Lovelace")])
        resolver = DirectoryResolver(repo, clock)

        names = await asyncio.gather(*(resolver.resolve_name("u1") for _ in range(10)))

        assert names == ["Ada Lovelace"] * 10
        assert repo.calls["fetch_user"] == 1

    @pytest.mark.asyncio
    async def test_pending_cleared_after_completion(self, clock):
        repo = InMemoryContentRepository(users=[make_user("u1", email="a@example.com")])
        resolver = DirectoryResolver(repo, clock)

        await resolver.resolve_name("u1")
        await asyncio.sleep(0)

        assert resolver.pending_count == 0

    @pytest.mark.asyncio
    async def test_resolve_many(self, clock):
        repo = InMemoryContentRepository(
            users=[make_user("u1", email="one@example.com"), make_user("u2", first="Two", last="Person")]
        )
        resolver = DirectoryResolver(repo, clock)

        names = await resolver.resolve_many(["u1", "u2", "u1", None, "ghost"])

        assert names == {"u1": "one@example.com", "u2": "Two Person", "ghost": "ghost"}
        assert repo.calls["fetch_user"] == 3
