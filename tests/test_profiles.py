import pytest

from social_feed.errors import DuplicateDocument, NotFound, Unauthorized, ValidationError
from social_feed.schemas import ProfileUpdate
from social_feed.services.profiles import fetch_profiles
from social_feed.store.base import Collections


async def test_create_profile_normalises_username(services):
    profile = await services.profiles.create_profile("u1", "  @Alice_01 ", "Alice <3")

    assert profile.username == "alice_01"
    assert profile.display_name == "Alice 3"
    assert (await services.profiles.get_by_username("ALICE_01")).user_id == "u1"


@pytest.mark.parametrize("username", ["ab", "has space", "dash-name", "x" * 31])
async def test_invalid_usernames(services, username):
    with pytest.raises(ValidationError):
        await services.profiles.create_profile("u1", username, "Name")


async def test_username_and_user_id_are_unique(services, users):
    with pytest.raises(DuplicateDocument):
        await services.profiles.create_profile("user-new", "alice", "Another Alice")
    with pytest.raises(DuplicateDocument):
        await services.profiles.create_profile(users["alice"], "alice_two", "Alice Again")


async def test_update_profile_owner_only(services, users):
    update = ProfileUpdate(display_name="Bobby", bio="builds things")

    with pytest.raises(Unauthorized):
        await services.profiles.update_profile(users["bob"], users["alice"], update)
    with pytest.raises(NotFound):
        await services.profiles.update_profile("user-none", "user-none", update)

    profile = await services.profiles.update_profile(users["bob"], users["bob"], update)
    assert (profile.display_name, profile.bio) == ("Bobby", "builds things")


async def test_fetch_profiles_single_query(users, store):
    found = await fetch_profiles(store, [users["alice"], users["bob"], users["alice"], "ghost"])

    assert set(found) == {users["alice"], users["bob"]}
    assert store.count_calls("list_documents", Collections.PROFILES) == 1
    assert await fetch_profiles(store, []) == {}


async def test_search_lists_username_matches_first(services, users, store, clock):
    clock.advance(1)
    await services.profiles.create_profile("user-alfred", "alfred", "Alfred")
    clock.advance(1)
    await services.profiles.create_profile("user-zed", "zed", "Al Zed")
    store.reset_calls()

    result = await services.profiles.search("  @Al! ")

    assert result.query == "al"
    assert [p.username for p in result.users] == ["alfred", "alice", "zed"]
    assert store.count_calls("list_documents", Collections.PROFILES) == 2


async def test_search_respects_limit_and_ignores_blank_queries(services, users, store, clock):
    clock.advance(1)
    await services.profiles.create_profile("user-alfred", "alfred", "Alfred")

    limited = await services.profiles.search("al", limit=1)
    assert [p.username for p in limited.users] == ["alfred"]

    store.reset_calls()
    empty = await services.profiles.search("<!>")
    assert (empty.users, empty.query) == ([], "")
    assert store.count_calls("list_documents", Collections.PROFILES) == 0
