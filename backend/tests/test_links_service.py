"""Tests for link creation and owner management."""

from datetime import timedelta

import pytest

from shortlinks.core.errors import (
    AliasConflict,
    GenerationExhausted,
    LinkValidationError,
    NotFound,
    QuotaExceeded,
)
from shortlinks.core.shortener import CodeGenerator
from shortlinks.services.links import LinkService
from shortlinks.schemas.link import LinkCreate, LinkUpdate


class TestCreateLink:
    def test_defaults(self, service):
        link = service.create_link(LinkCreate(destination_url="https://example.com"), client_ip="8.8.8.8")

        assert len(link.short_code) == 6
        assert link.domain == ""
        assert link.click_count == 0
        assert link.is_active
        assert not link.is_one_time
        assert link.max_clicks is None
        assert link.password_hash is None
        assert link.created_by == "8.8.8.8"

    def test_password_is_hashed(self, service, hasher):
        link = service.create_link(LinkCreate(destination_url="https://example.com", password="hunter2"))

        assert link.password_hash != "hunter2"
        assert hasher.verify("hunter2", link.password_hash)

    def test_password_byte_limit(self, service):
        link = service.create_link(LinkCreate(destination_url="https://example.com", password="a" * 72))
        assert link.is_password_protected

        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(destination_url="https://example.com", password="a" * 73))

        # Multi-byte characters count by their UTF-8 length
        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(destination_url="https://example.com", password="\u00e9" * 37))

    def test_one_time_forces_single_click(self, service):
        link = service.create_link(LinkCreate(destination_url="https://example.com", is_one_time=True))

        assert link.is_one_time
        assert link.max_clicks == 1

    def test_one_time_with_other_budget(self, service):
        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(destination_url="https://example.com", is_one_time=True, max_clicks=3))

    @pytest.mark.parametrize("max_clicks", [0, -5])
    def test_non_positive_budget(self, service, max_clicks):
        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(destination_url="https://example.com", max_clicks=max_clicks))

    @pytest.mark.parametrize("url", [
        "example.com",
        "ftp://example.com/file",
        "javascript:alert(1)",
        "http://localhost:8000/admin",
        "http://192.168.1.1/",
        "https://exa mple.com",
    ])
    def test_invalid_destination(self, service, url):
        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(destination_url=url))

    def test_spam_destination(self, service):
        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(destination_url="https://free-money.example.com"))

    def test_spam_filter_can_be_disabled(self, store, generator, hasher):
        service = LinkService(store, generator, hasher, block_spam=False)
        link = service.create_link(LinkCreate(destination_url="https://poker.example.com"))

        assert link.id is not None

    def test_past_expiry(self, service, clock):
        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(
                destination_url="https://example.com",
                expires_at=clock.now - timedelta(minutes=1),
            ))

    def test_custom_domain(self, service):
        link = service.create_link(LinkCreate(destination_url="https://example.com", domain="Go.Brand.Example"))

        assert link.domain == "go.brand.example"

    def test_default_host_stored_as_shared_domain(self, store, generator, hasher, resolver):
        service = LinkService(store, generator, hasher, default_domain="Sho.Rt")
        link = service.create_link(LinkCreate(destination_url="https://example.com", domain="sho.rt"))

        assert link.domain == ""
        assert resolver.resolve(None, link.short_code).destination_url == "https://example.com"

    def test_invalid_domain(self, service):
        with pytest.raises(LinkValidationError):
            service.create_link(LinkCreate(destination_url="https://example.com", domain="not a domain"))

    def test_custom_alias(self, service):
        link = service.create_link(LinkCreate(destination_url="https://example.com", custom_alias="summer"))

        assert link.short_code == "summer"

    def test_alias_conflict(self, service):
        service.create_link(LinkCreate(destination_url="https://example.com/a", custom_alias="summer"))

        with pytest.raises(AliasConflict):
            service.create_link(LinkCreate(destination_url="https://example.com/b", custom_alias="summer"))

    def test_alias_free_on_other_domain(self, service):
        service.create_link(LinkCreate(destination_url="https://example.com/a", custom_alias="summer"))
        link = service.create_link(LinkCreate(
            destination_url="https://example.com/b",
            custom_alias="summer",
            domain="brand.example",
        ))

        assert link.domain == "brand.example"

    def test_generated_code_lost_race_is_retried(self, store, hasher, make_link):
        """A generated code taken between check and insert is replaced."""
        class RacingGenerator(CodeGenerator):
            def __init__(self, store):
                super().__init__(store)
                self.codes = iter(["raced1", "fresh1"])

            def generate(self, custom_alias=None, domain=None):
                code = next(self.codes)
                if code == "raced1":
                    self.store.put(make_link(short_code=code))
                return code

        service = LinkService(store, RacingGenerator(store), hasher)
        link = service.create_link(LinkCreate(destination_url="https://example.com"))

        assert link.short_code == "fresh1"

    def test_generation_exhausted(self, store, hasher, make_link):
        store.put(make_link(short_code="taken1"))
        generator = CodeGenerator(store, max_attempts=2, random_code=lambda length: "taken1")
        service = LinkService(store, generator, hasher)

        with pytest.raises(GenerationExhausted):
            service.create_link(LinkCreate(destination_url="https://example.com"))


class TestQuota:
    def test_daily_limit(self, store, generator, hasher, clock):
        service = LinkService(store, generator, hasher, daily_link_limit=2, clock=clock)

        service.create_link(LinkCreate(destination_url="https://example.com/1"), owner_id="alice")
        service.create_link(LinkCreate(destination_url="https://example.com/2"), owner_id="alice")

        with pytest.raises(QuotaExceeded):
            service.create_link(LinkCreate(destination_url="https://example.com/3"), owner_id="alice")

        # Other owners and anonymous callers are unaffected
        service.create_link(LinkCreate(destination_url="https://example.com/4"), owner_id="bob")
        service.create_link(LinkCreate(destination_url="https://example.com/5"))

    def test_quota_resets_next_day(self, store, generator, hasher, clock):
        service = LinkService(store, generator, hasher, daily_link_limit=1, clock=clock)
        service.create_link(LinkCreate(destination_url="https://example.com/1"), owner_id="alice")

        clock.advance(days=1)

        service.create_link(LinkCreate(destination_url="https://example.com/2"), owner_id="alice")


class TestOwnerAccess:
    def test_get_own_link(self, service):
        created = service.create_link(LinkCreate(destination_url="https://example.com"), owner_id="alice")

        assert service.get_link("alice", created.short_code).id == created.id

    def test_other_owner_sees_not_found(self, service):
        created = service.create_link(LinkCreate(destination_url="https://example.com"), owner_id="alice")

        with pytest.raises(NotFound):
            service.get_link("bob", created.short_code)

    def test_list_links(self, service):
        for i in range(3):
            service.create_link(LinkCreate(destination_url=f"https://example.com/{i}"), owner_id="alice")
        service.create_link(LinkCreate(destination_url="https://example.com/bob"), owner_id="bob")

        assert len(service.list_links("alice")) == 3
        assert len(service.list_links("alice", limit=2)) == 2

    def test_deactivate_is_idempotent(self, service, store):
        created = service.create_link(LinkCreate(destination_url="https://example.com"), owner_id="alice")

        service.deactivate_link("alice", created.short_code)
        service.deactivate_link("alice", created.short_code)

        assert not store.get_by_id(created.id).is_active

    def test_deactivate_other_owner(self, service):
        created = service.create_link(LinkCreate(destination_url="https://example.com"), owner_id="alice")

        with pytest.raises(NotFound):
            service.deactivate_link("bob", created.short_code)


class TestUpdateLink:
    @pytest.fixture
    def link(self, service):
        return service.create_link(
            LinkCreate(destination_url="https://example.com/old", max_clicks=5),
            owner_id="alice",
        )

    def test_change_destination(self, service, link):
        updated = service.update_link("alice", link.short_code, LinkUpdate(destination_url="https://example.com/new"))

        assert updated.destination_url == "https://example.com/new"
        assert updated.short_code == link.short_code

    def test_invalid_destination(self, service, link):
        with pytest.raises(LinkValidationError):
            service.update_link("alice", link.short_code, LinkUpdate(destination_url="not-a-url"))

    def test_password_too_long(self, service, link):
        with pytest.raises(LinkValidationError):
            service.update_link("alice", link.short_code, LinkUpdate(password="p" * 100))

    def test_set_and_clear_password(self, service, link):
        updated = service.update_link("alice", link.short_code, LinkUpdate(password="pw1234"))
        assert updated.is_password_protected

        cleared = service.update_link("alice", link.short_code, LinkUpdate(password=""))
        assert not cleared.is_password_protected

    def test_omitted_fields_unchanged(self, service, link):
        updated = service.update_link("alice", link.short_code, LinkUpdate())

        assert updated.max_clicks == 5
        assert updated.destination_url == "https://example.com/old"

    def test_remove_click_limit(self, service, link):
        updated = service.update_link("alice", link.short_code, LinkUpdate(max_clicks=None))

        assert updated.max_clicks is None

    def test_budget_below_clicks_rejected(self, service, resolver, link):
        for _ in range(3):
            resolver.resolve(None, link.short_code)

        with pytest.raises(LinkValidationError):
            service.update_link("alice", link.short_code, LinkUpdate(max_clicks=2))

        updated = service.update_link("alice", link.short_code, LinkUpdate(max_clicks=3))
        assert updated.max_clicks == 3

    def test_one_time_budget_is_fixed(self, service):
        link = service.create_link(LinkCreate(destination_url="https://example.com", is_one_time=True), owner_id="alice")

        with pytest.raises(LinkValidationError):
            service.update_link("alice", link.short_code, LinkUpdate(max_clicks=10))

    def test_past_expiry_rejected(self, service, link, clock):
        with pytest.raises(LinkValidationError):
            service.update_link("alice", link.short_code, LinkUpdate(expires_at=clock.now - timedelta(hours=1)))

    def test_deactivated_link_rejected(self, service, link):
        service.deactivate_link("alice", link.short_code)

        with pytest.raises(LinkValidationError):
            service.update_link("alice", link.short_code, LinkUpdate(destination_url="https://example.com/new"))
