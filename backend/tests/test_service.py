"""Tests for the secret lifecycle: capability rules, validation and retries."""

import itertools
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from shareasecret.config import Settings
from shareasecret.errors import (
    GenerationFailure,
    InvalidSecretInput,
    LifecycleError,
    PersistenceFailure,
    SecretNotFound,
)
from shareasecret.models.secret import DeletionReason
from shareasecret.services.identifiers import generate_identifier, is_canonical_identifier
from shareasecret.services.secret_service import SecretLifecycle
from shareasecret.services.secret_store import SecretStore
from tests.test_utils import ENVELOPE, count_rows, fetch_row, utcnow


def scripted(*values):
    """Identifier generator that returns the given values in order."""
    it = iter(values)
    return lambda: next(it)


def viewing_id_for(lifecycle, management_id):
    return lifecycle.manage(management_id).viewing_url.rsplit("/", 1)[-1]


class TestValidation:
    @pytest.mark.parametrize("envelope", ["abcdef", "abc.def", "a.b.c.d", ""])
    def test_malformed_envelope_rejected(self, lifecycle, engine, envelope):
        with pytest.raises(InvalidSecretInput, match="Secret format is invalid"):
            lifecycle.create(envelope, 3600)
        assert count_rows(engine) == 0

    def test_unknown_ttl_rejected(self, lifecycle, engine):
        with pytest.raises(InvalidSecretInput, match="TTL"):
            lifecycle.create(ENVELOPE, 42)
        assert count_rows(engine) == 0

    def test_oversized_envelope_rejected(self, store, engine):
        lifecycle = SecretLifecycle(store, Settings(_env_file=None, max_cipher_text_length=10))

        with pytest.raises(InvalidSecretInput, match="exceeds"):
            lifecycle.create("a" * 10 + ".b.c", 3600)
        assert count_rows(engine) == 0

    @pytest.mark.parametrize("ttl", [3600, 86400, 259200, 604800])
    def test_allowed_ttls_accepted(self, lifecycle, engine, ttl):
        created = lifecycle.create(ENVELOPE, ttl)
        row = fetch_row(engine, management_id=created.management_id)
        assert row.ttl == ttl


class TestCreate:
    def test_round_trip(self, lifecycle):
        created = lifecycle.create(ENVELOPE, 3600)

        assert is_canonical_identifier(created.management_id)

        managed = lifecycle.manage(created.management_id)
        assert managed.viewing_url.startswith("https://secrets.example.com/secret/")
        assert managed.delete_url == (
            f"https://secrets.example.com/manage-secret/{created.management_id}/delete"
        )

        viewing_id = viewing_id_for(lifecycle, created.management_id)
        assert lifecycle.view(viewing_id) == ENVELOPE

    def test_viewing_and_management_ids_differ(self, lifecycle, engine):
        created = lifecycle.create(ENVELOPE, 3600)
        row = fetch_row(engine, management_id=created.management_id)
        assert row.viewing_id != row.management_id

    def test_expires_at_reported(self, lifecycle):
        before = utcnow()
        created = lifecycle.create(ENVELOPE, 3600)
        assert before + timedelta(seconds=3600) <= created.expires_at
        assert created.expires_at <= utcnow() + timedelta(seconds=3600)

    def test_equal_draws_are_redrawn(self, store, test_settings, engine):
        lifecycle = SecretLifecycle(
            store, test_settings, generate=scripted("f" * 48, "f" * 48, "0" * 48)
        )

        created = lifecycle.create(ENVELOPE, 3600)

        assert created.management_id == "0" * 48
        assert fetch_row(engine, viewing_id="f" * 48) is not None

    def test_collision_retries_with_fresh_pair(self, store, test_settings, engine):
        SecretLifecycle(store, test_settings, generate=scripted("a" * 48, "b" * 48)).create(
            ENVELOPE, 3600
        )
        lifecycle = SecretLifecycle(
            store,
            test_settings,
            generate=scripted("a" * 48, "c" * 48, "d" * 48, "e" * 48),
        )

        created = lifecycle.create(ENVELOPE, 3600)

        assert created.management_id == "e" * 48
        assert fetch_row(engine, management_id="c" * 48) is None
        assert count_rows(engine) == 2

    def test_repeated_collisions_are_internal_error(self, store, test_settings, engine):
        SecretLifecycle(store, test_settings, generate=scripted("a" * 48, "b" * 48)).create(
            ENVELOPE, 3600
        )
        draws = []

        def always_colliding():
            value = next(always_colliding.cycle)
            draws.append(value)
            return value

        always_colliding.cycle = itertools.cycle(["a" * 48, "b" * 48])
        lifecycle = SecretLifecycle(store, test_settings, generate=always_colliding)

        with pytest.raises(LifecycleError):
            lifecycle.create(ENVELOPE, 3600)

        assert len(draws) == 2 * test_settings.identifier_attempts
        assert count_rows(engine) == 1

    def test_generation_failure_is_not_retried(self, store, test_settings, engine):
        calls = []

        def broken():
            calls.append(1)
            raise GenerationFailure("entropy source unavailable")

        lifecycle = SecretLifecycle(store, test_settings, generate=broken)

        with pytest.raises(LifecycleError):
            lifecycle.create(ENVELOPE, 3600)

        assert len(calls) == 1
        assert count_rows(engine) == 0

    def test_persistence_failure_is_internal_error(self, store, lifecycle, monkeypatch):
        def fail(*args, **kwargs):
            raise PersistenceFailure("disk I/O error")

        monkeypatch.setattr(store, "create", fail)

        with pytest.raises(LifecycleError):
            lifecycle.create(ENVELOPE, 3600)

    def test_concurrent_creations_get_unique_pairs(self, file_engine, test_settings):
        lifecycle = SecretLifecycle(SecretStore(file_engine), test_settings)

        with ThreadPoolExecutor(max_workers=16) as pool:
            created = list(pool.map(lambda _: lifecycle.create(ENVELOPE, 3600), range(100)))

        management_ids = [c.management_id for c in created]
        viewing_ids = [viewing_id_for(lifecycle, m) for m in management_ids]
        assert len(set(management_ids + viewing_ids)) == 200
        assert count_rows(file_engine) == 100


class TestCapabilities:
    def test_view_and_management_ids_not_interchangeable(self, lifecycle):
        created = lifecycle.create(ENVELOPE, 3600)
        viewing_id = viewing_id_for(lifecycle, created.management_id)

        with pytest.raises(SecretNotFound):
            lifecycle.view(created.management_id)
        with pytest.raises(SecretNotFound):
            lifecycle.manage(viewing_id)

    def test_manage_never_exposes_cipher_text(self, lifecycle):
        created = lifecycle.create(ENVELOPE, 3600)
        managed = lifecycle.manage(created.management_id)

        assert ENVELOPE not in repr(managed)
        assert ENVELOPE not in (managed.viewing_url, managed.delete_url)

    def test_view_with_non_canonical_id_skips_store(self, store, lifecycle, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("store should not be queried")

        monkeypatch.setattr(store, "fetch_cipher_text_by_viewing_id", fail)
        monkeypatch.setattr(store, "fetch_viewing_id_by_management_id", fail)
        monkeypatch.setattr(store, "soft_delete", fail)

        with pytest.raises(SecretNotFound):
            lifecycle.view("' OR 1=1 --")
        with pytest.raises(SecretNotFound):
            lifecycle.manage("x" * 48)
        lifecycle.delete("not-an-id")

    def test_view_persistence_failure_is_internal_error(self, store, lifecycle, monkeypatch):
        def fail(*args, **kwargs):
            raise PersistenceFailure("database is locked")

        monkeypatch.setattr(store, "fetch_cipher_text_by_viewing_id", fail)
        monkeypatch.setattr(store, "fetch_viewing_id_by_management_id", fail)

        with pytest.raises(LifecycleError):
            lifecycle.view(generate_identifier())
        with pytest.raises(LifecycleError):
            lifecycle.manage(generate_identifier())


class TestDelete:
    def test_delete_scrubs_and_hides(self, lifecycle, engine):
        created = lifecycle.create(ENVELOPE, 3600)
        viewing_id = viewing_id_for(lifecycle, created.management_id)

        lifecycle.delete(created.management_id)

        with pytest.raises(SecretNotFound):
            lifecycle.view(viewing_id)
        with pytest.raises(SecretNotFound):
            lifecycle.manage(created.management_id)

        row = fetch_row(engine, management_id=created.management_id)
        assert row.cipher_text is None
        assert row.deletion_reason == DeletionReason.USER_DELETED

    def test_delete_is_idempotent(self, lifecycle, engine):
        created = lifecycle.create(ENVELOPE, 3600)

        lifecycle.delete(created.management_id)
        first = fetch_row(engine, management_id=created.management_id)
        lifecycle.delete(created.management_id)
        second = fetch_row(engine, management_id=created.management_id)

        assert first.deleted_at == second.deleted_at
        assert first.deletion_reason == second.deletion_reason

    def test_delete_unknown_succeeds(self, lifecycle):
        lifecycle.delete(generate_identifier())

    def test_deleted_and_unknown_are_indistinguishable(self, lifecycle):
        created = lifecycle.create(ENVELOPE, 3600)
        viewing_id = viewing_id_for(lifecycle, created.management_id)
        lifecycle.delete(created.management_id)

        outcomes = []
        for candidate in (viewing_id, generate_identifier()):
            with pytest.raises(SecretNotFound) as exc_info:
                lifecycle.view(candidate)
            outcomes.append((type(exc_info.value), exc_info.value.args))

        assert outcomes[0] == outcomes[1]

    def test_delete_persistence_failure_is_internal_error(self, store, lifecycle, monkeypatch):
        def fail(*args, **kwargs):
            raise PersistenceFailure("disk full")

        monkeypatch.setattr(store, "soft_delete", fail)

        with pytest.raises(LifecycleError):
            lifecycle.delete(generate_identifier())


class TestExpiry:
    def test_expire_marks_reason(self, lifecycle, engine):
        created = lifecycle.create(ENVELOPE, 3600)

        lifecycle.expire(created.management_id)

        row = fetch_row(engine, management_id=created.management_id)
        assert row.deletion_reason == DeletionReason.EXPIRED
        assert row.cipher_text is None

    def test_sweep_expires_elapsed_secrets(self, store, lifecycle, engine):
        store.create(
            viewing_id=generate_identifier(),
            management_id=generate_identifier(),
            cipher_text=ENVELOPE,
            ttl=3600,
            created_at=utcnow() - timedelta(hours=2),
        )
        fresh = lifecycle.create(ENVELOPE, 3600)

        assert lifecycle.sweep() == 1
        assert fetch_row(engine, management_id=fresh.management_id).is_active

    def test_sweep_failure_is_internal_error(self, store, lifecycle, monkeypatch):
        def fail(*args, **kwargs):
            raise PersistenceFailure("no such table: secrets")

        monkeypatch.setattr(store, "expire_elapsed", fail)

        with pytest.raises(LifecycleError):
            lifecycle.sweep()
