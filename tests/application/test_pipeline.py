"""Tests for the asynchronous import pipeline."""

import asyncio

import pytest

from modimport.application.errors import (
    ImportValidationError,
    InvalidTransitionError,
    JobNotFoundError,
)
from modimport.application.jobs import JobStatus
from modimport.data.matcher import ConfidenceTier


class TestAutomaticImport:
    """Jobs that resolve without a human."""

    @pytest.mark.asyncio
    async def test_exact_name_is_placed(self, env):
        await env.load_catalog()

        job = env.pipeline.submit("/downloads/Diluc.zip")
        assert job.status == JobStatus.QUEUED
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.DONE
        assert job.confidence == ConfidenceTier.EXCELLENT
        assert job.match_score == 1.0
        assert job.match_detail == "Excellent confidence: exact name match 'Diluc'"
        assert job.matched_entry.name == "Diluc"
        assert job.placed_path == "/mods/Character/Diluc/DISABLED Diluc"
        assert env.placer.calls == [("Character", "Diluc", "Diluc")]

    @pytest.mark.asyncio
    async def test_alias_match_is_placed(self, env):
        await env.load_catalog()

        job = env.pipeline.submit("/downloads/[Mod] Baal_Kimono.7z")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.DONE
        assert job.match_detail == "Excellent confidence: alias match 'Raiden Shogun'"

    @pytest.mark.asyncio
    async def test_high_fuzzy_match_is_placed(self, env):
        await env.load_catalog()

        job = env.pipeline.submit("/downloads/Dilcu.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.DONE
        assert job.confidence == ConfidenceTier.HIGH
        assert job.match_detail == "High confidence: fuzzy match 'Diluc' (0.80)"

    @pytest.mark.asyncio
    async def test_events_follow_every_transition(self, env):
        await env.load_catalog()
        seen = []
        env.events.subscribe(lambda event: seen.append((event.previous_status, event.status)))

        env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        assert seen == [
            (None, "queued"),
            ("queued", "extracting"),
            ("extracting", "matching"),
            ("matching", "placing"),
            ("placing", "done"),
        ]


class TestReviewRouting:
    """Jobs that stop for a human decision."""

    @pytest.mark.asyncio
    async def test_medium_confidence_needs_review(self, env):
        await env.load_catalog()

        job = env.pipeline.submit("/downloads/Ayato.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.NEEDS_REVIEW
        assert job.confidence == ConfidenceTier.MEDIUM
        assert job.match_detail == "Medium confidence: partial name match 'Ayaka' (0.60)"
        assert job.matched_entry.name == "Ayaka"
        assert env.placer.calls == []

    @pytest.mark.asyncio
    async def test_no_match_needs_review(self, make_env):
        env = make_env(threshold=0.5)
        await env.load_catalog()

        job = env.pipeline.submit("/downloads/xyz123.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.NEEDS_REVIEW
        assert job.confidence == ConfidenceTier.NONE
        assert job.match_detail == "No match found"
        assert job.matched_entry is None

    @pytest.mark.asyncio
    async def test_duplicate_never_auto_places(self, env):
        await env.load_catalog()
        env.duplicates.placed.add(("diluc", "character"))

        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.NEEDS_REVIEW
        assert job.is_duplicate is True
        assert job.confidence == ConfidenceTier.EXCELLENT
        assert job.match_detail.startswith("Duplicate of existing entry 'Diluc'")
        assert env.placer.calls == []

    @pytest.mark.asyncio
    async def test_duplicate_check_error_sends_job_to_review(self, env):
        await env.load_catalog()
        env.duplicates.error = PermissionError("denied")

        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.NEEDS_REVIEW
        assert job.error_message is None
        assert job.is_duplicate is True
        assert job.matched_entry.name == "Diluc"
        assert job.match_detail == (
            "Duplicate check failed (denied); Excellent confidence: exact name match 'Diluc'"
        )
        assert env.placer.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_matching_error_sends_job_to_review(self, env, monkeypatch):
        await env.load_catalog()

        def broken_resolve(name, index, category=None):
            raise RuntimeError("scorer bug")

        monkeypatch.setattr(env.pipeline._resolver, "resolve", broken_resolve)

        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.NEEDS_REVIEW
        assert job.confidence == ConfidenceTier.NONE
        assert job.matched_entry is None
        assert job.match_detail == "Unexpected error: scorer bug"


class TestCatalogLoading:
    """Matching while the catalog is still loading."""

    @pytest.mark.asyncio
    async def test_job_is_rematched_after_catalog_loads(self, env):
        env.fetcher.gate = asyncio.Event()

        job = env.pipeline.submit("/downloads/Diluc.zip")
        waiting = await env.wait_for_status(job.id, JobStatus.NEEDS_REVIEW)

        assert waiting.match_detail == "Catalog not loaded"
        assert waiting.confidence == ConfidenceTier.NONE
        assert env.catalogs.is_loading("gimi")

        env.fetcher.gate.set()
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.DONE
        assert job.matched_entry.name == "Diluc"
        assert env.fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_unavailable_catalog_leaves_job_in_review(self, make_env):
        env = make_env(fetch_error="Catalog source error (502).")

        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.wait_for_status(job.id, JobStatus.NEEDS_REVIEW)
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.NEEDS_REVIEW
        assert job.match_detail == "Catalog not loaded"
        assert env.catalogs.last_error("gimi") == "Catalog source error (502)."


class TestFailures:
    """Collaborator failures and human skips."""

    @pytest.mark.asyncio
    async def test_extraction_failure_is_verbatim(self, env):
        await env.load_catalog()
        env.extractor.errors["/downloads/setup.exe"] = "Extension '.exe' is not in the allowed list: .zip"

        job = env.pipeline.submit("/downloads/setup.exe")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "Extension '.exe' is not in the allowed list: .zip"

    @pytest.mark.asyncio
    async def test_placement_failure_clears_match(self, env):
        await env.load_catalog()
        env.placer.error = "Failed to place mod: disk full"

        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "Failed to place mod: disk full"
        assert job.matched_entry is None

    @pytest.mark.asyncio
    async def test_unexpected_error_only_fails_its_job(self, env):
        await env.load_catalog()
        env.extractor.errors["/downloads/broken.zip"] = RuntimeError("boom")

        broken = env.pipeline.submit("/downloads/broken.zip")
        healthy = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        assert env.store.get(broken.id).status == JobStatus.FAILED
        assert env.store.get(broken.id).error_message == "Unexpected error: boom"
        assert env.store.get(healthy.id).status == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_skip_failed_job_then_late_failure(self, env):
        await env.load_catalog()
        env.extractor.errors["/downloads/a.zip"] = "Archive is corrupt"
        first = env.pipeline.submit("/downloads/a.zip")
        await env.pipeline.wait_idle()
        assert env.store.get(first.id).status == JobStatus.FAILED

        skipped = await env.pipeline.skip(first.id)
        assert skipped.status == JobStatus.CANCELED
        again = await env.pipeline.skip(first.id)
        assert again.status == JobStatus.CANCELED

        # A failure reported after the human skip must not win
        async def skip_during_extraction(job_id):
            await env.pipeline.skip(job_id)

        env.extractor.hooks["/downloads/b.zip"] = skip_during_extraction
        env.extractor.errors["/downloads/b.zip"] = "Archive is corrupt"
        second = env.pipeline.submit("/downloads/b.zip")
        await env.pipeline.wait_idle()

        assert env.store.get(second.id).status == JobStatus.CANCELED
        assert env.store.get(second.id).error_message is None

    @pytest.mark.asyncio
    async def test_retry_creates_new_job(self, env):
        await env.load_catalog()
        env.placer.error = "Failed to place mod: locked"
        failed = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        env.placer.error = None
        retried = env.pipeline.retry(failed.id)
        await env.pipeline.wait_idle()

        assert retried.id != failed.id
        assert retried.retry_of == failed.id
        assert env.store.get(retried.id).status == JobStatus.DONE
        assert env.store.get(failed.id).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_retry_requires_failed(self, env):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        with pytest.raises(InvalidTransitionError):
            env.pipeline.retry(job.id)


class TestCancellation:
    """Cancel, batch cancel and discarded late results."""

    @pytest.mark.asyncio
    async def test_cancel_during_extraction(self, env):
        await env.load_catalog()
        env.extractor.gates["/downloads/Diluc.zip"] = asyncio.Event()

        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.wait_for_status(job.id, JobStatus.EXTRACTING)

        canceled = await env.pipeline.cancel(job.id)
        await env.pipeline.wait_idle()

        assert canceled.status == JobStatus.CANCELED
        assert env.store.get(job.id).status == JobStatus.CANCELED
        assert env.placer.calls == []
        assert not env.pipeline.is_running(job.id)

    @pytest.mark.asyncio
    async def test_cancel_terminal_is_noop(self, env):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        result = await env.pipeline.cancel(job.id)

        assert result.status == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_late_extraction_result_is_discarded(self, env):
        await env.load_catalog()

        async def cancel_behind_the_pipeline(job_id):
            env.store.transition(job_id, JobStatus.CANCELED)

        env.extractor.hooks["/downloads/Diluc.zip"] = cancel_behind_the_pipeline
        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.CANCELED
        assert job.display_name is None
        assert env.placer.calls == []

    @pytest.mark.asyncio
    async def test_cancel_batch(self, env):
        await env.load_catalog()
        gate = asyncio.Event()
        env.extractor.gates["/downloads/a.zip"] = gate
        env.extractor.gates["/downloads/b.zip"] = gate

        batch_id, jobs = env.pipeline.submit_batch(["/downloads/a.zip", "/downloads/b.zip"])
        other = env.pipeline.submit("/downloads/Diluc.zip")
        for job in jobs:
            await env.wait_for_status(job.id, JobStatus.EXTRACTING)

        canceled = await env.pipeline.cancel_batch(batch_id)
        gate.set()
        await env.pipeline.wait_idle()

        assert {job.id for job in canceled} == {job.id for job in jobs}
        assert all(env.store.get(job.id).status == JobStatus.CANCELED for job in jobs)
        assert env.store.get(other.id).status == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, env):
        await env.load_catalog()
        gate = asyncio.Event()
        paths = [f"/downloads/Diluc{i}.zip" for i in range(4)]
        for path in paths:
            env.extractor.gates[path] = gate

        _, jobs = env.pipeline.submit_batch(paths)
        await asyncio.sleep(0.05)
        assert len(env.extractor.calls) == 2

        gate.set()
        await env.pipeline.wait_idle()
        assert all(env.store.get(job.id).status == JobStatus.DONE for job in jobs)


class TestConfirm:
    """User overrides from the review queue."""

    @pytest.mark.asyncio
    async def test_confirm_places_canonical_entry(self, env):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Ayato.zip")
        await env.pipeline.wait_idle()

        confirmed = await env.pipeline.confirm(job.id, "character", "ayaka")
        assert confirmed.status == JobStatus.PLACING
        await env.pipeline.wait_idle()

        job = env.store.get(job.id)
        assert job.status == JobStatus.DONE
        assert job.confidence == ConfidenceTier.EXCELLENT
        assert job.match_detail == "User confirmed"
        assert job.matched_entry.name == "Ayaka"
        assert job.matched_entry.category == "Character"
        assert env.placer.calls == [("Character", "Ayaka", "Ayato")]

    @pytest.mark.asyncio
    async def test_confirm_without_name_uses_pending_match(self, env):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Ayato.zip")
        await env.pipeline.wait_idle()

        await env.pipeline.confirm(job.id, "Character")
        await env.pipeline.wait_idle()

        assert env.store.get(job.id).matched_entry.name == "Ayaka"

    @pytest.mark.asyncio
    async def test_confirm_unknown_entry_keeps_user_input(self, env):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Ayato.zip")
        await env.pipeline.wait_idle()

        await env.pipeline.confirm(job.id, "Character", "Kamisato Ayato")
        await env.pipeline.wait_idle()

        entry = env.store.get(job.id).matched_entry
        assert (entry.name, entry.category) == ("Kamisato Ayato", "Character")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category,entry_name", [("", None), ("   ", "Ayaka"), ("Character", "  ")])
    async def test_blank_input_is_rejected_without_change(self, env, category, entry_name):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Ayato.zip")
        await env.pipeline.wait_idle()
        before = env.store.get(job.id)

        with pytest.raises(ImportValidationError):
            await env.pipeline.confirm(job.id, category, entry_name)

        after = env.store.get(job.id)
        assert after.status == JobStatus.NEEDS_REVIEW
        assert after.updated_at == before.updated_at

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "category,entry_name",
        [("..", ".."), (".", "Ayaka"), ("Character", ".."), ("Character", " . "), ("...", None)],
    )
    async def test_dot_names_are_rejected_without_change(self, env, category, entry_name):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Ayato.zip")
        await env.pipeline.wait_idle()
        before = env.store.get(job.id)

        with pytest.raises(ImportValidationError, match="Invalid"):
            await env.pipeline.confirm(job.id, category, entry_name)
        await env.pipeline.wait_idle()

        after = env.store.get(job.id)
        assert after.status == JobStatus.NEEDS_REVIEW
        assert after.updated_at == before.updated_at
        assert env.placer.calls == []

    @pytest.mark.asyncio
    async def test_confirm_requires_review(self, env):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Diluc.zip")
        await env.pipeline.wait_idle()

        with pytest.raises(InvalidTransitionError):
            await env.pipeline.confirm(job.id, "Character", "Diluc")

    @pytest.mark.asyncio
    async def test_confirm_unknown_job(self, env):
        with pytest.raises(JobNotFoundError):
            await env.pipeline.confirm("missing", "Character", "Diluc")


class TestSubmission:
    """Input validation and housekeeping."""

    @pytest.mark.asyncio
    async def test_blank_source_rejected(self, env):
        with pytest.raises(ImportValidationError):
            env.pipeline.submit("   ")
        assert len(env.store) == 0

    @pytest.mark.asyncio
    async def test_batch_rejects_blank_entries_before_creating_jobs(self, env):
        with pytest.raises(ImportValidationError):
            env.pipeline.submit_batch(["/downloads/a.zip", ""])
        with pytest.raises(ImportValidationError):
            env.pipeline.submit_batch([])
        assert len(env.store) == 0

    @pytest.mark.asyncio
    async def test_scope_defaults(self, env):
        await env.load_catalog()
        job = env.pipeline.submit("/downloads/Diluc.zip", scope="  ")
        await env.pipeline.wait_idle()
        assert job.scope == "gimi"

    @pytest.mark.asyncio
    async def test_purge_removes_finished_jobs(self, env):
        await env.load_catalog()
        env.extractor.gates["/downloads/slow.zip"] = asyncio.Event()
        done = env.pipeline.submit("/downloads/Diluc.zip")
        running = env.pipeline.submit("/downloads/slow.zip")
        await env.wait_for_status(done.id, JobStatus.DONE)

        assert env.pipeline.purge(older_than_days=0) == 1

        with pytest.raises(JobNotFoundError):
            env.store.get(done.id)
        assert env.store.get(running.id).status == JobStatus.EXTRACTING

        await env.pipeline.cancel(running.id)
        await env.pipeline.wait_idle()
