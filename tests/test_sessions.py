"""Tests for the session store: TTL sweep, raw-key adoption and wizard stages."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from saarthi.services.sessions import (
    AccountCreationSession,
    DialogSession,
    DialogType,
    MedicationWizardSession,
    MenuStage,
    WizardFlow,
    WizardStage,
    run_session_sweeper,
)
from tests.helpers import PHONE, RAW_PHONE

TTL = timedelta(minutes=30)


class TestSessionMap:
    def test_missing_session_is_none(self, store):
        assert store.dialog.get(PHONE) is None

    def test_set_stamps_clock_time(self, store, clock):
        session = store.dialog.set(PHONE, DialogSession(type=DialogType.SYMPTOM, stage="primary"))
        assert session.updated_at == clock.now

    def test_get_accepts_any_key(self, store):
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        assert store.dialog.get(RAW_PHONE, PHONE) is not None
        assert store.dialog.get(RAW_PHONE) is None

    def test_set_overwrites(self, store):
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        store.dialog.set(PHONE, DialogSession(type=DialogType.SYMPTOM, stage="primary"))
        assert store.dialog.get(PHONE).type == DialogType.SYMPTOM

    def test_delete_ignores_missing_keys(self, store):
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        store.dialog.delete(RAW_PHONE, PHONE)
        assert store.dialog.get(PHONE) is None

    def test_session_kinds_are_independent(self, store):
        store.account.set(PHONE, AccountCreationSession())
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        store.dialog.delete(PHONE)
        assert store.account.get(PHONE) is not None
        assert store.has_any(PHONE)


class TestSweep:
    def test_expired_session_is_removed(self, store, clock):
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        clock.advance(minutes=31)
        assert store.sweep(ttl=TTL) == 1
        assert store.dialog.get(PHONE) is None

    def test_recently_touched_session_survives(self, store, clock):
        session = store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        clock.advance(minutes=20)
        store.dialog.set(PHONE, session)
        clock.advance(minutes=20)
        assert store.sweep(ttl=TTL) == 0
        assert store.dialog.get(PHONE) is not None

    def test_sweeps_every_kind(self, store, clock):
        store.account.set(PHONE, AccountCreationSession())
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        store.medication.set(
            PHONE, MedicationWizardSession(stage=WizardStage.parse("add_name"))
        )
        clock.advance(minutes=45)
        assert store.sweep(ttl=TTL) == 3
        assert not store.has_any(PHONE)

    def test_uses_configured_ttl_by_default(self, store, clock):
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        clock.advance(minutes=29)
        assert store.sweep() == 0
        clock.advance(minutes=2)
        assert store.sweep() == 1

    @pytest.mark.asyncio
    async def test_background_sweeper_runs_until_cancelled(self, store, clock):
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        clock.advance(hours=1)

        task = asyncio.create_task(run_session_sweeper(store, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.dialog.get(PHONE) is None


class TestAdopt:
    def test_moves_raw_key_session_to_normalized_key(self, store, clock):
        store.dialog.set(RAW_PHONE, DialogSession(type=DialogType.SYMPTOM, stage="primary"))
        written_at = clock.now
        clock.advance(minutes=5)

        store.adopt([PHONE, RAW_PHONE])

        assert RAW_PHONE not in store.dialog
        moved = store.dialog.get(PHONE)
        assert moved.type == DialogType.SYMPTOM
        assert moved.updated_at == written_at

    def test_normalized_session_wins(self, store):
        store.dialog.set(PHONE, DialogSession(stage=MenuStage.MAIN_MENU.value))
        store.dialog.set(RAW_PHONE, DialogSession(type=DialogType.SYMPTOM, stage="primary"))

        store.adopt([PHONE, RAW_PHONE])

        assert store.dialog.get(PHONE).is_menu
        assert len(store.dialog) == 1


class TestDialogSession:
    def test_menu_marker(self):
        assert DialogSession(stage="main_menu").is_menu
        assert not DialogSession(type=DialogType.SYMPTOM, stage="main_menu").is_menu

    def test_disambiguation(self):
        assert DialogSession(type=DialogType.DISAMBIGUATION).is_disambiguation


class TestWizardStage:
    @pytest.mark.parametrize(
        "raw, flow, step",
        [
            (1, WizardFlow.ADD, "name"),
            ("2", WizardFlow.ADD, "time"),
            ("add_dosage", WizardFlow.ADD, "dosage"),
            ("update_dosage", WizardFlow.UPDATE, "dosage"),
            ("update_start", WizardFlow.UPDATE, "start"),
            ("delete_confirm", WizardFlow.DELETE, "confirm"),
        ],
    )
    def test_parses_stored_forms(self, raw, flow, step):
        stage = WizardStage.parse(raw)
        assert (stage.flow, stage.step) == (flow, step)

    @pytest.mark.parametrize("raw", ["3", "frobnicate_name", "add_colour", "update", ""])
    def test_rejects_unknown_stages(self, raw):
        with pytest.raises(ValueError):
            WizardStage.parse(raw)

    def test_round_trips_through_str(self):
        assert str(WizardStage.parse("update_time")) == "update_time"

    def test_next_walks_the_flow(self):
        stage = WizardStage.parse("add_name")
        steps = []
        while stage is not None:
            steps.append(stage.step)
            stage = stage.next()
        assert steps == ["name", "time", "dosage", "frequency", "duration"]

    def test_is_immutable(self):
        stage = WizardStage.parse("add_name")
        with pytest.raises(ValidationError):
            stage.step = "time"

    def test_session_accepts_string_stage(self):
        session = MedicationWizardSession.model_validate({"stage": "update_dosage"})
        assert session.stage == WizardStage(flow=WizardFlow.UPDATE, step="dosage")
