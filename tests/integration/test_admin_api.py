"""Integration tests for operator endpoints."""

from __future__ import annotations

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from rada.db.models import LedgerEntry, ProgressAggregate
from rada.gamification.ledger_service import award

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}

QUESTION = {"id": 1, "prompt": "Which house represents counties?", "options": ["Senate", "National Assembly"], "correct_index": 0}


class TestAdminAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        response = await client.post("/api/v1/admin/reconcile")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_wrong_token(self, client: AsyncClient):
        response = await client.post("/api/v1/admin/reconcile", headers={"X-Admin-Token": "nope"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unconfigured_token(self, client: AsyncClient, monkeypatch):
        from rada.config import get_settings

        monkeypatch.setattr(get_settings(), "admin_token", "")
        response = await client.post("/api/v1/admin/reconcile", headers=ADMIN_HEADERS)
        assert response.status_code == 503


class TestReconcileEndpoint:
    @pytest.mark.asyncio
    async def test_reports_and_repairs_drift(self, client: AsyncClient, db_session, user_factory):
        user = await user_factory(db_session)
        await award(db_session, user.id, "lesson", "L1", 20)
        await db_session.commit()
        progress = await db_session.get(ProgressAggregate, user.id)
        progress.total_xp = 500
        await db_session.commit()

        response = await client.post("/api/v1/admin/reconcile", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["aggregate_repairs"] == 1
        assert data["total_repairs"] == 1
        assert {"user_id": user.id, "table": "progress_aggregates", "field": "total_xp",
                "stored": 500, "expected": 20} in data["drift"]

        again = (await client.post("/api/v1/admin/reconcile", headers=ADMIN_HEADERS)).json()
        assert again["total_repairs"] == 0


class TestReverseEndpoint:
    @pytest.mark.asyncio
    async def test_reverse_then_conflict(self, client: AsyncClient, db_session, user_factory):
        user = await user_factory(db_session)
        result = await award(db_session, user.id, "quiz", "Q1", 30)
        await db_session.commit()

        url = f"/api/v1/admin/ledger/{result.entry_id}/reverse"
        first = await client.post(url, json={"reason": "quiz answers leaked"}, headers=ADMIN_HEADERS)
        second = await client.post(url, json={"reason": "again"}, headers=ADMIN_HEADERS)

        assert first.status_code == 200
        assert first.json()["reversed_entry_id"] == result.entry_id
        assert second.status_code == 409

        progress = (await client.get(f"/api/v1/users/{user.id}/progress")).json()
        assert progress["total_xp"] == 0
        assert progress["quizzes_passed"] == 0

    @pytest.mark.asyncio
    async def test_reverse_unknown_entry(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/admin/ledger/777/reverse", json={"reason": "typo"}, headers=ADMIN_HEADERS,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_reversal_cannot_be_reversed(self, client: AsyncClient, db_session, user_factory):
        user = await user_factory(db_session)
        result = await award(db_session, user.id, "lesson", "L1", 20)
        await db_session.commit()
        reversed_ = await client.post(
            f"/api/v1/admin/ledger/{result.entry_id}/reverse", json={"reason": "dup"}, headers=ADMIN_HEADERS,
        )

        response = await client.post(
            f"/api/v1/admin/ledger/{reversed_.json()['reversal_entry_id']}/reverse",
            json={"reason": "undo"},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 422


class TestManualAward:
    @pytest.mark.asyncio
    async def test_idempotent_on_reference(self, client: AsyncClient, db_session, user_factory):
        user = await user_factory(db_session)
        body = {"user": user.public_id, "amount": 50, "reference_id": "civic-week-bonus"}

        first = await client.post("/api/v1/admin/awards", json=body, headers=ADMIN_HEADERS)
        second = await client.post("/api/v1/admin/awards", json=body, headers=ADMIN_HEADERS)

        assert first.status_code == 200
        assert first.json()["accepted"] is True
        assert second.json()["accepted"] is False
        assert second.json()["entry_id"] == first.json()["entry_id"]

        rows = await db_session.execute(select(LedgerEntry).where(LedgerEntry.user_id == user.id))
        assert len(rows.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_negative_adjustment(self, client: AsyncClient, db_session, user_factory):
        user = await user_factory(db_session)
        await award(db_session, user.id, "lesson", "L1", 20)
        await db_session.commit()

        response = await client.post(
            "/api/v1/admin/awards",
            json={"user": user.id, "amount": -5, "reference_id": "spam-penalty"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        progress = (await client.get(f"/api/v1/users/{user.id}/progress")).json()
        assert progress["total_xp"] == 15

    @pytest.mark.asyncio
    async def test_negative_lesson_award_rejected(self, client: AsyncClient, db_session, user_factory):
        user = await user_factory(db_session)
        response = await client.post(
            "/api/v1/admin/awards",
            json={"user": user.id, "amount": -5, "reference_id": "L1", "source_type": "lesson"},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, client: AsyncClient, db_session, user_factory):
        user = await user_factory(db_session)
        response = await client.post(
            "/api/v1/admin/awards",
            json={"user": user.id, "amount": 0, "reference_id": "nothing"},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 422


class TestPublishChallenge:
    @pytest.mark.asyncio
    async def test_publish_is_idempotent_per_date(self, client: AsyncClient):
        body = {"publish_date": "2026-12-12", "title": "Jamhuri Day quiz", "questions": [QUESTION]}

        first = await client.post("/api/v1/admin/challenges", json=body, headers=ADMIN_HEADERS)
        second = await client.post(
            "/api/v1/admin/challenges", json={**body, "title": "Another title"}, headers=ADMIN_HEADERS,
        )

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert first.json()["publish_date"] == date(2026, 12, 12).isoformat()
        assert first.json()["xp_reward"] == 100
        assert second.json()["created"] is False
        assert second.json()["id"] == first.json()["id"]
        assert second.json()["title"] == "Jamhuri Day quiz"

    @pytest.mark.asyncio
    async def test_requires_questions(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/admin/challenges",
            json={"publish_date": "2026-12-13", "title": "Empty", "questions": []},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_rejects_duplicate_question_ids(self, client: AsyncClient):
        repeated = {**QUESTION, "id": "1", "prompt": "Who chairs the Senate?"}
        response = await client.post(
            "/api/v1/admin/challenges",
            json={"publish_date": "2026-12-14", "title": "Repeats", "questions": [QUESTION, repeated]},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 422
