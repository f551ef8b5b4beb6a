"""Async SQLite repository for question records and user profiles.

Uses aiosqlite for non-blocking database access in the async API.
The approval write is a single conditional UPDATE, which is the only
mutation a question record ever receives.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from tutor_relay.models.question import (
    Platform,
    QuestionAlreadyApprovedError,
    QuestionApproval,
    QuestionRecord,
    QuestionRecordCreate,
    QuestionRecordNotFoundError,
    UserProfile,
)

logger = logging.getLogger(__name__)

CREATE_QUESTIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS question_records (
    id TEXT PRIMARY KEY,
    requester_id TEXT NOT NULL,
    requester_name TEXT NOT NULL,
    question TEXT NOT NULL,
    answer TEXT NOT NULL,
    edited_answer TEXT,
    is_approved INTEGER NOT NULL DEFAULT 0
        CHECK(is_approved IN (0, 1)),
    is_from_image INTEGER NOT NULL DEFAULT 0
        CHECK(is_from_image IN (0, 1)),
    image_url TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    approved_at TEXT,
    approved_by TEXT,
    CHECK((is_approved = 1) = (approved_at IS NOT NULL)),
    CHECK(edited_answer IS NULL OR is_approved = 1)
);
"""

CREATE_PROFILES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS user_profiles (
    platform TEXT NOT NULL
        CHECK(platform IN ('telegram', 'whatsapp')),
    platform_user_id TEXT NOT NULL,
    first_name TEXT,
    last_name TEXT,
    username TEXT,
    questions_count INTEGER NOT NULL DEFAULT 0,
    last_interaction_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (platform, platform_user_id)
);
"""

CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_question_records_requester ON question_records(requester_id);",
    "CREATE INDEX IF NOT EXISTS idx_question_records_approved ON question_records(is_approved, created_at);",
]


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-formatted datetime string."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _row_to_record(row: aiosqlite.Row) -> QuestionRecord:
    """Convert an aiosqlite Row to a QuestionRecord model."""
    d = dict(row)
    d["is_approved"] = bool(d.get("is_approved"))
    d["is_from_image"] = bool(d.get("is_from_image"))
    d["created_at"] = _parse_datetime(d["created_at"])
    d["updated_at"] = _parse_datetime(d["updated_at"])
    d["approved_at"] = _parse_datetime(d.get("approved_at"))
    return QuestionRecord(**d)


def _row_to_profile(row: aiosqlite.Row) -> UserProfile:
    d = dict(row)
    d["last_interaction_at"] = _parse_datetime(d["last_interaction_at"])
    d["created_at"] = _parse_datetime(d["created_at"])
    return UserProfile(**d)


class QuestionRepository:
    """Async repository for question records and user profiles."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._initialized = False

    async def initialize(self) -> None:
        """Create the tables and indices if not present."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(CREATE_QUESTIONS_TABLE_SQL)
            await db.execute(CREATE_PROFILES_TABLE_SQL)
            for idx_sql in CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        self._initialized = True
        logger.info("QuestionRepository initialized at %s", self.db_path)

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    # ------------------------------------------------------------------
    # Question records
    # ------------------------------------------------------------------

    async def create(self, data: QuestionRecordCreate) -> QuestionRecord:
        """Insert a new, unapproved question record."""
        await self._ensure_initialized()
        record_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """
                INSERT INTO question_records (
                    id, requester_id, requester_name, question, answer,
                    is_approved, is_from_image, image_url, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    data.requester_id,
                    data.requester_name,
                    data.question,
                    data.answer,
                    int(data.is_from_image),
                    data.image_url,
                    now,
                    now,
                ),
            )
            await db.commit()

            cursor = await db.execute(
                "SELECT * FROM question_records WHERE id = ?", (record_id,)
            )
            row = await cursor.fetchone()
            return _row_to_record(row)

    async def get_by_id(self, record_id: str) -> Optional[QuestionRecord]:
        """Fetch a record by id, or None when it does not exist."""
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM question_records WHERE id = ?", (record_id,)
            )
            row = await cursor.fetchone()
            return _row_to_record(row) if row else None

    async def approve(
        self, record_id: str, approval: QuestionApproval
    ) -> QuestionRecord:
        """Mark a record approved, optionally storing the reviewer's edit.

        The update only applies to records that are still pending, so two
        concurrent approvals of the same record cannot both succeed.

        Raises:
            QuestionRecordNotFoundError: no record with this id
            QuestionAlreadyApprovedError: the record was approved before
        """
        await self._ensure_initialized()
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                UPDATE question_records
                SET is_approved = 1,
                    edited_answer = ?,
                    approved_at = ?,
                    approved_by = ?,
                    updated_at = ?
                WHERE id = ? AND is_approved = 0
                """,
                (approval.edited_answer, now, approval.approved_by, now, record_id),
            )
            await db.commit()
            updated = cursor.rowcount

            cursor = await db.execute(
                "SELECT * FROM question_records WHERE id = ?", (record_id,)
            )
            row = await cursor.fetchone()

        if row is None:
            raise QuestionRecordNotFoundError(f"Question record {record_id} not found")
        if updated == 0:
            raise QuestionAlreadyApprovedError(
                f"Question record {record_id} is already approved"
            )
        return _row_to_record(row)

    async def count_pending(self) -> int:
        """Number of records still waiting for a reviewer."""
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM question_records WHERE is_approved = 0"
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # User profiles
    # ------------------------------------------------------------------

    async def record_interaction(
        self,
        platform: Platform,
        platform_user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> UserProfile:
        """Upsert a profile and count one more question for it."""
        await self._ensure_initialized()
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """
                INSERT INTO user_profiles (
                    platform, platform_user_id, first_name, last_name, username,
                    questions_count, last_interaction_at, created_at
                ) VALUES (?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(platform, platform_user_id) DO UPDATE SET
                    first_name = COALESCE(excluded.first_name, first_name),
                    last_name = COALESCE(excluded.last_name, last_name),
                    username = COALESCE(excluded.username, username),
                    questions_count = questions_count + 1,
                    last_interaction_at = excluded.last_interaction_at
                """,
                (
                    platform.value,
                    platform_user_id,
                    first_name,
                    last_name,
                    username,
                    now,
                    now,
                ),
            )
            await db.commit()

            cursor = await db.execute(
                "SELECT * FROM user_profiles WHERE platform = ? AND platform_user_id = ?",
                (platform.value, platform_user_id),
            )
            row = await cursor.fetchone()
            return _row_to_profile(row)

    async def get_profile(
        self, platform: Platform, platform_user_id: str
    ) -> Optional[UserProfile]:
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM user_profiles WHERE platform = ? AND platform_user_id = ?",
                (platform.value, platform_user_id),
            )
            row = await cursor.fetchone()
            return _row_to_profile(row) if row else None
