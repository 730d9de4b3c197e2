# -*- coding: utf-8 -*-
"""
Модуль для работы с базой данных активности пользователей
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict

import aiosqlite

from .storage import DATA_DIR, now_ms

logger = logging.getLogger("staffbot.stats")

DB_PATH = os.getenv("STAFFBOT_STATS_DB", os.path.join(DATA_DIR, "stats.db"))

EMPTY_TOTALS = {
    "total_voice_time": 0,
    "total_sessions": 0,
    "total_messages": 0,
    "total_reactions": 0,
    "total_voice_joins": 0,
    "first_seen": None,
    "last_activity": None,
    "active_days": 0,
}


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class StatsDatabase:
    """Класс для работы с базой данных статистики"""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path

    async def _apply_pragmas(self, db: aiosqlite.Connection):
        await db.execute("PRAGMA synchronous=NORMAL")
        await db.execute("PRAGMA temp_store=MEMORY")
        await db.execute("PRAGMA cache_size=-16000")

    async def init(self):
        """Инициализация таблиц статистики"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await self._apply_pragmas(db)
            await db.executescript("""
                -- Итоговые счётчики по пользователю
                CREATE TABLE IF NOT EXISTS user_totals (
                    user_id TEXT PRIMARY KEY,
                    total_voice_time INTEGER NOT NULL DEFAULT 0,
                    total_sessions INTEGER NOT NULL DEFAULT 0,
                    total_messages INTEGER NOT NULL DEFAULT 0,
                    total_reactions INTEGER NOT NULL DEFAULT 0,
                    total_voice_joins INTEGER NOT NULL DEFAULT 0,
                    first_seen INTEGER,
                    last_activity INTEGER,
                    active_days INTEGER NOT NULL DEFAULT 0
                );

                -- Активность по дням
                CREATE TABLE IF NOT EXISTS daily_activity (
                    date TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    voice_time INTEGER NOT NULL DEFAULT 0,
                    messages INTEGER NOT NULL DEFAULT 0,
                    reactions INTEGER NOT NULL DEFAULT 0,
                    voice_joins INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (date, user_id)
                );

                CREATE INDEX IF NOT EXISTS idx_daily_activity_user
                ON daily_activity (user_id);
            """)
            await db.commit()
        logger.info("✅ База данных статистики инициализирована")

    async def _bump(self, user_id: int, *, messages: int = 0, reactions: int = 0,
                    voice_time: int = 0, voice_joins: int = 0):
        """Увеличить счётчики пользователя в обеих таблицах"""
        uid = str(user_id)
        ts = now_ms()
        day = _today()
        async with aiosqlite.connect(self.db_path) as db:
            await self._apply_pragmas(db)
            await db.execute(
                """
                INSERT INTO daily_activity (date, user_id, voice_time, messages, reactions, voice_joins)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(date, user_id) DO UPDATE SET
                    voice_time = voice_time + excluded.voice_time,
                    messages = messages + excluded.messages,
                    reactions = reactions + excluded.reactions,
                    voice_joins = voice_joins + excluded.voice_joins
                """,
                (day, uid, voice_time, messages, reactions, voice_joins),
            )
            await db.execute(
                """
                INSERT INTO user_totals (user_id, total_voice_time, total_sessions, total_messages,
                                         total_reactions, total_voice_joins, first_seen, last_activity)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    total_voice_time = total_voice_time + excluded.total_voice_time,
                    total_sessions = total_sessions + excluded.total_sessions,
                    total_messages = total_messages + excluded.total_messages,
                    total_reactions = total_reactions + excluded.total_reactions,
                    total_voice_joins = total_voice_joins + excluded.total_voice_joins,
                    last_activity = excluded.last_activity
                """,
                (uid, voice_time, voice_joins, messages, reactions, voice_joins, ts, ts),
            )
            await db.execute(
                """
                UPDATE user_totals
                   SET active_days = (SELECT COUNT(DISTINCT date) FROM daily_activity WHERE user_id = ?)
                 WHERE user_id = ?
                """,
                (uid, uid),
            )
            await db.commit()

    async def record_message(self, user_id: int):
        await self._bump(user_id, messages=1)

    async def record_reaction(self, user_id: int):
        await self._bump(user_id, reactions=1)

    async def record_voice_session(self, user_id: int, seconds: int):
        """Записать завершённую голосовую сессию (время хранится в мс)"""
        await self._bump(user_id, voice_time=max(int(seconds), 0) * 1000, voice_joins=1)

    async def get_user_totals(self, user_id: int) -> Dict:
        """Итоговые счётчики пользователя (нули для неизвестного)"""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM user_totals WHERE user_id = ?", (str(user_id),)
            )
            row = await cursor.fetchone()
            await cursor.close()
        if not row:
            return dict(EMPTY_TOTALS)
        result = dict(EMPTY_TOTALS)
        result.update({k: row[k] for k in row.keys() if k != "user_id"})
        return result

    async def get_interaction_stats(self, user_id: int) -> Dict:
        """Краткая статистика для снимка при повышении. Никогда не бросает исключение"""
        try:
            totals = await self.get_user_totals(user_id)
        except Exception as e:
            logger.warning(f"⚠️ Статистика недоступна для {user_id}: {e}")
            totals = dict(EMPTY_TOTALS)
        return {
            "total_voice_time": totals.get("total_voice_time") or 0,
            "total_messages": totals.get("total_messages") or 0,
            "total_reactions": totals.get("total_reactions") or 0,
            "total_sessions": totals.get("total_sessions") or 0,
            "active_days": totals.get("active_days") or 0,
        }


# Глобальный экземпляр
stats_db = StatsDatabase()
