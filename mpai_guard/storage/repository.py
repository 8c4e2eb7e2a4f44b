"""
Repository pattern for data access.

Handles database operations and data persistence logic for conversation
history, monthly spend counters and per-user profiles.
"""

from datetime import date, datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import MonthlyCostEntry, SessionExchange, UserProfile

_EXCHANGE_COLUMNS = (
    "user_id, session_id, analysis_id, user_query, response, method, "
    "output_style, role_context, bandwidth, preview, perspectives, cost, "
    "input_tokens, output_tokens, user_email, timestamp, expires_at"
)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    ``session_exchange`` is append-only; rows leave it only through a
    whole-session delete or expiry purge. ``monthly_cost`` rows are only ever
    changed by atomic increments.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS session_exchange (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                analysis_id TEXT NOT NULL,
                user_query TEXT,
                response TEXT,
                method TEXT,
                output_style TEXT,
                role_context TEXT,
                bandwidth TEXT,
                preview TEXT,
                perspectives TEXT,
                cost REAL NOT NULL DEFAULT 0,
                input_tokens INTEGER NOT NULL DEFAULT 0,
                output_tokens INTEGER NOT NULL DEFAULT 0,
                user_email TEXT,
                timestamp TEXT NOT NULL,
                expires_at INTEGER NOT NULL,
                UNIQUE (user_id, session_id, analysis_id)
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_session_exchange_session
            ON session_exchange (user_id, session_id)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS monthly_cost (
                user_id TEXT NOT NULL,
                period_key TEXT NOT NULL,
                cost REAL NOT NULL DEFAULT 0,
                updated_at TEXT,
                PRIMARY KEY (user_id, period_key)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS user_profile (
                user_id TEXT PRIMARY KEY,
                monthly_limit REAL,
                billing_cycle_start TEXT
            )
        """)
        conn.commit()
    finally:
        conn.close()


def _row_to_exchange(row) -> SessionExchange:
    return SessionExchange(
        user_id=row[0],
        session_id=row[1],
        analysis_id=row[2],
        user_query=row[3],
        response=row[4],
        method=row[5],
        output_style=row[6],
        role_context=row[7],
        bandwidth=row[8],
        preview=row[9],
        perspectives=row[10],
        cost=row[11],
        input_tokens=row[12],
        output_tokens=row[13],
        user_email=row[14],
        timestamp=datetime.fromisoformat(row[15]),
        expires_at=row[16],
    )


class SessionRepository:
    """Append-only per-user/session exchange log."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def append_exchange(self, exchange: SessionExchange) -> None:
        """Insert one exchange.

        Raises:
            sqlite3.IntegrityError: If the (user, session, analysis) key exists
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                f"INSERT INTO session_exchange ({_EXCHANGE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    exchange.user_id,
                    exchange.session_id,
                    exchange.analysis_id,
                    exchange.user_query,
                    exchange.response,
                    exchange.method,
                    exchange.output_style,
                    exchange.role_context,
                    exchange.bandwidth,
                    exchange.preview,
                    exchange.perspectives,
                    exchange.cost,
                    exchange.input_tokens,
                    exchange.output_tokens,
                    exchange.user_email,
                    exchange.timestamp.isoformat(),
                    exchange.expires_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def query_session(
        self,
        user_id: str,
        session_id: str,
        limit: Optional[int] = None,
    ) -> List[SessionExchange]:
        """Get the exchanges of one session.

        Args:
            user_id: Owner of the session
            session_id: Session identifier
            limit: Optional page size

        Returns:
            Exchanges ordered most recent first
        """
        conn = get_connection(self.db_path)
        try:
            query = (
                f"SELECT {_EXCHANGE_COLUMNS} FROM session_exchange "
                "WHERE user_id = ? AND session_id = ? "
                "ORDER BY timestamp DESC, id DESC"
            )
            params: list = [user_id, session_id]
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)
            cursor = conn.execute(query, params)
            return [_row_to_exchange(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def list_user_history(self, user_id: str, limit: int = 50) -> List[SessionExchange]:
        """Most recent exchanges across all of a user's sessions."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_EXCHANGE_COLUMNS} FROM session_exchange "
                "WHERE user_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
                (user_id, limit),
            )
            return [_row_to_exchange(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def count_session_exchanges(self, user_id: str, session_id: str) -> int:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT COUNT(*) FROM session_exchange WHERE user_id = ? AND session_id = ?",
                (user_id, session_id),
            ).fetchone()
            return row[0] or 0
        finally:
            conn.close()

    def delete_session(self, user_id: str, session_id: str) -> int:
        """Delete every exchange of a session.

        Returns:
            Number of exchanges removed
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM session_exchange WHERE user_id = ? AND session_id = ?",
                (user_id, session_id),
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def purge_expired(self, now_epoch: int) -> int:
        """Remove exchanges whose expiry marker has passed."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM session_exchange WHERE expires_at <= ?", (now_epoch,)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()


class CostRepository:
    """Durable per-user, per-period spend counters."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def increment_monthly_cost(
        self,
        user_id: str,
        period_key: str,
        amount: float,
        now: Optional[datetime] = None,
    ) -> None:
        """Atomically add ``amount`` to a user's period total.

        A single upsert statement performs the add inside SQLite, so
        concurrent callers never overwrite each other's increments.
        """
        updated_at = (now or datetime.now()).isoformat()
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO monthly_cost (user_id, period_key, cost, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_id, period_key)
                DO UPDATE SET cost = cost + excluded.cost,
                              updated_at = excluded.updated_at
                """,
                (user_id, period_key, amount, updated_at),
            )
            conn.commit()
        finally:
            conn.close()

    def get_monthly_cost(self, user_id: str, period_key: str) -> float:
        """User's spend for a period; 0.0 when nothing has been recorded."""
        entry = self.get_entry(user_id, period_key)
        return entry.cost if entry else 0.0

    def get_entry(self, user_id: str, period_key: str) -> Optional[MonthlyCostEntry]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT user_id, period_key, cost, updated_at FROM monthly_cost "
                "WHERE user_id = ? AND period_key = ?",
                (user_id, period_key),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return MonthlyCostEntry(
            user_id=row[0],
            period_key=row[1],
            cost=float(row[2]),
            updated_at=datetime.fromisoformat(row[3]) if row[3] else None,
        )


class UserProfileRepository:
    """Per-user monthly limit overrides and billing-cycle anchors."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT user_id, monthly_limit, billing_cycle_start FROM user_profile "
                "WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return UserProfile(
            user_id=row[0],
            monthly_limit=float(row[1]) if row[1] is not None else None,
            billing_cycle_start=date.fromisoformat(row[2]) if row[2] else None,
        )

    def set_monthly_limit(self, user_id: str, monthly_limit: Optional[float]) -> None:
        """Set (or clear, with ``None``) a user's monthly limit override."""
        if monthly_limit is not None and monthly_limit <= 0:
            raise ValueError("monthly_limit must be > 0")
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO user_profile (user_id, monthly_limit) VALUES (?, ?)
                ON CONFLICT (user_id) DO UPDATE SET monthly_limit = excluded.monthly_limit
                """,
                (user_id, monthly_limit),
            )
            conn.commit()
        finally:
            conn.close()

    def set_billing_cycle_start(self, user_id: str, cycle_start: Optional[date]) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO user_profile (user_id, billing_cycle_start) VALUES (?, ?)
                ON CONFLICT (user_id) DO UPDATE SET billing_cycle_start = excluded.billing_cycle_start
                """,
                (user_id, cycle_start.isoformat() if cycle_start else None),
            )
            conn.commit()
        finally:
            conn.close()
