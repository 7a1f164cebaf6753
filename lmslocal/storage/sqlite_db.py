"""
SQLite Database Storage for LMSLocal.

Provides storage for competitions, rounds, fixtures, picks and player
progress with:
- Parameterized queries only
- Re-entrant transactions per thread
- BEGIN IMMEDIATE for read-then-write operations (result processing)
- Concurrent read access via WAL mode

This is the SQLite implementation of the DatabaseInterface.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Iterator, List, Dict, Any, Iterable, Set
import threading

from .base import DatabaseInterface
from .exceptions import ConnectionError, SchemaError, QueryError
from ..utils.clock import utcnow, to_iso


PERMISSION_COLUMNS = (
    'manage_results',
    'manage_fixtures',
    'manage_players',
    'manage_promote',
)

SETTINGS_COLUMNS = (
    'name',
    'lives_per_player',
    'no_team_twice',
)


class SQLiteDatabase(DatabaseInterface):
    """
    SQLite database for competition data.
    Thread-safe with connection per thread.

    Implements the DatabaseInterface abstract base class.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str = "cache/lmslocal.db"):
        """
        Create SQLite database instance.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._initialized = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self) -> None:
        """Initialize the database connection and schema."""
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        self._initialized = True

    def close(self) -> None:
        """Close database connections and clean up resources."""
        if getattr(self._local, 'conn', None) is not None:
            self._local.conn.close()
            self._local.conn = None
            self._local.depth = 0

    def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            conn = self._get_connection()
            conn.execute("SELECT 1")
            return True
        except (sqlite3.Error, ConnectionError):
            return False

    # =========================================================================
    # CONNECTION MANAGEMENT
    # =========================================================================

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, 'conn', None) is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                    timeout=30.0,
                    isolation_level=None
                )
            except sqlite3.Error as e:
                raise ConnectionError(f"Cannot open {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn = conn
            self._local.depth = 0
        return self._local.conn

    @contextmanager
    def transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        depth = self._local.depth
        if depth == 0:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        self._local.depth = depth + 1
        try:
            yield conn
        except Exception:
            self._local.depth = depth
            if depth == 0:
                conn.rollback()
            raise
        self._local.depth = depth
        if depth == 0:
            conn.commit()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            conn.executescript('''
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS app_user (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    display_name TEXT NOT NULL,
                    email TEXT,
                    api_token TEXT NOT NULL UNIQUE,
                    is_admin INTEGER NOT NULL DEFAULT 0,
                    email_opt_out INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS device_token (
                    token TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL REFERENCES app_user(id),
                    platform TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                -- Available-teams pool
                CREATE TABLE IF NOT EXISTS team (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    short_name TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS competition (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    organiser_id INTEGER NOT NULL REFERENCES app_user(id),
                    status TEXT NOT NULL DEFAULT 'setup',
                    lives_per_player INTEGER NOT NULL DEFAULT 0,
                    no_team_twice INTEGER NOT NULL DEFAULT 1,
                    invite_code TEXT UNIQUE,
                    winner_id INTEGER REFERENCES app_user(id),
                    created_at TEXT NOT NULL
                );

                -- Players and delegates
                CREATE TABLE IF NOT EXISTS competition_user (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    competition_id INTEGER NOT NULL REFERENCES competition(id) ON DELETE CASCADE,
                    user_id INTEGER NOT NULL REFERENCES app_user(id),
                    status TEXT NOT NULL DEFAULT 'active',
                    lives_remaining INTEGER NOT NULL DEFAULT 0,
                    manage_results INTEGER NOT NULL DEFAULT 0,
                    manage_fixtures INTEGER NOT NULL DEFAULT 0,
                    manage_players INTEGER NOT NULL DEFAULT 0,
                    manage_promote INTEGER NOT NULL DEFAULT 0,
                    hidden INTEGER NOT NULL DEFAULT 0,
                    joined_at TEXT NOT NULL,
                    UNIQUE (competition_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS used_team (
                    competition_id INTEGER NOT NULL REFERENCES competition(id) ON DELETE CASCADE,
                    user_id INTEGER NOT NULL,
                    team TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (competition_id, user_id, team)
                );

                CREATE TABLE IF NOT EXISTS round (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    competition_id INTEGER NOT NULL REFERENCES competition(id) ON DELETE CASCADE,
                    round_number INTEGER NOT NULL,
                    lock_time TEXT NOT NULL,
                    completed_at TEXT,
                    reminder_sent_at TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (competition_id, round_number)
                );

                CREATE TABLE IF NOT EXISTS fixture (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    round_id INTEGER NOT NULL REFERENCES round(id) ON DELETE CASCADE,
                    competition_id INTEGER NOT NULL,
                    home_team TEXT NOT NULL,
                    away_team TEXT NOT NULL,
                    kickoff_time TEXT NOT NULL,
                    home_score INTEGER,
                    away_score INTEGER,
                    result TEXT,
                    processed TEXT
                );

                CREATE TABLE IF NOT EXISTS pick (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    round_id INTEGER NOT NULL REFERENCES round(id) ON DELETE CASCADE,
                    competition_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    team TEXT NOT NULL,
                    fixture_id INTEGER REFERENCES fixture(id) ON DELETE CASCADE,
                    outcome TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (round_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS player_progress (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    competition_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    round_id INTEGER NOT NULL REFERENCES round(id) ON DELETE CASCADE,
                    fixture_id INTEGER,
                    chosen_team TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    lives_before INTEGER NOT NULL,
                    lives_after INTEGER NOT NULL,
                    status_before TEXT NOT NULL,
                    status_after TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (round_id, user_id)
                );

                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    competition_id INTEGER,
                    user_id INTEGER,
                    action TEXT NOT NULL,
                    details TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_round_competition ON round(competition_id);
                CREATE INDEX IF NOT EXISTS idx_round_lock_time ON round(lock_time);
                CREATE INDEX IF NOT EXISTS idx_fixture_round ON fixture(round_id);
                CREATE INDEX IF NOT EXISTS idx_pick_fixture ON pick(fixture_id);
                CREATE INDEX IF NOT EXISTS idx_cu_user ON competition_user(user_id);
                CREATE INDEX IF NOT EXISTS idx_progress_player ON player_progress(competition_id, user_id);
            ''')
        except sqlite3.Error as e:
            raise SchemaError(f"Failed to create schema: {e}") from e

        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                ('schema_version', str(self.SCHEMA_VERSION))
            )

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        """Run a write statement inside (or joining) a transaction."""
        with self.transaction() as conn:
            return conn.execute(sql, tuple(params))

    def _fetch_one(self, sql: str, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
        row = self._get_connection().execute(sql, tuple(params)).fetchone()
        return dict(row) if row else None

    def _fetch_all(self, sql: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
        rows = self._get_connection().execute(sql, tuple(params)).fetchall()
        return [dict(row) for row in rows]

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(
        self,
        display_name: str,
        email: Optional[str],
        api_token: str,
        is_admin: bool = False
    ) -> int:
        cursor = self._execute('''
            INSERT INTO app_user (display_name, email, api_token, is_admin)
            VALUES (?, ?, ?, ?)
        ''', (display_name, email, api_token, int(is_admin)))
        return cursor.lastrowid

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one('SELECT * FROM app_user WHERE id = ?', (user_id,))

    def get_user_by_token(self, api_token: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one('SELECT * FROM app_user WHERE api_token = ?', (api_token,))

    def save_device_token(self, user_id: int, token: str, platform: str) -> None:
        self._execute('''
            INSERT OR REPLACE INTO device_token (token, user_id, platform, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        ''', (token, user_id, platform))

    def get_device_tokens(self, user_ids: Iterable[int]) -> List[Dict[str, Any]]:
        ids = list(user_ids)
        if not ids:
            return []
        placeholders = ','.join('?' for _ in ids)
        return self._fetch_all(
            f'SELECT user_id, token, platform FROM device_token WHERE user_id IN ({placeholders})',
            ids
        )

    def set_email_opt_out(self, user_id: int, opt_out: bool) -> None:
        self._execute(
            'UPDATE app_user SET email_opt_out = ? WHERE id = ?', (int(opt_out), user_id)
        )

    # =========================================================================
    # TEAMS
    # =========================================================================

    def save_teams(self, teams: List[Dict[str, Any]]) -> int:
        with self.transaction() as conn:
            conn.executemany('''
                INSERT INTO team (short_name, name, is_active)
                VALUES (?, ?, ?)
                ON CONFLICT (short_name) DO UPDATE SET
                    name = excluded.name,
                    is_active = excluded.is_active
            ''', [
                (t['short_name'], t.get('name') or t['short_name'], int(t.get('is_active', True)))
                for t in teams
            ])
        return len(teams)

    def get_active_teams(self) -> List[Dict[str, Any]]:
        return self._fetch_all(
            'SELECT * FROM team WHERE is_active = 1 ORDER BY short_name'
        )

    # =========================================================================
    # COMPETITIONS
    # =========================================================================

    def create_competition(
        self,
        name: str,
        organiser_id: int,
        lives_per_player: int,
        no_team_twice: bool,
        invite_code: str
    ) -> int:
        cursor = self._execute('''
            INSERT INTO competition
            (name, organiser_id, status, lives_per_player, no_team_twice, invite_code, created_at)
            VALUES (?, ?, 'setup', ?, ?, ?, ?)
        ''', (name, organiser_id, lives_per_player, int(no_team_twice), invite_code, to_iso(utcnow())))
        return cursor.lastrowid

    def get_competition(self, competition_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one('SELECT * FROM competition WHERE id = ?', (competition_id,))

    def get_competition_by_invite_code(self, invite_code: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            'SELECT * FROM competition WHERE invite_code = ?', (invite_code,)
        )

    def update_competition_status(
        self,
        competition_id: int,
        status: str,
        winner_id: Optional[int] = None
    ) -> None:
        self._execute(
            'UPDATE competition SET status = ?, winner_id = ? WHERE id = ?',
            (status, winner_id, competition_id)
        )

    def reset_competition(self, competition_id: int, invite_code: str) -> int:
        with self.transaction() as conn:
            for table in ('used_team', 'player_progress', 'pick', 'fixture', 'round'):
                conn.execute(f'DELETE FROM {table} WHERE competition_id = ?', (competition_id,))

            cursor = conn.execute('''
                UPDATE competition_user
                SET status = 'active',
                    lives_remaining = (
                        SELECT lives_per_player FROM competition WHERE id = ?
                    )
                WHERE competition_id = ?
            ''', (competition_id, competition_id))
            players_reset = cursor.rowcount

            conn.execute('''
                UPDATE competition
                SET status = 'setup', winner_id = NULL, invite_code = ?
                WHERE id = ?
            ''', (invite_code, competition_id))
        return players_reset

    def update_competition(self, competition_id: int, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - set(SETTINGS_COLUMNS)
        if unknown:
            raise QueryError(f"Unknown competition columns: {sorted(unknown)}")
        if not fields:
            return

        columns = [c for c in SETTINGS_COLUMNS if c in fields]
        values = [
            int(fields[c]) if isinstance(fields[c], bool) else fields[c]
            for c in columns
        ]
        self._execute(
            f'UPDATE competition SET {", ".join(c + " = ?" for c in columns)} WHERE id = ?',
            values + [competition_id]
        )

    def delete_competition(self, competition_id: int) -> None:
        with self.transaction() as conn:
            for table in (
                'used_team', 'player_progress', 'pick', 'fixture', 'round',
                'competition_user', 'audit_log',
            ):
                conn.execute(f'DELETE FROM {table} WHERE competition_id = ?', (competition_id,))
            conn.execute('DELETE FROM competition WHERE id = ?', (competition_id,))

    # =========================================================================
    # PLAYERS
    # =========================================================================

    _PLAYER_SELECT = '''
        SELECT cu.*, u.display_name, u.email, u.email_opt_out
        FROM competition_user cu
        JOIN app_user u ON u.id = cu.user_id
    '''

    def add_player(self, competition_id: int, user_id: int, lives: int) -> int:
        try:
            cursor = self._execute('''
                INSERT INTO competition_user
                (competition_id, user_id, status, lives_remaining, joined_at)
                VALUES (?, ?, 'active', ?, ?)
            ''', (competition_id, user_id, lives, to_iso(utcnow())))
        except sqlite3.IntegrityError as e:
            raise QueryError(f"User {user_id} already in competition {competition_id}") from e
        return cursor.lastrowid

    def get_player(self, competition_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            self._PLAYER_SELECT + ' WHERE cu.competition_id = ? AND cu.user_id = ?',
            (competition_id, user_id)
        )

    def get_players(
        self,
        competition_id: int,
        status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = self._PLAYER_SELECT + ' WHERE cu.competition_id = ?'
        params: List[Any] = [competition_id]

        if status:
            query += ' AND cu.status = ?'
            params.append(status)

        query += ' ORDER BY u.display_name COLLATE NOCASE, cu.user_id'
        return self._fetch_all(query, params)

    def update_player(
        self,
        competition_id: int,
        user_id: int,
        lives_remaining: Optional[int] = None,
        status: Optional[str] = None
    ) -> None:
        assignments = []
        params: List[Any] = []

        if lives_remaining is not None:
            assignments.append('lives_remaining = ?')
            params.append(lives_remaining)

        if status is not None:
            assignments.append('status = ?')
            params.append(status)

        if not assignments:
            return

        params.extend([competition_id, user_id])
        self._execute(
            f'UPDATE competition_user SET {", ".join(assignments)} '
            'WHERE competition_id = ? AND user_id = ?',
            params
        )

    def get_permission_row(
        self,
        competition_id: int,
        user_id: int
    ) -> Optional[Dict[str, Any]]:
        return self._fetch_one('''
            SELECT
                c.organiser_id,
                cu.manage_results,
                cu.manage_fixtures,
                cu.manage_players,
                cu.manage_promote
            FROM competition c
            LEFT JOIN competition_user cu ON cu.competition_id = c.id AND cu.user_id = ?
            WHERE c.id = ?
        ''', (user_id, competition_id))

    def set_permissions(
        self,
        competition_id: int,
        user_id: int,
        flags: Dict[str, bool]
    ) -> None:
        unknown = set(flags) - set(PERMISSION_COLUMNS)
        if unknown:
            raise QueryError(f"Unknown permission columns: {sorted(unknown)}")
        if not flags:
            return

        columns = [c for c in PERMISSION_COLUMNS if c in flags]
        self._execute(
            f'UPDATE competition_user SET {", ".join(c + " = ?" for c in columns)} '
            'WHERE competition_id = ? AND user_id = ?',
            [int(flags[c]) for c in columns] + [competition_id, user_id]
        )

    def set_player_hidden(self, competition_id: int, user_id: int, hidden: bool) -> None:
        self._execute(
            'UPDATE competition_user SET hidden = ? WHERE competition_id = ? AND user_id = ?',
            (int(hidden), competition_id, user_id)
        )

    def remove_player(self, competition_id: int, user_id: int) -> None:
        with self.transaction() as conn:
            for table in ('used_team', 'player_progress', 'pick', 'competition_user'):
                conn.execute(
                    f'DELETE FROM {table} WHERE competition_id = ? AND user_id = ?',
                    (competition_id, user_id)
                )

    # =========================================================================
    # USED TEAMS
    # =========================================================================

    def get_used_teams(self, competition_id: int, user_id: int) -> Set[str]:
        rows = self._get_connection().execute(
            'SELECT team FROM used_team WHERE competition_id = ? AND user_id = ?',
            (competition_id, user_id)
        ).fetchall()
        return {row['team'] for row in rows}

    def add_used_team(self, competition_id: int, user_id: int, team: str) -> None:
        self._execute(
            'INSERT OR IGNORE INTO used_team (competition_id, user_id, team) VALUES (?, ?, ?)',
            (competition_id, user_id, team)
        )

    def remove_used_team(self, competition_id: int, user_id: int, team: str) -> None:
        self._execute(
            'DELETE FROM used_team WHERE competition_id = ? AND user_id = ? AND team = ?',
            (competition_id, user_id, team)
        )

    def clear_used_teams(self, competition_id: int, user_id: int) -> None:
        self._execute(
            'DELETE FROM used_team WHERE competition_id = ? AND user_id = ?',
            (competition_id, user_id)
        )

    # =========================================================================
    # ROUNDS
    # =========================================================================

    def create_round(self, competition_id: int, round_number: int, lock_time: str) -> int:
        cursor = self._execute('''
            INSERT INTO round (competition_id, round_number, lock_time, created_at)
            VALUES (?, ?, ?, ?)
        ''', (competition_id, round_number, lock_time, to_iso(utcnow())))
        return cursor.lastrowid

    def get_round(self, round_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one('SELECT * FROM round WHERE id = ?', (round_id,))

    def get_latest_round(self, competition_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one('''
            SELECT * FROM round
            WHERE competition_id = ?
            ORDER BY round_number DESC
            LIMIT 1
        ''', (competition_id,))

    def get_rounds(self, competition_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            'SELECT * FROM round WHERE competition_id = ? ORDER BY round_number',
            (competition_id,)
        )

    def set_round_completed(self, round_id: int, completed_at: Optional[str]) -> None:
        self._execute(
            'UPDATE round SET completed_at = ? WHERE id = ?',
            (completed_at, round_id)
        )

    def get_rounds_locking_between(self, start: str, end: str) -> List[Dict[str, Any]]:
        return self._fetch_all('''
            SELECT r.* FROM round r
            JOIN competition c ON c.id = r.competition_id
            WHERE r.lock_time >= ? AND r.lock_time < ?
            AND r.reminder_sent_at IS NULL
            AND r.completed_at IS NULL
            AND c.status != 'COMPLETE'
            ORDER BY r.lock_time
        ''', (start, end))

    def set_reminder_sent(self, round_id: int, sent_at: str) -> None:
        self._execute(
            'UPDATE round SET reminder_sent_at = ? WHERE id = ?',
            (sent_at, round_id)
        )

    # =========================================================================
    # FIXTURES
    # =========================================================================

    def add_fixtures(
        self,
        round_id: int,
        competition_id: int,
        fixtures: List[Dict[str, Any]]
    ) -> List[int]:
        ids = []
        with self.transaction() as conn:
            for fixture in fixtures:
                cursor = conn.execute('''
                    INSERT INTO fixture (round_id, competition_id, home_team, away_team, kickoff_time)
                    VALUES (?, ?, ?, ?, ?)
                ''', (
                    round_id,
                    competition_id,
                    fixture['home_team'],
                    fixture['away_team'],
                    fixture['kickoff_time']
                ))
                ids.append(cursor.lastrowid)
        return ids

    def get_fixture(self, fixture_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one('SELECT * FROM fixture WHERE id = ?', (fixture_id,))

    def get_fixtures(self, round_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            'SELECT * FROM fixture WHERE round_id = ? ORDER BY kickoff_time, id',
            (round_id,)
        )

    def update_fixture(
        self,
        fixture_id: int,
        home_team: str,
        away_team: str,
        kickoff_time: str
    ) -> None:
        self._execute('''
            UPDATE fixture SET home_team = ?, away_team = ?, kickoff_time = ?
            WHERE id = ?
        ''', (home_team, away_team, kickoff_time, fixture_id))

    def delete_fixture(self, fixture_id: int) -> None:
        self._execute('DELETE FROM fixture WHERE id = ?', (fixture_id,))

    def set_fixture_result(
        self,
        fixture_id: int,
        home_score: int,
        away_score: int,
        result: str
    ) -> None:
        self._execute('''
            UPDATE fixture SET home_score = ?, away_score = ?, result = ?
            WHERE id = ?
        ''', (home_score, away_score, result, fixture_id))

    def set_fixtures_processed(self, round_id: int, processed_at: Optional[str]) -> None:
        self._execute(
            'UPDATE fixture SET processed = ? WHERE round_id = ?',
            (processed_at, round_id)
        )

    # =========================================================================
    # PICKS
    # =========================================================================

    def create_pick(
        self,
        round_id: int,
        competition_id: int,
        user_id: int,
        team: str,
        fixture_id: int
    ) -> int:
        try:
            cursor = self._execute('''
                INSERT INTO pick (round_id, competition_id, user_id, team, fixture_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (round_id, competition_id, user_id, team, fixture_id, to_iso(utcnow())))
        except sqlite3.IntegrityError as e:
            raise QueryError(f"Pick already exists for user {user_id} in round {round_id}") from e
        return cursor.lastrowid

    def get_pick(self, round_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            'SELECT * FROM pick WHERE round_id = ? AND user_id = ?',
            (round_id, user_id)
        )

    def get_picks(self, round_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            'SELECT * FROM pick WHERE round_id = ? ORDER BY user_id',
            (round_id,)
        )

    def get_fixture_picks(self, fixture_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            'SELECT * FROM pick WHERE fixture_id = ? ORDER BY user_id',
            (fixture_id,)
        )

    def replace_pick(self, pick_id: int, team: str, fixture_id: int) -> None:
        self._execute('''
            UPDATE pick SET team = ?, fixture_id = ?, outcome = NULL, created_at = ?
            WHERE id = ?
        ''', (team, fixture_id, to_iso(utcnow()), pick_id))

    def delete_pick(self, pick_id: int) -> None:
        self._execute('DELETE FROM pick WHERE id = ?', (pick_id,))

    def set_pick_outcome(self, pick_id: int, outcome: Optional[str]) -> None:
        self._execute('UPDATE pick SET outcome = ? WHERE id = ?', (outcome, pick_id))

    def count_picks(self, round_id: int) -> int:
        row = self._get_connection().execute(
            'SELECT COUNT(*) AS n FROM pick WHERE round_id = ?', (round_id,)
        ).fetchone()
        return row['n']

    # =========================================================================
    # PROGRESS / AUDIT
    # =========================================================================

    def add_progress(self, entry: Dict[str, Any]) -> int:
        cursor = self._execute('''
            INSERT INTO player_progress
            (competition_id, user_id, round_id, fixture_id, chosen_team, outcome,
             lives_before, lives_after, status_before, status_after, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            entry['competition_id'],
            entry['user_id'],
            entry['round_id'],
            entry.get('fixture_id'),
            entry['chosen_team'],
            entry['outcome'],
            entry['lives_before'],
            entry['lives_after'],
            entry['status_before'],
            entry['status_after'],
            to_iso(utcnow())
        ))
        return cursor.lastrowid

    def get_round_progress(self, round_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            'SELECT * FROM player_progress WHERE round_id = ? ORDER BY user_id',
            (round_id,)
        )

    def delete_round_progress(self, round_id: int) -> int:
        cursor = self._execute('DELETE FROM player_progress WHERE round_id = ?', (round_id,))
        return cursor.rowcount

    def get_player_progress(self, competition_id: int, user_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all('''
            SELECT pp.*, r.round_number
            FROM player_progress pp
            JOIN round r ON r.id = pp.round_id
            WHERE pp.competition_id = ? AND pp.user_id = ?
            ORDER BY r.round_number
        ''', (competition_id, user_id))

    def add_audit(
        self,
        competition_id: Optional[int],
        user_id: Optional[int],
        action: str,
        details: str
    ) -> None:
        self._execute('''
            INSERT INTO audit_log (competition_id, user_id, action, details, created_at)
            VALUES (?, ?, ?, ?, ?)
        ''', (competition_id, user_id, action, details, to_iso(utcnow())))

    def get_audit_log(self, competition_id: int) -> List[Dict[str, Any]]:
        """Audit entries for a competition, oldest first."""
        return self._fetch_all(
            'SELECT * FROM audit_log WHERE competition_id = ? ORDER BY id',
            (competition_id,)
        )
