import asyncio
import sqlite3
from datetime import date, datetime
from typing import Any, Callable

import sqlite_vec

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.errors import StoreError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.vector_helper import deserialize_vector, serialize_vector
from shared.models.chat import Chat, ChatMessage, ChatSegment, Contact
from shared.models.config import EnvConfig

SCHEMA = """
CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    department TEXT,
    email TEXT,
    phone TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS chats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    contact_id INTEGER,
    is_active INTEGER NOT NULL DEFAULT 1,
    embedding BLOB
);
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL REFERENCES chats(id),
    content TEXT NOT NULL DEFAULT '',
    timestamp TEXT NOT NULL,
    is_user INTEGER NOT NULL DEFAULT 0,
    embedding BLOB
);
CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id);
CREATE TABLE IF NOT EXISTS chat_segments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL,
    segment_date TEXT NOT NULL,
    message_count INTEGER NOT NULL DEFAULT 0,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    combined_content TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL DEFAULT '',
    keywords TEXT NOT NULL DEFAULT '',
    embedding BLOB,
    created_at TEXT NOT NULL
);
DROP INDEX IF EXISTS idx_segments_chat_date;
DELETE FROM chat_segments WHERE id NOT IN (SELECT MAX(id) FROM chat_segments GROUP BY chat_id, segment_date);
CREATE UNIQUE INDEX IF NOT EXISTS idx_segments_chat_day ON chat_segments(chat_id, segment_date);
"""

# kind -> (vec0 table, entity table)
VECTOR_TABLES = {
    "chat": ("chat_vectors", "chats"),
    "message": ("message_vectors", "messages"),
    "segment": ("segment_vectors", "chat_segments"),
}


class StoreClientSqlite(StoreClientInterface):
    """SQLite store with optional native k-NN search through the sqlite-vec extension.

    Vectors are kept as little-endian float32 BLOBs on the entity rows. When
    the extension is loaded they are mirrored into one vec0 table per entity
    kind, keyed by rowid = entity id. Blocking sqlite3 calls run in a worker
    thread, one at a time behind the store lock.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._db_path = self.get_config_val("PATH", default=None, val_type="string")
        self._use_vector_search = self.get_config_val("VECTOR_SEARCH", default=True, val_type="bool")
        self._dimension = helper_config.get_positive_int_val("EMBED_DIMENSION", default=384)
        self._conn: sqlite3.Connection | None = None
        self._vec_loaded = False

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Sqlite"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PATH", val_type="string", default=None),
            EnvConfig(env_key="VECTOR_SEARCH", val_type="bool", default=True),
        ]

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    async def boot(self) -> None:
        """Open the database, create the schema and try to enable native vector search."""
        self._conn = await asyncio.to_thread(self._connect)
        await super().boot()
        if self._use_vector_search:
            await self.do_enable_vector_search()
        else:
            self.logging.info("Native vector search disabled by configuration, using brute-force search.")

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                await asyncio.to_thread(self._conn.close)
                self._conn = None
        self._vec_loaded = False
        self._vector_search_available = False
        await super().close()

    async def do_healthcheck(self) -> bool:
        await self._run(lambda conn: conn.execute("SELECT 1").fetchone())
        return True

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.executescript(SCHEMA)
        conn.commit()
        return conn

    async def _run(self, func: Callable[[sqlite3.Connection], Any]) -> Any:
        """Run a blocking function against the connection in a worker thread.

        Raises:
            StoreError: If the store is not booted or sqlite3 fails. Writes are rolled back.
        """
        async with self._lock:
            if self._conn is None:
                raise StoreError("SQLite store not initialised. Call boot() first.")
            conn = self._conn

            def _call():
                try:
                    result = func(conn)
                    conn.commit()
                    return result
                except sqlite3.Error as e:
                    conn.rollback()
                    raise StoreError(f"SQLite operation failed: {e}") from e

            return await asyncio.to_thread(_call)

    ##########################################
    ############# VECTOR SEARCH ##############
    ##########################################

    def _load_vec_extension(self, conn: sqlite3.Connection) -> bool:
        if self._vec_loaded:
            return True
        try:
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
        except (AttributeError, sqlite3.Error) as e:
            self.logging.warning("sqlite-vec extension could not be loaded, falling back to brute-force search: %s", e)
            return False
        for vec_table, entity_table in VECTOR_TABLES.values():
            conn.execute(f"CREATE VIRTUAL TABLE IF NOT EXISTS {vec_table} USING vec0(embedding float[{self._dimension}])")
            # rebuild the index from the entity rows, which are the source of truth
            conn.execute(f"DELETE FROM {vec_table}")
            conn.execute(
                f"INSERT INTO {vec_table}(rowid, embedding) SELECT id, embedding FROM {entity_table} "
                "WHERE embedding IS NOT NULL AND length(embedding) = ?",
                (self._dimension * 4,),
            )
        self._vec_loaded = True
        return True

    async def _do_enable_vector_search(self) -> bool:
        try:
            enabled = await self._run(self._load_vec_extension)
        except StoreError as e:
            self.logging.warning("Could not build the native vector index: %s", e)
            return False
        if enabled:
            self.logging.info("Native vector search enabled (sqlite-vec, dimension %d).", self._dimension)
        return enabled

    async def _do_native_vector_search(self, kind: str, vector: list[float], limit: int) -> list[int]:
        if len(vector) != self._dimension:
            raise ValueError(f"Query vector has size {len(vector)}, expected {self._dimension}.")
        vec_table, _ = VECTOR_TABLES[kind]
        payload = serialize_vector(vector)
        rows = await self._run(
            lambda conn: conn.execute(
                f"SELECT rowid FROM {vec_table} WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
                (payload, limit),
            ).fetchall()
        )
        return [int(row[0]) for row in rows]

    def _sync_vector(self, conn: sqlite3.Connection, kind: str, entity_id: int, vector: list[float] | None) -> None:
        """Mirror an entity vector into its vec0 table. No-op without the extension."""
        if not self._vec_loaded:
            return
        vec_table, _ = VECTOR_TABLES[kind]
        conn.execute(f"DELETE FROM {vec_table} WHERE rowid = ?", (entity_id,))
        if vector is not None and len(vector) == self._dimension:
            conn.execute(f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)", (entity_id, serialize_vector(vector)))

    ##########################################
    ############### ROW MAPPING ##############
    ##########################################

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            chat_id=row["chat_id"],
            content=row["content"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            is_user=bool(row["is_user"]),
            embedding_vector=deserialize_vector(row["embedding"]),
        )

    @staticmethod
    def _row_to_chat(row: sqlite3.Row, messages: list[ChatMessage]) -> Chat:
        return Chat(
            id=row["id"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            contact_id=row["contact_id"],
            is_active=bool(row["is_active"]),
            embedding_vector=deserialize_vector(row["embedding"]),
            messages=messages,
        )

    @staticmethod
    def _row_to_segment(row: sqlite3.Row) -> ChatSegment:
        return ChatSegment(
            id=row["id"],
            chat_id=row["chat_id"],
            segment_date=date.fromisoformat(row["segment_date"]),
            message_count=row["message_count"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]),
            combined_content=row["combined_content"],
            title=row["title"],
            keywords=row["keywords"],
            embedding_vector=deserialize_vector(row["embedding"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_contact(row: sqlite3.Row) -> Contact:
        return Contact(
            id=row["id"],
            name=row["name"],
            department=row["department"],
            email=row["email"],
            phone=row["phone"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    ##########################################
    ################ CHATS ###################
    ##########################################

    def _load_chats(self, conn: sqlite3.Connection, chat_id: int | None = None) -> list[Chat]:
        if chat_id is None:
            chat_rows = conn.execute("SELECT * FROM chats ORDER BY id").fetchall()
            message_rows = conn.execute("SELECT * FROM messages ORDER BY timestamp, id").fetchall()
        else:
            chat_rows = conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchall()
            message_rows = conn.execute(
                "SELECT * FROM messages WHERE chat_id = ? ORDER BY timestamp, id", (chat_id,)
            ).fetchall()

        messages_by_chat: dict[int, list[ChatMessage]] = {}
        for row in message_rows:
            messages_by_chat.setdefault(row["chat_id"], []).append(self._row_to_message(row))
        return [self._row_to_chat(row, messages_by_chat.get(row["id"], [])) for row in chat_rows]

    async def do_get_chat(self, chat_id: int) -> Chat | None:
        chats = await self._run(lambda conn: self._load_chats(conn, chat_id))
        return chats[0] if chats else None

    async def do_get_all_chats(self) -> list[Chat]:
        return await self._run(self._load_chats)

    def _save_chat(self, conn: sqlite3.Connection, chat: Chat) -> int:
        values = (
            chat.title,
            chat.created_at.isoformat(),
            chat.contact_id,
            int(chat.is_active),
            serialize_vector(chat.embedding_vector),
        )
        if chat.id == 0:
            cursor = conn.execute(
                "INSERT INTO chats (title, created_at, contact_id, is_active, embedding) VALUES (?, ?, ?, ?, ?)",
                values,
            )
            chat_id = cursor.lastrowid
        else:
            conn.execute(
                "INSERT INTO chats (id, title, created_at, contact_id, is_active, embedding) VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET title = excluded.title, created_at = excluded.created_at, "
                "contact_id = excluded.contact_id, is_active = excluded.is_active, embedding = excluded.embedding",
                (chat.id, *values),
            )
            chat_id = chat.id
        self._sync_vector(conn, "chat", chat_id, chat.embedding_vector)

        message_ids = []
        for message in chat.messages:
            message_values = (
                chat_id,
                message.content,
                message.timestamp.isoformat(),
                int(message.is_user),
                serialize_vector(message.embedding_vector),
            )
            if message.id == 0:
                cursor = conn.execute(
                    "INSERT INTO messages (chat_id, content, timestamp, is_user, embedding) VALUES (?, ?, ?, ?, ?)",
                    message_values,
                )
                message_id = cursor.lastrowid
            else:
                conn.execute(
                    "INSERT INTO messages (id, chat_id, content, timestamp, is_user, embedding) VALUES (?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET chat_id = excluded.chat_id, content = excluded.content, "
                    "timestamp = excluded.timestamp, is_user = excluded.is_user, embedding = excluded.embedding",
                    (message.id, *message_values),
                )
                message_id = message.id
            self._sync_vector(conn, "message", message_id, message.embedding_vector)
            message_ids.append(message_id)

        # assign ids only after the whole chat was written
        chat.id = chat_id
        for message, message_id in zip(chat.messages, message_ids):
            message.id = message_id
            message.chat_id = chat_id
        return chat_id

    async def do_save_chat(self, chat: Chat) -> int:
        return await self._run(lambda conn: self._save_chat(conn, chat))

    async def do_get_message(self, message_id: int) -> ChatMessage | None:
        row = await self._run(lambda conn: conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone())
        return self._row_to_message(row) if row else None

    ##########################################
    ############### SEGMENTS #################
    ##########################################

    async def do_get_segments_for_chat(self, chat_id: int) -> list[ChatSegment]:
        rows = await self._run(
            lambda conn: conn.execute(
                "SELECT * FROM chat_segments WHERE chat_id = ? ORDER BY segment_date, id", (chat_id,)
            ).fetchall()
        )
        return [self._row_to_segment(row) for row in rows]

    def _save_segment(self, conn: sqlite3.Connection, segment: ChatSegment) -> int:
        values = (
            segment.chat_id,
            segment.segment_date.isoformat(),
            segment.message_count,
            segment.start_time.isoformat(),
            segment.end_time.isoformat(),
            segment.combined_content,
            segment.title,
            segment.keywords,
            serialize_vector(segment.embedding_vector),
            segment.created_at.isoformat(),
        )
        columns = "chat_id, segment_date, message_count, start_time, end_time, combined_content, title, keywords, embedding, created_at"
        updates = ", ".join(f"{column.strip()} = excluded.{column.strip()}" for column in columns.split(","))
        if segment.id == 0:
            # another writer may have inserted this day already; its row is updated then
            conn.execute(
                f"INSERT INTO chat_segments ({columns}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                f"ON CONFLICT(chat_id, segment_date) DO UPDATE SET {updates}",
                values,
            )
            segment_id = conn.execute(
                "SELECT id FROM chat_segments WHERE chat_id = ? AND segment_date = ?",
                (segment.chat_id, segment.segment_date.isoformat()),
            ).fetchone()[0]
        else:
            conn.execute(
                f"INSERT INTO chat_segments (id, {columns}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                (segment.id, *values),
            )
            segment_id = segment.id
        self._sync_vector(conn, "segment", segment_id, segment.embedding_vector)
        segment.id = segment_id
        return segment_id

    async def do_save_chat_segment(self, segment: ChatSegment) -> int:
        return await self._run(lambda conn: self._save_segment(conn, segment))

    async def do_get_chat_segment(self, segment_id: int) -> ChatSegment | None:
        row = await self._run(
            lambda conn: conn.execute("SELECT * FROM chat_segments WHERE id = ?", (segment_id,)).fetchone()
        )
        return self._row_to_segment(row) if row else None

    def _delete_segment(self, conn: sqlite3.Connection, segment_id: int) -> bool:
        cursor = conn.execute("DELETE FROM chat_segments WHERE id = ?", (segment_id,))
        self._sync_vector(conn, "segment", segment_id, None)
        return cursor.rowcount > 0

    async def do_delete_chat_segment(self, segment_id: int) -> bool:
        return await self._run(lambda conn: self._delete_segment(conn, segment_id))

    async def do_get_all_chat_segments(self) -> list[ChatSegment]:
        rows = await self._run(lambda conn: conn.execute("SELECT * FROM chat_segments ORDER BY id").fetchall())
        return [self._row_to_segment(row) for row in rows]

    ##########################################
    ############### CONTACTS #################
    ##########################################

    async def do_get_contact(self, contact_id: int) -> Contact | None:
        row = await self._run(lambda conn: conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone())
        return self._row_to_contact(row) if row else None

    def _save_contact(self, conn: sqlite3.Connection, contact: Contact) -> int:
        values = (contact.name, contact.department, contact.email, contact.phone, contact.created_at.isoformat())
        if contact.id == 0:
            cursor = conn.execute(
                "INSERT INTO contacts (name, department, email, phone, created_at) VALUES (?, ?, ?, ?, ?)", values
            )
            contact.id = cursor.lastrowid
        else:
            conn.execute(
                "INSERT INTO contacts (id, name, department, email, phone, created_at) VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, department = excluded.department, "
                "email = excluded.email, phone = excluded.phone, created_at = excluded.created_at",
                (contact.id, *values),
            )
        return contact.id

    async def do_save_contact(self, contact: Contact) -> int:
        return await self._run(lambda conn: self._save_contact(conn, contact))

    async def do_get_all_contacts(self) -> list[Contact]:
        rows = await self._run(lambda conn: conn.execute("SELECT * FROM contacts ORDER BY id").fetchall())
        return [self._row_to_contact(row) for row in rows]
