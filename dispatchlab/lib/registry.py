"""Emulated hierarchical configuration store with typed values.

Keys are addressed by slash-delimited paths starting with a hive, e.g.
``HKEY_CURRENT_USER/Software/Demo``. Key and value names are case-insensitive
and case-preserving. Everything is persisted in a SQLite database; payloads are
stored in their binary encoding and decoded on every read.
"""

from __future__ import annotations

import enum
import logging
import os
import re
import sqlite3
import struct
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Mapping


class RegistryError(Exception):
    """Base class for configuration store errors."""

    kind = "error"


class NotFound(RegistryError):
    """The key or value does not exist."""

    kind = "not_found"


class TypeMismatch(RegistryError):
    """The stored value type differs from the requested one."""

    kind = "type_mismatch"


class AccessDenied(RegistryError):
    """The caller lacks the rights for the operation."""

    kind = "access_denied"


class Malformed(RegistryError):
    """A payload cannot be encoded or decoded as its declared type."""

    kind = "malformed"


class ValueType(enum.Enum):
    STRING = "string"
    BINARY = "binary"
    INT32 = "int32"
    INT64 = "int64"
    MULTI_STRING = "multi-string"
    EXPANDABLE_STRING = "expandable-string"

    @property
    def code(self) -> int:
        """The numeric REG_* type code."""
        return _REG_CODES[self][0]

    @property
    def reg_name(self) -> str:
        return _REG_CODES[self][1]

    @classmethod
    def parse(cls, value: Any) -> ValueType:
        """Accept a ValueType, a tag ("int32"), a REG_* name or a numeric code."""
        if isinstance(value, cls):
            return value
        for value_type, (code, reg_name) in _REG_CODES.items():
            if value in (value_type.value, reg_name, code) and not isinstance(value, bool):
                return value_type
        raise Malformed(f"Unknown value type: {value!r}")


_REG_CODES = {
    ValueType.STRING: (1, "REG_SZ"),
    ValueType.EXPANDABLE_STRING: (2, "REG_EXPAND_SZ"),
    ValueType.BINARY: (3, "REG_BINARY"),
    ValueType.INT32: (4, "REG_DWORD"),
    ValueType.MULTI_STRING: (7, "REG_MULTI_SZ"),
    ValueType.INT64: (11, "REG_QWORD"),
}

HIVES = (
    "HKEY_CLASSES_ROOT",
    "HKEY_CURRENT_USER",
    "HKEY_LOCAL_MACHINE",
    "HKEY_USERS",
    "HKEY_CURRENT_CONFIG",
)
HIVE_ALIASES = {
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKCU": "HKEY_CURRENT_USER",
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKU": "HKEY_USERS",
    "HKCC": "HKEY_CURRENT_CONFIG",
}
# Everything except the current user's hive needs elevation to write
PROTECTED_HIVES = frozenset(HIVES) - {"HKEY_CURRENT_USER"}

KEY_QUERY_VALUE = 0x0001
KEY_SET_VALUE = 0x0002
KEY_CREATE_SUB_KEY = 0x0004
KEY_ENUMERATE_SUB_KEYS = 0x0008
KEY_READ = 0x20019
KEY_WRITE = 0x20006
KEY_ALL_ACCESS = 0xF003F

_INT_FORMATS = {ValueType.INT32: ("<I", 4), ValueType.INT64: ("<Q", 8)}
_VARIABLE_RE = re.compile(r"%([^%]+)%")


def _encode_text(text: Any) -> bytes:
    if not isinstance(text, str):
        raise Malformed(f"Expected str, got {type(text).__name__}")
    if "\x00" in text:
        raise Malformed("Strings may not contain NUL characters")
    return text.encode("utf-8") + b"\x00"


def _decode_text(raw: bytes) -> str:
    if not raw.endswith(b"\x00") or b"\x00" in raw[:-1]:
        raise Malformed("String payload is not a single NUL-terminated string")
    try:
        return raw[:-1].decode("utf-8")
    except UnicodeDecodeError as e:
        raise Malformed(f"String payload is not valid UTF-8: {e}") from None


def encode_value(value_type: ValueType, data: Any) -> bytes:
    """Encode a Python payload into its stored byte form.

    Raises:
        Malformed: If ``data`` does not fit ``value_type``.
    """
    if value_type in (ValueType.STRING, ValueType.EXPANDABLE_STRING):
        return _encode_text(data)

    if value_type == ValueType.BINARY:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise Malformed(f"Expected bytes, got {type(data).__name__}")
        return bytes(data)

    if value_type in _INT_FORMATS:
        fmt, size = _INT_FORMATS[value_type]
        if not isinstance(data, int) or isinstance(data, bool):
            raise Malformed(f"Expected int, got {type(data).__name__}")
        if not 0 <= data < 2 ** (size * 8):
            raise Malformed(f"{data} does not fit in an unsigned {size * 8}-bit integer")
        return struct.pack(fmt, data)

    if value_type == ValueType.MULTI_STRING:
        if isinstance(data, (str, bytes)) or not isinstance(data, (list, tuple)):
            raise Malformed(f"Expected a list of str, got {type(data).__name__}")
        if any(item == "" for item in data):
            raise Malformed("Multi-string entries may not be empty")
        return b"".join(_encode_text(item) for item in data) + b"\x00"

    raise Malformed(f"Unknown value type: {value_type!r}")


def decode_value(value_type: ValueType, raw: bytes) -> Any:
    """Decode a stored payload.

    Raises:
        Malformed: If ``raw`` is not a valid encoding of ``value_type``.
    """
    raw = bytes(raw)
    if value_type in (ValueType.STRING, ValueType.EXPANDABLE_STRING):
        return _decode_text(raw)

    if value_type == ValueType.BINARY:
        return raw

    if value_type in _INT_FORMATS:
        fmt, size = _INT_FORMATS[value_type]
        if len(raw) != size:
            raise Malformed(f"{value_type.value} payload must be {size} bytes, got {len(raw)}")
        return struct.unpack(fmt, raw)[0]

    if value_type == ValueType.MULTI_STRING:
        if raw == b"\x00":
            return []
        if not raw.endswith(b"\x00\x00"):
            raise Malformed("Multi-string payload is not double NUL-terminated")
        items = []
        for chunk in raw[:-2].split(b"\x00"):
            if not chunk:
                raise Malformed("Multi-string payload contains an empty entry")
            items.append(_decode_text(chunk + b"\x00"))
        return items

    raise Malformed(f"Unknown value type: {value_type!r}")


def expand_variables(text: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace ``%NAME%`` references with environment values.

    Names are matched case-insensitively. Unknown references are left as written.
    """
    env = os.environ if environ is None else environ
    folded = {k.casefold(): v for k, v in env.items()}

    def _substitute(match: re.Match) -> str:
        return folded.get(match.group(1).casefold(), match.group(0))

    return _VARIABLE_RE.sub(_substitute, text)


def to_json_data(value_type: ValueType, data: Any) -> Any:
    """Convert a decoded payload to a JSON-friendly form (binary becomes hex)."""
    if value_type == ValueType.BINARY:
        return bytes(data).hex()
    return data


def from_json_data(value_type: ValueType, data: Any) -> Any:
    if value_type == ValueType.BINARY:
        if not isinstance(data, str):
            raise Malformed("Binary data must be a hex string")
        try:
            return bytes.fromhex(data)
        except ValueError as e:
            raise Malformed(f"Invalid hex data: {e}") from None
    return data


def check_value_name(name: Any) -> str:
    if not isinstance(name, str):
        raise Malformed(f"Value name must be a string, got {type(name).__name__}")
    return name


def _check_document(document: Any, path: str) -> None:
    if not isinstance(document, dict):
        raise Malformed(f"Import document for {path} must be an object")
    values = document.get("values", [])
    keys = document.get("keys", [])
    if not isinstance(values, list) or not isinstance(keys, list):
        raise Malformed(f"'values' and 'keys' under {path} must be lists")
    for value in values:
        if not isinstance(value, dict):
            raise Malformed(f"Value entries under {path} must be objects, got {value!r}")
        check_value_name(value.get("name", ""))
        value_type = ValueType.parse(value.get("type"))
        encode_value(value_type, from_json_data(value_type, value.get("data")))
    for child in keys:
        if not isinstance(child, dict):
            raise Malformed(f"Child keys under {path} must be objects, got {child!r}")
        name = child.get("name")
        if not isinstance(name, str) or not name:
            raise Malformed(f"Child key without a name under {path}")
        _check_document(child, f"{path}/{name}")


def split_path(path: str) -> list[str]:
    """Split a key path into [hive, segment, ...] with the hive name canonicalised.

    Backslashes are accepted as separators too.

    Raises:
        NotFound: If the path is empty or does not start with a known hive.
    """
    parts = [p for p in re.split(r"[/\\]+", path.strip()) if p]
    if not parts:
        raise NotFound("Empty key path")
    hive = parts[0].upper()
    hive = HIVE_ALIASES.get(hive, hive)
    if hive not in HIVES:
        raise NotFound(f"Unknown hive: {parts[0]}")
    return [hive] + parts[1:]


class ConfigStore:
    """Typed key/value store persisted in SQLite.

    Writes under any hive but HKEY_CURRENT_USER require ``elevated=True``.
    """

    def __init__(self, db_path: str, elevated: bool = False) -> None:
        """Open (and create if needed) the store.

        Args:
            db_path: Path to the SQLite database file.
            elevated: Whether writes to protected hives are allowed.
        """
        self.db_path = db_path
        self.elevated = elevated
        self.init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the schema and the hive root keys."""
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS keys (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    parent_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    name_folded TEXT NOT NULL,
                    last_write TEXT NOT NULL,
                    UNIQUE (parent_id, name_folded)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reg_values (
                    key_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    name_folded TEXT NOT NULL,
                    type TEXT NOT NULL,
                    data BLOB NOT NULL,
                    PRIMARY KEY (key_id, name_folded),
                    FOREIGN KEY (key_id) REFERENCES keys (id)
                )
                """
            )
            now = datetime.now().isoformat()
            for hive in HIVES:
                # hives hang off the virtual parent 0
                conn.execute(
                    "INSERT OR IGNORE INTO keys (parent_id, name, name_folded, last_write) "
                    "VALUES (0, ?, ?, ?)",
                    (hive, hive.casefold(), now),
                )

    def _check_write(self, hive: str, path: str) -> None:
        if hive in PROTECTED_HIVES and not self.elevated:
            raise AccessDenied(f"Writing to {path} requires elevation")

    def _resolve(
        self, conn: sqlite3.Connection, parts: list[str], create: bool = False
    ) -> tuple[int, str]:
        """Walk the key path, returning (key id, case-preserved path)."""
        key_id = 0
        names: list[str] = []
        for part in parts:
            row = conn.execute(
                "SELECT id, name FROM keys WHERE parent_id = ? AND name_folded = ?",
                (key_id, part.casefold()),
            ).fetchone()
            if row is None:
                if not create:
                    raise NotFound(f"Key not found: {'/'.join(names + [part])}")
                now = datetime.now().isoformat()
                cursor = conn.execute(
                    "INSERT INTO keys (parent_id, name, name_folded, last_write) "
                    "VALUES (?, ?, ?, ?)",
                    (key_id, part, part.casefold(), now),
                )
                self._touch(conn, key_id)
                row = (cursor.lastrowid, part)
                logging.debug(f"Created key {'/'.join(names + [part])}")
            key_id, name = row
            names.append(name)
        return key_id, "/".join(names)

    def _touch(self, conn: sqlite3.Connection, key_id: int) -> None:
        conn.execute(
            "UPDATE keys SET last_write = ? WHERE id = ?", (datetime.now().isoformat(), key_id)
        )

    def _fetch(self, path: str, name: str) -> tuple[ValueType, bytes]:
        check_value_name(name)
        parts = split_path(path)
        with self._connect() as conn:
            key_id, full_path = self._resolve(conn, parts)
            row = conn.execute(
                "SELECT type, data FROM reg_values WHERE key_id = ? AND name_folded = ?",
                (key_id, name.casefold()),
            ).fetchone()
        if row is None:
            raise NotFound(f"Value {name!r} not found in {full_path}")
        return ValueType.parse(row[0]), bytes(row[1])

    def _subtree_ids(self, conn: sqlite3.Connection, key_id: int) -> list[int]:
        cursor = conn.execute(
            """
            WITH RECURSIVE subtree(id) AS (
                SELECT ?
                UNION ALL
                SELECT k.id FROM keys k JOIN subtree s ON k.parent_id = s.id
            )
            SELECT id FROM subtree
            """,
            (key_id,),
        )
        return [row[0] for row in cursor.fetchall()]

    def create_key(self, path: str, access: int = KEY_ALL_ACCESS) -> RegistryKey:
        """Create a key and any missing intermediate keys. Existing keys are opened."""
        parts = split_path(path)
        self._check_write(parts[0], path)
        with self._connect() as conn:
            _, full_path = self._resolve(conn, parts, create=True)
        return RegistryKey(self, full_path, access)

    def open_key(self, path: str, access: int = KEY_READ) -> RegistryKey:
        parts = split_path(path)
        if access & (KEY_SET_VALUE | KEY_CREATE_SUB_KEY):
            self._check_write(parts[0], path)
        with self._connect() as conn:
            _, full_path = self._resolve(conn, parts)
        return RegistryKey(self, full_path, access)

    def key_exists(self, path: str) -> bool:
        try:
            self.open_key(path)
        except NotFound:
            return False
        return True

    def delete_key(self, path: str) -> None:
        """Delete a key with no subkeys, together with its values.

        Raises:
            AccessDenied: If the key is a hive root or still has subkeys.
        """
        parts = split_path(path)
        if len(parts) == 1:
            raise AccessDenied(f"Cannot delete hive root {parts[0]}")
        self._check_write(parts[0], path)
        with self._connect() as conn:
            key_id, full_path = self._resolve(conn, parts)
            (subkeys,) = conn.execute(
                "SELECT COUNT(*) FROM keys WHERE parent_id = ?", (key_id,)
            ).fetchone()
            if subkeys:
                raise AccessDenied(f"Cannot delete {full_path}: it has {subkeys} subkey(s)")
            parent_id = conn.execute(
                "SELECT parent_id FROM keys WHERE id = ?", (key_id,)
            ).fetchone()[0]
            conn.execute("DELETE FROM reg_values WHERE key_id = ?", (key_id,))
            conn.execute("DELETE FROM keys WHERE id = ?", (key_id,))
            self._touch(conn, parent_id)
        logging.info(f"Deleted key {full_path}")

    def delete_tree(self, path: str) -> None:
        """Delete a key and everything below it. A hive root is emptied instead."""
        parts = split_path(path)
        self._check_write(parts[0], path)
        with self._connect() as conn:
            key_id, full_path = self._resolve(conn, parts)
            ids = self._subtree_ids(conn, key_id)
            if len(parts) == 1:
                ids.remove(key_id)
                conn.execute("DELETE FROM reg_values WHERE key_id = ?", (key_id,))
            else:
                parent_id = conn.execute(
                    "SELECT parent_id FROM keys WHERE id = ?", (key_id,)
                ).fetchone()[0]
                self._touch(conn, parent_id)
            conn.executemany("DELETE FROM reg_values WHERE key_id = ?", [(i,) for i in ids])
            conn.executemany("DELETE FROM keys WHERE id = ?", [(i,) for i in ids])
        logging.info(f"Deleted tree {full_path} ({len(ids)} key(s))")

    def set_value(self, path: str, name: str, value_type: Any, data: Any) -> None:
        """Store a typed value, replacing any value of the same name.

        Raises:
            Malformed: If ``name`` is not a string or ``data`` cannot be encoded as
                ``value_type``.
            AccessDenied: If the hive is protected and the store is not elevated.
            NotFound: If the key does not exist.
        """
        check_value_name(name)
        value_type = ValueType.parse(value_type)
        raw = encode_value(value_type, data)
        parts = split_path(path)
        self._check_write(parts[0], path)
        with self._connect() as conn:
            key_id, full_path = self._resolve(conn, parts)
            conn.execute(
                "INSERT OR REPLACE INTO reg_values (key_id, name, name_folded, type, data) "
                "VALUES (?, ?, ?, ?, ?)",
                (key_id, name, name.casefold(), value_type.value, sqlite3.Binary(raw)),
            )
            self._touch(conn, key_id)
        logging.debug(f"Set {full_path}[{name!r}] = {value_type.value}")

    def query_value(self, path: str, name: str = "") -> tuple[Any, ValueType]:
        """Return (payload, type). Expandable strings come back unexpanded."""
        value_type, raw = self._fetch(path, name)
        return decode_value(value_type, raw), value_type

    def get_value(self, path: str, name: str, expected_type: Any) -> Any:
        """Return the payload, insisting on a particular type.

        Raises:
            TypeMismatch: If the stored type is not ``expected_type``.
        """
        expected_type = ValueType.parse(expected_type)
        value_type, raw = self._fetch(path, name)
        if value_type != expected_type:
            raise TypeMismatch(
                f"{path}[{name!r}] is {value_type.value}, not {expected_type.value}"
            )
        return decode_value(value_type, raw)

    def query_expanded(
        self, path: str, name: str = "", environ: Mapping[str, str] | None = None
    ) -> str:
        """Read a string value, expanding ``%VAR%`` references if it is expandable."""
        value_type, raw = self._fetch(path, name)
        if value_type not in (ValueType.STRING, ValueType.EXPANDABLE_STRING):
            raise TypeMismatch(f"{path}[{name!r}] is {value_type.value}, not a string")
        text = decode_value(value_type, raw)
        if value_type == ValueType.EXPANDABLE_STRING:
            return expand_variables(text, environ)
        return text

    def delete_value(self, path: str, name: str = "") -> None:
        check_value_name(name)
        parts = split_path(path)
        self._check_write(parts[0], path)
        with self._connect() as conn:
            key_id, full_path = self._resolve(conn, parts)
            cursor = conn.execute(
                "DELETE FROM reg_values WHERE key_id = ? AND name_folded = ?",
                (key_id, name.casefold()),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"Value {name!r} not found in {full_path}")
            self._touch(conn, key_id)

    def enum_keys(self, path: str) -> list[str]:
        parts = split_path(path)
        with self._connect() as conn:
            key_id, _ = self._resolve(conn, parts)
            cursor = conn.execute(
                "SELECT name FROM keys WHERE parent_id = ? ORDER BY name_folded", (key_id,)
            )
            return [row[0] for row in cursor.fetchall()]

    def enum_values(self, path: str) -> list[tuple[str, Any, ValueType]]:
        """Return (name, payload, type) for every value of the key, sorted by name."""
        parts = split_path(path)
        with self._connect() as conn:
            key_id, _ = self._resolve(conn, parts)
            rows = conn.execute(
                "SELECT name, type, data FROM reg_values WHERE key_id = ? ORDER BY name_folded",
                (key_id,),
            ).fetchall()
        result = []
        for name, type_tag, raw in rows:
            value_type = ValueType.parse(type_tag)
            result.append((name, decode_value(value_type, raw), value_type))
        return result

    def key_info(self, path: str) -> dict:
        parts = split_path(path)
        with self._connect() as conn:
            key_id, full_path = self._resolve(conn, parts)
            (subkeys,) = conn.execute(
                "SELECT COUNT(*) FROM keys WHERE parent_id = ?", (key_id,)
            ).fetchone()
            (values,) = conn.execute(
                "SELECT COUNT(*) FROM reg_values WHERE key_id = ?", (key_id,)
            ).fetchone()
            (last_write,) = conn.execute(
                "SELECT last_write FROM keys WHERE id = ?", (key_id,)
            ).fetchone()
        return {"path": full_path, "subkeys": subkeys, "values": values, "last_write": last_write}

    def export(self, path: str) -> dict:
        """Dump a subtree as nested dicts. Binary payloads are hex-encoded."""
        parts = split_path(path)
        return {
            "name": parts[-1] if len(parts) > 1 else parts[0],
            "values": [
                {"name": name, "type": value_type.value, "data": to_json_data(value_type, data)}
                for name, data, value_type in self.enum_values(path)
            ],
            "keys": [self.export(f"{path}/{child}") for child in self.enum_keys(path)],
        }

    def import_tree(self, path: str, document: dict) -> int:
        """Load a subtree produced by ``export`` under ``path``.

        The document's own name is not used; its values land on ``path`` and its
        child keys below it. The whole document is checked before anything is
        written.

        Raises:
            Malformed: If the document does not have the shape ``export`` produces.

        Returns:
            The number of values written.
        """
        _check_document(document, path)
        return self._import(path, document)

    def _import(self, path: str, document: dict) -> int:
        self.create_key(path)
        written = 0
        for value in document.get("values", []):
            value_type = ValueType.parse(value.get("type"))
            self.set_value(
                path,
                value.get("name", ""),
                value_type,
                from_json_data(value_type, value.get("data")),
            )
            written += 1
        for child in document.get("keys", []):
            written += self._import(f"{path}/{child['name']}", child)
        return written


class RegistryKey:
    """An open key handle with an access mask.

    Usable as a context manager; operations on a closed handle raise
    RegistryError.
    """

    def __init__(self, store: ConfigStore, path: str, access: int) -> None:
        self._store = store
        self._path = path
        self._access = access
        self._closed = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def access(self) -> int:
        return self._access

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> RegistryKey:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"RegistryKey({self._path!r}, access={self._access:#x})"

    def close(self) -> None:
        self._closed = True

    def _require(self, right: int, operation: str) -> None:
        if self._closed:
            raise RegistryError(f"Key handle {self._path} is closed")
        if not self._access & right:
            raise AccessDenied(f"Handle for {self._path} was not opened for {operation}")

    def query_value(self, name: str = "") -> tuple[Any, ValueType]:
        self._require(KEY_QUERY_VALUE, "reading")
        return self._store.query_value(self._path, name)

    def get_value(self, name: str, expected_type: Any) -> Any:
        self._require(KEY_QUERY_VALUE, "reading")
        return self._store.get_value(self._path, name, expected_type)

    def query_expanded(self, name: str = "", environ: Mapping[str, str] | None = None) -> str:
        self._require(KEY_QUERY_VALUE, "reading")
        return self._store.query_expanded(self._path, name, environ)

    def enum_values(self) -> list[tuple[str, Any, ValueType]]:
        self._require(KEY_QUERY_VALUE, "reading")
        return self._store.enum_values(self._path)

    def enum_keys(self) -> list[str]:
        self._require(KEY_ENUMERATE_SUB_KEYS, "enumeration")
        return self._store.enum_keys(self._path)

    def set_value(self, name: str, value_type: Any, data: Any) -> None:
        self._require(KEY_SET_VALUE, "writing")
        self._store.set_value(self._path, name, value_type, data)

    def delete_value(self, name: str = "") -> None:
        self._require(KEY_SET_VALUE, "writing")
        self._store.delete_value(self._path, name)

    def create_subkey(self, name: str, access: int = KEY_ALL_ACCESS) -> RegistryKey:
        self._require(KEY_CREATE_SUB_KEY, "creating subkeys")
        return self._store.create_key(f"{self._path}/{name}", access)

    def open_subkey(self, name: str, access: int = KEY_READ) -> RegistryKey:
        if self._closed:
            raise RegistryError(f"Key handle {self._path} is closed")
        return self._store.open_key(f"{self._path}/{name}", access)
