"""
pytest configuration and shared fixtures for the Rendezvous API tests.

Key concern: tests must not require a live MongoDB or a Geoapify key.
We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Replacing the database with FakeDB, an in-memory emulator of the
     subset of Motor the services use (including find_one_and_update,
     find_one_and_delete, $push/$pull/$inc and unique indexes).
  3. Replacing the geocoder with StubGeocoder.

For integration tests that need a real DB, override the fake_db fixture
in a separate conftest.py in a sub-folder (e.g., tests/integration/).
"""

import copy
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo.errors import DuplicateKeyError

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("GEOAPIFY_API_KEY", "")


# ── In-memory MongoDB emulator ─────────────────────────────────────────────────

_MISSING = object()


def _is_operator_dict(value) -> bool:
    return isinstance(value, dict) and bool(value) and all(k.startswith("$") for k in value)


def _match_value(value, cond) -> bool:
    """Does a field value satisfy a query condition (literal or operator dict)?"""
    if _is_operator_dict(cond):
        for op, arg in cond.items():
            if op == "$in":
                if isinstance(value, list):
                    if not any(v in arg for v in value):
                        return False
                elif value is _MISSING or value not in arg:
                    return False
            elif op == "$nin":
                if _match_value(value, {"$in": arg}):
                    return False
            elif op == "$eq":
                if not _match_value(value, arg):
                    return False
            elif op == "$ne":
                if _match_value(value, arg):
                    return False
            elif op == "$all":
                if not isinstance(value, list) or not all(a in value for a in arg):
                    return False
            elif op == "$size":
                if not isinstance(value, list) or len(value) != arg:
                    return False
            elif op == "$exists":
                if (value is not _MISSING) != bool(arg):
                    return False
            else:
                raise NotImplementedError(f"FakeDB: query operator {op}")
        return True

    if value is _MISSING:
        return cond is None
    if isinstance(value, list) and not isinstance(cond, list):
        return cond in value
    return value == cond


def _get_path(doc: dict, key: str):
    """Field value for a possibly dotted key; fans out through arrays of subdocuments."""
    value = doc
    for part in key.split("."):
        if isinstance(value, list):
            value = [v[part] for v in value if isinstance(v, dict) and part in v]
        elif isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
        elif key == "$and":
            if not all(_matches(doc, sub) for sub in cond):
                return False
        elif not _match_value(_get_path(doc, key), cond):
            return False
    return True


def _apply_update(doc: dict, update: dict, inserting: bool) -> dict:
    doc = copy.deepcopy(doc)
    for op, fields in update.items():
        if op == "$set":
            doc.update(copy.deepcopy(fields))
        elif op == "$setOnInsert":
            if inserting:
                doc.update(copy.deepcopy(fields))
        elif op == "$unset":
            for key in fields:
                doc.pop(key, None)
        elif op == "$inc":
            for key, amount in fields.items():
                doc[key] = doc.get(key, 0) + amount
        elif op == "$push":
            for key, value in fields.items():
                items = list(doc.get(key, []))
                if isinstance(value, dict) and "$each" in value:
                    items.extend(copy.deepcopy(value["$each"]))
                    if "$slice" in value:
                        n = value["$slice"]
                        items = items[:n] if n >= 0 else items[n:]
                else:
                    items.append(copy.deepcopy(value))
                doc[key] = items
        elif op == "$pull":
            for key, cond in fields.items():
                items = doc.get(key, [])
                if isinstance(cond, dict) and not _is_operator_dict(cond):
                    doc[key] = [i for i in items if not (isinstance(i, dict) and _matches(i, cond))]
                else:
                    doc[key] = [i for i in items if not _match_value(i, cond)]
        else:
            raise NotImplementedError(f"FakeDB: update operator {op}")
    return doc


def _sort_docs(docs: list[dict], sort) -> list[dict]:
    if not sort:
        return docs
    if isinstance(sort, str):
        sort = [(sort, 1)]
    for field, direction in reversed(list(sort)):
        docs = sorted(docs, key=lambda d: d.get(field), reverse=direction < 0)
    return docs


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._limit = None

    def sort(self, key, direction=None):
        self._docs = _sort_docs(self._docs, key if direction is None else [(key, direction)])
        return self

    def limit(self, n):
        self._limit = n or None
        return self

    async def __aiter__(self):
        docs = self._docs if self._limit is None else self._docs[: self._limit]
        for doc in docs:
            yield copy.deepcopy(doc)


class FakeCollection:
    """Minimal async-compatible replica of a Motor collection."""

    def __init__(self):
        self._docs: list[dict] = []
        self._unique: list[tuple[str, ...]] = []

    # ── indexes ──
    async def create_index(self, keys, unique=False, **_kwargs):
        fields = tuple(k for k, _ in keys) if isinstance(keys, list) else (keys,)
        if unique and fields not in self._unique:
            self._unique.append(fields)
        return "_".join(fields)

    @staticmethod
    def _index_keys(doc: dict, fields: tuple[str, ...]) -> set:
        if any(f not in doc for f in fields):
            return set()
        if len(fields) == 1:
            value = doc[fields[0]]
            return set(value) if isinstance(value, list) else {value}
        return {tuple(doc[f] for f in fields)}

    def _check_unique(self, doc: dict, ignore_id=_MISSING) -> None:
        for other in self._docs:
            if other["_id"] == ignore_id:
                continue
            if other["_id"] == doc["_id"]:
                raise DuplicateKeyError("E11000 duplicate key error: _id")
            for fields in self._unique:
                if self._index_keys(doc, fields) & self._index_keys(other, fields):
                    raise DuplicateKeyError(f"E11000 duplicate key error: {fields}")

    def _find(self, query: dict, sort=None) -> list[dict]:
        return _sort_docs([d for d in self._docs if _matches(d, query)], sort)

    # ── reads ──
    async def find_one(self, query: dict | None = None, sort=None):
        found = self._find(query or {}, sort)
        return copy.deepcopy(found[0]) if found else None

    def find(self, query: dict | None = None):
        return FakeCursor(self._find(query or {}))

    async def count_documents(self, query: dict):
        return len(self._find(query))

    # ── writes ──
    async def insert_one(self, doc: dict):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self._docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def _upsert(self, query: dict, update: dict) -> dict:
        base = {k: v for k, v in query.items() if not k.startswith("$") and not _is_operator_dict(v)}
        doc = _apply_update(base, update, inserting=True)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self._docs.append(doc)
        return doc

    def _replace(self, old: dict, new: dict) -> None:
        self._check_unique(new, ignore_id=old["_id"])
        index = next(i for i, d in enumerate(self._docs) if d["_id"] == old["_id"])
        self._docs[index] = new

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        found = self._find(query)
        if found:
            self._replace(found[0], _apply_update(found[0], update, inserting=False))
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = self._upsert(query, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def find_one_and_update(self, query: dict, update: dict, upsert: bool = False,
                                  return_document=False, sort=None):
        found = self._find(query, sort)
        if found:
            before = found[0]
            after = _apply_update(before, update, inserting=False)
            self._replace(before, after)
            return copy.deepcopy(after if return_document else before)
        if upsert:
            doc = self._upsert(query, update)
            return copy.deepcopy(doc) if return_document else None
        return None

    async def find_one_and_delete(self, query: dict, sort=None):
        found = self._find(query, sort)
        if not found:
            return None
        self._docs = [d for d in self._docs if d["_id"] != found[0]["_id"]]
        return copy.deepcopy(found[0])

    async def delete_one(self, query: dict):
        found = self._find(query)
        if found:
            self._docs = [d for d in self._docs if d["_id"] != found[0]["_id"]]
        return SimpleNamespace(deleted_count=1 if found else 0)

    async def delete_many(self, query: dict):
        found = {d["_id"] for d in self._find(query)}
        self._docs = [d for d in self._docs if d["_id"] not in found]
        return SimpleNamespace(deleted_count=len(found))


class FakeDB:
    """Fake MongoDB database — lazily creates collections."""

    def __init__(self):
        self._cols: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._cols:
            self._cols[name] = FakeCollection()
        return self._cols[name]


class StubGeocoder:
    """Resolves every location to a fixed city (or None)."""

    def __init__(self, city=None):
        self.city = city
        self.calls = []

    async def resolve_region(self, location):
        self.calls.append(location)
        return self.city


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db → None
    """
    with (
        patch("rendezvous.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("rendezvous.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import rendezvous.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture()
async def fake_db():
    """Fresh in-memory DB for each test, with the production indexes."""
    from rendezvous.core.database import ensure_indexes

    db = FakeDB()
    await ensure_indexes(db)
    return db


@pytest.fixture()
def geocoder():
    return StubGeocoder("Cambridge")


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """HTTPX client against the app with no database (degraded mode)."""
    from rendezvous.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def api(fake_db, geocoder):
    """
    HTTPX client with get_db pointed at FakeDB and the geocoder stubbed.
    """
    from rendezvous.core.database import get_db
    from rendezvous.dependencies import get_geocoder
    from rendezvous.main import app

    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def register(api, username: str, password: str = "securepass123") -> dict:
    """Register a user and return {"id", "headers"} for authenticated calls."""
    r = await api.post("/auth/register", json={"username": username, "password": password})
    assert r.status_code == 201, r.text
    data = r.json()
    return {"id": data["user"]["id"], "headers": {"Authorization": f"Bearer {data['access_token']}"}}


@pytest.fixture()
def register_user(api):
    async def _register(username: str):
        return await register(api, username)
    return _register
