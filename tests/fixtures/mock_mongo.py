"""Minimal async stand-in for the motor collection API used by the services."""
import copy
from dataclasses import dataclass, field
from typing import Any

from bson import ObjectId

_MISSING = object()


def _get_path(doc: dict, path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _matches_condition(value: Any, cond: Any) -> bool:
    if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
        for op, arg in cond.items():
            if op == "$in":
                if value is _MISSING or value not in arg:
                    return False
            elif op == "$nin":
                if value is not _MISSING and value in arg:
                    return False
            elif op == "$lte":
                if value is _MISSING or value is None or not value <= arg:
                    return False
            elif op == "$lt":
                if value is _MISSING or value is None or not value < arg:
                    return False
            elif op == "$gte":
                if value is _MISSING or value is None or not value >= arg:
                    return False
            else:
                raise NotImplementedError(op)
        return True
    if cond is None:
        return value is _MISSING or value is None
    return value is not _MISSING and value == cond


def matches(doc: dict, query: dict) -> bool:
    return all(_matches_condition(_get_path(doc, key), cond) for key, cond in query.items())


@dataclass
class InsertOneResult:
    inserted_id: Any


@dataclass
class InsertManyResult:
    inserted_ids: list = field(default_factory=list)


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int
    upserted_id: Any = None


class MockCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1) -> "MockCursor":
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def limit(self, n: int) -> "MockCursor":
        self._docs = self._docs[:n]
        return self

    async def to_list(self, length: int | None = None) -> list[dict]:
        return self._docs if length is None else self._docs[:length]


class MockCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []
        self.update_calls = 0

    async def insert_one(self, doc: dict) -> InsertOneResult:
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self.docs.append(stored)
        doc["_id"] = stored["_id"]
        return InsertOneResult(stored["_id"])

    async def insert_many(self, docs: list[dict]) -> InsertManyResult:
        ids = [(await self.insert_one(doc)).inserted_id for doc in docs]
        return InsertManyResult(ids)

    async def find_one(self, query: dict) -> dict | None:
        for doc in self.docs:
            if matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query: dict | None = None) -> MockCursor:
        return MockCursor([copy.deepcopy(d) for d in self.docs if matches(d, query or {})])

    async def update_one(self, query: dict, update: dict, upsert: bool = False) -> UpdateResult:
        self.update_calls += 1
        for doc in self.docs:
            if matches(doc, query):
                before = copy.deepcopy(doc)
                _apply_update(doc, update)
                return UpdateResult(1, int(before != doc))
        if upsert:
            doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
            _apply_update(doc, update)
            result = await self.insert_one(doc)
            return UpdateResult(0, 0, result.inserted_id)
        return UpdateResult(0, 0)


def _apply_update(doc: dict, update: dict) -> None:
    for op, fields in update.items():
        for path, value in fields.items():
            parts = path.split(".")
            target = doc
            for part in parts[:-1]:
                target = target.setdefault(part, {})
            if op == "$set":
                target[parts[-1]] = copy.deepcopy(value)
            elif op == "$inc":
                target[parts[-1]] = target.get(parts[-1], 0) + value
            else:
                raise NotImplementedError(op)


class MockDatabase:
    def __init__(self):
        self._collections: dict[str, MockCollection] = {}

    def __getitem__(self, name: str) -> MockCollection:
        if name not in self._collections:
            self._collections[name] = MockCollection(name)
        return self._collections[name]

    def __getattr__(self, name: str) -> MockCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]
