from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `backend/` is on sys.path so `import rfp_workflow.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))


class FakeTable:
    """In-memory stand-in for DynamoTable covering what the RFP repositories use."""

    table_name = "fake"

    def __init__(self):
        self._items: dict[tuple[str, str], dict] = {}
        self.fail_deletes: set[str] = set()
        self.fail_queries = False
        self.fail_transactions = False
        self.transactions: list[list[dict]] = []
        self.deleted: list[tuple[str, str]] = []

    # --- helpers ---

    @staticmethod
    def _k(key: dict) -> tuple[str, str]:
        return (str(key.get("pk")), str(key.get("sk")))

    def _conflict(self, op: str):
        from rfp_workflow.db.dynamodb.errors import DdbConflict

        return DdbConflict(message="conflict", operation=op, table_name=self.table_name)

    def _check(self, op: str, existing: dict | None, condition: str | None, values: dict | None = None):
        cond = condition or ""
        if "attribute_not_exists(pk)" in cond and existing is not None:
            raise self._conflict(op)
        if "attribute_exists(pk)" in cond and existing is None:
            raise self._conflict(op)
        if "#sid = :sid" in cond and (existing or {}).get("sectionId") != (values or {}).get(":sid"):
            raise self._conflict(op)
        if "#snap" in cond and (existing or {}).get("submissionSnapshot") is not None:
            raise self._conflict(op)

    def rows(self, pk: str | None = None) -> list[dict]:
        return [dict(v) for (p, _), v in self._items.items() if pk is None or p == pk]

    def seed(self, item: dict) -> None:
        self._items[self._k(item)] = dict(item)

    # --- DynamoTable surface ---

    def get_item(self, *, key: dict, consistent_read: bool = False):
        it = self._items.get(self._k(key))
        return dict(it) if it else None

    def put_item(self, *, item: dict, condition_expression: str | None = None, **_):
        self._check("PutItem", self._items.get(self._k(item)), condition_expression)
        self._items[self._k(item)] = dict(item)
        return {}

    def update_item(
        self,
        *,
        key: dict,
        update_expression: str,
        expression_attribute_names: dict | None,
        expression_attribute_values: dict,
        condition_expression: str | None = None,
        return_values: str = "ALL_NEW",
    ):
        existing = self._items.get(self._k(key))
        self._check("UpdateItem", existing, condition_expression, expression_attribute_values)

        new = dict(existing or key)
        assert update_expression.startswith("SET ")
        for part in update_expression[len("SET ") :].split(", "):
            name, value = (p.strip() for p in part.split(" = "))
            new[(expression_attribute_names or {}).get(name, name)] = expression_attribute_values[value]
        self._items[self._k(key)] = new
        return dict(new)

    def delete_item(self, *, key: dict, **_):
        from rfp_workflow.db.dynamodb.errors import DdbUnavailable

        if str(key.get("sk")) in self.fail_deletes:
            raise DdbUnavailable(message="boom", operation="DeleteItem", table_name=self.table_name, key=key)
        self._items.pop(self._k(key), None)
        self.deleted.append(self._k(key))
        return {}

    def query_page(
        self,
        *,
        key_condition_expression,
        index_name: str | None = None,
        limit: int = 50,
        scan_index_forward: bool = False,
        filter_expression=None,
        next_token: str | None = None,
    ):
        from rfp_workflow.db.dynamodb.table import Page

        items = self.query_all(
            key_condition_expression=key_condition_expression,
            index_name=index_name,
            scan_index_forward=scan_index_forward,
            filter_expression=filter_expression,
        )
        return Page(items=items[:limit], next_token=None)

    def query_all(
        self,
        *,
        key_condition_expression,
        index_name: str | None = None,
        page_size: int = 200,
        scan_index_forward: bool = False,
        filter_expression=None,
        max_pages: int = 50,
    ):
        from rfp_workflow.db.dynamodb.errors import DdbUnavailable

        if self.fail_queries:
            raise DdbUnavailable(message="boom", operation="Query", table_name=self.table_name)

        sort_attr = {"GSI1": "gsi1sk", "GSI2": "gsi2sk"}.get(index_name or "", "sk")
        out = [dict(it) for it in self._items.values() if _matches(key_condition_expression, it)]
        if filter_expression is not None:
            out = [it for it in out if _matches(filter_expression, it)]
        out.sort(key=lambda it: str(it.get(sort_attr) or ""), reverse=not scan_index_forward)
        return out

    def tx_put(self, *, item: dict, condition_expression: str | None = None):
        return {"item": item, "condition": condition_expression}

    def transact_write(self, *, puts=None, retry_policy=None):
        from rfp_workflow.db.dynamodb.errors import DdbThrottled

        puts = list(puts or [])
        if self.fail_transactions:
            raise DdbThrottled(message="throttled", operation="TransactWriteItems", table_name=self.table_name)
        for p in puts:
            self._check("TransactWriteItems", self._items.get(self._k(p["item"])), p.get("condition"))
        for p in puts:
            self._items[self._k(p["item"])] = dict(p["item"])
        self.transactions.append(puts)
        return {"ok": True}


def _matches(cond, item: dict) -> bool:
    from boto3.dynamodb.conditions import And, AttributeExists, BeginsWith, Equals, GreaterThanEquals, In

    values = cond.get_expression()["values"]
    if isinstance(cond, And):
        return all(_matches(v, item) for v in values)

    name = values[0].name
    if isinstance(cond, AttributeExists):
        return name in item
    if name not in item:
        return False
    if isinstance(cond, Equals):
        return item[name] == values[1]
    if isinstance(cond, BeginsWith):
        return str(item[name]).startswith(values[1])
    if isinstance(cond, GreaterThanEquals):
        return str(item[name]) >= values[1]
    if isinstance(cond, In):
        return item[name] in values[1]
    raise NotImplementedError(type(cond).__name__)


@pytest.fixture
def fake_table(monkeypatch) -> FakeTable:
    from rfp_workflow.repositories.rfp import (
        rfp_bindings_repo,
        rfp_outcomes_repo,
        rfp_sections_repo,
        rfps_repo,
    )

    ft = FakeTable()
    for mod in (rfps_repo, rfp_sections_repo, rfp_bindings_repo, rfp_outcomes_repo):
        monkeypatch.setattr(mod, "get_main_table", lambda: ft)
    return ft
