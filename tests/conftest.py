"""Pytest configuration and fixtures."""

import copy
import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("PAYMENT_SIGNING_SECRET", "test-signing-secret")

SERVICE_MODULES = (
    "src.services.order_service",
    "src.services.inventory_service",
    "src.services.wallet_service",
    "src.services.coupon_service",
    "src.services.cart_service",
    "src.services.user_service",
)


class FakeResponse:
    """Stand-in for a PostgREST APIResponse."""

    def __init__(self, data: Any) -> None:
        self.data = data


def _column_value(row: dict[str, Any], column: str) -> Any:
    if "->>" in column:
        base, key = column.split("->>", 1)
        nested = row.get(base)
        return nested.get(key) if isinstance(nested, dict) else None
    return row.get(column)


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


class FakeQuery:
    """Chainable table query over in-memory rows."""

    def __init__(self, db: "FakeSupabaseClient", table: str) -> None:
        self._db = db
        self._table = table
        self._operation = "select"
        self._payload: Any = None
        self._filters: list[tuple[str, str, Any]] = []
        self._order: tuple[str, bool] | None = None
        self._limit: int | None = None
        self._single = False

    def select(self, *columns: str) -> "FakeQuery":
        self._operation = "select"
        return self

    def insert(self, payload: dict[str, Any]) -> "FakeQuery":
        self._operation = "insert"
        self._payload = payload
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self._operation = "update"
        self._payload = payload
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, "eq", value))
        return self

    def gt(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, "gt", value))
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, "gte", value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def maybe_single(self) -> "FakeQuery":
        self._single = True
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for column, op, value in self._filters:
            actual = _column_value(row, column)
            if op == "eq":
                if actual is None or str(actual) != str(value):
                    return False
                continue
            if actual is None:
                return False
            left, right = _comparable(actual), _comparable(value)
            if op == "gt" and not left > right:
                return False
            if op == "gte" and not left >= right:
                return False
        return True

    def execute(self) -> FakeResponse:
        rows = self._db.tables.setdefault(self._table, [])
        self._db.calls.append((self._table, self._operation))

        if self._operation == "insert":
            row = copy.deepcopy(self._payload)
            row.setdefault("id", str(uuid4()))
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            rows.append(row)
            return FakeResponse([copy.deepcopy(row)])

        matched = [row for row in rows if self._matches(row)]

        if self._operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return FakeResponse([copy.deepcopy(row) for row in matched])

        if self._order:
            column, desc = self._order
            matched.sort(key=lambda r: _comparable(_column_value(r, column)), reverse=desc)
        if self._limit is not None:
            matched = matched[: self._limit]

        result = [copy.deepcopy(row) for row in matched]
        if self._single:
            return FakeResponse(result[0] if result else None)
        return FakeResponse(result)


class FakeRPC:
    """Emulates the stock functions from the SQL migration."""

    def __init__(self, db: "FakeSupabaseClient", name: str, params: dict[str, Any]) -> None:
        self._db = db
        self._name = name
        self._params = params

    def execute(self) -> FakeResponse:
        self._db.calls.append((self._name, "rpc"))
        if self._name in self._db.failing_rpcs:
            raise RuntimeError(f"{self._name} failed")

        quantity = self._params["p_quantity"]
        for row in self._db.tables.setdefault("product_variants", []):
            if row["product_id"] != self._params["p_product_id"] or row["variant_id"] != self._params["p_variant_id"]:
                continue
            if self._name == "decrement_variant_stock":
                if row["available_quantity"] < quantity:
                    return FakeResponse([])
                row["available_quantity"] -= quantity
            elif self._name == "increment_variant_stock":
                row["available_quantity"] += quantity
            else:
                raise ValueError(f"Unknown function {self._name}")
            return FakeResponse([copy.deepcopy(row)])
        return FakeResponse([])


class FakeSupabaseClient:
    """In-memory Supabase client covering the queries the services issue."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.failing_rpcs: set[str] = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRPC:
        return FakeRPC(self, name, params)

    def rows(self, name: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def writes(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[1] in ("insert", "update", "rpc")]

    def variant_quantity(self, product_id: str, variant_id: str) -> int:
        for row in self.rows("product_variants"):
            if row["product_id"] == product_id and row["variant_id"] == variant_id:
                return row["available_quantity"]
        raise KeyError((product_id, variant_id))


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> Generator[FakeSupabaseClient, None, None]:
    """Patch every service's Supabase client with one in-memory database.

    Yields:
        FakeSupabaseClient: The shared in-memory client.
    """
    db = FakeSupabaseClient()
    patches = [patch(f"{module}.get_supabase_client", return_value=db) for module in SERVICE_MODULES]
    patches.append(patch("src.core.supabase.get_supabase_client", return_value=db))
    for p in patches:
        p.start()
    try:
        yield db
    finally:
        for p in reversed(patches):
            p.stop()


@pytest.fixture
def mock_stripe() -> Generator[MagicMock, None, None]:
    """Patch the Stripe module used by the payment gateway service."""
    stripe_mock = MagicMock()
    with patch("src.services.payment_service.get_stripe", return_value=stripe_mock):
        yield stripe_mock


@pytest.fixture
def seed(fake_db: FakeSupabaseClient) -> Callable[..., None]:
    """Populate the in-memory database.

    Returns a function accepting ``users``, ``variants`` (mapping of
    (product_id, variant_id) to available quantity), ``wallets`` (mapping of
    user id to opening balance), ``coupons`` and ``carts``.
    """
    from src.models.product import ProductVariant

    def _seed(
        users: list[str] | None = None,
        variants: dict[tuple[str, str], int] | None = None,
        wallets: dict[str, float] | None = None,
        coupons: list[dict[str, Any]] | None = None,
        carts: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        for user_id in users or []:
            fake_db.rows("users").append({"id": user_id, "name": f"User {user_id}", "email": f"{user_id}@example.com"})
        for (product_id, variant_id), quantity in (variants or {}).items():
            fake_db.rows("product_variants").append(
                ProductVariant(
                    product_id=product_id,
                    variant_id=variant_id,
                    name=f"{product_id}/{variant_id}",
                    price=100.0,
                    attributes={},
                    available_quantity=quantity,
                    updated_at=datetime.now(timezone.utc),
                )
            )
        for user_id, balance in (wallets or {}).items():
            fake_db.rows("wallets").append(
                {"id": str(uuid4()), "user_id": user_id, "balance": balance, "transactions": []}
            )
        for coupon in coupons or []:
            fake_db.rows("coupons").append({"id": str(uuid4()), **coupon})
        for user_id, items in (carts or {}).items():
            fake_db.rows("carts").append({"user_id": user_id, "items": items})

    return _seed


def make_coupon(
    name: str,
    discount_type: str = "percentage",
    offer_value: float = 10,
    status: str = "active",
    expires_in: timedelta = timedelta(days=7),
) -> dict[str, Any]:
    """Build a coupon row relative to now."""
    return {
        "name": name,
        "discount_type": discount_type,
        "offer_value": offer_value,
        "status": status,
        "expire_on": (datetime.now(timezone.utc) + expires_in).isoformat(),
    }


@pytest.fixture
def coupon_factory() -> Callable[..., dict[str, Any]]:
    """Provide the coupon row builder."""
    return make_coupon


@pytest.fixture
def line_item() -> Callable[..., dict[str, Any]]:
    """Build a checkout line item payload."""

    def _line_item(
        product_id: str = "prod-1",
        variant_id: str = "var-1",
        quantity: int = 1,
        price: float = 100.0,
        name: str | None = None,
    ) -> dict[str, Any]:
        return {
            "product_id": product_id,
            "variant_id": variant_id,
            "name": name or f"Product {product_id}",
            "quantity": quantity,
            "variant": {"price": price, "size": "M", "color": "black"},
        }

    return _line_item


@pytest.fixture
def shipping_address() -> dict[str, Any]:
    """Provide a shipping address snapshot."""
    return {
        "name": "Asha Rao",
        "phone": "9876543210",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }


@pytest.fixture
def client(fake_db: FakeSupabaseClient) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        fake_db: In-memory database fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client
