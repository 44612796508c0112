# app/services/client_cart_store.py
"""
Koszyk goscia trzymany lokalnie na urzadzeniu.

Synchroniczny, bez sieci. Uszkodzony lub brakujacy zapis czytamy jako pusty
koszyk - nigdy nie blokujemy uzytkownika przez zepsuty storage.
"""
import json
import os
import uuid
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from app.utils.logging import get_logger

logger = get_logger(__name__)

CART_STORAGE_KEY = "guest_cart"


@dataclass
class CartItem:
    product_id: str
    quantity: int
    added_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass(frozen=True)
class GuestCartSnapshot:
    device_id: str
    revision: str
    items: tuple


class JsonFileStorage(MutableMapping):
    """Odpowiednik localStorage: slownik str -> str zapisywany do pliku json."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def _load(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Local storage {self.path} unreadable, starting empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp, self.path)

    def __getitem__(self, key):
        return self._load()[key]

    def __setitem__(self, key, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def __delitem__(self, key):
        data = self._load()
        del data[key]
        self._save(data)

    def __iter__(self):
        return iter(self._load())

    def __len__(self):
        return len(self._load())


class ClientCartStore:
    def __init__(self, storage: MutableMapping | None = None, device_id: str | None = None, key: str = CART_STORAGE_KEY):
        self.storage = storage if storage is not None else {}
        self.device_id = device_id or uuid.uuid4().hex
        self.key = key

    def _read(self) -> dict:
        raw = self.storage.get(self.key)
        if not raw:
            return {"revision": None, "items": {}}
        try:
            data = json.loads(raw)
            items = {}
            for entry in data.get("items", []):
                qty = int(entry["quantity"])
                if qty >= 1:
                    items[str(entry["productId"])] = CartItem(
                        product_id=str(entry["productId"]),
                        quantity=qty,
                        added_at=entry.get("addedAt") or datetime.now(timezone.utc).isoformat(),
                    )
            return {"revision": data.get("revision"), "items": items}
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            # fail-open
            logger.warning(f"Guest cart storage corrupted, treating as empty: {e}")
            return {"revision": None, "items": {}}

    def _write(self, items: dict) -> None:
        payload = {
            "revision": uuid.uuid4().hex,
            "items": [
                {"productId": i.product_id, "quantity": i.quantity, "addedAt": i.added_at}
                for i in items.values()
            ],
        }
        self.storage[self.key] = json.dumps(payload)

    def get(self) -> list[CartItem]:
        return list(self._read()["items"].values())

    def add(self, product_id: str, delta: int = 1) -> None:
        items = self._read()["items"]
        existing = items.get(product_id)
        qty = (existing.quantity if existing else 0) + delta
        if qty <= 0:
            items.pop(product_id, None)
        elif existing:
            existing.quantity = qty
        else:
            items[product_id] = CartItem(product_id=product_id, quantity=qty)
        self._write(items)

    def set_quantity(self, product_id: str, quantity: int) -> None:
        items = self._read()["items"]
        if quantity <= 0:
            items.pop(product_id, None)
        elif product_id in items:
            items[product_id].quantity = quantity
        else:
            items[product_id] = CartItem(product_id=product_id, quantity=quantity)
        self._write(items)

    def remove(self, product_id: str) -> None:
        items = self._read()["items"]
        if items.pop(product_id, None) is not None:
            self._write(items)

    def deduct(self, lines) -> None:
        """
        Odejmuje ilosci juz przeniesione na serwer. Zostaje tylko to, czego
        serwer nie przyjal, plus zmiany zrobione w trakcie merge.
        """
        items = self._read()["items"]
        for line in lines:
            existing = items.get(line.product_id)
            if existing is None:
                continue
            existing.quantity -= line.quantity
            if existing.quantity <= 0:
                del items[line.product_id]
        if items:
            self._write(items)
        else:
            self.clear()

    def clear(self) -> None:
        self.storage.pop(self.key, None)

    def snapshot(self) -> GuestCartSnapshot:
        data = self._read()
        return GuestCartSnapshot(
            device_id=self.device_id,
            revision=data["revision"] or "empty",
            items=tuple(sorted(data["items"].values(), key=lambda i: i.product_id)),
        )
