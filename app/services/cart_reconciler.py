# app/services/cart_reconciler.py
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.data.database import storage_guard
from app.domain.errors import StorageError, ValidationError
from app.repos.merge_repo import MergeRepo
from app.services.cart_service import CartService
from app.services.client_cart_store import ClientCartStore
from app.utils.retry import storage_retry
from app.utils.settings import MERGE_LINE_ATTEMPTS
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuestLine:
    product_id: str
    quantity: int


@dataclass
class MergeResult:
    merge_token: str
    merged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        # odrzucone (np. produkt wycofany) nie blokuja czyszczenia koszyka goscia
        return not self.failed


@dataclass
class SessionContext:
    """Stan jednej sesji przegladarki - zamiast globalnej flagi "merged"."""

    account_id: str | None = None
    guest_cart_merged: bool = False
    last_merge_token: str | None = None


def coalesce_lines(guest_items) -> list[GuestLine]:
    totals: dict[str, int] = {}
    for raw in guest_items:
        if isinstance(raw, GuestLine):
            product_id, quantity = raw.product_id, raw.quantity
        elif isinstance(raw, dict):
            product_id = raw.get("product_id", raw.get("productId"))
            quantity = raw.get("quantity")
        else:
            product_id = getattr(raw, "product_id", None)
            quantity = getattr(raw, "quantity", None)

        if not product_id:
            raise ValidationError("productId is required for every guest cart line", field="productId")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError(f"quantity for product {product_id} must be an integer", field="quantity")
        if quantity <= 0:
            continue
        totals[str(product_id)] = totals.get(str(product_id), 0) + quantity

    return [GuestLine(pid, qty) for pid, qty in sorted(totals.items())]


def merge_token_for(account_id: str, lines: list[GuestLine], device_id: str | None = None, revision: str | None = None) -> str:
    canonical = ";".join(f"{line.product_id}:{line.quantity}" for line in lines)
    raw = f"{account_id}|{device_id or ''}|{revision or ''}|{canonical}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class CartReconciler:
    """
    Jednorazowy merge koszyka goscia do koszyka konta przy logowaniu.

    Kazda linia to osobna transakcja: wpis (token, produkt) w cart_merge_lines
    + addytywny upsert. Powtorzony merge tego samego snapshotu pomija linie
    juz zapisane, wiec nie podwaja ilosci.
    """

    def __init__(self, db: Session, cart_service: CartService | None = None, line_attempts: int = MERGE_LINE_ATTEMPTS):
        self.db = db
        self.cart_service = cart_service or CartService(db)
        self.repo = MergeRepo(db)
        self.line_attempts = line_attempts

    def merge_guest_cart(self, account_id: str, guest_items, device_id: str | None = None, revision: str | None = None) -> MergeResult:
        if not account_id:
            raise ValidationError("accountId is required", field="accountId")
        if not revision:
            # bez rewizji dwa rozne koszyki o tej samej zawartosci mialyby ten sam token
            raise ValidationError("snapshotId is required", field="snapshotId")

        lines = coalesce_lines(guest_items)
        token = merge_token_for(account_id, lines, device_id, revision)
        result = MergeResult(merge_token=token)

        with storage_guard(self.db):
            already_complete = self.repo.is_complete(account_id, token)
        if already_complete:
            logger.info(f"Guest cart merge {token[:12]} already applied for account {account_id}")
            result.skipped = [line.product_id for line in lines]
            return result

        merge_line = storage_retry(self.line_attempts)(self._merge_line)
        for line in lines:
            try:
                applied = merge_line(account_id, token, line)
            except ValidationError as e:
                logger.warning(f"Guest cart line {line.product_id} rejected: {e.message}")
                result.rejected.append(line.product_id)
                continue
            except StorageError:
                logger.error(f"Guest cart line {line.product_id} failed after {self.line_attempts} attempts")
                result.failed.append(line.product_id)
                continue

            if applied:
                result.merged.append(line.product_id)
            else:
                result.skipped.append(line.product_id)

        if result.complete:
            with storage_guard(self.db):
                self.repo.record_complete(account_id, token, len(lines), datetime.now(timezone.utc))
                self.repo.commit()

        logger.info(
            f"Guest cart merge {token[:12]} for account {account_id}: "
            f"merged={len(result.merged)} skipped={len(result.skipped)} "
            f"rejected={len(result.rejected)} failed={len(result.failed)}"
        )
        return result

    def _merge_line(self, account_id: str, token: str, line: GuestLine) -> bool:
        try:
            with storage_guard(self.db):
                now = datetime.now(timezone.utc)
                if not self.repo.claim_line(token, line.product_id, line.quantity, now):
                    self.repo.rollback()
                    return False
                self.cart_service.apply_add(account_id, line.product_id, line.quantity, now)
                self.repo.commit()
                return True
        except Exception:
            # wpis idempotencji i upsert ida razem albo wcale
            self.repo.rollback()
            raise


def reconcile_on_sign_in(session: SessionContext, store: ClientCartStore, reconciler) -> MergeResult | None:
    """
    Wywolywane po zalogowaniu. Z koszyka goscia schodza linie przyjete przez
    serwer; nieudane zostaja na urzadzeniu do kolejnej proby.
    """
    if not session.account_id:
        raise ValidationError("Session has no signed-in account", field="accountId")
    if session.guest_cart_merged:
        return None

    snapshot = store.snapshot()
    if not snapshot.items:
        session.guest_cart_merged = True
        return None

    result = reconciler.merge_guest_cart(
        session.account_id,
        snapshot.items,
        device_id=snapshot.device_id,
        revision=snapshot.revision,
    )
    session.last_merge_token = result.merge_token

    # linie zapisane na serwerze (albo odrzucone) schodza z urzadzenia od razu,
    # nastepny snapshot ma nowa rewizje i nie moze ich dodac drugi raz
    settled = set(result.merged) | set(result.skipped) | set(result.rejected)
    store.deduct([line for line in snapshot.items if line.product_id in settled])

    if not result.complete:
        logger.warning(
            f"Guest cart merge incomplete for account {session.account_id}, "
            f"keeping {len(result.failed)} lines on device"
        )
        return result

    session.guest_cart_merged = True
    return result
