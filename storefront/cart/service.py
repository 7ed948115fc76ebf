"""Cart manager: one cart for the current shopper, routed to the matching store."""
import enum
import json
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Union

from storefront.db import get_supabase
from storefront.errors import (
    ERROR_CART_NOT_READY,
    ERROR_PRODUCT_NOT_FOUND,
    ERROR_PRODUCT_OUT_OF_STOCK,
    EmptyCartError,
    RemoteCartStoreError,
    StorefrontError,
)
from storefront.identity import IdentityProvider, SupabaseIdentityProvider, Unsubscribe
from storefront.logging import describe_shopper, get_logger, sanitize_id_for_logging
from storefront.services.models import Product
from storefront.services.money import to_float
from storefront.services.repositories import CartRepository, ProductRepository
from .constants import LOCAL_CART_KEY, TEMP_ID_PREFIX
from .models import (
    ANONYMOUS,
    Anonymous,
    Cart,
    CartState,
    CheckoutSummary,
    Identified,
    Identity,
    LineItem,
    ProductSnapshot,
    available_stock_for,
    clamp_quantity,
    identity_from_user_id,
)
from .storage import LocalStore, RedisLocalStore

logger = get_logger(__name__)

CartListener = Callable[[Cart], None]


class MergePolicy(str, enum.Enum):
    """What happens to the device cart when an anonymous shopper signs in."""
    DISCARD = "discard"  # device cart is left behind, remote cart wins
    SUM = "sum"  # device items are added to the remote cart, quantities summed


class ProductLookup(Protocol):
    async def get_by_id(self, product_id: str) -> Optional[Product]: ...


def _assert_identity(identity: Identity) -> Identity:
    if not isinstance(identity, (Anonymous, Identified)):
        raise TypeError(f"Unknown identity: {identity!r}")
    return identity


class CartManager:
    """
    Single source of truth for the current shopper's cart.

    - Signed-in shoppers: every mutation is written to Supabase and followed
      by a full resync, so totals always reflect server state.
    - Anonymous shoppers: mutations apply in memory and the cart is written
      to device storage after every change.
    - Load failures degrade to an empty cart; mutation failures leave the
      last published cart in place.

    Mutations are not serialized against each other.
    """

    def __init__(
        self,
        remote: CartRepository,
        local: LocalStore,
        products: ProductLookup,
        identity_provider: IdentityProvider,
        merge_policy: MergePolicy = MergePolicy.DISCARD,
    ):
        self.remote = remote
        self.local = local
        self.products = products
        self.identity_provider = identity_provider
        self.merge_policy = MergePolicy(merge_policy)
        self._identity: Identity = ANONYMOUS
        self._cart = Cart(owner=ANONYMOUS)
        self._state = CartState.UNINITIALIZED
        self._listeners: List[CartListener] = []
        self._unsubscribe: Optional[Unsubscribe] = None

    # ==================== LIFECYCLE ====================

    async def start(self) -> Cart:
        """Load the cart for the current identity and follow identity changes."""
        user_id = await self.identity_provider.current_identity()
        self._identity = identity_from_user_id(user_id)
        if self._unsubscribe is None:
            self._unsubscribe = self.identity_provider.subscribe(self.on_identity_change)
        return await self.resync()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._listeners.clear()

    async def __aenter__(self) -> "CartManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ==================== STATE ====================

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._state == CartState.LOADING

    @property
    def identity(self) -> Identity:
        return self._identity

    def on_change(self, listener: CartListener) -> Unsubscribe:
        """Register a listener called with every published cart."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, cart: Cart) -> Cart:
        self._cart = cart
        self._state = CartState.READY
        for listener in list(self._listeners):
            try:
                listener(cart)
            except Exception as e:
                logger.error("Cart listener failed: %s", type(e).__name__, exc_info=True)
        return cart

    # ==================== LOADING ====================

    async def resync(self, identity: Optional[Identity] = None) -> Cart:
        """Replace the in-memory cart with the contents of the matching store."""
        if identity is not None:
            self._identity = _assert_identity(identity)
        identity = _assert_identity(self._identity)

        self._state = CartState.LOADING
        try:
            if isinstance(identity, Identified):
                cart = await self._load_remote(identity)
            else:
                cart = self._load_local()
        except Exception as e:
            logger.error(
                "Failed to load cart for %s: %s",
                self._describe(identity),
                type(e).__name__,
                exc_info=True,
            )
            cart = Cart(owner=identity)

        if self._identity != identity:
            # Identity switched while loading; the newer resync publishes
            return self._cart
        return self._publish(cart)

    async def _load_remote(self, identity: Identified) -> Cart:
        rows = await self.remote.list(identity.user_id)
        cart = Cart.from_dict(rows, owner=identity)
        for item in cart.items:
            if item.duplicate_ids:
                await self._fold_duplicates(item)
        return cart

    async def _fold_duplicates(self, item: LineItem) -> None:
        """Write a collapsed line item back as a single row."""
        logger.info(
            "Folding %d duplicate cart rows into %s",
            len(item.duplicate_ids),
            sanitize_id_for_logging(item.id),
        )
        try:
            await self.remote.update_quantity(item.id, item.quantity)
            for row_id in list(item.duplicate_ids):
                await self.remote.delete(row_id)
                item.duplicate_ids.remove(row_id)
        except RemoteCartStoreError as e:
            # Rows still listed in duplicate_ids are handled by the next update or remove
            logger.warning("Failed to fold duplicate cart rows: %s", e)

    async def _ensure_loaded(self) -> None:
        if self._state == CartState.UNINITIALIZED:
            await self.start()

    def _load_local(self) -> Cart:
        raw = self.local.read(LOCAL_CART_KEY)
        if not raw:
            return Cart(owner=ANONYMOUS)
        try:
            return Cart.from_dict(json.loads(raw), owner=ANONYMOUS)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Corrupted device cart, starting empty: %s", type(e).__name__)
            return Cart(owner=ANONYMOUS)

    def _commit_local(self, cart: Cart) -> Cart:
        """Publish an anonymous cart and write it to device storage."""
        self._publish(cart)
        self.local.write(LOCAL_CART_KEY, json.dumps(cart.to_dict()))
        return cart

    async def on_identity_change(self, user_id: Optional[str]) -> Cart:
        """React to sign-in / sign-out."""
        previous = self._identity
        identity = identity_from_user_id(user_id)
        self._identity = identity
        logger.info(
            "Cart identity changed: %s -> %s",
            self._describe(previous),
            self._describe(identity),
        )
        if (
            isinstance(previous, Anonymous)
            and isinstance(identity, Identified)
            and self.merge_policy is MergePolicy.SUM
        ):
            await self._merge_local_into_remote(identity)
        return await self.resync()

    async def _merge_local_into_remote(self, identity: Identified) -> None:
        """Add every device line item to the remote cart, then empty the device cart."""
        local_cart = self._load_local()
        if local_cart.is_empty:
            return

        for item in local_cart.items:
            product = await self.products.get_by_id(item.product_id)
            snapshot = ProductSnapshot.from_product(product) if product else item.product
            stock = available_stock_for(snapshot, item.selected_variants)
            if stock < 1:
                continue
            try:
                row = await self.remote.find(identity.user_id, item.product_id, item.selected_variants)
                if row:
                    quantity = clamp_quantity(int(row["quantity"]) + item.quantity, stock)
                    await self.remote.update_quantity(str(row["id"]), quantity)
                else:
                    await self.remote.insert(
                        identity.user_id,
                        item.product_id,
                        clamp_quantity(item.quantity, stock),
                        item.selected_variants,
                    )
            except RemoteCartStoreError as e:
                # Device cart is kept; rows merged so far stay merged
                logger.error("Cart merge aborted: %s", e)
                return

        self.local.write(LOCAL_CART_KEY, json.dumps(Cart(owner=ANONYMOUS).to_dict()))

    # ==================== MUTATIONS ====================

    async def add_item(
        self,
        product: Union[Product, str],
        selected_variants: Optional[Dict[str, str]] = None,
    ) -> Cart:
        """Add one unit of a product/variant combination."""
        await self._ensure_loaded()
        selection = dict(selected_variants or {})
        if isinstance(product, str):
            found = await self.products.get_by_id(product)
            if found is None:
                logger.warning("%s: %s", ERROR_PRODUCT_NOT_FOUND, sanitize_id_for_logging(product))
                return self._cart
            product = found

        snapshot = ProductSnapshot.from_product(product)
        stock = available_stock_for(snapshot, selection)
        if stock < 1:
            logger.info("%s: %s", ERROR_PRODUCT_OUT_OF_STOCK, sanitize_id_for_logging(product.id))
            return self._cart

        identity = self._identity
        if isinstance(identity, Identified):
            try:
                row = await self.remote.find(identity.user_id, product.id, selection)
                if row:
                    current = int(row["quantity"])
                    quantity = clamp_quantity(current + 1, stock)
                    if quantity != current:
                        await self.remote.update_quantity(str(row["id"]), quantity)
                else:
                    await self.remote.insert(identity.user_id, product.id, 1, selection)
            except RemoteCartStoreError as e:
                logger.error("Failed to add item to cart: %s", e)
                return self._cart
            return await self.resync()

        items = list(self._cart.items)
        existing = self._cart.find(product.id, selection)
        if existing:
            items[items.index(existing)] = replace(
                existing,
                quantity=clamp_quantity(existing.quantity + 1, stock),
                product=snapshot,
                updated_at=datetime.now(timezone.utc).isoformat(),
            )
        else:
            items.append(
                LineItem(
                    id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
                    product_id=product.id,
                    quantity=1,
                    product=snapshot,
                    selected_variants=selection,
                )
            )
        return self._commit_local(Cart(owner=identity, items=items))

    async def remove_item(self, item_id: str) -> Cart:
        """Remove a line item; unknown ids are ignored."""
        await self._ensure_loaded()
        identity = self._identity
        if isinstance(identity, Identified):
            item = self._cart.get(item_id)
            try:
                await self.remote.delete(item_id)
                for row_id in item.duplicate_ids if item else []:
                    await self.remote.delete(row_id)
            except RemoteCartStoreError as e:
                logger.error("Failed to remove item from cart: %s", e)
                return self._cart
            return await self.resync()

        if self._cart.get(item_id) is None:
            return self._cart
        items = [item for item in self._cart.items if item.id != item_id]
        return self._commit_local(Cart(owner=identity, items=items))

    async def update_quantity(self, item_id: str, quantity: int) -> Cart:
        """Set a line item's quantity; zero or less removes it."""
        await self._ensure_loaded()
        if quantity <= 0:
            return await self.remove_item(item_id)

        item = self._cart.get(item_id)
        if item is None:
            return self._cart
        quantity = clamp_quantity(quantity, item.available_stock)

        identity = self._identity
        if isinstance(identity, Identified):
            try:
                await self.remote.update_quantity(item_id, quantity)
                for row_id in item.duplicate_ids:
                    await self.remote.delete(row_id)
            except RemoteCartStoreError as e:
                logger.error("Failed to update cart item quantity: %s", e)
                return self._cart
            return await self.resync()

        items = [
            replace(i, quantity=quantity, updated_at=datetime.now(timezone.utc).isoformat())
            if i.id == item_id else i
            for i in self._cart.items
        ]
        return self._commit_local(Cart(owner=identity, items=items))

    async def clear_cart(self) -> Cart:
        await self._ensure_loaded()
        identity = self._identity
        if isinstance(identity, Identified):
            try:
                await self.remote.delete_all(identity.user_id)
            except RemoteCartStoreError as e:
                logger.error("Failed to clear cart: %s", e)
                return self._cart
            return self._publish(Cart(owner=identity))
        return self._commit_local(Cart(owner=identity))

    async def complete_checkout(self) -> CheckoutSummary:
        """
        Close out the cart after a successful (simulated) payment.

        Returns the totals that were charged. Unlike other mutations a remote
        failure here propagates, so a checkout never reports success while
        the signed-in cart still holds the purchased items.
        """
        if self._state != CartState.READY:
            raise StorefrontError(ERROR_CART_NOT_READY)
        if self._cart.is_empty:
            raise EmptyCartError()

        summary = self._cart.checkout_summary()
        identity = self._identity
        if isinstance(identity, Identified):
            await self.remote.delete_all(identity.user_id)
            self._publish(Cart(owner=identity))
        else:
            self._commit_local(Cart(owner=identity))
        return summary

    # ==================== SUMMARY ====================

    def checkout_summary(self) -> CheckoutSummary:
        return self._cart.checkout_summary()

    def summary(self) -> dict:
        """JSON-friendly view of the current cart."""
        cart = self._cart
        return {
            "state": self._state.value,
            "is_empty": cart.is_empty,
            "item_count": cart.item_count,
            "items": [
                {
                    "id": item.id,
                    "product_id": item.product_id,
                    "product_name": item.product.name,
                    "image": item.product.image,
                    "quantity": item.quantity,
                    "selected_variants": dict(item.selected_variants),
                    "unit_price": to_float(item.unit_price),
                    "total": to_float(item.total_price),
                    "available_stock": item.available_stock,
                }
                for item in cart.items
            ],
            "subtotal": to_float(cart.subtotal),
            "checkout": cart.checkout_summary().to_dict(),
        }

    @staticmethod
    def _describe(identity: Identity) -> str:
        return describe_shopper(identity.user_id if isinstance(identity, Identified) else None)


async def create_cart_manager(
    device_id: str,
    merge_policy: MergePolicy = MergePolicy.DISCARD,
) -> CartManager:
    """Build a manager wired to Supabase and Upstash. Call start() before use."""
    client = await get_supabase()
    return CartManager(
        remote=CartRepository(client),
        local=RedisLocalStore(device_id),
        products=ProductRepository(client),
        identity_provider=SupabaseIdentityProvider(client),
        merge_policy=merge_policy,
    )
