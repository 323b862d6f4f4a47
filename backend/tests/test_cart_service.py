"""
Tests for the cart reconciliation service.

Each test builds a fresh service over in-memory collaborators.
"""
import asyncio

import pytest
import pytest_asyncio

from app.core.exceptions import InvalidOperationError
from app.models.cart import CartLine, CartMode
from app.services.cart_backends import encode_guest_cart
from app.services.cart_service import CartService
from app.services.identity import SessionIdentitySource
from app.services.notifications import NotificationLevel
from app.services.stores.device_store import MemoryDeviceStore

GUEST_KEY = "test_guest_cart"


class YieldingDeviceStore(MemoryDeviceStore):
    """Device store that yields to the event loop on every write."""

    async def set(self, key, value):
        await asyncio.sleep(0)
        await super().set(key, value)


class GatedDeviceStore(MemoryDeviceStore):
    """Device store whose reads can be held until ``gate`` is set."""

    def __init__(self, data=None):
        super().__init__(data)
        self.hold = False
        self.reading = asyncio.Event()
        self.gate = asyncio.Event()

    async def get(self, key):
        if self.hold:
            self.reading.set()
            await self.gate.wait()
        return await super().get(key)


def build_service(cart_store, identity=None, device_store=None, merge_policy="overwrite"):
    return CartService(
        identity=identity or SessionIdentitySource(),
        cart_store=cart_store,
        device_store=device_store if device_store is not None else MemoryDeviceStore(),
        guest_cart_key=GUEST_KEY,
        merge_policy=merge_policy
    )


def quantities(service):
    return {line.product_id: line.quantity for line in service.items}


class TestInitialize:
    """Test startup in guest and authenticated mode."""

    @pytest.mark.asyncio
    async def test_guest_mode_without_session(self, cart_store):
        """Test a device without a session starts an empty guest cart."""
        service = build_service(cart_store)
        await service.initialize()

        assert service.mode == CartMode.GUEST
        assert service.user_id is None
        assert service.items == []
        assert service.is_loading is False
        assert cart_store.calls == []

    @pytest.mark.asyncio
    async def test_guest_cart_loaded_from_device(self, cart_store, make_product):
        """Test a stored guest cart is restored on startup."""
        product = make_product("p1")
        stored = encode_guest_cart([CartLine(product_id="p1", quantity=3, product=product)])
        device = MemoryDeviceStore({GUEST_KEY: stored})

        service = build_service(cart_store, device_store=device)
        await service.initialize()

        assert quantities(service) == {"p1": 3}
        assert service.items[0].product.name == product.name

    @pytest.mark.asyncio
    async def test_corrupt_guest_cart_reads_as_empty(self, cart_store):
        """Test unparseable device data is treated as an empty cart, silently."""
        device = MemoryDeviceStore({GUEST_KEY: b"{not json"})
        service = build_service(cart_store, device_store=device)

        await service.initialize()

        assert service.items == []
        assert service.notifier.pending == []

    @pytest.mark.asyncio
    async def test_guest_cart_with_invalid_quantity_reads_as_empty(self, cart_store):
        """Test a stored zero-quantity line makes the stored cart unusable."""
        device = MemoryDeviceStore({GUEST_KEY: b'[{"product_id": "p1", "quantity": 0}]'})
        service = build_service(cart_store, device_store=device)

        await service.initialize()

        assert service.items == []

    @pytest.mark.asyncio
    async def test_authenticated_mode_with_session(self, cart_store, make_product):
        """Test an existing session loads the account cart in one fetch."""
        cart_store.add_product(make_product("p1"))
        await cart_store.upsert("user-1", "p1", 4)
        cart_store.calls.clear()

        service = build_service(cart_store, identity=SessionIdentitySource("user-1"))
        await service.initialize()

        assert service.mode == CartMode.AUTHENTICATED
        assert service.user_id == "user-1"
        assert quantities(service) == {"p1": 4}
        assert service.items[0].product is not None
        assert cart_store.calls == [("fetch_by_owner", "user-1")]

    @pytest.mark.asyncio
    async def test_failed_initial_fetch_leaves_empty_cart(self, cart_store):
        """Test a store failure at startup is reported, not raised."""
        cart_store.fail_on = {"fetch_by_owner"}
        service = build_service(cart_store, identity=SessionIdentitySource("user-1"))

        await service.initialize()

        assert service.items == []
        assert service.is_loading is False
        assert service.notifier.pending[0].level == NotificationLevel.ERROR


class TestGuestCart:
    """Test cart operations without a signed-in user."""

    @pytest.mark.asyncio
    async def test_add_twice_is_additive(self, cart_store, make_product):
        """Test adding the same product twice yields one line with quantity 2."""
        service = build_service(cart_store)
        await service.initialize()
        product = make_product("x")

        await service.add_item(product, 1)
        await service.add_item(product, 1)

        assert len(service.items) == 1
        assert quantities(service) == {"x": 2}

    @pytest.mark.asyncio
    async def test_add_persists_to_device(self, cart_store, make_product):
        """Test the full guest cart is written to device storage after an add."""
        device = MemoryDeviceStore()
        service = build_service(cart_store, device_store=device)
        await service.initialize()

        result = await service.add_item(make_product("p1", name="Keyboard"), 2)

        assert result.success is True
        assert result.message == "Keyboard added to cart"
        assert GUEST_KEY in device.data
        restored = build_service(cart_store, device_store=device)
        await restored.initialize()
        assert quantities(restored) == {"p1": 2}
        assert cart_store.calls == []

    @pytest.mark.asyncio
    async def test_new_line_gets_guest_owner_and_id(self, cart_store, make_product):
        """Test a new guest line is owned by 'guest' and has an id."""
        service = build_service(cart_store)
        await service.initialize()

        await service.add_item(make_product("p1"))

        line = service.items[0]
        assert line.user_id == "guest"
        assert line.id
        assert line.product is not None

    @pytest.mark.asyncio
    async def test_add_emits_confirmation(self, cart_store, make_product):
        """Test a confirmation naming the product is emitted."""
        service = build_service(cart_store)
        await service.initialize()

        await service.add_item(make_product("p1", name="Mouse"))

        notifications = service.notifier.drain()
        assert [n.message for n in notifications] == ["Mouse added to cart"]
        assert notifications[0].level == NotificationLevel.SUCCESS

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, cart_store, make_product):
        """Test removing twice ends in the same state as removing once."""
        service = build_service(cart_store)
        await service.initialize()
        await service.add_item(make_product("a"))
        await service.add_item(make_product("b"))

        first = await service.remove_item("a")
        after_once = quantities(service)
        second = await service.remove_item("a")

        assert first.success and second.success
        assert quantities(service) == after_once == {"b": 1}

    @pytest.mark.asyncio
    async def test_update_quantity(self, cart_store, make_product):
        """Test setting a quantity replaces it."""
        service = build_service(cart_store)
        await service.initialize()
        await service.add_item(make_product("a"), 2)

        await service.update_quantity("a", 7)

        assert quantities(service) == {"a": 7}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -5])
    async def test_quantity_below_one_removes(self, cart_store, make_product, quantity):
        """Test a quantity of zero or less removes the line."""
        service = build_service(cart_store)
        await service.initialize()
        await service.add_item(make_product("a"), 2)
        await service.add_item(make_product("b"), 1)

        await service.update_quantity("a", quantity)

        assert quantities(service) == {"b": 1}

    @pytest.mark.asyncio
    async def test_clear_erases_device_entry(self, cart_store, make_product):
        """Test clearing empties the cart and the stored entry."""
        device = MemoryDeviceStore()
        service = build_service(cart_store, device_store=device)
        await service.initialize()
        await service.add_item(make_product("a"))

        result = await service.clear()

        assert result.success is True
        assert result.message == "Cart cleared"
        assert service.items == []
        assert GUEST_KEY not in device.data

    @pytest.mark.asyncio
    async def test_concurrent_adds_are_not_lost(self, cart_store, make_product):
        """Test interleaved guest adds are serialized without lost updates."""
        service = build_service(cart_store, device_store=YieldingDeviceStore())
        await service.initialize()
        product = make_product("a")

        await asyncio.gather(*[service.add_item(product, 1) for _ in range(10)])

        assert quantities(service) == {"a": 10}
        assert service.total_item_count == 10


class TestInvalidOperations:
    """Test arguments rejected before any I/O."""

    @pytest.mark.asyncio
    async def test_add_without_product(self, cart_store):
        """Test adding without a product raises."""
        service = build_service(cart_store)
        await service.initialize()

        with pytest.raises(InvalidOperationError):
            await service.add_item(None)

    @pytest.mark.asyncio
    async def test_add_with_zero_quantity(self, cart_store, make_product):
        """Test adding zero items raises and touches nothing."""
        service = build_service(cart_store, identity=SessionIdentitySource("user-1"))
        await service.initialize()
        cart_store.calls.clear()

        with pytest.raises(InvalidOperationError):
            await service.add_item(make_product("a"), 0)

        assert cart_store.calls == []


class TestAuthenticatedCart:
    """Test cart operations for a signed-in user."""

    @pytest_asyncio.fixture
    async def service(self, cart_store, make_product):
        for pid in ("a", "b", "c"):
            cart_store.add_product(make_product(pid, name=f"Product {pid}"))
        service = build_service(cart_store, identity=SessionIdentitySource("user-1"))
        await service.initialize()
        return service

    @pytest.mark.asyncio
    async def test_add_twice_is_additive(self, service, cart_store):
        """Test the signed-in add policy matches the guest one."""
        product = cart_store.products["a"]

        await service.add_item(product, 1)
        await service.add_item(product, 1)

        assert quantities(service) == {"a": 2}
        assert cart_store.quantities("user-1") == {"a": 2}

    @pytest.mark.asyncio
    async def test_add_refetches_snapshots(self, service, cart_store):
        """Test lines reflect the store, product snapshots included."""
        await service.add_item(cart_store.products["a"], 3)

        assert cart_store.calls[-1] == ("fetch_by_owner", "user-1")
        assert service.items[0].product.name == "Product a"

    @pytest.mark.asyncio
    async def test_store_failure_leaves_state(self, service, cart_store):
        """Test a failed write keeps the previous cart and reports failure."""
        await service.add_item(cart_store.products["a"], 1)
        service.notifier.drain()
        before = quantities(service)
        cart_store.fail_on = {"increment"}

        result = await service.add_item(cart_store.products["b"], 1)

        assert result.success is False
        assert result.message == "Failed to add item to cart"
        assert quantities(service) == before
        assert [n.level for n in service.notifier.drain()] == [NotificationLevel.ERROR]

    @pytest.mark.asyncio
    async def test_operation_can_be_retried_after_failure(self, service, cart_store):
        """Test a failed operation can simply be called again."""
        cart_store.fail_on = {"increment"}
        await service.add_item(cart_store.products["a"], 1)
        cart_store.fail_on = set()

        result = await service.add_item(cart_store.products["a"], 1)

        assert result.success is True
        assert quantities(service) == {"a": 1}

    @pytest.mark.asyncio
    async def test_stored_add_with_failed_refetch_is_not_a_failure(self, service, cart_store):
        """Test an add that was stored but not re-read reports success, marked stale."""
        service.notifier.drain()
        cart_store.fail_on = {"fetch_by_owner"}

        result = await service.add_item(cart_store.products["a"], 1)

        assert result.success is True
        assert result.stale is True
        assert service.is_stale is True
        assert cart_store.quantities("user-1") == {"a": 1}
        assert service.items == []
        assert [n.level for n in service.notifier.drain()] == [NotificationLevel.SUCCESS]

    @pytest.mark.asyncio
    async def test_refresh_after_stale_add(self, service, cart_store):
        """Test refreshing picks up the stored line without adding it twice."""
        cart_store.fail_on = {"fetch_by_owner"}
        await service.add_item(cart_store.products["a"], 1)
        cart_store.fail_on = set()

        result = await service.refresh()

        assert result.success is True
        assert service.is_stale is False
        assert quantities(service) == {"a": 1}
        assert cart_store.quantities("user-1") == {"a": 1}

    @pytest.mark.asyncio
    async def test_refresh_failure_stays_stale(self, service, cart_store):
        cart_store.fail_on = {"fetch_by_owner"}

        result = await service.refresh()

        assert result.success is False
        assert result.stale is True
        assert service.is_stale is True

    @pytest.mark.asyncio
    async def test_update_quantity_does_not_insert(self, service, cart_store):
        """Test updating a product that is not in the cart changes nothing."""
        result = await service.update_quantity("a", 5)

        assert result.success is True
        assert service.items == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -5])
    async def test_quantity_below_one_deletes(self, service, cart_store, quantity):
        """Test a quantity below one issues a delete like remove_item."""
        await service.add_item(cart_store.products["a"], 2)

        await service.update_quantity("a", quantity)

        assert ("delete_line", "user-1", "a") in cart_store.calls
        assert service.items == []

    @pytest.mark.asyncio
    async def test_remove_twice(self, service, cart_store):
        """Test removing an absent line is not an error."""
        await service.add_item(cart_store.products["a"], 1)

        assert (await service.remove_item("a")).success
        assert (await service.remove_item("a")).success
        assert service.items == []

    @pytest.mark.asyncio
    async def test_clear_success(self, service, cart_store):
        """Test clearing deletes every line of the owner."""
        await service.add_item(cart_store.products["a"], 1)
        await service.add_item(cart_store.products["b"], 1)

        result = await service.clear()

        assert result.success is True
        assert service.items == []
        assert cart_store.quantities("user-1") == {}

    @pytest.mark.asyncio
    async def test_clear_failure_still_reports(self, service, cart_store):
        """Test a failed clear returns a result and keeps the lines."""
        await service.add_item(cart_store.products["a"], 1)
        cart_store.fail_on = {"delete_all_by_owner"}

        result = await service.clear()

        assert result.success is False
        assert result.message == "Failed to clear cart"
        assert quantities(service) == {"a": 1}


class TestSignIn:
    """Test merging a guest cart at sign-in."""

    @pytest.mark.asyncio
    async def test_guest_quantity_overwrites_account_quantity(self, cart_store, make_product):
        """Test guest {A: 2, B: 1} over account {A: 5} gives {A: 2, B: 1}."""
        identity = SessionIdentitySource()
        device = MemoryDeviceStore()
        a, b = make_product("A"), make_product("B")
        cart_store.add_product(a)
        cart_store.add_product(b)
        await cart_store.upsert("user-1", "A", 5)

        service = build_service(cart_store, identity=identity, device_store=device)
        await service.initialize()
        await service.add_item(a, 2)
        await service.add_item(b, 1)

        await identity.sign_in("user-1")

        assert service.mode == CartMode.AUTHENTICATED
        assert quantities(service) == {"A": 2, "B": 1}
        assert cart_store.quantities("user-1") == {"A": 2, "B": 1}
        assert GUEST_KEY not in device.data

    @pytest.mark.asyncio
    async def test_sum_merge_policy(self, cart_store, make_product):
        """Test the sum policy adds guest quantities to the account ones."""
        identity = SessionIdentitySource()
        a = make_product("A")
        cart_store.add_product(a)
        await cart_store.upsert("user-1", "A", 5)

        service = build_service(cart_store, identity=identity, merge_policy="sum")
        await service.initialize()
        await service.add_item(a, 2)

        await identity.sign_in("user-1")

        assert quantities(service) == {"A": 7}

    @pytest.mark.asyncio
    async def test_failed_line_does_not_stop_merge(self, cart_store, make_product):
        """Test a failing line is skipped and the guest entry is still erased."""
        identity = SessionIdentitySource()
        device = MemoryDeviceStore()
        a, b = make_product("A"), make_product("B")
        cart_store.add_product(a)
        cart_store.add_product(b)
        cart_store.fail_products = {"A"}

        service = build_service(cart_store, identity=identity, device_store=device)
        await service.initialize()
        await service.add_item(a, 2)
        await service.add_item(b, 1)

        await identity.sign_in("user-1")

        assert quantities(service) == {"B": 1}
        assert GUEST_KEY not in device.data

    @pytest.mark.asyncio
    async def test_lines_without_snapshot_are_skipped(self, cart_store, make_product):
        """Test stored guest lines without a product are not merged."""
        identity = SessionIdentitySource()
        stored = encode_guest_cart([
            CartLine(product_id="A", quantity=2, product=make_product("A")),
            CartLine(product_id="ghost", quantity=1),
        ])
        device = MemoryDeviceStore({GUEST_KEY: stored})

        service = build_service(cart_store, identity=identity, device_store=device)
        await service.initialize()
        await identity.sign_in("user-1")

        assert cart_store.quantities("user-1") == {"A": 2}

    @pytest.mark.asyncio
    async def test_sign_in_with_empty_guest_cart(self, cart_store, make_product):
        """Test signing in without guest lines just loads the account cart."""
        identity = SessionIdentitySource()
        cart_store.add_product(make_product("A"))
        await cart_store.upsert("user-1", "A", 3)
        cart_store.calls.clear()

        service = build_service(cart_store, identity=identity)
        await service.initialize()
        await identity.sign_in("user-1")

        assert quantities(service) == {"A": 3}
        assert [call[0] for call in cart_store.calls] == ["fetch_by_owner"]

    @pytest.mark.asyncio
    async def test_add_during_sign_in_lands_in_account_cart(self, cart_store, make_product):
        """Test an add issued while the guest cart is being merged is not lost."""
        identity = SessionIdentitySource()
        device = GatedDeviceStore()
        a = make_product("a")
        cart_store.add_product(a)

        service = build_service(cart_store, identity=identity, device_store=device)
        await service.initialize()

        device.hold = True
        sign_in = asyncio.create_task(identity.sign_in("user-1"))
        await device.reading.wait()
        add = asyncio.create_task(service.add_item(a, 1))
        await asyncio.sleep(0)
        device.gate.set()
        await sign_in
        result = await add

        assert result.success is True
        assert service.mode == CartMode.AUTHENTICATED
        assert cart_store.quantities("user-1") == {"a": 1}
        assert quantities(service) == {"a": 1}
        assert GUEST_KEY not in device.data


class TestSignOut:
    """Test leaving authenticated mode."""

    @pytest.mark.asyncio
    async def test_sign_out_discards_without_deleting(self, cart_store, make_product):
        """Test the in-memory cart empties and the store is not touched."""
        identity = SessionIdentitySource("user-1")
        for pid in ("a", "b", "c"):
            cart_store.add_product(make_product(pid))
            await cart_store.upsert("user-1", pid, 1)

        service = build_service(cart_store, identity=identity)
        await service.initialize()
        assert service.total_item_count == 3
        cart_store.calls.clear()

        await identity.sign_out()

        assert service.mode == CartMode.GUEST
        assert service.items == []
        assert service.total_item_count == 0
        assert not any(call[0].startswith("delete") for call in cart_store.calls)
        assert len(cart_store.quantities("user-1")) == 3

    @pytest.mark.asyncio
    async def test_guest_cart_not_restored(self, cart_store, make_product):
        """Test the pre-sign-in guest cart does not come back after sign-out."""
        identity = SessionIdentitySource()
        product = make_product("a")
        cart_store.add_product(product)

        service = build_service(cart_store, identity=identity)
        await service.initialize()
        await service.add_item(product, 2)
        await identity.sign_in("user-1")
        await identity.sign_out()

        assert service.items == []


class TestDispose:
    """Test releasing the identity subscription."""

    @pytest.mark.asyncio
    async def test_events_ignored_after_dispose(self, cart_store):
        """Test a disposed service no longer reacts to sign-in."""
        identity = SessionIdentitySource()
        service = build_service(cart_store, identity=identity)
        await service.initialize()
        assert identity.listener_count == 1

        service.dispose()
        await identity.sign_in("user-1")

        assert identity.listener_count == 0
        assert service.mode == CartMode.GUEST
        assert cart_store.calls == []


class TestTotals:
    """Test derived projections."""

    @pytest.mark.asyncio
    async def test_total_price_uses_sale_price(self, cart_store, make_product):
        """Test 80 * 2 + 50 * 1 = 210."""
        service = build_service(cart_store)
        await service.initialize()

        await service.add_item(make_product("p1", price=100.0, sale_price=80.0), 2)
        await service.add_item(make_product("p2", price=50.0, sale_price=None), 1)

        assert service.total_price == 210
        assert service.total_item_count == 3

    @pytest.mark.asyncio
    async def test_empty_cart_totals(self, cart_store):
        """Test an empty cart has zero totals."""
        service = build_service(cart_store)
        await service.initialize()

        assert service.total_price == 0
        assert service.total_item_count == 0
