import asyncio

import pytest

from fakes import make_order
from Models.orders import OrderStatus
from Services.errors import OrderServiceError
from Services.order_cache import OptimisticMutator, OrderCache

KEY = "admin-orders"


class CountingFetcher:
    def __init__(self, orders=()):
        self.orders = list(orders)
        self.calls = 0
        self.error = None

    async def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.orders)


def make_cache(orders=()):
    cache = OrderCache(staleness_window=0)
    fetcher = CountingFetcher(orders)
    cache.register(KEY, fetcher)
    return cache, fetcher


def test_refetch_marks_fresh_and_notifies():
    async def scenario():
        cache, fetcher = make_cache([make_order("o1"), make_order("o2")])
        views = []
        cache.subscribe(KEY, views.append)
        assert cache.is_stale(KEY)

        await cache.ensure_fresh(KEY)
        await cache.ensure_fresh(KEY)

        assert fetcher.calls == 1
        assert not cache.is_stale(KEY)
        assert [o.id for o in views[-1]] == ["o1", "o2"]

    asyncio.run(scenario())


def test_concurrent_refetches_are_grouped():
    async def scenario():
        cache, fetcher = make_cache([make_order("o1")])
        await asyncio.gather(cache.refetch(KEY), cache.refetch(KEY), cache.refetch(KEY))
        assert fetcher.calls == 1

    asyncio.run(scenario())


def test_failed_refetch_keeps_previous_data():
    async def scenario():
        cache, fetcher = make_cache([make_order("o1")])
        await cache.refetch(KEY)
        fetcher.error = OrderServiceError(503, "indisponível")

        with pytest.raises(OrderServiceError):
            await cache.invalidate(KEY)
        with pytest.raises(OrderServiceError):
            await cache.ensure_fresh(KEY)

        assert [o.id for o in cache.get(KEY)] == ["o1"]
        assert cache.is_stale(KEY)

    asyncio.run(scenario())


def test_unregistered_key_raises():
    cache = OrderCache()
    with pytest.raises(KeyError):
        cache.get("outra-consulta")


def test_patch_replaces_whole_order():
    async def scenario():
        cache, _ = make_cache([make_order("o1")])
        await cache.refetch(KEY)
        before = cache.get_order(KEY, "o1")

        assert cache.patch_order(KEY, "o1", {"status": OrderStatus.CONFIRMED})
        after = cache.get_order(KEY, "o1")

        assert after is not before
        assert before.status == OrderStatus.PENDING
        assert after.status == OrderStatus.CONFIRMED
        assert not cache.patch_order(KEY, "nao-existe", {"status": OrderStatus.CONFIRMED})

    asyncio.run(scenario())


def test_projection_merges_known_orders():
    async def scenario():
        cache, _ = make_cache([make_order("o1")])
        await cache.refetch(KEY)

        assert cache.apply_projection(KEY, {"_id": "o1", "status": "confirmed", "payed": True})
        merged = cache.get_order(KEY, "o1")
        assert merged.status == OrderStatus.CONFIRMED and merged.payed
        assert merged.total_price == 100000

        assert not cache.apply_projection(KEY, {"status": "confirmed"})

    asyncio.run(scenario())


def test_partial_projection_of_unknown_order_is_not_inserted():
    async def scenario():
        cache, _ = make_cache([make_order("o1")])
        await cache.refetch(KEY)

        assert not cache.apply_projection(KEY, {"_id": "o2", "totalPrice": 50000})
        assert not cache.apply_projection(KEY, {"_id": "o3", "payed": True})
        assert not cache.apply_projection(KEY, {"_id": "o4", "status": "pending", "totalPrice": 50000,
                                                "deliveryOptions": "pickup", "createdAt": None})
        assert [o.id for o in cache.get(KEY)] == ["o1"]

    asyncio.run(scenario())


def test_full_projection_of_unknown_order_goes_to_top():
    async def scenario():
        cache, _ = make_cache([make_order("o1")])
        await cache.refetch(KEY)
        projection = {"_id": "o2", "status": "pending", "totalPrice": 50000,
                      "deliveryOptions": "pickup", "createdAt": "2024-05-11T10:00:00Z"}

        assert cache.apply_projection(KEY, projection)
        assert [o.id for o in cache.get(KEY)] == ["o2", "o1"]
        assert cache.get_order(KEY, "o2").total_price == 50000

        assert not cache.apply_projection(KEY, {**projection, "_id": "o3", "totalPrice": -1})
        assert len(cache.get(KEY)) == 2

    asyncio.run(scenario())


def test_failed_mutation_restores_exact_snapshot():
    async def scenario():
        cache, fetcher = make_cache([make_order("o1"), make_order("o2")])
        await cache.refetch(KEY)
        before = cache.get(KEY)
        mutator = OptimisticMutator(cache, KEY)

        async def request():
            assert cache.get_order(KEY, "o1").status == OrderStatus.CONFIRMED
            raise OrderServiceError(500, "erro interno")

        with pytest.raises(OrderServiceError):
            await mutator.mutate("o1", {"status": OrderStatus.CONFIRMED}, request)

        assert cache.get(KEY) == before
        assert all(a is b for a, b in zip(cache.get(KEY), before))
        assert not mutator.is_in_flight("o1")

        await mutator.wait_reconciled()
        assert fetcher.calls == 2

    asyncio.run(scenario())


def test_successful_mutation_uses_server_order_then_reconciles():
    async def scenario():
        server_order = make_order("o1", status="confirmed", payed=True)
        cache, fetcher = make_cache([make_order("o1")])
        await cache.refetch(KEY)
        mutator = OptimisticMutator(cache, KEY)

        async def request():
            return server_order

        result = await mutator.mutate("o1", {"status": OrderStatus.CONFIRMED}, request)
        assert result is server_order
        assert cache.get_order(KEY, "o1") is server_order

        fetcher.orders = [server_order]
        await mutator.wait_reconciled()
        assert fetcher.calls == 2
        assert not cache.is_stale(KEY)

    asyncio.run(scenario())


def test_duplicate_mutation_while_in_flight_is_ignored():
    async def scenario():
        cache, _ = make_cache([make_order("o1")])
        await cache.refetch(KEY)
        mutator = OptimisticMutator(cache, KEY)
        gate = asyncio.Event()
        requests_sent = []

        async def request():
            requests_sent.append(1)
            await gate.wait()
            return make_order("o1", status="confirmed")

        first = asyncio.create_task(mutator.mutate("o1", {"status": OrderStatus.CONFIRMED}, request))
        await asyncio.sleep(0)
        assert mutator.is_in_flight("o1")

        second = await mutator.mutate("o1", {"status": OrderStatus.CONFIRMED}, request)
        assert second is None

        gate.set()
        assert (await first).status == OrderStatus.CONFIRMED
        assert len(requests_sent) == 1
        await mutator.wait_reconciled()

    asyncio.run(scenario())


def test_remove_order():
    async def scenario():
        cache, _ = make_cache([make_order("o1"), make_order("o2")])
        await cache.refetch(KEY)
        assert cache.remove_order(KEY, "o1")
        assert not cache.remove_order(KEY, "o1")
        assert [o.id for o in cache.get(KEY)] == ["o2"]

    asyncio.run(scenario())


def test_unexpected_request_error_also_rolls_back():
    async def scenario():
        cache, _ = make_cache([make_order("o1")])
        await cache.refetch(KEY)
        before = cache.get(KEY)
        mutator = OptimisticMutator(cache, KEY)

        async def request():
            raise RuntimeError("resposta inesperada")

        with pytest.raises(RuntimeError):
            await mutator.mutate("o1", {"status": OrderStatus.CANCELLED}, request)

        assert cache.get(KEY) == before
        assert cache.get_order(KEY, "o1").status == OrderStatus.PENDING
        assert not mutator.is_in_flight("o1")
        await mutator.wait_reconciled()

    asyncio.run(scenario())


def test_async_subscribers_are_tracked_until_done():
    async def scenario():
        cache, _ = make_cache([make_order("o1")])
        seen = []

        async def subscriber(orders):
            await asyncio.sleep(0.01)
            seen.append([o.id for o in orders])

        async def broken(orders):
            raise RuntimeError("assinante quebrado")

        cache.subscribe(KEY, subscriber)
        cache.subscribe(KEY, broken)
        await cache.refetch(KEY)
        assert seen == []

        await cache.wait_subscribers()
        assert seen == [["o1"]]
        assert not cache._subscriber_tasks

        assert cache.remove_order(KEY, "o1")
        await cache.wait_subscribers()
        assert seen == [["o1"], []]

    asyncio.run(scenario())
