import asyncio

from fakes import TransportFactory, order_payload
from Models.notifications import NotificationType
from Services.alerts import AlertPlayer
from Services.notification_channel import NotificationChannel


def make_channel(factory, attempts=3, alert_events=None):
    sink = alert_events.append if alert_events is not None else (lambda playing: None)
    return NotificationChannel(factory, reconnect_attempts=attempts, reconnect_delay=0,
                               alert=AlertPlayer(sink=sink))


def test_concurrent_connects_share_one_attempt():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        results = await asyncio.gather(channel.connect(), channel.connect(), channel.connect())
        assert results == [True, True, True]
        assert len(factory.created) == 1
        assert await channel.connect()
        assert len(factory.created) == 1

    asyncio.run(scenario())


def test_reconnect_attempts_are_bounded():
    async def scenario():
        factory = TransportFactory(failures=100)
        channel = make_channel(factory, attempts=4)
        assert await channel.connect() is False
        assert len(factory.created) == 4
        assert not channel.is_connected

        # Reconexão explícita começa um novo ciclo de tentativas
        factory.failures = 0
        assert await channel.reconnect()
        assert channel.is_connected

    asyncio.run(scenario())


def test_connect_succeeds_after_failures():
    async def scenario():
        factory = TransportFactory(failures=2)
        channel = make_channel(factory, attempts=10)
        assert await channel.connect()
        assert len(factory.created) == 3
        assert channel.stats['connect_attempts'] == 3

    asyncio.run(scenario())


def test_room_membership_is_reference_counted():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        await channel.connect()

        await channel.join_room()
        await channel.join_room()
        assert factory.last.emitted == [("admin:join", None)]

        await channel.leave_room()
        assert factory.last.emitted == [("admin:join", None)]
        assert channel.room_members == 1

        await channel.leave_room()
        assert factory.last.emitted == [("admin:join", None), ("admin:leave", None)]

        # Sair de novo não faz nada
        await channel.leave_room()
        assert channel.room_members == 0
        assert len(factory.last.emitted) == 2

    asyncio.run(scenario())


def test_join_before_connect_is_sent_on_connect():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        await channel.join_room()
        assert factory.created == []

        await channel.connect()
        assert factory.last.emitted == [("admin:join", None)]

    asyncio.run(scenario())


def test_join_during_connect_is_sent_once():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        await channel.join_room()
        connecting = asyncio.create_task(channel.connect())
        while not channel.is_connected:
            await asyncio.sleep(0)

        # O join da conexão ainda está sendo enviado
        await channel.join_room()
        assert await connecting

        assert factory.last.emitted == [("admin:join", None)]
        assert channel.room_members == 2

    asyncio.run(scenario())


def test_disconnect_reconnects_and_rejoins_once():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        await channel.connect()
        await channel.join_room()
        first = factory.last

        await first.drop()
        assert await channel.connect()

        assert len(factory.created) == 2
        assert factory.last.emitted == [("admin:join", None)]
        assert channel.stats['disconnects'] == 1

    asyncio.run(scenario())


def test_close_stops_automatic_reconnect():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        await channel.connect()
        transport = factory.last
        await channel.close()
        await transport.on_disconnect("client closed")

        assert transport.closed
        assert len(factory.created) == 1
        assert not channel.is_connecting

    asyncio.run(scenario())


def test_listener_failure_does_not_affect_others():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        received = []

        def broken(envelope):
            raise RuntimeError("listener quebrado")

        async def healthy(envelope):
            received.append(envelope)

        channel.subscribe(NotificationType.ORDER_NEW, broken)
        channel.subscribe(NotificationType.ORDER_NEW, healthy)
        await channel.connect()
        await factory.last.push("order:new", {"message": "Novo pedido", "data": order_payload("o7")})

        assert len(received) == 1
        assert received[0].order_id == "o7"
        assert received[0].message == "Novo pedido"

    asyncio.run(scenario())


def test_flat_payload_and_unknown_events():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        received = []
        channel.subscribe(NotificationType.ORDER_STATUS_UPDATE, received.append)
        await channel.connect()

        await factory.last.push("order:statusUpdate", {"_id": "o1", "status": "confirmed"})
        await factory.last.push("chat:message", {"text": "oi"})

        assert [e.data for e in received] == [{"_id": "o1", "status": "confirmed"}]
        assert channel.stats['events_received'] == 1

    asyncio.run(scenario())


def test_subscribe_is_deduplicated_and_unsubscribe_works():
    async def scenario():
        factory = TransportFactory()
        channel = make_channel(factory)
        received = []
        channel.subscribe(NotificationType.PAYMENT_SUCCESS, received.append)
        channel.subscribe(NotificationType.PAYMENT_SUCCESS, received.append)
        await channel.connect()

        await factory.last.push("payment:success", {"data": {"_id": "o1"}})
        channel.unsubscribe(NotificationType.PAYMENT_SUCCESS, received.append)
        await factory.last.push("payment:success", {"data": {"_id": "o2"}})

        assert [e.order_id for e in received] == ["o1"]

    asyncio.run(scenario())


def test_alert_stops_after_duration(alert_events):
    async def scenario():
        channel = make_channel(TransportFactory(), alert_events=alert_events)
        channel.play_alert(20)
        assert channel.alert.is_playing
        await asyncio.sleep(0.1)
        assert not channel.alert.is_playing

    asyncio.run(scenario())
    assert alert_events == [True, False]


def test_alert_restart_and_manual_stop(alert_events):
    async def scenario():
        channel = make_channel(TransportFactory(), alert_events=alert_events)
        channel.play_alert(5000)
        channel.play_alert(5000)
        channel.stop_alert()
        assert not channel.alert.is_playing

    asyncio.run(scenario())
    assert alert_events == [True, True, False]
