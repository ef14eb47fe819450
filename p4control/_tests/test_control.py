import queue
import time

import pytest
from p4.v1 import p4runtime_pb2

from p4control import JOIN_TIMEOUT
from p4control.control import control as control_module
from p4control.control.arbitration import MastershipState
from p4control.control.control import MessageKind, SimpleControl, new_control
from p4control.core.utils import P4InfoObjectNotFound
from p4control._tests.fakes import (FakeClient, arbitration_msg, digest_msg, packet_in_msg,
                                    wait_for)


def drain(channel):
    items = []
    while True:
        item = channel.get(timeout=2)
        if item is None:
            return items
        items.append(item)


def route(control, messages):
    for msg in messages:
        control.client.incoming.put(msg)
    control.client.incoming.put(None)
    control.start_message_router()
    control._router.join(2)
    assert not control._router.is_alive()


def test_message_kind():
    assert MessageKind.of(arbitration_msg(0, 1)) is MessageKind.arbitration
    assert MessageKind.of(digest_msg(1)) is MessageKind.digest
    assert MessageKind.of(packet_in_msg()) is MessageKind.other
    assert MessageKind.of(p4runtime_pb2.StreamMessageResponse()) is MessageKind.other
    error = p4runtime_pb2.StreamMessageResponse()
    error.error.canonical_code = 3
    assert MessageKind.of(error) is MessageKind.error


def test_router_keeps_order_per_kind(fake_client):
    control = SimpleControl(fake_client, digest_queue_size=0, arbitration_queue_size=0)
    messages = [arbitration_msg(0, 1), digest_msg(1), digest_msg(2), arbitration_msg(0, 2),
                digest_msg(3), arbitration_msg(0, 3), digest_msg(4)]
    route(control, messages)

    arbitrations = drain(control.arbitration_channel)
    digests = drain(control.digest_channel)
    assert [a.election_id.low for a in arbitrations] == [1, 2, 3]
    assert [d.list_id for d in digests] == [1, 2, 3, 4]


def test_router_drops_unknown_messages(fake_client):
    control = SimpleControl(fake_client, digest_queue_size=0, arbitration_queue_size=0)
    error = p4runtime_pb2.StreamMessageResponse()
    error.error.message = 'bad packet-out'
    route(control, [packet_in_msg(), digest_msg(1), error, p4runtime_pb2.StreamMessageResponse(),
                    arbitration_msg(0, 1), digest_msg(2)])

    assert [a.election_id.low for a in drain(control.arbitration_channel)] == [1]
    assert [d.list_id for d in drain(control.digest_channel)] == [1, 2]


def test_stream_loss_resets_mastership(control):
    control.set_mastership_status(True)
    route(control, [])
    assert control.arbitration.state is MastershipState.unarbitrated
    assert not control.is_master()
    assert control.arbitration_channel.get_nowait() is None
    assert control.digest_channel.get_nowait() is None


def test_run_arbitrates(control):
    control.run()
    req = control.client.outgoing.get(timeout=2)
    assert req.WhichOneof('update') == 'arbitration'
    control.client.incoming.put(arbitration_msg(0, 1))
    assert wait_for(control.is_master)
    control.client.incoming.put(arbitration_msg(0, 7))
    assert wait_for(lambda: not control.is_master())
    control.teardown()
    assert control.client.torn_down
    assert control._router is None


def test_get_digest_sends_ack(control):
    control.digest_channel.put(digest_msg(7, digest_id=401).digest)
    dig_list = control.get_digest(timeout=1)
    assert dig_list.list_id == 7
    ack = control.client.outgoing.get_nowait()
    assert (ack.digest_ack.digest_id, ack.digest_ack.list_id) == (401, 7)


def test_get_digest_timeout(control):
    assert control.get_digest(timeout=0.01) is None
    assert control.client.outgoing.empty()


def test_table_controls_are_cached(control):
    assert control.table('ingress.ipv4_lpm') is control.table('ingress.ipv4_lpm')
    with pytest.raises(P4InfoObjectNotFound):
        control.table('ingress.nope')


def test_reconnect_keeps_context(monkeypatch, control):
    created = []

    def fake_session(device_id, grpc_addr, election_id, timeout=None):
        client = FakeClient(None, device_id, election_id)
        created.append(client)
        return client

    monkeypatch.setattr(control_module, 'P4RuntimeClient', fake_session)
    old = control.client
    control.run()
    old.outgoing.get(timeout=2)

    control.reconnect()

    assert old.torn_down
    assert control.client is created[0]
    assert control.client.context is old.context
    req = control.client.outgoing.get(timeout=2)
    assert req.WhichOneof('update') == 'arbitration'
    assert control.arbitration.state is MastershipState.unarbitrated
    control.teardown()


def test_new_control_fetches_p4info(stub):
    control = new_control('fake:50051', 0, (0, 1))
    try:
        assert control.context.get_table('ingress.ipv4_lpm') is not None
    finally:
        control.teardown()


def test_install_program_drops_cached_controls(control, fake_client):
    table = control.table('ingress.ipv4_lpm')
    control.install_program('main.p4info.txt', 'main.json')
    assert fake_client.installed == [('main.p4info.txt', 'main.json')]
    assert control.table('ingress.ipv4_lpm') is not table


def test_teardown_with_undrained_digests(stub):
    control = new_control('fake:50051', 0, (0, 1))
    control.run()
    client = control.client
    for list_id in range(40):
        stub.stream.push(digest_msg(list_id))
    assert wait_for(lambda: client.get_message_queues().incoming.full())

    start = time.time()
    control.teardown()
    assert time.time() - start < JOIN_TIMEOUT
    assert not client.stream_recv_thread.is_alive()
    assert control._router is None


def test_teardown_resets_arbitration(control):
    control.run()
    control.set_mastership_status(True)
    control.teardown()
    assert control.arbitration.state is MastershipState.unarbitrated
    assert not control.is_master()
    assert not control.client.is_master()
