"""In-memory stand-ins for the P4Runtime server and the session client."""

import queue
import threading
import time

import grpc
from p4.config.v1 import p4info_pb2
from p4.v1 import p4runtime_pb2

from p4control.core.client import MessageQueues, ArbitrationData


IPV4_LPM_ID = 37375156
ACL_ID = 44506256
IPV4_FORWARD_ID = 28792405
DROP_ID = 25652968
IPV4_COUNTER_ID = 330152573
PORT_COUNTER_ID = 302011205


def build_p4info():
    p4info = p4info_pb2.P4Info()

    table = p4info.tables.add()
    table.preamble.id = IPV4_LPM_ID
    table.preamble.name = 'ingress.ipv4_lpm'
    mf = table.match_fields.add()
    mf.id = 1
    mf.name = 'hdr.ipv4.dstAddr'
    mf.bitwidth = 32
    mf.match_type = p4info_pb2.MatchField.LPM
    table.action_refs.add(id=IPV4_FORWARD_ID)
    table.action_refs.add(id=DROP_ID)
    table.direct_resource_ids.append(IPV4_COUNTER_ID)
    table.size = 1024

    acl = p4info.tables.add()
    acl.preamble.id = ACL_ID
    acl.preamble.name = 'ingress.acl'
    mf = acl.match_fields.add()
    mf.id = 1
    mf.name = 'standard_metadata.ingress_port'
    mf.bitwidth = 9
    mf.match_type = p4info_pb2.MatchField.EXACT
    mf = acl.match_fields.add()
    mf.id = 2
    mf.name = 'hdr.ipv4.srcAddr'
    mf.bitwidth = 32
    mf.match_type = p4info_pb2.MatchField.TERNARY
    acl.action_refs.add(id=DROP_ID)

    forward = p4info.actions.add()
    forward.preamble.id = IPV4_FORWARD_ID
    forward.preamble.name = 'ingress.ipv4_forward'
    param = forward.params.add()
    param.id = 1
    param.name = 'dstAddr'
    param.bitwidth = 48
    param = forward.params.add()
    param.id = 2
    param.name = 'port'
    param.bitwidth = 9

    drop = p4info.actions.add()
    drop.preamble.id = DROP_ID
    drop.preamble.name = 'ingress.drop'

    direct_counter = p4info.direct_counters.add()
    direct_counter.preamble.id = IPV4_COUNTER_ID
    direct_counter.preamble.name = 'ingress.ipv4_counter'
    direct_counter.spec.unit = p4info_pb2.CounterSpec.BOTH
    direct_counter.direct_table_id = IPV4_LPM_ID

    counter = p4info.counters.add()
    counter.preamble.id = PORT_COUNTER_ID
    counter.preamble.name = 'ingress.port_counter'
    counter.spec.unit = p4info_pb2.CounterSpec.BOTH
    counter.size = 512

    return p4info


def arbitration_msg(high, low, device_id=0):
    msg = p4runtime_pb2.StreamMessageResponse()
    msg.arbitration.device_id = device_id
    msg.arbitration.election_id.high = high
    msg.arbitration.election_id.low = low
    return msg


def digest_msg(list_id, digest_id=401):
    msg = p4runtime_pb2.StreamMessageResponse()
    msg.digest.digest_id = digest_id
    msg.digest.list_id = list_id
    msg.digest.data.add().bitstring = list_id.to_bytes(4, byteorder='big')
    return msg


def packet_in_msg(payload=b'\x00'):
    msg = p4runtime_pb2.StreamMessageResponse()
    msg.packet.payload = payload
    return msg


def wait_for(predicate, timeout=2):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeRpcError(grpc.RpcError):
    def __init__(self, code=grpc.StatusCode.UNAVAILABLE, details='unavailable',
                 trailing_metadata=()):
        self._code = code
        self._details = details
        self._trailing_metadata = trailing_metadata

    def code(self):
        return self._code

    def details(self):
        return self._details

    def trailing_metadata(self):
        return self._trailing_metadata


class FakeChannel:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class FakeStream:
    """Server side of a ``StreamChannel``: records what the client sends and
    replays what the test pushes."""
    def __init__(self, requests):
        self.sent = []
        self.cancelled = False
        self._responses = queue.Queue()
        self._consumer = threading.Thread(daemon=True, target=self._consume, args=(requests,))
        self._consumer.start()

    def _consume(self, requests):
        for req in requests:
            self.sent.append(req)
        self._responses.put(None)

    def push(self, msg):
        self._responses.put(msg)

    def fail(self, error):
        self._responses.put(error)

    def cancel(self):
        self.cancelled = True
        self._responses.put(None)

    def __iter__(self):
        return self

    def __next__(self):
        msg = self._responses.get()
        if msg is None:
            raise StopIteration
        if isinstance(msg, Exception):
            raise msg
        return msg


class FakeStub:
    def __init__(self):
        self.capabilities_error = None
        self.write_error = None
        self.read_error = None
        self.read_batches = []
        self.writes = []
        self.reads = []
        self.timeouts = []
        self.pipeline_configs = []
        self.p4info = build_p4info()
        self.stream = None

    def Capabilities(self, req, timeout=None):
        if self.capabilities_error is not None:
            raise self.capabilities_error
        return p4runtime_pb2.CapabilitiesResponse(p4runtime_api_version='1.3.0')

    def Write(self, req, timeout=None):
        self.writes.append(req)
        self.timeouts.append(timeout)
        if self.write_error is not None:
            raise self.write_error
        return p4runtime_pb2.WriteResponse()

    def Read(self, req, timeout=None):
        self.reads.append(req)
        self.timeouts.append(timeout)

        def responses():
            for batch in self.read_batches:
                rep = p4runtime_pb2.ReadResponse()
                rep.entities.extend(batch)
                yield rep
            if self.read_error is not None:
                raise self.read_error
        return responses()

    def StreamChannel(self, requests):
        self.stream = FakeStream(requests)
        return self.stream

    def GetForwardingPipelineConfig(self, req, timeout=None):
        rep = p4runtime_pb2.GetForwardingPipelineConfigResponse()
        rep.config.p4info.CopyFrom(self.p4info)
        return rep

    def SetForwardingPipelineConfig(self, req, timeout=None):
        self.pipeline_configs.append(req)
        return p4runtime_pb2.SetForwardingPipelineConfigResponse()


class FakeClient:
    """Session client double for the control layer: no stream thread, the
    test feeds the incoming queue directly."""
    def __init__(self, context=None, device_id=0, election_id=(0, 1)):
        self.device_id = device_id
        self.election_id = election_id
        self.grpc_addr = 'fake:50051'
        self.timeout = None
        self.context = context
        self.p4info = None if context is None else context.p4info
        self.incoming = queue.Queue()
        self.outgoing = queue.Queue()
        self.writes = []
        self.reads = []
        self.read_responses = []
        self.write_error = None
        self.torn_down = False
        self.installed = []
        self._is_master = False
        self._lock = threading.Lock()

    def get_message_queues(self):
        return MessageQueues(incoming=self.incoming, outgoing=self.outgoing)

    def get_arbitration_data(self):
        return ArbitrationData(device_id=self.device_id, election_id=self.election_id)

    def is_master(self):
        with self._lock:
            return self._is_master

    def set_mastership_status(self, status):
        with self._lock:
            self._is_master = status

    def write_update(self, update, timeout=None):
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(update)

    def read_entities_sync(self, entities, timeout=None):
        self.reads.append(list(entities))
        if self.read_responses:
            return self.read_responses.pop(0)
        return []

    def set_fwd_pipe_config(self, p4info_path, bin_path):
        self.installed.append((p4info_path, bin_path))

    def tear_down(self):
        self.torn_down = True
        self.incoming.put(None)
