# Copyright 2019 Barefoot Networks, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

from collections import namedtuple
from functools import wraps
import queue
import threading

from google.rpc import status_pb2, code_pb2
import grpc

from p4.v1 import p4runtime_pb2
from p4.v1 import p4runtime_pb2_grpc

from p4control import INCOMING_QUEUE_SIZE, JOIN_TIMEOUT, POLL_INTERVAL
from p4control.logger import log
from p4control.core.context import Context, load_p4info
from p4control.core.utils import UserError, election_id_to_tuple


MessageQueues = namedtuple('MessageQueues', ['incoming', 'outgoing'])
ArbitrationData = namedtuple('ArbitrationData', ['device_id', 'election_id'])


class P4RuntimeErrorFormatException(Exception):
    def __init__(self, message):
        super().__init__(message)


# Used to iterate over the p4.Error messages in a gRPC error Status object
class P4RuntimeErrorIterator:
    def __init__(self, grpc_error):
        assert(grpc_error.code() == grpc.StatusCode.UNKNOWN)
        self.grpc_error = grpc_error

        error = None
        # The gRPC Python package does not have a convenient way to access the
        # binary details for the error: they are treated as trailing metadata.
        for meta in self.grpc_error.trailing_metadata() or ():
            if meta[0] == "grpc-status-details-bin":
                error = status_pb2.Status()
                error.ParseFromString(meta[1])
                break
        if error is None:
            raise P4RuntimeErrorFormatException("No binary details field")

        if len(error.details) == 0:
            raise P4RuntimeErrorFormatException(
                "Binary details field has empty Any details repeated field")
        self.errors = error.details
        self.idx = 0

    def __iter__(self):
        return self

    def __next__(self):
        while self.idx < len(self.errors):
            p4_error = p4runtime_pb2.Error()
            one_error_any = self.errors[self.idx]
            if not one_error_any.Unpack(p4_error):
                raise P4RuntimeErrorFormatException(
                    "Cannot convert Any message to p4.Error")
            if p4_error.canonical_code == code_pb2.OK:
                self.idx += 1
                continue
            v = self.idx, p4_error
            self.idx += 1
            return v
        raise StopIteration


class P4RuntimeConnectError(Exception):
    def __init__(self, grpc_addr, cause):
        super().__init__()
        self.grpc_addr = grpc_addr
        self.cause = cause

    def __str__(self):
        return "Cannot establish P4Runtime session with {}: {}".format(
            self.grpc_addr, self.cause)


class P4RuntimeException(Exception):
    def __init__(self, grpc_error):
        super().__init__()
        self.grpc_error = grpc_error

    def __str__(self):
        message = "P4Runtime RPC error ({}): {}".format(
            self.grpc_error.code().name, self.grpc_error.details())
        return message


# P4Runtime uses a 3-level message in case of an error during the processing of
# a write batch. If the device attached p4.Error details to the status we
# extract them (one for each update of the batch), otherwise only the gRPC
# status is reported.
class P4RuntimeWriteException(P4RuntimeException):
    def __init__(self, grpc_error):
        super().__init__(grpc_error)
        self.errors = []
        if grpc_error.code() != grpc.StatusCode.UNKNOWN:
            return
        try:
            for error_tuple in P4RuntimeErrorIterator(grpc_error):
                self.errors.append(error_tuple)
        except P4RuntimeErrorFormatException:
            self.errors = []

    def __str__(self):
        if not self.errors:
            return "Error during Write: " + super().__str__()
        message = "Error(s) during Write:\n"
        for idx, p4_error in self.errors:
            code_name = code_pb2.Code.Name(p4_error.canonical_code)
            message += "\t* At index {}: {}, '{}'\n".format(
                idx, code_name, p4_error.message)
        return message


class P4RuntimeReadException(P4RuntimeException):
    def __init__(self, grpc_error=None, info=""):
        super().__init__(grpc_error)
        self.info = info

    def __str__(self):
        if self.grpc_error is None:
            return "Error during Read: {}".format(self.info)
        return "Error during Read: " + super().__str__()


def parse_p4runtime_write_error(f):
    @wraps(f)
    def handle(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except grpc.RpcError as e:
            raise P4RuntimeWriteException(e) from None
    return handle


def parse_p4runtime_error(f):
    @wraps(f)
    def handle(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except grpc.RpcError as e:
            raise P4RuntimeException(e) from None
    return handle


class P4RuntimeClient:
    """Session with the P4Runtime server of one device.

    Creating the client connects to the server: the *Capabilities* RPC is
    used as a handshake and the ``StreamChannel`` is opened. Messages
    received on the stream are pushed, in arrival order, on the incoming
    queue by a daemon thread; ``None`` is pushed when the stream ends.
    Anything put on the outgoing queue is sent on the stream.

    The client does not perform arbitration and does not check mastership
    before writing: see :py:class:`p4control.control.arbitration.ArbitrationManager`.

    Args:
        device_id (int)        : P4Runtime device id
        grpc_addr (str)        : ``<ip>:<port>`` of the gRPC server
        election_id (tuple)    : ``(high, low)`` election id of this controller
        p4info (P4Info or str) : P4Info message or path to a text P4Info file used
                                 to build the :py:class:`p4control.core.context.Context`
        timeout (float)        : default deadline, in seconds, of every unary RPC

    Raises:
        P4RuntimeConnectError: if the server cannot be reached or the handshake fails.
    """
    def __init__(self, device_id, grpc_addr, election_id, p4info=None, timeout=None):
        self.device_id = device_id
        self.grpc_addr = grpc_addr
        self.election_id = election_id_to_tuple(election_id)
        self.timeout = timeout
        self.p4info = None
        self.context = None
        self.stream = None
        self.stream_out_q = None
        self._closing = False
        self._connected = False
        self._is_master = False
        self._master_lock = threading.Lock()

        log.debug("Connecting to device {} at {}".format(device_id, grpc_addr))
        self.channel = grpc.insecure_channel(grpc_addr)
        self.stub = p4runtime_pb2_grpc.P4RuntimeStub(self.channel)
        try:
            version = self.api_version()
        except P4RuntimeException as e:
            log.critical("Error in capabilities RPC: {}".format(e))
            self.channel.close()
            raise P4RuntimeConnectError(grpc_addr, e) from None
        log.info("P4Runtime server version is {}".format(version))

        if p4info is not None:
            try:
                self.load_p4info(p4info)
            except (UserError, OSError):
                self.channel.close()
                raise
        self.set_up_stream()

    def load_p4info(self, p4info):
        if isinstance(p4info, str):
            p4info = load_p4info(p4info)
        self.p4info = p4info
        self.context = Context.load(p4info)

    def set_up_stream(self):
        self.stream_out_q = queue.Queue()
        self.stream_in_q = queue.Queue(maxsize=INCOMING_QUEUE_SIZE)

        def stream_req_iterator():
            while True:
                p = self.stream_out_q.get()
                if p is None:
                    break
                log.debug_stream("Sending {}".format(p.WhichOneof('update')))
                yield p

        def stream_recv_wrapper(stream):
            @parse_p4runtime_error
            def stream_recv():
                for p in stream:
                    log.debug_stream("Received {}".format(p.WhichOneof('update')))
                    if not self._put_incoming(p):
                        break
            try:
                stream_recv()
            except P4RuntimeException as e:
                if self._closing:
                    log.debug("StreamChannel closed")
                else:
                    log.critical("StreamChannel error, closing stream")
                    log.critical(e)
            finally:
                self._connected = False
                if not self._put_incoming(None):
                    try:
                        self.stream_in_q.put_nowait(None)
                    except queue.Full:
                        pass

        self.stream = self.stub.StreamChannel(stream_req_iterator())
        self._connected = True
        self.stream_recv_thread = threading.Thread(daemon=True,
                                                   name='stream-recv-{}'.format(self.device_id),
                                                   target=stream_recv_wrapper,
                                                   args=(self.stream,))
        self.stream_recv_thread.start()

    def _put_incoming(self, item):
        """Puts ``item`` on the incoming queue unless the session is closed
        while the queue is full."""
        while not self._closing:
            try:
                self.stream_in_q.put(item, timeout=POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def tear_down(self):
        self._closing = True
        if self.stream_out_q:
            log.debug("Cleaning up stream")
            self.stream_out_q.put(None)
            self.stream.cancel()
            self.stream_recv_thread.join(JOIN_TIMEOUT)
        self._connected = False
        self.channel.close()

    def is_connected(self):
        return self._connected

    @parse_p4runtime_error
    def api_version(self):
        req = p4runtime_pb2.CapabilitiesRequest()
        rep = self.stub.Capabilities(req, timeout=self.timeout)
        return rep.p4runtime_api_version

    @parse_p4runtime_error
    def get_p4info(self):
        log.debug("Retrieving P4Info file")
        req = p4runtime_pb2.GetForwardingPipelineConfigRequest()
        req.device_id = self.device_id
        req.response_type = p4runtime_pb2.GetForwardingPipelineConfigRequest.P4INFO_AND_COOKIE
        rep = self.stub.GetForwardingPipelineConfig(req, timeout=self.timeout)
        return rep.config.p4info

    def set_fwd_pipe_config(self, p4info_path, bin_path):
        """Installs a P4 program on the device (``VERIFY_AND_COMMIT``) and
        loads its P4Info in the client context."""
        log.debug("Setting forwarding pipeline config")
        p4info = load_p4info(p4info_path)
        req = p4runtime_pb2.SetForwardingPipelineConfigRequest()
        req.device_id = self.device_id
        election_id = req.election_id
        election_id.high = self.election_id[0]
        election_id.low = self.election_id[1]
        req.action = p4runtime_pb2.SetForwardingPipelineConfigRequest.VERIFY_AND_COMMIT
        req.config.p4info.CopyFrom(p4info)
        with open(bin_path, 'rb') as f:
            req.config.p4_device_config = f.read()
        rep = self._set_fwd_pipe_config(req)
        self.load_p4info(p4info)
        return rep

    @parse_p4runtime_error
    def _set_fwd_pipe_config(self, req):
        return self.stub.SetForwardingPipelineConfig(req, timeout=self.timeout)

    def _deadline(self, timeout):
        return self.timeout if timeout is None else timeout

    def _stamp(self, req):
        req.device_id = self.device_id
        election_id = req.election_id
        election_id.high = self.election_id[0]
        election_id.low = self.election_id[1]

    @parse_p4runtime_write_error
    def write_update(self, update, timeout=None):
        """Sends one ``Update`` in its own ``WriteRequest``.

        Raises:
            P4RuntimeWriteException: if the device rejects the update or the RPC fails.
        """
        req = p4runtime_pb2.WriteRequest()
        self._stamp(req)
        req.updates.extend([update])
        return self.stub.Write(req, timeout=self._deadline(timeout))

    def read_entities(self, entities, timeout=None):
        """Issues a *Read* RPC and yields the entities as they arrive.

        The generator ends when the server closes the response stream. If the
        stream fails instead, :py:class:`P4RuntimeReadException` is raised
        after the entities received so far have been yielded.

        Args:
            entities (list): ``Entity`` Protobuf Messages used as read filters
            timeout (float): deadline of the whole read, in seconds
        """
        req = p4runtime_pb2.ReadRequest()
        req.device_id = self.device_id
        req.entities.extend(entities)
        try:
            for rep in self.stub.Read(req, timeout=self._deadline(timeout)):
                for entity in rep.entities:
                    yield entity
        except grpc.RpcError as e:
            raise P4RuntimeReadException(e) from None

    def read_entities_sync(self, entities, timeout=None):
        """Same as :py:meth:`read_entities` but returns all the entities in a list."""
        result = []
        for entity in self.read_entities(entities, timeout):
            result.append(entity)
        return result

    ## Getters and setters
    def get_message_queues(self):
        return MessageQueues(incoming=self.stream_in_q, outgoing=self.stream_out_q)

    def get_arbitration_data(self):
        return ArbitrationData(device_id=self.device_id, election_id=self.election_id)

    def get_stream(self):
        return self.stream

    def is_master(self):
        with self._master_lock:
            return self._is_master

    def set_mastership_status(self, status):
        with self._master_lock:
            self._is_master = status
