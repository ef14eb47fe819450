"""Control of one P4Runtime device.

:py:class:`SimpleControl` ties together the pieces a controller needs to drive
a device: the session (:py:class:`p4control.core.client.P4RuntimeClient`),
the message router that splits the ``StreamChannel`` in one queue per message
kind, the :py:class:`p4control.control.arbitration.ArbitrationManager` and the
table and counter controls.

Example:
    ::

        control = new_control('127.0.0.1:50051', 0, (0, 1),
                              p4info_path='build/main.p4info.txt',
                              bin_path='build/main.json')
        control.run()
        table = control.table('ingress.ipv4_lpm')
        table.register_transformer(ipv4_lpm_transform)
        table.insert_entry('ingress.ipv4_forward', {'ip': '10.0.0.10', 'port': 1,
                                                    'mac': '00:04:00:00:00:00'})
"""

import enum
import queue
import threading

from p4.v1 import p4runtime_pb2

from p4control import DIGEST_QUEUE_SIZE, ARBITRATION_QUEUE_SIZE, JOIN_TIMEOUT, POLL_INTERVAL
from p4control.logger import log
from p4control.config import ControlConfig
from p4control.core.client import P4RuntimeClient, P4RuntimeException
from p4control.core.context import P4Type
from p4control.core.utils import UserError
from p4control.control.arbitration import ArbitrationManager
from p4control.control.table import TableControl
from p4control.control.counter import CounterControl


@enum.unique
class MessageKind(enum.Enum):
    """Kinds of messages the device sends on the ``StreamChannel``."""
    arbitration = 'arbitration'
    digest = 'digest'
    error = 'error'
    other = 'other'

    @classmethod
    def of(cls, msg):
        tag = msg.WhichOneof('update')
        if tag in ('arbitration', 'digest', 'error'):
            return cls(tag)
        return cls.other


class SimpleControl:
    """Control over one device session.

    Args:
        client                 : connected :py:class:`p4control.core.client.P4RuntimeClient`
        digest_queue_size      : capacity of :py:attr:`digest_channel`
        arbitration_queue_size : capacity of :py:attr:`arbitration_channel`
                                 (``0`` means unbounded)

    Attributes:
        digest_channel (queue.Queue)      : ``DigestList`` messages in arrival order
        arbitration_channel (queue.Queue) : ``MasterArbitrationUpdate`` messages in arrival order
        arbitration (ArbitrationManager)  : mastership state of the session
    """
    def __init__(self, client, digest_queue_size=DIGEST_QUEUE_SIZE,
                 arbitration_queue_size=ARBITRATION_QUEUE_SIZE):
        self.client = client
        self._digest_queue_size = digest_queue_size
        self._arbitration_queue_size = arbitration_queue_size
        self._tables = {}
        self._counters = {}
        self._router = None
        self._set_up_channels()

    def _set_up_channels(self):
        self.digest_channel = queue.Queue(maxsize=self._digest_queue_size)
        self.arbitration_channel = queue.Queue(maxsize=self._arbitration_queue_size)
        self.arbitration = ArbitrationManager(self.client, self.arbitration_channel)
        self._stop = threading.Event()

    @property
    def context(self):
        if self.client.context is None:
            raise UserError("No P4Info loaded for device {}".format(self.client.device_id))
        return self.client.context

    def run(self):
        """Starts the message router and the arbitration listener, then asks
        for mastership."""
        self.start_message_router()
        self.arbitration.start()
        self.arbitration.perform_arbitration()

    def _forward(self, channel, item):
        while not self._stop.is_set():
            try:
                channel.put(item, timeout=POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def start_message_router(self):
        incoming = self.client.get_message_queues().incoming

        def route():
            while not self._stop.is_set():
                try:
                    msg = incoming.get(timeout=POLL_INTERVAL)
                except queue.Empty:
                    continue
                if msg is None:
                    log.warning("StreamChannel of device {} closed".format(self.client.device_id))
                    self.arbitration.reset()
                    self._forward(self.arbitration_channel, None)
                    self._forward(self.digest_channel, None)
                    break
                kind = MessageKind.of(msg)
                if kind is MessageKind.arbitration:
                    self._forward(self.arbitration_channel, msg.arbitration)
                elif kind is MessageKind.digest:
                    self._forward(self.digest_channel, msg.digest)
                elif kind is MessageKind.error:
                    log.error("Device {} reported stream error: {}".format(
                        self.client.device_id, msg.error.message))
                else:
                    log.warning("Message has unknown type '{}'".format(msg.WhichOneof('update')))
            log.debug("Message router stopped")

        self._router = threading.Thread(daemon=True,
                                        name='router-{}'.format(self.client.device_id),
                                        target=route)
        self._router.start()

    def get_digest(self, timeout=None):
        """Retrieves a ``DigestList`` and sends back the acknowledgment.

        Args:
            timeout (float): time to wait for a digest, if **None** wait indefinitely

        Returns:
            ``DigestList`` Protobuf Message, or **None** if the timeout expired
            or the stream was closed.
        """
        try:
            dig_list = self.digest_channel.get(timeout=timeout)
        except queue.Empty:
            return None
        if dig_list is None:
            return None
        req = p4runtime_pb2.StreamMessageRequest()
        ack = req.digest_ack
        ack.digest_id = dig_list.digest_id
        ack.list_id = dig_list.list_id
        self.client.get_message_queues().outgoing.put(req)
        return dig_list

    def table(self, table_name):
        if table_name not in self._tables:
            self.context.lookup(P4Type.table, table_name)
            self._tables[table_name] = TableControl(self, table_name)
        return self._tables[table_name]

    def counter(self, counter_name):
        if counter_name not in self._counters:
            self.context.lookup(P4Type.counter, counter_name)
            self._counters[counter_name] = CounterControl(self, counter_name)
        return self._counters[counter_name]

    def install_program(self, p4info_path, bin_path):
        self.client.set_fwd_pipe_config(p4info_path, bin_path)
        self._tables.clear()
        self._counters.clear()

    def is_master(self):
        return self.arbitration.is_master()

    def set_mastership_status(self, status):
        self.arbitration.set_mastership_status(status)

    def _stop_tasks(self):
        self._stop.set()
        self.client.tear_down()
        if self._router is not None:
            self._router.join(JOIN_TIMEOUT)
            self._router = None
        self.arbitration.stop()
        self.arbitration.reset()

    def reconnect(self):
        """Opens a new session with the device and asks for mastership again.

        The P4Info context is kept. The channels are replaced, so consumers
        must fetch :py:attr:`digest_channel` again.
        """
        old = self.client
        log.info("Reconnecting to device {} at {}".format(old.device_id, old.grpc_addr))
        self._stop_tasks()
        client = P4RuntimeClient(old.device_id, old.grpc_addr, old.election_id,
                                 timeout=old.timeout)
        client.p4info = old.p4info
        client.context = old.context
        self.client = client
        self._set_up_channels()
        self.run()

    def teardown(self):
        """Tears down the session and stops the router and the listener."""
        log.debug("Tearing down control of device {}".format(self.client.device_id))
        self._stop_tasks()


def new_control(grpc_addr, device_id, election_id, p4info_path=None, bin_path=None,
                timeout=None, digest_queue_size=DIGEST_QUEUE_SIZE,
                arbitration_queue_size=ARBITRATION_QUEUE_SIZE):
    """Connects to a device and returns a :py:class:`SimpleControl` for it.

    If both ``p4info_path`` and ``bin_path`` are given the program is installed
    on the device. If only ``p4info_path`` is given it is used as the
    description of the program already running. Otherwise the P4Info is
    retrieved from the device.

    Raises:
        P4RuntimeConnectError: if the session cannot be established.
        P4RuntimeException: if the P4Info cannot be installed or retrieved.
    """
    log.debug("Creating P4Runtime client")
    client = P4RuntimeClient(device_id, grpc_addr, election_id, timeout=timeout)
    try:
        if p4info_path is not None and bin_path is not None:
            client.set_fwd_pipe_config(p4info_path, bin_path)
            log.info("Installed P4 program on device {}".format(device_id))
        elif p4info_path is not None:
            client.load_p4info(p4info_path)
        else:
            client.load_p4info(client.get_p4info())
    except (P4RuntimeException, UserError, OSError):
        client.tear_down()
        raise
    return SimpleControl(client, digest_queue_size, arbitration_queue_size)


def from_config(config):
    """Same as :py:func:`new_control` with the parameters of a
    :py:class:`p4control.config.ControlConfig`."""
    if not isinstance(config, ControlConfig):
        raise ValueError("Argument 'config' must be a ControlConfig namedtuple")
    return new_control(config.grpc_addr, config.device_id, config.election_id,
                       p4info_path=config.p4info, bin_path=config.bin,
                       timeout=config.timeout,
                       digest_queue_size=config.digest_queue_size,
                       arbitration_queue_size=config.arbitration_queue_size)
