import enum
import queue
import threading

from p4.v1 import p4runtime_pb2

from p4control import JOIN_TIMEOUT
from p4control.logger import log


@enum.unique
class MastershipState(enum.Enum):
    unarbitrated = 0
    backup = 1
    primary = 2


class ArbitrationManager:
    """Primary/backup election for one device session.

    The manager sends arbitration requests on the outgoing stream queue and
    consumes the arbitration updates the message router forwards to
    ``channel``. The device reports the election id of the current primary:
    the controller is primary if and only if it equals its own election id.
    Only the last update counts.

    Args:
        client  : :py:class:`p4control.core.client.P4RuntimeClient` of the session
        channel : :py:class:`queue.Queue` of arbitration updates (``None`` stops the listener)
    """
    def __init__(self, client, channel):
        self.client = client
        self.channel = channel
        self._state = MastershipState.unarbitrated
        self._lock = threading.Lock()
        self._listener = None

    @property
    def state(self):
        with self._lock:
            return self._state

    def perform_arbitration(self):
        data = self.client.get_arbitration_data()
        req = p4runtime_pb2.StreamMessageRequest()
        arbitration = req.arbitration
        arbitration.device_id = data.device_id
        arbitration.election_id.high = data.election_id[0]
        arbitration.election_id.low = data.election_id[1]
        log.debug("Requesting mastership of device {} with election id {}".format(
            data.device_id, data.election_id))
        self.client.get_message_queues().outgoing.put(req)

    def handle_update(self, arbitration):
        """Applies a ``MasterArbitrationUpdate`` received from the device."""
        own = self.client.get_arbitration_data().election_id
        elected = (arbitration.election_id.high, arbitration.election_id.low)
        with self._lock:
            if elected == own:
                self._state = MastershipState.primary
            else:
                self._state = MastershipState.backup
            state = self._state
            self.client.set_mastership_status(state is MastershipState.primary)
        log.info("Client is '{}' for device {} (elected id {})".format(
            state.name, arbitration.device_id, elected))

    def reset(self):
        with self._lock:
            self._state = MastershipState.unarbitrated
            self.client.set_mastership_status(False)

    def is_master(self):
        return self.client.is_master()

    def set_mastership_status(self, status):
        with self._lock:
            self._state = MastershipState.primary if status else MastershipState.backup
            self.client.set_mastership_status(status)

    def start(self):
        def listen():
            while True:
                update = self.channel.get()
                if update is None:
                    break
                self.handle_update(update)
            log.debug("Arbitration listener stopped")

        self._listener = threading.Thread(daemon=True,
                                          name='arbitration-{}'.format(self.client.device_id),
                                          target=listen)
        self._listener.start()

    def stop(self):
        if self._listener is not None:
            if self._listener.is_alive():
                # Wakes up the listener if the router did not forward the sentinel.
                try:
                    self.channel.put(None, timeout=JOIN_TIMEOUT)
                except queue.Full:
                    log.warning("Arbitration listener of device {} is not responding".format(
                        self.client.device_id))
            self._listener.join(JOIN_TIMEOUT)
            self._listener = None
