from collections import namedtuple

from p4.v1 import p4runtime_pb2

from p4control.logger import log
from p4control.core.client import P4RuntimeReadException
from p4control.core.context import P4Type
from p4control.core.utils import UserError


CounterData = namedtuple('CounterData', ['index', 'packet_count', 'byte_count'])
DirectCounterData = namedtuple('DirectCounterData', ['packet_count', 'byte_count'])


class CounterControl:
    """Reads and writes the cells of an indexed P4 counter.

    Args:
        control (SimpleControl): control of the device the counter belongs to
        counter_name (str)     : fully qualified name of the counter
    """
    def __init__(self, control, counter_name):
        self.control = control
        self.name = counter_name
        self._info = control.context.lookup(P4Type.counter, counter_name)
        self.id = self._info.preamble.id
        self.size = self._info.size

    def _check_index(self, index):
        if type(index) is not int or index < 0 or (self.size and index >= self.size):
            raise UserError("Index {} is out of range for counter '{}' of size {}".format(
                index, self.name, self.size))

    def _entity(self, index=None):
        entity = p4runtime_pb2.Entity()
        entity.counter_entry.counter_id = self.id
        if index is not None:
            entity.counter_entry.index.index = index
        return entity

    @staticmethod
    def _to_data(entity):
        entry = entity.counter_entry
        return CounterData(index=entry.index.index,
                           packet_count=entry.data.packet_count,
                           byte_count=entry.data.byte_count)

    def read_counter_value(self, index):
        """Reads one cell of the counter.

        Returns:
            CounterData: ``(index, packet_count, byte_count)``

        Raises:
            P4RuntimeReadException: if the read fails or the device returns no entry.
        """
        self._check_index(index)
        log.debug("Reading counter '{}' at index {}".format(self.name, index))
        entities = self.control.client.read_entities_sync([self._entity(index)])
        if not entities:
            raise P4RuntimeReadException(
                info="no entry returned for counter '{}' at index {}".format(self.name, index))
        return self._to_data(entities[0])

    def read_counter_values(self):
        """Reads all the cells of the counter (wildcard read)."""
        log.debug("Reading all cells of counter '{}'".format(self.name))
        return [self._to_data(e) for e in
                self.control.client.read_entities_sync([self._entity()])]

    def write_counter_value(self, index, packet_count=0, byte_count=0):
        """Overwrites one cell of the counter. With the default values the cell is reset."""
        self._check_index(index)
        log.debug("Writing counter '{}' at index {}".format(self.name, index))
        update = p4runtime_pb2.Update()
        update.type = p4runtime_pb2.Update.MODIFY
        update.entity.CopyFrom(self._entity(index))
        update.entity.counter_entry.data.packet_count = packet_count
        update.entity.counter_entry.data.byte_count = byte_count
        self.control.client.write_update(update)
