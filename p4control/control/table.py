from p4.v1 import p4runtime_pb2

from p4control.logger import log
from p4control.core.bytes_utils import EncodeError
from p4control.core.client import P4RuntimeReadException
from p4control.core.context import P4Type
from p4control.core.match import Match
from p4control.core.utils import UserError
from p4control.control.counter import DirectCounterData


class TableControl:
    """Writes entries of one P4 table from application data.

    The application describes entries in its own terms (e.g. a dictionary
    with an IP address, a port and a MAC address). A *transformer*
    registered with :py:meth:`register_transformer` turns that description
    into the match values and the action parameters of the entry:

    ::

        def ipv4_lpm_transform(data):
            match = [LpmMatch(ipv4Addr_to_bytes(data['ip']), 32)]
            params = [macAddr_to_bytes(data['mac']), int_to_bytes(data['port'], 2)]
            return match, params

    Match values must be given in the order of the match fields of the
    table, action parameters in the order of the action parameters.

    Args:
        control (SimpleControl): control of the device the table belongs to
        table_name (str)       : fully qualified name of the table
    """
    def __init__(self, control, table_name):
        self.control = control
        self.name = table_name
        self._info = control.context.lookup(P4Type.table, table_name)
        self.id = self._info.preamble.id
        self._transformer = None

    def register_transformer(self, transformer):
        """Sets the function used to build entries, replacing any previous one."""
        self._transformer = transformer

    def _get_action(self, action_name):
        for action in self.control.context.get_table_actions(self.name):
            if action.preamble.name == action_name:
                return action
        raise UserError("Action '{}' cannot be used by table '{}'".format(
            action_name, self.name))

    def _transform(self, data):
        if self._transformer is None:
            raise UserError("No transformer registered for table '{}'".format(self.name))
        try:
            match_values, params = self._transformer(data)
        except (KeyError, TypeError, ValueError) as e:
            raise EncodeError("Invalid data for table '{}': {!r}".format(self.name, e)) from e
        return list(match_values), list(params)

    def _match_entry(self, match_values, priority=0):
        match_fields = self._info.match_fields
        if len(match_values) != len(match_fields):
            raise EncodeError("table '{}' has {} match keys, {} given".format(
                self.name, len(match_fields), len(match_values)))
        entry = p4runtime_pb2.TableEntry()
        entry.table_id = self.id
        for field_info, value in zip(match_fields, match_values):
            if not isinstance(value, Match):
                raise EncodeError("match value for field '{}' must be a Match, not {}".format(
                    field_info.name, type(value).__name__))
            if value.kind.value != field_info.match_type:
                raise EncodeError("field '{}' does not accept {} matches".format(
                    field_info.name, value.kind.name))
            entry.match.append(value.field_match(field_info.id))
        if priority:
            entry.priority = priority
        return entry

    def build_entry(self, action_name, data, priority=0):
        """Builds the ``TableEntry`` for ``data`` without sending it.

        Raises:
            UserError: if ``action_name`` is not an action of the table.
            EncodeError: if ``data`` cannot be encoded.
        """
        action = self._get_action(action_name)
        match_values, params = self._transform(data)
        entry = self._match_entry(match_values, priority)
        if len(params) != len(action.params):
            raise EncodeError("action '{}' takes {} params, {} given".format(
                action_name, len(action.params), len(params)))
        entry.action.action.action_id = action.preamble.id
        for param_info, value in zip(action.params, params):
            if not isinstance(value, bytes):
                raise EncodeError("value of param '{}' must be bytes, not {}".format(
                    param_info.name, type(value).__name__))
            param = entry.action.action.params.add()
            param.param_id = param_info.id
            param.value = value
        return entry

    def _write(self, type_, entry):
        update = p4runtime_pb2.Update()
        update.type = type_
        update.entity.table_entry.CopyFrom(entry)
        self.control.client.write_update(update)

    def insert_entry(self, action_name, data, priority=0):
        log.debug("Inserting entry in table '{}'".format(self.name))
        self._write(p4runtime_pb2.Update.INSERT, self.build_entry(action_name, data, priority))

    def modify_entry(self, action_name, data, priority=0):
        log.debug("Modifying entry in table '{}'".format(self.name))
        self._write(p4runtime_pb2.Update.MODIFY, self.build_entry(action_name, data, priority))

    def delete_entry(self, data, priority=0):
        log.debug("Deleting entry from table '{}'".format(self.name))
        match_values, _ = self._transform(data)
        self._write(p4runtime_pb2.Update.DELETE, self._match_entry(match_values, priority))

    def read_entries(self):
        """Reads all the entries of the table.

        Returns:
            list: ``TableEntry`` Protobuf Messages.
        """
        entity = p4runtime_pb2.Entity()
        entity.table_entry.table_id = self.id
        return [e.table_entry for e in self.control.client.read_entities_sync([entity])]

    def read_direct_counter_value_on_entry(self, match_values, priority=0):
        """Reads the direct counter attached to the entry matching ``match_values``.

        Args:
            match_values (list): match values of the entry, as returned by the transformer
            priority (int)     : priority of the entry (ternary and range matches only)

        Returns:
            DirectCounterData: ``(packet_count, byte_count)``

        Raises:
            UserError: if no direct counter is attached to the table.
            P4RuntimeReadException: if the read fails or the device returns no entry.
        """
        if self.control.context.get_direct_counter_for_table(self.name) is None:
            raise UserError("table '{}' has no direct counter attached".format(self.name))
        entity = p4runtime_pb2.Entity()
        entity.direct_counter_entry.table_entry.CopyFrom(
            self._match_entry(list(match_values), priority))
        entities = self.control.client.read_entities_sync([entity])
        if not entities:
            raise P4RuntimeReadException(
                info="no direct counter entry returned for table '{}'".format(self.name))
        data = entities[0].direct_counter_entry.data
        return DirectCounterData(packet_count=data.packet_count, byte_count=data.byte_count)
