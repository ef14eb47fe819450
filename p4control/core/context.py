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

import enum
from functools import partialmethod

import google.protobuf.text_format
from p4.config.v1 import p4info_pb2

from p4control.logger import log
from p4control.core.utils import InvalidP4InfoError, P4InfoObjectNotFound


@enum.unique
class P4Type(enum.Enum):
    table = 1
    action = 2
    action_profile = 3
    counter = 4
    direct_counter = 5
    meter = 6
    direct_meter = 7
    digest = 8


P4Type.table.p4info_name = "tables"
P4Type.action.p4info_name = "actions"
P4Type.action_profile.p4info_name = "action_profiles"
P4Type.counter.p4info_name = "counters"
P4Type.direct_counter.p4info_name = "direct_counters"
P4Type.meter.p4info_name = "meters"
P4Type.direct_meter.p4info_name = "direct_meters"
P4Type.digest.p4info_name = "digests"


for obj_type in P4Type:
    obj_type.pretty_name = obj_type.name.replace('_', ' ')
    obj_type.pretty_names = obj_type.pretty_name + 's'


@enum.unique
class MatchKind(enum.Enum):
    exact = p4info_pb2.MatchField.EXACT
    lpm = p4info_pb2.MatchField.LPM
    ternary = p4info_pb2.MatchField.TERNARY
    range = p4info_pb2.MatchField.RANGE


def load_p4info(p4info_path):
    """Parses a P4Info file in protobuf text format.

    Args:
        p4info_path (str): path to the P4Info file

    Returns:
        ``P4Info`` Protobuf Message.

    Raises:
        InvalidP4InfoError: if the file is not a valid text P4Info.
    """
    p4info = p4info_pb2.P4Info()
    with open(p4info_path, 'r') as f:
        try:
            google.protobuf.text_format.Merge(f.read(), p4info)
        except google.protobuf.text_format.ParseError as e:
            raise InvalidP4InfoError("cannot parse '{}': {}".format(p4info_path, e)) from None
    return p4info


class Context:
    """Name-indexed registry of the P4 objects a device exposes.

    The registry is filled once from a ``P4Info`` message and is read-only
    afterwards, so it can be shared between threads without locking.
    Objects are looked up by their fully qualified name (e.g.
    ``ingress.ipv4_lpm``).
    """
    def __init__(self):
        self.p4info = None
        self.p4info_obj_map_by_id = {}
        self.p4info_objs_by_type = {obj_type: {} for obj_type in P4Type}

    @classmethod
    def load(cls, p4info):
        context = cls()
        context.set_p4info(p4info)
        return context

    def set_p4info(self, p4info):
        if self.p4info is not None:
            raise InvalidP4InfoError("context has already been loaded")
        self.p4info = p4info
        self._import_p4info_names()
        self._check_references()
        log.debug("Loaded P4Info with {} tables, {} actions and {} counters".format(
            len(self.p4info_objs_by_type[P4Type.table]),
            len(self.p4info_objs_by_type[P4Type.action]),
            len(self.p4info_objs_by_type[P4Type.counter]) +
            len(self.p4info_objs_by_type[P4Type.direct_counter])))

    def lookup(self, obj_type, name):
        try:
            return self.p4info_objs_by_type[obj_type][name]
        except KeyError:
            raise P4InfoObjectNotFound(obj_type, name) from None

    def get_obj(self, obj_type, name):
        return self.p4info_objs_by_type[obj_type].get(name, None)

    def get_obj_id(self, obj_type, name):
        obj = self.get_obj(obj_type, name)
        if obj is None:
            return None
        return obj.preamble.id

    def get_param(self, action_name, name):
        a = self.get_obj(P4Type.action, action_name)
        if a is None:
            return None
        for p in a.params:
            if p.name == name:
                return p

    def get_param_len(self, action_name):
        a = self.get_obj(P4Type.action, action_name)
        if a is None:
            return None
        return len(a.params)

    def get_mf(self, table_name, name):
        t = self.get_obj(P4Type.table, table_name)
        if t is None:
            return None
        for mf in t.match_fields:
            if mf.name == name:
                return mf

    def get_mf_len(self, table_name):
        t = self.get_obj(P4Type.table, table_name)
        if t is None:
            return None
        return len(t.match_fields)

    def get_objs(self, obj_type):
        m = self.p4info_objs_by_type[obj_type]
        for name, obj in m.items():
            yield name, obj

    def get_name_from_id(self, id_):
        return self.p4info_obj_map_by_id[id_].preamble.name

    def get_obj_by_id(self, id_):
        return self.p4info_obj_map_by_id[id_]

    def get_table_actions(self, table_name):
        """Returns the action definitions a table may use, in P4Info order."""
        table = self.lookup(P4Type.table, table_name)
        return [self.p4info_obj_map_by_id[ref.id] for ref in table.action_refs]

    def get_direct_counter_for_table(self, table_name):
        table = self.lookup(P4Type.table, table_name)
        for _, counter in self.get_objs(P4Type.direct_counter):
            if counter.direct_table_id == table.preamble.id:
                return counter
        return None

    def _import_p4info_names(self):
        for obj_type in P4Type:
            for obj in getattr(self.p4info, obj_type.p4info_name):
                pre = obj.preamble
                if pre.name in self.p4info_objs_by_type[obj_type]:
                    raise InvalidP4InfoError("duplicate {} name '{}'".format(
                        obj_type.pretty_name, pre.name))
                if pre.id in self.p4info_obj_map_by_id:
                    raise InvalidP4InfoError("duplicate id {} for '{}'".format(pre.id, pre.name))
                self.p4info_obj_map_by_id[pre.id] = obj
                self.p4info_objs_by_type[obj_type][pre.name] = obj

    def _check_references(self):
        actions = self.p4info_objs_by_type[P4Type.action]
        action_ids = {a.preamble.id for a in actions.values()}
        for name, table in self.p4info_objs_by_type[P4Type.table].items():
            for ref in table.action_refs:
                if ref.id not in action_ids:
                    raise InvalidP4InfoError(
                        "table '{}' references undefined action id {}".format(name, ref.id))
        tables = self.p4info_objs_by_type[P4Type.table]
        table_ids = {t.preamble.id for t in tables.values()}
        for obj_type in (P4Type.direct_counter, P4Type.direct_meter):
            for name, obj in self.p4info_objs_by_type[obj_type].items():
                if obj.direct_table_id not in table_ids:
                    raise InvalidP4InfoError(
                        "direct_table_id {} of {} '{}' is not a valid table id".format(
                            obj.direct_table_id, obj_type.pretty_name, name))


# Add p4info object and object id "getters" for each object type; these are just
# wrappers around Context.get_obj and Context.get_obj_id.
# For example: get_table(x) and get_table_id(x) respectively call
# get_obj(P4Type.table, x) and get_obj_id(P4Type.table, x)
for obj_type in P4Type:
    name = "_".join(["get", obj_type.name])
    setattr(Context, name, partialmethod(
        Context.get_obj, obj_type))
    name = "_".join(["get", obj_type.name, "id"])
    setattr(Context, name, partialmethod(
        Context.get_obj_id, obj_type))

for obj_type in P4Type:
    name = "_".join(["get", obj_type.p4info_name])
    setattr(Context, name, partialmethod(Context.get_objs, obj_type))
