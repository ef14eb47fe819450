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

class UserError(Exception):
    def __init__(self, info=""):
        self.info = info

    def __str__(self):
        return self.info

    def _render_traceback_(self):
        return [str(self)]


class InvalidP4InfoError(UserError):
    def __str__(self):
        return "Invalid P4Info message: {}".format(self.info)


class P4InfoObjectNotFound(UserError):
    def __init__(self, obj_type, name):
        self.obj_type = obj_type
        self.name = name

    def __str__(self):
        return "No {} named '{}' in P4Info".format(self.obj_type.pretty_name, self.name)


def election_id_to_tuple(election_id):
    """Normalizes an election id to a ``(high, low)`` tuple.

    Args:
        election_id (int, tuple or list): a 128 bit integer or its two 64 bit halves

    Returns:
        tuple: ``(high, low)``
    """
    if isinstance(election_id, int):
        if election_id < 0 or election_id >= (1 << 128):
            raise UserError("Election id {} does not fit in 128 bits".format(election_id))
        return election_id >> 64, election_id & ((1 << 64) - 1)
    high, low = election_id
    return int(high), int(low)
