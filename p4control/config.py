from collections import namedtuple
import json

from p4control import (DEFAULT_GRPC_ADDR, DEFAULT_DEVICE_ID, DEFAULT_ELECTION_ID,
                       DIGEST_QUEUE_SIZE, ARBITRATION_QUEUE_SIZE)
from p4control.core.utils import UserError, election_id_to_tuple


ControlConfig = namedtuple('ControlConfig', ['grpc_addr',
                                             'device_id',
                                             'election_id',
                                             'p4info',
                                             'bin',
                                             'timeout',
                                             'digest_queue_size',
                                             'arbitration_queue_size'])
ControlConfig.__new__.__defaults__ = (DEFAULT_GRPC_ADDR,
                                      DEFAULT_DEVICE_ID,
                                      DEFAULT_ELECTION_ID,
                                      None,
                                      None,
                                      None,
                                      DIGEST_QUEUE_SIZE,
                                      ARBITRATION_QUEUE_SIZE)


def load_conf(conf_file):
    with open(conf_file, 'r') as f:
        config = json.load(f)
    return config


def parse_conf(conf):
    """Builds a :py:class:`ControlConfig` from a dictionary.

    Example:
        ::

            {
                "grpc_addr": "127.0.0.1:50051",
                "device_id": 0,
                "election_id": [0, 1],
                "p4info": "build/main.p4info.txt",
                "bin": "build/main.json"
            }

        Keys that are not set take the default values of :py:class:`ControlConfig`.
    """
    unknown = set(conf) - set(ControlConfig._fields)
    if unknown:
        raise UserError("Unknown configuration keys: {}".format(', '.join(sorted(unknown))))
    config = ControlConfig(**conf)
    return config._replace(election_id=election_id_to_tuple(config.election_id))


def load_control_config(conf_file):
    return parse_conf(load_conf(conf_file))
