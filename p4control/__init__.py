"""Client-side control plane for P4Runtime devices."""

DEFAULT_GRPC_ADDR = '127.0.0.1:50051'
DEFAULT_DEVICE_ID = 0
DEFAULT_ELECTION_ID = (0, 1)

# Capacity of the queue the stream receive thread fills.
INCOMING_QUEUE_SIZE = 20
# Capacities of the channels filled by the message router.
DIGEST_QUEUE_SIZE = 10
ARBITRATION_QUEUE_SIZE = 1

# Time given to the stream threads to exit on teardown.
JOIN_TIMEOUT = 5
# Interval at which threads blocked on a queue check for teardown.
POLL_INTERVAL = 0.1
