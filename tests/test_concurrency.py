import random
import threading
from concurrent.futures import ThreadPoolExecutor

from tests.conftest import RecordingOutbox

ROOMS = ["R1", "R2", "R3"]
WORKERS = 8
CLIENTS_PER_WORKER = 25
STEPS = 40


def test_concurrent_join_leave_disconnect_keeps_state_consistent(router, directory, registry):
    start = threading.Barrier(WORKERS)
    closed = []
    closed_lock = threading.Lock()
    live = []
    live_lock = threading.Lock()

    def worker(seed):
        rng = random.Random(seed)
        clients = []
        for _ in range(CLIENTS_PER_WORKER):
            outbox = RecordingOutbox()
            clients.append((router.connect(outbox), outbox))
        start.wait()

        for _ in range(STEPS):
            connection_id, _ = rng.choice(clients)
            action = rng.random()
            if action < 0.5:
                router.handle_raw(connection_id, f'{{"type": "join-room", "roomCode": "{rng.choice(ROOMS)}", "username": "u{seed}"}}')
            elif action < 0.7:
                router.handle_raw(connection_id, '{"type": "send-message", "message": "x"}')
            else:
                router.handle_raw(connection_id, '{"type": "leave-room"}')

        for connection_id, outbox in clients:
            if rng.random() < 0.5:
                router.disconnect(connection_id)
                with closed_lock:
                    closed.append((connection_id, outbox, len(outbox.messages)))
            else:
                with live_lock:
                    live.append(connection_id)

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        list(pool.map(worker, range(WORKERS)))

    # another round of traffic after the disconnects
    for connection_id in live:
        router.handle_raw(connection_id, '{"type": "send-message", "message": "after"}')

    for room_code in directory.room_codes():
        assert directory.members(room_code), f"empty room {room_code} left behind"

    for connection_id in live:
        connection = registry.lookup(connection_id)
        containing = [r for r in directory.room_codes() if connection in directory.members(r)]
        if connection.room_code:
            assert containing == [connection.room_code]
        else:
            assert containing == []

    for connection_id, outbox, count in closed:
        assert registry.lookup(connection_id) is None
        assert len(outbox.messages) == count
        assert all(connection_id not in [c.connection_id for c in directory.members(r)] for r in directory.room_codes())

    assert len(registry) == len(live)
