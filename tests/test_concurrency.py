"""
Concurrency tests.

Each operation is a serialized unit: concurrent callers for the same
correlation id or the same user observe exactly one success.
"""

import threading
import unittest

from sealedkyc import (
    CallbackVerifier,
    ErrorCode,
    EventKind,
    IntegrityError,
    LocalDecryptionOracle,
    ManualClock,
    SealedKYCError,
    SealedKYCService,
)

THREADS = 8


class GatedOracle(LocalDecryptionOracle):
    """Holds every verify call at a barrier once one is installed."""

    barrier = None

    def verify(self, correlation_id, cleartexts, proof):
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        return super().verify(correlation_id, cleartexts, proof)


def run_concurrently(target, count):
    """Run target(index) on `count` threads released together; return (results, errors)."""
    start = threading.Barrier(count)
    results, errors = [], []
    lock = threading.Lock()

    def worker(index):
        start.wait(timeout=5)
        try:
            value = target(index)
        except SealedKYCError as e:
            with lock:
                errors.append(e)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors


class TestConcurrentCallbacks(unittest.TestCase):

    def setUp(self):
        self.oracle = GatedOracle()
        self.service = SealedKYCService(owner="owner", oracle=self.oracle, clock=ManualClock(1000))
        self.service.add_provider("owner", "p1")
        self.service.submit("p1", "alice", self.oracle.encrypt(25), self.oracle.encrypt(1))
        self.cid = self.service.request_verification("p1", 1, "alice")
        self.cleartexts, self.proof = self.oracle.respond(self.cid)

    def _assert_single_disclosure(self, results, errors, callers):
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].value, 25)
        self.assertEqual(len(errors), callers - 1)
        for e in errors:
            self.assertIsInstance(e, IntegrityError)
            self.assertEqual(e.code, ErrorCode.REPLAY_DETECTED)
        self.assertEqual(self.service.get_decryption_context(self.cid).disclosed_value, 25)

    def test_service_callback_resolves_once(self):
        results, errors = run_concurrently(
            lambda _: self.service.on_oracle_response(self.cid, self.cleartexts, self.proof),
            THREADS,
        )
        self._assert_single_disclosure(results, errors, THREADS)
        self.assertEqual(len(self.service.events.query(kind=EventKind.DECRYPTION_COMPLETED)), 1)

    def test_verifier_used_directly_resolves_once(self):
        verifier = CallbackVerifier(self.service.coordinator)
        # Both callers pass the replay check before either finalizes
        self.oracle.barrier = threading.Barrier(2)

        results, errors = run_concurrently(
            lambda _: verifier.on_oracle_response(self.cid, self.cleartexts, self.proof),
            2,
        )
        self._assert_single_disclosure(results, errors, 2)


class TestConcurrentSubmissions(unittest.TestCase):

    def test_same_user_enrolled_once(self):
        oracle = LocalDecryptionOracle()
        service = SealedKYCService(owner="owner", oracle=oracle, clock=ManualClock(1000))
        for i in range(THREADS):
            service.add_provider("owner", f"p{i}")
        handles = [(oracle.encrypt(20 + i), oracle.encrypt(1)) for i in range(THREADS)]

        results, errors = run_concurrently(
            lambda i: service.submit(f"p{i}", "alice", *handles[i]),
            THREADS,
        )

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), THREADS - 1)
        self.assertEqual(len(service.records), 1)
        self.assertEqual(service.batch(1).members, frozenset({"alice"}))
        self.assertEqual(service.get_record(1, "alice"), results[0])
        self.assertEqual(len(service.events.query(kind=EventKind.USER_SUBMITTED)), 1)


if __name__ == "__main__":
    unittest.main()
