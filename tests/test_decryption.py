"""
Decryption protocol tests.

Covers request issuance, the callback check order, replay protection,
state commitment drift, proof verification and cancellation.
"""

import dataclasses
import unittest

from nacl.signing import SigningKey

from sealedkyc import (
    AuthorizationError,
    DecryptionOracle,
    DecryptionState,
    ErrorCode,
    EventKind,
    IntegrityError,
    LifecycleError,
    LocalDecryptionOracle,
    ManualClock,
    SealedKYCService,
    encode_uint256s,
    proof_message,
    state_commitment,
)


class FailingOracle(DecryptionOracle):
    def request(self, handles, callback_target):
        raise RuntimeError("oracle unavailable")

    def verify(self, correlation_id, cleartexts, proof):
        return False


class StuckOracle(DecryptionOracle):
    """Always issues the same correlation id."""

    def request(self, handles, callback_target):
        return 7

    def verify(self, correlation_id, cleartexts, proof):
        return True


def make_service(oracle, start=1000):
    service = SealedKYCService(owner="owner", oracle=oracle, clock=ManualClock(start))
    service.add_provider("owner", "p1")
    service.add_provider("owner", "p2")
    return service


class TestRequestVerification(unittest.TestCase):

    def setUp(self):
        self.oracle = LocalDecryptionOracle()
        self.service = make_service(self.oracle)
        self.age = self.oracle.encrypt(25)
        self.service.submit("p1", "alice", self.age, self.oracle.encrypt(1))

    def test_request_records_context(self):
        cid = self.service.request_verification("p1", 1, "alice")

        context = self.service.get_decryption_context(cid)
        self.assertEqual(context.state, DecryptionState.CREATED)
        self.assertEqual((context.batch_id, context.user, context.requested_by), (1, "alice", "p1"))
        self.assertEqual(context.commitment, state_commitment([self.age], self.service.service_identity))
        self.assertFalse(context.processed)
        self.assertEqual([c.correlation_id for c in self.service.pending_decryptions()], [cid])

    def test_request_sends_only_age_handle(self):
        cid = self.service.request_verification("p1", 1, "alice")
        self.assertEqual(self.oracle.get_request(cid).handles, [self.age.as_commitment_bytes()])

    def test_request_returns_before_answer(self):
        cid = self.service.request_verification("p1", 1, "alice")
        self.assertEqual(len(self.service.events.query(kind=EventKind.DECRYPTION_COMPLETED)), 0)
        self.assertEqual([r.correlation_id for r in self.oracle.outbound()], [cid])

    def test_invalid_batch(self):
        for batch_id in (0, 2):
            with self.assertRaises(LifecycleError) as ctx:
                self.service.request_verification("p1", batch_id, "alice")
            self.assertEqual(ctx.exception.code, ErrorCode.INVALID_BATCH)
        self.assertIsNone(self.service.last_request_time("p1"))

    def test_not_enrolled(self):
        with self.assertRaises(LifecycleError) as ctx:
            self.service.request_verification("p1", 1, "bob")
        self.assertEqual(ctx.exception.code, ErrorCode.NOT_ENROLLED)

    def test_requires_provider(self):
        with self.assertRaises(AuthorizationError):
            self.service.request_verification("owner", 1, "alice")

    def test_context_is_a_copy(self):
        cid = self.service.request_verification("p1", 1, "alice")
        copy = self.service.get_decryption_context(cid)
        copy.state = DecryptionState.PROCESSED
        self.assertEqual(self.service.get_decryption_context(cid).state, DecryptionState.CREATED)

    def test_oracle_failure_records_nothing(self):
        oracle = LocalDecryptionOracle()
        service = make_service(FailingOracle())
        service.submit("p1", "alice", oracle.encrypt(25), oracle.encrypt(1))

        with self.assertRaises(RuntimeError):
            service.request_verification("p1", 1, "alice")
        self.assertEqual(service.pending_decryptions(), [])
        self.assertIsNone(service.last_request_time("p1"))
        self.assertEqual(len(service.events.query(kind=EventKind.DECRYPTION_REQUESTED)), 0)

    def test_reissued_correlation_id_rejected(self):
        oracle = LocalDecryptionOracle()
        service = make_service(StuckOracle())
        service.submit("p1", "alice", oracle.encrypt(25), oracle.encrypt(1))
        service.submit("p1", "bob", oracle.encrypt(30), oracle.encrypt(1))

        self.assertEqual(service.request_verification("p1", 1, "alice"), 7)
        with self.assertRaises(IntegrityError) as ctx:
            service.request_verification("p2", 1, "bob")
        self.assertEqual(ctx.exception.code, ErrorCode.DUPLICATE_CORRELATION)
        self.assertEqual(service.get_decryption_context(7).user, "alice")


class TestOracleCallback(unittest.TestCase):

    def setUp(self):
        self.oracle = LocalDecryptionOracle()
        self.service = make_service(self.oracle)
        self.age = self.oracle.encrypt(25)
        self.service.submit("p1", "alice", self.age, self.oracle.encrypt(1))
        self.cid = self.service.request_verification("p1", 1, "alice")

    def _completed(self):
        return self.service.events.query(kind=EventKind.DECRYPTION_COMPLETED)

    def _assert_rejected(self, code, cleartexts, proof):
        with self.assertRaises(IntegrityError) as ctx:
            self.service.on_oracle_response(self.cid, cleartexts, proof)
        self.assertEqual(ctx.exception.code, code)
        self.assertEqual(self.service.get_decryption_context(self.cid).state, DecryptionState.CREATED)
        self.assertEqual(self._completed(), [])

    def test_end_to_end_disclosure(self):
        disclosure = self.oracle.fulfill(self.cid)

        self.assertEqual((disclosure.correlation_id, disclosure.batch_id, disclosure.value), (self.cid, 1, 25))
        context = self.service.get_decryption_context(self.cid)
        self.assertTrue(context.processed)
        self.assertEqual(context.disclosed_value, 25)
        self.assertEqual(self.service.pending_decryptions(), [])

        events = self._completed()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].payload, {"correlation_id": self.cid, "batch_id": 1, "value": 25})

    def test_replay_rejected(self):
        cleartexts, proof = self.oracle.respond(self.cid)
        self.service.on_oracle_response(self.cid, cleartexts, proof)

        with self.assertRaises(IntegrityError) as ctx:
            self.service.on_oracle_response(self.cid, cleartexts, proof)
        self.assertEqual(ctx.exception.code, ErrorCode.REPLAY_DETECTED)
        self.assertEqual(len(self._completed()), 1)

    def test_replay_with_other_signed_value_keeps_disclosure(self):
        self.oracle.fulfill(self.cid)

        other = encode_uint256s([99])
        with self.assertRaises(IntegrityError) as ctx:
            self.service.on_oracle_response(self.cid, other, self.oracle.sign(self.cid, other))
        self.assertEqual(ctx.exception.code, ErrorCode.REPLAY_DETECTED)
        self.assertEqual(self.service.get_decryption_context(self.cid).disclosed_value, 25)
        self.assertEqual(len(self._completed()), 1)

    def test_unknown_correlation_id(self):
        cleartexts = encode_uint256s([25])
        with self.assertRaises(IntegrityError) as ctx:
            self.service.on_oracle_response(999, cleartexts, self.oracle.sign(999, cleartexts))
        self.assertEqual(ctx.exception.code, ErrorCode.REPLAY_DETECTED)

    def test_state_mismatch_when_record_changes(self):
        cleartexts, proof = self.oracle.respond(self.cid)
        key = (1, "alice")
        stored = self.service.records._records[key]
        self.service.records._records[key] = dataclasses.replace(stored, age_handle=self.oracle.encrypt(30))

        with self.assertLogs("sealedkyc.audit", level="ERROR") as cm:
            self._assert_rejected(ErrorCode.STATE_MISMATCH, cleartexts, proof)
        self.assertIn("SECURITY_EVENT", cm.output[0])

        self.service.records._records[key] = stored
        self.assertEqual(self.service.on_oracle_response(self.cid, cleartexts, proof).value, 25)

    def test_state_mismatch_when_identity_differs(self):
        cleartexts, proof = self.oracle.respond(self.cid)
        self.service.coordinator._service_identity = "another-service"
        self._assert_rejected(ErrorCode.STATE_MISMATCH, cleartexts, proof)

    def test_tampered_proof_then_valid(self):
        cleartexts, proof = self.oracle.respond(self.cid)
        tampered = bytes([proof[0] ^ 0x01]) + proof[1:]
        self._assert_rejected(ErrorCode.INVALID_PROOF, cleartexts, tampered)

        self.assertEqual(self.service.on_oracle_response(self.cid, cleartexts, proof).value, 25)

    def test_forged_cleartext_rejected(self):
        _, proof = self.oracle.respond(self.cid)
        self._assert_rejected(ErrorCode.INVALID_PROOF, encode_uint256s([99]), proof)

    def test_proof_from_other_key_rejected(self):
        cleartexts = encode_uint256s([25])
        forged = SigningKey.generate().sign(proof_message(self.cid, cleartexts)).signature
        self._assert_rejected(ErrorCode.INVALID_PROOF, cleartexts, forged)

    def test_proof_bound_to_correlation_id(self):
        cleartexts = encode_uint256s([25])
        self._assert_rejected(ErrorCode.INVALID_PROOF, cleartexts, self.oracle.sign(self.cid + 1, cleartexts))

    def test_malformed_cleartext(self):
        for cleartexts in (b"", encode_uint256s([25, 1]), b"\x19"):
            self._assert_rejected(ErrorCode.MALFORMED_CLEARTEXT, cleartexts, self.oracle.sign(self.cid, cleartexts))

    def test_cancelled_context_refuses_answer(self):
        cleartexts, proof = self.oracle.respond(self.cid)
        self.service.cancel_decryption("owner", self.cid)

        with self.assertRaises(IntegrityError) as ctx:
            self.service.on_oracle_response(self.cid, cleartexts, proof)
        self.assertEqual(ctx.exception.code, ErrorCode.CONTEXT_CANCELLED)
        self.assertEqual(self.service.get_decryption_context(self.cid).state, DecryptionState.CANCELLED)
        self.assertEqual(len(self.service.events.query(kind=EventKind.DECRYPTION_CANCELLED)), 1)

    def test_cancel_rules(self):
        with self.assertRaises(AuthorizationError):
            self.service.cancel_decryption("p1", self.cid)

        self.service.cancel_decryption("owner", self.cid)
        with self.assertRaises(IntegrityError) as ctx:
            self.service.cancel_decryption("owner", self.cid)
        self.assertEqual(ctx.exception.code, ErrorCode.REPLAY_DETECTED)

        with self.assertRaises(IntegrityError):
            self.service.cancel_decryption("owner", 12345)

    def test_processed_context_cannot_be_cancelled(self):
        self.oracle.fulfill(self.cid)
        with self.assertRaises(IntegrityError):
            self.service.cancel_decryption("owner", self.cid)


if __name__ == "__main__":
    unittest.main()
