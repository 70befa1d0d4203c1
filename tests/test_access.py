"""
Access control tests: owner/provider roles and the pause flag.
"""

import unittest

from sealedkyc import (
    AccessControlGate,
    AuthorizationError,
    ErrorCode,
    LifecycleError,
    LocalDecryptionOracle,
    ManualClock,
    SealedKYCService,
)


class TestAccessControlGate(unittest.TestCase):
    """Gate in isolation."""

    def setUp(self):
        self.gate = AccessControlGate("owner")

    def test_owner_is_fixed(self):
        self.assertEqual(self.gate.owner, "owner")
        self.gate.require_owner("owner")

    def test_empty_owner_rejected(self):
        with self.assertRaises(ValueError):
            AccessControlGate("")

    def test_add_and_remove_provider(self):
        self.gate.add_provider("owner", "p1")
        self.gate.add_provider("owner", "p1")
        self.assertTrue(self.gate.is_provider("p1"))
        self.assertEqual(self.gate.providers(), ["p1"])

        self.gate.remove_provider("owner", "p1")
        self.gate.remove_provider("owner", "p1")
        self.assertFalse(self.gate.is_provider("p1"))

    def test_non_owner_cannot_manage_roles(self):
        with self.assertRaises(AuthorizationError) as ctx:
            self.gate.add_provider("mallory", "p1")
        self.assertEqual(ctx.exception.code, ErrorCode.NOT_OWNER)
        self.assertFalse(self.gate.is_provider("p1"))

    def test_provider_is_not_owner(self):
        self.gate.add_provider("owner", "p1")
        with self.assertRaises(AuthorizationError):
            self.gate.pause("p1")

    def test_pause_transitions(self):
        self.gate.pause("owner")
        self.assertTrue(self.gate.paused)

        with self.assertRaises(LifecycleError) as ctx:
            self.gate.pause("owner")
        self.assertEqual(ctx.exception.code, ErrorCode.PAUSED)

        self.gate.unpause("owner")
        with self.assertRaises(LifecycleError) as ctx:
            self.gate.unpause("owner")
        self.assertEqual(ctx.exception.code, ErrorCode.NOT_PAUSED)


class TestServiceRoles(unittest.TestCase):
    """Role and pause enforcement through the service."""

    def setUp(self):
        self.oracle = LocalDecryptionOracle()
        self.clock = ManualClock(start=1000)
        self.service = SealedKYCService(owner="owner", oracle=self.oracle, clock=self.clock)
        self.service.add_provider("owner", "p1")

    def _submit(self, user="alice", provider="p1"):
        return self.service.submit(provider, user, self.oracle.encrypt(25), self.oracle.encrypt(1))

    def test_non_provider_cannot_submit(self):
        with self.assertRaises(AuthorizationError) as ctx:
            self._submit(provider="p2")
        self.assertEqual(ctx.exception.code, ErrorCode.NOT_PROVIDER)

    def test_removed_provider_cannot_submit(self):
        self.service.remove_provider("owner", "p1")
        with self.assertRaises(AuthorizationError):
            self._submit()

    def test_pause_blocks_submission_and_request(self):
        self._submit()
        self.service.pause("owner")

        with self.assertRaises(LifecycleError) as ctx:
            self._submit(user="bob")
        self.assertEqual(ctx.exception.code, ErrorCode.PAUSED)

        with self.assertRaises(LifecycleError):
            self.service.request_verification("p1", 1, "alice")

        self.service.unpause("owner")
        self._submit(user="bob")

    def test_callback_not_gated_by_pause(self):
        self._submit()
        cid = self.service.request_verification("p1", 1, "alice")
        self.service.pause("owner")

        disclosure = self.oracle.fulfill(cid)
        self.assertEqual(disclosure.value, 25)

    def test_rejection_is_audited(self):
        with self.assertLogs("sealedkyc.audit", level="WARNING") as cm:
            with self.assertRaises(AuthorizationError):
                self._submit(provider="p2")
        self.assertIn("OPERATION_REJECTED", cm.output[0])
        self.assertIn("NOT_PROVIDER", cm.output[0])


if __name__ == "__main__":
    unittest.main()
