#!/usr/bin/env python3
"""
Tests for the /api/dice blueprint

Validates:
1. Commitment is published before play
2. Registration is idempotent and checks the identity shape
3. Play maps validation failures to 400 and unknown players to 404
4. Exhausted nonce retries surface as 503
5. Rounds can be audited once their epoch is revealed
6. Stateless verify and the multiplier table
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from tools.dice_platform import DicePlatform
from tools.errors import SequencerContention
from tools.provably_fair import commitment_of, create_epoch
from tools.round_engine import RoundEngine
from web_app import create_app

FIXED_SECRET = "a" * 64


class DiceApiTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.platform = DicePlatform(db_path=os.path.join(self._tmp.name, "api.db"))
        self.app = create_app(self.platform)
        self.app.config["TESTING"] = True
        self.client = self.app.test_client()

    def register(self, identity="alice@example.com"):
        return self.client.post("/api/dice/register", json={"identity": identity})

    def play(self, **body):
        payload = {"identity": "alice@example.com", "target": 50, "wager": 10}
        payload.update(body)
        return self.client.post("/api/dice/play", json=payload)


# ============================================================
# Commitment & Registration
# ============================================================

class TestCommitmentAndRegister(DiceApiTestCase):

    def test_commitment(self):
        resp = self.client.get("/api/dice/commitment")
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(len(body["commitment"]), 64)
        self.assertNotIn("secret", body)

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.get_json()["ok"])

    def test_register_idempotent(self):
        first = self.register()
        self.assertEqual(first.status_code, 201)
        self.assertTrue(first.get_json()["created"])
        self.assertEqual(first.get_json()["last_nonce"], 0)

        second = self.register()
        self.assertEqual(second.status_code, 200)
        self.assertFalse(second.get_json()["created"])

    def test_register_rejects_non_email(self):
        for bad in ({"identity": "not-an-email"}, {"identity": ""}, {}, {"identity": 5}):
            resp = self.client.post("/api/dice/register", json=bad)
            self.assertEqual(resp.status_code, 400, bad)
            self.assertEqual(resp.get_json()["error"], "invalid_request")


# ============================================================
# Play
# ============================================================

class TestPlay(DiceApiTestCase):

    def test_play_and_rotate(self):
        self.register()
        published = self.client.get("/api/dice/commitment").get_json()

        resp = self.play(client_seed="my-seed")
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["nonce"], 1)
        self.assertEqual(body["client_seed"], "my-seed")
        self.assertEqual(body["commitment"], published["commitment"])
        self.assertEqual(commitment_of(body["server_seed"]), published["commitment"])
        self.assertIn(body["number"], range(1, 101))
        self.assertEqual(body["win"], body["number"] <= 50)
        self.assertNotEqual(body["next_commitment"]["commitment"], published["commitment"])

    def test_play_generates_client_seed(self):
        self.register()
        body = self.play().get_json()
        self.assertEqual(len(body["client_seed"]), 64)

    def test_unknown_player(self):
        resp = self.play(identity="ghost@example.com")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()["error"], "unknown_identity")

    def test_invalid_target_and_wager(self):
        self.register()
        cases = [
            ({"target": 0}, "invalid_target"),
            ({"target": 100}, "invalid_target"),
            ({"target": "50"}, "invalid_target"),
            ({"wager": 0}, "invalid_wager"),
            ({"wager": -5}, "invalid_wager"),
            ({"wager": True}, "invalid_wager"),
        ]
        for override, kind in cases:
            resp = self.play(**override)
            self.assertEqual(resp.status_code, 400, override)
            self.assertEqual(resp.get_json()["error"], kind)
        # Rejected rounds never consume a nonce
        self.assertEqual(self.platform.sequencer.lookup("alice@example.com"), 0)

    def test_oversized_wager(self):
        self.register()
        for wager in (1e30, 1e300):
            resp = self.play(target=99, wager=wager)
            self.assertEqual(resp.status_code, 400, wager)
            self.assertEqual(resp.get_json()["error"], "invalid_wager")
        self.assertEqual(self.platform.sequencer.lookup("alice@example.com"), 0)

    def test_identity_is_trimmed_on_play(self):
        self.assertEqual(self.register(" alice@example.com ").status_code, 201)
        resp = self.play(identity="alice@example.com  ")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["nonce"], 1)
        self.assertEqual(self.platform.sequencer.lookup("alice@example.com"), 1)

    def test_blank_identity_on_play(self):
        resp = self.play(identity="   ")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "invalid_request")

    def test_missing_fields(self):
        resp = self.client.post("/api/dice/play", json={"identity": "alice@example.com"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "invalid_request")

    def test_contention_is_503(self):
        self.register()
        with patch.object(self.platform, "play", side_effect=SequencerContention("busy")):
            resp = self.play()
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.get_json()["error"], "sequencer_contention")


# ============================================================
# Audit, Verify, Multipliers
# ============================================================

class TestAuditAndVerify(DiceApiTestCase):

    def test_audit_revealed_round(self):
        self.register()
        body = self.play().get_json()
        resp = self.client.get(f"/api/dice/rounds/{body['round_id']}/audit")
        self.assertEqual(resp.status_code, 200)
        report = resp.get_json()
        self.assertTrue(report["verified"])
        self.assertEqual(report["computed_number"], body["number"])

    def play_off_platform(self, epoch):
        """Record a round under ``epoch`` without letting the platform rotate it."""
        self.register()
        engine = RoundEngine(epoch, self.platform.sequencer, self.platform.ledger)
        return engine.play("alice@example.com", "c", 50, 1.0).outcome

    def test_audit_unrevealed_round(self):
        epoch = create_epoch()
        self.platform.ledger.save_epoch(epoch)
        out = self.play_off_platform(epoch)
        resp = self.client.get(f"/api/dice/rounds/{out.round_id}/audit")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["error"], "not_revealed")

    def test_audit_round_with_missing_epoch(self):
        out = self.play_off_platform(create_epoch())
        resp = self.client.get(f"/api/dice/rounds/{out.round_id}/audit")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()["error"], "not_found")
        self.assertIn("Epoch not found", resp.get_json()["message"])

    def test_audit_unknown_round(self):
        resp = self.client.get("/api/dice/rounds/nope/audit")
        self.assertEqual(resp.status_code, 404)

    def test_verify(self):
        payload = {
            "server_seed": FIXED_SECRET,
            "client_seed": "test_seed",
            "nonce": 1,
            "number": 75,
            "commitment": commitment_of(FIXED_SECRET),
        }
        resp = self.client.post("/api/dice/verify", json=payload)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.get_json()["verified"])

        payload["number"] = 74
        self.assertFalse(self.client.post("/api/dice/verify", json=payload).get_json()["verified"])

    def test_verify_validation(self):
        resp = self.client.post("/api/dice/verify",
                                json={"server_seed": FIXED_SECRET, "client_seed": "x"})
        self.assertEqual(resp.status_code, 400)

    def test_multipliers(self):
        rows = self.client.get("/api/dice/multipliers").get_json()["rows"]
        self.assertEqual(len(rows), 99)

        rows = self.client.get("/api/dice/multipliers?targets=50,99").get_json()["rows"]
        self.assertEqual([r["target"] for r in rows], [50, 99])
        self.assertEqual(rows[0]["multiplier"], 1.98)

    def test_multipliers_bad_targets(self):
        self.assertEqual(self.client.get("/api/dice/multipliers?targets=abc").status_code, 400)
        resp = self.client.get("/api/dice/multipliers?targets=0")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "invalid_target")

    def test_player_stats(self):
        self.register()
        self.play()
        self.play()
        stats = self.client.get("/api/dice/players/alice@example.com/stats").get_json()
        self.assertEqual(stats["rounds"], 2)
        self.assertEqual(stats["last_nonce"], 2)
        resp = self.client.get("/api/dice/players/ghost@example.com/stats")
        self.assertEqual(resp.status_code, 404)

    def test_unknown_route_is_json(self):
        resp = self.client.get("/api/dice/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()["error"], "not_found")


if __name__ == "__main__":
    unittest.main(verbosity=2)
