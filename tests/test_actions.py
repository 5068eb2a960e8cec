from __future__ import annotations

import unittest

from git_deploy.domain import (
    DeployAction,
    DispatchState,
    LogAction,
    PullAction,
    ResetAction,
    RollbackAction,
    StatusAction,
    ValidationError,
    is_valid_transition,
    parse_action,
)


class ParseActionTest(unittest.TestCase):
    def test_each_action_name_maps_to_its_variant(self) -> None:
        self.assertIsInstance(parse_action({"action": "pull"}), PullAction)
        self.assertIsInstance(parse_action({"action": "LOG"}), LogAction)
        self.assertIsInstance(parse_action({"action": "status"}), StatusAction)
        self.assertIsInstance(parse_action({"action": "rollback"}), RollbackAction)
        self.assertEqual(parse_action({"action": "reset", "commit_id": " a1b2c3d "}), ResetAction("a1b2c3d"))

    def test_deploy_force_flag(self) -> None:
        self.assertEqual(parse_action({"action": "deploy"}), DeployAction(False))
        self.assertEqual(parse_action({"action": "deploy", "force_composer": "true"}), DeployAction(True))

    def test_webhook_ignores_body_action(self) -> None:
        action = parse_action({"action": "reset", "gitlab_event": "Push Hook"}, via_webhook=True)
        self.assertIsInstance(action, PullAction)
        self.assertTrue(action.via_webhook)
        self.assertEqual(action.metadata["gitlab_event"], "Push Hook")

    def test_validation_failures(self) -> None:
        with self.assertRaises(ValidationError):
            parse_action({})
        with self.assertRaises(ValidationError) as ctx:
            parse_action({"action": "explode"})
        self.assertIn("Valid actions: pull, reset, log, deploy, status, rollback", ctx.exception.message)
        with self.assertRaises(ValidationError):
            parse_action({"action": "reset", "commit_id": "   "})


class DispatchStateTest(unittest.TestCase):
    def test_forward_sequence(self) -> None:
        self.assertTrue(is_valid_transition(DispatchState.UNAUTHENTICATED, DispatchState.AUTHENTICATED))
        self.assertTrue(is_valid_transition(DispatchState.EXECUTED, DispatchState.RESPONDED))
        self.assertFalse(is_valid_transition(DispatchState.UNAUTHENTICATED, DispatchState.EXECUTED))

    def test_error_reachable_until_terminal(self) -> None:
        self.assertTrue(is_valid_transition(DispatchState.ACTION_RESOLVED, DispatchState.ERROR))
        self.assertFalse(is_valid_transition(DispatchState.RESPONDED, DispatchState.ERROR))
        self.assertFalse(is_valid_transition(DispatchState.ERROR, DispatchState.AUTHENTICATED))


if __name__ == "__main__":
    unittest.main()
