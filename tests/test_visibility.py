"""
Tests for the fade-in/fade-out visibility state machine.
"""

import unittest

from PySide6 import QtWidgets

from qt_app import get_app

import radio_garden as rg

State = rg.VisibilityState


def run_fade(controller, max_ticks=100):
    """Drive the fade timer by hand; returns the opacity seen after every tick."""
    seen = []
    for _ in range(max_ticks):
        if not controller.fade_timer.isActive():
            break
        controller.advance_fade()
        seen.append(controller.opacity)
    return seen


class TestVisibilityController(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.app = get_app()

    def setUp(self):
        self.window = QtWidgets.QWidget()
        self.controller = rg.VisibilityController(self.window)
        self.changes = []
        self.controller.visibilityChanged.connect(self.changes.append)

    def tearDown(self):
        self.controller.fade_timer.stop()
        self.window.close()

    def test_starts_hidden_for_unshown_window(self):
        self.assertIs(self.controller.state, State.HIDDEN)
        self.assertFalse(self.controller.is_visible)

    def test_show_fades_in_from_zero(self):
        self.controller.show()
        self.assertIs(self.controller.state, State.FADING_IN)
        self.assertTrue(self.window.isVisible())
        self.assertEqual(self.controller.opacity, 0.0)

        seen = run_fade(self.controller)

        self.assertEqual(seen, sorted(seen))
        self.assertEqual(len(seen), 20)
        self.assertIs(self.controller.state, State.VISIBLE)
        self.assertEqual(self.controller.opacity, 1.0)
        self.assertEqual(self.changes, [True])

    def test_hide_fades_out_then_resets_opacity(self):
        self.controller.show()
        run_fade(self.controller)

        self.controller.hide()
        self.assertIs(self.controller.state, State.FADING_OUT)
        seen = run_fade(self.controller)

        self.assertEqual(seen[-1], 1.0)  # reset after the window is hidden
        self.assertEqual(seen[:-1], sorted(seen[:-1], reverse=True))
        self.assertFalse(self.window.isVisible())
        self.assertIs(self.controller.state, State.HIDDEN)
        self.assertAlmostEqual(self.window.windowOpacity(), 1.0, places=2)
        self.assertEqual(self.changes, [True, False])

    def test_hide_during_fade_in_reverses(self):
        self.controller.show()
        for _ in range(5):
            self.controller.advance_fade()
        self.assertAlmostEqual(self.controller.opacity, 0.25)

        self.controller.hide()
        self.controller.advance_fade()
        self.assertAlmostEqual(self.controller.opacity, 0.2)

        run_fade(self.controller)
        self.assertIs(self.controller.state, State.HIDDEN)
        self.assertEqual(self.changes, [False])

    def test_show_during_fade_out_reverses(self):
        self.controller.show()
        run_fade(self.controller)
        self.controller.hide()
        for _ in range(4):
            self.controller.advance_fade()

        self.controller.show()
        self.assertIs(self.controller.state, State.FADING_IN)
        self.assertAlmostEqual(self.controller.opacity, 0.8)
        run_fade(self.controller)
        self.assertIs(self.controller.state, State.VISIBLE)
        self.assertTrue(self.window.isVisible())

    def test_show_while_visible_is_noop(self):
        self.controller.show()
        run_fade(self.controller)
        self.controller.show()
        self.assertIs(self.controller.state, State.VISIBLE)
        self.assertFalse(self.controller.fade_timer.isActive())

    def test_hide_while_hidden_is_noop(self):
        self.controller.hide()
        self.assertIs(self.controller.state, State.HIDDEN)
        self.assertFalse(self.controller.fade_timer.isActive())

    def test_toggle_alternates(self):
        self.controller.toggle()
        self.assertIs(self.controller.state, State.FADING_IN)
        run_fade(self.controller)
        self.controller.toggle()
        self.assertIs(self.controller.state, State.FADING_OUT)

    def test_bring_to_front_shows_hidden_window(self):
        self.controller.bring_to_front()
        self.assertIs(self.controller.state, State.FADING_IN)
        self.assertTrue(self.window.isVisible())

    def test_bring_to_front_restores_minimized_window(self):
        self.controller.show()
        run_fade(self.controller)
        self.window.showMinimized()
        self.assertTrue(self.window.isMinimized())

        self.controller.bring_to_front()

        self.assertFalse(self.window.isMinimized())
        self.assertTrue(self.window.isVisible())
        self.assertIs(self.controller.state, State.VISIBLE)


if __name__ == "__main__":
    unittest.main()
