from __future__ import annotations

import os
import unittest
from pathlib import Path
from unittest import mock

from fetchcache.offline import EnvironmentOffline, OfflineFlag
from fetchcache.paths import default_cache_dir, user_state_dir


class UserStateDirTest(unittest.TestCase):
    def test_home_override(self) -> None:
        with mock.patch.dict(os.environ, {"FETCHCACHE_HOME": "/tmp/fc-home"}):
            self.assertEqual(user_state_dir(), Path("/tmp/fc-home"))
            self.assertEqual(default_cache_dir(), Path("/tmp/fc-home") / "cache")

    def test_xdg_state_home(self) -> None:
        env = {"FETCHCACHE_HOME": "", "XDG_STATE_HOME": "/tmp/xdg-state"}
        with mock.patch.dict(os.environ, env), mock.patch("platform.system", return_value="Linux"):
            self.assertEqual(user_state_dir(), Path("/tmp/xdg-state") / "fetchcache")

    def test_non_xdg_platform(self) -> None:
        with mock.patch.dict(os.environ, {"FETCHCACHE_HOME": ""}), mock.patch(
            "platform.system", return_value="Darwin"
        ):
            self.assertEqual(user_state_dir(), Path.home() / ".fetchcache")


class OfflineStateTest(unittest.TestCase):
    def test_flag_toggles(self) -> None:
        flag = OfflineFlag()
        self.assertFalse(flag.is_offline())
        flag.set_offline(True)
        self.assertTrue(flag.is_offline())

    def test_environment_is_polled_on_every_call(self) -> None:
        state = EnvironmentOffline()
        with mock.patch.dict(os.environ, {"FETCHCACHE_OFFLINE": "yes"}):
            self.assertTrue(state.is_offline())
        with mock.patch.dict(os.environ, {"FETCHCACHE_OFFLINE": "0"}):
            self.assertFalse(state.is_offline())


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
