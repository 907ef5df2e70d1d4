import unittest

from avatarlink import AvatarSDKError, AvatarSDKErrorCode, map_ws_connect_status


class TestAvatarSDKError(unittest.TestCase):
    def test_str_includes_code_and_message(self):
        err = AvatarSDKError(
            code=AvatarSDKErrorCode.sessionTokenExpired, message="token has expired"
        )
        self.assertEqual(str(err), "sessionTokenExpired: token has expired")

    def test_code_values_are_stable(self):
        self.assertEqual(AvatarSDKErrorCode.sessionTokenExpired, "sessionTokenExpired")
        self.assertEqual(AvatarSDKErrorCode.sessionTokenInvalid, "sessionTokenInvalid")
        self.assertEqual(AvatarSDKErrorCode.appIDUnrecognized, "appIDUnrecognized")
        self.assertEqual(AvatarSDKErrorCode.unknown, "unknown")


class TestMapWsConnectStatus(unittest.TestCase):
    def test_known_statuses(self):
        self.assertIs(map_ws_connect_status(401), AvatarSDKErrorCode.sessionTokenExpired)
        self.assertIs(map_ws_connect_status(400), AvatarSDKErrorCode.sessionTokenInvalid)
        self.assertIs(map_ws_connect_status(404), AvatarSDKErrorCode.appIDUnrecognized)

    def test_other_statuses_have_no_mapping(self):
        for status in (None, 200, 403, 500, 502):
            with self.subTest(status=status):
                self.assertIsNone(map_ws_connect_status(status))


if __name__ == "__main__":
    unittest.main()
