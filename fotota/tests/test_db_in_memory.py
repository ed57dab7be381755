import unittest

from fotota.db import InMemoryDbClient, PhotoActionType, Profile


class InMemoryDbClientTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_returned_action_records_are_copies(self):
        record = self.db.record_photo_action("user-1", "a.jpg", PhotoActionType.CONFIRMED)
        record.action = PhotoActionType.REJECTED
        self.assertEqual(
            self.db.list_photo_actions("user-1"), {"a.jpg": PhotoActionType.CONFIRMED}
        )

        updated = self.db.record_photo_action("user-1", "a.jpg", PhotoActionType.REJECTED)
        updated.photo_id = "b.jpg"
        self.assertEqual(
            self.db.list_photo_actions("user-1"), {"a.jpg": PhotoActionType.REJECTED}
        )

    def test_returned_profiles_are_copies(self):
        created = self.db.create_profile(Profile(user_id="user-1", phone="0812"))
        created.phone = "changed"
        self.assertEqual(self.db.get_profile("user-1").phone, "0812")


if __name__ == "__main__":
    unittest.main()
