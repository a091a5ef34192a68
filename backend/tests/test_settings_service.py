import unittest
from decimal import Decimal

from shiftpos import create_app
from shiftpos.extensions import db
from shiftpos.models import StoreSetting
from shiftpos.services import settings_service
from shiftpos.services.errors import SettingsError, ValidationError


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "TESTING": True,
            "DEFAULT_TAX_RATE_PERCENT": "16",
            "SHIFT_DAILY_ROTATION": True,
            "PRICE_OVERRIDE_POLICY": "allow",
            "VOID_POLICY": "any",
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(StoreSetting).delete()
        db.session.commit()

    def test_defaults_come_from_config(self):
        self.assertEqual(settings_service.tax_rate_percent(), Decimal("16"))
        self.assertTrue(settings_service.get_setting("daily_shift_rotation"))
        self.assertEqual(settings_service.price_override_policy(), "allow")
        self.assertEqual(settings_service.get_setting("void_policy"), "any")
        self.assertEqual(settings_service.get_setting("store_name"), "ShiftPOS")

    def test_stored_value_overrides_default(self):
        settings_service.set_setting("tax_rate_percent", "7.5", updated_by="admin-1")

        self.assertEqual(settings_service.tax_rate_percent(), Decimal("7.5"))
        row = db.session.query(StoreSetting).filter_by(key="tax_rate_percent").one()
        self.assertEqual(row.updated_by, "admin-1")

    def test_bool_settings_are_normalized(self):
        settings_service.set_setting("daily_shift_rotation", "off")

        self.assertFalse(settings_service.get_setting("daily_shift_rotation"))
        row = db.session.query(StoreSetting).filter_by(key="daily_shift_rotation").one()
        self.assertEqual(row.value, "false")

    def test_choice_settings_are_validated(self):
        self.assertEqual(settings_service.set_setting("price_override_policy", "CLAMP"), "clamp")

        with self.assertRaises(SettingsError):
            settings_service.set_setting("void_policy", "never")

    def test_negative_tax_rate_rejected(self):
        with self.assertRaises(SettingsError):
            settings_service.set_setting("tax_rate_percent", "-1")
        with self.assertRaises(SettingsError):
            settings_service.set_setting("tax_rate_percent", "abc")

    def test_unknown_key_rejected(self):
        with self.assertRaises(SettingsError) as ctx:
            settings_service.get_setting("currency")
        self.assertIsInstance(ctx.exception, ValidationError)

    def test_bulk_update_is_all_or_nothing(self):
        with self.assertRaises(SettingsError):
            settings_service.set_settings({"tax_rate_percent": "10", "void_policy": "never"})

        self.assertEqual(db.session.query(StoreSetting).count(), 0)
        self.assertEqual(settings_service.tax_rate_percent(), Decimal("16"))

    def test_pricing_policy_reflects_overrides(self):
        settings_service.set_settings({"tax_rate_percent": "8", "price_override_policy": "reject"})

        policy = settings_service.get_pricing_policy()

        self.assertEqual(policy["tax_rate_percent"], Decimal("8"))
        self.assertEqual(policy["price_override_policy"], "reject")

    def test_all_settings_lists_every_key(self):
        values = settings_service.all_settings()

        self.assertEqual(set(values), set(settings_service.SETTINGS_REGISTRY))


if __name__ == "__main__":
    unittest.main()
