from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import unittest

from sqlalchemy import UniqueConstraint

from authlink.domain.entities.identity import RegistrationOptions
from authlink.infrastructure.db.engine import Base
from authlink.infrastructure.db.models import accounts as _models  # noqa: F401
from authlink.infrastructure.db.mappers.accounts_mapper import (
    map_json_to_registration_options,
    map_row_to_user,
    registration_options_to_json,
)


class AccountsRepositoryTests(unittest.TestCase):
    def test_mapper_maps_user_row_with_roles_and_json_metadata(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        row = {
            "id": "7d8f0d1e-0000-0000-0000-000000000001",
            "email": "alice@example.com",
            "display_name": "Alice",
            "avatar_url": "",
            "locale": "en",
            "default_role": "user",
            "roles": ["user", "me"],
            "metadata": '{"plan": "pro"}',
            "email_verified": False,
            "is_active": True,
            "current_challenge": None,
            "created_at": now,
            "updated_at": now,
        }

        user = map_row_to_user(row)

        self.assertEqual(user.roles, ("user", "me"))
        self.assertEqual(user.metadata, {"plan": "pro"})
        self.assertTrue(user.is_active)

    def test_registration_options_keep_unset_fields_unset(self):
        options = RegistrationOptions(locale="fr", allowed_roles=("user",))

        restored = map_json_to_registration_options(registration_options_to_json(options))

        self.assertEqual(restored, options)
        self.assertIsNone(restored.default_role)

    def test_models_declare_the_unique_keys_resolution_relies_on(self):
        tables = Base.metadata.tables
        providers = tables["auth.user_providers"]
        unique_columns = {
            tuple(column.name for column in constraint.columns)
            for constraint in providers.constraints
            if isinstance(constraint, UniqueConstraint)
        }
        email_index = next(index for index in tables["auth.users"].indexes if index.name == "uq_users_email_lower")

        self.assertIn(("provider_id", "provider_user_id"), unique_columns)
        self.assertTrue(email_index.unique)
        self.assertTrue(tables["auth.user_authenticators"].c.credential_id.unique)
        self.assertIn("auth.oauth_flow_states", tables)

    def test_single_use_writes_are_guarded_in_sql(self):
        accounts = Path("authlink/infrastructure/db/repositories/accounts_repository.py").read_text(
            encoding="utf-8"
        )
        flows = Path("authlink/infrastructure/db/repositories/flow_state_repository.py").read_text(
            encoding="utf-8"
        )

        self.assertIn("RETURNING previous.current_challenge", accounts)
        self.assertIn("AND revoked_at IS NULL", accounts)
        self.assertIn("WHERE lower(u.email) = :email", accounts)
        self.assertIn("RETURNING provider_id, state, redirect_to, options, created_at, expires_at", flows)


if __name__ == "__main__":
    unittest.main()
