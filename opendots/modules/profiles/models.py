# Supabase tables: user_profiles, profiles (legacy), auth.users
# D1 mirrors user_profiles only (see migrations/0001_create_user_profiles.sql)
# Actual operations are handled in stores.py

"""
Expected Supabase table structure:

user_profiles (system of record for onboarding):
- id: uuid (primary key, shared with the D1 copy)
- user_id: uuid (unique, references auth.users.id)
- username: text (unique, immutable after creation)
- display_name: text (not null)
- age: integer (nullable)
- gender: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())

profiles (legacy, refreshed on every OAuth callback):
- id: uuid (primary key, references auth.users.id)
- email, full_name, avatar_url, provider
- platform, browser, location (sign-in device metadata)
- created_at, updated_at

Stored procedures:
- is_username_available(username_to_check text) -> boolean
- update_user_profile_metadata(user_id uuid, p_platform text, p_browser text, p_location text) -> boolean
"""

USER_PROFILES_TABLE = "user_profiles"

USERNAME_AVAILABLE_RPC = "is_username_available"
SIGN_IN_METADATA_RPC = "update_user_profile_metadata"

PROFILE_COLUMNS = (
    "id",
    "user_id",
    "username",
    "display_name",
    "age",
    "gender",
    "created_at",
    "updated_at",
)

# Fields the update path may touch. username is deliberately absent.
UPDATABLE_COLUMNS = ("display_name", "age", "gender")
