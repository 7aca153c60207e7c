"""
Centralized test credentials and identities.

Values load from environment variables when available, with clearly
non-production placeholders as fallbacks.
"""

from __future__ import annotations

import os

# Shared server secret for legacy mode; the shipped default
TEST_SERVER_PASSWORD = os.environ.get("TEST_SERVER_PASSWORD") or "ChangeMe123!"
TEST_PASSWORD_WRONG = os.environ.get("TEST_PASSWORD_WRONG") or "ChangeMe123?"

# Fake identity provider
TEST_ISSUER = "https://id.example.test/realms/eds"
TEST_CLIENT_ID = "eds-web"
TEST_KEY_ID = "test-key-1"

# Subjects
SUB_ALICE = "alice-sub"
SUB_BOB = "bob-sub"
SUB_CAROL = "carol-sub"
SUB_ROOT = "root-sub"

# Diagram blobs
SCHEMA_V1 = "EDS0040000eJzLSM3JyVcozy/KSQEAGgQEXQ=="
SCHEMA_V2 = "EDS0040000eJwrz0vJTFEoSS0uUUjLLypWKC4pysxLBwBDKAai"
SCHEMA_TXT = "TXT0040000plain text diagram"
