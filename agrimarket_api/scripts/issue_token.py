#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
Mint an access token for local testing against the demand API.

Usage:
    python -m agrimarket_api.scripts.issue_token USER_ID --role farmer --name "Farmer Joe"
"""

import argparse
import sys

from agrimarket_api.models.enums import UserRole
from agrimarket_api.services.auth import AuthService


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Issue an AgriMarket access token")
    parser.add_argument("user_id", help="User ID placed in the sub claim")
    parser.add_argument(
        "--role",
        required=True,
        choices=[role.value for role in UserRole if role != UserRole.ANONYMOUS]
    )
    parser.add_argument("--name", help="Display name")
    parser.add_argument("--email", help="Contact email")
    parser.add_argument("--secret", help="Signing secret (default: JWT_SECRET)")
    parser.add_argument("--minutes", type=int, default=60, help="Token lifetime in minutes")
    args = parser.parse_args(argv)

    auth_service = AuthService(args.secret, access_token_expire_minutes=args.minutes)
    token = auth_service.create_access_token(args.user_id, args.role, name=args.name, email=args.email)

    # Round-trip so a bad secret or role fails here rather than at the API
    auth_service.validate_token(token)

    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
