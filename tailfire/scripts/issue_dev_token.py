# scripts/issue_dev_token.py
import argparse

from tailfire.services.jwt_service import create_access_token


def main() -> None:
    parser = argparse.ArgumentParser(description="Print a bearer token for local development.")
    parser.add_argument("--user", default="dev-user")
    parser.add_argument("--agency", default="demo-agency")
    parser.add_argument("--role", default="admin", choices=["admin", "agent"])
    parser.add_argument("--minutes", type=int, default=None)
    args = parser.parse_args()

    print(create_access_token(sub=args.user, agency_id=args.agency, role=args.role, expires_minutes=args.minutes))


if __name__ == "__main__":
    main()
