# amc_portal/create_user.py
import argparse
import sqlite3

from amc_portal.database import get_db, init_db, insert_user


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create a portal account.")
    parser.add_argument("username")
    parser.add_argument("password")
    parser.add_argument("--role", choices=["admin", "personnel"], default="personnel")
    parser.add_argument("--email")
    parser.add_argument("--full-name")
    args = parser.parse_args(argv)

    init_db(create_admin=False)
    conn = get_db()
    try:
        user_id = insert_user(conn, args.username, args.password, args.role, args.email, args.full_name)
    except sqlite3.IntegrityError:
        print(f"User '{args.username}' (or that email) already exists.")
        return 1
    finally:
        conn.close()

    print(f"{args.role.capitalize()} '{args.username}' created with id {user_id}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
