import argparse
import os
import sys
from pathlib import Path

APP_ROOT = Path(__file__).resolve().parents[1]
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from llf_api.config import ConfigError, load_settings
from llf_api.engine.entities import UserRole
from llf_api.engine.errors import LlfError
from llf_api.services import build_default_services


def main() -> None:
    parser = argparse.ArgumentParser(description="Register (if needed) a dev user and print a session token for the LLF API.")
    parser.add_argument("--role", choices=[role.value for role in UserRole], default=UserRole.MANAGEMENT.value)
    parser.add_argument("--email", default="")
    parser.add_argument("--password", default=os.environ.get("LLF_DEV_PASSWORD", "dev-password"))
    parser.add_argument("--section", default="SPINNING")
    args = parser.parse_args()
    try:
        settings = load_settings()
    except ConfigError as exc:
        raise SystemExit(str(exc))
    services = build_default_services(settings)
    email = args.email or f"{args.role.lower()}@example.com"
    services.accounts.register(
        email,
        args.password,
        f"Dev {args.role.title()}",
        args.role,
        "Production",
        args.section,
        "",
    )
    result = services.accounts.login(email, args.password)
    if not result.ok:
        error: LlfError = result.error
        raise SystemExit(f"{error.code}: {error.message}")
    print(result.value.session.token)


if __name__ == "__main__":
    main()
