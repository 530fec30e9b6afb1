#!/usr/bin/env python3
"""
SupaAuth - sign-up / sign-in pages backed by Supabase Auth.
"""

import argparse
import logging
import os
import sys


def log_level_from_env() -> int:
    """Map LOG_LEVEL (e.g. "debug") to a logging level; unknown values mean INFO."""
    level = getattr(logging, os.getenv("LOG_LEVEL", "info").strip().upper(), None)
    return level if isinstance(level, int) else logging.INFO


# Configure logging
logging.basicConfig(
    level=log_level_from_env(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep app imports lazy (inside functions) so `--help` works without the web extras.
#


def show_config() -> None:
    """Print the effective auth configuration (secrets redacted)."""
    from supaauth.auth.config import load_auth_config

    cfg = load_auth_config()
    print(f"Supabase URL:      {cfg.supabase_url or '(not set)'}")
    print(f"Anon key:          {'set' if cfg.supabase_anon_key else '(not set)'}")
    print(f"Public base URL:   {cfg.public_base_url or '(not set)'}")
    print(f"Session secret:    {'set' if cfg.session_secret else '(not set)'}")
    print(f"Session TTL:       {cfg.session_ttl_seconds}s")
    print(f"Secure cookies:    {cfg.cookie_secure}")
    print(f"OAuth providers:   {', '.join(cfg.oauth_providers) or '(none)'}")
    print(f"Routes:            home={cfg.home_route} auth={cfg.auth_route}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Sign-up / sign-in pages backed by Supabase Auth",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the web server
  SUPABASE_URL=https://xyz.supabase.co SUPABASE_ANON_KEY=... AUTH_SESSION_SECRET=... \\
    python main.py --serve --port 8080

  # Show the effective configuration
  python main.py --show-config
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--show-config", action="store_true", help="Print the effective auth configuration")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    if args.show_config:
        show_config()
        return

    if args.serve:
        from supaauth.api.server import run

        run(host=args.host, port=args.port)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
